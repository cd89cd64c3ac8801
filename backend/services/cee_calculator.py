"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  OXA CRM - Calcul CEE (fiche IND-UT-134)                                     ║
║                                                                              ║
║  kWh cumac = 29.4 × coefficient d'activité × puissance (kW) × facteur F      ║
║  prime      = kWh cumac × tarif (€/kWh cumac)                                ║
║                                                                              ║
║  RÈGLES:                                                                     ║
║  - Fonction pure, recalculée à CHAQUE modification (jamais de cache)         ║
║  - Profil / durée inconnus → ConfigurationError (jamais de valeur par défaut) ║
║  - Puissance 0 → 0 kWh cumac, prime 0 (devis sans CEE, pas une erreur)       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Any, Dict

from config import round_half_up, round2
from models.devis import CEEParams, CEEResult


CEE_FORMULE = "IND-UT-134"
CEE_CONSTANTE_KWH = 29.4
CEE_TARIF_DEFAUT = 0.002
CEE_OPERATEUR = "OXA Groupe"


# ════════════════════════════════════════════════════════════════════════════
# TABLES
# ════════════════════════════════════════════════════════════════════════════

PROFILS_FONCTIONNEMENT = {
    "1x8h": {"label": "1×8h (8h/jour)", "coefficient": 1.0},
    "2x8h": {"label": "2×8h (16h/jour)", "coefficient": 2.0},
    "3x8h_weekend_off": {"label": "3×8h week-end off", "coefficient": 2.5},
    "3x8h_24_7": {"label": "3×8h 24/7", "coefficient": 3.0},
    "continu_24_7": {"label": "Continu 24/7", "coefficient": 3.5},
}

DUREES_CONTRAT = {
    1: {"label": "1 an", "facteur": 1.0},
    2: {"label": "2 ans", "facteur": 1.8},
    3: {"label": "3 ans", "facteur": 2.5},
    4: {"label": "4 ans", "facteur": 3.1},
    5: {"label": "5 ans", "facteur": 3.6},
}


class ConfigurationError(Exception):
    """Clé de table CEE inconnue (profil ou durée). Bloque l'enregistrement."""
    pass


def get_coefficient_activite(profil: str) -> float:
    entry = PROFILS_FONCTIONNEMENT.get(profil)
    if entry is None:
        raise ConfigurationError(
            f"Profil de fonctionnement inconnu: '{profil}'. "
            f"Profils valides: {list(PROFILS_FONCTIONNEMENT)}"
        )
    return entry["coefficient"]


def get_facteur_duree(duree: Any) -> float:
    entry = DUREES_CONTRAT.get(duree) if isinstance(duree, int) and not isinstance(duree, bool) else None
    if entry is None:
        raise ConfigurationError(
            f"Durée de contrat inconnue: '{duree}'. "
            f"Durées valides: {list(DUREES_CONTRAT)}"
        )
    return entry["facteur"]


def resolve_cee_params(params: CEEParams) -> CEEParams:
    """
    Retourne une copie des paramètres avec coefficient_activite et facteur_f
    relus depuis les tables.

    Raises:
        ConfigurationError si le profil ou la durée est inconnu
    """
    return params.model_copy(update={
        "coefficient_activite": get_coefficient_activite(params.profil_fonctionnement),
        "facteur_f": get_facteur_duree(params.duree_contrat),
    })


def calculate_cee(params: CEEParams) -> CEEResult:
    """
    Calcule les kWh cumac et la prime estimée.

    Le coefficient et le facteur sont TOUJOURS relus depuis les tables,
    les valeurs dérivées portées par params ne sont pas utilisées.
    """
    coefficient = get_coefficient_activite(params.profil_fonctionnement)
    facteur = get_facteur_duree(params.duree_contrat)

    kwh_cumac = int(round_half_up(
        CEE_CONSTANTE_KWH * coefficient * params.puissance_nominale * facteur
    ))
    prime_estimee = round2(kwh_cumac * params.tarif_kwh)

    return CEEResult(kwh_cumac=kwh_cumac, prime_estimee=prime_estimee)


def build_cee_calculation(params: CEEParams, result: CEEResult) -> Dict[str, Any]:
    """Métadonnées CEE conservées avec le devis (affichage / PDF)"""
    return {
        "formule": CEE_FORMULE,
        "profil_fonctionnement": params.profil_fonctionnement,
        "puissance_nominale": params.puissance_nominale,
        "duree_contrat": params.duree_contrat,
        "coefficient_activite": params.coefficient_activite,
        "facteur_f": params.facteur_f,
        "kwh_cumac": result.kwh_cumac,
        "tarif_kwh": params.tarif_kwh,
        "prime_estimee": result.prime_estimee,
        "operateur_nom": CEE_OPERATEUR,
    }


def list_cee_options() -> Dict[str, Any]:
    """Tables exposées au formulaire de devis"""
    return {
        "profils": [
            {"value": key, "label": p["label"], "coefficient": p["coefficient"]}
            for key, p in PROFILS_FONCTIONNEMENT.items()
        ],
        "durees": [
            {"value": key, "label": d["label"], "facteur": d["facteur"]}
            for key, d in DUREES_CONTRAT.items()
        ],
        "tarif_defaut": CEE_TARIF_DEFAUT,
        "formule": CEE_FORMULE,
    }
