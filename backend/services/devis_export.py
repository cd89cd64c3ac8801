"""
OXA CRM - Export d'un devis (données pour le générateur PDF)

Le rendu lui-même n'est pas fait ici: on produit un instantané complet et
vérifié (montants cohérents) que le générateur PDF met en page.
Seules les zones marquées visible_pdf sont exportées.
"""

from typing import Any, Dict, Mapping, Optional

from config import now_iso, round2
from models.devis import DevisType, STATUS_LABELS
from services.cee_calculator import CEE_FORMULE, CEE_OPERATEUR
from services.devis_editor import zones_from_lignes_data
from services.devis_totals import check_totals_invariants


def format_eur(value: Optional[float]) -> str:
    """Montant au format français: 12 345,60 €"""
    amount = round2(value or 0)
    text = f"{abs(amount):,.2f}".replace(",", " ").replace(".", ",")
    return f"{'-' if amount < 0 else ''}{text} €"


def build_export_snapshot(devis: Mapping[str, Any], client: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """
    Raises:
        TotalsInvariantError si les montants stockés sont incohérents
    """
    check_totals_invariants(devis)

    is_cee = devis.get("type") == DevisType.CEE.value and (devis.get("cee_kwh_cumac") or 0) > 0

    zones = []
    for zone in zones_from_lignes_data(devis.get("lignes_data") or []):
        if not zone.visible_pdf:
            continue
        lignes = [
            {
                "designation": ligne.designation,
                "quantite": ligne.quantite,
                "prix_unitaire": format_eur(ligne.prix_unitaire),
                "total": format_eur(ligne.quantite * ligne.prix_unitaire),
                "tva": ligne.tva,
                "remarques": ligne.remarques,
            }
            for ligne in zone.lignes
        ]
        zones.append({
            "nom": zone.nom,
            "lignes": lignes,
            "sous_total": format_eur(sum(l.quantite * l.prix_unitaire for l in zone.lignes)),
        })

    snapshot = {
        "numero": devis.get("numero"),
        "type": devis.get("type"),
        "statut": STATUS_LABELS.get(devis.get("statut"), devis.get("statut")),
        "date_devis": devis.get("date_devis"),
        "objet": devis.get("objet"),
        "description_operation": devis.get("description_operation"),
        "remarques": devis.get("remarques"),
        "client": dict(client) if client else None,
        "zones": zones,
        "totaux": {
            "total_ht": format_eur(devis.get("total_ht")),
            "tva_taux": devis.get("tva_taux"),
            "total_tva": format_eur(devis.get("total_tva")),
            "total_ttc": format_eur(devis.get("total_ttc")),
        },
        "conditions": {
            "modalites_paiement": devis.get("modalites_paiement"),
            "garantie": devis.get("garantie"),
            "penalites": devis.get("penalites"),
            "clause_juridique": devis.get("clause_juridique"),
            "delais": devis.get("delais"),
        },
        "is_cee": is_cee,
        "cee": None,
        "generated_at": now_iso(),
    }

    if is_cee:
        calculation = devis.get("cee_calculation") or {}
        integration = devis.get("cee_integration") or {}
        deduction = integration.get("mode", "deduction") == "deduction"
        snapshot["cee"] = {
            "formule": calculation.get("formule", CEE_FORMULE),
            "operateur": calculation.get("operateur_nom", CEE_OPERATEUR),
            "kwh_cumac": devis.get("cee_kwh_cumac"),
            "prix_unitaire": devis.get("cee_prix_unitaire"),
            "prime": format_eur(devis.get("cee_montant_total")),
            "mode": integration.get("mode", "deduction"),
            "afficher_bloc": integration.get("afficher_bloc", deduction),
            "reste_a_payer": format_eur(devis.get("reste_a_payer_ht")),
        }

    return snapshot
