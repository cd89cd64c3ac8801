"""
OXA CRM - Validation des devis avant enregistrement

Les erreurs sont COLLECTÉES (dict champ -> message), jamais levées pendant la
saisie. Un devis avec des erreurs n'est jamais envoyé à la persistance et les
données saisies restent intactes pour correction.
"""

from typing import Dict, Optional, Set

from models.devis import DevisDraft, DevisType
from services.cee_calculator import ConfigurationError, calculate_cee


class ValidationFailed(Exception):
    """Soumission refusée localement: au moins une erreur de champ"""

    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        super().__init__(f"{len(errors)} erreur(s) de validation: {sorted(errors)}")


def validate_devis(draft: DevisDraft, known_client_ids: Optional[Set[str]] = None) -> Dict[str, str]:
    """
    Vérifie un devis saisi.

    Args:
        draft: données du générateur
        known_client_ids: si fourni, le client doit en faire partie

    Returns:
        Dict des erreurs par champ (vide si le devis est valide)
    """
    errors: Dict[str, str] = {}

    if not draft.client_id:
        errors["client_id"] = "Veuillez sélectionner un client"
    elif known_client_ids is not None and draft.client_id not in known_client_ids:
        errors["client_id"] = "Client inconnu"

    if not draft.objet.strip():
        errors["objet"] = "L'objet du devis est obligatoire"

    if not draft.zones:
        errors["zones"] = "Veuillez ajouter au moins une zone"

    if not any(zone.lignes for zone in draft.zones):
        errors["lignes"] = "Veuillez ajouter au moins une ligne de prestation"

    has_invalid_lines = False
    for zone in draft.zones:
        for index, ligne in enumerate(zone.lignes, start=1):
            prefix = f"ligne_{zone.id}_{ligne.id}"
            where = f'Ligne {index} de la zone "{zone.nom}"'
            if not ligne.designation.strip():
                errors[f"{prefix}_designation"] = f"{where} : la désignation est obligatoire"
                has_invalid_lines = True
            if ligne.quantite <= 0:
                errors[f"{prefix}_quantite"] = f"{where} : la quantité doit être supérieure à 0"
                has_invalid_lines = True
            if ligne.prix_unitaire < 0:
                errors[f"{prefix}_prix"] = f"{where} : le prix unitaire ne peut pas être négatif"
                has_invalid_lines = True
            if ligne.prix_achat < 0:
                errors[f"{prefix}_prix_achat"] = f"{where} : le prix d'achat ne peut pas être négatif"
                has_invalid_lines = True
            if not 0 <= ligne.tva <= 100:
                errors[f"{prefix}_tva"] = f"{where} : le taux de TVA doit être compris entre 0 et 100"
                has_invalid_lines = True

    if has_invalid_lines:
        errors["lignes_validation"] = "Certaines lignes contiennent des erreurs"

    if draft.type == DevisType.CEE:
        errors.update(validate_cee(draft))

    return errors


def validate_cee(draft: DevisDraft) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    params = draft.cee_params

    if params.puissance_nominale < 0:
        errors["cee_puissance_nominale"] = "La puissance nominale ne peut pas être négative"
    if params.tarif_kwh < 0:
        errors["cee_tarif_kwh"] = "Le tarif CEE ne peut pas être négatif"
    if errors:
        return errors

    try:
        result = calculate_cee(params)
    except ConfigurationError as e:
        errors["cee_configuration"] = str(e)
        return errors

    if params.puissance_nominale > 0 and result.kwh_cumac == 0:
        errors["cee"] = "Veuillez effectuer le calcul CEE ou mettre la puissance à 0"
    if result.prime_estimee < 0:
        errors["cee_prime"] = "La prime CEE ne peut pas être négative"

    return errors


def ensure_valid(draft: DevisDraft, known_client_ids: Optional[Set[str]] = None) -> None:
    """Lève ValidationFailed si le devis contient des erreurs"""
    errors = validate_devis(draft, known_client_ids)
    if errors:
        raise ValidationFailed(errors)
