"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  OXA CRM - Devis State Machine                                               ║
║                                                                              ║
║  brouillon → envoye → {accepte, refuse, expire}                              ║
║                                                                              ║
║  Sélecteur LIBRE: toute transition entre deux statuts distincts est          ║
║  autorisée (brouillon → accepte directement, etc.). La table des             ║
║  transitions est explicite pour porter les effets de bord.                   ║
║                                                                              ║
║  RÈGLES:                                                                     ║
║  - Entrée dans "accepte" (depuis un autre statut) → demande de conversion    ║
║    (commande ou facture), UNE seule fois, rien n'est mémorisé si refusée     ║
║  - Le statut n'est jamais considéré changé avant confirmation de la          ║
║    persistance (RemoteError → statut inchangé)                               ║
║  - refuse / expire: terminaux (aucune action métier attachée)                ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from config import generate_document_number, round2, today_iso
from models.commande import CommandeStatus, InstallationPlanning
from models.devis import DevisStatus, STATUS_LABELS
from models.facture import FactureStatus
from models.history import Actor, HistoryActionType
from services.devis_history import add_history_entry, log_changement_statut
from services.devis_totals import TVA_TAUX_DEVIS
from services.persistence import Store

logger = logging.getLogger("devis_state_machine")


class SideEffect(str, Enum):
    CONVERSION = "conversion"


# ════════════════════════════════════════════════════════════════════════════
# TRANSITIONS
# ════════════════════════════════════════════════════════════════════════════

def _build_transitions() -> Dict[Tuple[str, str], Optional[SideEffect]]:
    table = {}
    for src in DevisStatus:
        for dst in DevisStatus:
            if src == dst:
                continue
            side_effect = SideEffect.CONVERSION if dst == DevisStatus.ACCEPTE else None
            table[(src.value, dst.value)] = side_effect
    return table


DEVIS_TRANSITIONS = _build_transitions()

TERMINAL_STATUSES = {DevisStatus.ACCEPTE.value, DevisStatus.REFUSE.value, DevisStatus.EXPIRE.value}

CONVERSION_OPTIONS = ["commande", "facture"]

FACTURE_DELAI_PAIEMENT_JOURS = 30


class InvalidTransitionError(Exception):
    """Statut inconnu (hors énumération)"""
    pass


class ConversionError(Exception):
    """Conversion impossible (devis non accepté, déjà converti)"""
    pass


def get_transition_side_effect(from_status: str, to_status: str) -> Optional[SideEffect]:
    key = (from_status, to_status)
    if key not in DEVIS_TRANSITIONS:
        raise InvalidTransitionError(
            f"INVALID TRANSITION: '{from_status}' -> '{to_status}'. "
            f"Statuts valides: {[s.value for s in DevisStatus]}"
        )
    return DEVIS_TRANSITIONS[key]


def allowed_next_statuses(from_status: str) -> List[str]:
    return [dst for (src, dst) in DEVIS_TRANSITIONS if src == from_status]


class ConversionRequest(BaseModel):
    """Proposition de conversion présentée après acceptation"""
    devis_id: str
    numero: str
    client_id: str
    total_ht: float
    total_ttc: float
    options: List[str] = CONVERSION_OPTIONS


class StatusChangeResult(BaseModel):
    devis: Dict[str, Any]
    previous_status: str
    changed: bool
    terminal: bool = False
    conversion: Optional[ConversionRequest] = None


# ════════════════════════════════════════════════════════════════════════════
# CHANGEMENT DE STATUT
# ════════════════════════════════════════════════════════════════════════════

async def change_devis_status(
    store: Store,
    devis_id: str,
    new_status: str,
    actor: Actor,
    commentaire: Optional[str] = None,
    expected_revision: Optional[int] = None,
) -> StatusChangeResult:
    """
    Change le statut d'un devis.

    Returns:
        StatusChangeResult; conversion est renseigné uniquement pour une
        entrée dans "accepte"

    Raises:
        RemoteError (statut inchangé), InvalidTransitionError
    """
    new_status = DevisStatus(new_status).value
    devis = await store.fetch_one("devis", devis_id)
    current_status = devis.get("statut")

    if current_status == new_status:
        return StatusChangeResult(
            devis=devis,
            previous_status=current_status,
            changed=False,
            terminal=current_status in TERMINAL_STATUSES,
        )

    side_effect = get_transition_side_effect(current_status, new_status)

    updated = await store.update(
        "devis", devis_id, {"statut": new_status}, expected_revision=expected_revision
    )

    logger.info(
        f"[STATE_MACHINE] Devis {devis.get('numero')} {current_status} -> {new_status} "
        f"by {actor.user_id}"
    )

    await log_changement_statut(
        store, devis_id, actor,
        STATUS_LABELS.get(current_status, current_status),
        STATUS_LABELS.get(new_status, new_status),
        commentaire,
    )

    conversion = None
    if side_effect == SideEffect.CONVERSION:
        conversion = ConversionRequest(
            devis_id=updated["id"],
            numero=updated.get("numero", ""),
            client_id=updated.get("client_id", ""),
            total_ht=updated.get("total_ht", 0),
            total_ttc=updated.get("total_ttc", 0),
        )

    return StatusChangeResult(
        devis=updated,
        previous_status=current_status,
        changed=True,
        terminal=new_status in TERMINAL_STATUSES,
        conversion=conversion,
    )


# ════════════════════════════════════════════════════════════════════════════
# CONVERSION
# ════════════════════════════════════════════════════════════════════════════

def _ensure_convertible(devis: Dict[str, Any]):
    if devis.get("statut") != DevisStatus.ACCEPTE.value:
        raise ConversionError(
            f"Le devis {devis.get('numero')} doit être accepté pour être converti "
            f"(statut actuel: {devis.get('statut')})"
        )


async def convert_to_commande(
    store: Store,
    devis: Dict[str, Any],
    actor: Actor,
    planning: Optional[InstallationPlanning] = None,
) -> Dict[str, Any]:
    """
    Crée une commande depuis un devis accepté (client, totaux, référence devis).
    Statut "programmee" si une date d'installation est fournie, sinon "a_programmer".
    """
    _ensure_convertible(devis)

    existing = await store.fetch_all("commandes", {"devis_id": devis["id"]}, limit=1)
    if existing:
        raise ConversionError(
            f"Le devis {devis.get('numero')} a déjà été converti en commande {existing[0].get('numero')}"
        )

    planning = planning or InstallationPlanning()
    client = (await store.fetch_all("clients", {"id": devis.get("client_id")}, limit=1) or [{}])[0]

    statut = CommandeStatus.PROGRAMMEE if planning.date_installation_prevue else CommandeStatus.A_PROGRAMMER

    row = planning.model_dump()
    row.update({
        "numero": generate_document_number("CMD"),
        "client_id": devis.get("client_id"),
        "devis_id": devis["id"],
        "devis_numero": devis.get("numero"),
        "statut": statut.value,
        "date_commande": today_iso(),
        "date_installation_reelle": None,
        "total_ht": devis.get("total_ht", 0),
        "total_ttc": devis.get("total_ttc", 0),
        "temps_reel": 0,
        "photos": [],
        "documents": [],
    })
    row["adresse_installation"] = row.get("adresse_installation") or client.get("adresse")
    row["contact_site"] = row.get("contact_site") or client.get("nom")
    row["telephone_contact"] = row.get("telephone_contact") or client.get("telephone")

    commande = await store.insert("commandes", row)

    logger.info(f"[STATE_MACHINE] Devis {devis.get('numero')} converti en commande {commande['numero']}")
    await add_history_entry(
        store, devis["id"], actor, HistoryActionType.MODIFICATION,
        f"Devis converti en commande {commande['numero']}",
        {"commande_id": commande["id"]},
    )
    return commande


async def convert_to_facture(
    store: Store,
    devis: Dict[str, Any],
    actor: Actor,
    date_echeance: Optional[str] = None,
) -> Dict[str, Any]:
    """Crée une facture en attente de paiement depuis un devis accepté"""
    _ensure_convertible(devis)

    existing = await store.fetch_all("factures", {"devis_id": devis["id"]}, limit=1)
    if existing:
        raise ConversionError(
            f"Le devis {devis.get('numero')} a déjà été facturé ({existing[0].get('numero')})"
        )

    echeance = date_echeance or (date.today() + timedelta(days=FACTURE_DELAI_PAIEMENT_JOURS)).isoformat()

    montant_du = devis.get("reste_a_payer_ht")
    if montant_du is None:
        montant_du = devis.get("total_ttc", 0)

    facture = await store.insert("factures", {
        "numero": generate_document_number("FAC"),
        "client_id": devis.get("client_id"),
        "devis_id": devis["id"],
        "devis_numero": devis.get("numero"),
        "total_ht": devis.get("total_ht", 0),
        "tva_taux": devis.get("tva_taux", TVA_TAUX_DEVIS),
        "total_tva": devis.get("total_tva", 0),
        "total_ttc": devis.get("total_ttc", 0),
        "montant_du": round2(montant_du),
        "statut": FactureStatus.EN_ATTENTE.value,
        "date_facture": today_iso(),
        "date_echeance": echeance,
        "date_paiement": None,
    })

    logger.info(f"[STATE_MACHINE] Devis {devis.get('numero')} converti en facture {facture['numero']}")
    await add_history_entry(
        store, devis["id"], actor, HistoryActionType.MODIFICATION,
        f"Devis converti en facture {facture['numero']}",
        {"facture_id": facture["id"]},
    )
    return facture
