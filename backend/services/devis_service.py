"""
OXA CRM - Service devis

Création / mise à jour / suppression / liste des devis.
Toute écriture passe par: validation → recalcul complet (DevisEditor) →
persistance → historique.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from config import generate_document_number, round2, today_iso
from models.devis import (
    CEEMode,
    DevisDraft,
    DevisType,
    parse_devis,
)
from models.history import Actor
from services.cee_calculator import build_cee_calculation
from services.devis_editor import DevisEditor
from services.devis_history import (
    log_devis_creation,
    log_devis_modification,
    log_ligne_ajoutee,
    log_ligne_supprimee,
)
from services.devis_totals import TVA_TAUX_DEVIS, check_totals_invariants
from services.devis_validation import ensure_valid, validate_devis
from services.persistence import Store

logger = logging.getLogger("devis_service")

CEE_FIELDS = [
    "cee_kwh_cumac",
    "cee_prix_unitaire",
    "cee_montant_total",
    "reste_a_payer_ht",
    "cee_calculation",
    "cee_integration",
]

# Champs comparés pour le détail "modification" de l'historique
TRACKED_FIELDS = {
    "client_id": "client",
    "type": "type",
    "date_devis": "date",
    "objet": "objet",
    "description_operation": "description",
    "remarques": "remarques",
    "total_ht": "montant HT",
    "cee_kwh_cumac": "kWh cumac",
    "cee_montant_total": "prime CEE",
    "modalites_paiement": "modalités de paiement",
    "garantie": "garantie",
    "penalites": "pénalités",
    "clause_juridique": "clause juridique",
    "delais": "délais",
}


def generate_numero(now: Optional[datetime] = None) -> str:
    """DEV-<année>-<6 derniers chiffres de l'horodatage ms>"""
    return generate_document_number("DEV", now)


def to_public(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Forme typée d'un devis (les champs CEE n'apparaissent que sur un devis CEE)"""
    return parse_devis(doc).model_dump(mode="json")


def build_document(draft: DevisDraft, editor: DevisEditor) -> Dict[str, Any]:
    """
    Construit le document persistable à partir de la saisie et de l'état
    recalculé de l'éditeur (jamais à partir de totaux fournis par le client).
    """
    totals = editor.totals
    doc = {
        "type": draft.type.value,
        "client_id": draft.client_id,
        "date_devis": draft.date_devis or today_iso(),
        "objet": draft.objet,
        "description_operation": draft.description_operation,
        "remarques": draft.remarques,
        "lignes_data": editor.to_lignes_data(),
        "total_ht": totals.total_ht,
        "tva_taux": TVA_TAUX_DEVIS,
        "total_tva": totals.total_tva,
        "total_ttc": totals.total_ttc,
        "marge_totale": editor.marge_totale,
        "modalites_paiement": draft.modalites_paiement,
        "garantie": draft.garantie,
        "penalites": draft.penalites,
        "clause_juridique": draft.clause_juridique,
        "delais": draft.delais,
    }

    if draft.type == DevisType.CEE:
        doc.update({
            "cee_kwh_cumac": editor.cee_result.kwh_cumac,
            "cee_prix_unitaire": editor.cee_params.tarif_kwh,
            "cee_montant_total": editor.cee_result.prime_estimee,
            "reste_a_payer_ht": totals.net_a_payer,
            "cee_calculation": build_cee_calculation(editor.cee_params, editor.cee_result),
            "cee_integration": {
                "mode": editor.cee_mode.value,
                "afficher_bloc": editor.cee_mode == CEEMode.DEDUCTION,
            },
        })
    else:
        for field in CEE_FIELDS:
            doc[field] = None

    check_totals_invariants(doc)
    return doc


async def _validate(store: Store, draft: DevisDraft) -> None:
    """Contrôles locaux d'abord (aucun appel si la saisie est invalide), puis existence du client"""
    ensure_valid(draft)
    known_client_ids: Set[str] = {c["id"] for c in await store.fetch_all("clients")}
    ensure_valid(draft, known_client_ids)


async def _client_name(store: Store, client_id: Optional[str]) -> str:
    clients = await store.fetch_all("clients", {"id": client_id}, limit=1)
    if not clients:
        return "client inconnu"
    return clients[0].get("entreprise") or clients[0].get("nom") or "client inconnu"


# ════════════════════════════════════════════════════════════════════════════
# LECTURE
# ════════════════════════════════════════════════════════════════════════════

async def get_devis(store: Store, devis_id: str) -> Dict[str, Any]:
    return to_public(await store.fetch_one("devis", devis_id))


async def list_devis(
    store: Store,
    statut: Optional[str] = None,
    type: Optional[str] = None,
    client_id: Optional[str] = None,
    search: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Liste des devis, plus récents en premier.
    search: numéro, objet, nom ou entreprise du client (insensible à la casse)
    """
    query = {}
    if statut:
        query["statut"] = statut
    if type:
        query["type"] = type
    if client_id:
        query["client_id"] = client_id

    rows = await store.fetch_all("devis", query, sort=("created_at", -1))

    if search:
        needle = search.strip().lower()
        clients = {c["id"]: c for c in await store.fetch_all("clients")}

        def haystack(row):
            client = clients.get(row.get("client_id"), {})
            return " ".join([
                row.get("numero") or "",
                row.get("objet") or "",
                client.get("nom") or "",
                client.get("entreprise") or "",
            ]).lower()

        rows = [row for row in rows if needle in haystack(row)]

    return [to_public(row) for row in rows]


# ════════════════════════════════════════════════════════════════════════════
# ÉCRITURE
# ════════════════════════════════════════════════════════════════════════════

def preview_devis(draft: DevisDraft) -> Dict[str, Any]:
    """Recalcul sans persistance (affichage en cours de saisie)"""
    editor = DevisEditor.from_draft(draft)
    return {
        "zones": [zone.model_dump() for zone in editor.zones],
        "totals": editor.totals.model_dump(),
        "cee_params": editor.cee_params.model_dump(),
        "cee_result": editor.cee_result.model_dump(),
        "marge_totale": editor.marge_totale,
        "errors": validate_devis(draft),
    }


async def create_devis(
    store: Store,
    draft: DevisDraft,
    actor: Actor,
    commentaire: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Raises:
        ValidationFailed: aucune écriture n'est tentée
        RemoteError: échec de la persistance
    """
    await _validate(store, draft)

    editor = DevisEditor.from_draft(draft)
    doc = build_document(draft, editor)
    doc.update({
        "numero": generate_numero(),
        "statut": draft.statut.value,
        "commercial_id": actor.user_id,
        "date_creation": today_iso(),
    })

    created = await store.insert("devis", doc)
    logger.info(f"[DEVIS] Created {created['numero']} ({created['type']}) total_ht={created['total_ht']}")

    await log_devis_creation(store, created["id"], actor, await _client_name(store, draft.client_id), commentaire)
    return to_public(created)


def _diff_fields(before: Dict[str, Any], after: Dict[str, Any]) -> List[str]:
    changes = []
    for field, label in TRACKED_FIELDS.items():
        old, new = before.get(field), after.get(field)
        if isinstance(old, (int, float)) and isinstance(new, (int, float)):
            if round2(old) != round2(new):
                changes.append(label)
        elif (old or None) != (new or None):
            changes.append(label)
    if _line_signature(before) != _line_signature(after) and "montant HT" not in changes:
        changes.append("lignes")
    return changes


def _line_signature(doc: Dict[str, Any]):
    return [
        (row.get("id"), row.get("description"), row.get("zone"), row.get("quantite"),
         row.get("prix_unitaire"), row.get("prix_achat"), row.get("tva"))
        for row in doc.get("lignes_data") or []
    ]


async def update_devis(
    store: Store,
    devis_id: str,
    draft: DevisDraft,
    actor: Actor,
    expected_revision: int,
    commentaire: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Remplace le contenu d'un devis. Le statut n'est pas modifié ici
    (voir services/devis_state_machine.py).

    Raises:
        ValidationFailed, NotFoundError, ConflictError (révision périmée), RemoteError
    """
    ensure_valid(draft)
    before = await store.fetch_one("devis", devis_id)
    await _validate(store, draft)

    editor = DevisEditor.from_draft(draft)
    patch = build_document(draft, editor)

    updated = await store.update("devis", devis_id, patch, expected_revision=expected_revision)
    logger.info(f"[DEVIS] Updated {updated.get('numero')} rev {updated.get('revision')}")

    old_lines = {row.get("id"): row for row in before.get("lignes_data") or []}
    new_lines = {row.get("id"): row for row in updated.get("lignes_data") or []}

    for line_id, row in new_lines.items():
        if line_id not in old_lines:
            await log_ligne_ajoutee(store, devis_id, actor, row.get("description", ""), row.get("zone", ""))
    for line_id, row in old_lines.items():
        if line_id not in new_lines:
            await log_ligne_supprimee(store, devis_id, actor, row.get("description", ""), row.get("zone", ""))

    modifications = _diff_fields(before, updated)
    if modifications or commentaire:
        await log_devis_modification(store, devis_id, actor, modifications or ["aucun champ"], commentaire)

    return to_public(updated)


async def delete_devis(store: Store, devis_id: str, actor: Actor) -> None:
    devis = await store.fetch_one("devis", devis_id)
    await store.delete("devis", devis_id)
    logger.info(f"[DEVIS] Deleted {devis.get('numero')} by {actor.user_id}")
