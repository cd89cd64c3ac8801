"""
OXA CRM - Historique des devis

Journal en ajout seul (devis_history) + commentaires (devis_comments).
Un échec d'écriture dans l'historique est journalisé mais n'annule jamais
l'action principale, déjà persistée.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from config import now_iso
from models.history import Actor, HistoryActionType
from services.persistence import RemoteError, Store

logger = logging.getLogger("devis_history")


async def add_history_entry(
    store: Store,
    devis_id: str,
    actor: Actor,
    action_type: HistoryActionType,
    description: str,
    details: Optional[Dict[str, Any]] = None,
    commentaire: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Ajoute une entrée dans l'historique d'un devis.

    Returns:
        L'entrée créée, ou None si l'écriture a échoué
    """
    entry = {
        "devis_id": devis_id,
        "user_id": actor.user_id,
        "user_name": actor.user_name,
        "action_type": HistoryActionType(action_type).value,
        "description": description,
        "details": json.dumps(details, ensure_ascii=False) if details else None,
        "commentaire": commentaire or None,
        "timestamp": now_iso(),
    }
    try:
        return await store.insert("devis_history", entry)
    except RemoteError as e:
        logger.error(f"[HISTORY] Erreur ajout historique devis {devis_id}: {e}")
        return None


async def log_devis_creation(store: Store, devis_id: str, actor: Actor, client_name: str,
                             commentaire: Optional[str] = None):
    return await add_history_entry(
        store, devis_id, actor, HistoryActionType.CREATION,
        f"Devis créé pour {client_name}",
        {"client": client_name},
        commentaire,
    )


async def log_devis_modification(store: Store, devis_id: str, actor: Actor, modifications: List[str],
                                 commentaire: Optional[str] = None):
    return await add_history_entry(
        store, devis_id, actor, HistoryActionType.MODIFICATION,
        f"Devis modifié : {', '.join(modifications)}",
        {"modifications": modifications},
        commentaire,
    )


async def log_ligne_ajoutee(store: Store, devis_id: str, actor: Actor, designation: str, zone: str,
                            commentaire: Optional[str] = None):
    return await add_history_entry(
        store, devis_id, actor, HistoryActionType.AJOUT_LIGNE,
        f"Ligne ajoutée dans {zone}",
        {"designation": designation, "zone": zone},
        commentaire,
    )


async def log_ligne_supprimee(store: Store, devis_id: str, actor: Actor, designation: str, zone: str,
                              commentaire: Optional[str] = None):
    return await add_history_entry(
        store, devis_id, actor, HistoryActionType.SUPPRESSION_LIGNE,
        f"Ligne supprimée de {zone}",
        {"designation": designation, "zone": zone},
        commentaire,
    )


async def log_changement_statut(store: Store, devis_id: str, actor: Actor, ancien_statut: str,
                                nouveau_statut: str, commentaire: Optional[str] = None):
    return await add_history_entry(
        store, devis_id, actor, HistoryActionType.CHANGEMENT_STATUT,
        f'Statut changé de "{ancien_statut}" à "{nouveau_statut}"',
        {"ancienStatut": ancien_statut, "nouveauStatut": nouveau_statut},
        commentaire,
    )


async def log_commentaire(store: Store, devis_id: str, actor: Actor, commentaire: str):
    return await add_history_entry(
        store, devis_id, actor, HistoryActionType.COMMENTAIRE,
        "Commentaire ajouté",
        None,
        commentaire,
    )


async def add_comment(store: Store, devis_id: str, actor: Actor, commentaire: str) -> Dict[str, Any]:
    """
    Ajoute un commentaire (devis_comments) puis la trace dans l'historique.

    Raises:
        RemoteError si le commentaire n'a pas pu être enregistré
    """
    comment = await store.insert("devis_comments", {
        "devis_id": devis_id,
        "user_id": actor.user_id,
        "user_name": actor.user_name,
        "commentaire": commentaire.strip(),
    })
    await log_commentaire(store, devis_id, actor, commentaire)
    return comment


async def get_devis_history(store: Store, devis_id: str) -> List[Dict[str, Any]]:
    """Historique d'un devis, plus récent en premier"""
    return await store.fetch_all("devis_history", {"devis_id": devis_id}, sort=("timestamp", -1))


async def get_devis_comments(store: Store, devis_id: str) -> List[Dict[str, Any]]:
    return await store.fetch_all("devis_comments", {"devis_id": devis_id}, sort=("created_at", -1))
