"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  OXA CRM - Routes Devis                                                      ║
║                                                                              ║
║  CRUD + statut + conversion + historique + export                            ║
║  Les totaux sont TOUJOURS recalculés côté serveur depuis les lignes          ║
║  Erreurs métier (validation, conflit, persistance) mappées dans server.py    ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
from pydantic import BaseModel

from models.commande import InstallationPlanning
from models.devis import (
    CEEParams,
    ConversionTarget,
    DevisDraft,
    DevisUpdateRequest,
    StatusChangeRequest,
    VALID_DEVIS_STATUSES,
    VALID_DEVIS_TYPES,
)
from models.history import Actor, CommentCreate
from routes.actor import get_actor
from services.cee_calculator import build_cee_calculation, calculate_cee, list_cee_options, resolve_cee_params
from services.devis_export import build_export_snapshot
from services.devis_history import add_comment, get_devis_comments, get_devis_history
from services.devis_service import (
    create_devis,
    delete_devis,
    get_devis,
    list_devis,
    preview_devis,
    to_public,
    update_devis,
)
from services.devis_state_machine import (
    ConversionError,
    change_devis_status,
    convert_to_commande,
    convert_to_facture,
)
from services.persistence import Store, get_store

router = APIRouter(prefix="/devis", tags=["Devis"])


class DevisCreateRequest(DevisDraft):
    commentaire: Optional[str] = None


class ConversionRequestBody(BaseModel):
    target: ConversionTarget
    planning: Optional[InstallationPlanning] = None
    date_echeance: Optional[str] = None


# ==================== CEE ====================

@router.get("/cee/profiles")
async def get_cee_profiles():
    """Profils de fonctionnement et durées de contrat disponibles"""
    return list_cee_options()


@router.post("/cee/calculate")
async def calculate_cee_endpoint(params: CEEParams):
    """Calcul CEE IND-UT-134 (sans persistance)"""
    resolved = resolve_cee_params(params)
    result = calculate_cee(resolved)
    return {
        "result": result.model_dump(),
        "calculation": build_cee_calculation(resolved, result),
    }


@router.post("/preview")
async def preview_endpoint(draft: DevisDraft):
    """Recalcul des lignes, totaux et prime d'un devis en cours de saisie"""
    return preview_devis(draft)


# ==================== CRUD ====================

@router.get("")
async def list_devis_endpoint(
    statut: Optional[str] = Query(None, description="brouillon, envoye, accepte, refuse, expire"),
    type: Optional[str] = Query(None),
    client_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Numéro, objet ou client"),
    store: Store = Depends(get_store),
):
    if statut and statut not in VALID_DEVIS_STATUSES:
        raise HTTPException(status_code=400, detail=f"Statut invalide. Valeurs: {VALID_DEVIS_STATUSES}")
    if type and type not in VALID_DEVIS_TYPES:
        raise HTTPException(status_code=400, detail=f"Type invalide. Valeurs: {VALID_DEVIS_TYPES}")

    devis = await list_devis(store, statut=statut, type=type, client_id=client_id, search=search)
    return {"devis": devis, "count": len(devis), "demo": store.demo}


@router.post("")
async def create_devis_endpoint(
    data: DevisCreateRequest,
    store: Store = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    draft = DevisDraft.model_validate(data.model_dump(exclude={"commentaire"}))
    devis = await create_devis(store, draft, actor, data.commentaire)
    return {"success": True, "devis": devis}


@router.get("/{devis_id}")
async def get_devis_endpoint(devis_id: str, store: Store = Depends(get_store)):
    return await get_devis(store, devis_id)


@router.put("/{devis_id}")
async def update_devis_endpoint(
    devis_id: str,
    data: DevisUpdateRequest,
    commentaire: Optional[str] = Query(None),
    store: Store = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    devis = await update_devis(store, devis_id, data.draft, actor, data.expected_revision, commentaire)
    return {"success": True, "devis": devis}


@router.delete("/{devis_id}")
async def delete_devis_endpoint(
    devis_id: str,
    store: Store = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    await delete_devis(store, devis_id, actor)
    return {"success": True}


# ==================== STATUT & CONVERSION ====================

@router.post("/{devis_id}/status")
async def change_status_endpoint(
    devis_id: str,
    data: StatusChangeRequest,
    store: Store = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    """
    Change le statut. Si le devis devient "accepte", la réponse contient
    une proposition de conversion (commande ou facture) à confirmer via /convert.
    """
    result = await change_devis_status(store, devis_id, data.statut, actor, data.commentaire)
    return {
        "success": True,
        "changed": result.changed,
        "previous_status": result.previous_status,
        "terminal": result.terminal,
        "devis": to_public(result.devis),
        "conversion": result.conversion.model_dump() if result.conversion else None,
    }


@router.post("/{devis_id}/convert")
async def convert_endpoint(
    devis_id: str,
    data: ConversionRequestBody,
    store: Store = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    devis = await store.fetch_one("devis", devis_id)
    try:
        if data.target == ConversionTarget.COMMANDE:
            commande = await convert_to_commande(store, devis, actor, data.planning)
            return {"success": True, "commande": commande}
        facture = await convert_to_facture(store, devis, actor, data.date_echeance)
        return {"success": True, "facture": facture}
    except ConversionError as e:
        raise HTTPException(status_code=409, detail=str(e))


# ==================== HISTORIQUE ====================

@router.get("/{devis_id}/history")
async def history_endpoint(devis_id: str, store: Store = Depends(get_store)):
    history = await get_devis_history(store, devis_id)
    return {"history": history, "count": len(history)}


@router.get("/{devis_id}/comments")
async def list_comments_endpoint(devis_id: str, store: Store = Depends(get_store)):
    comments = await get_devis_comments(store, devis_id)
    return {"comments": comments, "count": len(comments)}


@router.post("/{devis_id}/comments")
async def add_comment_endpoint(
    devis_id: str,
    data: CommentCreate,
    store: Store = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    if not data.commentaire.strip():
        raise HTTPException(status_code=400, detail="Commentaire vide")
    await store.fetch_one("devis", devis_id)
    comment = await add_comment(store, devis_id, actor, data.commentaire)
    return {"success": True, "comment": comment}


# ==================== EXPORT ====================

@router.get("/{devis_id}/export")
async def export_endpoint(devis_id: str, store: Store = Depends(get_store)):
    """Données complètes pour le générateur PDF"""
    devis = await get_devis(store, devis_id)
    clients = await store.fetch_all("clients", {"id": devis.get("client_id")}, limit=1)
    return build_export_snapshot(devis, clients[0] if clients else None)
