"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  OXA CRM - Routes Commandes (chantiers d'installation)                       ║
║                                                                              ║
║  Liste via la vue enrichie (client + numéro de devis)                        ║
║  Création manuelle: statut "programmee" si date prévue, sinon "a_programmer" ║
║  TTC par défaut = HT × 1.2                                                   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
import logging

from config import generate_document_number, round2, today_iso
from models.commande import (
    CommandeCreate,
    CommandeStatus,
    CommandeStatusUpdate,
    CommandeUpdate,
    VALID_COMMANDE_STATUSES,
)
from services.devis_totals import TVA_RATE_DEVIS
from services.persistence import Store, get_store

logger = logging.getLogger("commandes")

router = APIRouter(prefix="/commandes", tags=["Commandes"])


@router.get("")
async def list_commandes(
    statut: Optional[str] = Query(None),
    client_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Numéro, client ou devis"),
    store: Store = Depends(get_store),
):
    if statut and statut not in VALID_COMMANDE_STATUSES:
        raise HTTPException(status_code=400, detail=f"Statut invalide. Valeurs: {VALID_COMMANDE_STATUSES}")

    query = {}
    if statut:
        query["statut"] = statut
    if client_id:
        query["client_id"] = client_id

    commandes = await store.fetch_commandes_complet(query)
    if search:
        needle = search.strip().lower()
        commandes = [
            c for c in commandes
            if needle in " ".join([
                c.get("numero") or "",
                c.get("client_nom") or "",
                c.get("client_entreprise") or "",
                c.get("devis_numero") or "",
            ]).lower()
        ]
    return {"commandes": commandes, "count": len(commandes)}


@router.get("/{commande_id}")
async def get_commande(commande_id: str, store: Store = Depends(get_store)):
    return await store.fetch_one("commandes", commande_id)


@router.post("")
async def create_commande(data: CommandeCreate, store: Store = Depends(get_store)):
    await store.fetch_one("clients", data.client_id)

    devis_numero = None
    if data.devis_id:
        devis_numero = (await store.fetch_one("devis", data.devis_id)).get("numero")

    statut = data.statut or (
        CommandeStatus.PROGRAMMEE if data.date_installation_prevue else CommandeStatus.A_PROGRAMMER
    )

    row = data.model_dump(mode="json")
    row.update({
        "numero": generate_document_number("CMD"),
        "statut": statut.value,
        "devis_numero": devis_numero,
        "date_commande": today_iso(),
        "date_installation_reelle": None,
        "total_ttc": data.total_ttc if data.total_ttc is not None else round2(data.total_ht * (1 + TVA_RATE_DEVIS)),
        "temps_reel": 0,
        "photos": [],
        "documents": [],
    })
    commande = await store.insert("commandes", row)
    logger.info(f"[COMMANDES] Created {commande['numero']} ({commande['statut']})")
    return {"success": True, "commande": commande}


@router.put("/{commande_id}")
async def update_commande(commande_id: str, data: CommandeUpdate, store: Store = Depends(get_store)):
    update_data = {k: v for k, v in data.model_dump().items() if v is not None}
    if not update_data:
        raise HTTPException(status_code=400, detail="Aucune donnée à mettre à jour")
    commande = await store.update("commandes", commande_id, update_data)
    return {"success": True, "commande": commande}


@router.patch("/{commande_id}/status")
async def update_commande_status(
    commande_id: str,
    data: CommandeStatusUpdate,
    store: Store = Depends(get_store),
):
    """Avancement manuel du chantier (aucune transition automatique)"""
    patch = {"statut": data.statut.value}
    if data.statut == CommandeStatus.INSTALLE:
        current = await store.fetch_one("commandes", commande_id)
        if not current.get("date_installation_reelle"):
            patch["date_installation_reelle"] = today_iso()
    commande = await store.update("commandes", commande_id, patch)
    logger.info(f"[COMMANDES] {commande.get('numero')} -> {data.statut.value}")
    return {"success": True, "commande": commande}


@router.delete("/{commande_id}")
async def delete_commande(commande_id: str, store: Store = Depends(get_store)):
    await store.delete("commandes", commande_id)
    return {"success": True}
