"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  OXA CRM - Routes Clients                                                    ║
║                                                                              ║
║  CRUD des clients (sociétés) référencés par devis / commandes / factures     ║
║  RÈGLE: un client référencé par un devis n'est pas supprimable               ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
import logging

from models.client import ClientCreate, ClientUpdate
from services.persistence import Store, get_store

logger = logging.getLogger("clients")

router = APIRouter(prefix="/clients", tags=["Clients"])


@router.get("")
async def list_clients(
    search: Optional[str] = Query(None, description="Nom, entreprise ou ville"),
    store: Store = Depends(get_store),
):
    clients = await store.fetch_all("clients", sort=("entreprise", 1))
    if search:
        needle = search.strip().lower()
        clients = [
            c for c in clients
            if needle in " ".join([c.get("nom") or "", c.get("entreprise") or "", c.get("ville") or ""]).lower()
        ]
    return {"clients": clients, "count": len(clients)}


@router.get("/{client_id}")
async def get_client(client_id: str, store: Store = Depends(get_store)):
    return await store.fetch_one("clients", client_id)


@router.post("")
async def create_client(data: ClientCreate, store: Store = Depends(get_store)):
    client = await store.insert("clients", data.model_dump())
    logger.info(f"[CLIENTS] Created {client['entreprise']} ({client['id']})")
    return {"success": True, "client": client}


@router.put("/{client_id}")
async def update_client(client_id: str, data: ClientUpdate, store: Store = Depends(get_store)):
    update_data = {k: v for k, v in data.model_dump().items() if v is not None}
    if not update_data:
        raise HTTPException(status_code=400, detail="Aucune donnée à mettre à jour")
    client = await store.update("clients", client_id, update_data)
    return {"success": True, "client": client}


@router.delete("/{client_id}")
async def delete_client(client_id: str, store: Store = Depends(get_store)):
    await store.fetch_one("clients", client_id)
    devis_count = await store.count("devis", {"client_id": client_id})
    if devis_count:
        raise HTTPException(
            status_code=409,
            detail=f"Client référencé par {devis_count} devis, suppression impossible"
        )
    await store.delete("clients", client_id)
    logger.info(f"[CLIENTS] Deleted {client_id}")
    return {"success": True}
