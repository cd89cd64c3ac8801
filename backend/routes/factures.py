"""
OXA CRM - Routes Factures
Factures: total_ht, tva_taux, total_tva, total_ttc, numero, statut, dates.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
from datetime import date, timedelta

from config import generate_document_number, round2, today_iso
from models.facture import FactureCreate, FactureStatus, FactureUpdate, VALID_FACTURE_STATUSES
from services.devis_state_machine import FACTURE_DELAI_PAIEMENT_JOURS
from services.persistence import Store, get_store

router = APIRouter(prefix="/factures", tags=["Factures"])


# ════════════════════════════════════════════════════════════════════════
# CRUD
# ════════════════════════════════════════════════════════════════════════

@router.get("")
async def list_factures(
    statut: Optional[str] = Query(None),
    client_id: Optional[str] = Query(None),
    store: Store = Depends(get_store),
):
    if statut and statut not in VALID_FACTURE_STATUSES:
        raise HTTPException(status_code=400, detail=f"Statut invalide. Valeurs: {VALID_FACTURE_STATUSES}")

    query = {}
    if statut:
        query["statut"] = statut
    if client_id:
        query["client_id"] = client_id
    factures = await store.fetch_all("factures", query, sort=("created_at", -1))
    return {"factures": factures, "count": len(factures)}


@router.get("/{facture_id}")
async def get_facture(facture_id: str, store: Store = Depends(get_store)):
    return await store.fetch_one("factures", facture_id)


@router.post("")
async def create_facture(data: FactureCreate, store: Store = Depends(get_store)):
    await store.fetch_one("clients", data.client_id)

    total_tva = round2(data.total_ht * data.tva_taux / 100)
    facture = await store.insert("factures", {
        "numero": generate_document_number("FAC"),
        "client_id": data.client_id,
        "devis_id": data.devis_id,
        "total_ht": data.total_ht,
        "tva_taux": data.tva_taux,
        "total_tva": total_tva,
        "total_ttc": data.total_ht + total_tva,
        "statut": FactureStatus.EN_ATTENTE.value,
        "date_facture": today_iso(),
        "date_echeance": data.date_echeance
        or (date.today() + timedelta(days=FACTURE_DELAI_PAIEMENT_JOURS)).isoformat(),
        "date_paiement": None,
        "notes": data.notes,
    })
    return {"success": True, "facture": facture}


@router.put("/{facture_id}")
async def update_facture(facture_id: str, data: FactureUpdate, store: Store = Depends(get_store)):
    update_data = {k: v for k, v in data.model_dump(mode="json").items() if v is not None}
    if not update_data:
        raise HTTPException(status_code=400, detail="Aucune donnée à mettre à jour")
    if update_data.get("statut") == FactureStatus.PAYEE.value and "date_paiement" not in update_data:
        update_data["date_paiement"] = today_iso()
    facture = await store.update("factures", facture_id, update_data)
    return {"success": True, "facture": facture}


@router.delete("/{facture_id}")
async def delete_facture(facture_id: str, store: Store = Depends(get_store)):
    await store.delete("factures", facture_id)
    return {"success": True}
