"""
OXA CRM - Modèle Facture

Enregistrement plat: montants + statut de paiement.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class FactureStatus(str, Enum):
    EN_ATTENTE = "en_attente"
    ENVOYEE = "envoyee"
    PAYEE = "payee"
    EN_RETARD = "en_retard"
    ANNULEE = "annulee"


VALID_FACTURE_STATUSES = [s.value for s in FactureStatus]


class FactureCreate(BaseModel):
    client_id: str
    devis_id: Optional[str] = None
    total_ht: float = Field(ge=0)
    tva_taux: float = Field(default=20.0, ge=0, le=100)
    date_echeance: Optional[str] = None
    notes: Optional[str] = None


class FactureUpdate(BaseModel):
    statut: Optional[FactureStatus] = None
    date_echeance: Optional[str] = None
    date_paiement: Optional[str] = None
    notes: Optional[str] = None
