"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  OXA CRM - Modèle Client                                                     ║
║                                                                              ║
║  Société / contact référencé par les devis, commandes et factures            ║
║  RÈGLE: jamais supprimé en cascade, suppression = action utilisateur         ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import re
from typing import Optional
from pydantic import BaseModel, field_validator


def is_valid_email_format(email: str) -> bool:
    """Vérifie le format email basique"""
    if not email:
        return False
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email))


def normalize_siret(siret: Optional[str]) -> Optional[str]:
    """Supprime les espaces; un SIRET valide fait 14 chiffres"""
    if not siret:
        return siret
    cleaned = re.sub(r'\s', '', siret)
    if not re.fullmatch(r'\d{14}', cleaned):
        raise ValueError(f"SIRET invalide: {siret}")
    return cleaned


class ClientCreate(BaseModel):
    nom: str  # Nom du contact
    entreprise: str
    siret: Optional[str] = None
    email: Optional[str] = None
    telephone: Optional[str] = None
    adresse: Optional[str] = None
    ville: Optional[str] = None
    code_postal: Optional[str] = None
    pays: str = "France"
    contact_principal: Optional[str] = None
    notes: Optional[str] = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if v and not is_valid_email_format(v):
            raise ValueError(f"Format email invalide: {v}")
        return v

    @field_validator('siret')
    @classmethod
    def validate_siret(cls, v):
        return normalize_siret(v)


class ClientUpdate(BaseModel):
    """Mise à jour d'un client"""
    nom: Optional[str] = None
    entreprise: Optional[str] = None
    siret: Optional[str] = None
    email: Optional[str] = None
    telephone: Optional[str] = None
    adresse: Optional[str] = None
    ville: Optional[str] = None
    code_postal: Optional[str] = None
    pays: Optional[str] = None
    contact_principal: Optional[str] = None
    notes: Optional[str] = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if v and not is_valid_email_format(v):
            raise ValueError(f"Format email invalide: {v}")
        return v

    @field_validator('siret')
    @classmethod
    def validate_siret(cls, v):
        return normalize_siret(v)
