"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  OXA CRM - Modèle Article (catalogue)                                        ║
║                                                                              ║
║  RÈGLE: un article sélectionné dans un devis est COPIÉ dans la ligne         ║
║  (désignation, prix, TVA). Une modification ultérieure du catalogue          ║
║  ne touche jamais les devis existants.                                       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class ArticleType(str, Enum):
    CEE = "CEE"
    IPE = "IPE"
    ELEC = "ELEC"
    MATERIEL = "MATERIEL"
    MAIN_OEUVRE = "MAIN_OEUVRE"


class Article(BaseModel):
    """Article tel que lu en base"""
    id: str
    nom: str
    description: Optional[str] = None
    type: str = ArticleType.MATERIEL.value
    prix_achat: float = 0.0
    prix_vente: float = 0.0
    tva: float = 20.0
    unite: str = "unité"
    actif: bool = True


class ArticleCreate(BaseModel):
    nom: str = Field(min_length=1)
    description: Optional[str] = None
    type: ArticleType = ArticleType.MATERIEL
    prix_achat: float = Field(default=0.0, ge=0)
    prix_vente: float = Field(default=0.0, ge=0)
    tva: float = Field(default=20.0, ge=0, le=100)
    unite: str = "unité"
    actif: bool = True


class ArticleUpdate(BaseModel):
    nom: Optional[str] = None
    description: Optional[str] = None
    type: Optional[ArticleType] = None
    prix_achat: Optional[float] = Field(default=None, ge=0)
    prix_vente: Optional[float] = Field(default=None, ge=0)
    tva: Optional[float] = Field(default=None, ge=0, le=100)
    unite: Optional[str] = None
    actif: Optional[bool] = None
