"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  OXA CRM - Historique & commentaires de devis                                ║
║                                                                              ║
║  RÈGLE: journal en AJOUT SEUL. Une entrée n'est jamais modifiée              ║
║  ni supprimée après sa création.                                             ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from enum import Enum
from pydantic import BaseModel, Field


class Actor(BaseModel):
    """Utilisateur à l'origine d'une action (passé explicitement aux services)"""
    user_id: str = "system"
    user_name: str = "Système"


SYSTEM_ACTOR = Actor()


class HistoryActionType(str, Enum):
    CREATION = "creation"
    MODIFICATION = "modification"
    COMMENTAIRE = "commentaire"
    AJOUT_LIGNE = "ajout_ligne"
    SUPPRESSION_LIGNE = "suppression_ligne"
    CHANGEMENT_STATUT = "changement_statut"


class CommentCreate(BaseModel):
    commentaire: str = Field(min_length=1)
