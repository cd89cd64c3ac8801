"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  OXA CRM - Modèle Commande (chantier d'installation)                         ║
║                                                                              ║
║  Une commande est créée manuellement ou par conversion d'un devis accepté   ║
║  - Statut initial: a_programmer (sans date) ou programmee                    ║
║  - Statut avancé par les équipes, aucune transition automatique              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field


class CommandeStatus(str, Enum):
    A_PROGRAMMER = "a_programmer"
    PROGRAMMEE = "programmee"
    EN_COURS_INSTALLATION = "en_cours_installation"
    INSTALLE = "installe"
    MISE_EN_SERVICE = "mise_en_service"
    TERMINE = "termine"
    SUSPENDU = "suspendu"
    REPORTE = "reporte"


VALID_COMMANDE_STATUSES = [s.value for s in CommandeStatus]

COMMANDE_STATUS_LABELS = {
    "a_programmer": "À programmer",
    "programmee": "Programmée",
    "en_cours_installation": "En cours d'installation",
    "installe": "Installé",
    "mise_en_service": "Mise en service",
    "termine": "Terminé",
    "suspendu": "Suspendu",
    "reporte": "Reporté",
}


class InstallationPlanning(BaseModel):
    """Planification saisie lors de la création / conversion"""
    date_installation_prevue: Optional[str] = None
    equipe_assignee: Optional[str] = None
    technicien_principal: Optional[str] = None
    temps_estime: float = Field(default=8, ge=0)  # heures
    notes_installation: Optional[str] = None
    adresse_installation: Optional[str] = None
    contact_site: Optional[str] = None
    telephone_contact: Optional[str] = None
    instructions_speciales: Optional[str] = None


class CommandeCreate(InstallationPlanning):
    """Création manuelle d'une commande"""
    client_id: str
    devis_id: Optional[str] = None
    statut: Optional[CommandeStatus] = None
    total_ht: float = Field(gt=0)
    total_ttc: Optional[float] = None


class CommandeUpdate(BaseModel):
    date_installation_prevue: Optional[str] = None
    date_installation_reelle: Optional[str] = None
    equipe_assignee: Optional[str] = None
    technicien_principal: Optional[str] = None
    temps_estime: Optional[float] = None
    temps_reel: Optional[float] = None
    notes_installation: Optional[str] = None
    adresse_installation: Optional[str] = None
    contact_site: Optional[str] = None
    telephone_contact: Optional[str] = None
    instructions_speciales: Optional[str] = None
    photos: Optional[List[str]] = None
    documents: Optional[List[str]] = None


class CommandeStatusUpdate(BaseModel):
    statut: CommandeStatus
