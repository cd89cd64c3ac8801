"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  OXA CRM - Modèle Devis                                                      ║
║                                                                              ║
║  Un devis = zones nommées contenant des lignes chiffrées                     ║
║  - total ligne = quantite × prix_unitaire                                    ║
║  - marge ligne = total − quantite × prix_achat                               ║
║  - total_ttc = total_ht + total_tva, total_tva = total_ht × tva_taux/100     ║
║                                                                              ║
║  Document persisté = StandardDevis | CEEDevis (discriminé par "type")        ║
║  Les champs CEE n'existent QUE sur un CEEDevis                               ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import uuid
from enum import Enum
from typing import Optional, List, Dict, Any, Literal, Union, Annotated

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from config import (
    DEFAULT_MODALITES_PAIEMENT,
    DEFAULT_GARANTIE,
    DEFAULT_PENALITES,
    DEFAULT_CLAUSE_JURIDIQUE,
    DEFAULT_OBJET_CEE,
)


class DevisStatus(str, Enum):
    """Statuts de devis (sélecteur libre, voir services/devis_state_machine.py)"""
    BROUILLON = "brouillon"
    ENVOYE = "envoye"
    ACCEPTE = "accepte"
    REFUSE = "refuse"
    EXPIRE = "expire"


class DevisType(str, Enum):
    STANDARD = "standard"
    CEE = "CEE"
    IPE = "IPE"
    ELEC = "ELEC"
    MATERIEL = "MATERIEL"
    MAIN_OEUVRE = "MAIN_OEUVRE"


class CEEMode(str, Enum):
    """
    Intégration de la prime CEE dans le devis
    - deduction: la prime est déduite du net à payer
    - information: la prime est affichée mais non déduite
    """
    DEDUCTION = "deduction"
    INFORMATION = "information"


VALID_DEVIS_STATUSES = [s.value for s in DevisStatus]
VALID_DEVIS_TYPES = [t.value for t in DevisType]

STATUS_LABELS = {
    "brouillon": "Brouillon",
    "envoye": "Envoyé",
    "accepte": "Accepté",
    "refuse": "Refusé",
    "expire": "Expiré",
}


def new_id() -> str:
    return str(uuid.uuid4())


# ==================== LIGNES & ZONES ====================

class DevisLine(BaseModel):
    """Ligne de prestation (total et marge recalculés par DevisEditor)"""
    id: str = Field(default_factory=new_id)
    designation: str = ""
    quantite: float = 1
    prix_unitaire: float = 0.0
    prix_achat: float = 0.0
    tva: float = 20.0
    total: float = 0.0
    marge: float = 0.0
    article_id: Optional[str] = None
    remarques: str = ""


class DevisZone(BaseModel):
    """Regroupement de lignes. collapsed est un état d'affichage uniquement."""
    id: str = Field(default_factory=new_id)
    nom: str = "Nouvelle zone"
    lignes: List[DevisLine] = []
    collapsed: bool = False
    visible_pdf: bool = True


# ==================== CEE ====================

class CEEParams(BaseModel):
    """
    Paramètres du calcul CEE IND-UT-134

    coefficient_activite et facteur_f sont dérivés des tables
    (profil_fonctionnement / duree_contrat) et conservés pour affichage.
    """
    puissance_nominale: float = 0.0
    profil_fonctionnement: str = "1x8h"
    duree_contrat: int = 1
    coefficient_activite: float = 1.0
    facteur_f: float = 1.0
    tarif_kwh: float = 0.002


class CEEResult(BaseModel):
    kwh_cumac: int = 0
    prime_estimee: float = 0.0


class DevisTotals(BaseModel):
    total_ht: float = 0.0
    total_tva: float = 0.0
    total_ttc: float = 0.0
    prime_cee_deduite: float = 0.0
    net_a_payer: float = 0.0


# ==================== SAISIE ====================

class DevisDraft(BaseModel):
    """
    Données saisies dans le générateur de devis.
    Les totaux ne sont PAS acceptés en entrée: ils sont toujours recalculés.
    """
    client_id: Optional[str] = None
    type: DevisType = DevisType.CEE
    statut: DevisStatus = DevisStatus.BROUILLON
    date_devis: Optional[str] = None
    objet: str = DEFAULT_OBJET_CEE
    description_operation: str = ""
    remarques: str = ""

    zones: List[DevisZone] = []

    cee_params: CEEParams = Field(default_factory=CEEParams)
    cee_mode: CEEMode = CEEMode.DEDUCTION

    modalites_paiement: str = DEFAULT_MODALITES_PAIEMENT
    garantie: str = DEFAULT_GARANTIE
    penalites: str = DEFAULT_PENALITES
    clause_juridique: str = DEFAULT_CLAUSE_JURIDIQUE
    delais: Optional[str] = None


class DevisUpdateRequest(BaseModel):
    """Mise à jour complète d'un devis avec contrôle de révision"""
    draft: DevisDraft
    expected_revision: int


class StatusChangeRequest(BaseModel):
    statut: DevisStatus
    commentaire: Optional[str] = None


class ConversionTarget(str, Enum):
    COMMANDE = "commande"
    FACTURE = "facture"


# ==================== DOCUMENT PERSISTÉ ====================

class DevisBase(BaseModel):
    """Champs communs à tous les types de devis"""
    model_config = ConfigDict(extra="ignore")

    id: str
    numero: str
    statut: DevisStatus = DevisStatus.BROUILLON
    client_id: str
    commercial_id: Optional[str] = None

    date_devis: str = ""
    date_creation: str = ""
    objet: str = ""
    description_operation: Optional[str] = None
    remarques: Optional[str] = None

    # Montants
    total_ht: float = 0.0
    total_tva: float = 0.0
    total_ttc: float = 0.0
    tva_taux: float = 20.0
    marge_totale: float = 0.0

    # Conditions commerciales
    modalites_paiement: Optional[str] = None
    garantie: Optional[str] = None
    penalites: Optional[str] = None
    clause_juridique: Optional[str] = None
    delais: Optional[str] = None

    lignes_data: List[Dict[str, Any]] = []

    # Contrôle de concurrence optimiste
    revision: int = 1

    created_at: str = ""
    updated_at: str = ""


class StandardDevis(DevisBase):
    type: Literal["standard", "IPE", "ELEC", "MATERIEL", "MAIN_OEUVRE"] = "standard"


class CEEDevis(DevisBase):
    type: Literal["CEE"] = "CEE"

    cee_kwh_cumac: int = 0
    cee_prix_unitaire: float = 0.002
    cee_montant_total: float = 0.0
    reste_a_payer_ht: float = 0.0
    cee_calculation: Dict[str, Any] = {}
    cee_integration: Dict[str, Any] = {}


Devis = Annotated[Union[StandardDevis, CEEDevis], Field(discriminator="type")]

devis_adapter = TypeAdapter(Devis)


def parse_devis(doc: Dict[str, Any]) -> Union[StandardDevis, CEEDevis]:
    """Construit la variante typée d'un document devis"""
    return devis_adapter.validate_python(doc)
