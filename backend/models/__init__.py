"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  OXA CRM - Models Package                                                    ║
║                                                                              ║
║  Exports tous les modèles pour import facile                                 ║
║  from models import DevisDraft, ClientCreate, CommandeCreate, etc.           ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Devis
from .devis import (
    DevisStatus,
    DevisType,
    CEEMode,
    VALID_DEVIS_STATUSES,
    VALID_DEVIS_TYPES,
    STATUS_LABELS,
    DevisLine,
    DevisZone,
    CEEParams,
    CEEResult,
    DevisTotals,
    DevisDraft,
    DevisUpdateRequest,
    StatusChangeRequest,
    ConversionTarget,
    StandardDevis,
    CEEDevis,
    Devis,
    parse_devis,
)

# Clients
from .client import (
    ClientCreate,
    ClientUpdate,
    is_valid_email_format,
    normalize_siret,
)

# Articles
from .article import (
    ArticleType,
    Article,
    ArticleCreate,
    ArticleUpdate,
)

# Commandes
from .commande import (
    CommandeStatus,
    VALID_COMMANDE_STATUSES,
    COMMANDE_STATUS_LABELS,
    InstallationPlanning,
    CommandeCreate,
    CommandeUpdate,
    CommandeStatusUpdate,
)

# Factures
from .facture import (
    FactureStatus,
    VALID_FACTURE_STATUSES,
    FactureCreate,
    FactureUpdate,
)

# Historique
from .history import (
    Actor,
    SYSTEM_ACTOR,
    HistoryActionType,
    CommentCreate,
)
