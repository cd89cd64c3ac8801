"""
Configuration et utilitaires partagés
"""

import os
import logging
from datetime import datetime, timezone, date
from decimal import Decimal, ROUND_HALF_UP
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger("config")

# MongoDB (optionnel: sans MONGO_URL, l'application tourne sur le jeu de démo)
MONGO_URL = os.environ.get('MONGO_URL', '')
DB_NAME = os.environ.get('DB_NAME', 'oxa_crm')

# Forcer le mode démo même si MONGO_URL est renseigné
DEMO_MODE = os.environ.get('DEMO_MODE', 'false').lower() in ('1', 'true', 'yes')

CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')

# Valeurs commerciales par défaut des devis
DEFAULT_MODALITES_PAIEMENT = "30% à la commande, 70% à la livraison"
DEFAULT_GARANTIE = "2 ans pièces et main d'œuvre"
DEFAULT_PENALITES = "Pénalités de retard : 0,1% par jour de retard"
DEFAULT_CLAUSE_JURIDIQUE = "Tout litige relève de la compétence du Tribunal de Commerce de Paris"
DEFAULT_OBJET_CEE = "Mise en place d'un système de mesurage IPE"


def is_persistence_configured() -> bool:
    """True si une base MongoDB est configurée et que le mode démo n'est pas forcé"""
    return bool(MONGO_URL) and not DEMO_MODE


_mongo_client: Optional[AsyncIOMotorClient] = None


def get_database():
    """Retourne la base MongoDB (client créé à la première demande)"""
    global _mongo_client
    if not is_persistence_configured():
        raise RuntimeError("MONGO_URL non configuré")
    if _mongo_client is None:
        _mongo_client = AsyncIOMotorClient(MONGO_URL)
        logger.info(f"[CONFIG] Using database: {DB_NAME}")
    return _mongo_client[DB_NAME]


def close_database():
    global _mongo_client
    if _mongo_client is not None:
        _mongo_client.close()
        _mongo_client = None


# ==================== HELPERS ====================

def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return datetime.now(timezone.utc).isoformat()


def today_iso() -> str:
    """Retourne la date du jour (YYYY-MM-DD)"""
    return date.today().isoformat()


def generate_document_number(prefix: str, now: Optional[datetime] = None) -> str:
    """
    Numéro lisible d'un document: PREFIX-AAAA-XXXXXX
    (XXXXXX = 6 derniers chiffres de l'horodatage en millisecondes)
    """
    now = now or datetime.now(timezone.utc)
    millis = str(int(now.timestamp() * 1000))
    return f"{prefix}-{now.year}-{millis[-6:]}"


def round_half_up(value: float, digits: int = 0) -> float:
    """
    Arrondi commercial (0.5 arrondi vers le haut), contrairement à round()
    qui arrondit au pair.
    """
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round2(value: float) -> float:
    """Arrondi monétaire à 2 décimales"""
    return round_half_up(value, 2)
