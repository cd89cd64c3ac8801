"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  OXA CRM - Persistance                                                       ║
║                                                                              ║
║  Interface unique consommée par les services:                                ║
║    fetch_all / fetch_one / insert / update / delete / count                  ║
║                                                                              ║
║  - MongoStore: MongoDB via motor (MONGO_URL configuré)                       ║
║  - DemoStore:  jeu de données de démonstration en mémoire, toujours OK       ║
║                                                                              ║
║  RÈGLES:                                                                     ║
║  - Toute erreur backend devient RemoteError (jamais de retry automatique)    ║
║  - Chaque ligne porte une "revision" incrémentée à chaque mise à jour;       ║
║    update(expected_revision=n) refuse une écriture périmée (ConflictError)   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import copy
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from pymongo.errors import PyMongoError

from config import now_iso, today_iso, is_persistence_configured, get_database

logger = logging.getLogger("persistence")

TABLES = [
    "clients",
    "devis",
    "commandes",
    "factures",
    "articles",
    "devis_history",
    "devis_comments",
]

Sort = Tuple[str, int]  # (champ, 1 | -1)


class RemoteError(Exception):
    """Échec de la persistance. Non rejoué, message remonté tel quel."""
    pass


class NotFoundError(RemoteError):
    pass


class ConflictError(RemoteError):
    """Écriture refusée: le document a été modifié depuis sa lecture"""

    def __init__(self, table: str, row_id: str, expected: int, current: Optional[int]):
        self.table = table
        self.row_id = row_id
        self.expected = expected
        self.current = current
        super().__init__(
            f"Le document {table}/{row_id} a été modifié par ailleurs "
            f"(révision attendue {expected}, actuelle {current})"
        )


def _check_table(table: str):
    if table not in TABLES:
        raise ValueError(f"Table inconnue: {table}")


class Store(ABC):
    """Collaborateur de persistance"""

    demo = False

    @abstractmethod
    async def fetch_all(
        self,
        table: str,
        filter: Optional[Dict[str, Any]] = None,
        sort: Optional[Sort] = None,
        limit: int = 1000,
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def fetch_one(self, table: str, row_id: str) -> Dict[str, Any]:
        """Raises NotFoundError si la ligne n'existe pas"""
        ...

    @abstractmethod
    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def update(
        self,
        table: str,
        row_id: str,
        patch: Dict[str, Any],
        expected_revision: Optional[int] = None,
    ) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def delete(self, table: str, row_id: str) -> None:
        ...

    @abstractmethod
    async def count(self, table: str, filter: Optional[Dict[str, Any]] = None) -> int:
        ...

    async def fetch_commandes_complet(self, filter: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Vue enrichie des commandes (lecture seule): infos client et numéro
        du devis d'origine ajoutés à chaque commande.
        """
        from models.commande import COMMANDE_STATUS_LABELS

        commandes = await self.fetch_all("commandes", filter, sort=("created_at", -1))
        clients = {c["id"]: c for c in await self.fetch_all("clients")}
        devis_ids = {c.get("devis_id") for c in commandes if c.get("devis_id")}
        devis = {
            d["id"]: d for d in await self.fetch_all("devis")
            if d["id"] in devis_ids
        }

        for cmd in commandes:
            client = clients.get(cmd.get("client_id"), {})
            cmd["client_entreprise"] = client.get("entreprise", "")
            cmd["client_nom"] = client.get("nom", "")
            cmd["client_ville"] = client.get("ville", "")
            cmd["client_telephone"] = client.get("telephone", "")
            cmd["devis_numero"] = devis.get(cmd.get("devis_id"), {}).get("numero", cmd.get("devis_numero"))
            cmd["statut_libelle"] = COMMANDE_STATUS_LABELS.get(cmd.get("statut"), cmd.get("statut"))
        return commandes


def _prepare_insert(row: Dict[str, Any]) -> Dict[str, Any]:
    now = now_iso()
    doc = dict(row)
    doc.setdefault("id", str(uuid.uuid4()))
    doc.setdefault("created_at", now)
    doc.setdefault("updated_at", now)
    doc["revision"] = 1
    return doc


# ════════════════════════════════════════════════════════════════════════════
# MONGODB
# ════════════════════════════════════════════════════════════════════════════

class MongoStore(Store):

    def __init__(self, db):
        self.db = db

    async def fetch_all(self, table, filter=None, sort=None, limit=1000):
        _check_table(table)
        try:
            cursor = self.db[table].find(filter or {}, {"_id": 0})
            if sort:
                cursor = cursor.sort(*sort)
            return await cursor.to_list(limit)
        except PyMongoError as e:
            logger.error(f"[PERSISTENCE] fetch_all {table} failed: {e}")
            raise RemoteError(str(e)) from e

    async def fetch_one(self, table, row_id):
        _check_table(table)
        try:
            doc = await self.db[table].find_one({"id": row_id}, {"_id": 0})
        except PyMongoError as e:
            logger.error(f"[PERSISTENCE] fetch_one {table}/{row_id} failed: {e}")
            raise RemoteError(str(e)) from e
        if not doc:
            raise NotFoundError(f"{table}/{row_id} introuvable")
        return doc

    async def insert(self, table, row):
        _check_table(table)
        doc = _prepare_insert(row)
        try:
            await self.db[table].insert_one(dict(doc))
        except PyMongoError as e:
            logger.error(f"[PERSISTENCE] insert {table} failed: {e}")
            raise RemoteError(str(e)) from e
        return doc

    async def update(self, table, row_id, patch, expected_revision=None):
        _check_table(table)
        query = {"id": row_id}
        if expected_revision is not None:
            query["revision"] = expected_revision

        fields = {k: v for k, v in patch.items() if k not in ("id", "revision", "created_at")}
        fields["updated_at"] = now_iso()

        try:
            result = await self.db[table].update_one(
                query,
                {"$set": fields, "$inc": {"revision": 1}}
            )
            if result.matched_count == 0:
                current = await self.db[table].find_one({"id": row_id}, {"_id": 0, "revision": 1})
                if not current:
                    raise NotFoundError(f"{table}/{row_id} introuvable")
                raise ConflictError(table, row_id, expected_revision, current.get("revision"))
            return await self.db[table].find_one({"id": row_id}, {"_id": 0})
        except PyMongoError as e:
            logger.error(f"[PERSISTENCE] update {table}/{row_id} failed: {e}")
            raise RemoteError(str(e)) from e

    async def delete(self, table, row_id):
        _check_table(table)
        try:
            result = await self.db[table].delete_one({"id": row_id})
        except PyMongoError as e:
            logger.error(f"[PERSISTENCE] delete {table}/{row_id} failed: {e}")
            raise RemoteError(str(e)) from e
        if result.deleted_count == 0:
            raise NotFoundError(f"{table}/{row_id} introuvable")

    async def count(self, table, filter=None):
        _check_table(table)
        try:
            return await self.db[table].count_documents(filter or {})
        except PyMongoError as e:
            raise RemoteError(str(e)) from e


# ════════════════════════════════════════════════════════════════════════════
# DÉMO (persistance non configurée)
# ════════════════════════════════════════════════════════════════════════════

def _matches(row: Dict[str, Any], filter: Optional[Dict[str, Any]]) -> bool:
    if not filter:
        return True
    for key, expected in filter.items():
        value = row.get(key)
        if isinstance(expected, dict) and "$in" in expected:
            if value not in expected["$in"]:
                return False
        elif value != expected:
            return False
    return True


def _sort_key(field: str):
    def key(row):
        value = row.get(field)
        return (value is None, value if value is not None else "")
    return key


class DemoStore(Store):
    """
    Persistance simulée en mémoire. Les écritures réussissent toujours;
    les lectures renvoient des copies (pas d'alias sur l'état interne).
    """

    demo = True

    def __init__(self, seed: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = {table: [] for table in TABLES}
        for table, rows in (seed or {}).items():
            _check_table(table)
            self.tables[table] = copy.deepcopy(rows)

    async def fetch_all(self, table, filter=None, sort=None, limit=1000):
        _check_table(table)
        rows = [row for row in self.tables[table] if _matches(row, filter)]
        if sort:
            field, direction = sort
            rows = sorted(rows, key=_sort_key(field), reverse=direction < 0)
        return copy.deepcopy(rows[:limit])

    async def fetch_one(self, table, row_id):
        return copy.deepcopy(self._find(table, row_id))

    async def insert(self, table, row):
        _check_table(table)
        doc = _prepare_insert(copy.deepcopy(row))
        self.tables[table].append(doc)
        return copy.deepcopy(doc)

    async def update(self, table, row_id, patch, expected_revision=None):
        row = self._find(table, row_id)
        if expected_revision is not None and row.get("revision") != expected_revision:
            raise ConflictError(table, row_id, expected_revision, row.get("revision"))
        for key, value in copy.deepcopy(patch).items():
            if key not in ("id", "revision", "created_at"):
                row[key] = value
        row["updated_at"] = now_iso()
        row["revision"] = row.get("revision", 1) + 1
        return copy.deepcopy(row)

    async def delete(self, table, row_id):
        row = self._find(table, row_id)
        self.tables[table].remove(row)

    async def count(self, table, filter=None):
        _check_table(table)
        return len([row for row in self.tables[table] if _matches(row, filter)])

    def _find(self, table, row_id):
        _check_table(table)
        for row in self.tables[table]:
            if row.get("id") == row_id:
                return row
        raise NotFoundError(f"{table}/{row_id} introuvable")


def demo_dataset() -> Dict[str, List[Dict[str, Any]]]:
    """Jeu de démonstration chargé quand la persistance n'est pas configurée"""
    now = now_iso()
    today = today_iso()
    clients = [
        {
            "id": "1",
            "nom": "Jean Dupont",
            "entreprise": "Industrie Verte SA",
            "siret": "12345678901234",
            "email": "jean.dupont@industrie-verte.fr",
            "telephone": "01 23 45 67 89",
            "adresse": "123 Rue de la Paix",
            "ville": "Paris",
            "code_postal": "75001",
            "pays": "France",
            "contact_principal": "Jean Dupont - Directeur Technique",
            "notes": "Client premium",
        },
        {
            "id": "2",
            "nom": "Marie Martin",
            "entreprise": "EcoTech Solutions",
            "siret": "98765432109876",
            "email": "marie.martin@ecotech.com",
            "telephone": "01 98 76 54 32",
            "adresse": "456 Avenue des Champs",
            "ville": "Lyon",
            "code_postal": "69000",
            "pays": "France",
            "contact_principal": "Marie Martin - Responsable Achats",
            "notes": "Spécialisé dans les solutions énergétiques",
        },
    ]
    articles = [
        {
            "id": "1",
            "nom": "Récupérateur de chaleur industriel",
            "description": "Système de récupération de chaleur haute performance",
            "type": "IPE",
            "prix_achat": 8000,
            "prix_vente": 12000,
            "tva": 20,
            "unite": "unité",
            "actif": True,
        },
        {
            "id": "2",
            "nom": "Installation et mise en service",
            "description": "Service d'installation et de mise en service",
            "type": "MAIN_OEUVRE",
            "prix_achat": 0,
            "prix_vente": 2500,
            "tva": 20,
            "unite": "jour",
            "actif": True,
        },
    ]
    devis = [
        {
            "id": "1",
            "numero": "OXA-2024-IND-001",
            "type": "CEE",
            "statut": "envoye",
            "client_id": "1",
            "date_devis": today,
            "date_creation": today,
            "objet": "Mise en place d'un système de mesurage IPE",
            "description_operation": "Installation d'un système de récupération de chaleur "
                                     "pour optimiser l'efficacité énergétique",
            "remarques": "Projet pilote pour la décarbonation",
            "lignes_data": [
                {
                    "id": "1",
                    "description": "Récupérateur de chaleur industriel",
                    "zone": "Zone production",
                    "zone_visible_pdf": True,
                    "quantite": 1,
                    "prix_unitaire": 12000,
                    "prix_achat": 8000,
                    "tva": 20,
                    "total_ht": 12000,
                    "total_tva": 2400,
                    "total_ttc": 14400,
                    "marge": 4000,
                    "ordre": 1,
                    "remarques": "Installation incluse",
                    "article_id": "1",
                }
            ],
            "total_ht": 12000.0,
            "tva_taux": 20.0,
            "total_tva": 2400.0,
            "total_ttc": 14400.0,
            "marge_totale": 4000.0,
            "cee_kwh_cumac": 2940,
            "cee_prix_unitaire": 0.002,
            "cee_montant_total": 5.88,
            "reste_a_payer_ht": 14394.12,
            "cee_calculation": {
                "formule": "IND-UT-134",
                "profil_fonctionnement": "1x8h",
                "puissance_nominale": 100,
                "duree_contrat": 1,
                "coefficient_activite": 1.0,
                "facteur_f": 1.0,
                "kwh_cumac": 2940,
                "tarif_kwh": 0.002,
                "prime_estimee": 5.88,
                "operateur_nom": "OXA Groupe",
            },
            "cee_integration": {"mode": "deduction", "afficher_bloc": True},
            "modalites_paiement": "30% à la commande, 70% à la livraison",
            "garantie": "2 ans pièces et main d'œuvre",
            "penalites": "Pénalités de retard : 0,1% par jour",
            "clause_juridique": "Tribunal de Commerce de Paris",
        }
    ]
    for rows in (clients, articles, devis):
        for row in rows:
            row.update({"created_at": now, "updated_at": now, "revision": 1})
    return {"clients": clients, "articles": articles, "devis": devis}


_store: Optional[Store] = None


def get_store() -> Store:
    """
    Store de l'application: MongoDB si configuré, sinon jeu de démonstration.
    """
    global _store
    if _store is None:
        if is_persistence_configured():
            _store = MongoStore(get_database())
            logger.info("[PERSISTENCE] MongoDB store")
        else:
            _store = DemoStore(demo_dataset())
            logger.warning("[PERSISTENCE] MONGO_URL non configuré, mode démo (données en mémoire)")
    return _store
