"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  OXA CRM - Éditeur de devis (zones / lignes)                                 ║
║                                                                              ║
║  SEUL CE MODULE modifie les zones et lignes d'un devis en cours d'édition.   ║
║                                                                              ║
║  INVARIANTS (vrais après CHAQUE mutation):                                   ║
║  - ligne.total = quantite × prix_unitaire                                    ║
║  - ligne.marge = total − quantite × prix_achat                               ║
║  - totals = compute_totals(zones, cee_result, cee_mode), recalcul complet    ║
║  - cee_result = calculate_cee(cee_params), jamais un résultat périmé         ║
║                                                                              ║
║  Quantité ≤ 0 et prix négatif sont ACCEPTÉS ici (saisie en cours) et         ║
║  signalés à la validation (services/devis_validation.py).                    ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from models.article import Article
from models.devis import (
    CEEMode,
    CEEParams,
    CEEResult,
    DevisDraft,
    DevisLine,
    DevisTotals,
    DevisZone,
)
from services.cee_calculator import calculate_cee, resolve_cee_params
from services.devis_totals import compute_totals, sum_margins

logger = logging.getLogger("devis_editor")

DEFAULT_ZONE_NAME = "Général"

EDITABLE_LINE_FIELDS = {"designation", "quantite", "prix_unitaire", "prix_achat", "tva", "remarques"}
NUMERIC_LINE_FIELDS = {"quantite", "prix_unitaire", "prix_achat", "tva"}
EDITABLE_ZONE_FIELDS = {"nom", "visible_pdf", "collapsed"}


class DevisEditorError(KeyError):
    """Zone ou ligne inconnue"""
    pass


def recompute_line(ligne: DevisLine) -> DevisLine:
    """Recalcule total et marge d'une ligne (en place)"""
    ligne.total = ligne.quantite * ligne.prix_unitaire
    ligne.marge = ligne.total - ligne.quantite * ligne.prix_achat
    return ligne


class DevisEditor:
    """
    État d'édition d'un devis: zones ordonnées, lignes ordonnées,
    paramètres CEE et mode d'intégration de la prime.

    edit_token s'incrémente à chaque mutation; il sert à écarter une réponse
    de persistance arrivée après des modifications locales plus récentes
    (voir accept_persisted).
    """

    def __init__(
        self,
        zones: Optional[List[DevisZone]] = None,
        cee_params: Optional[CEEParams] = None,
        cee_mode: Union[CEEMode, str] = CEEMode.DEDUCTION,
    ):
        self.zones: List[DevisZone] = [zone.model_copy(deep=True) for zone in zones or []]
        self.cee_params: CEEParams = resolve_cee_params(cee_params or CEEParams())
        self.cee_mode: CEEMode = CEEMode(cee_mode)
        self.cee_result: CEEResult = calculate_cee(self.cee_params)
        self.totals: DevisTotals = DevisTotals()
        self.edit_token = 0

        for zone in self.zones:
            for ligne in zone.lignes:
                recompute_line(ligne)
        self._recompute_totals()

    # ==================== CONSTRUCTION ====================

    @classmethod
    def from_draft(cls, draft: DevisDraft) -> "DevisEditor":
        return cls(zones=draft.zones, cee_params=draft.cee_params, cee_mode=draft.cee_mode)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "DevisEditor":
        """
        Reconstruit l'éditeur depuis un devis persisté.
        Les lignes à plat (lignes_data) sont regroupées par nom de zone,
        dans l'ordre de première apparition.
        """
        return cls(
            zones=zones_from_lignes_data(doc.get("lignes_data") or []),
            cee_params=cee_params_from_document(doc),
            cee_mode=(doc.get("cee_integration") or {}).get("mode", CEEMode.DEDUCTION),
        )

    # ==================== ZONES ====================

    def add_zone(self, nom: str = "Nouvelle zone") -> str:
        zone = DevisZone(nom=nom)
        self.zones.append(zone)
        self._touch()
        return zone.id

    def update_zone(self, zone_id: str, **changes) -> DevisZone:
        unknown = set(changes) - EDITABLE_ZONE_FIELDS
        if unknown:
            raise ValueError(f"Champs de zone non modifiables: {sorted(unknown)}")
        zone = self.get_zone(zone_id)
        for field, value in changes.items():
            setattr(zone, field, value)
        self._touch()
        return zone

    def remove_zone(self, zone_id: str) -> DevisZone:
        zone = self.get_zone(zone_id)
        self.zones.remove(zone)
        self._touch()
        return zone

    def get_zone(self, zone_id: str) -> DevisZone:
        for zone in self.zones:
            if zone.id == zone_id:
                return zone
        raise DevisEditorError(f"Zone {zone_id} introuvable")

    # ==================== LIGNES ====================

    def add_line(self, zone_id: str) -> str:
        zone = self.get_zone(zone_id)
        ligne = recompute_line(DevisLine())
        zone.lignes.append(ligne)
        self._touch()
        return ligne.id

    def get_line(self, zone_id: str, line_id: str) -> DevisLine:
        zone = self.get_zone(zone_id)
        for ligne in zone.lignes:
            if ligne.id == line_id:
                return ligne
        raise DevisEditorError(f"Ligne {line_id} introuvable dans la zone {zone_id}")

    def update_line(self, zone_id: str, line_id: str, field: str, value: Any) -> DevisLine:
        if field not in EDITABLE_LINE_FIELDS:
            raise ValueError(f"Champ de ligne non modifiable: {field}")
        ligne = self.get_line(zone_id, line_id)
        if field in NUMERIC_LINE_FIELDS:
            value = float(value)
        setattr(ligne, field, value)
        recompute_line(ligne)
        self._touch()
        return ligne

    def remove_line(self, zone_id: str, line_id: str) -> DevisLine:
        zone = self.get_zone(zone_id)
        ligne = self.get_line(zone_id, line_id)
        zone.lignes.remove(ligne)
        self._touch()
        return ligne

    def apply_article(self, zone_id: str, line_id: str, article: Union[Article, Mapping[str, Any]]) -> DevisLine:
        """
        Copie désignation, prix de vente, prix d'achat et TVA de l'article
        dans la ligne. La quantité n'est pas modifiée.
        """
        if not isinstance(article, Article):
            article = Article.model_validate(article)
        ligne = self.get_line(zone_id, line_id)
        ligne.designation = article.nom
        ligne.prix_unitaire = float(article.prix_vente)
        ligne.prix_achat = float(article.prix_achat)
        ligne.tva = float(article.tva)
        ligne.article_id = article.id
        recompute_line(ligne)
        self._touch()
        return ligne

    # ==================== CEE ====================

    def set_cee_params(self, **changes) -> CEEResult:
        """
        Modifie les paramètres CEE puis relance le calcul.

        Raises:
            ConfigurationError si le profil ou la durée est inconnu;
            l'éditeur reste alors dans son état précédent.
        """
        params = resolve_cee_params(CEEParams.model_validate({**self.cee_params.model_dump(), **changes}))
        result = calculate_cee(params)
        self.cee_params = params
        self.cee_result = result
        self._touch()
        return result

    def set_cee_mode(self, mode: Union[CEEMode, str]) -> DevisTotals:
        self.cee_mode = CEEMode(mode)
        self._touch()
        return self.totals

    # ==================== LECTURE ====================

    @property
    def marge_totale(self) -> float:
        return sum_margins(self.zones)

    def to_lignes_data(self) -> List[Dict[str, Any]]:
        """Lignes à plat au format persisté (une entrée par ligne, zone incluse)"""
        rows = []
        for zone in self.zones:
            for index, ligne in enumerate(zone.lignes):
                tva = _default_if_none(ligne.tva, 20)
                rows.append({
                    "id": ligne.id,
                    "description": ligne.designation,
                    "zone": zone.nom,
                    "zone_visible_pdf": zone.visible_pdf,
                    "quantite": ligne.quantite,
                    "prix_unitaire": ligne.prix_unitaire,
                    "prix_achat": _default_if_none(ligne.prix_achat, 0),
                    "tva": tva,
                    "total_ht": ligne.total,
                    "total_tva": ligne.total * (tva / 100),
                    "total_ttc": ligne.total * (1 + tva / 100),
                    "marge": ligne.marge,
                    "ordre": index + 1,
                    "remarques": ligne.remarques,
                    "article_id": ligne.article_id,
                })
        return rows

    # ==================== RÉPONSES ASYNCHRONES ====================

    def accept_persisted(self, doc: Mapping[str, Any], token: int) -> bool:
        """
        Applique un devis renvoyé par la persistance si aucune modification
        locale n'a eu lieu depuis la prise de token. Sinon la réponse est
        ignorée et les modifications locales sont conservées.
        """
        if token != self.edit_token:
            logger.info(
                f"[EDITOR] Réponse ignorée (token {token}, état local {self.edit_token}) "
                f"pour devis {doc.get('numero', doc.get('id'))}"
            )
            return False

        restored = DevisEditor.from_document(doc)
        self.zones = restored.zones
        self.cee_params = restored.cee_params
        self.cee_mode = restored.cee_mode
        self.cee_result = restored.cee_result
        self.totals = restored.totals
        return True

    # ==================== INTERNE ====================

    def _recompute_totals(self):
        self.totals = compute_totals(self.zones, self.cee_result, self.cee_mode)

    def _touch(self):
        self._recompute_totals()
        self.edit_token += 1


def _default_if_none(value, default):
    # seul None retombe sur le défaut, 0 (TVA 0 %, tarif 0) est conservé
    return default if value is None else value


def zones_from_lignes_data(rows: List[Mapping[str, Any]]) -> List[DevisZone]:
    zones: Dict[str, DevisZone] = {}
    for row in rows:
        zone_name = row.get("zone") or DEFAULT_ZONE_NAME
        zone = zones.get(zone_name)
        if zone is None:
            zone = DevisZone(nom=zone_name, visible_pdf=row.get("zone_visible_pdf", True))
            zones[zone_name] = zone
        line_fields = {
            "designation": row.get("description") or row.get("designation") or "",
            "quantite": _default_if_none(row.get("quantite"), 1),
            "prix_unitaire": _default_if_none(row.get("prix_unitaire"), 0),
            "prix_achat": _default_if_none(row.get("prix_achat"), 0),
            "tva": _default_if_none(row.get("tva"), 20),
            "article_id": row.get("article_id"),
            "remarques": row.get("remarques") or "",
        }
        if row.get("id"):
            line_fields["id"] = str(row["id"])
        zone.lignes.append(DevisLine(**line_fields))
    return list(zones.values())


def cee_params_from_document(doc: Mapping[str, Any]) -> CEEParams:
    calculation = doc.get("cee_calculation") or {}
    tarif = doc.get("cee_prix_unitaire")
    if tarif is None:
        tarif = calculation.get("tarif_kwh")
    return CEEParams(
        puissance_nominale=_default_if_none(calculation.get("puissance_nominale"), 0),
        profil_fonctionnement=calculation.get("profil_fonctionnement") or "1x8h",
        duree_contrat=_default_if_none(calculation.get("duree_contrat"), 1),
        tarif_kwh=_default_if_none(tarif, 0.002),
    )

