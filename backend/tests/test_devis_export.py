"""
OXA CRM — Export snapshot for the PDF generator
Run: cd backend && pytest tests/test_devis_export.py -v
"""

import pytest

from services.devis_export import build_export_snapshot, format_eur
from services.devis_totals import TotalsInvariantError
from services.persistence import demo_dataset


def _demo_devis():
    return dict(demo_dataset()["devis"][0])


class TestFormatEur:
    def test_thousands_and_decimals(self):
        assert format_eur(1234.5) == "1 234,50 €"
        assert format_eur(12000) == "12 000,00 €"

    def test_negative_and_none(self):
        assert format_eur(-5.88) == "-5,88 €"
        assert format_eur(None) == "0,00 €"


class TestSnapshot:
    def test_cee_quote_snapshot(self):
        client = demo_dataset()["clients"][0]
        snapshot = build_export_snapshot(_demo_devis(), client)
        assert snapshot["is_cee"] is True
        assert snapshot["numero"] == "OXA-2024-IND-001"
        assert snapshot["statut"] == "Envoyé"
        assert snapshot["client"]["entreprise"] == "Industrie Verte SA"
        assert snapshot["totaux"]["total_ttc"] == "14 400,00 €"
        assert snapshot["cee"]["kwh_cumac"] == 2940
        assert snapshot["cee"]["prime"] == "5,88 €"
        assert snapshot["cee"]["reste_a_payer"] == "14 394,12 €"
        assert snapshot["zones"][0]["nom"] == "Zone production"
        assert snapshot["zones"][0]["sous_total"] == "12 000,00 €"

    def test_cee_type_without_kwh_is_not_cee(self):
        devis = _demo_devis()
        devis["cee_kwh_cumac"] = 0
        snapshot = build_export_snapshot(devis)
        assert snapshot["is_cee"] is False
        assert snapshot["cee"] is None

    def test_standard_quote(self):
        devis = _demo_devis()
        devis["type"] = "standard"
        assert build_export_snapshot(devis)["is_cee"] is False

    def test_hidden_zones_excluded(self):
        devis = _demo_devis()
        hidden = dict(devis["lignes_data"][0], id="2", zone="Zone interne", zone_visible_pdf=False)
        devis["lignes_data"] = devis["lignes_data"] + [hidden]
        snapshot = build_export_snapshot(devis)
        assert [z["nom"] for z in snapshot["zones"]] == ["Zone production"]

    def test_inconsistent_amounts_refused(self):
        devis = _demo_devis()
        devis["total_ttc"] = 15000
        with pytest.raises(TotalsInvariantError):
            build_export_snapshot(devis)
