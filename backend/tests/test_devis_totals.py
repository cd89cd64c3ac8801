"""
OXA CRM — Totals reconciler
Run: cd backend && pytest tests/test_devis_totals.py -v
"""

import pytest

from models.devis import CEEMode, CEEResult, DevisLine, DevisZone
from services.devis_editor import recompute_line
from services.devis_totals import TotalsInvariantError, check_totals_invariants, compute_totals


def _zone(*lines):
    return DevisZone(nom="Z", lignes=[
        recompute_line(DevisLine(quantite=q, prix_unitaire=p, prix_achat=a)) for q, p, a in lines
    ])


class TestComputeTotals:
    def test_vat_at_twenty_percent(self):
        totals = compute_totals([_zone((2, 99.99, 50))], CEEResult(), CEEMode.DEDUCTION)
        assert totals.total_ht == 199.98
        assert totals.total_tva == 40.0
        assert totals.total_ttc == pytest.approx(239.98)

    def test_ttc_is_sum_of_ht_and_tva(self):
        totals = compute_totals([_zone((3, 33.33, 0), (1, 0.01, 0))], CEEResult(), CEEMode.DEDUCTION)
        assert totals.total_ttc == totals.total_ht + totals.total_tva

    def test_empty_quote(self):
        totals = compute_totals([], CEEResult(), CEEMode.DEDUCTION)
        assert totals.total_ht == 0
        assert totals.net_a_payer == 0

    def test_idempotent(self):
        zones = [_zone((1, 12000, 8000)), _zone((4, 17.5, 3))]
        cee = CEEResult(kwh_cumac=2940, prime_estimee=5.88)
        assert compute_totals(zones, cee, CEEMode.DEDUCTION) == compute_totals(zones, cee, CEEMode.DEDUCTION)

    def test_deduction_vs_information(self):
        zones = [_zone((1, 12000, 8000))]
        cee = CEEResult(kwh_cumac=2940, prime_estimee=5.88)
        deduction = compute_totals(zones, cee, CEEMode.DEDUCTION)
        information = compute_totals(zones, cee, CEEMode.INFORMATION)
        assert deduction.net_a_payer == 14394.12
        assert information.net_a_payer == 14400
        assert information.prime_cee_deduite == 0

    def test_mode_switch_leaves_document_totals(self):
        zones = [_zone((1, 12000, 8000)), _zone((3, 45.5, 20))]
        cee = CEEResult(kwh_cumac=2940, prime_estimee=5.88)
        deduction = compute_totals(zones, cee, CEEMode.DEDUCTION)
        information = compute_totals(zones, cee, CEEMode.INFORMATION)
        assert deduction.total_ht == information.total_ht
        assert deduction.total_tva == information.total_tva
        assert deduction.total_ttc == information.total_ttc
        assert deduction.prime_cee_deduite != information.prime_cee_deduite
        assert deduction.net_a_payer != information.net_a_payer


class TestInvariantCheck:
    def test_consistent_document(self):
        assert check_totals_invariants({"total_ht": 12000, "tva_taux": 20, "total_tva": 2400, "total_ttc": 14400})

    def test_wrong_ttc_raises(self):
        with pytest.raises(TotalsInvariantError):
            check_totals_invariants({"total_ht": 12000, "tva_taux": 20, "total_tva": 2400, "total_ttc": 14000})

    def test_wrong_tva_raises(self):
        with pytest.raises(TotalsInvariantError):
            check_totals_invariants({"total_ht": 100, "tva_taux": 20, "total_tva": 10, "total_ttc": 110})
