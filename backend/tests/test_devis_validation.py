"""
OXA CRM — Devis validation (field-level errors, nothing sent on failure)
Run: cd backend && pytest tests/test_devis_validation.py -v
"""

import pytest

from models.devis import CEEParams, DevisDraft, DevisLine, DevisZone
from models.history import Actor
from services.devis_service import create_devis
from services.devis_validation import ValidationFailed, ensure_valid, validate_devis
from services.persistence import demo_dataset
from tests.conftest import RecordingStore, _db_op


def _draft(**overrides):
    fields = {
        "client_id": "1",
        "type": "standard",
        "objet": "Audit énergétique",
        "zones": [DevisZone(id="z1", nom="Atelier", lignes=[
            DevisLine(id="l1", designation="Audit", quantite=1, prix_unitaire=1500)
        ])],
    }
    fields.update(overrides)
    return DevisDraft(**fields)


class TestRequiredFields:
    def test_valid_draft_has_no_errors(self):
        assert validate_devis(_draft()) == {}

    def test_missing_client(self):
        errors = validate_devis(_draft(client_id=None))
        assert "client_id" in errors

    def test_unknown_client(self):
        errors = validate_devis(_draft(client_id="999"), known_client_ids={"1", "2"})
        assert errors["client_id"] == "Client inconnu"

    def test_blank_objet(self):
        assert "objet" in validate_devis(_draft(objet="   "))

    def test_no_zone(self):
        errors = validate_devis(_draft(zones=[]))
        assert "zones" in errors
        assert "lignes" in errors

    def test_zone_without_lines(self):
        errors = validate_devis(_draft(zones=[DevisZone(nom="Vide")]))
        assert "lignes" in errors
        assert "zones" not in errors


class TestLineErrors:
    def _errors_for(self, **line):
        ligne = DevisLine(id="l1", designation="Audit", quantite=1, prix_unitaire=100)
        ligne = ligne.model_copy(update=line)
        return validate_devis(_draft(zones=[DevisZone(id="z1", nom="Atelier", lignes=[ligne])]))

    def test_blank_designation(self):
        errors = self._errors_for(designation=" ")
        assert "ligne_z1_l1_designation" in errors
        assert "lignes_validation" in errors

    def test_zero_quantity(self):
        assert "ligne_z1_l1_quantite" in self._errors_for(quantite=0)

    def test_negative_price(self):
        assert "ligne_z1_l1_prix" in self._errors_for(prix_unitaire=-1)

    def test_negative_purchase_price(self):
        assert "ligne_z1_l1_prix_achat" in self._errors_for(prix_achat=-5)

    def test_vat_out_of_range(self):
        assert "ligne_z1_l1_tva" in self._errors_for(tva=120)

    def test_error_message_names_zone(self):
        errors = self._errors_for(quantite=-2)
        assert 'zone "Atelier"' in errors["ligne_z1_l1_quantite"]


class TestCeeErrors:
    def test_zero_power_is_allowed(self):
        assert validate_devis(_draft(type="CEE", cee_params=CEEParams(puissance_nominale=0))) == {}

    def test_negative_power(self):
        errors = validate_devis(_draft(type="CEE", cee_params=CEEParams(puissance_nominale=-10)))
        assert "cee_puissance_nominale" in errors

    def test_unknown_profile_blocks_save(self):
        errors = validate_devis(_draft(type="CEE", cee_params=CEEParams(
            puissance_nominale=100, profil_fonctionnement="4x8h")))
        assert "cee_configuration" in errors

    def test_cee_checks_skipped_for_standard_quotes(self):
        draft = _draft(type="standard", cee_params=CEEParams(profil_fonctionnement="4x8h"))
        assert validate_devis(draft) == {}


class TestNothingSentOnFailure:
    def test_ensure_valid_raises_with_errors(self):
        with pytest.raises(ValidationFailed) as exc:
            ensure_valid(_draft(client_id=None))
        assert "client_id" in exc.value.errors

    def test_missing_client_makes_no_store_call(self):
        store = RecordingStore(demo_dataset())
        with pytest.raises(ValidationFailed) as exc:
            _db_op(create_devis(store, _draft(client_id=None), Actor()))
        assert "client_id" in exc.value.errors
        assert store.calls == []

    def test_unknown_client_rejected_before_insert(self):
        store = RecordingStore(demo_dataset())
        with pytest.raises(ValidationFailed):
            _db_op(create_devis(store, _draft(client_id="999"), Actor()))
        assert ("insert", "devis") not in store.calls

    def test_draft_left_intact(self):
        draft = _draft(client_id=None)
        before = draft.model_dump()
        validate_devis(draft)
        assert draft.model_dump() == before
