"""
OXA CRM — Devis editor: zones, lines, article snapshot, derived totals
Run: cd backend && pytest tests/test_devis_editor.py -v
"""

import pytest

from models.devis import CEEMode, CEEParams
from services.cee_calculator import ConfigurationError
from services.devis_editor import DevisEditor, DevisEditorError
from services.persistence import demo_dataset


def _production_editor():
    editor = DevisEditor()
    zone_id = editor.add_zone("Zone production")
    line_id = editor.add_line(zone_id)
    editor.update_line(zone_id, line_id, "designation", "Récupérateur de chaleur industriel")
    editor.update_line(zone_id, line_id, "quantite", 1)
    editor.update_line(zone_id, line_id, "prix_unitaire", 12000)
    editor.update_line(zone_id, line_id, "prix_achat", 8000)
    return editor, zone_id, line_id


# ═══════════════════════════════════════════════════════════════
# 1. LIGNES & TOTAUX
# ═══════════════════════════════════════════════════════════════

class TestLineTotals:
    def test_single_line_production_zone(self):
        editor, zone_id, line_id = _production_editor()
        ligne = editor.get_line(zone_id, line_id)
        assert ligne.total == 12000
        assert ligne.marge == 4000
        assert editor.totals.total_ht == 12000
        assert editor.totals.total_tva == 2400
        assert editor.totals.total_ttc == 14400
        assert editor.marge_totale == 4000

    def test_new_line_defaults(self):
        editor = DevisEditor()
        zone_id = editor.add_zone()
        ligne = editor.get_line(zone_id, editor.add_line(zone_id))
        assert ligne.quantite == 1
        assert ligne.prix_unitaire == 0
        assert ligne.tva == 20
        assert ligne.total == 0

    def test_numeric_fields_are_coerced(self):
        editor, zone_id, line_id = _production_editor()
        editor.update_line(zone_id, line_id, "quantite", "3")
        assert editor.get_line(zone_id, line_id).total == 36000

    def test_totals_span_all_zones(self):
        editor, zone_id, _ = _production_editor()
        other = editor.add_zone("Zone stockage")
        line_id = editor.add_line(other)
        editor.update_line(other, line_id, "quantite", 2)
        editor.update_line(other, line_id, "prix_unitaire", 2500)
        assert editor.totals.total_ht == 17000
        assert editor.totals.total_ttc == 20400

    def test_remove_line_recomputes(self):
        editor, zone_id, line_id = _production_editor()
        editor.remove_line(zone_id, line_id)
        assert editor.totals.total_ht == 0
        assert editor.totals.total_ttc == 0
        assert editor.marge_totale == 0

    def test_remove_zone_removes_its_lines(self):
        editor, zone_id, _ = _production_editor()
        editor.remove_zone(zone_id)
        assert editor.zones == []
        assert editor.totals.total_ht == 0

    def test_negative_quantity_accepted_during_entry(self):
        editor, zone_id, line_id = _production_editor()
        editor.update_line(zone_id, line_id, "quantite", -1)
        assert editor.get_line(zone_id, line_id).total == -12000
        assert editor.totals.total_ht == -12000

    def test_unknown_zone_raises(self):
        editor = DevisEditor()
        with pytest.raises(DevisEditorError):
            editor.add_line("nope")

    def test_unknown_line_raises(self):
        editor, zone_id, _ = _production_editor()
        with pytest.raises(DevisEditorError):
            editor.update_line(zone_id, "nope", "quantite", 2)

    def test_non_editable_field_rejected(self):
        editor, zone_id, line_id = _production_editor()
        with pytest.raises(ValueError):
            editor.update_line(zone_id, line_id, "total", 1)

    def test_zone_rename_and_pdf_visibility(self):
        editor, zone_id, _ = _production_editor()
        editor.update_zone(zone_id, nom="Atelier", visible_pdf=False)
        zone = editor.get_zone(zone_id)
        assert zone.nom == "Atelier"
        assert zone.visible_pdf is False
        assert editor.totals.total_ht == 12000


# ═══════════════════════════════════════════════════════════════
# 2. ARTICLE
# ═══════════════════════════════════════════════════════════════

class TestApplyArticle:
    def test_article_overwrites_prices_not_quantity(self):
        editor = DevisEditor()
        zone_id = editor.add_zone("Zone production")
        line_id = editor.add_line(zone_id)
        editor.update_line(zone_id, line_id, "quantite", 3)

        article = dict(demo_dataset()["articles"][0])
        editor.apply_article(zone_id, line_id, article)
        ligne = editor.get_line(zone_id, line_id)

        assert ligne.designation == "Récupérateur de chaleur industriel"
        assert ligne.prix_unitaire == 12000
        assert ligne.prix_achat == 8000
        assert ligne.tva == 20
        assert ligne.quantite == 3
        assert ligne.total == 36000
        assert ligne.article_id == "1"

    def test_later_catalog_change_does_not_touch_line(self):
        editor = DevisEditor()
        zone_id = editor.add_zone()
        line_id = editor.add_line(zone_id)
        article = dict(demo_dataset()["articles"][1])
        editor.apply_article(zone_id, line_id, article)

        article["prix_vente"] = 9999
        assert editor.get_line(zone_id, line_id).prix_unitaire == 2500
        assert editor.totals.total_ht == 2500


# ═══════════════════════════════════════════════════════════════
# 3. CEE
# ═══════════════════════════════════════════════════════════════

class TestCeeIntegration:
    def test_deduction_mode_subtracts_prime(self):
        editor, _, _ = _production_editor()
        result = editor.set_cee_params(puissance_nominale=100)
        assert result.kwh_cumac == 2940
        assert editor.totals.prime_cee_deduite == 5.88
        assert editor.totals.net_a_payer == 14394.12

    def test_information_mode_keeps_net_equal_ttc(self):
        editor, _, _ = _production_editor()
        editor.set_cee_params(puissance_nominale=100)
        editor.set_cee_mode("information")
        assert editor.cee_mode == CEEMode.INFORMATION
        assert editor.totals.prime_cee_deduite == 0
        assert editor.totals.net_a_payer == editor.totals.total_ttc

    def test_mode_switch_back_restores_deduction(self):
        editor, _, _ = _production_editor()
        editor.set_cee_params(puissance_nominale=100)
        editor.set_cee_mode(CEEMode.INFORMATION)
        editor.set_cee_mode(CEEMode.DEDUCTION)
        assert editor.totals.net_a_payer == 14394.12

    def test_mode_switch_only_moves_prime_and_net(self):
        editor, _, _ = _production_editor()
        editor.set_cee_params(puissance_nominale=100)
        before = editor.totals
        editor.set_cee_mode(CEEMode.INFORMATION)
        after = editor.totals
        assert (after.total_ht, after.total_tva, after.total_ttc) == (
            before.total_ht, before.total_tva, before.total_ttc
        )
        assert after.prime_cee_deduite == 0
        assert after.net_a_payer == after.total_ttc

    def test_invalid_profile_leaves_state_unchanged(self):
        editor, _, _ = _production_editor()
        editor.set_cee_params(puissance_nominale=100)
        token = editor.edit_token
        with pytest.raises(ConfigurationError):
            editor.set_cee_params(profil_fonctionnement="inconnu")
        assert editor.cee_params.profil_fonctionnement == "1x8h"
        assert editor.cee_result.kwh_cumac == 2940
        assert editor.edit_token == token

    def test_result_follows_params(self):
        editor = DevisEditor(cee_params=CEEParams(puissance_nominale=100))
        editor.set_cee_params(duree_contrat=3)
        assert editor.cee_result.kwh_cumac == 7350
        assert editor.cee_params.facteur_f == 2.5


# ═══════════════════════════════════════════════════════════════
# 4. DOCUMENT PERSISTÉ
# ═══════════════════════════════════════════════════════════════

class TestPersistedDocument:
    def test_rebuild_from_demo_devis(self):
        doc = demo_dataset()["devis"][0]
        editor = DevisEditor.from_document(doc)
        assert [z.nom for z in editor.zones] == ["Zone production"]
        assert editor.zones[0].lignes[0].id == "1"
        assert editor.totals.total_ttc == 14400
        assert editor.cee_result.kwh_cumac == 2940
        assert editor.totals.net_a_payer == 14394.12

    def test_lines_grouped_by_zone_in_first_seen_order(self):
        rows = [
            {"id": "a", "description": "A", "zone": "Z1", "quantite": 1, "prix_unitaire": 10},
            {"id": "b", "description": "B", "zone": "Z2", "quantite": 1, "prix_unitaire": 20},
            {"id": "c", "description": "C", "zone": "Z1", "quantite": 2, "prix_unitaire": 5},
        ]
        editor = DevisEditor.from_document({"lignes_data": rows})
        assert [z.nom for z in editor.zones] == ["Z1", "Z2"]
        assert [l.id for l in editor.zones[0].lignes] == ["a", "c"]
        assert editor.totals.total_ht == 40

    def test_flat_rows_keep_zone_and_order(self):
        editor, zone_id, _ = _production_editor()
        second = editor.add_line(zone_id)
        editor.update_line(zone_id, second, "prix_unitaire", 100)
        rows = editor.to_lignes_data()
        assert [r["ordre"] for r in rows] == [1, 2]
        assert {r["zone"] for r in rows} == {"Zone production"}
        assert rows[0]["total_ht"] == 12000
        assert rows[0]["total_ttc"] == pytest.approx(14400)


class TestStaleResponses:
    def test_response_after_local_edit_is_ignored(self):
        editor, zone_id, line_id = _production_editor()
        token = editor.edit_token
        saved = {"lignes_data": editor.to_lignes_data()}

        editor.update_line(zone_id, line_id, "quantite", 2)
        assert editor.accept_persisted(saved, token) is False
        assert editor.get_line(zone_id, line_id).quantite == 2
        assert editor.totals.total_ht == 24000

    def test_response_without_local_edit_is_applied(self):
        editor, _, _ = _production_editor()
        token = editor.edit_token
        assert editor.accept_persisted(demo_dataset()["devis"][0], token) is True
        assert editor.cee_result.kwh_cumac == 2940

    def test_every_mutation_moves_token(self):
        editor = DevisEditor()
        tokens = [editor.edit_token]
        zone_id = editor.add_zone()
        tokens.append(editor.edit_token)
        editor.add_line(zone_id)
        tokens.append(editor.edit_token)
        editor.set_cee_mode("information")
        tokens.append(editor.edit_token)
        assert tokens == sorted(set(tokens))
