"""
Tests for category_resolver.py.

Covers:
  - Level 1: name / English name / slug containment in either direction
  - Level 2/3 tiers: direct → semantic (mapping table) → inferred (text)
  - Cascade stops at the first tier that matches
  - Inference rules from listing_keywords.json (car brands, tableware)
  - Best effort: empty / malformed trees and unknown text never raise
"""
from __future__ import annotations

from collections.abc import Iterator, Mapping
from unittest.mock import patch

import pytest

from category_resolver import resolve_category
from category_tree import MatchTier, SelectionStatus


class ExplodingMapping(Mapping):
    """Fails the test if the resolver consults the synonym table."""

    def __getitem__(self, key):
        raise AssertionError(f"mapping consulted for {key!r}")

    def get(self, key, default=None):
        raise AssertionError(f"mapping consulted for {key!r}")

    def __iter__(self) -> Iterator:
        return iter(())

    def __len__(self) -> int:
        return 0


# ── Level 1 ───────────────────────────────────────────────────────────────────

class TestMainCategory:
    def test_german_name(self, category_tree):
        result = resolve_category("Fahrzeuge", None, "", category_tree)
        assert result.level1.id == "c-fahrzeuge"
        assert result.tiers[1] == MatchTier.DIRECT

    def test_english_name(self, category_tree):
        result = resolve_category("Vehicles", None, "", category_tree)
        assert result.level1.id == "c-fahrzeuge"

    def test_slug(self, category_tree):
        result = resolve_category("haushalt-moebel", None, "", category_tree)
        assert result.level1.id == "c-haushalt"

    def test_free_text_contains_name(self, category_tree):
        result = resolve_category("Elektronik & Zubehör", None, "", category_tree)
        assert result.level1.id == "c-elektronik"

    def test_name_contains_free_text(self, category_tree):
        result = resolve_category("haushalt", None, "", category_tree)
        assert result.level1.id == "c-haushalt"

    def test_case_insensitive(self, category_tree):
        result = resolve_category("FAHRZEUGE", None, "", category_tree)
        assert result.level1.id == "c-fahrzeuge"

    @pytest.mark.parametrize("category", [None, "", "   ", "Kunst"])
    def test_no_main_category_is_unresolved(self, category_tree, category):
        result = resolve_category(category, "Autos", "BMW 320d", category_tree)
        assert result.status == SelectionStatus.UNRESOLVED
        assert result.final_category_id is None


# ── Level 2 / 3 tiers ─────────────────────────────────────────────────────────

class TestSubcategoryTiers:
    def test_direct_name_match(self, category_tree):
        result = resolve_category("Fahrzeuge", "PKW", "", category_tree)
        assert result.level2.id == "c-autos"
        assert result.tiers[2] == MatchTier.DIRECT

    def test_direct_slug_match(self, category_tree):
        result = resolve_category("Haushalt", "Küche Esszimmer", "", category_tree)
        assert result.level2.id == "c-kueche"
        assert result.tiers[2] == MatchTier.DIRECT

    def test_semantic_via_mapping(self, category_tree):
        result = resolve_category("Fahrzeuge", "Autos", "BMW 3er Limousine", category_tree)
        assert result.level1.id == "c-fahrzeuge"
        assert result.level2.id == "c-autos"
        assert result.tiers[2] == MatchTier.SEMANTIC
        assert result.status == SelectionStatus.RESOLVED

    def test_semantic_with_explicit_mapping(self, category_tree):
        result = resolve_category(
            "Fahrzeuge", "Zweirad", "", category_tree,
            mapping_l2={"zweirad": ["roller"]}, mapping_l3={},
        )
        assert result.level2.id == "c-motorrad"
        assert result.tiers[2] == MatchTier.SEMANTIC

    def test_inferred_from_slug_in_text(self, category_tree):
        with patch("category_resolver._match_direct") as direct, \
             patch("category_resolver._match_semantic") as semantic:
            result = resolve_category(
                "Fahrzeuge", "", "Verkaufe meinen Wagen, Rubrik autos-pkw", category_tree,
            )
        assert result.level2.id == "c-autos"
        assert result.tiers[2] == MatchTier.INFERRED
        direct.assert_not_called()
        semantic.assert_not_called()

    def test_blank_subcategory_never_consults_mapping(self, category_tree):
        result = resolve_category(
            "Fahrzeuge", "  ", "Motorräder & Roller: Vespa PX 125", category_tree,
            mapping_l2=ExplodingMapping(), mapping_l3=ExplodingMapping(),
        )
        assert result.level2.id == "c-motorrad"
        assert result.tiers[2] == MatchTier.INFERRED

    def test_direct_hit_skips_later_tiers(self, node):
        tree = [
            node("c-fahrzeuge", 1, "fahrzeuge", "Fahrzeuge"),
            node("c-autos", 2, "autos-pkw", "PKW", parent_id="c-fahrzeuge"),
        ]
        with patch("category_resolver._infer_from_text") as infer:
            result = resolve_category(
                "Fahrzeuge", "PKW", "BMW", tree,
                mapping_l2=ExplodingMapping(), mapping_l3=ExplodingMapping(),
            )
        assert result.level2.id == "c-autos"
        infer.assert_not_called()

    def test_level3_direct(self, node):
        tree = [
            node("c-fahrzeuge", 1, "fahrzeuge", "Fahrzeuge"),
            node("c-autos", 2, "autos", "Autos", parent_id="c-fahrzeuge"),
            node("c-oldtimer", 3, "oldtimer-autos", "Oldtimer-Autos", parent_id="c-autos"),
        ]
        result = resolve_category("Fahrzeuge", "Autos", "", tree)
        assert result.level3.id == "c-oldtimer"
        assert result.tiers == {1: MatchTier.DIRECT, 2: MatchTier.DIRECT, 3: MatchTier.DIRECT}

    def test_level3_semantic(self, category_tree):
        result = resolve_category(
            "Fahrzeuge", "PKW", "", category_tree,
            mapping_l3={"pkw": ["kombis"]},
        )
        assert result.level3.id == "c-kombis"
        assert result.tiers[3] == MatchTier.SEMANTIC
        assert result.final_category_id == "c-kombis"

    def test_level3_inferred_from_name(self, category_tree):
        result = resolve_category("Haushalt", "Geschirr", "Porzellan-Teller, 6 Stück", category_tree)
        assert result.level2.id == "c-kueche"
        assert result.tiers[2] == MatchTier.SEMANTIC
        assert result.level3.id == "c-geschirr"
        assert result.tiers[3] == MatchTier.INFERRED

    def test_unmatched_subcategory_is_partial(self, category_tree):
        result = resolve_category("Elektronik", "Waschmaschine", "Bosch Waschmaschine", category_tree)
        assert result.level1.id == "c-elektronik"
        assert result.level2 is None
        assert result.status == SelectionStatus.PARTIAL
        assert result.final_category_id == "c-elektronik"

    def test_level2_without_children_stops(self, category_tree):
        result = resolve_category("Elektronik", "Smartphones", "iPhone 13", category_tree)
        assert result.level2.id == "c-handys"
        assert result.level3 is None
        assert 3 not in result.tiers


# ── Inference rules ───────────────────────────────────────────────────────────

class TestInferenceRules:
    def test_car_brand_selects_cars(self, category_tree):
        result = resolve_category("Fahrzeuge", None, "BMW 320d Touring, Diesel", category_tree)
        assert result.level2.id == "c-autos"
        assert result.tiers[2] == MatchTier.INFERRED

    def test_plates_select_tableware(self, category_tree):
        result = resolve_category("Haushalt", "Küche", "Sechs flache Teller, weiß", category_tree)
        assert result.level3.id == "c-geschirr"
        assert result.tiers[3] == MatchTier.INFERRED

    def test_forks_select_cutlery(self, category_tree):
        result = resolve_category("Haushalt", "Küche", "Gabel und Messer, 12-teilig", category_tree)
        assert result.level3.id == "c-besteck"

    def test_rule_needs_matching_slug(self, category_tree):
        result = resolve_category("Elektronik", None, "BMW Navigationsgerät", category_tree)
        assert result.level2 is None

    def test_brand_inside_longer_word_ignored(self, category_tree):
        result = resolve_category(
            "Fahrzeuge", "Anhänger", "Fahrradanhänger für Kinder, kein Werkzeug erforderlich",
            category_tree,
        )
        assert result.level2 is None
        assert result.status == SelectionStatus.PARTIAL
        assert result.final_category_id == "c-fahrzeuge"

    def test_brand_as_whole_word(self, category_tree):
        result = resolve_category("Fahrzeuge", None, "Ford Focus Turnier, 2. Hand", category_tree)
        assert result.level2.id == "c-autos"
        assert result.tiers[2] == MatchTier.INFERRED

    @pytest.fixture
    def dining_tree(self, node):
        return [
            node("c-haushalt", 1, "haushalt-moebel", "Haushalt & Möbel"),
            node("c-kueche", 2, "kueche-esszimmer", "Küche & Esszimmer", parent_id="c-haushalt"),
            node("c-glaeser", 3, "glaeser", "Trinkgefäße", parent_id="c-kueche"),
            node("c-esstische", 3, "esstische", "Esstische", parent_id="c-kueche", sort_order=1),
        ]

    def test_keyword_prefix_of_longer_word_ignored(self, dining_tree):
        result = resolve_category(
            "Haushalt", "Küche", "Ausziehbarer Tisch mit Glasplatte", dining_tree, mapping_l3={},
        )
        assert result.level2.id == "c-kueche"
        assert result.level3 is None
        assert result.final_category_id == "c-kueche"

    def test_keyword_as_whole_word(self, dining_tree):
        result = resolve_category(
            "Haushalt", "Küche", "Glas mit Goldrand, mundgeblasen", dining_tree, mapping_l3={},
        )
        assert result.level3.id == "c-glaeser"
        assert result.tiers[3] == MatchTier.INFERRED


# ── Best effort ───────────────────────────────────────────────────────────────

class TestBestEffort:
    def test_empty_tree(self):
        result = resolve_category("Fahrzeuge", "Autos", "BMW", [])
        assert result.status == SelectionStatus.UNRESOLVED

    def test_malformed_rows_ignored(self):
        rows = [
            {"id": "broken"},
            {"id": "c-fahrzeuge", "parent_id": None, "level": 1, "slug": "fahrzeuge",
             "translations": {"de": {"name": "Fahrzeuge"}}},
            {"id": "c-autos", "parent_id": "c-fahrzeuge", "level": 2, "slug": "autos-pkw",
             "translations": {"de": {"name": "PKW"}}},
        ]
        result = resolve_category("Fahrzeuge", "Autos", "", rows)
        assert result.level2.id == "c-autos"

    def test_locale_override(self, category_tree):
        result = resolve_category("Vehicles", None, "", category_tree, locale="EN")
        assert result.level1.id == "c-fahrzeuge"

    def test_deterministic(self, category_tree):
        first = resolve_category("Haushalt", "Geschirr", "Teller", category_tree)
        second = resolve_category("Haushalt", "Geschirr", "Teller", category_tree)
        assert first == second
        assert first.tiers == second.tiers
