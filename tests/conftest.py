"""
Shared pytest fixtures.

Every test starts with empty process-level caches (keyword tables, vision
provider) so tests are isolated from each other and from a developer's .env.
"""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# ── Make the project root importable without installing the package ────────────
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture(autouse=True)
def reset_caches(monkeypatch):
    """Point config at the shipped data files and drop cached tables/providers."""
    import config
    import keyword_store
    import providers.manager as manager_mod

    monkeypatch.setattr(config, "LISTING_KEYWORDS_FILE", None)
    monkeypatch.setattr(config, "CATEGORY_MAPPINGS_FILE", None)
    monkeypatch.setattr(config, "ANALYSIS_LOCALE", "de")
    keyword_store.reset()
    manager_mod._provider = None
    yield
    keyword_store.reset()
    manager_mod._provider = None


def make_node(node_id: str, level: int, slug: str, name: str,
              parent_id: str | None = None, en: str | None = None,
              sort_order: int = 0):
    from category_tree import CategoryNode
    translations = {"de": {"name": name}}
    if en:
        translations["en"] = {"name": en}
    return CategoryNode(
        id=node_id, level=level, parent_id=parent_id, slug=slug,
        translations=translations, sort_order=sort_order,
    )


@pytest.fixture
def category_tree():
    """A small slice of the marketplace tree."""
    return [
        make_node("c-fahrzeuge", 1, "fahrzeuge", "Fahrzeuge", en="Vehicles"),
        make_node("c-haushalt", 1, "haushalt-moebel", "Haushalt & Möbel", en="Home & Furniture"),
        make_node("c-elektronik", 1, "elektronik", "Elektronik", en="Electronics"),
        make_node("c-autos", 2, "autos-pkw", "PKW", parent_id="c-fahrzeuge"),
        make_node("c-motorrad", 2, "motorraeder-roller", "Motorräder & Roller", parent_id="c-fahrzeuge"),
        make_node("c-limousinen", 3, "limousinen", "Limousinen", parent_id="c-autos"),
        make_node("c-kombis", 3, "kombis", "Kombis", parent_id="c-autos"),
        make_node("c-kueche", 2, "kueche-esszimmer", "Küche & Esszimmer", parent_id="c-haushalt"),
        make_node("c-geschirr", 3, "geschirr-porzellan", "Porzellan", parent_id="c-kueche"),
        make_node("c-besteck", 3, "besteck", "Tafelsilber", parent_id="c-kueche"),
        make_node("c-handys", 2, "smartphones-tablets", "Smartphones & Tablets", parent_id="c-elektronik"),
    ]


@pytest.fixture
def node():
    """Factory for CategoryNode objects: node(id, level, slug, name, parent_id=…)."""
    return make_node
