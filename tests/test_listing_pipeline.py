"""
Tests for listing_pipeline.py.

Covers:
  - assemble_listing(): rank → fuse → resolve on finished analyses
  - create_listing(): all photos vs. primary photo only, partial failures
  - ListingDraft: manual category override, item record columns
"""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

import config
from category_tree import MatchTier, SelectionStatus
from listing_pipeline import assemble_listing, create_listing
from providers.base import AnalysisResult, ProviderResult, VisionProvider
from scoring import EmptyBatchError


def make_analysis(title: str, description: str = "", price: float = 0, **kwargs) -> AnalysisResult:
    return AnalysisResult(title=title, description=description, price=price, **kwargs)


def make_result(analysis: AnalysisResult) -> ProviderResult:
    return ProviderResult(
        provider_name="google/gemini-1.5-pro",
        model_id="gemini-1.5-pro",
        analysis=analysis,
        latency_ms=800,
        input_tokens=900,
        output_tokens=300,
        cost_usd=0.01,
    )


def make_provider(*outcomes) -> VisionProvider:
    p = MagicMock(spec=VisionProvider)
    p.full_name = "google/gemini-1.5-pro"
    p.analyse = AsyncMock(side_effect=list(outcomes))
    return p


@pytest.fixture
def registration() -> AnalysisResult:
    return make_analysis(
        "Fahrzeugschein",
        description="Erstzulassung: 15.06.2015",
        price=5,
        category="Dokumente",
        vehicle_first_registration="2015-06-15",
    )


@pytest.fixture
def car() -> AnalysisResult:
    return make_analysis(
        "BMW 3er",
        description="Gepflegter BMW 320d",
        price=12000,
        category="Fahrzeuge",
        subcategory="Autos",
        brand="BMW",
        features=["Navi", "Klima"],
    )


class TestAssembleListing:
    def test_car_with_registration(self, category_tree, registration, car):
        draft = assemble_listing([registration, car], category_tree)

        assert draft.merged.base_index == 1
        assert draft.analysis.title == "BMW 3er"
        assert draft.analysis.vehicle_first_registration == "2015-06-15"
        assert "Erstzulassung: 15.06.2015" in draft.analysis.description
        assert draft.category_id == "c-autos"
        assert draft.category.tiers[2] == MatchTier.SEMANTIC
        assert not draft.needs_manual_category
        assert [s.index for s in draft.ranking] == [1, 0]

    def test_unknown_category_needs_manual_choice(self, category_tree):
        draft = assemble_listing([make_analysis("Gitarre", category="Musik")], category_tree)
        assert draft.category.status == SelectionStatus.UNRESOLVED
        assert draft.category_id is None
        assert draft.needs_manual_category

    def test_main_category_only_needs_manual_choice(self, category_tree):
        draft = assemble_listing(
            [make_analysis("Waschmaschine", category="Elektronik", subcategory="Weiße Ware")],
            category_tree,
        )
        assert draft.category.status == SelectionStatus.PARTIAL
        assert draft.needs_manual_category

    def test_indices_passed_to_ranking(self, category_tree, car):
        draft = assemble_listing([car], category_tree, indices=[4])
        assert draft.merged.base_index == 4

    def test_empty_raises(self, category_tree):
        with pytest.raises(EmptyBatchError):
            assemble_listing([], category_tree)


class TestListingDraft:
    def test_manual_category(self, category_tree, car):
        draft = assemble_listing([car], category_tree)
        chosen = draft.with_category("c-kombis", category_tree)
        assert chosen.category_id == "c-kombis"
        assert chosen.category.status == SelectionStatus.RESOLVED
        assert draft.category_id == "c-autos"

    def test_manual_category_unknown_id(self, category_tree, car):
        draft = assemble_listing([car], category_tree)
        with pytest.raises(ValueError, match="Unknown category"):
            draft.with_category("c-nope", category_tree)

    def test_item_record(self, category_tree, registration, car):
        record = assemble_listing([registration, car], category_tree).to_item_record()
        assert record["title"] == "BMW 3er"
        assert record["category_id"] == "c-autos"
        assert record["features"] == ["Navi", "Klima"]
        assert record["dimensions_length"] is None
        assert record["vehicle_first_registration"] == "2015-06-15"
        assert record["ai_generated"] is True


@pytest.mark.asyncio
class TestCreateListing:
    async def test_all_photos_analysed(self, category_tree, registration, car):
        provider = make_provider(make_result(registration), make_result(car))

        draft = await create_listing([b"papers", b"car"], category_tree, provider=provider)

        assert provider.analyse.await_count == 2
        assert draft.category_id == "c-autos"
        assert draft.failed_images == {}

    async def test_primary_only(self, category_tree, car):
        provider = make_provider(make_result(car))

        draft = await create_listing(
            [b"papers", b"car"], category_tree,
            analyse_all_images=False, primary_index=1, provider=provider,
        )

        provider.analyse.assert_awaited_once()
        assert provider.analyse.await_args.args[0] == b"car"
        assert draft.merged.base_index == 1
        assert draft.analysis.vehicle_first_registration is None

    async def test_config_default_for_all_images(self, category_tree, car, monkeypatch):
        monkeypatch.setattr(config, "ANALYZE_ALL_IMAGES", False)
        provider = make_provider(make_result(car))

        await create_listing([b"car", b"papers"], category_tree, provider=provider)

        provider.analyse.assert_awaited_once()

    async def test_failed_photo_reported(self, category_tree, car):
        provider = make_provider(make_result(car), RuntimeError("timeout"))

        draft = await create_listing([b"car", b"papers"], category_tree, provider=provider)

        assert draft.failed_images == {1: "timeout"}
        assert draft.analysis.title == "BMW 3er"

    async def test_all_failed_raises(self, category_tree):
        provider = make_provider(RuntimeError("timeout"), RuntimeError("timeout"))
        with pytest.raises(RuntimeError, match="All 2"):
            await create_listing([b"a", b"b"], category_tree, provider=provider)

    async def test_no_images_raises(self, category_tree):
        with pytest.raises(ValueError):
            await create_listing([], category_tree, provider=make_provider())
