"""
listing_pipeline.py — public interface for turning item photos into a listing draft.

The rest of the app imports only from here:
  from listing_pipeline import create_listing, assemble_listing, ListingDraft

Flow:
  photos ──(one vision call each, concurrent)──▶ AnalysisResult per photo
         ──▶ scoring.rank()            best description first, paperwork last
         ──▶ fusion.fuse()             one merged AnalysisResult
         ──▶ resolve_category()        category node per level
         ──▶ ListingDraft              handed to the item store
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import config
from category_resolver import resolve_category
from category_tree import CategoryNode, CategorySelection, SelectionStatus, build_tree, selection_for
from fusion import MergedAnalysis, fuse
from keyword_store import CategoryMappings, ListingKeywords
from providers.base import AnalysisResult, PromptSettings, VisionProvider
from providers.manager import analyse_images
from scoring import EmptyBatchError, ScoredAnalysis, rank

logger = logging.getLogger(__name__)

__all__ = ["ListingDraft", "assemble_listing", "create_listing"]


@dataclass
class ListingDraft:
    merged: MergedAnalysis
    category: CategorySelection
    ranking: list[ScoredAnalysis]
    failed_images: dict[int, str] = field(default_factory=dict)

    @property
    def analysis(self) -> AnalysisResult:
        return self.merged.analysis

    @property
    def category_id(self) -> Optional[str]:
        return self.category.final_category_id

    @property
    def needs_manual_category(self) -> bool:
        """True when the seller has to pick (or confirm) the category."""
        return self.category.status != SelectionStatus.RESOLVED

    def with_category(self, category_id: str, tree: Sequence[CategoryNode]) -> "ListingDraft":
        """Copy of this draft with a manually chosen category."""
        selection = selection_for(category_id, build_tree(tree))
        if selection.level1 is None:
            raise ValueError(f"Unknown category id {category_id!r}")
        return dataclasses.replace(self, category=selection)

    def to_item_record(self) -> dict[str, Any]:
        """Columns written onto the stored item."""
        a = self.analysis
        dims = a.dimensions
        record: dict[str, Any] = {
            "title": a.title,
            "description": a.description,
            "price": a.price,
            "category_id": self.category_id,
            "category": a.category,
            "subcategory": a.subcategory,
            "condition": a.condition,
            "brand": a.brand,
            "size": a.size,
            "weight": a.weight,
            "dimensions_length": dims.length if dims else None,
            "dimensions_width": dims.width if dims else None,
            "dimensions_height": dims.height if dims else None,
            "material": a.material,
            "style": a.style,
            "serial_number": a.serial_number,
            "colors": list(a.colors),
            "features": list(a.features),
            "accessories": list(a.accessories),
            "tags": list(a.tags),
            "estimated_weight_kg": a.estimated_weight_kg,
            "ai_shipping_domestic": a.shipping_domestic,
            "ai_shipping_international": a.shipping_international,
            "ai_generated": True,
        }
        for name in (
            "vehicle_brand", "vehicle_year", "vehicle_mileage", "vehicle_fuel_type",
            "vehicle_color", "vehicle_power_kw", "vehicle_first_registration",
            "vehicle_tuv_until",
        ):
            record[name] = getattr(a, name)
        return record


def assemble_listing(
    analyses: Sequence[AnalysisResult],
    tree: Sequence[CategoryNode],
    indices: Optional[Sequence[int]] = None,
    locale: Optional[str] = None,
    keywords: Optional[ListingKeywords] = None,
    mappings: Optional[CategoryMappings] = None,
) -> ListingDraft:
    """
    Synchronous join stage: rank, fuse and categorise finished analyses.

    Raises EmptyBatchError if `analyses` is empty.
    """
    if not analyses:
        raise EmptyBatchError("assemble_listing() needs at least one analysis")

    ranking = rank(analyses, indices, keywords.document_keywords if keywords else None)
    merged = fuse(ranking, keywords)
    result = merged.analysis
    category = resolve_category(
        result.category,
        result.subcategory,
        result.text,
        tree,
        mapping_l2=mappings.level2 if mappings else None,
        mapping_l3=mappings.level3 if mappings else None,
        locale=locale,
        keywords=keywords,
    )
    return ListingDraft(merged=merged, category=category, ranking=ranking)


async def create_listing(
    images: Sequence[bytes],
    tree: Sequence[CategoryNode],
    settings: Optional[PromptSettings] = None,
    analyse_all_images: Optional[bool] = None,
    primary_index: int = 0,
    locale: Optional[str] = None,
    provider: Optional[VisionProvider] = None,
) -> ListingDraft:
    """
    Analyse the item's photos and build a listing draft.

    Args:
        images:             raw bytes of every photo, in display order.
        tree:               full category tree from the category store.
        settings:           seller's text preferences for the prompt.
        analyse_all_images: False → only the primary photo is analysed.
                            Defaults to config.ANALYZE_ALL_IMAGES.
        primary_index:      position of the cover photo.

    Raises:
        ValueError:   no images.
        RuntimeError: every vision call failed.
    """
    if not images:
        raise ValueError("create_listing() needs at least one image")
    if analyse_all_images is None:
        analyse_all_images = config.ANALYZE_ALL_IMAGES
    if not 0 <= primary_index < len(images):
        primary_index = 0

    if analyse_all_images:
        batch = await analyse_images(images, settings, provider)
    else:
        batch = await analyse_images(
            [images[primary_index]], settings, provider, indices=[primary_index],
        )

    draft = assemble_listing(batch.analyses, tree, indices=batch.indices, locale=locale)
    draft.failed_images = dict(batch.failures)

    logger.info(
        "Listing draft '%s' — %d/%d photos, category %s (%s), cost $%.4f",
        draft.analysis.title[:40], len(batch.results), len(batch.results) + len(batch.failures),
        draft.category_id, draft.category.status.value, batch.total_cost_usd,
    )
    return draft
