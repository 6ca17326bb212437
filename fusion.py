"""
fusion.py — merge several photo analyses of one item into one listing.

Rules:
  • The best-scored analysis is the base: its title, description, price and
    every other scalar are kept as-is.
  • features / colors / accessories / tags are unioned across all analyses
    (base values first, then each other analysis in photo order, no duplicates).
  • vehicle_* fields: first non-empty value wins. The base goes first, then
    the other analyses in photo order.
  • Photos of paperwork contribute "fact lines" (anything with a colon, a
    year, a mileage or a registration/inspection keyword), appended to the
    description under a header.

Inputs are never mutated; MergeBuilder records where every field came from.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, fields
from typing import Any, Optional, Sequence

import keyword_store
from keyword_store import ListingKeywords
from providers.base import SEQUENCE_FIELDS, VEHICLE_FIELDS, AnalysisResult
from scoring import EmptyBatchError, ScoredAnalysis

logger = logging.getLogger(__name__)

_YEAR_RE    = re.compile(r"\b(?:19|20)\d{2}\b")
_KM_RE      = re.compile(r"\d[\d.,]*\s*km\b", re.IGNORECASE)
FACT_BULLET = "• "


@dataclass(frozen=True)
class MergedAnalysis:
    analysis: AnalysisResult
    base_index: int
    provenance: dict[str, int] = field(default_factory=dict)            # scalar field → photo index
    contributors: dict[str, tuple[int, ...]] = field(default_factory=dict)  # sequence field → photo indices
    facts: tuple[str, ...] = ()


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def is_fact_line(line: str, fact_keywords: Sequence[str]) -> bool:
    if not line.strip():
        return False
    if ":" in line:
        return True
    if _YEAR_RE.search(line) or _KM_RE.search(line):
        return True
    lower = line.lower()
    return any(kw in lower for kw in fact_keywords)


def extract_facts(description: str, fact_keywords: Sequence[str]) -> list[str]:
    """Fact-like lines of a document description, trimmed, in order."""
    return [
        line.strip()
        for line in description.splitlines()
        if is_fact_line(line, fact_keywords)
    ]


class MergeBuilder:
    """Accumulates one merged listing, remembering the source of each value."""

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._sequences: dict[str, list[str]] = {name: [] for name in SEQUENCE_FIELDS}
        self._provenance: dict[str, int] = {}
        self._contributors: dict[str, list[int]] = {name: [] for name in SEQUENCE_FIELDS}
        self._facts: list[str] = []
        self._base_index: Optional[int] = None

    def seed(self, base: ScoredAnalysis) -> "MergeBuilder":
        """Take every field of the base analysis as the starting point."""
        self._base_index = base.index
        for f in fields(AnalysisResult):
            value = getattr(base.analysis, f.name)
            if f.name in SEQUENCE_FIELDS:
                self._sequences[f.name] = list(value)
                if value:
                    self._contributors[f.name].append(base.index)
                continue
            self._values[f.name] = value
            if not _is_empty(value):
                self._provenance[f.name] = base.index
        return self

    def absorb(self, other: ScoredAnalysis) -> "MergeBuilder":
        """Union sequence fields and fill still-empty vehicle fields from `other`."""
        for name in SEQUENCE_FIELDS:
            current = self._sequences[name]
            merged = list(dict.fromkeys(current))
            before = len(merged)
            for value in getattr(other.analysis, name):
                if value not in merged:
                    merged.append(value)
            if len(merged) > before:
                self._contributors[name].append(other.index)
            self._sequences[name] = merged

        for name in VEHICLE_FIELDS:
            value = getattr(other.analysis, name)
            if _is_empty(self._values.get(name)) and not _is_empty(value):
                self._values[name] = value
                self._provenance[name] = other.index
                logger.debug("vehicle field %s taken from photo %d", name, other.index)
        return self

    def add_facts(self, facts: Sequence[str]) -> "MergeBuilder":
        self._facts.extend(facts)
        return self

    def build(self, fact_header: str) -> MergedAnalysis:
        if self._base_index is None:
            raise EmptyBatchError("MergeBuilder.build() called before seed()")
        values = dict(self._values)
        for name in SEQUENCE_FIELDS:
            values[name] = tuple(self._sequences[name])
        if self._facts:
            bullets = "\n".join(FACT_BULLET + fact for fact in self._facts)
            values["description"] = f"{values['description']}\n\n{fact_header}\n{bullets}"
        return MergedAnalysis(
            analysis=AnalysisResult(**values),
            base_index=self._base_index,
            provenance=dict(self._provenance),
            contributors={k: tuple(v) for k, v in self._contributors.items() if v},
            facts=tuple(self._facts),
        )


def fuse(
    scored: Sequence[ScoredAnalysis],
    keywords: Optional[ListingKeywords] = None,
) -> MergedAnalysis:
    """
    Merge ranked analyses (best first, as returned by scoring.rank()).
    A single analysis comes back as an unchanged copy.
    """
    if not scored:
        raise EmptyBatchError("Cannot fuse an empty list of analyses")
    keywords = keywords or keyword_store.get_keywords()

    base = scored[0]
    builder = MergeBuilder().seed(base)
    if len(scored) == 1:
        return builder.build(keywords.fact_section_header)

    in_photo_order = sorted(scored, key=lambda s: s.index)
    for other in in_photo_order:
        if other is base:
            continue
        builder.absorb(other)

    for item in in_photo_order:
        if item.is_document and item.analysis.description:
            builder.add_facts(extract_facts(item.analysis.description, keywords.fact_line_keywords))

    merged = builder.build(keywords.fact_section_header)
    logger.info(
        "Fused %d analyses — base photo %d '%s', %d document facts",
        len(scored), base.index, base.analysis.title[:40], len(merged.facts),
    )
    return merged
