"""
scoring.py — decide which photo analysis describes the actual item.

Sellers often add a photo of the vehicle papers or a receipt next to the
item photos. The vision model then dutifully describes "Fahrzeugschein" as
if it were for sale. Each analysis gets an additive score:

  -1000  title contains a document keyword (schein, papier, brief, …)
  +price documents are usually valued at a few euros
  +len(description) / 10
  +100   brand present
  +10    per feature
  +1     first (cover) photo

The penalty is not absolute: when every photo is a document the ranking
still works, because all candidates carry the same penalty.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import keyword_store
from providers.base import AnalysisResult

logger = logging.getLogger(__name__)

DOCUMENT_PENALTY = 1000
BRAND_BONUS      = 100
FEATURE_BONUS    = 10
PRIMARY_BONUS    = 1


class EmptyBatchError(ValueError):
    """Raised when the pipeline is asked to rank or merge zero analyses."""


@dataclass(frozen=True)
class ScoredAnalysis:
    analysis: AnalysisResult
    score: float
    index: int              # original photo position
    is_document: bool


def is_document(analysis: AnalysisResult, keywords: Optional[Sequence[str]] = None) -> bool:
    """True when the title reads like a photographed paper document."""
    if keywords is None:
        keywords = keyword_store.get_keywords().document_keywords
    title = analysis.title.lower()
    return any(kw in title for kw in keywords)


def score(
    analysis: AnalysisResult,
    index: int,
    keywords: Optional[Sequence[str]] = None,
) -> ScoredAnalysis:
    document = is_document(analysis, keywords)

    points = 0.0
    if document:
        points -= DOCUMENT_PENALTY
    points += analysis.price
    points += len(analysis.description) / 10
    if analysis.brand:
        points += BRAND_BONUS
    points += FEATURE_BONUS * len(analysis.features)
    if index == 0:
        points += PRIMARY_BONUS

    return ScoredAnalysis(analysis=analysis, score=points, index=index, is_document=document)


def rank(
    analyses: Sequence[AnalysisResult],
    indices: Optional[Sequence[int]] = None,
    keywords: Optional[Sequence[str]] = None,
) -> list[ScoredAnalysis]:
    """
    Score every analysis and sort best-first.

    `indices` are the original photo positions (defaults to 0..n-1). Equal
    scores keep their input order; there is no other tie-break.
    """
    if not analyses:
        raise EmptyBatchError("Cannot rank an empty list of analyses")
    if indices is None:
        indices = range(len(analyses))
    if len(indices) != len(analyses):
        raise ValueError("indices must have one entry per analysis")
    if keywords is None:
        keywords = keyword_store.get_keywords().document_keywords

    scored = [score(a, i, keywords) for a, i in zip(analyses, indices)]
    scored.sort(key=lambda s: s.score, reverse=True)

    logger.debug(
        "Analysis ranking: %s",
        [(s.index, s.analysis.title[:40], round(s.score, 1), s.is_document) for s in scored],
    )
    return scored
