"""
category_suggestions.py — keyword-based category suggestions.

Shown when automatic resolution leaves the category open: every detail
category (level 3+) is scored by how many words of its path occur in the
listing text, and the best three paths are offered to the seller.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

import config
from category_tree import (
    PATH_SEPARATOR,
    CategoryNode,
    CategorySelection,
    build_tree,
    category_name,
    category_path,
)

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 3
MULTI_MATCH_BONUS = 1.5
CONFIDENCE_SCALE = 20

_STOP_WORDS = frozenset({"und", "der", "die", "das", "für", "von", "mit"})
_SPLIT_RE = re.compile(r"[\s&,-]+")


@dataclass(frozen=True)
class CategorySuggestion:
    path: str
    selection: CategorySelection
    confidence: float       # 0..1
    reasoning: str


def path_keywords(names: Sequence[str]) -> list[str]:
    """Words of the path segment names, minus short words and stop words."""
    words: list[str] = []
    for name in names:
        for word in _SPLIT_RE.split(name.lower()):
            if len(word) > 2 and word not in _STOP_WORDS:
                words.append(word)
    return words


def suggest_categories(
    title: str,
    description: str,
    tree: Sequence[CategoryNode],
    locale: Optional[str] = None,
    limit: int = MAX_SUGGESTIONS,
) -> list[CategorySuggestion]:
    if not title or not description:
        raise ValueError("Title and description are required for category suggestions")
    locale = locale or config.ANALYSIS_LOCALE
    nodes = build_tree(tree)
    text = f"{title} {description}".lower()

    suggestions: list[CategorySuggestion] = []
    for end in (c for c in nodes if c.level >= 3):
        path = category_path(end.id, nodes)
        if not path or path[0].level != 1:
            continue            # orphaned branch
        names = [category_name(n, locale) for n in path]
        matched = [kw for kw in path_keywords(names) if kw in text]
        if not matched:
            continue

        points = float(sum(len(kw) for kw in matched))
        if len(matched) > 1:
            points *= MULTI_MATCH_BONUS
        try:
            selection = CategorySelection(**{f"level{n.level}": n for n in path})
        except ValueError as exc:
            logger.warning("Skipping inconsistent category path to %s: %s", end.slug, exc)
            continue
        suggestions.append(CategorySuggestion(
            path=PATH_SEPARATOR.join(names),
            selection=selection,
            confidence=min(points / CONFIDENCE_SCALE, 1.0),
            reasoning=f"Passende Keywords: {', '.join(matched)}",
        ))

    suggestions.sort(key=lambda s: s.confidence, reverse=True)
    return suggestions[:limit]
