"""
category_resolver.py — map the model's free-text category guesses onto the
marketplace category tree.

The vision model answers "Fahrzeuge" / "Autos", "Haushalt" / "Geschirr", …
in whatever wording it likes. Resolution walks the tree level by level and
tries progressively looser strategies per level; the first hit wins:

  Level 1   name (locale or English) or slug contains the free text, or vice versa

  Level 2/3 (children of the level above only)
    direct    subcategory text ⊂ name / name ⊂ text, or slugified text == slug
    semantic  subcategory is a key of the synonym table → child whose
              name or slug contains one of the candidate terms
    inferred  child's name or slug appears in title + description, or one of
              the inference rules fires (e.g. slug "autos" + text mentions "BMW")

A blank subcategory skips straight to "inferred". Nothing here raises for bad
data: an empty or malformed tree just yields an unresolved selection.
"""
from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional, Sequence

import config
import keyword_store
from category_tree import (
    CategoryNode,
    CategorySelection,
    MatchTier,
    build_tree,
    children_of,
    generate_category_slug,
)
from keyword_store import InferenceRule, ListingKeywords

logger = logging.getLogger(__name__)

FALLBACK_LOCALE = "en"


def _contains_either(needle: str, candidate: Optional[str]) -> bool:
    if not needle or not candidate:
        return False
    candidate = candidate.lower()
    return needle in candidate or candidate in needle


def _match_main_category(
    category: str,
    tree: Sequence[CategoryNode],
    locale: str,
) -> Optional[CategoryNode]:
    needle = category.strip().lower()
    if not needle:
        return None
    mains = sorted((c for c in tree if c.level == 1), key=lambda c: c.sort_order)
    for node in mains:
        candidates = (node.name(locale), node.name(FALLBACK_LOCALE), node.slug)
        if any(_contains_either(needle, c) for c in candidates):
            return node
    return None


def _match_direct(
    subcategory: str,
    children: Sequence[CategoryNode],
    locale: str,
) -> Optional[CategoryNode]:
    needle = subcategory.strip().lower()
    slug = generate_category_slug(subcategory)
    for child in children:
        if _contains_either(needle, child.name(locale)):
            return child
        if slug and child.slug.lower() == slug:
            return child
    return None


def _match_semantic(
    subcategory: str,
    children: Sequence[CategoryNode],
    mapping: Mapping[str, Sequence[str]],
    locale: str,
) -> Optional[CategoryNode]:
    terms = mapping.get(subcategory.strip().lower())
    if not terms:
        return None
    for term in terms:
        term = term.lower()
        for child in children:
            name = (child.name(locale) or "").lower()
            if term in name or term in child.slug.lower():
                return child
    return None


def _infer_from_text(
    text: str,
    children: Sequence[CategoryNode],
    rules: Iterable[InferenceRule],
    locale: str,
) -> Optional[CategoryNode]:
    text = text.lower()
    if not text.strip():
        return None
    rules = tuple(rules)
    for child in children:
        name = (child.name(locale) or "").lower()
        if name and name in text:
            return child
        if child.slug and child.slug.lower() in text:
            return child
        if any(rule.applies(child.slug, text) for rule in rules):
            return child
    return None


def _resolve_level(
    level: int,
    parent: CategoryNode,
    subcategory: Optional[str],
    text: str,
    tree: Sequence[CategoryNode],
    mapping: Mapping[str, Sequence[str]],
    rules: Iterable[InferenceRule],
    locale: str,
) -> Optional[tuple[CategoryNode, MatchTier]]:
    children = children_of(parent.id, tree, level=level)
    if not children:
        return None

    if subcategory and subcategory.strip():
        node = _match_direct(subcategory, children, locale)
        if node:
            return node, MatchTier.DIRECT
        node = _match_semantic(subcategory, children, mapping, locale)
        if node:
            return node, MatchTier.SEMANTIC

    node = _infer_from_text(text, children, rules, locale)
    if node:
        return node, MatchTier.INFERRED
    return None


def resolve_category(
    category: Optional[str],
    subcategory: Optional[str],
    title_and_description: str,
    tree: Sequence[CategoryNode],
    mapping_l2: Optional[Mapping[str, Sequence[str]]] = None,
    mapping_l3: Optional[Mapping[str, Sequence[str]]] = None,
    locale: Optional[str] = None,
    keywords: Optional[ListingKeywords] = None,
) -> CategorySelection:
    """
    Resolve free-text category guesses to one node per level (best effort).

    Missing mappings / keywords come from keyword_store. `tree` may also hold
    raw category-store rows; malformed entries are ignored.
    """
    locale = (locale or config.ANALYSIS_LOCALE).lower()
    nodes = build_tree(tree)
    if mapping_l2 is None or mapping_l3 is None:
        mappings = keyword_store.get_mappings()
        mapping_l2 = mappings.level2 if mapping_l2 is None else mapping_l2
        mapping_l3 = mappings.level3 if mapping_l3 is None else mapping_l3
    keywords = keywords or keyword_store.get_keywords()
    text = title_and_description or ""

    level1 = _match_main_category(category or "", nodes, locale)
    if level1 is None:
        logger.info("Category unresolved: no main category matches %r", category)
        return CategorySelection()

    tiers = {1: MatchTier.DIRECT}
    matched = _resolve_level(
        2, level1, subcategory, text, nodes, mapping_l2, keywords.rules_for(2), locale,
    )
    if matched is None:
        logger.info("Category %s: no subcategory matches %r", level1.slug, subcategory)
        return CategorySelection(level1=level1, tiers=tiers)

    level2, tiers[2] = matched
    matched = _resolve_level(
        3, level2, subcategory, text, nodes, mapping_l3, keywords.rules_for(3), locale,
    )
    if matched is None:
        logger.info("Category %s › %s (%s)", level1.slug, level2.slug, tiers[2].value)
        return CategorySelection(level1=level1, level2=level2, tiers=tiers)

    level3, tiers[3] = matched
    logger.info(
        "Category %s › %s (%s) › %s (%s)",
        level1.slug, level2.slug, tiers[2].value, level3.slug, tiers[3].value,
    )
    return CategorySelection(level1=level1, level2=level2, level3=level3, tiers=tiers)
