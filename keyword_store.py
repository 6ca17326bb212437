"""
keyword_store.py — versioned keyword and synonym tables.

Priority order for each table file:
  1. Path from the environment (LISTING_KEYWORDS_FILE / CATEGORY_MAPPINGS_FILE)
  2. The file shipped in data/

Files are parsed once and cached. Call reset() after pointing config at a
different file (tests do this between runs).

listing_keywords.json:
  document_keywords     — title stems marking a photo of paperwork, not the item
  fact_line_keywords    — extra stems that make a document line worth keeping
  fact_section_header   — header above the appended document facts
  inference_rules       — {level2: [...], level3: [...]}, each rule
                          {"slug_tokens": [...], "text_keywords": [...]}

category_mappings.json:
  level2 / level3       — free-text keyword → candidate terms
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import config

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"
DEFAULT_KEYWORDS_FILE = DATA_DIR / "listing_keywords.json"
DEFAULT_MAPPINGS_FILE = DATA_DIR / "category_mappings.json"


@dataclass(frozen=True)
class InferenceRule:
    """A child category whose slug holds a slug token matches when the text holds a keyword as a whole word."""
    slug_tokens: tuple[str, ...]
    text_keywords: tuple[str, ...]
    _pattern: Optional[re.Pattern] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # Whole words only: "ford" must not fire on "erforderlich"
        if self.text_keywords:
            alternatives = "|".join(re.escape(kw) for kw in self.text_keywords)
            object.__setattr__(
                self, "_pattern", re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE),
            )

    def applies(self, slug: str, text: str) -> bool:
        slug = slug.lower()
        if self._pattern is None or not any(tok in slug for tok in self.slug_tokens):
            return False
        return self._pattern.search(text) is not None


@dataclass(frozen=True)
class ListingKeywords:
    document_keywords: tuple[str, ...]
    fact_line_keywords: tuple[str, ...]
    fact_section_header: str
    level2_rules: tuple[InferenceRule, ...] = ()
    level3_rules: tuple[InferenceRule, ...] = ()

    def rules_for(self, level: int) -> tuple[InferenceRule, ...]:
        if level == 2:
            return self.level2_rules
        if level == 3:
            return self.level3_rules
        return ()


@dataclass(frozen=True)
class CategoryMappings:
    level2: dict[str, tuple[str, ...]] = field(default_factory=dict)
    level3: dict[str, tuple[str, ...]] = field(default_factory=dict)


_keywords: Optional[ListingKeywords] = None
_mappings: Optional[CategoryMappings] = None


def _read_json(path: Path) -> dict:
    try:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Cannot load keyword table {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Keyword table {path} must contain a JSON object")
    return data


def _str_tuple(values, path: Path, key: str) -> tuple[str, ...]:
    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        raise ValueError(f"{path}: '{key}' must be a list of strings")
    return tuple(v.strip().lower() for v in values if v.strip())


def _parse_rules(raw, path: Path, key: str) -> tuple[InferenceRule, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list) or not all(isinstance(r, dict) for r in raw):
        raise ValueError(f"{path}: '{key}' must be a list of rule objects")
    return tuple(
        InferenceRule(
            slug_tokens=_str_tuple(rule.get("slug_tokens", []), path, f"{key}.slug_tokens"),
            text_keywords=_str_tuple(rule.get("text_keywords", []), path, f"{key}.text_keywords"),
        )
        for rule in raw
    )


def _parse_mapping(raw, path: Path, key: str) -> dict[str, tuple[str, ...]]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: '{key}' must be an object")
    return {
        k.strip().lower(): _str_tuple(v, path, f"{key}.{k}")
        for k, v in raw.items()
    }


def _option(data: dict, key: str, alias: str) -> list:
    """snake_case key, or its camelCase alias from older exports."""
    if key in data:
        return data[key]
    return data.get(alias, [])


def load_keywords(path: Path | str) -> ListingKeywords:
    """Parse a listing_keywords.json file. Raises ValueError on bad content."""
    path = Path(path)
    data = _read_json(path)
    rules = data.get("inference_rules") or {}
    if not isinstance(rules, dict):
        raise ValueError(f"{path}: 'inference_rules' must be an object")
    return ListingKeywords(
        document_keywords=_str_tuple(_option(data, "document_keywords", "documentKeywords"), path, "document_keywords"),
        fact_line_keywords=_str_tuple(_option(data, "fact_line_keywords", "factLineKeywords"), path, "fact_line_keywords"),
        fact_section_header=str(data.get("fact_section_header") or "Zusätzliche Informationen:"),
        level2_rules=_parse_rules(rules.get("level2"), path, "inference_rules.level2"),
        level3_rules=_parse_rules(rules.get("level3"), path, "inference_rules.level3"),
    )


def load_mappings(path: Path | str) -> CategoryMappings:
    """Parse a category_mappings.json file. Raises ValueError on bad content."""
    path = Path(path)
    data = _read_json(path)
    return CategoryMappings(
        level2=_parse_mapping(data.get("level2"), path, "level2"),
        level3=_parse_mapping(data.get("level3"), path, "level3"),
    )


def get_keywords() -> ListingKeywords:
    global _keywords
    if _keywords is None:
        path = Path(config.LISTING_KEYWORDS_FILE or DEFAULT_KEYWORDS_FILE)
        _keywords = load_keywords(path)
        logger.info(
            "Loaded listing keywords from %s (%d document, %d fact keywords)",
            path, len(_keywords.document_keywords), len(_keywords.fact_line_keywords),
        )
    return _keywords


def get_mappings() -> CategoryMappings:
    global _mappings
    if _mappings is None:
        path = Path(config.CATEGORY_MAPPINGS_FILE or DEFAULT_MAPPINGS_FILE)
        _mappings = load_mappings(path)
        logger.info(
            "Loaded category mappings from %s (%d level-2, %d level-3 keys)",
            path, len(_mappings.level2), len(_mappings.level3),
        )
    return _mappings


def reset() -> None:
    """Drop the cached tables so the next lookup re-reads the files."""
    global _keywords, _mappings
    _keywords = None
    _mappings = None
