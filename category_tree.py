"""
category_tree.py — the marketplace's category hierarchy (read-only here).

Categories come from the category store as flat rows:
  {id, parent_id, level, slug, translations: {de: {name, description, tags}, en: …}, sort_order}

Level 1 = main category (Fahrzeuge), 2 = subcategory (Autos),
3 = detail category (Limousinen), 4 = variant (Diesel, Automatik).
"""
from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "de"
MAX_LEVEL = 4
PATH_SEPARATOR = " › "

_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
_UMLAUTS = (("ä", "ae"), ("ö", "oe"), ("ü", "ue"), ("ß", "ss"))


@dataclass(frozen=True)
class CategoryNode:
    id: str
    level: int
    parent_id: Optional[str]
    slug: str
    translations: dict[str, dict[str, Any]] = field(default_factory=dict, hash=False, compare=False)
    sort_order: int = 0

    def name(self, locale: str = DEFAULT_LOCALE) -> Optional[str]:
        """Translated name in exactly this locale, or None."""
        entry = self.translations.get(locale)
        if isinstance(entry, dict):
            value = entry.get("name")
            if isinstance(value, str) and value.strip():
                return value
        return None

    @classmethod
    def from_row(cls, row: dict) -> "CategoryNode":
        """Build from a category-store row. Raises ValueError on malformed rows."""
        try:
            level = int(row["level"])
            node_id = str(row["id"])
            slug = str(row["slug"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed category row {row!r}: {exc}") from exc
        if not 1 <= level <= MAX_LEVEL:
            raise ValueError(f"Category {node_id} has level {level}, expected 1..{MAX_LEVEL}")
        parent = row.get("parent_id")
        if level > 1 and parent is None:
            raise ValueError(f"Category {node_id} (level {level}) has no parent_id")
        translations = row.get("translations") or {}
        if not isinstance(translations, dict):
            raise ValueError(f"Category {node_id} translations must be an object")
        return cls(
            id=node_id,
            level=level,
            parent_id=str(parent) if parent is not None else None,
            slug=slug,
            translations=translations,
            sort_order=int(row.get("sort_order") or 0),
        )


def build_tree(rows: Iterable[Any]) -> list[CategoryNode]:
    """Convert store rows to nodes, skipping (and logging) malformed ones."""
    nodes: list[CategoryNode] = []
    for row in rows or ():
        if isinstance(row, CategoryNode):
            nodes.append(row)
            continue
        if not isinstance(row, dict):
            logger.warning("Skipping category row of type %s", type(row).__name__)
            continue
        try:
            nodes.append(CategoryNode.from_row(row))
        except ValueError as exc:
            logger.warning("Skipping category: %s", exc)
    return nodes


# ── Selection ─────────────────────────────────────────────────────────────────

class MatchTier(str, enum.Enum):
    DIRECT   = "direct"      # free text contained in / equal to the category
    SEMANTIC = "semantic"    # via the synonym mapping table
    INFERRED = "inferred"    # found in title + description


class SelectionStatus(str, enum.Enum):
    UNRESOLVED = "unresolved"   # nothing matched, seller must choose
    PARTIAL    = "partial"      # only the main category matched
    RESOLVED   = "resolved"


@dataclass(frozen=True)
class CategorySelection:
    """
    One node per level, built top-down. If levelN is set, level1..levelN-1 are
    set and are its ancestors (checked on construction).
    """
    level1: Optional[CategoryNode] = None
    level2: Optional[CategoryNode] = None
    level3: Optional[CategoryNode] = None
    level4: Optional[CategoryNode] = None
    tiers: dict[int, MatchTier] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        parent: Optional[CategoryNode] = None
        for level, node in enumerate(self.levels, start=1):
            if node is None:
                parent = None
                continue
            if level > 1 and parent is None:
                raise ValueError(f"level{level} is set but level{level - 1} is not")
            if node.level != level:
                raise ValueError(f"level{level} holds a level-{node.level} category ({node.slug})")
            if parent is not None and node.parent_id != parent.id:
                raise ValueError(f"{node.slug} is not a child of {parent.slug}")
            parent = node

    @property
    def levels(self) -> tuple[Optional[CategoryNode], ...]:
        return (self.level1, self.level2, self.level3, self.level4)

    @property
    def deepest(self) -> Optional[CategoryNode]:
        for node in reversed(self.levels):
            if node is not None:
                return node
        return None

    @property
    def final_category_id(self) -> Optional[str]:
        node = self.deepest
        return node.id if node else None

    @property
    def status(self) -> SelectionStatus:
        if self.level1 is None:
            return SelectionStatus.UNRESOLVED
        if self.level2 is None:
            return SelectionStatus.PARTIAL
        return SelectionStatus.RESOLVED

    def path(self) -> list[CategoryNode]:
        return [n for n in self.levels if n is not None]


# ── Lookup helpers ────────────────────────────────────────────────────────────

def category_name(node: CategoryNode, locale: str = DEFAULT_LOCALE) -> str:
    """Name in `locale`, else in the default locale, else the prettified slug."""
    name = node.name(locale)
    if name:
        return name
    if locale != DEFAULT_LOCALE:
        name = node.name(DEFAULT_LOCALE)
        if name:
            return name
    return " ".join(part.capitalize() for part in node.slug.split("-") if part)


def find_by_id(category_id: str, tree: Sequence[CategoryNode]) -> Optional[CategoryNode]:
    return next((c for c in tree if c.id == category_id), None)


def find_by_slug(slug: str, tree: Sequence[CategoryNode]) -> Optional[CategoryNode]:
    return next((c for c in tree if c.slug == slug), None)


def children_of(
    parent_id: Optional[str],
    tree: Sequence[CategoryNode],
    level: Optional[int] = None,
) -> list[CategoryNode]:
    """Direct children in display order (sort_order, then store order)."""
    children = [
        c for c in tree
        if c.parent_id == parent_id and (level is None or c.level == level)
    ]
    return sorted(children, key=lambda c: c.sort_order)


def category_path(
    category_id: str,
    tree: Sequence[CategoryNode],
) -> list[CategoryNode]:
    """Root-first list of nodes down to `category_id` (empty if unknown)."""
    by_id = {c.id: c for c in tree}
    path: list[CategoryNode] = []
    current = by_id.get(category_id)
    while current is not None and current not in path:
        path.insert(0, current)
        current = by_id.get(current.parent_id) if current.parent_id else None
    return path


def category_path_string(
    category_id: str,
    tree: Sequence[CategoryNode],
    locale: str = DEFAULT_LOCALE,
    separator: str = PATH_SEPARATOR,
) -> str:
    return separator.join(category_name(c, locale) for c in category_path(category_id, tree))


def selection_for(category_id: str, tree: Sequence[CategoryNode]) -> CategorySelection:
    """Selection holding the full path to `category_id` (manual choice in the UI)."""
    path = category_path(category_id, tree)
    return CategorySelection(**{f"level{n.level}": n for n in path})


def generate_category_slug(name: str) -> str:
    slug = name.lower()
    for umlaut, replacement in _UMLAUTS:
        slug = slug.replace(umlaut, replacement)
    slug = re.sub(r"[^a-z0-9]+", "-", slug).strip("-")
    return slug[:50].rstrip("-")


def is_valid_category_slug(slug: str) -> bool:
    return bool(_SLUG_RE.match(slug))
