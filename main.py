"""
main.py — analyse local photos of one item and print the listing draft.

Usage:
  python main.py --categories categories.json photo1.jpg photo2.jpg …

categories.json is an export of the category store: a JSON list of rows
{id, parent_id, level, slug, translations, sort_order}.

Prints the item record that would be stored, plus the ranking and category
status, as JSON on stdout. Logs go to stderr.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import config
from category_tree import build_tree, category_path_string
from listing_pipeline import ListingDraft, create_listing
from providers.base import PromptSettings

logger = logging.getLogger(__name__)


def setup_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        level=getattr(logging, (level or config.LOG_LEVEL), logging.INFO),
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def draft_summary(draft: ListingDraft, tree, locale: Optional[str] = None) -> dict:
    category_id = draft.category_id
    locale = (locale or config.ANALYSIS_LOCALE).lower()
    return {
        "item": draft.to_item_record(),
        "category_path": category_path_string(category_id, tree, locale) if category_id else None,
        "category_status": draft.category.status.value,
        "category_tiers": {f"level{k}": v.value for k, v in draft.category.tiers.items()},
        "ranking": [
            {
                "photo": s.index,
                "title": s.analysis.title,
                "score": round(s.score, 1),
                "is_document": s.is_document,
            }
            for s in draft.ranking
        ],
        "failed_photos": draft.failed_images,
    }


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build a listing draft from item photos")
    parser.add_argument("images", nargs="+", type=Path, help="Photos of the item, cover first")
    parser.add_argument("--categories", required=True, type=Path, help="Category tree export (JSON list)")
    parser.add_argument("--locale", default=None, help="Locale for category names (default: ANALYSIS_LOCALE)")
    parser.add_argument("--primary-only", action="store_true", help="Analyse only the cover photo")
    parser.add_argument("--style", default="balanced", help="Text style for the description")
    parser.add_argument("--length", default="medium", help="Text length for the description")
    parser.add_argument("--notes", default=None, help="Extra seller notes passed to the model")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> dict:
    with open(args.categories, encoding="utf-8") as fh:
        tree = build_tree(json.load(fh))
    logger.info("Loaded %d categories from %s", len(tree), args.categories)

    images = [path.read_bytes() for path in args.images]
    settings = PromptSettings(
        text_style=args.style,
        text_length=args.length,
        seller_notes=args.notes,
    )
    draft = await create_listing(
        images,
        tree,
        settings=settings,
        analyse_all_images=not args.primary_only,
        locale=args.locale,
    )
    return draft_summary(draft, tree, args.locale)


def main(argv: Optional[Sequence[str]] = None) -> int:
    setup_logging()
    args = parse_args(argv)
    try:
        summary = asyncio.run(run(args))
    except (OSError, ValueError, RuntimeError) as exc:
        logger.error("Failed: %s", exc)
        return 1
    json.dump(summary, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
