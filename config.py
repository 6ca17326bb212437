"""
Central configuration — reads from .env file.

Every value here can be overridden with an environment variable. The keyword
and category-mapping tables are NOT configured here: they are versioned data
files loaded by keyword_store.py (their paths can be overridden below).
"""
import os
from dotenv import load_dotenv

load_dotenv()

# ── AI Vision providers ────────────────────────────────────────────────────────
# Add the key for whichever provider you use.
GOOGLE_API_KEY: str | None    = os.getenv("GOOGLE_API_KEY")
OPENAI_API_KEY: str | None    = os.getenv("OPENAI_API_KEY")
ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")

# Which provider analyses the photos:
#   google     → Gemini (default, best OCR on vehicle papers)
#   openai     → GPT-4o family
#   anthropic  → Claude family
VISION_PROVIDER: str = os.getenv("VISION_PROVIDER", "google").strip().lower()

# Leave blank to use the provider's default model
VISION_MODEL: str | None = os.getenv("VISION_MODEL", "").strip() or None

# ── Listing analysis ──────────────────────────────────────────────────────────
# Locale used for category name lookups
ANALYSIS_LOCALE: str = os.getenv("ANALYSIS_LOCALE", "de").strip().lower()

# false → only the primary photo is sent to the vision provider
ANALYZE_ALL_IMAGES: bool = os.getenv("ANALYZE_ALL_IMAGES", "true").lower() == "true"

# ISO code of the country the item ships from (used in the prompt)
SHIPPING_COUNTRY: str = os.getenv("SHIPPING_COUNTRY", "DE").strip().upper()

# ── Keyword tables ────────────────────────────────────────────────────────────
# Blank → the files shipped in data/
LISTING_KEYWORDS_FILE: str | None  = os.getenv("LISTING_KEYWORDS_FILE", "").strip() or None
CATEGORY_MAPPINGS_FILE: str | None = os.getenv("CATEGORY_MAPPINGS_FILE", "").strip() or None

# ── Logging ───────────────────────────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()
