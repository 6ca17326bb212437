"""
Shared types and base class for all vision providers.

Every provider turns ONE photo into ONE AnalysisResult. Nothing downstream
(scoring, fusion, category resolution) knows which provider produced it.
"""
from __future__ import annotations

import json
import logging
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import config

logger = logging.getLogger(__name__)


class AnalysisValidationError(ValueError):
    """A vision result is missing a field the rest of the pipeline relies on."""

    def __init__(self, field_name: str, reason: str = "is missing"):
        self.field_name = field_name
        super().__init__(f"AnalysisResult.{field_name} {reason}")


# ── Prompt (shared across all providers) ──────────────────────────────────────

_STYLE_TEXT = {
    "formal":   "sehr förmlich und professionell",
    "casual":   "locker, freundlich und ungezwungen",
    "detailed": "sehr ausführlich und detailreich",
    "concise":  "kurz, prägnant und auf den Punkt",
    "balanced": "ausgewogen mit guter Balance zwischen Detail und Kürze",
}

_LENGTH_TEXT = {
    "short":  "2-3 kurze Sätze",
    "medium": "4-6 Sätze mit angemessener Detailtiefe",
    "long":   "7-10 ausführliche Sätze mit vielen Details",
}


@dataclass
class PromptSettings:
    """Seller preferences that shape the generated listing text."""
    text_style: str = "balanced"        # key of _STYLE_TEXT
    text_length: str = "medium"         # key of _LENGTH_TEXT
    include_emoji: bool = False
    allow_line_breaks: bool = False
    shipping_country: str = field(default_factory=lambda: config.SHIPPING_COUNTRY)
    seller_notes: Optional[str] = None


def build_prompt(settings: Optional[PromptSettings] = None) -> str:
    s = settings or PromptSettings()
    style = _STYLE_TEXT.get(s.text_style, _STYLE_TEXT["balanced"])
    length = _LENGTH_TEXT.get(s.text_length, _LENGTH_TEXT["medium"])
    emoji = (
        "Verwende passende Emojis in der Beschreibung."
        if s.include_emoji else "Verwende KEINE Emojis in der Beschreibung."
    )
    breaks = (
        "Strukturiere den Text mit Zeilenumbrüchen (\\n) in Absätze."
        if s.allow_line_breaks else "Schreibe den Text als Fließtext OHNE Zeilenumbrüche."
    )
    notes = ""
    if s.seller_notes:
        notes = (
            "\n\nZUSÄTZLICHE INFORMATIONEN VOM VERKÄUFER:\n"
            f"{s.seller_notes}\n"
            "Berücksichtige diese Informationen bei Titel, Beschreibung und Preis."
        )

    return f"""Analysiere dieses Bild eines Artikels für einen Online-Marktplatz. Erstelle auf Deutsch:{notes}

PFLICHTFELDER:
- title: Kurzer, ansprechender Titel (max 60 Zeichen)
- description: Beschreibung im Stil: {style}. Länge: {length}. {emoji} {breaks}
- price: Geschätzter Preis in EUR (nur Zahl)

PRODUKT-DETAILS (so viele wie möglich):
- category: Hauptkategorie (z.B. "Elektronik", "Möbel", "Kleidung", "Sport", "Haushalt", "Fahrzeuge", "Garten")
- subcategory: Unterkategorie (z.B. "Smartphones", "Sofas", "Herrenschuhe", "Fahrräder")
- condition: NUR "new", "like_new", "good", "acceptable" oder "defective"
- brand, size, weight, material, style, serialNumber
- dimensions: Objekt mit length, width, height (z.B. {{"length": "130cm", "width": "20cm", "height": "70cm"}})
- colors, features, accessories, tags: Arrays von Strings
- estimated_weight_kg: Gewicht in kg als Zahl
- ai_shipping_domestic: Versandkosten innerhalb {s.shipping_country} in EUR als Zahl
- ai_shipping_international: Versandkosten ins EU-Ausland in EUR als Zahl

FAHRZEUGE UND FAHRZEUGPAPIERE (Zulassungsschein, Fahrzeugbrief, TÜV-Bericht):
Extrahiere die Daten DIREKT in diese Felder, nicht nur in die Beschreibung:
- vehicle_brand: Marke als Slug (z.B. "vw", "bmw", "mercedes", "audi")
- vehicle_year: Baujahr als Zahl
- vehicle_mileage: Kilometerstand als Zahl
- vehicle_fuel_type: "benzin", "diesel", "elektro", "hybrid" oder "plugin_hybrid"
- vehicle_color: Farbe als Slug (z.B. "schwarz", "silber")
- vehicle_power_kw: Leistung in kW als Zahl (1 PS = 0.735 kW)
- vehicle_first_registration: Erstzulassung als YYYY-MM-DD
- vehicle_tuv_until: TÜV gültig bis als YYYY-MM-DD

Antworte NUR mit einem gültigen JSON-Objekt. Lasse Felder weg, bei denen du dir nicht sicher bist."""


# ── Shared result types ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Dimensions:
    length: Optional[str] = None
    width: Optional[str] = None
    height: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Dimensions"]:
        if not isinstance(data, dict):
            return None
        dims = cls(
            length=_opt_str(data.get("length")),
            width=_opt_str(data.get("width")),
            height=_opt_str(data.get("height")),
        )
        return dims if (dims.length or dims.width or dims.height) else None


SEQUENCE_FIELDS = ("features", "colors", "accessories", "tags")

VEHICLE_FIELDS = (
    "vehicle_brand",
    "vehicle_year",
    "vehicle_mileage",
    "vehicle_fuel_type",
    "vehicle_color",
    "vehicle_power_kw",
    "vehicle_first_registration",
    "vehicle_tuv_until",
)


@dataclass(frozen=True)
class AnalysisResult:
    """What the vision model says about one photo."""
    title: str
    description: str
    price: float
    category: Optional[str] = None
    subcategory: Optional[str] = None
    condition: Optional[str] = None         # new | like_new | good | acceptable | defective
    brand: Optional[str] = None
    size: Optional[str] = None
    weight: Optional[str] = None
    dimensions: Optional[Dimensions] = None
    material: Optional[str] = None
    style: Optional[str] = None
    serial_number: Optional[str] = None
    colors: tuple[str, ...] = ()
    features: tuple[str, ...] = ()
    accessories: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    estimated_weight_kg: Optional[float] = None
    shipping_domestic: Optional[float] = None
    shipping_international: Optional[float] = None
    vehicle_brand: Optional[str] = None
    vehicle_year: Optional[int] = None
    vehicle_mileage: Optional[int] = None
    vehicle_fuel_type: Optional[str] = None
    vehicle_color: Optional[str] = None
    vehicle_power_kw: Optional[float] = None
    vehicle_first_registration: Optional[str] = None    # YYYY-MM-DD
    vehicle_tuv_until: Optional[str] = None             # YYYY-MM-DD

    def __post_init__(self) -> None:
        if not isinstance(self.title, str):
            raise AnalysisValidationError("title")
        if not isinstance(self.description, str):
            raise AnalysisValidationError("description")
        if isinstance(self.price, bool) or not isinstance(self.price, (int, float)):
            raise AnalysisValidationError("price", "must be a number")
        if not math.isfinite(self.price):
            raise AnalysisValidationError("price", "must be finite")
        # Accept lists from callers, store tuples
        for name in SEQUENCE_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value or ()))

    @property
    def text(self) -> str:
        """Title and description joined, used for category inference."""
        return f"{self.title} {self.description}"

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisResult":
        """
        Build from the JSON object returned by a vision model.
        Raises AnalysisValidationError if title, description or price is unusable.
        Optional fields that cannot be read are dropped.
        """
        if not isinstance(data, dict):
            raise AnalysisValidationError("title", "is missing (response is not an object)")
        for required in ("title", "description", "price"):
            if data.get(required) is None:
                raise AnalysisValidationError(required)
        if not isinstance(data["title"], str):
            raise AnalysisValidationError("title", "must be a string")
        if not isinstance(data["description"], str):
            raise AnalysisValidationError("description", "must be a string")
        price = _opt_number(data["price"])
        if price is None:
            raise AnalysisValidationError("price", f"is not a number: {data['price']!r}")

        year = _opt_number(data.get("vehicle_year"))
        mileage = _opt_number(data.get("vehicle_mileage"))
        return cls(
            title=data["title"].strip(),
            description=data["description"].strip(),
            price=price,
            category=_opt_str(data.get("category")),
            subcategory=_opt_str(data.get("subcategory")),
            condition=_opt_str(data.get("condition")),
            brand=_opt_str(data.get("brand")),
            size=_opt_str(data.get("size")),
            weight=_opt_str(data.get("weight")),
            dimensions=Dimensions.from_dict(data.get("dimensions")),
            material=_opt_str(data.get("material")),
            style=_opt_str(data.get("style")),
            serial_number=_opt_str(data.get("serialNumber", data.get("serial_number"))),
            colors=_str_seq(data.get("colors")),
            features=_str_seq(data.get("features")),
            accessories=_str_seq(data.get("accessories")),
            tags=_str_seq(data.get("tags")),
            estimated_weight_kg=_opt_number(data.get("estimated_weight_kg")),
            shipping_domestic=_opt_number(data.get("ai_shipping_domestic")),
            shipping_international=_opt_number(data.get("ai_shipping_international")),
            vehicle_brand=_opt_str(data.get("vehicle_brand")),
            vehicle_year=int(year) if year is not None else None,
            vehicle_mileage=int(mileage) if mileage is not None else None,
            vehicle_fuel_type=_opt_str(data.get("vehicle_fuel_type")),
            vehicle_color=_opt_str(data.get("vehicle_color")),
            vehicle_power_kw=_opt_number(data.get("vehicle_power_kw")),
            vehicle_first_registration=_opt_str(data.get("vehicle_first_registration")),
            vehicle_tuv_until=_opt_str(data.get("vehicle_tuv_until")),
        )


def _opt_str(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


_THOUSANDS_RE = re.compile(r"^\d{1,3}(?:\.\d{3})+$")


def _opt_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip().replace("€", "").replace(" ", "")
        # "12.500,00" → 12500.00 ; "12,5" → 12.5 ; "18.900" → 18900
        if "," in text:
            text = text.replace(".", "").replace(",", ".")
        elif _THOUSANDS_RE.match(text):
            text = text.replace(".", "")
        try:
            number = float(text)
        except ValueError:
            logger.debug("Ignoring non-numeric value %r", value)
            return None
        return number if math.isfinite(number) else None
    return None


def _str_seq(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(s for s in (_opt_str(v) for v in value) if s)


@dataclass
class ProviderResult:
    """Result from a single vision call for one image."""
    provider_name: str          # e.g. "google/gemini-1.5-pro"
    model_id: str
    analysis: AnalysisResult
    latency_ms: int             # wall-clock time for this call
    input_tokens: int
    output_tokens: int
    cost_usd: float             # estimated cost

    @property
    def cost_str(self) -> str:
        if self.cost_usd < 0.001:
            return f"${self.cost_usd * 1000:.3f}m"   # show in milli-dollars
        return f"${self.cost_usd:.4f}"


_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def parse_json_response(raw: str, provider_name: str) -> dict:
    """
    Parse JSON from a model response, handling markdown fences and leading prose.
    Raises ValueError on parse failure.
    """
    text = (raw or "").strip()
    # Strip ```json ... ``` or ``` ... ``` fences if present
    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        match = _JSON_OBJECT_RE.search(text)
        if not match:
            logger.error("[%s] Non-JSON response: %s", provider_name, (raw or "")[:300])
            raise ValueError(f"[{provider_name}] JSON parse error: {exc}") from exc
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as inner:
            logger.error("[%s] Non-JSON response: %s", provider_name, (raw or "")[:300])
            raise ValueError(f"[{provider_name}] JSON parse error: {inner}") from inner
    if not isinstance(data, dict):
        raise ValueError(f"[{provider_name}] JSON parse error: expected an object")
    return data


def detect_media_type(image_bytes: bytes) -> str:
    if image_bytes[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if image_bytes[:4] == b"GIF8":
        return "image/gif"
    if image_bytes[:4] == b"RIFF":
        return "image/webp"
    return "image/jpeg"


# ── Abstract base ──────────────────────────────────────────────────────────────

class VisionProvider(ABC):
    """Base class all vision providers must implement."""

    name: str           # e.g. "google"
    model_id: str       # e.g. "gemini-1.5-pro"
    cost_per_1k_input_tokens: float
    cost_per_1k_output_tokens: float
    # Extra per-image cost for vision (flat fee or per-tile estimate)
    cost_per_image: float = 0.0

    @abstractmethod
    async def analyse(
        self,
        image_bytes: bytes,
        settings: Optional[PromptSettings] = None,
    ) -> ProviderResult:
        """Run vision inference on image_bytes. Must return ProviderResult."""
        ...

    @property
    def full_name(self) -> str:
        return f"{self.name}/{self.model_id}"

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            self.cost_per_image
            + input_tokens / 1000 * self.cost_per_1k_input_tokens
            + output_tokens / 1000 * self.cost_per_1k_output_tokens
        )

    def _result(self, data: dict, latency_ms: int,
                input_tokens: int, output_tokens: int) -> ProviderResult:
        return ProviderResult(
            provider_name=self.full_name,
            model_id=self.model_id,
            analysis=AnalysisResult.from_dict(data),
            latency_ms=latency_ms,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=self.estimate_cost(input_tokens, output_tokens),
        )
