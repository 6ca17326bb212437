"""
Provider Manager — builds the configured vision provider and fans out one
call per image.

Provider selection (config.VISION_PROVIDER):
  google     — GeminiProvider     (needs GOOGLE_API_KEY)
  openai     — OpenAIProvider     (needs OPENAI_API_KEY)
  anthropic  — AnthropicProvider  (needs ANTHROPIC_API_KEY)

Join semantics:
  Every image is analysed concurrently and the join waits for ALL calls to
  settle. Successes and failures are partitioned by image index; the batch
  only fails when no image could be analysed at all.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import config
from providers.base import AnalysisResult, PromptSettings, ProviderResult, VisionProvider

logger = logging.getLogger(__name__)

# Module-level cache — reset to None when the provider settings change
_provider: Optional[VisionProvider] = None

_DEFAULT_MODELS = {
    "google":    "gemini-1.5-pro",
    "openai":    "gpt-4o",
    "anthropic": "claude-3-5-sonnet-20241022",
}


@dataclass
class BatchAnalysis:
    """Settled outcome of analysing every photo of one item."""
    results: dict[int, ProviderResult] = field(default_factory=dict)   # image index → result
    failures: dict[int, str] = field(default_factory=dict)             # image index → error

    @property
    def indices(self) -> list[int]:
        return sorted(self.results)

    @property
    def analyses(self) -> list[AnalysisResult]:
        """Successful analyses in image order (matches .indices)."""
        return [self.results[i].analysis for i in self.indices]

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    @property
    def total_cost_usd(self) -> float:
        return sum(r.cost_usd for r in self.results.values())


def _build_provider() -> VisionProvider:
    kind = config.VISION_PROVIDER
    model = config.VISION_MODEL or _DEFAULT_MODELS.get(kind)

    if kind == "google":
        if not config.GOOGLE_API_KEY:
            raise RuntimeError("VISION_PROVIDER=google but GOOGLE_API_KEY is not set.")
        from providers.gemini_provider import GeminiProvider
        return GeminiProvider(config.GOOGLE_API_KEY, model)

    if kind == "openai":
        if not config.OPENAI_API_KEY:
            raise RuntimeError("VISION_PROVIDER=openai but OPENAI_API_KEY is not set.")
        from providers.openai_provider import OpenAIProvider
        return OpenAIProvider(config.OPENAI_API_KEY, model)

    if kind == "anthropic":
        if not config.ANTHROPIC_API_KEY:
            raise RuntimeError("VISION_PROVIDER=anthropic but ANTHROPIC_API_KEY is not set.")
        from providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider(config.ANTHROPIC_API_KEY, model)

    raise RuntimeError(
        f"Unknown VISION_PROVIDER '{kind}'. Use one of: {', '.join(_DEFAULT_MODELS)}"
    )


def get_provider() -> VisionProvider:
    global _provider
    if _provider is None:
        _provider = _build_provider()
        logger.info("Vision provider: %s", _provider.full_name)
    return _provider


# ── Core analysis function ────────────────────────────────────────────────────

async def analyse_images(
    images: Sequence[bytes],
    settings: Optional[PromptSettings] = None,
    provider: Optional[VisionProvider] = None,
    indices: Optional[Sequence[int]] = None,
) -> BatchAnalysis:
    """
    Analyse every image concurrently and wait for all calls to settle.

    Args:
        images:   raw image bytes, one entry per photo.
        settings: prompt preferences passed to every call.
        provider: override the configured provider (tests, scripts).
        indices:  original photo positions of `images`, when only a subset
                  of the item's photos is sent. Defaults to 0..n-1.

    Raises:
        ValueError:   no images given.
        RuntimeError: every call failed.
    """
    if not images:
        raise ValueError("analyse_images() needs at least one image")
    if indices is None:
        indices = range(len(images))
    if len(indices) != len(images):
        raise ValueError("indices must have one entry per image")

    provider = provider or get_provider()

    async def _run(index: int, image: bytes) -> ProviderResult:
        result = await provider.analyse(image, settings)
        logger.info(
            "[%s] image %d OK — '%s' cost=%s latency=%dms",
            provider.full_name, index, result.analysis.title[:40],
            result.cost_str, result.latency_ms,
        )
        return result

    outcomes = await asyncio.gather(
        *[_run(i, img) for i, img in zip(indices, images)],
        return_exceptions=True,
    )

    batch = BatchAnalysis()
    for index, outcome in zip(indices, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome   # cancellation / interpreter exit
            logger.error("[%s] image %d failed: %s", provider.full_name, index, outcome)
            batch.failures[index] = str(outcome) or type(outcome).__name__
        else:
            batch.results[index] = outcome

    if not batch.results:
        raise RuntimeError(
            f"All {len(images)} image analyses failed. Check the vision provider key and quota."
        )
    if batch.failures:
        logger.warning(
            "Continuing with %d of %d images (failed: %s)",
            len(batch.results), len(images), sorted(batch.failures),
        )
    return batch
