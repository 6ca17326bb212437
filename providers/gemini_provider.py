"""
Google Gemini vision provider — uses the google-genai SDK.

Default provider: gemini-1.5-pro reads small print on vehicle papers
(Zulassungsschein, TÜV reports) noticeably better than the flash models.

Pricing (as of early 2025):
  gemini-1.5-pro:    $3.50 / 1M input,  $10.50 / 1M output, $0.001315 / image
  gemini-1.5-flash:  $0.075 / 1M input, $0.30 / 1M output,  $0.00002 / image
  gemini-2.0-flash:  $0.10 / 1M input,  $0.40 / 1M output,  $0.00004 / image
"""
from __future__ import annotations

import logging
import time
from typing import Optional

from google import genai
from google.genai import types as genai_types

from providers.base import (
    PromptSettings, ProviderResult, VisionProvider,
    build_prompt, detect_media_type, parse_json_response,
)

logger = logging.getLogger(__name__)

_PRICING: dict[str, tuple[float, float, float]] = {
    # model_id: ($/1k_input_tokens, $/1k_output_tokens, $/image)
    "gemini-1.5-pro":   (0.0035,   0.0105,  0.001315),
    "gemini-1.5-flash": (0.000075, 0.0003,  0.00002),
    "gemini-2.0-flash": (0.0001,   0.0004,  0.00004),
}
_SYSTEM_INSTRUCTION = (
    "Du erstellst Kleinanzeigen aus Produktfotos. Übernimm Angaben aus "
    "fotografierten Dokumenten wörtlich und erfinde keine Daten."
)


class GeminiProvider(VisionProvider):

    def __init__(self, api_key: str, model: str = "gemini-1.5-pro"):
        self.name     = "google"
        self.model_id = model
        self._client  = genai.Client(api_key=api_key)

        rates = _PRICING.get(model, _PRICING["gemini-1.5-pro"])
        self.cost_per_1k_input_tokens  = rates[0]
        self.cost_per_1k_output_tokens = rates[1]
        self.cost_per_image            = rates[2]

    async def analyse(
        self,
        image_bytes: bytes,
        settings: Optional[PromptSettings] = None,
    ) -> ProviderResult:
        gen_config = genai_types.GenerateContentConfig(
            system_instruction=_SYSTEM_INSTRUCTION,
            temperature=0.4,
            max_output_tokens=2048,
            response_mime_type="application/json",
        )
        photo = genai_types.Part.from_bytes(data=image_bytes, mime_type=detect_media_type(image_bytes))

        t0 = time.monotonic()
        response = await self._client.aio.models.generate_content(
            model=self.model_id,
            contents=[build_prompt(settings), photo],
            config=gen_config,
        )
        latency_ms = int((time.monotonic() - t0) * 1000)

        if not response.text:
            # Safety-blocked or empty candidates
            raise ValueError(f"[{self.full_name}] Empty response from model")

        usage         = response.usage_metadata
        input_tokens  = getattr(usage, "prompt_token_count", None) or 0
        output_tokens = getattr(usage, "candidates_token_count", None) or 0
        logger.debug("[%s] tokens in=%d out=%d", self.full_name, input_tokens, output_tokens)

        data = parse_json_response(response.text, self.full_name)
        return self._result(data, latency_ms, input_tokens, output_tokens)
