"""
OpenAI vision provider — gpt-4o family.

Photos are sent with detail="high": the low-detail 512px thumbnail is too
coarse to read mileage or registration dates off vehicle papers.

Pricing (as of early 2025):
  gpt-4o:       $2.50 / 1M input,  $10.00 / 1M output
  gpt-4o-mini:  $0.15 / 1M input,  $0.60  / 1M output
  Images: ~765 input tokens for a high-detail 1024×1024 photo
"""
from __future__ import annotations

import base64
import logging
import time
from typing import Optional

from openai import AsyncOpenAI

from providers.base import (
    PromptSettings, ProviderResult, VisionProvider,
    build_prompt, detect_media_type, parse_json_response,
)

logger = logging.getLogger(__name__)

_PRICING: dict[str, tuple[float, float]] = {
    # model_id: ($/1k_input_tokens, $/1k_output_tokens)
    "gpt-4o":      (0.0025,  0.010),
    "gpt-4o-mini": (0.00015, 0.0006),
}
_IMAGE_TOKENS = 765
_SYSTEM_PROMPT = (
    "Du bist ein Assistent für Kleinanzeigen. Du antwortest ausschließlich "
    "mit einem JSON-Objekt, ohne Erklärungen oder Markdown."
)


class OpenAIProvider(VisionProvider):

    def __init__(self, api_key: str, model: str = "gpt-4o"):
        self.name     = "openai"
        self.model_id = model
        self._client  = AsyncOpenAI(api_key=api_key)

        rates = _PRICING.get(model, _PRICING["gpt-4o"])
        self.cost_per_1k_input_tokens  = rates[0]
        self.cost_per_1k_output_tokens = rates[1]
        self.cost_per_image            = _IMAGE_TOKENS / 1000 * rates[0]

    def _messages(self, image_bytes: bytes, settings: Optional[PromptSettings]) -> list[dict]:
        data_url = (
            f"data:{detect_media_type(image_bytes)};base64,"
            f"{base64.b64encode(image_bytes).decode()}"
        )
        return [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": build_prompt(settings)},
                    {"type": "image_url", "image_url": {"url": data_url, "detail": "high"}},
                ],
            },
        ]

    async def analyse(
        self,
        image_bytes: bytes,
        settings: Optional[PromptSettings] = None,
    ) -> ProviderResult:
        t0 = time.monotonic()
        response = await self._client.chat.completions.create(
            model=self.model_id,
            max_tokens=2048,
            temperature=0.7,
            response_format={"type": "json_object"},
            messages=self._messages(image_bytes, settings),
        )
        latency_ms = int((time.monotonic() - t0) * 1000)

        choice = response.choices[0]
        if choice.finish_reason == "length":
            logger.warning("[%s] Response cut off at max_tokens", self.full_name)

        usage         = response.usage
        input_tokens  = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0
        logger.debug("[%s] tokens in=%d out=%d", self.full_name, input_tokens, output_tokens)

        data = parse_json_response(choice.message.content, self.full_name)
        return self._result(data, latency_ms, input_tokens, output_tokens)
