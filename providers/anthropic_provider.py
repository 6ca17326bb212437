"""
Anthropic vision provider — Claude 3.5 family.

Claude has no JSON response mode, so the assistant turn is prefilled with "{"
and the opening brace is put back before parsing.

Pricing (as of early 2025):
  claude-3-5-sonnet-20241022: $3.00 / 1M input,  $15.00 / 1M output
  claude-3-5-haiku-20241022:  $0.80 / 1M input,  $4.00  / 1M output
  Images: ~1600 input tokens for a typical photo
"""
from __future__ import annotations

import base64
import logging
import time
from typing import Optional

import anthropic

from providers.base import (
    PromptSettings, ProviderResult, VisionProvider,
    build_prompt, detect_media_type, parse_json_response,
)

logger = logging.getLogger(__name__)

_PRICING: dict[str, tuple[float, float]] = {
    # model_id: ($/1k_input_tokens, $/1k_output_tokens)
    "claude-3-5-sonnet-20241022": (0.003,  0.015),
    "claude-3-5-haiku-20241022":  (0.0008, 0.004),
}
_IMAGE_TOKENS = 1600
_PREFILL = "{"
_SYSTEM_PROMPT = (
    "Du bist ein Assistent für Kleinanzeigen. Du antwortest ausschließlich "
    "mit einem JSON-Objekt."
)


class AnthropicProvider(VisionProvider):

    def __init__(self, api_key: str, model: str = "claude-3-5-sonnet-20241022"):
        self.name     = "anthropic"
        self.model_id = model
        self._client  = anthropic.AsyncAnthropic(api_key=api_key)

        rates = _PRICING.get(model, _PRICING["claude-3-5-sonnet-20241022"])
        self.cost_per_1k_input_tokens  = rates[0]
        self.cost_per_1k_output_tokens = rates[1]
        self.cost_per_image            = _IMAGE_TOKENS / 1000 * rates[0]

    async def analyse(
        self,
        image_bytes: bytes,
        settings: Optional[PromptSettings] = None,
    ) -> ProviderResult:
        image_block = {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": detect_media_type(image_bytes),
                "data": base64.b64encode(image_bytes).decode(),
            },
        }

        t0 = time.monotonic()
        message = await self._client.messages.create(
            model=self.model_id,
            max_tokens=2048,
            system=_SYSTEM_PROMPT,
            messages=[
                {"role": "user", "content": [image_block, {"type": "text", "text": build_prompt(settings)}]},
                {"role": "assistant", "content": _PREFILL},
            ],
        )
        latency_ms = int((time.monotonic() - t0) * 1000)

        if message.stop_reason == "max_tokens":
            logger.warning("[%s] Response cut off at max_tokens", self.full_name)
        text = "".join(block.text for block in message.content if block.type == "text")
        logger.debug(
            "[%s] tokens in=%d out=%d", self.full_name,
            message.usage.input_tokens, message.usage.output_tokens,
        )

        data = parse_json_response(_PREFILL + text, self.full_name)
        return self._result(
            data, latency_ms, message.usage.input_tokens, message.usage.output_tokens,
        )
