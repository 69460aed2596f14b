from __future__ import annotations

import logging

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from adforge.config import ProviderConfig
from adforge.providers.base import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    Capability,
    TextResult,
    check_text_params,
    provider_failure,
    require_api_key,
    require_prompt,
)

logger = logging.getLogger(__name__)


class GeminiProvider:
    """Alternate text provider; useful as an explicit override when OpenAI is rate limited."""

    name = "gemini"
    label = "Gemini"
    capabilities = frozenset({Capability.TEXT})

    def __init__(self, config: ProviderConfig) -> None:
        api_key = require_api_key(config, self.label)
        self.model = config.model or "gemini-2.0-flash"
        http_options = None
        if config.timeout_s:
            # google-genai takes the timeout in milliseconds.
            http_options = types.HttpOptions(timeout=int(config.timeout_s * 1000))
        self.client = genai.Client(api_key=api_key, http_options=http_options)
        logger.info("Gemini adapter initialized with model: %s", self.model)

    async def generate_text(
        self,
        prompt: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> TextResult:
        prompt = require_prompt(prompt)
        check_text_params(max_tokens, temperature)
        logger.info("Generating text with Gemini (model=%s)", self.model)

        try:
            resp = await self.client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    max_output_tokens=max_tokens,
                    temperature=temperature,
                ),
            )
        except genai_errors.APIError as exc:
            raise provider_failure(self.name, self.label, exc, getattr(exc, "code", None)) from exc
        except httpx.HTTPError as exc:
            # The SDK lets transport failures through unwrapped.
            raise provider_failure(self.name, self.label, exc) from exc

        text = (getattr(resp, "text", None) or "").strip()
        if not text:
            raise provider_failure(self.name, self.label, RuntimeError("empty completion"))

        return TextResult(text=text, usage=_usage_dict(getattr(resp, "usage_metadata", None)), model=self.model)


def _usage_dict(meta: object) -> dict[str, int]:
    if meta is None:
        return {}
    mapping = {
        "prompt_tokens": "prompt_token_count",
        "completion_tokens": "candidates_token_count",
        "total_tokens": "total_token_count",
    }
    out: dict[str, int] = {}
    for key, attr in mapping.items():
        value = getattr(meta, attr, None)
        if isinstance(value, int):
            out[key] = value
    return out
