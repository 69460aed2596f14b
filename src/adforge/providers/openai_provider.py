from __future__ import annotations

import logging

import openai

from adforge.config import ProviderConfig
from adforge.providers.base import (
    DEFAULT_IMAGE_SIZE,
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    Capability,
    ImageResult,
    TextResult,
    check_text_params,
    provider_failure,
    require_api_key,
    require_prompt,
)

logger = logging.getLogger(__name__)

IMAGE_SIZES = {
    "dall-e-2": ("256x256", "512x512", "1024x1024"),
    "dall-e-3": ("1024x1024", "1792x1024", "1024x1792"),
}
IMAGE_STYLES = ("vivid", "natural")


class OpenAIProvider:
    name = "openai"
    label = "OpenAI"
    capabilities = frozenset({Capability.TEXT, Capability.IMAGE})

    def __init__(self, config: ProviderConfig) -> None:
        api_key = require_api_key(config, self.label)
        self.model = config.model or "gpt-4"
        self.image_model = config.image_model or "dall-e-3"
        self.client = openai.AsyncOpenAI(api_key=api_key, timeout=config.timeout_s, max_retries=0)
        logger.info("OpenAI adapter initialized with model: %s", self.model)

    async def generate_text(
        self,
        prompt: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> TextResult:
        prompt = require_prompt(prompt)
        check_text_params(max_tokens, temperature)
        logger.info("Generating text with OpenAI (model=%s)", self.model)

        try:
            resp = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=temperature,
                n=1,
            )
        except openai.OpenAIError as exc:
            raise provider_failure(self.name, self.label, exc, getattr(exc, "status_code", None)) from exc

        text = ""
        if resp.choices:
            text = (resp.choices[0].message.content or "").strip()
        if not text:
            raise provider_failure(self.name, self.label, RuntimeError("empty completion"))

        return TextResult(text=text, usage=_usage_dict(resp.usage), model=self.model)

    async def generate_image(
        self,
        prompt: str,
        size: str = DEFAULT_IMAGE_SIZE,
        style: str | None = None,
        negative_prompt: str = "",
    ) -> ImageResult:
        prompt = require_prompt(prompt)
        allowed = IMAGE_SIZES.get(self.image_model, IMAGE_SIZES["dall-e-3"])
        if size not in allowed:
            raise ValueError(f"size '{size}' is not supported by {self.image_model} (expected one of: {', '.join(allowed)})")

        # The images API has no negative prompt; fold it into the text.
        full_prompt = f"{prompt}. Avoid: {negative_prompt}" if negative_prompt else prompt

        params: dict[str, object] = {"model": self.image_model, "prompt": full_prompt, "n": 1, "size": size}
        if self.image_model == "dall-e-3" and style in IMAGE_STYLES:
            params["style"] = style

        logger.info("Generating image with DALL-E (size=%s)", size)
        try:
            resp = await self.client.images.generate(**params)
        except openai.OpenAIError as exc:
            raise provider_failure(self.name, f"{self.label} Image", exc, getattr(exc, "status_code", None)) from exc

        first = resp.data[0] if resp.data else None
        url = getattr(first, "url", None)
        if not url:
            raise provider_failure(self.name, f"{self.label} Image", RuntimeError("response contained no image URL"))

        return ImageResult(
            image_url=url,
            model="dall-e",
            metadata={
                "model_version": self.image_model,
                "revised_prompt": getattr(first, "revised_prompt", None) or prompt,
                "size": size,
            },
        )


    async def aclose(self) -> None:
        await self.client.close()


def _usage_dict(usage: object) -> dict[str, int]:
    if usage is None:
        return {}
    out: dict[str, int] = {}
    for key in ("prompt_tokens", "completion_tokens", "total_tokens"):
        value = getattr(usage, key, None)
        if isinstance(value, int):
            out[key] = value
    return out
