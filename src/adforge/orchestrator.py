from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from adforge.config import ProviderConfig, Settings
from adforge.errors import ConfigurationError, ProviderError
from adforge.providers.base import (
    DEFAULT_IMAGE_SIZE,
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    Capability,
    GenerationRequest,
    GenerationResult,
    require_prompt,
)
from adforge.providers.gemini_provider import GeminiProvider
from adforge.providers.openai_provider import OpenAIProvider
from adforge.providers.replicate_provider import ReplicateProvider
from adforge.providers.runway_provider import RunwayProvider

logger = logging.getLogger(__name__)

PROVIDER_FACTORIES: dict[str, Callable[[ProviderConfig], Any]] = {
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
    "replicate": ReplicateProvider,
    "runway": RunwayProvider,
}

# Request options each video adapter understands beyond prompt/image_urls.
VIDEO_OPTIONS = {
    "replicate": ("duration", "fps"),
    "runway": ("duration", "ratio"),
}

FALLBACK_TITLE = "Check out this amazing product!"
FALLBACK_CTA = "Shop Now"


@dataclass(frozen=True)
class AdCopy:
    title: str
    description: str
    call_to_action: str
    provider: str = ""
    model: str = ""

    def as_dict(self) -> dict[str, str]:
        return {"title": self.title, "description": self.description, "call_to_action": self.call_to_action}


class Orchestrator:
    """Routes capability-tagged requests to the adapter configured for them.

    The capability table is built once and never changes afterwards; the
    orchestrator itself keeps no per-request state.
    """

    def __init__(self, providers: Mapping[str, Any], routes: Mapping[Capability, str]) -> None:
        self.providers: dict[str, Any] = dict(providers)
        table: dict[Capability, Any] = {}
        for capability, provider_name in routes.items():
            capability = Capability.parse(capability)
            adapter = self.providers.get(provider_name)
            if adapter is None:
                raise ConfigurationError(
                    f"provider '{provider_name}' for {capability.value} generation is not configured",
                    context={"capability": capability.value, "provider": provider_name},
                )
            if capability not in adapter.capabilities:
                raise ConfigurationError(
                    f"provider '{provider_name}' does not support {capability.value} generation",
                    context={"capability": capability.value, "provider": provider_name},
                )
            table[capability] = adapter
        self._routes = table
        logger.info(
            "AI orchestrator initialized: %s",
            ", ".join(f"{c.value}={a.name}" for c, a in table.items()) or "no routes",
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        factories: Mapping[str, Callable[[ProviderConfig], Any]] | None = None,
    ) -> Orchestrator:
        factories = factories or PROVIDER_FACTORIES
        routes = {
            Capability.TEXT: settings.text_provider,
            Capability.IMAGE: settings.image_provider,
            Capability.VIDEO: settings.video_provider,
        }
        names: list[str] = []
        for name in [*routes.values(), *settings.extra_providers]:
            name = name.strip().lower()
            if name and name not in names:
                names.append(name)

        providers: dict[str, Any] = {}
        for name in names:
            factory = factories.get(name)
            if factory is None:
                raise ConfigurationError(
                    f"unknown provider '{name}' (expected one of: {', '.join(sorted(factories))})",
                    context={"provider": name},
                )
            providers[name] = factory(settings.provider_config(name))

        return cls(providers, {c: n.strip().lower() for c, n in routes.items()})

    def adapter_for(self, capability: Capability | str, provider: str | None = None) -> Any:
        capability = Capability.parse(capability)
        if provider:
            adapter = self.providers.get(provider.strip().lower())
            if adapter is None:
                raise ValueError(f"provider '{provider}' is not configured")
            if capability not in adapter.capabilities:
                raise ValueError(f"provider '{provider}' does not support {capability.value} generation")
            return adapter
        adapter = self._routes.get(capability)
        if adapter is None:
            raise ValueError(f"no provider configured for {capability.value} generation")
        return adapter

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        capability = Capability.parse(request.capability)
        if capability is not Capability.VIDEO:
            # Video may be driven by images alone.
            require_prompt(request.prompt)
        adapter = self.adapter_for(capability, request.provider)
        opts = dict(request.options or {})
        logger.info("Dispatching %s generation to %s", capability.value, adapter.name)

        try:
            if capability is Capability.TEXT:
                text = await adapter.generate_text(
                    request.prompt,
                    max_tokens=int(opts.get("max_tokens", DEFAULT_MAX_TOKENS)),
                    temperature=float(opts.get("temperature", DEFAULT_TEMPERATURE)),
                )
                return GenerationResult(
                    payload=text.text,
                    provider_used=adapter.name,
                    model=text.model,
                    usage_metadata=dict(text.usage) or None,
                )

            if capability is Capability.IMAGE:
                image = await adapter.generate_image(
                    request.prompt,
                    size=str(opts.get("size") or DEFAULT_IMAGE_SIZE),
                    style=opts.get("style"),
                    negative_prompt=str(opts.get("negative_prompt") or ""),
                )
                return GenerationResult(
                    payload=image.image_url,
                    provider_used=adapter.name,
                    model=image.model,
                    usage_metadata=dict(image.metadata) or None,
                )

            extra = {k: opts[k] for k in VIDEO_OPTIONS.get(adapter.name, ("duration",)) if opts.get(k) is not None}
            video = await adapter.generate_video(
                request.prompt,
                list(opts.get("image_urls") or []),
                **extra,
            )
            meta = dict(video.metadata)
            if video.task_id:
                meta["task_id"] = video.task_id
            if video.thumbnail_url:
                meta["thumbnail_url"] = video.thumbnail_url
            return GenerationResult(
                payload=video.video_url,
                provider_used=adapter.name,
                model=video.model,
                usage_metadata=meta or None,
            )
        except ProviderError as exc:
            logger.warning("%s generation via %s failed: %s", capability.value, adapter.name, exc.message)
            raise

    async def aclose(self) -> None:
        """Release the HTTP pools held by adapters that own one."""
        for adapter in self.providers.values():
            close = getattr(adapter, "aclose", None)
            if close is not None:
                await close()

    async def check_job_status(
        self,
        job_id: str,
        capability: Capability | str,
        provider: str | None = None,
    ) -> dict[str, Any]:
        capability = Capability.parse(capability)
        adapter = self.adapter_for(capability, provider)
        check = getattr(adapter, "check_status", None)
        if check is None:
            raise ValueError(f"provider '{adapter.name}' does not expose job status")
        logger.info("Checking job status: %s (%s)", job_id, capability.value)
        return await check(job_id)

    async def generate_ad_copy(
        self,
        product_name: str,
        product_description: str,
        tone: str = "friendly",
        max_length: int = 200,
        variation: int | None = None,
        provider: str | None = None,
    ) -> AdCopy:
        prompt = (
            "Create a compelling Facebook ad copy for the following product:\n"
            f"Product Name: {product_name}\n"
            f"Product Description: {product_description}\n\n"
            "The ad copy should be:\n"
            f"- In a {tone or 'friendly'} tone\n"
            "- Engaging and persuasive\n"
            "- Include a clear call-to-action\n"
            f"- Maximum length: {max_length} characters\n"
        )
        if variation is not None:
            prompt += f"- Variation #{variation + 1}: use a different angle than other variations\n"
        prompt += (
            "\nReturn STRICT JSON only (no markdown) with keys:\n"
            '{"title": "catchy headline", "description": "main ad copy", "callToAction": "action phrase"}\n'
        )

        result = await self.generate(
            GenerationRequest(
                capability=Capability.TEXT,
                prompt=prompt,
                options={"max_tokens": max_length},
                provider=provider,
            )
        )
        title, description, cta = parse_ad_copy(result.payload)
        return AdCopy(
            title=title,
            description=description,
            call_to_action=cta,
            provider=result.provider_used,
            model=result.model,
        )

    async def generate_ad_copy_variations(
        self,
        product_name: str,
        product_description: str,
        tone: str = "friendly",
        max_length: int = 200,
        count: int = 3,
    ) -> list[AdCopy]:
        if count <= 0:
            raise ValueError("count must be positive")
        logger.info("Generating %d ad copy variations", count)
        out: list[AdCopy] = []
        for i in range(count):
            out.append(
                await self.generate_ad_copy(
                    product_name=product_name,
                    product_description=product_description,
                    tone=tone,
                    max_length=max_length,
                    variation=i,
                )
            )
        return out

    async def generate_image_ad(
        self,
        product_name: str,
        description: str,
        copy: AdCopy | None = None,
        style: str | None = "realistic",
        size: str = DEFAULT_IMAGE_SIZE,
        provider: str | None = None,
    ) -> GenerationResult:
        prompt = f"Facebook ad creative for {product_name}: {description}."
        if style:
            prompt += f" Visual style: {style}."
        if copy is not None:
            prompt += f' The mood should match the headline "{copy.title}".'
        # Copy is overlaid by the client; keep the generated visual clean.
        prompt += " No text. No logos. No watermarks."
        return await self.generate(
            GenerationRequest(
                capability=Capability.IMAGE,
                prompt=prompt,
                options={"size": size, "style": style},
                provider=provider,
            )
        )

    async def generate_video_ad(
        self,
        product_name: str,
        description: str,
        image_urls: list[str],
        copy: AdCopy | None = None,
        duration: int | None = None,
        provider: str | None = None,
    ) -> GenerationResult:
        prompt = f"Short product video ad for {product_name}: {description}."
        if copy is not None:
            prompt += f" {copy.title}. {copy.call_to_action}."
        options: dict[str, Any] = {"image_urls": image_urls}
        if duration:
            options["duration"] = duration
        return await self.generate(
            GenerationRequest(capability=Capability.VIDEO, prompt=prompt, options=options, provider=provider)
        )


def _strip_code_fences(text: str) -> str:
    s = text.strip()
    if s.startswith("```"):
        first_nl = s.find("\n")
        if first_nl != -1:
            s = s[first_nl + 1 :]
        if s.rstrip().endswith("```"):
            s = s.rstrip()[:-3]
    return s.strip()


def parse_ad_copy(raw_text: str) -> tuple[str, str, str]:
    """Pull (title, description, call_to_action) out of a model reply.

    Models are asked for JSON but do not always comply, so fall back to
    regex extraction and finally to generic defaults.
    """
    s = _strip_code_fences(raw_text or "")
    start, end = s.find("{"), s.rfind("}")
    if start != -1 and end > start:
        try:
            data = json.loads(s[start : end + 1])
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            title = str(data.get("title", "")).strip()
            description = str(data.get("description", "")).strip()
            cta = str(data.get("callToAction") or data.get("call_to_action") or data.get("cta") or "").strip()
            if title or description:
                return title or FALLBACK_TITLE, description or s[:100], cta or FALLBACK_CTA

    logger.warning("Failed to parse JSON ad copy, extracting text manually")
    title_m = re.search(r'title["\s:]+([^"\n]+)', s, re.IGNORECASE)
    desc_m = re.search(r'description["\s:]+([^"\n]+)', s, re.IGNORECASE)
    cta_m = re.search(r'call[\s_-]?to[\s_-]?action["\s:]+([^"\n]+)', s, re.IGNORECASE)
    return (
        title_m.group(1).strip(" ,") if title_m else FALLBACK_TITLE,
        desc_m.group(1).strip(" ,") if desc_m else s[:100],
        cta_m.group(1).strip(" ,") if cta_m else FALLBACK_CTA,
    )
