from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Protocol

from adforge.config import ProviderConfig
from adforge.errors import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"

    @classmethod
    def parse(cls, value: str | Capability) -> Capability:
        if isinstance(value, Capability):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(c.value for c in cls)
            raise ValueError(f"unknown capability '{value}' (expected one of: {allowed})") from None


DEFAULT_MAX_TOKENS = 500
DEFAULT_TEMPERATURE = 0.7
DEFAULT_IMAGE_SIZE = "1024x1024"


@dataclass(frozen=True)
class GenerationRequest:
    capability: Capability
    prompt: str
    options: Mapping[str, Any] = field(default_factory=dict)
    # Explicit provider name; falls back to the one configured for the capability.
    provider: str | None = None


@dataclass(frozen=True)
class GenerationResult:
    payload: str
    provider_used: str
    model: str
    usage_metadata: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class TextResult:
    text: str
    usage: dict[str, int]
    model: str


@dataclass(frozen=True)
class ImageResult:
    image_url: str
    model: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VideoResult:
    video_url: str
    model: str
    thumbnail_url: str | None = None
    task_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class TextProvider(Protocol):
    name: str

    async def generate_text(
        self,
        prompt: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> TextResult: ...


class ImageProvider(Protocol):
    name: str

    async def generate_image(
        self,
        prompt: str,
        size: str = DEFAULT_IMAGE_SIZE,
        style: str | None = None,
        negative_prompt: str = "",
    ) -> ImageResult: ...


class VideoProvider(Protocol):
    name: str

    async def generate_video(
        self,
        prompt: str,
        image_urls: list[str],
        duration: int | None = None,
    ) -> VideoResult: ...


def require_api_key(config: ProviderConfig, label: str) -> str:
    """Fail fast at construction when no credential was configured."""
    key = (config.api_key or "").strip()
    if not key:
        message = f"{label} API key not provided"
        logger.error(message)
        raise ConfigurationError(message, context={"provider": config.name})
    return key


def require_prompt(prompt: str) -> str:
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValueError("prompt must be a non-empty string")
    return prompt.strip()


def check_text_params(max_tokens: int, temperature: float) -> None:
    if isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0:
        raise ValueError(f"max_tokens must be a positive integer, got {max_tokens!r}")
    if not 0.0 <= float(temperature) <= 1.0:
        raise ValueError(f"temperature must be between 0.0 and 1.0, got {temperature!r}")


def provider_failure(provider: str, label: str, exc: Exception, status_code: int | None = None) -> ProviderError:
    """Log the upstream failure and build the uniform error callers see."""
    detail = str(exc) or exc.__class__.__name__
    logger.error("%s request failed: %s (status=%s)", label, detail, status_code)
    return ProviderError(
        provider=provider,
        message=f"{label} Error: {detail}",
        original_message=detail,
        status_code=status_code,
    )
