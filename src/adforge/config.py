from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and model choice handed to one provider adapter at construction."""

    name: str
    api_key: str | None
    model: str | None = None
    image_model: str | None = None
    timeout_s: float | None = None
    options: dict[str, Any] = field(default_factory=dict)


class Settings(BaseSettings):
    # Loads keys from process env, and also from a local .env file.
    model_config = SettingsConfigDict(env_prefix="", extra="ignore", env_file=".env", env_file_encoding="utf-8")

    data_dir: str = "data"
    public_base_url: str = "http://localhost:8000"
    log_level: str = "INFO"

    # Keys
    openai_api_key: str | None = None
    replicate_api_key: str | None = None
    runway_api_key: str | None = None
    gemini_api_key: str | None = None

    # Models
    openai_text_model: str = "gpt-4"
    openai_image_model: str = "dall-e-3"
    gemini_text_model: str = "gemini-2.0-flash"
    runway_video_model: str = "gen4_turbo"

    # Which provider serves each capability
    text_provider: str = "openai"
    image_provider: str = "openai"
    video_provider: str = "replicate"
    extra_providers: list[str] = []

    # Calls
    provider_timeout_s: float = 120.0
    video_poll_interval_s: float = 5.0
    video_max_wait_s: float = 600.0

    # Uploads
    max_upload_bytes: int = 5 * 1024 * 1024
    strict_signatures: bool = False

    def provider_config(self, name: str) -> ProviderConfig:
        timeout = self.provider_timeout_s
        if name == "openai":
            return ProviderConfig(
                name=name,
                api_key=self.openai_api_key,
                model=self.openai_text_model,
                image_model=self.openai_image_model,
                timeout_s=timeout,
            )
        if name == "gemini":
            return ProviderConfig(name=name, api_key=self.gemini_api_key, model=self.gemini_text_model, timeout_s=timeout)
        if name == "replicate":
            return ProviderConfig(name=name, api_key=self.replicate_api_key, timeout_s=timeout)
        if name == "runway":
            return ProviderConfig(
                name=name,
                api_key=self.runway_api_key,
                model=self.runway_video_model,
                timeout_s=timeout,
                options={
                    "poll_interval_s": self.video_poll_interval_s,
                    "max_wait_s": self.video_max_wait_s,
                },
            )
        raise KeyError(name)


settings = Settings()
