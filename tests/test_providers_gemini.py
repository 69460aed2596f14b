"""Tests for the Gemini text adapter"""
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from google.genai import errors as genai_errors

from adforge.errors import ConfigurationError, ProviderError
from adforge.providers.base import Capability
from adforge.providers.gemini_provider import GeminiProvider


@pytest.fixture
def provider(provider_config):
    p = GeminiProvider(provider_config("gemini", model="gemini-2.0-flash", timeout_s=20.0))
    p.client = Mock()
    p.client.aio.models.generate_content = AsyncMock(
        return_value=SimpleNamespace(
            text=" Bright ideas, brighter shoes. ",
            usage_metadata=SimpleNamespace(prompt_token_count=9, candidates_token_count=6, total_token_count=15),
        )
    )
    return p


def test_text_only() -> None:
    assert GeminiProvider.capabilities == frozenset({Capability.TEXT})


def test_missing_key_fails_construction(provider_config) -> None:
    with pytest.raises(ConfigurationError, match="Gemini API key not provided"):
        GeminiProvider(provider_config("gemini", api_key=None))


@pytest.mark.asyncio
async def test_generate_text(provider) -> None:
    result = await provider.generate_text("Write a slogan", max_tokens=64, temperature=0.2)

    assert result.text == "Bright ideas, brighter shoes."
    assert result.model == "gemini-2.0-flash"
    assert result.usage == {"prompt_tokens": 9, "completion_tokens": 6, "total_tokens": 15}
    kwargs = provider.client.aio.models.generate_content.await_args.kwargs
    assert kwargs["model"] == "gemini-2.0-flash"
    assert kwargs["config"].max_output_tokens == 64


@pytest.mark.asyncio
async def test_generate_text_wraps_api_error(provider) -> None:
    provider.client.aio.models.generate_content = AsyncMock(
        side_effect=genai_errors.ClientError(
            429, {"error": {"code": 429, "message": "Resource exhausted", "status": "RESOURCE_EXHAUSTED"}}
        )
    )

    with pytest.raises(ProviderError) as exc_info:
        await provider.generate_text("Write a slogan")

    assert exc_info.value.message.startswith("Gemini Error:")
    assert exc_info.value.status_code == 429


@pytest.mark.asyncio
async def test_generate_text_wraps_transport_error(provider) -> None:
    provider.client.aio.models.generate_content = AsyncMock(side_effect=httpx.ConnectError("connection refused"))

    with pytest.raises(ProviderError) as exc_info:
        await provider.generate_text("Write a slogan")

    assert exc_info.value.message.startswith("Gemini Error:")
    assert "connection refused" in exc_info.value.message
    assert exc_info.value.status_code is None
