"""Tests for capability routing and ad generation flows"""
from unittest.mock import AsyncMock

import pytest

from adforge.config import Settings
from adforge.errors import ConfigurationError, ProviderError
from adforge.orchestrator import FALLBACK_CTA, FALLBACK_TITLE, Orchestrator, parse_ad_copy
from adforge.providers.base import Capability, GenerationRequest


def test_routes_must_name_configured_provider(fake_providers) -> None:
    with pytest.raises(ConfigurationError, match="not configured"):
        Orchestrator(fake_providers, {Capability.TEXT: "missing"})


def test_routes_must_match_capability(fake_providers) -> None:
    with pytest.raises(ConfigurationError, match="does not support"):
        Orchestrator(fake_providers, {Capability.VIDEO: "faketext"})


def test_from_settings_builds_each_provider_once(fake_providers) -> None:
    built = []

    def factory(fake):
        def _make(config):
            built.append(config.name)
            return fake

        return _make

    settings = Settings(
        text_provider="gemini",
        image_provider="openai",
        video_provider="Runway",
        extra_providers=["gemini"],
    )
    orch = Orchestrator.from_settings(
        settings,
        factories={
            "gemini": factory(fake_providers["faketext"]),
            "openai": factory(fake_providers["fakeimage"]),
            "runway": factory(fake_providers["fakevideo"]),
        },
    )

    assert built == ["gemini", "openai", "runway"]
    assert orch.adapter_for("text") is fake_providers["faketext"]
    assert orch.adapter_for("video") is fake_providers["fakevideo"]


def test_from_settings_unknown_provider() -> None:
    settings = Settings(text_provider="nope", image_provider="openai", video_provider="replicate")

    with pytest.raises(ConfigurationError, match="unknown provider 'nope'"):
        Orchestrator.from_settings(settings)


def test_from_settings_missing_key() -> None:
    settings = Settings(openai_api_key=None, text_provider="openai", image_provider="openai", video_provider="replicate")

    with pytest.raises(ConfigurationError, match="OpenAI API key not provided"):
        Orchestrator.from_settings(settings)


def test_adapter_for_override(orchestrator) -> None:
    assert orchestrator.adapter_for(Capability.IMAGE, provider="FakeImage").name == "fakeimage"
    with pytest.raises(ValueError, match="not configured"):
        orchestrator.adapter_for(Capability.IMAGE, provider="midjourney")
    with pytest.raises(ValueError, match="does not support"):
        orchestrator.adapter_for(Capability.IMAGE, provider="faketext")
    with pytest.raises(ValueError, match="unknown capability"):
        orchestrator.adapter_for("audio")


@pytest.mark.asyncio
async def test_generate_text_result(orchestrator, fake_providers) -> None:
    result = await orchestrator.generate(
        GenerationRequest(capability=Capability.TEXT, prompt="hello", options={"max_tokens": 80, "temperature": 0.1})
    )

    assert result.provider_used == "faketext"
    assert result.model == "fake-gpt"
    assert result.usage_metadata == {"total_tokens": 42}
    fake_providers["faketext"].generate_text.assert_awaited_once_with("hello", max_tokens=80, temperature=0.1)


@pytest.mark.asyncio
async def test_generate_image_result(orchestrator, fake_providers) -> None:
    result = await orchestrator.generate(
        GenerationRequest(capability="image", prompt="shoe", options={"size": "1792x1024", "style": "vivid"})
    )

    assert result.payload == "https://cdn.example.com/creative.png"
    assert result.model == "dall-e"
    fake_providers["fakeimage"].generate_image.assert_awaited_once_with(
        "shoe", size="1792x1024", style="vivid", negative_prompt=""
    )


@pytest.mark.asyncio
async def test_generate_video_result_carries_task(orchestrator, fake_providers) -> None:
    result = await orchestrator.generate(
        GenerationRequest(
            capability=Capability.VIDEO,
            prompt="pan",
            options={"image_urls": ["https://example.com/a.png"], "duration": 5},
        )
    )

    assert result.payload == "https://cdn.example.com/ad.mp4"
    assert result.usage_metadata["task_id"] == "task-123"
    assert result.usage_metadata["thumbnail_url"] == "https://cdn.example.com/thumb.png"
    fake_providers["fakevideo"].generate_video.assert_awaited_once_with(
        "pan", ["https://example.com/a.png"], duration=5
    )


@pytest.mark.asyncio
async def test_generate_propagates_provider_error(orchestrator, fake_providers) -> None:
    fake_providers["fakeimage"].generate_image = AsyncMock(
        side_effect=ProviderError("fakeimage", "Fake Error: quota exceeded")
    )

    with pytest.raises(ProviderError, match="quota exceeded"):
        await orchestrator.generate(GenerationRequest(capability=Capability.IMAGE, prompt="shoe"))


@pytest.mark.asyncio
async def test_check_job_status(orchestrator) -> None:
    status = await orchestrator.check_job_status("task-123", "video")

    assert status["status"] == "running"


@pytest.mark.asyncio
async def test_check_job_status_requires_support(orchestrator) -> None:
    with pytest.raises(ValueError, match="job status"):
        await orchestrator.check_job_status("x", "image")


@pytest.mark.asyncio
async def test_generate_ad_copy(orchestrator, fake_providers) -> None:
    copy = await orchestrator.generate_ad_copy("AirLite", "Featherweight trainers", tone="bold", max_length=150)

    assert copy.title == "Run Further"
    assert copy.description == "Featherweight trainers for every mile."
    assert copy.call_to_action == "Shop the drop"
    assert copy.provider == "faketext"
    prompt = fake_providers["faketext"].generate_text.await_args.args[0]
    assert "AirLite" in prompt
    assert "bold tone" in prompt
    assert "Maximum length: 150 characters" in prompt


@pytest.mark.asyncio
async def test_generate_ad_copy_variations(orchestrator, fake_providers) -> None:
    variations = await orchestrator.generate_ad_copy_variations("AirLite", "Featherweight trainers", count=3)

    assert len(variations) == 3
    prompts = [c.args[0] for c in fake_providers["faketext"].generate_text.await_args_list]
    assert "Variation #1" in prompts[0]
    assert "Variation #3" in prompts[2]


@pytest.mark.asyncio
async def test_generate_ad_copy_variations_rejects_zero(orchestrator) -> None:
    with pytest.raises(ValueError):
        await orchestrator.generate_ad_copy_variations("AirLite", "x", count=0)


@pytest.mark.asyncio
async def test_generate_image_ad_prompt(orchestrator, fake_providers) -> None:
    copy = await orchestrator.generate_ad_copy("AirLite", "Featherweight trainers")

    result = await orchestrator.generate_image_ad("AirLite", "Featherweight trainers", copy=copy, style="minimal")

    prompt = fake_providers["fakeimage"].generate_image.await_args.args[0]
    assert "Visual style: minimal." in prompt
    assert '"Run Further"' in prompt
    assert prompt.endswith("No text. No logos. No watermarks.")
    assert result.provider_used == "fakeimage"


@pytest.mark.asyncio
async def test_generate_video_ad(orchestrator, fake_providers) -> None:
    await orchestrator.generate_video_ad("AirLite", "trainers", ["https://example.com/a.png"], duration=10)

    call = fake_providers["fakevideo"].generate_video.await_args
    assert call.args[1] == ["https://example.com/a.png"]
    assert call.kwargs == {"duration": 10}


def test_parse_ad_copy_json_in_fences() -> None:
    raw = '```json\n{"title": "Hi", "description": "There", "callToAction": "Go"}\n```'

    assert parse_ad_copy(raw) == ("Hi", "There", "Go")


def test_parse_ad_copy_regex_fallback() -> None:
    raw = 'Title: Spring Sale\nDescription: Everything 20% off\nCall to action: Grab yours'

    assert parse_ad_copy(raw) == ("Spring Sale", "Everything 20% off", "Grab yours")


def test_parse_ad_copy_defaults() -> None:
    title, description, cta = parse_ad_copy("Just buy it.")

    assert title == FALLBACK_TITLE
    assert description == "Just buy it."
    assert cta == FALLBACK_CTA


@pytest.mark.asyncio
async def test_generate_rejects_empty_prompt(orchestrator, fake_providers) -> None:
    with pytest.raises(ValueError, match="prompt"):
        await orchestrator.generate(GenerationRequest(capability=Capability.TEXT, prompt="  "))
    fake_providers["faketext"].generate_text.assert_not_awaited()


@pytest.mark.asyncio
async def test_check_job_status_with_provider_override(fake_providers) -> None:
    fake_providers["runway"] = fake_providers.pop("fakevideo")
    fake_providers["otherfake"] = type(
        "OtherVideo", (), {"name": "otherfake", "capabilities": frozenset({Capability.VIDEO})}
    )()
    orch = Orchestrator(fake_providers, {Capability.VIDEO: "otherfake"})

    with pytest.raises(ValueError, match="job status"):
        await orch.check_job_status("task-123", "video")
    status = await orch.check_job_status("task-123", "video", provider="runway")

    assert status["job_id"] == "task-123"


@pytest.mark.asyncio
async def test_aclose_closes_adapters_that_own_clients(orchestrator, fake_providers) -> None:
    fake_providers["fakevideo"].aclose = AsyncMock()

    await orchestrator.aclose()

    fake_providers["fakevideo"].aclose.assert_awaited_once()
