"""Pytest configuration and fixtures"""
import io
import os
from unittest.mock import AsyncMock

import pytest
from PIL import Image

# Keep the suite away from any developer .env credentials.
os.environ.setdefault("OPENAI_API_KEY", "test_openai_key")
os.environ.setdefault("REPLICATE_API_KEY", "test_replicate_key")
os.environ.setdefault("RUNWAY_API_KEY", "test_runway_key")
os.environ.setdefault("GEMINI_API_KEY", "test_gemini_key")

from adforge.config import ProviderConfig  # noqa: E402
from adforge.orchestrator import Orchestrator  # noqa: E402
from adforge.providers.base import Capability, ImageResult, TextResult, VideoResult  # noqa: E402
from adforge.storage import CampaignStore  # noqa: E402

AD_COPY_JSON = (
    '{"title": "Run Further", "description": "Featherweight trainers for every mile.", '
    '"callToAction": "Shop the drop"}'
)


def make_png(width: int = 4, height: int = 3) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def provider_config():
    """Factory for adapter configs with a dummy key"""

    def _make(name: str, **kwargs) -> ProviderConfig:
        kwargs.setdefault("api_key", "test_key")
        return ProviderConfig(name=name, **kwargs)

    return _make


class FakeTextProvider:
    name = "faketext"
    capabilities = frozenset({Capability.TEXT})

    def __init__(self, text: str = AD_COPY_JSON):
        self.generate_text = AsyncMock(return_value=TextResult(text=text, usage={"total_tokens": 42}, model="fake-gpt"))


class FakeImageProvider:
    name = "fakeimage"
    capabilities = frozenset({Capability.IMAGE})

    def __init__(self):
        self.generate_image = AsyncMock(
            return_value=ImageResult(
                image_url="https://cdn.example.com/creative.png",
                model="dall-e",
                metadata={"model_version": "dall-e-3", "size": "1024x1024"},
            )
        )


class FakeVideoProvider:
    name = "fakevideo"
    capabilities = frozenset({Capability.VIDEO})

    def __init__(self):
        self.generate_video = AsyncMock(
            return_value=VideoResult(
                video_url="https://cdn.example.com/ad.mp4",
                model="gen4_turbo",
                thumbnail_url="https://cdn.example.com/thumb.png",
                task_id="task-123",
                metadata={"duration": 5},
            )
        )
        self.check_status = AsyncMock(return_value={"job_id": "task-123", "status": "running", "progress": 0.4})


@pytest.fixture
def fake_providers():
    return {
        "faketext": FakeTextProvider(),
        "fakeimage": FakeImageProvider(),
        "fakevideo": FakeVideoProvider(),
    }


@pytest.fixture
def orchestrator(fake_providers):
    return Orchestrator(
        fake_providers,
        {
            Capability.TEXT: "faketext",
            Capability.IMAGE: "fakeimage",
            Capability.VIDEO: "fakevideo",
        },
    )


@pytest.fixture
def store(tmp_path):
    return CampaignStore(tmp_path / "data")
