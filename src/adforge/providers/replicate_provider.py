from __future__ import annotations

import logging
import random
from typing import Any

import httpx
import replicate
from replicate.exceptions import ReplicateException

from adforge.config import ProviderConfig
from adforge.providers.base import (
    DEFAULT_IMAGE_SIZE,
    Capability,
    ImageResult,
    VideoResult,
    provider_failure,
    require_api_key,
    require_prompt,
)

logger = logging.getLogger(__name__)

# style -> (model, version, extra input)
IMAGE_MODELS: dict[str, tuple[str, str, dict[str, Any]]] = {
    "realistic": (
        "stability-ai/sdxl",
        "39ed52f2a78e934b3ba6e2a89f5b1c712de7dfea535525255b1aa35c5565e08b",
        {"scheduler": "K_EULER_ANCESTRAL", "num_inference_steps": 40, "guidance_scale": 7.5},
    ),
    "anime": (
        "cjwbw/anything-v5",
        "3b5c0399e6e994efa17c3748b1c10f6bb73c3626c4256266d3ed1e958b23c9cd",
        {"scheduler": "DPMSolverMultistep", "num_inference_steps": 30, "guidance_scale": 7},
    ),
    "painting": (
        "prompthero/openjourney",
        "9936c2001faa2194a261c01381f90e65261879985476014a0a37a334593a05eb",
        {"num_inference_steps": 50, "guidance_scale": 7},
    ),
    "turbo": (
        "stability-ai/sdxl-turbo",
        "1e7b342eba42822999c507e32c4c2ee804be4a0313e5240f66fed630b39334e4",
        {"num_inference_steps": 4, "guidance_scale": 0},
    ),
}
STYLE_ALIASES = {
    "realistic": "realistic",
    "photographic": "realistic",
    "anime": "anime",
    "illustration": "anime",
    "painting": "painting",
    "artistic": "painting",
}

ANIMATEDIFF = "lucataco/animatediff:0f1bfd6ad77e5fe05d48ef5a51ab1503aa620742ad59a4f1f66a959e344528e0"
STABLE_VIDEO = "stability-ai/stable-video-diffusion:3f0457e4619daac51203dedb472816fd4af51f9e029d7ddc6a72a6b9de7a3e15"
ZEROSCOPE = "cjwbw/zeroscope-v2-xl:9f747673945c62801b13b84701c783929c0ee784e4748ec062204894dda1a351"

DEFAULT_VIDEO_DURATION = 15
DEFAULT_VIDEO_FPS = 30


class ReplicateProvider:
    name = "replicate"
    label = "Replicate"
    capabilities = frozenset({Capability.IMAGE, Capability.VIDEO})

    def __init__(self, config: ProviderConfig) -> None:
        api_key = require_api_key(config, self.label)
        self.client = replicate.Client(api_token=api_key, timeout=config.timeout_s)
        logger.info("Replicate adapter initialized")

    async def generate_image(
        self,
        prompt: str,
        size: str = DEFAULT_IMAGE_SIZE,
        style: str | None = None,
        negative_prompt: str = "",
    ) -> ImageResult:
        prompt = require_prompt(prompt)
        width, height = parse_size(size)
        key = STYLE_ALIASES.get((style or "").lower(), "turbo")
        model, version, extra = IMAGE_MODELS[key]

        text = f"mdjrny-v4 style {prompt}" if key == "painting" else prompt
        payload: dict[str, Any] = {
            "prompt": text,
            "negative_prompt": negative_prompt,
            "width": width,
            "height": height,
            "num_outputs": 1,
            "seed": random.randint(0, 999_999),
            **extra,
        }

        logger.info("Generating image with Replicate (model=%s, %sx%s)", model, width, height)
        output = await self._run(f"{model}:{version}", payload, "Replicate Image")
        urls = _as_urls(output)
        if not urls:
            raise provider_failure(self.name, "Replicate Image", RuntimeError("prediction returned no images"))

        return ImageResult(
            image_url=urls[0],
            model=model.split("/")[1],
            metadata={"style": key, "seed": payload["seed"], "size": f"{width}x{height}"},
        )

    async def generate_video(
        self,
        prompt: str,
        image_urls: list[str],
        duration: int | None = None,
        fps: int = DEFAULT_VIDEO_FPS,
    ) -> VideoResult:
        image_urls = [u for u in (image_urls or []) if u]
        prompt = (prompt or "").strip()
        if not image_urls and not prompt:
            raise ValueError("Video generation requires at least one image or a prompt")
        duration = duration or DEFAULT_VIDEO_DURATION

        if len(image_urls) > 1:
            ref = ANIMATEDIFF
            payload: dict[str, Any] = {
                "input_images": image_urls,
                "motion_scale": 1.5,
                "guidance_scale": 7.5,
                "fps": fps,
                "num_frames": min(fps * duration, 120),
            }
        elif len(image_urls) == 1:
            ref = STABLE_VIDEO
            payload = {
                "image": image_urls[0],
                "motion_bucket_id": 40,
                "cond_aug": 0.02,
                "fps": fps,
                "noise_aug_strength": 0.1,
                "num_frames": min(fps * duration, 50),
            }
        else:
            ref = ZEROSCOPE
            payload = {
                "prompt": prompt,
                "negative_prompt": "low quality, blurry, text, watermark",
                "fps": fps,
                "num_frames": min(fps * duration, 120),
                "width": 1024,
                "height": 576,
            }

        model = ref.split(":", 1)[0]
        logger.info("Generating video with Replicate (model=%s, images=%d)", model, len(image_urls))
        output = await self._run(ref, payload, "Replicate Video")
        if isinstance(output, dict) and output.get("video"):
            output = output["video"]
        urls = _as_urls(output)
        if not urls:
            raise provider_failure(self.name, "Replicate Video", RuntimeError("prediction returned no video"))

        return VideoResult(
            video_url=urls[0],
            model=model.split("/")[1],
            thumbnail_url=image_urls[0] if image_urls else None,
            metadata={"duration": duration, "fps": fps},
        )

    async def _run(self, ref: str, payload: dict[str, Any], label: str) -> Any:
        try:
            return await self.client.async_run(ref, input=payload)
        except ReplicateException as exc:
            raise provider_failure(self.name, label, exc, getattr(exc, "status", None)) from exc
        except httpx.HTTPError as exc:
            status = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
            raise provider_failure(self.name, label, exc, status) from exc


def parse_size(size: str) -> tuple[int, int]:
    try:
        w, h = str(size).lower().split("x", 1)
        width, height = int(w), int(h)
    except ValueError:
        raise ValueError(f"size must look like '1024x1024', got {size!r}") from None
    if width <= 0 or height <= 0:
        raise ValueError(f"size must be positive, got {size!r}")
    return width, height


def _as_urls(output: Any) -> list[str]:
    # Newer SDKs return FileOutput objects; older ones return plain URL strings.
    if output is None:
        return []
    items = output if isinstance(output, (list, tuple)) else [output]
    urls: list[str] = []
    for item in items:
        url = getattr(item, "url", None) or (item if isinstance(item, str) else None)
        if url:
            urls.append(str(url))
    return urls
