from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from adforge.config import ProviderConfig
from adforge.providers.base import Capability, VideoResult, provider_failure, require_api_key

logger = logging.getLogger(__name__)

RUNWAY_BASE_URL = "https://api.dev.runwayml.com/v1"
RUNWAY_API_VERSION = "2024-11-06"

RATIOS = ("1280:720", "720:1280", "1104:832", "832:1104", "960:960", "1584:672")
DURATIONS = (5, 10)

PENDING_STATUSES = {"PENDING", "THROTTLED", "RUNNING"}
FAILED_STATUSES = {"FAILED", "CANCELLED"}


class RunwayProvider:
    """Image-to-video through Runway's task API.

    A generation is one POST that returns a task id, followed by polling
    ``/tasks/{id}`` until the task settles. Polling is bounded by ``max_wait_s``;
    there is no retry of the POST itself.
    """

    name = "runway"
    label = "Runway"
    capabilities = frozenset({Capability.VIDEO})

    def __init__(self, config: ProviderConfig) -> None:
        api_key = require_api_key(config, self.label)
        self.model = config.model or "gen4_turbo"
        self.poll_interval_s = float(config.options.get("poll_interval_s", 5.0))
        self.max_wait_s = float(config.options.get("max_wait_s", 600.0))
        self.client = httpx.AsyncClient(
            base_url=RUNWAY_BASE_URL,
            headers={
                "Authorization": f"Bearer {api_key}",
                "X-Runway-Version": RUNWAY_API_VERSION,
            },
            timeout=httpx.Timeout(config.timeout_s or 120.0, connect=10.0),
        )
        logger.info("Runway adapter initialized with model: %s", self.model)

    async def generate_video(
        self,
        prompt: str,
        image_urls: list[str],
        duration: int | None = None,
        ratio: str = "1280:720",
    ) -> VideoResult:
        image_urls = [u for u in (image_urls or []) if u]
        if not image_urls:
            raise ValueError("Runway video generation requires at least one image")
        duration = duration or 5
        if duration not in DURATIONS:
            raise ValueError(f"duration must be one of {DURATIONS}, got {duration!r}")
        if ratio not in RATIOS:
            raise ValueError(f"ratio must be one of: {', '.join(RATIOS)}")

        body: dict[str, Any] = {
            "model": self.model,
            "promptImage": image_urls[0],
            "ratio": ratio,
            "duration": duration,
        }
        if prompt and prompt.strip():
            body["promptText"] = prompt.strip()[:1000]

        logger.info("Starting Runway image_to_video task (model=%s, ratio=%s)", self.model, ratio)
        created = await self._request("POST", "/image_to_video", json=body)
        task_id = str(created.get("id") or "")
        if not task_id:
            raise provider_failure(self.name, self.label, RuntimeError("task id missing from response"))

        task = await self._wait_for_task(task_id)
        output = task.get("output") or []
        if not output:
            raise provider_failure(self.name, self.label, RuntimeError(f"task {task_id} finished without output"))

        return VideoResult(
            video_url=str(output[0]),
            model=self.model,
            thumbnail_url=image_urls[0],
            task_id=task_id,
            metadata={"duration": duration, "ratio": ratio},
        )

    async def check_status(self, task_id: str) -> dict[str, Any]:
        task = await self._request("GET", f"/tasks/{task_id}")
        return {
            "job_id": task_id,
            "status": str(task.get("status", "UNKNOWN")).lower(),
            "progress": task.get("progress"),
            "output": task.get("output") or [],
            "failure": task.get("failure"),
        }

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _wait_for_task(self, task_id: str) -> dict[str, Any]:
        deadline = time.monotonic() + self.max_wait_s
        while True:
            task = await self._request("GET", f"/tasks/{task_id}")
            status = str(task.get("status", "")).upper()
            if status == "SUCCEEDED":
                return task
            if status in FAILED_STATUSES:
                reason = task.get("failure") or status.lower()
                raise provider_failure(self.name, self.label, RuntimeError(f"task {task_id} {status.lower()}: {reason}"))
            if status not in PENDING_STATUSES:
                raise provider_failure(self.name, self.label, RuntimeError(f"task {task_id} returned unknown status {status!r}"))
            if time.monotonic() >= deadline:
                raise provider_failure(
                    self.name, self.label, TimeoutError(f"task {task_id} did not finish within {self.max_wait_s:.0f}s")
                )
            await asyncio.sleep(self.poll_interval_s)

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = await self.client.request(method, path, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = _error_detail(exc.response) or str(exc)
            raise provider_failure(self.name, self.label, RuntimeError(detail), exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            raise provider_failure(self.name, self.label, exc) from exc
        try:
            data = resp.json()
        except ValueError as exc:
            raise provider_failure(
                self.name, self.label, RuntimeError(f"non-JSON response: {resp.text[:200]}"), resp.status_code
            ) from exc
        if not isinstance(data, dict):
            raise provider_failure(self.name, self.label, RuntimeError("unexpected response payload"))
        return data


def _error_detail(resp: httpx.Response) -> str | None:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or None
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or data) or None
    return str(data)
