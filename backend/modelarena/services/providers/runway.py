"""Runway provider (async submit and poll)

Step 1 creates a task, step 2 polls the task until it reaches a terminal
status or the poll ceiling is hit.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from modelarena.core.config import settings
from modelarena.services.providers.base import (
    GenerationRequest,
    GenerationResult,
    Stopwatch,
    as_int,
)

logger = logging.getLogger("providers")

# Runway only accepts concrete pixel ratios
RUNWAY_RATIO_MAP = {
    "16:9": "1280:720",
    "9:16": "720:1280",
    "1:1": "960:960",
    "4:3": "1104:832",
    "3:4": "832:1104",
    "21:9": "1584:672",
}
DEFAULT_RATIO = "1280:720"

SUCCEEDED = "SUCCEEDED"
FAILED = "FAILED"
CANCELLED = "CANCELLED"


def to_runway_ratio(aspect_ratio: Optional[str]) -> str:
    """Translate an abstract ratio ("16:9") into Runway's "W:H" pixel notation"""
    if not aspect_ratio:
        return DEFAULT_RATIO
    if aspect_ratio in RUNWAY_RATIO_MAP:
        return RUNWAY_RATIO_MAP[aspect_ratio]
    if aspect_ratio in RUNWAY_RATIO_MAP.values():
        return aspect_ratio
    width, _, height = aspect_ratio.partition(":")
    if width.isdigit() and height.isdigit() and int(width) > 100 and int(height) > 100:
        # Already pixel-pair notation
        return aspect_ratio
    logger.warning(f"[runway] Unsupported aspect ratio {aspect_ratio!r}, using {DEFAULT_RATIO}")
    return DEFAULT_RATIO


class RunwayProvider:
    """Runway Gen-3/Gen-4 models via the REST task API"""

    name = "runway"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        poll_interval: Optional[float] = None,
        max_poll_attempts: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key or settings.RUNWAYML_API_SECRET
        if not self.api_key:
            raise ValueError("RUNWAYML_API_SECRET is not set. Set it to use Runway models.")
        self.base_url = (base_url or settings.RUNWAY_API_BASE).rstrip("/")
        self.poll_interval = settings.RUNWAY_POLL_INTERVAL if poll_interval is None else poll_interval
        self.max_poll_attempts = max_poll_attempts or settings.RUNWAY_MAX_POLL_ATTEMPTS
        self._transport = transport

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "X-Runway-Version": settings.RUNWAY_API_VERSION,
        }

    def build_task(self, model_endpoint: str, request: GenerationRequest) -> Dict[str, Any]:
        body: Dict[str, Any] = request.vendor_params()
        default_ratio = body.pop("aspect_ratio", None)
        aspect_ratio = request.aspect_ratio or default_ratio or body.get("ratio")
        body.update({
            "model": model_endpoint,
            "promptText": request.prompt,
            "ratio": to_runway_ratio(aspect_ratio),
        })
        if request.source_image_url:
            body["promptImage"] = request.source_image_url

        duration = as_int(request.duration if request.duration is not None else body.get("duration"))
        if duration is not None:
            body["duration"] = duration
        else:
            body.pop("duration", None)

        if request.seed is not None:
            body["seed"] = request.seed
        return body

    async def generate_video(self, model_endpoint: str, request: GenerationRequest) -> GenerationResult:
        stopwatch = Stopwatch()
        body = self.build_task(model_endpoint, request)
        route = "image_to_video" if request.source_image_url else "text_to_video"

        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=settings.RUNWAY_REQUEST_TIMEOUT,
            transport=self._transport,
        ) as client:
            try:
                response = await client.post(f"/{route}", json=body)
            except httpx.HTTPError as e:
                logger.error(f"[runway] Task creation failed: {e}")
                return GenerationResult(
                    success=False, generation_time=stopwatch.elapsed, error=f"Runway request failed: {e}"
                )

            created = _json_or_text(response)
            if response.status_code >= 400:
                logger.error(f"[runway] HTTP {response.status_code} creating task: {created}")
                return GenerationResult(
                    success=False,
                    generation_time=stopwatch.elapsed,
                    raw_response=created,
                    error=f"Runway returned HTTP {response.status_code}: {_error_detail(created)}",
                )

            task_id = created.get("id") if isinstance(created, dict) else None
            if not task_id:
                return GenerationResult(
                    success=False,
                    generation_time=stopwatch.elapsed,
                    raw_response=created,
                    error="Runway response did not include a task id",
                )

            logger.info(f"[runway] Created task {task_id} for {model_endpoint}")
            return await self._poll(client, task_id, stopwatch)

    async def _poll(self, client: httpx.AsyncClient, task_id: str, stopwatch: Stopwatch) -> GenerationResult:
        task: Any = None
        for attempt in range(1, self.max_poll_attempts + 1):
            await asyncio.sleep(self.poll_interval)

            try:
                response = await client.get(f"/tasks/{task_id}")
            except httpx.HTTPError as e:
                # Transient; the ceiling still bounds the total wait
                logger.warning(f"[runway] Poll {attempt} for task {task_id} failed: {e}")
                continue

            if response.status_code >= 400:
                logger.warning(f"[runway] Poll {attempt} for task {task_id} returned HTTP {response.status_code}")
                continue

            task = _json_or_text(response)
            status = str(task.get("status", "")).upper() if isinstance(task, dict) else ""
            logger.debug(f"[runway] Task {task_id} status {status} (poll {attempt})")

            if status == SUCCEEDED:
                outputs = task.get("output")
                # A list of URLs; anything else (a bare string, a dict) is malformed
                if not isinstance(outputs, list) or not outputs or not isinstance(outputs[0], str) or not outputs[0]:
                    return GenerationResult(
                        success=False,
                        generation_time=stopwatch.elapsed,
                        api_request_id=task_id,
                        raw_response=task,
                        error="Runway task succeeded but returned no output URLs",
                    )
                return GenerationResult(
                    success=True,
                    video_url=outputs[0],
                    generation_time=stopwatch.elapsed,
                    api_request_id=task_id,
                    raw_response=task,
                )

            if status == FAILED:
                failure = task.get("failure") or "unknown failure"
                failure_code = task.get("failureCode")
                message = (
                    f"Runway generation failed ({failure_code}): {failure}"
                    if failure_code else f"Runway generation failed: {failure}"
                )
                return GenerationResult(
                    success=False,
                    generation_time=stopwatch.elapsed,
                    api_request_id=task_id,
                    raw_response=task,
                    error=message,
                )

            if status == CANCELLED:
                return GenerationResult(
                    success=False,
                    generation_time=stopwatch.elapsed,
                    api_request_id=task_id,
                    raw_response=task,
                    error="Runway task was cancelled",
                )

        return GenerationResult(
            success=False,
            generation_time=stopwatch.elapsed,
            api_request_id=task_id,
            raw_response=task,
            error=(
                f"Runway generation timed out after {self.max_poll_attempts} polls "
                f"({self.max_poll_attempts * self.poll_interval:.0f}s, task {task_id})"
            ),
        )


def _json_or_text(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_detail(body: Any) -> Any:
    if isinstance(body, dict):
        return body.get("error") or body.get("message") or body
    return body
