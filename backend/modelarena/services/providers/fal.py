"""fal.ai provider (synchronous subscribe)

fal.run blocks until the generation finishes and returns the model output in
the response body, so a single request covers the whole generation.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from modelarena.core.config import settings
from modelarena.services.providers.base import (
    IMAGE_URL_FIELD_KEY,
    IMAGE_URL_IS_ARRAY_KEY,
    GenerationRequest,
    GenerationResult,
    Stopwatch,
    as_float,
    as_int,
    dig,
)

logger = logging.getLogger("providers")

# Tried in order, first present wins. Models disagree on where the URL lives.
VIDEO_URL_PATHS = ("video.url", "video_url", "output.video_url")


def extract_video_url(payload: Any) -> Optional[str]:
    for path in VIDEO_URL_PATHS:
        url = dig(payload, path)
        if url:
            return url
    return None


class FalProvider:
    """fal.ai text/image-to-video models"""

    name = "fal.ai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key or settings.FAL_KEY
        if not self.api_key:
            raise ValueError("FAL_KEY is not set. Set the FAL_KEY environment variable to use fal.ai models.")
        self.base_url = (base_url or settings.FAL_RUN_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.FAL_REQUEST_TIMEOUT
        self._transport = transport

    def build_input(self, request: GenerationRequest) -> Dict[str, Any]:
        """Merge prompt, image, and generation options into the model input"""
        params = request.additional_params or {}
        image_url_field = params.get(IMAGE_URL_FIELD_KEY)
        image_url_is_array = bool(params.get(IMAGE_URL_IS_ARRAY_KEY))

        payload: Dict[str, Any] = {"prompt": request.prompt, **request.vendor_params()}

        if request.source_image_url:
            if image_url_field and isinstance(image_url_field, str):
                # Custom image field name (e.g. "image_urls" for Kling O1)
                payload[image_url_field] = (
                    [request.source_image_url] if image_url_is_array else request.source_image_url
                )
            else:
                payload["image_url"] = request.source_image_url

        if request.aspect_ratio and not payload.get("aspect_ratio"):
            payload["aspect_ratio"] = request.aspect_ratio

        if request.duration is not None and payload.get("duration") is None:
            payload["duration"] = request.duration

        if request.seed is not None:
            payload["seed"] = request.seed

        return payload

    async def generate_video(self, model_endpoint: str, request: GenerationRequest) -> GenerationResult:
        stopwatch = Stopwatch()
        payload = self.build_input(request)
        url = f"{self.base_url}/{model_endpoint.strip('/')}"

        logger.info(f"[fal.ai] Sending request to {model_endpoint}")
        logger.debug(f"[fal.ai] Input: {payload}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers={"Authorization": f"Key {self.api_key}"},
                )
        except httpx.HTTPError as e:
            logger.error(f"[fal.ai] Request to {model_endpoint} failed: {e}")
            return GenerationResult(
                success=False,
                generation_time=stopwatch.elapsed,
                error=f"fal.ai request failed: {e}",
            )

        generation_time = stopwatch.elapsed
        body = _json_or_text(response)

        if response.status_code >= 400:
            detail = body.get("detail") if isinstance(body, dict) else body
            logger.error(f"[fal.ai] HTTP {response.status_code} from {model_endpoint}: {detail}")
            return GenerationResult(
                success=False,
                generation_time=generation_time,
                raw_response=body,
                error=f"fal.ai returned HTTP {response.status_code}: {detail}",
            )

        video_url = extract_video_url(body)
        if not video_url:
            logger.error(f"[fal.ai] No video URL in response: {body}")
            return GenerationResult(
                success=False,
                generation_time=generation_time,
                raw_response=body,
                error="No video URL in API response",
            )

        request_id = (
            (body.get("request_id") if isinstance(body, dict) else None)
            or response.headers.get("x-fal-request-id")
        )

        return GenerationResult(
            success=True,
            video_url=video_url,
            duration=as_float(dig(body, "video.duration")),
            width=as_int(dig(body, "video.width")),
            height=as_int(dig(body, "video.height")),
            generation_time=generation_time,
            api_request_id=request_id,
            raw_response=body,
        )


def _json_or_text(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
