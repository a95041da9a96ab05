"""Generation orchestration - one job attempt from dequeue to terminal video state

received -> video-exists-check -> processing -> generating
    -> downloading -> probing -> thumbnailing -> pricing -> completed
    | failed
"""
import re
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from modelarena.core.logging import generation_logger
from modelarena.core.metrics import (
    generation_cost_counter,
    generation_seconds_histogram,
    pricing_errors_counter,
)
from modelarena.db.helpers import get_model, get_video, update_video
from modelarena.models.ai_model import IMAGE_TO_VIDEO, PRICING_KEY, TEXT_TO_VIDEO, AIModel
from modelarena.models.video import VideoStatus
from modelarena.schemas.generation import GenerationJobData
from modelarena.services.media.pipeline import MediaPipeline
from modelarena.services.media.probe import VideoMetadata
from modelarena.services.pricing import CostCalculationContext, calculate_cost, format_cost
from modelarena.services.providers.base import GenerationRequest, GenerationResult, as_float
from modelarena.services.providers.registry import ProviderRegistry

DIRECTION_KEYS = (IMAGE_TO_VIDEO, TEXT_TO_VIDEO)


class GenerationFailedError(RuntimeError):
    """The provider reported a failed generation; eligible for queue retry"""

    def __init__(self, message: str, result: Optional[GenerationResult] = None):
        super().__init__(message)
        self.result = result


def resolve_generation_params(model: AIModel, job: GenerationJobData) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
    """Layer model hints, direction defaults and job params into vendor params

    Later layers win: model-level hints < defaults for the job's direction
    (image-to-video when a source image is present) < job additional_params.
    An explicit job aspect ratio beats all of them.

    Returns:
        (params for the provider, raw pricing config or None)
    """
    defaults = model.default_params or {}
    direction = IMAGE_TO_VIDEO if job.source_image_url else TEXT_TO_VIDEO

    params: Dict[str, Any] = {k: v for k, v in defaults.items() if k not in DIRECTION_KEYS}

    direction_defaults = defaults.get(direction)
    if isinstance(direction_defaults, dict):
        params.update(direction_defaults)

    params.update(job.additional_params or {})

    if job.aspect_ratio:
        params["aspect_ratio"] = job.aspect_ratio

    pricing = params.pop(PRICING_KEY, None)
    return params, pricing if isinstance(pricing, dict) else None


# Rows a delivered job may (re)generate; FAILED stays open for queue retries
PROCESSABLE_STATUSES = (VideoStatus.QUEUED.value, VideoStatus.PROCESSING.value, VideoStatus.FAILED.value)

_PIXEL_PAIR = re.compile(r"^\s*(\d{3,5})\s*[x:]\s*(\d{3,5})\s*$", re.IGNORECASE)
_ASPECT = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*:\s*(\d+(?:\.\d+)?)\s*$")
_SHORT_SIDE = re.compile(r"^\s*(\d{3,4})p\s*$", re.IGNORECASE)
_NAMED_SHORT_SIDES = {"4k": 2160, "2k": 1440}


def _even(value: float) -> int:
    return int(round(value / 2)) * 2


def requested_dimensions(params: Dict[str, Any]) -> Tuple[Optional[int], Optional[int]]:
    """Resolution asked of the vendor, when the params pin one down

    Accepts an explicit pixel pair ("1280x720", Runway's "1280:720") under
    `size`, `ratio` or `resolution`, or a short-side label ("720p", "4k")
    combined with `aspect_ratio`.
    """
    for key in ("size", "ratio", "resolution"):
        match = _PIXEL_PAIR.match(str(params.get(key) or ""))
        if match:
            return int(match.group(1)), int(match.group(2))

    label = str(params.get("resolution") or "").strip().lower()
    match = _SHORT_SIDE.match(label)
    short = int(match.group(1)) if match else _NAMED_SHORT_SIDES.get(label)
    aspect = _ASPECT.match(str(params.get("aspect_ratio") or ""))
    if not short or not aspect:
        return None, None

    w, h = float(aspect.group(1)), float(aspect.group(2))
    if w <= 0 or h <= 0:
        return None, None
    if w >= h:
        return _even(short * w / h), short
    return short, _even(short * h / w)


def resolve_final_metrics(
    metadata: Optional[VideoMetadata],
    result: GenerationResult,
    requested_duration: Optional[float],
    requested_size: Tuple[Optional[int], Optional[int]] = (None, None),
) -> Tuple[float, Optional[int], Optional[int]]:
    """Probed metrics first, vendor-reported second, requested third

    Only duration has a last-resort value (0); an unknown resolution stays None.
    """
    probed_duration = metadata.duration if metadata else None
    duration = next(
        (d for d in (probed_duration, result.duration, requested_duration) if d is not None),
        0.0,
    )
    requested_width, requested_height = requested_size
    width = (metadata.width if metadata else None) or result.width or requested_width
    height = (metadata.height if metadata else None) or result.height or requested_height
    return float(duration), width, height


class GenerationOrchestrator:
    """Runs a single generation attempt and reconciles the video row"""

    def __init__(self, registry: ProviderRegistry, media: MediaPipeline):
        self.registry = registry
        self.media = media

    async def process(self, job: GenerationJobData, db: Session) -> Dict[str, Any]:
        """Process one job attempt

        Returns:
            Summary dict; {"skipped": True} when the video no longer exists
            or is no longer awaiting generation (COMPLETED, CANCELLED, PENDING)

        Raises:
            Exception: any failure, after the video has been marked FAILED
        """
        video_id = job.video_id
        generation_logger.info(f"Processing video generation for {video_id} ({job.provider_name}/{job.model_endpoint})")

        video = get_video(video_id, db)
        if video is None:
            generation_logger.info(f"Video {video_id} was deleted before processing, skipping job")
            return {"video_id": video_id, "skipped": True}

        # Redelivered jobs must not regenerate (or re-bill) finished or cancelled videos
        if video.status not in PROCESSABLE_STATUSES:
            generation_logger.info(f"Video {video_id} is {video.status}, skipping job")
            return {"video_id": video_id, "skipped": True, "status": video.status}

        # Mark PROCESSING before any vendor call; a missing row means an operator deleted it
        if update_video(video_id, db=db, status=VideoStatus.PROCESSING) is None:
            generation_logger.info(f"Video {video_id} was deleted before processing, skipping job")
            return {"video_id": video_id, "skipped": True}

        result: Optional[GenerationResult] = None
        stage = "generating"
        try:
            model = get_model(job.model_id, db)
            if model is None:
                raise ValueError(f"Model {job.model_id} not found")

            params, pricing_config = resolve_generation_params(model, job)
            provider = self.registry.get(job.provider_name)

            result = await provider.generate_video(
                job.model_endpoint,
                GenerationRequest(
                    prompt=job.prompt,
                    source_image_url=job.source_image_url,
                    duration=job.duration,
                    aspect_ratio=job.aspect_ratio,
                    seed=job.seed,
                    additional_params=params,
                ),
            )
            generation_seconds_histogram.labels(provider=job.provider_name).observe(result.generation_time or 0)

            if not result.success or not result.video_url:
                raise GenerationFailedError(result.error or "Video generation failed", result)

            generation_logger.info(f"Video {video_id} generated in {result.generation_time:.1f}s, uploading to storage")

            stage = "downloading"
            upload = await self.media.download_and_upload(result.video_url, video_id)

            stage = "thumbnailing"
            thumbnail = await self.media.generate_thumbnail(upload.url, video_id)

            stage = "pricing"
            requested_duration = as_float(job.duration if job.duration is not None else params.get("duration"))
            duration, width, height = resolve_final_metrics(
                upload.metadata, result, requested_duration, requested_dimensions(params)
            )

            # has_audio stays False until audio detection exists
            pricing = calculate_cost(
                pricing_config,
                CostCalculationContext(duration=duration, width=width, height=height, has_audio=False),
                model.cost_per_second,
            )
            if pricing.error:
                pricing_errors_counter.inc()
                generation_logger.warning(
                    f"Pricing for video {video_id} ({model.slug}) unavailable: {pricing.error}; "
                    f"recording cost {format_cost(pricing.cost)}"
                )

            stage = "completing"
            completed = update_video(
                video_id,
                db=db,
                status=VideoStatus.COMPLETED,
                url=upload.url,
                r2_key=upload.key,
                thumbnail_url=thumbnail.url,
                thumbnail_key=thumbnail.key,
                duration=duration,
                width=width,
                height=height,
                file_size=upload.file_size,
                generation_time=result.generation_time,
                cost=pricing.cost,
                api_request_id=result.api_request_id,
                api_response=result.raw_response,
                error_message=None,
            )
            if completed is None:
                generation_logger.warning(f"Video {video_id} was deleted mid-generation, discarding result")
                return {"video_id": video_id, "skipped": True}

            generation_cost_counter.labels(provider=job.provider_name).inc(pricing.cost)

            generation_logger.info(
                f"Video {video_id} completed: {duration:.2f}s {width}x{height}, cost {format_cost(pricing.cost)}"
            )
            return {"video_id": video_id, "status": VideoStatus.COMPLETED.value, "cost": pricing.cost, "duration": duration}

        except Exception as e:
            generation_logger.error(f"Job failed for video {video_id} during {stage}: {e}")
            self._mark_failed(db, video_id, str(e) or type(e).__name__, result)
            raise

    def _mark_failed(self, db: Session, video_id: str, message: str, result: Optional[GenerationResult]) -> None:
        """Persist FAILED; a vanished row or a failing write is logged, not raised"""
        fields: Dict[str, Any] = {"status": VideoStatus.FAILED, "error_message": message}
        if result is not None:
            fields["generation_time"] = result.generation_time
            if result.raw_response is not None:
                fields["api_response"] = result.raw_response
            if result.api_request_id:
                fields["api_request_id"] = result.api_request_id

        try:
            db.rollback()
            if update_video(video_id, db=db, **fields) is None:
                generation_logger.warning(f"Video {video_id} was deleted mid-generation, nothing to mark failed")
        except Exception as update_error:
            generation_logger.error(f"Could not mark video {video_id} as failed: {update_error}")
