"""Enqueue side of the pipeline: one job per (video, model)"""
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from modelarena.core.logging import generation_logger
from modelarena.db.helpers import get_video, reset_video_for_retry
from modelarena.db.task_queue import GENERATION_TASK_TYPE, TaskQueue
from modelarena.models.ai_model import AIModel
from modelarena.models.comparison import Comparison
from modelarena.models.video import RETRYABLE_STATUSES, Video, VideoStatus
from modelarena.schemas.generation import GenerationJobData, GenerationOptions


def build_job_payload(
    video: Video,
    model: AIModel,
    comparison: Comparison,
    options: Optional[GenerationOptions] = None,
) -> GenerationJobData:
    options = options or GenerationOptions()
    return GenerationJobData(
        video_id=video.id,
        comparison_id=comparison.id,
        model_id=model.id,
        prompt=comparison.prompt,
        source_image_url=comparison.source_image_url,
        model_endpoint=model.endpoint or "",
        provider_name=model.provider.name,
        duration=options.duration,
        aspect_ratio=options.aspect_ratio,
        seed=options.seed,
        additional_params=options.additional_params or None,
    )


def enqueue_generation(queue: TaskQueue, job: GenerationJobData) -> str:
    return queue.enqueue(GENERATION_TASK_TYPE, job.model_dump(mode="json"))


def queue_generation(
    db: Session,
    queue: TaskQueue,
    comparison: Comparison,
    models: Iterable[AIModel],
    options: Optional[GenerationOptions] = None,
) -> List[Tuple[Video, str]]:
    """Create a QUEUED video per model and enqueue its generation job

    Used both when a comparison is created and when models are added to an
    existing one.

    Returns:
        (video, task_id) pairs in model order
    """
    models = list(models)
    videos = []
    for model in models:
        if not model.is_active:
            raise ValueError(f"Model {model.slug} is not active")
        video = Video(comparison_id=comparison.id, model_id=model.id, status=VideoStatus.QUEUED.value)
        db.add(video)
        videos.append(video)
    db.commit()

    queued = []
    for video, model in zip(videos, models):
        db.refresh(video)
        task_id = enqueue_generation(queue, build_job_payload(video, model, comparison, options))
        queued.append((video, task_id))

    generation_logger.info(f"Queued {len(queued)} generation job(s) for comparison {comparison.id}")
    return queued


def retry_video(db: Session, queue: TaskQueue, video_id: str) -> Tuple[Video, str]:
    """Operator retry: clear derived fields, re-enter QUEUED, enqueue a fresh job

    Raises:
        LookupError: video does not exist
        ValueError: video is not FAILED or CANCELLED
    """
    video = get_video(video_id, db)
    if video is None:
        raise LookupError(f"Video {video_id} not found")

    if video.status not in RETRYABLE_STATUSES:
        raise ValueError(f"Video is not in a retryable state. Current status: {video.status}")

    reset_video_for_retry(video, db)
    task_id = enqueue_generation(queue, build_job_payload(video, video.model, video.comparison))

    generation_logger.info(f"Video {video_id} queued for retry as task {task_id}")
    return video, task_id
