"""Manual uploads: operator-supplied videos for models without a generation API

The row goes PROCESSING (flagged manual) before anything touches storage, then
COMPLETED with measured metrics, or FAILED with the error if any step raises.
"""
import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from sqlalchemy.orm import Session

from modelarena.core.config import settings
from modelarena.core.logging import upload_logger
from modelarena.db.helpers import update_video
from modelarena.models.ai_model import AIModel
from modelarena.models.comparison import Comparison
from modelarena.models.video import Video, VideoStatus
from modelarena.services.media.pipeline import MediaPipeline

UPLOAD_CHUNK_SIZE = 1024 * 1024  # 1MB


class UploadTooLargeError(ValueError):
    """The upload exceeded MAX_UPLOAD_SIZE"""


class VideoAlreadyCompletedError(ValueError):
    """A completed video already exists for this comparison and model"""


@dataclass
class ManualUpload:
    """An uploaded file already spooled to disk, plus the operator's form fields"""
    comparison_id: str
    model_id: str
    path: Path
    duration: Optional[float] = None  # operator-reported; beats the measured value
    generation_time: Optional[float] = None
    cost: Optional[float] = None
    notes: Optional[str] = None


async def spool_upload(source: Any, dest: Path, max_bytes: Optional[int] = None) -> int:
    """Stream an UploadFile-like object (async `read(n)`) into `dest`

    Returns:
        Number of bytes written

    Raises:
        UploadTooLargeError: if more than `max_bytes` arrive; the partial file is removed
        asyncio.TimeoutError: if a single chunk takes longer than UPLOAD_CHUNK_TIMEOUT
    """
    max_bytes = settings.MAX_UPLOAD_SIZE if max_bytes is None else max_bytes
    written = 0
    try:
        with open(dest, "wb") as f:
            while True:
                chunk = await asyncio.wait_for(source.read(UPLOAD_CHUNK_SIZE), timeout=settings.UPLOAD_CHUNK_TIMEOUT)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise UploadTooLargeError(
                        f"File too large: maximum upload size is {max_bytes / (1024 * 1024):.0f} MB"
                    )
                f.write(chunk)
    except Exception:
        dest.unlink(missing_ok=True)
        raise
    return written


def claim_video_for_upload(db: Session, comparison_id: str, model_id: str) -> Video:
    """Create or reuse the comparison's row for this model, moved to PROCESSING

    Raises:
        LookupError: comparison or model does not exist
        VideoAlreadyCompletedError: the model already has a completed video here
    """
    if db.get(Comparison, comparison_id) is None:
        raise LookupError(f"Comparison {comparison_id} not found")
    if db.get(AIModel, model_id) is None:
        raise LookupError(f"Model {model_id} not found")

    video = (
        db.query(Video)
        .filter(Video.comparison_id == comparison_id, Video.model_id == model_id)
        .first()
    )
    if video is not None and video.status == VideoStatus.COMPLETED.value:
        raise VideoAlreadyCompletedError("A completed video already exists for this model in this comparison")

    if video is None:
        video = Video(comparison_id=comparison_id, model_id=model_id)
        db.add(video)
    video.status = VideoStatus.PROCESSING.value
    video.is_manual = True
    video.error_message = None
    db.commit()
    db.refresh(video)
    return video


async def ingest_manual_upload(db: Session, media: MediaPipeline, upload: ManualUpload) -> Video:
    """Store an operator's video, thumbnail it, and complete its row

    Raises:
        LookupError, VideoAlreadyCompletedError: before any row is touched
        Exception: any storage or media failure, after the row is marked FAILED
    """
    video = claim_video_for_upload(db, upload.comparison_id, upload.model_id)
    video_id = video.id
    upload_logger.info(f"Manual upload for video {video_id} (comparison {upload.comparison_id}, model {upload.model_id})")

    try:
        stored = await media.store_local_video(upload.path, video_id)
        measured = stored.metadata

        duration = upload.duration
        if duration is None and measured is not None:
            duration = measured.duration

        thumbnail = await media.generate_thumbnail_from_file(upload.path, video_id, duration)

        manual_metadata = {"notes": upload.notes} if upload.notes else None
        completed = update_video(
            video_id,
            db=db,
            status=VideoStatus.COMPLETED,
            url=stored.url,
            r2_key=stored.key,
            thumbnail_url=thumbnail.url,
            thumbnail_key=thumbnail.key,
            file_size=stored.file_size,
            width=measured.width if measured else None,
            height=measured.height if measured else None,
            duration=duration,
            generation_time=upload.generation_time,
            cost=upload.cost,
            manual_metadata=manual_metadata,
            error_message=None,
        )
    except Exception as e:
        upload_logger.error(f"Manual upload for video {video_id} failed: {e}", exc_info=True)
        try:
            db.rollback()
            update_video(video_id, db=db, status=VideoStatus.FAILED, error_message=str(e) or type(e).__name__)
        except Exception as update_error:
            upload_logger.error(f"Could not mark video {video_id} as failed: {update_error}")
        raise

    if completed is None:
        raise LookupError(f"Video {video_id} was deleted during upload")

    upload_logger.info(f"Manual upload for video {video_id} completed ({stored.file_size} bytes)")
    return completed
