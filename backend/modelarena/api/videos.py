"""Video API routes"""
import asyncio
import tempfile
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from modelarena.core.logging import upload_logger
from modelarena.db.session import get_db
from modelarena.db.task_queue import TaskQueue, get_task_queue
from modelarena.schemas.generation import ManualUploadResponse, RetryResponse
from modelarena.services.generation.dispatch import retry_video
from modelarena.services.generation.ingest import (
    ManualUpload,
    UploadTooLargeError,
    VideoAlreadyCompletedError,
    ingest_manual_upload,
    spool_upload,
)
from modelarena.services.media.pipeline import MediaPipeline, get_media_pipeline

router = APIRouter(prefix="/api/videos", tags=["videos"])


@router.post("/upload", response_model=ManualUploadResponse)
async def upload_manual_video(
    video: UploadFile = File(...),
    comparison_id: str = Form(..., alias="comparisonId"),
    model_id: str = Form(..., alias="modelId"),
    generation_time: Optional[float] = Form(None, alias="generationTime"),
    cost: Optional[float] = Form(None),
    duration: Optional[float] = Form(None),
    notes: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    media: MediaPipeline = Depends(get_media_pipeline),
):
    """Attach an operator-supplied video to a comparison

    For models whose vendor has no API. The file is streamed to disk, stored in
    R2, thumbnailed and measured; an existing non-completed row for the model is
    reused.
    """
    if not (video.content_type or "").startswith("video/"):
        raise HTTPException(400, "File must be a video")

    with tempfile.TemporaryDirectory(prefix="modelarena_upload_") as tmp:
        path = Path(tmp) / "upload.mp4"
        try:
            size = await spool_upload(video, path)
        except UploadTooLargeError as e:
            raise HTTPException(413, str(e))
        except asyncio.TimeoutError:
            upload_logger.error(f"Upload of {video.filename} timed out mid-stream")
            raise HTTPException(408, "Upload timed out")

        upload_logger.info(f"Received manual upload {video.filename} ({size / (1024 * 1024):.2f} MB)")

        try:
            uploaded = await ingest_manual_upload(
                db,
                media,
                ManualUpload(
                    comparison_id=comparison_id,
                    model_id=model_id,
                    path=path,
                    duration=duration,
                    generation_time=generation_time,
                    cost=cost,
                    notes=notes,
                ),
            )
        except LookupError as e:
            raise HTTPException(404, str(e))
        except VideoAlreadyCompletedError as e:
            raise HTTPException(409, str(e))
        except Exception as e:
            raise HTTPException(500, f"Failed to process upload: {e}")

    return ManualUploadResponse(
        success=True,
        message="Video uploaded",
        video_id=uploaded.id,
        status=uploaded.status,
        url=uploaded.url,
        thumbnail_url=uploaded.thumbnail_url,
    )


@router.post("/{video_id}/retry", response_model=RetryResponse)
def retry_video_generation(
    video_id: str,
    db: Session = Depends(get_db),
    queue: TaskQueue = Depends(get_task_queue),
):
    """Re-run generation for a FAILED or CANCELLED video

    Clears every derived field, moves the video back to QUEUED and enqueues a
    fresh job with a new attempt budget.
    """
    try:
        video, task_id = retry_video(db, queue, video_id)
    except LookupError:
        raise HTTPException(404, "Video not found")
    except ValueError as e:
        raise HTTPException(400, str(e))

    return RetryResponse(
        success=True,
        message="Video queued for retry",
        video_id=video.id,
        task_id=task_id,
    )
