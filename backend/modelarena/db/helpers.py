"""Database helper functions for generation rows"""
from typing import Optional

from sqlalchemy import text
from sqlalchemy.orm import Session, joinedload

from modelarena.models.ai_model import AIModel
from modelarena.models.video import DERIVED_FIELDS, Video, VideoStatus


def get_video(video_id: str, db: Session) -> Optional[Video]:
    """Fetch a video row, or None if it has been deleted"""
    return db.query(Video).filter(Video.id == video_id).first()


def get_model(model_id: str, db: Session) -> Optional[AIModel]:
    """Fetch a model row with its provider loaded"""
    return (
        db.query(AIModel)
        .options(joinedload(AIModel.provider))
        .filter(AIModel.id == model_id)
        .first()
    )


def update_video(video_id: str, db: Session, **kwargs) -> Optional[Video]:
    """Set columns on a video and commit

    Returns:
        The updated video, or None if the row no longer exists
    """
    video = get_video(video_id, db)
    if video is None:
        return None

    try:
        for key, value in kwargs.items():
            if not hasattr(Video, key):
                raise AttributeError(f"Video has no column '{key}'")
            setattr(video, key, value.value if isinstance(value, VideoStatus) else value)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(video)
    return video


def reset_video_for_retry(video: Video, db: Session) -> Video:
    """Clear every derived generation field and move the video back to QUEUED"""
    for field in DERIVED_FIELDS:
        setattr(video, field, None)
    video.is_manual = False
    video.status = VideoStatus.QUEUED.value
    db.commit()
    db.refresh(video)
    return video


def check_database(db: Session) -> None:
    """Raise if the database is unreachable"""
    db.execute(text("SELECT 1"))
