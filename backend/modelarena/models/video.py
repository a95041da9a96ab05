"""Video model"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger, Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text
)
from sqlalchemy.orm import relationship

from modelarena.models.base import Base


class VideoStatus(str, enum.Enum):
    PENDING = "PENDING"
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


# Statuses from which an operator may re-queue a generation
RETRYABLE_STATUSES = (VideoStatus.FAILED.value, VideoStatus.CANCELLED.value)

# Everything the worker derives from a generation; cleared on retry
DERIVED_FIELDS = (
    "url", "r2_key", "thumbnail_url", "thumbnail_key",
    "duration", "width", "height", "file_size",
    "generation_time", "cost", "api_request_id", "api_response", "error_message",
    "manual_metadata",
)


class Video(Base):
    """One model's generation attempt within a comparison"""
    __tablename__ = "videos"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    comparison_id = Column(String(36), ForeignKey("comparisons.id", ondelete="CASCADE"), nullable=False, index=True)
    model_id = Column(String(36), ForeignKey("models.id"), nullable=False, index=True)
    status = Column(String(20), default=VideoStatus.PENDING.value, nullable=False)

    url = Column(String(1024))
    r2_key = Column(String(512))
    thumbnail_url = Column(String(1024))
    thumbnail_key = Column(String(512))

    # Measured metrics (ffprobe first, vendor-reported second)
    duration = Column(Float)
    width = Column(Integer)
    height = Column(Integer)
    file_size = Column(BigInteger)

    generation_time = Column(Float)  # seconds spent waiting on the vendor
    cost = Column(Float)  # USD, computed from measured metrics
    api_request_id = Column(String(255))
    api_response = Column(JSON)
    error_message = Column(Text)

    # Operator-uploaded rather than generated by the worker
    is_manual = Column(Boolean, default=False, nullable=False)
    manual_metadata = Column(JSON)  # {"notes": ...} supplied with the upload

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    comparison = relationship("Comparison", back_populates="videos")
    model = relationship("AIModel", back_populates="videos")

    __table_args__ = (
        Index('ix_videos_comparison_status', 'comparison_id', 'status'),
    )
