"""Comparison model"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import relationship

from modelarena.models.base import Base


class Comparison(Base):
    """One prompt (and optional source image) fanned out to several models"""
    __tablename__ = "comparisons"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slug = Column(String(255), unique=True, nullable=False)
    title = Column(String(255), nullable=False)
    prompt = Column(Text, nullable=False)
    source_image_url = Column(String(1024))
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    videos = relationship("Video", back_populates="comparison", cascade="all, delete-orphan")
