"""AI video generation model"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, JSON, String
from sqlalchemy.orm import relationship

from modelarena.models.base import Base

# Reserved keys inside default_params
PRICING_KEY = "pricing"
IMAGE_TO_VIDEO = "image-to-video"
TEXT_TO_VIDEO = "text-to-video"


class AIModel(Base):
    """A single model exposed by a provider (e.g. Kling 2.5 Turbo Pro on fal.ai)"""
    __tablename__ = "models"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slug = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    provider_id = Column(String(36), ForeignKey("providers.id"), nullable=False, index=True)
    endpoint = Column(String(512))  # vendor model endpoint, e.g. "fal-ai/veo3.1/image-to-video"
    is_active = Column(Boolean, default=True, nullable=False)
    cost_per_second = Column(Float, nullable=True)  # legacy flat rate, used when no pricing config
    # Field-mapping hints and "pricing" at top level, direction defaults under
    # "image-to-video" / "text-to-video"
    default_params = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    provider = relationship("Provider", back_populates="models")
    videos = relationship("Video", back_populates="model")
