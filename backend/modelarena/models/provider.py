"""Provider model"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from modelarena.models.base import Base


class Provider(Base):
    """Video generation vendor (name doubles as the provider registry key)"""
    __tablename__ = "providers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), unique=True, nullable=False)  # fal.ai, runway, manual
    display_name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    models = relationship("AIModel", back_populates="provider")
