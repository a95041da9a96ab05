"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from modelarena.models.base import Base
from modelarena.models.provider import Provider
from modelarena.models.ai_model import AIModel
from modelarena.models.comparison import Comparison
from modelarena.models.video import Video, VideoStatus

# Export all for convenience
__all__ = [
    "Base", "Provider", "AIModel", "Comparison", "Video", "VideoStatus"
]
