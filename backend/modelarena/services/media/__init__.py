"""Media pipeline collaborators: probing, thumbnails, durable storage"""
from modelarena.services.media.pipeline import MediaPipeline, MediaUploadResult, StoredObject, get_media_pipeline
from modelarena.services.media.probe import VideoMetadata

__all__ = ["MediaPipeline", "MediaUploadResult", "StoredObject", "VideoMetadata", "get_media_pipeline"]
