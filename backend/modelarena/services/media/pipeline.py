"""Media pipeline: download generated videos, probe them, persist to R2, thumbnail them"""
import asyncio
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from modelarena.core.config import settings
from modelarena.services.media.probe import VideoMetadata, extract_frame, probe_video
from modelarena.services.storage.r2_service import (
    THUMBNAIL_PREFIX,
    VIDEO_PREFIX,
    R2Service,
    get_r2_service,
)

logger = logging.getLogger("media")

# Anything smaller is an error page, not a video
MIN_VIDEO_BYTES = 1024


@dataclass
class StoredObject:
    url: str
    key: str


@dataclass
class MediaUploadResult:
    url: str
    key: str
    file_size: int
    metadata: Optional[VideoMetadata] = None  # None when probing failed


class MediaPipeline:
    """Moves a provider-hosted video into durable storage

    Blocking work (ffprobe, ffmpeg, boto3) runs in worker threads so one job's
    media processing never stalls the other jobs in the pool.
    """

    def __init__(
        self,
        storage: Optional[R2Service] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        temp_dir: Optional[Path] = None,
    ) -> None:
        self._storage = storage
        self._transport = transport
        self.temp_dir = temp_dir

    @property
    def storage(self) -> R2Service:
        if self._storage is None:
            self._storage = get_r2_service()
        return self._storage

    async def download(self, url: str, dest: Path) -> int:
        """Stream `url` into `dest`

        Returns:
            Number of bytes written

        Raises:
            RuntimeError: on HTTP errors or a suspiciously small body
        """
        written = 0
        try:
            async with httpx.AsyncClient(
                timeout=settings.DOWNLOAD_TIMEOUT,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code >= 400:
                        raise RuntimeError(f"Failed to download file: HTTP {response.status_code}")
                    with open(dest, "wb") as f:
                        async for chunk in response.aiter_bytes(1024 * 1024):
                            f.write(chunk)
                            written += len(chunk)
        except httpx.HTTPError as e:
            raise RuntimeError(f"Failed to download file: {e}") from e

        if written < MIN_VIDEO_BYTES:
            raise RuntimeError(f"Downloaded file is empty or too small ({written} bytes)")
        return written

    async def _upload(self, path: Path, key: str, content_type: str) -> StoredObject:
        uploaded = await asyncio.to_thread(self.storage.upload_file, path, key, content_type)
        if not uploaded:
            raise RuntimeError(f"Failed to upload {key} to storage")
        return StoredObject(url=self.storage.get_public_url(key), key=key)

    async def _read_metadata(self, path: Path, video_id: str) -> Optional[VideoMetadata]:
        try:
            metadata = await asyncio.to_thread(probe_video, path)
        except Exception as e:
            logger.warning(f"Could not read metadata for video {video_id}, falling back to reported metrics: {e}")
            return None
        logger.info(f"Measured video {video_id}: {metadata.duration:.2f}s {metadata.width}x{metadata.height}")
        return metadata

    async def store_local_video(self, path: Path, video_id: str) -> MediaUploadResult:
        """Measure a video already on disk and store it under videos/{id}.mp4"""
        path = Path(path)
        file_size = path.stat().st_size
        metadata = await self._read_metadata(path, video_id)

        logger.info(f"Uploading video {video_id} to storage ({file_size} bytes)")
        stored = await self._upload(path, f"{VIDEO_PREFIX}/{video_id}.mp4", "video/mp4")
        return MediaUploadResult(url=stored.url, key=stored.key, file_size=file_size, metadata=metadata)

    async def download_and_upload(self, source_url: str, video_id: str) -> MediaUploadResult:
        """Download a generated video, measure it, and store it under videos/{id}.mp4"""
        with tempfile.TemporaryDirectory(prefix="modelarena_", dir=self.temp_dir) as tmp:
            local_path = Path(tmp) / f"video-{video_id}.mp4"

            logger.info(f"Downloading video {video_id} from {source_url}")
            await self.download(source_url, local_path)
            return await self.store_local_video(local_path, video_id)

    async def generate_thumbnail_from_file(
        self, video_path: Path, video_id: str, duration: Optional[float] = None
    ) -> StoredObject:
        """Capture a frame at 10% of a local video, scaled to a fixed width, and store it"""
        video_path = Path(video_path)
        if duration is None:
            metadata = await self._read_metadata(video_path, video_id)
            duration = metadata.duration if metadata else None

        with tempfile.TemporaryDirectory(prefix="modelarena_", dir=self.temp_dir) as tmp:
            thumb_path = Path(tmp) / f"thumb-{video_id}.jpg"
            await asyncio.to_thread(extract_frame, video_path, thumb_path, duration)
            return await self._upload(thumb_path, f"{THUMBNAIL_PREFIX}/{video_id}.jpg", "image/jpeg")

    async def generate_thumbnail(self, video_url: str, video_id: str) -> StoredObject:
        """Thumbnail a stored video, fetching it back from its public URL"""
        with tempfile.TemporaryDirectory(prefix="modelarena_", dir=self.temp_dir) as tmp:
            video_path = Path(tmp) / f"video-{video_id}.mp4"

            logger.info(f"Generating thumbnail for video {video_id}")
            await self.download(video_url, video_path)
            return await self.generate_thumbnail_from_file(video_path, video_id)


def get_media_pipeline() -> MediaPipeline:
    """FastAPI dependency; R2 is only configured on first upload"""
    return MediaPipeline()
