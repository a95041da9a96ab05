"""Generated videos and thumbnails on Cloudflare R2 (S3-compatible)"""
import logging
import mimetypes
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from modelarena.core.config import settings

logger = logging.getLogger("media")

VIDEO_PREFIX = "videos"
THUMBNAIL_PREFIX = "thumbnails"


def _build_s3_client():
    missing = [
        name for name, value in (
            ("R2_ENDPOINT_URL", settings.R2_ENDPOINT_URL),
            ("R2_ACCESS_KEY_ID", settings.R2_ACCESS_KEY_ID),
            ("R2_SECRET_ACCESS_KEY", settings.R2_SECRET_ACCESS_KEY),
        ) if not value
    ]
    if missing:
        raise ValueError(f"R2 credentials missing: {', '.join(missing)}")

    return boto3.client(
        "s3",
        endpoint_url=settings.R2_ENDPOINT_URL,
        aws_access_key_id=settings.R2_ACCESS_KEY_ID,
        aws_secret_access_key=settings.R2_SECRET_ACCESS_KEY,
        region_name="auto",
        config=Config(signature_version="s3v4", retries={"max_attempts": 3, "mode": "standard"}),
    )


class R2Service:
    """Uploads local files to the media bucket and builds their public URLs"""

    def __init__(self, s3_client=None, bucket: Optional[str] = None, public_url: Optional[str] = None):
        bucket = bucket or settings.R2_BUCKET_NAME
        public_url = public_url or settings.R2_PUBLIC_URL

        missing = [name for name, value in (("R2_BUCKET_NAME", bucket), ("R2_PUBLIC_URL", public_url)) if not value]
        if missing:
            raise ValueError(f"R2 storage is not configured: {', '.join(missing)} not set")

        self.bucket = bucket
        self.public_url = public_url.rstrip("/")
        self.s3_client = s3_client if s3_client is not None else _build_s3_client()

    def get_public_url(self, object_key: str) -> str:
        # Encode each segment, keep the separators
        encoded = "/".join(quote(part, safe="") for part in object_key.split("/"))
        return f"{self.public_url}/{encoded}"

    def upload_file(self, file_path: Path, object_key: str, content_type: Optional[str] = None) -> bool:
        """Upload a local file under object_key

        The content type is guessed from the key when not given.

        Returns:
            True on success, False when the file is missing or R2 rejects it
        """
        file_path = Path(file_path)
        if not file_path.is_file():
            logger.error(f"Cannot upload {object_key}: {file_path} does not exist")
            return False

        content_type = content_type or mimetypes.guess_type(object_key)[0]
        extra_args = {"ContentType": content_type} if content_type else None

        try:
            self.s3_client.upload_file(str(file_path), self.bucket, object_key, ExtraArgs=extra_args)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"R2 upload of {object_key} failed: {e}", exc_info=True)
            return False

        logger.info(f"Uploaded {object_key} to bucket {self.bucket}")
        return True


_r2_service: Optional[R2Service] = None


def get_r2_service() -> R2Service:
    """Shared R2Service, built on first use

    Raises:
        ValueError: If R2 configuration is missing
    """
    global _r2_service
    if _r2_service is None:
        _r2_service = R2Service()
    return _r2_service
