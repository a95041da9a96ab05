"""Logging configuration for the application"""
import logging

from modelarena.core.config import settings

# Third-party loggers that are too chatty at INFO (one line per HTTP request / S3 call)
QUIET_LOGGERS = ("urllib3", "urllib3.connectionpool", "httpx", "httpcore", "botocore", "boto3", "s3transfer")


def setup_logging():
    """Configure logging for the API process and the standalone worker"""
    LOG_LEVEL = settings.LOG_LEVEL.upper()
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        force=True
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# Job lifecycle logger; stage modules use "providers", "pricing", "media" and "queue"
generation_logger = logging.getLogger("generation")

# Operator uploads (manual videos)
upload_logger = logging.getLogger("upload")
