"""Generation service module - public API exports"""
from modelarena.services.generation.dispatch import (
    build_job_payload,
    enqueue_generation,
    queue_generation,
    retry_video,
)
from modelarena.services.generation.ingest import (
    ManualUpload,
    UploadTooLargeError,
    VideoAlreadyCompletedError,
    ingest_manual_upload,
    spool_upload,
)
from modelarena.services.generation.orchestrator import (
    GenerationFailedError,
    GenerationOrchestrator,
    resolve_final_metrics,
    resolve_generation_params,
)

__all__ = [
    "build_job_payload",
    "enqueue_generation",
    "queue_generation",
    "retry_video",
    "ManualUpload",
    "UploadTooLargeError",
    "VideoAlreadyCompletedError",
    "ingest_manual_upload",
    "spool_upload",
    "GenerationFailedError",
    "GenerationOrchestrator",
    "resolve_final_metrics",
    "resolve_generation_params",
]
