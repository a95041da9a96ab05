"""Manual provider for vendors without a programmatic API"""
from modelarena.services.providers.base import GenerationRequest, GenerationResult

MANUAL_UPLOAD_MESSAGE = (
    "Manual provider does not support automatic generation. "
    "Upload the video with POST /api/videos/upload."
)


class ManualProvider:
    """Videos for these models are uploaded directly by an operator"""

    name = "manual"

    async def generate_video(self, model_endpoint: str, request: GenerationRequest) -> GenerationResult:
        return GenerationResult(success=False, generation_time=0.0, error=MANUAL_UPLOAD_MESSAGE)
