"""API, dispatch and manual upload tests"""
import io
from unittest.mock import patch

import pytest

from modelarena.core.config import settings
from modelarena.db.task_queue import GENERATION_TASK_TYPE
from modelarena.models import Video, VideoStatus
from modelarena.schemas.generation import GenerationOptions
from modelarena.services.generation import queue_generation, retry_video
from modelarena.services.generation.ingest import (
    UPLOAD_CHUNK_SIZE,
    ManualUpload,
    UploadTooLargeError,
    VideoAlreadyCompletedError,
    ingest_manual_upload,
    spool_upload,
)

from fakes import FakeMediaPipeline

UPLOAD_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 4096


def make_failed(video, db_session):
    video.status = VideoStatus.FAILED.value
    video.error_message = "Runway generation timed out after 120 polls"
    video.generation_time = 600.0
    video.api_request_id = "task-1"
    video.api_response = {"status": "PENDING"}
    video.cost = 0.0
    db_session.commit()
    return video


@pytest.mark.critical
class TestQueueGeneration:
    """One QUEUED video and one job per model"""

    def test_creates_queued_video_and_job(self, db_session, task_queue, comparison, per_second_model):
        queued = queue_generation(
            db_session, task_queue, comparison, [per_second_model], GenerationOptions(duration=5, seed=42)
        )

        assert len(queued) == 1
        video, task_id = queued[0]
        assert video.status == VideoStatus.QUEUED.value
        payload = task_queue.get_task_status(task_id)["payload"]
        assert payload["video_id"] == video.id
        assert payload["provider_name"] == "fal.ai"
        assert payload["model_endpoint"] == per_second_model.endpoint
        assert payload["source_image_url"] == comparison.source_image_url
        assert payload["duration"] == 5
        assert payload["seed"] == 42

    def test_inactive_model_is_rejected(self, db_session, task_queue, comparison, per_second_model):
        per_second_model.is_active = False
        db_session.commit()

        with pytest.raises(ValueError, match="not active"):
            queue_generation(db_session, task_queue, comparison, [per_second_model])

        assert db_session.query(Video).count() == 0


@pytest.mark.critical
class TestRetryVideo:
    """Operator retry"""

    def test_retry_clears_derived_fields(self, db_session, task_queue, queued_video):
        make_failed(queued_video, db_session)

        video, task_id = retry_video(db_session, task_queue, queued_video.id)

        assert video.status == VideoStatus.QUEUED.value
        assert video.error_message is None
        assert video.generation_time is None
        assert video.api_request_id is None
        assert video.api_response is None
        assert video.cost is None
        task = task_queue.get_task_status(task_id)
        assert task["attempt"] == 1
        assert task["payload"]["video_id"] == queued_video.id

    def test_retry_of_manual_upload_clears_manual_flag(self, db_session, task_queue, queued_video):
        make_failed(queued_video, db_session)
        queued_video.is_manual = True
        queued_video.manual_metadata = {"notes": "first attempt"}
        db_session.commit()

        video, _ = retry_video(db_session, task_queue, queued_video.id)

        assert video.is_manual is False
        assert video.manual_metadata is None

    def test_cancelled_video_can_be_retried(self, db_session, task_queue, queued_video):
        queued_video.status = VideoStatus.CANCELLED.value
        db_session.commit()

        video, _ = retry_video(db_session, task_queue, queued_video.id)
        assert video.status == VideoStatus.QUEUED.value

    def test_completed_video_cannot_be_retried(self, db_session, task_queue, queued_video):
        queued_video.status = VideoStatus.COMPLETED.value
        db_session.commit()

        with pytest.raises(ValueError, match="Current status: COMPLETED"):
            retry_video(db_session, task_queue, queued_video.id)

    def test_missing_video(self, db_session, task_queue):
        with pytest.raises(LookupError):
            retry_video(db_session, task_queue, "does-not-exist")


@pytest.mark.high
class TestVideosAPI:
    """POST /api/videos/{id}/retry"""

    def test_retry_endpoint(self, client, db_session, task_queue, queued_video):
        make_failed(queued_video, db_session)

        response = client.post(f"/api/videos/{queued_video.id}/retry")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["video_id"] == queued_video.id
        assert task_queue.get_task_status(data["task_id"])["status"] == "pending"

    def test_retry_endpoint_not_found(self, client):
        response = client.post("/api/videos/does-not-exist/retry")
        assert response.status_code == 404

    def test_retry_endpoint_wrong_state(self, client, queued_video):
        response = client.post(f"/api/videos/{queued_video.id}/retry")
        assert response.status_code == 400
        assert "QUEUED" in response.json()["detail"]


class ChunkedSource:
    """Minimal UploadFile stand-in: async read(n) over in-memory bytes"""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)

    async def read(self, size: int) -> bytes:
        return self._buffer.read(size)


@pytest.mark.critical
class TestManualIngest:
    """Operator uploads for models without a generation API"""

    @pytest.fixture
    def upload_file(self, tmp_path):
        path = tmp_path / "upload.mp4"
        path.write_bytes(UPLOAD_BYTES)
        return path

    @pytest.mark.asyncio
    async def test_creates_completed_manual_video(self, db_session, comparison, per_second_model, upload_file, media_pipeline):
        media = media_pipeline

        video = await ingest_manual_upload(db_session, media, ManualUpload(
            comparison_id=comparison.id,
            model_id=per_second_model.id,
            path=upload_file,
            duration=5.0,
            generation_time=95.0,
            cost=0.35,
            notes="Exported from the vendor web UI",
        ))

        assert video.status == VideoStatus.COMPLETED.value
        assert video.is_manual is True
        assert video.url == f"https://media.example.com/videos/{video.id}.mp4"
        assert video.thumbnail_key == f"thumbnails/{video.id}.jpg"
        assert video.file_size == len(UPLOAD_BYTES)
        # Operator-reported duration wins; resolution is always the measured one
        assert video.duration == 5.0
        assert (video.width, video.height) == (1920, 1080)
        assert (video.generation_time, video.cost) == (95.0, 0.35)
        assert video.manual_metadata == {"notes": "Exported from the vendor web UI"}
        assert media.thumbnails == [(str(upload_file), video.id, 5.0)]

    @pytest.mark.asyncio
    async def test_duration_falls_back_to_measured_value(self, db_session, comparison, per_second_model, upload_file, media_pipeline):
        media = media_pipeline

        video = await ingest_manual_upload(db_session, media, ManualUpload(
            comparison_id=comparison.id, model_id=per_second_model.id, path=upload_file,
        ))

        assert video.duration == 5.041
        assert video.manual_metadata is None
        assert media.thumbnails[0][2] == 5.041

    @pytest.mark.asyncio
    async def test_failed_row_is_reused(self, db_session, queued_video, upload_file, media_pipeline):
        make_failed(queued_video, db_session)

        video = await ingest_manual_upload(db_session, media_pipeline, ManualUpload(
            comparison_id=queued_video.comparison_id, model_id=queued_video.model_id, path=upload_file,
        ))

        assert video.id == queued_video.id
        assert video.status == VideoStatus.COMPLETED.value
        assert video.error_message is None
        assert db_session.query(Video).count() == 1

    @pytest.mark.asyncio
    async def test_completed_video_is_not_replaced(self, db_session, queued_video, upload_file):
        queued_video.status = VideoStatus.COMPLETED.value
        queued_video.url = "https://media.example.com/videos/original.mp4"
        db_session.commit()
        media = FakeMediaPipeline()

        with pytest.raises(VideoAlreadyCompletedError):
            await ingest_manual_upload(db_session, media, ManualUpload(
                comparison_id=queued_video.comparison_id, model_id=queued_video.model_id, path=upload_file,
            ))

        assert media.uploads == []
        db_session.refresh(queued_video)
        assert queued_video.url == "https://media.example.com/videos/original.mp4"

    @pytest.mark.asyncio
    async def test_unknown_model(self, db_session, comparison, upload_file):
        with pytest.raises(LookupError, match="Model"):
            await ingest_manual_upload(db_session, FakeMediaPipeline(), ManualUpload(
                comparison_id=comparison.id, model_id="no-such-model", path=upload_file,
            ))

        assert db_session.query(Video).count() == 0

    @pytest.mark.asyncio
    async def test_storage_failure_marks_video_failed(self, db_session, comparison, per_second_model, upload_file):
        media = FakeMediaPipeline(upload_error=RuntimeError("Failed to upload videos/x.mp4 to storage"))

        with pytest.raises(RuntimeError):
            await ingest_manual_upload(db_session, media, ManualUpload(
                comparison_id=comparison.id, model_id=per_second_model.id, path=upload_file,
            ))

        video = db_session.query(Video).one()
        assert video.status == VideoStatus.FAILED.value
        assert video.is_manual is True
        assert "Failed to upload" in video.error_message

    @pytest.mark.asyncio
    async def test_spool_upload_writes_every_chunk(self, tmp_path):
        data = b"\x01" * (UPLOAD_CHUNK_SIZE + 10)
        dest = tmp_path / "spooled.mp4"

        written = await spool_upload(ChunkedSource(data), dest, max_bytes=len(data))

        assert written == len(data)
        assert dest.read_bytes() == data

    @pytest.mark.asyncio
    async def test_spool_upload_over_limit_removes_partial_file(self, tmp_path):
        dest = tmp_path / "spooled.mp4"

        with pytest.raises(UploadTooLargeError):
            await spool_upload(ChunkedSource(b"\x01" * 2048), dest, max_bytes=1024)

        assert not dest.exists()


@pytest.mark.high
class TestManualUploadAPI:
    """POST /api/videos/upload"""

    def post_upload(self, client, comparison_id, model_id, content_type="video/mp4", **fields):
        data = {"comparisonId": comparison_id, "modelId": model_id}
        data.update(fields)
        return client.post(
            "/api/videos/upload",
            data=data,
            files={"video": ("clip.mp4", UPLOAD_BYTES, content_type)},
        )

    def test_upload(self, client, db_session, comparison, per_second_model, media_pipeline):
        response = self.post_upload(
            client, comparison.id, per_second_model.id,
            generationTime="120", cost="0.5", notes="Rendered in the vendor dashboard",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["status"] == VideoStatus.COMPLETED.value

        video = db_session.get(Video, data["video_id"])
        db_session.refresh(video)
        assert video.is_manual is True
        assert (video.generation_time, video.cost) == (120.0, 0.5)
        assert video.manual_metadata == {"notes": "Rendered in the vendor dashboard"}
        assert video.file_size == len(UPLOAD_BYTES)
        assert len(media_pipeline.uploads) == 1

    def test_non_video_file_is_rejected(self, client, comparison, per_second_model, media_pipeline):
        response = self.post_upload(client, comparison.id, per_second_model.id, content_type="image/png")

        assert response.status_code == 400
        assert media_pipeline.uploads == []

    def test_missing_model_field(self, client, comparison):
        response = client.post(
            "/api/videos/upload",
            data={"comparisonId": comparison.id},
            files={"video": ("clip.mp4", UPLOAD_BYTES, "video/mp4")},
        )
        assert response.status_code == 422

    def test_unknown_comparison(self, client, per_second_model):
        response = self.post_upload(client, "no-such-comparison", per_second_model.id)
        assert response.status_code == 404

    def test_completed_video_conflicts(self, client, db_session, queued_video):
        queued_video.status = VideoStatus.COMPLETED.value
        db_session.commit()

        response = self.post_upload(client, queued_video.comparison_id, queued_video.model_id)

        assert response.status_code == 409

    def test_oversized_upload(self, client, db_session, comparison, per_second_model, media_pipeline):
        with patch.object(settings, "MAX_UPLOAD_SIZE", 1024):
            response = self.post_upload(client, comparison.id, per_second_model.id)

        assert response.status_code == 413
        assert media_pipeline.uploads == []
        assert db_session.query(Video).count() == 0

    def test_storage_failure(self, client, db_session, comparison, per_second_model, media_pipeline):
        media_pipeline.upload_error = RuntimeError("Failed to upload videos/x.mp4 to storage")

        response = self.post_upload(client, comparison.id, per_second_model.id)

        assert response.status_code == 500
        assert "Failed to upload" in response.json()["detail"]
        video = db_session.query(Video).one()
        db_session.refresh(video)
        assert video.status == VideoStatus.FAILED.value


@pytest.mark.high
class TestJobsAPI:
    """Job inspection"""

    def test_get_job(self, client, task_queue):
        task_id = task_queue.enqueue(GENERATION_TASK_TYPE, {"video_id": "v-1"})

        response = client.get(f"/api/jobs/{task_id}")

        assert response.status_code == 200
        assert response.json()["status"] == "pending"
        assert response.json()["payload"] == {"video_id": "v-1"}

    def test_get_unknown_job(self, client):
        assert client.get("/api/jobs/unknown").status_code == 404

    def test_list_failed_jobs(self, client, task_queue):
        task_id = task_queue.enqueue(GENERATION_TASK_TYPE, {"video_id": "v-1"})
        task_queue.mark_failed(task_id, "Unknown provider: luma", retry=False)

        response = client.get("/api/jobs", params={"status": "failed", "limit": 10})

        assert response.status_code == 200
        jobs = response.json()["jobs"]
        assert [job["task_id"] for job in jobs] == [task_id]
        assert jobs[0]["error"] == "Unknown provider: luma"

    def test_list_rejects_unknown_status(self, client):
        assert client.get("/api/jobs", params={"status": "processing"}).status_code == 422


@pytest.mark.medium
class TestMonitoringAPI:
    """Health and metrics"""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "checks": {"database": "ok", "redis": "ok"}}

    def test_health_degraded_when_redis_down(self, client, fake_redis):
        with patch.object(fake_redis, "ping", side_effect=ConnectionError("refused")):
            response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["checks"]["redis"] == "unavailable"

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "modelarena_generation_jobs_total" in response.text

    def test_providers(self, client):
        response = client.get("/api/providers")
        assert response.status_code == 200
        assert response.json() == {"providers": [{"name": "manual", "available": True}]}
