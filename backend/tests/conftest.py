"""Fixtures: in-memory database, fakeredis queue, seeded comparison rows"""
import os
import sys
from pathlib import Path
from typing import Generator
from unittest.mock import patch

# Keep the application engine off Postgres during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import fakeredis
import fakeredis.aioredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Running pytest from backend/ without installing the package
BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from modelarena.db.session import get_db
from modelarena.db.task_queue import TaskQueue, get_task_queue
from modelarena.main import app
from modelarena.models import AIModel, Base, Comparison, Provider, Video, VideoStatus
from modelarena.services.media.pipeline import get_media_pipeline
from modelarena.services.media.probe import VideoMetadata
from modelarena.services.providers.base import GenerationResult
from modelarena.services.providers.registry import ProviderRegistry, get_provider_registry

from fakes import FakeMediaPipeline, FakeProvider

# One shared connection so every session sees the same in-memory schema
engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """Session on a freshly created schema, dropped afterwards"""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def redis_server():
    """One fake Redis server shared by the sync and async clients"""
    return fakeredis.FakeServer()


@pytest.fixture
def fake_redis(redis_server):
    return fakeredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def fake_async_redis(redis_server):
    return fakeredis.aioredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def task_queue(fake_redis, fake_async_redis) -> TaskQueue:
    """TaskQueue on fakeredis with the production retry policy (3 attempts, 5s base)"""
    return TaskQueue(
        client=fake_redis,
        async_client=fake_async_redis,
        default_max_attempts=3,
        backoff_base_seconds=5,
        backoff_max_seconds=300,
        completed_ttl=86400,
        failed_ttl=7 * 86400,
        completed_keep=100,
        failed_keep=500,
    )


@pytest.fixture
def fal_provider_row(db_session: Session) -> Provider:
    provider = Provider(name="fal.ai", display_name="fal.ai")
    db_session.add(provider)
    db_session.commit()
    db_session.refresh(provider)
    return provider


@pytest.fixture
def per_second_model(db_session: Session, fal_provider_row: Provider) -> AIModel:
    """Kling-style model priced per second with direction-specific defaults"""
    model = AIModel(
        slug="kling-2-5-turbo-pro",
        name="Kling 2.5 Turbo Pro",
        provider_id=fal_provider_row.id,
        endpoint="fal-ai/kling-video/v2.5-turbo/pro/image-to-video",
        default_params={
            "pricing": {"model": "per-second", "pricePerSecond": 0.07},
            "image-to-video": {"duration": "5", "cfg_scale": 0.5},
            "text-to-video": {"duration": "10"},
        },
    )
    db_session.add(model)
    db_session.commit()
    db_session.refresh(model)
    return model


@pytest.fixture
def comparison(db_session: Session) -> Comparison:
    comparison = Comparison(
        slug="sunset-over-harbor",
        title="Sunset over a harbor",
        prompt="A slow pan across a harbor at sunset",
        source_image_url="https://cdn.example.com/images/harbor.jpg",
    )
    db_session.add(comparison)
    db_session.commit()
    db_session.refresh(comparison)
    return comparison


@pytest.fixture
def queued_video(db_session: Session, comparison: Comparison, per_second_model: AIModel) -> Video:
    video = Video(
        comparison_id=comparison.id,
        model_id=per_second_model.id,
        status=VideoStatus.QUEUED.value,
    )
    db_session.add(video)
    db_session.commit()
    db_session.refresh(video)
    return video


@pytest.fixture
def successful_result() -> GenerationResult:
    return GenerationResult(
        success=True,
        video_url="https://v3.fal.media/files/output.mp4",
        duration=5.0,
        width=1280,
        height=720,
        generation_time=42.5,
        api_request_id="req-123",
        raw_response={"video": {"url": "https://v3.fal.media/files/output.mp4"}},
    )


@pytest.fixture
def probed_metadata() -> VideoMetadata:
    return VideoMetadata(duration=5.041, width=1920, height=1080)


@pytest.fixture
def media_pipeline() -> FakeMediaPipeline:
    return FakeMediaPipeline(metadata=VideoMetadata(duration=5.041, width=1920, height=1080))


@pytest.fixture
def client(db_session: Session, fake_redis, task_queue, media_pipeline) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database and fake Redis"""

    def override_get_db():
        # db_session owns closing
        yield db_session

    registry = ProviderRegistry()
    registry.register("manual", lambda: FakeProvider(GenerationResult(success=False), name="manual"))

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_task_queue] = lambda: task_queue
    app.dependency_overrides[get_provider_registry] = lambda: registry
    app.dependency_overrides[get_media_pipeline] = lambda: media_pipeline

    try:
        with patch("modelarena.main.init_db"):
            with patch("modelarena.main.get_redis_client", return_value=fake_redis):
                with TestClient(app) as test_client:
                    yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def session_factory():
    """Session factory bound to the test database, as the worker uses it"""
    return TestSessionLocal
