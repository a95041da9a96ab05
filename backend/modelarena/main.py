"""Operator API: health, metrics, queue inspection and video retries"""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from modelarena.api import jobs, monitoring, providers, videos
from modelarena.core.config import settings
from modelarena.core.logging import setup_logging
from modelarena.db.redis import close_redis_clients, get_redis_client
from modelarena.db.session import init_db

setup_logging()

logger = logging.getLogger(__name__)


def check_dependencies() -> None:
    """Fail startup early when Postgres or Redis is unreachable"""
    try:
        init_db()
    except Exception as e:
        logger.error(f"Could not prepare database schema: {e}")
        raise

    try:
        get_redis_client().ping()
    except Exception as e:
        logger.error(f"Redis is unreachable at startup: {e}")
        raise

    logger.info("Database and Redis ready")


@asynccontextmanager
async def lifespan(app: FastAPI):
    check_dependencies()

    worker = worker_task = None
    if settings.RUN_WORKER_IN_APP:
        from modelarena.tasks.generation_worker import GenerationWorker, build_worker_context

        worker = GenerationWorker(build_worker_context())
        worker_task = asyncio.create_task(worker.run())
        logger.info("Generation worker running inside the API process")

    try:
        yield
    finally:
        if worker is not None:
            worker.stop()
            await worker_task
        close_redis_clients()
        logger.info("API shut down")


app = FastAPI(
    title="ModelArena Backend",
    description="Side-by-side AI video generation benchmarking",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(monitoring.router)
app.include_router(jobs.router)
app.include_router(providers.router)
app.include_router(videos.router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})
