"""Background worker for processing video generation tasks from the Redis queue

A fixed-size pool: at most `concurrency` jobs run at once, each as its own
asyncio task, so a slow vendor or a long ffmpeg run never blocks the others.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set

from pydantic import ValidationError
from sqlalchemy.orm import Session

from modelarena.core.config import settings
from modelarena.core.logging import generation_logger
from modelarena.core.metrics import generation_jobs_counter
from modelarena.db.task_queue import GENERATION_TASK_TYPE, TaskQueue, get_task_queue
from modelarena.schemas.generation import GenerationJobData
from modelarena.services.generation.orchestrator import GenerationOrchestrator
from modelarena.services.media.pipeline import MediaPipeline
from modelarena.services.providers.registry import build_default_registry

logger = logging.getLogger(__name__)

STALE_CLEANUP_INTERVAL = 600  # seconds


@dataclass
class WorkerContext:
    """Everything a job needs, constructed once and passed down"""
    queue: TaskQueue
    orchestrator: GenerationOrchestrator
    session_factory: Optional[Callable[[], Session]] = None

    def __post_init__(self):
        if self.session_factory is None:
            from modelarena.db.session import SessionLocal
            self.session_factory = SessionLocal


def build_worker_context() -> WorkerContext:
    """Production wiring: real Redis queue, default providers, R2 media pipeline"""
    return WorkerContext(
        queue=get_task_queue(),
        orchestrator=GenerationOrchestrator(build_default_registry(), MediaPipeline()),
    )


async def process_generation_task(task_data: Dict[str, Any], ctx: WorkerContext) -> None:
    """Process a single generation task (runs concurrently with other tasks)

    Configuration errors (ValueError: unknown provider, missing credentials,
    invalid payload) fail the task for good; everything else is retried with
    backoff until the attempt budget is spent.
    """
    task_id = task_data.get("task_id")
    attempt = task_data.get("attempt", 1)

    try:
        job = GenerationJobData.model_validate(task_data.get("payload") or {})
    except ValidationError as e:
        logger.error(f"Task {task_id} has an invalid payload: {e}")
        ctx.queue.mark_failed(task_id, f"Invalid task payload: {e}", retry=False)
        generation_jobs_counter.labels(status="invalid").inc()
        return

    try:
        ctx.queue.mark_processing(task_id)
    except Exception as e:
        # Not yet tracked as processing, so stale cleanup would never find it
        logger.error(f"Could not mark task {task_id} as processing, returning it to the queue: {e}")
        ctx.queue.requeue(task_data)
        return

    db = None
    try:
        db = ctx.session_factory()
        generation_logger.info(f"Processing task {task_id} for video {job.video_id} (attempt {attempt})")
        result = await ctx.orchestrator.process(job, db)
        ctx.queue.mark_completed(task_id, result)
        generation_jobs_counter.labels(status="skipped" if result.get("skipped") else "completed").inc()

    except ValueError as e:
        error_msg = str(e)
        logger.warning(f"Task {task_id} configuration error, not retrying: {error_msg}")
        ctx.queue.mark_failed(task_id, error_msg, retry=False)
        generation_jobs_counter.labels(status="failed").inc()

    except Exception as e:
        error_msg = str(e) or type(e).__name__
        logger.error(f"Task {task_id} failed: {error_msg}", exc_info=True)
        ctx.queue.mark_failed(task_id, error_msg, retry=True)
        generation_jobs_counter.labels(status="failed").inc()

    finally:
        if db is not None:
            try:
                db.close()
            except Exception as e:
                logger.warning(f"Error closing DB session for task {task_id}: {e}")


class GenerationWorker:
    """Polls the generation queue and runs jobs with bounded concurrency"""

    def __init__(
        self,
        ctx: WorkerContext,
        concurrency: Optional[int] = None,
        poll_timeout: int = 5,
        task_type: str = GENERATION_TASK_TYPE,
    ):
        self.ctx = ctx
        self.concurrency = concurrency or settings.WORKER_CONCURRENCY
        self.poll_timeout = poll_timeout
        self.task_type = task_type
        self._slots = asyncio.Semaphore(self.concurrency)
        self._in_flight: Set[asyncio.Task] = set()
        self._stopping = asyncio.Event()
        self._last_cleanup = 0.0

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def stop(self) -> None:
        """Stop taking new jobs; in-flight jobs are allowed to finish"""
        self._stopping.set()

    def _housekeeping(self) -> None:
        now = time.monotonic()
        if now - self._last_cleanup >= STALE_CLEANUP_INTERVAL:
            # Tasks stuck in processing (likely from crashed workers)
            self.ctx.queue.cleanup_stale_tasks(timeout_seconds=settings.STALE_TASK_TIMEOUT_SECONDS)
            self._last_cleanup = now
        self.ctx.queue.promote_delayed_tasks(self.task_type)

    def _spawn(self, task_data: Dict[str, Any]) -> None:
        task = asyncio.create_task(process_generation_task(task_data, self.ctx))
        self._in_flight.add(task)

        task_id = task_data.get("task_id")

        def _done(t: asyncio.Task) -> None:
            self._in_flight.discard(t)
            self._slots.release()
            if t.cancelled():
                logger.warning(f"Generation task {task_id} was cancelled; stale cleanup will recover it")
                return
            exc = t.exception()
            if exc is not None:
                # Usually Redis bookkeeping; the task stays in the processing set for stale cleanup
                logger.error(f"Generation task {task_id} crashed: {exc}", exc_info=exc)
                generation_jobs_counter.labels(status="crashed").inc()

        task.add_done_callback(_done)

    async def run_once(self) -> bool:
        """Wait for a free slot, dequeue one task and start it

        Returns:
            True if a task was started
        """
        await self._slots.acquire()
        try:
            self._housekeeping()
            task_data = await self.ctx.queue.dequeue(self.task_type, timeout=self.poll_timeout)
        except Exception:
            self._slots.release()
            raise

        if task_data is None or self._stopping.is_set():
            if task_data is not None:
                # Picked up during shutdown: hand it back untouched
                self.ctx.queue.requeue(task_data)
            self._slots.release()
            return False

        self._spawn(task_data)
        return True

    async def run(self) -> None:
        """Main worker loop"""
        logger.info(f"Starting generation worker (concurrency={self.concurrency})")

        while not self._stopping.is_set():
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in generation worker loop: {e}", exc_info=True)
                # Avoid a tight error loop
                await asyncio.sleep(5)

        await self.drain()
        logger.info("Generation worker stopped")

    async def drain(self) -> None:
        """Wait for every in-flight job to finish"""
        if self._in_flight:
            logger.info(f"Waiting for {len(self._in_flight)} in-flight generation job(s)")
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
