"""Standalone generation worker

Run with: python -m modelarena.worker
"""
import asyncio
import logging
import signal

from modelarena.core.config import settings
from modelarena.core.logging import setup_logging
from modelarena.db.redis import close_redis_clients
from modelarena.tasks.generation_worker import GenerationWorker, build_worker_context

logger = logging.getLogger(__name__)


async def run_worker() -> None:
    worker = GenerationWorker(build_worker_context())

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.stop)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            signal.signal(sig, lambda *_: worker.stop())

    try:
        await worker.run()
    finally:
        close_redis_clients()


def main() -> None:
    setup_logging()
    logger.info(f"Generation worker starting ({settings.ENVIRONMENT}, concurrency={settings.WORKER_CONCURRENCY})")
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
