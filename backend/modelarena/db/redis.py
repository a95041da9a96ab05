"""Redis connections for the generation queue

The sync client serves enqueue and task bookkeeping calls; the asyncio client
serves blocking dequeues inside the worker loop. Neither connects at import
time, so tests can hand fakes to TaskQueue before anything touches Redis.
"""
import asyncio
import logging
import weakref
from typing import Optional

import redis
import redis.asyncio as aioredis

from modelarena.core.config import settings

logger = logging.getLogger("queue")

_sync_client: Optional[redis.Redis] = None

# One asyncio client per event loop: a client bound to a closed loop is unusable
_loop_clients: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, aioredis.Redis]" = weakref.WeakKeyDictionary()


def get_redis_client() -> redis.Redis:
    global _sync_client
    if _sync_client is None:
        _sync_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _sync_client


def get_async_redis_client() -> Optional[aioredis.Redis]:
    """Asyncio client for the running event loop, or None outside a loop"""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return None

    client = _loop_clients.get(loop)
    if client is None:
        client = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=max(10, settings.WORKER_CONCURRENCY * 2),
        )
        _loop_clients[loop] = client
    return client


def close_redis_clients() -> None:
    """Drop cached clients (API shutdown, worker exit)"""
    global _sync_client
    if _sync_client is not None:
        try:
            _sync_client.close()
        except redis.RedisError as e:
            logger.warning(f"Error closing Redis client: {e}")
        _sync_client = None
    _loop_clients.clear()
