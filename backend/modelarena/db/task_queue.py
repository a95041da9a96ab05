"""Generation job queue on Redis

Uses Redis Lists for ready tasks, a Sorted Set for tasks waiting out their
retry backoff, and Hashes for per-task metadata. Delivery is at-least-once:
a task may be re-attempted up to its attempt budget with exponential backoff,
and terminal tasks are retained for a bounded time for operator inspection.
"""
import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from modelarena.core.config import settings
from modelarena.db.redis import get_async_redis_client, get_redis_client

logger = logging.getLogger("queue")

# Redis key prefixes
QUEUE_KEY_PREFIX = "task:queue:"
DELAYED_KEY_PREFIX = "task:delayed:"
META_KEY_PREFIX = "task:meta:"
COMPLETED_KEY_PREFIX = "task:completed:"
FAILED_KEY_PREFIX = "task:failed:"
PROCESSING_SET_KEY = "task:processing"

GENERATION_TASK_TYPE = "video_generation"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class TaskQueue:
    """Durable, retryable work queue backed by Redis

    Constructed explicitly and passed to the code that needs it, so tests can
    hand in fake clients.
    """

    def __init__(
        self,
        client=None,
        async_client=None,
        *,
        default_max_attempts: Optional[int] = None,
        backoff_base_seconds: Optional[int] = None,
        backoff_max_seconds: Optional[int] = None,
        completed_ttl: Optional[int] = None,
        failed_ttl: Optional[int] = None,
        completed_keep: Optional[int] = None,
        failed_keep: Optional[int] = None,
    ):
        self._client = client
        self._async_client = async_client
        self.default_max_attempts = default_max_attempts or settings.GENERATION_MAX_ATTEMPTS
        self.backoff_base_seconds = backoff_base_seconds if backoff_base_seconds is not None else settings.GENERATION_BACKOFF_BASE_SECONDS
        self.backoff_max_seconds = backoff_max_seconds if backoff_max_seconds is not None else settings.GENERATION_BACKOFF_MAX_SECONDS
        self.completed_ttl = completed_ttl or settings.COMPLETED_TASK_TTL
        self.failed_ttl = failed_ttl or settings.FAILED_TASK_TTL
        self.completed_keep = completed_keep or settings.COMPLETED_TASK_KEEP
        self.failed_keep = failed_keep or settings.FAILED_TASK_KEEP

    @property
    def client(self):
        if self._client is None:
            self._client = get_redis_client()
        return self._client

    @property
    def async_client(self):
        if self._async_client is not None:
            return self._async_client
        return get_async_redis_client()

    def backoff_delay(self, attempt: int) -> int:
        """Seconds to wait before the attempt following `attempt` (1-based)"""
        return min(self.backoff_max_seconds, self.backoff_base_seconds * 2 ** (attempt - 1))

    def enqueue(
        self,
        task_type: str,
        payload: Dict[str, Any],
        attempt: int = 1,
        max_attempts: Optional[int] = None,
        delay_seconds: float = 0,
        retry_of: Optional[str] = None,
    ) -> str:
        """Enqueue a task

        Args:
            task_type: Type of task (e.g., 'video_generation')
            payload: JSON-serializable task payload
            attempt: Attempt number this task represents (1 for new tasks)
            max_attempts: Total attempt budget including the first one
            delay_seconds: Hold the task back this long before it becomes available
            retry_of: Task id of the failed attempt this task retries

        Returns:
            task_id: Unique task identifier
        """
        if max_attempts is None:
            max_attempts = self.default_max_attempts

        task_id = str(uuid.uuid4())
        created_at = _now_iso()
        available_at = time.time() + max(0, delay_seconds)

        task_data = {
            "task_id": task_id,
            "task_type": task_type,
            "payload": payload,
            "attempt": attempt,
            "max_attempts": max_attempts,
            "created_at": created_at,
        }

        meta = {
            "task_id": task_id,
            "task_type": task_type,
            "payload": json.dumps(payload),
            "attempt": str(attempt),
            "max_attempts": str(max_attempts),
            "created_at": created_at,
            "status": "delayed" if delay_seconds > 0 else "pending",
            "available_at": datetime.fromtimestamp(available_at, timezone.utc).isoformat(),
        }
        if retry_of:
            meta["retry_of"] = retry_of

        meta_key = f"{META_KEY_PREFIX}{task_id}"
        client = self.client
        client.hset(meta_key, mapping=meta)
        # Pending tasks live at least as long as failed ones so nothing expires in the queue
        client.expire(meta_key, self.failed_ttl)

        task_json = json.dumps(task_data)
        if delay_seconds > 0:
            client.zadd(f"{DELAYED_KEY_PREFIX}{task_type}", {task_json: available_at})
        else:
            client.lpush(f"{QUEUE_KEY_PREFIX}{task_type}", task_json)

        logger.info(
            f"Enqueued task {task_id} of type {task_type} "
            f"(attempt {attempt}/{max_attempts}, delay={delay_seconds:.0f}s)"
        )
        return task_id

    def promote_delayed_tasks(self, task_type: str) -> int:
        """Move delayed tasks whose backoff has elapsed onto the ready queue

        Returns:
            Number of tasks promoted
        """
        client = self.client
        delayed_key = f"{DELAYED_KEY_PREFIX}{task_type}"
        due = client.zrangebyscore(delayed_key, 0, time.time())
        promoted = 0
        for task_json in due:
            # zrem guards against two workers promoting the same task
            if client.zrem(delayed_key, task_json):
                client.lpush(f"{QUEUE_KEY_PREFIX}{task_type}", task_json)
                try:
                    task_id = json.loads(task_json).get("task_id")
                    if task_id:
                        client.hset(f"{META_KEY_PREFIX}{task_id}", "status", "pending")
                except (ValueError, TypeError):
                    pass
                promoted += 1
        if promoted:
            logger.debug(f"Promoted {promoted} delayed {task_type} task(s)")
        return promoted

    async def dequeue(self, task_type: str, timeout: int = 5) -> Optional[Dict[str, Any]]:
        """Dequeue a task (blocking)

        Args:
            task_type: Type of task to dequeue
            timeout: Blocking timeout in seconds

        Returns:
            Task dict if task available, None if timeout
        """
        client = self.async_client
        if client is None:
            logger.error("Async Redis client not available")
            return None

        try:
            # BRPOP returns [queue_name, task_json] or None
            result = await client.brpop(f"{QUEUE_KEY_PREFIX}{task_type}", timeout=timeout)
            if result is None:
                return None
            _, task_json = result
            return json.loads(task_json)
        except Exception as e:
            logger.error(f"Error dequeuing task: {e}", exc_info=True)
            return None

    def requeue(self, task_data: Dict[str, Any]) -> None:
        """Put a dequeued but unstarted task back at the head of its queue"""
        task_type = task_data.get("task_type") or GENERATION_TASK_TYPE
        self.client.rpush(f"{QUEUE_KEY_PREFIX}{task_type}", json.dumps(task_data))
        logger.info(f"Requeued unstarted task {task_data.get('task_id')}")

    def get_task_status(self, task_id: str) -> Optional[Dict[str, Any]]:
        """Envelope metadata for a task (payload decoded)

        Returns:
            Task metadata dict or None if not found (or expired)
        """
        meta = self.client.hgetall(f"{META_KEY_PREFIX}{task_id}")
        if not meta:
            return None

        for field in ("payload", "result"):
            if field in meta:
                try:
                    meta[field] = json.loads(meta[field])
                except (ValueError, TypeError):
                    pass
        for field in ("attempt", "max_attempts"):
            if field in meta:
                meta[field] = int(meta[field])
        return meta

    def mark_processing(self, task_id: str) -> None:
        meta_key = f"{META_KEY_PREFIX}{task_id}"
        client = self.client
        client.hset(meta_key, mapping={"status": "processing", "started_at": _now_iso()})
        client.sadd(PROCESSING_SET_KEY, task_id)
        logger.debug(f"Marked task {task_id} as processing")

    def mark_completed(self, task_id: str, result: Optional[Dict[str, Any]] = None) -> None:
        """Mark task as completed and apply completed-task retention"""
        meta_key = f"{META_KEY_PREFIX}{task_id}"
        client = self.client
        task_type = client.hget(meta_key, "task_type") or GENERATION_TASK_TYPE

        client.hset(meta_key, mapping={"status": "completed", "completed_at": _now_iso()})
        if result:
            client.hset(meta_key, "result", json.dumps(result))
        client.expire(meta_key, self.completed_ttl)
        client.srem(PROCESSING_SET_KEY, task_id)

        completed_key = f"{COMPLETED_KEY_PREFIX}{task_type}"
        client.lpush(completed_key, task_id)
        client.ltrim(completed_key, 0, self.completed_keep - 1)

        logger.info(f"Marked task {task_id} as completed")

    def mark_failed(self, task_id: str, error: str, retry: bool = True) -> Optional[str]:
        """Mark task as failed and optionally schedule a retry

        Args:
            task_id: Task identifier
            error: Error message
            retry: Whether the failure is eligible for an automatic retry

        Returns:
            New task_id if a retry was scheduled, None otherwise
        """
        meta_key = f"{META_KEY_PREFIX}{task_id}"
        client = self.client

        meta = client.hgetall(meta_key)
        if not meta:
            logger.warning(f"Task {task_id} metadata not found")
            return None

        attempt = int(meta.get("attempt", "1"))
        max_attempts = int(meta.get("max_attempts", str(self.default_max_attempts)))
        task_type = meta.get("task_type")
        payload_json = meta.get("payload")

        if not payload_json:
            logger.error(f"Task {task_id} missing payload")
            return None

        client.srem(PROCESSING_SET_KEY, task_id)

        if retry and attempt < max_attempts:
            delay_seconds = self.backoff_delay(attempt)
            logger.info(
                f"Task {task_id} failed (attempt {attempt}/{max_attempts}), "
                f"scheduling retry in {delay_seconds}s: {error}"
            )
            new_task_id = self.enqueue(
                task_type=task_type,
                payload=json.loads(payload_json),
                attempt=attempt + 1,
                max_attempts=max_attempts,
                delay_seconds=delay_seconds,
                retry_of=task_id,
            )
            client.hset(meta_key, mapping={
                "status": "retrying",
                "error": error,
                "retry_scheduled_at": _now_iso(),
                "retry_delay_seconds": str(delay_seconds),
                "next_task_id": new_task_id,
            })
            client.expire(meta_key, self.failed_ttl)
            return new_task_id

        # Attempts exhausted (or not retryable): keep for operator inspection
        client.hset(meta_key, mapping={
            "status": "failed",
            "error": error,
            "failed_at": _now_iso(),
        })
        client.expire(meta_key, self.failed_ttl)

        failed_key = f"{FAILED_KEY_PREFIX}{task_type}"
        client.lpush(failed_key, task_id)
        client.ltrim(failed_key, 0, self.failed_keep - 1)

        logger.warning(f"Task {task_id} failed permanently after {attempt} attempt(s): {error}")
        return None

    def list_recent(self, task_type: str, status: str, limit: int = 100) -> List[Dict[str, Any]]:
        """Recently retained terminal tasks, newest first

        Args:
            status: 'completed' or 'failed'
        """
        if status == "completed":
            list_key = f"{COMPLETED_KEY_PREFIX}{task_type}"
        elif status == "failed":
            list_key = f"{FAILED_KEY_PREFIX}{task_type}"
        else:
            raise ValueError(f"Unsupported status filter: {status}")

        tasks = []
        for task_id in self.client.lrange(list_key, 0, max(0, limit - 1)):
            meta = self.get_task_status(task_id)
            if meta:  # metadata may have expired before the list was trimmed
                tasks.append(meta)
        return tasks

    def queue_depth(self, task_type: str) -> Dict[str, int]:
        client = self.client
        return {
            "ready": client.llen(f"{QUEUE_KEY_PREFIX}{task_type}"),
            "delayed": client.zcard(f"{DELAYED_KEY_PREFIX}{task_type}"),
            "processing": client.scard(PROCESSING_SET_KEY),
        }

    def get_processing_tasks(self) -> List[str]:
        return list(self.client.smembers(PROCESSING_SET_KEY))

    def cleanup_stale_tasks(self, timeout_seconds: int = 3600) -> int:
        """Fail tasks that have been processing too long (likely a crashed worker)

        Stale tasks go through mark_failed so they keep their retry budget.

        Returns:
            Number of tasks cleaned up
        """
        client = self.client
        cleaned = 0

        for task_id in self.get_processing_tasks():
            started_at_str = client.hget(f"{META_KEY_PREFIX}{task_id}", "started_at")
            if not started_at_str:
                client.srem(PROCESSING_SET_KEY, task_id)
                cleaned += 1
                continue
            try:
                started_at = datetime.fromisoformat(started_at_str.replace('Z', '+00:00'))
            except (ValueError, TypeError) as e:
                logger.warning(f"Error parsing started_at for task {task_id}: {e}")
                client.srem(PROCESSING_SET_KEY, task_id)
                cleaned += 1
                continue

            elapsed = (datetime.now(timezone.utc) - started_at).total_seconds()
            if elapsed > timeout_seconds:
                logger.warning(
                    f"Cleaning up stale task {task_id} "
                    f"(processing for {elapsed:.0f}s, timeout={timeout_seconds}s)"
                )
                self.mark_failed(task_id, f"Task timeout after {elapsed:.0f} seconds", retry=True)
                cleaned += 1

        return cleaned


# Process-wide default queue (lazy, real Redis)
_task_queue: Optional[TaskQueue] = None


def get_task_queue() -> TaskQueue:
    """Get or create the default TaskQueue (lazy initialization)"""
    global _task_queue
    if _task_queue is None:
        _task_queue = TaskQueue()
    return _task_queue
