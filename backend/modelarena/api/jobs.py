"""Job inspection API routes"""
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query

from modelarena.db.task_queue import GENERATION_TASK_TYPE, TaskQueue, get_task_queue

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("")
def list_jobs(
    status: Literal["failed", "completed"] = Query("failed"),
    limit: int = Query(50, ge=1, le=500),
    queue: TaskQueue = Depends(get_task_queue),
):
    """Recently retained terminal jobs, newest first"""
    return {
        "status": status,
        "depth": queue.queue_depth(GENERATION_TASK_TYPE),
        "jobs": queue.list_recent(GENERATION_TASK_TYPE, status, limit),
    }


@router.get("/{task_id}")
def get_job(task_id: str, queue: TaskQueue = Depends(get_task_queue)):
    task = queue.get_task_status(task_id)
    if task is None:
        raise HTTPException(404, "Job not found")
    return task
