"""Monitoring API routes for health checks and metrics"""
import logging

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.orm import Session

from modelarena.db.helpers import check_database
from modelarena.db.session import get_db
from modelarena.db.task_queue import TaskQueue, get_task_queue

logger = logging.getLogger(__name__)

router = APIRouter(tags=["monitoring"])


@router.get("/metrics")
def metrics_endpoint():
    """Prometheus metrics endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/health")
def health_check(db: Session = Depends(get_db), queue: TaskQueue = Depends(get_task_queue)):
    """Health check endpoint - database and Redis must both answer"""
    checks = {}

    try:
        check_database(db)
        checks["database"] = "ok"
    except Exception as e:
        logger.error(f"Health check: database unavailable: {e}")
        checks["database"] = "unavailable"

    try:
        queue.client.ping()
        checks["redis"] = "ok"
    except Exception as e:
        logger.error(f"Health check: Redis unavailable: {e}")
        checks["redis"] = "unavailable"

    healthy = all(value == "ok" for value in checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "healthy" if healthy else "degraded", "checks": checks},
    )
