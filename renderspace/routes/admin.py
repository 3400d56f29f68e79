"""
Admin API Routes

Operational view of the render system: RQ queue and registry counts,
job status counts, the maintenance scheduler and the log buffer.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from rq import Worker

from renderspace.config import config
from renderspace.queue.connection import queue_counts
from renderspace.routes.auth import get_services
from renderspace.security import verify_api_key
from renderspace.utils.logging import LogSource, get_log_buffer, get_logger

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(verify_api_key)],
)
logger = get_logger(LogSource.ADMIN)


def _queue_status(queue) -> dict:
    status = queue_counts(queue)
    status["workers"] = Worker.count(queue=queue)
    return status


@router.get("/status")
async def get_system_status(
    request: Request,
    error_limit: int = Query(default=20, ge=0, le=200),
    source: Optional[LogSource] = None,
    services=Depends(get_services),
):
    """Queue counts, job counts, scheduler state and recent errors."""
    log_buffer = get_log_buffer()

    status = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "queue": None,
        "jobs": None,
        "scheduler": None,
        "logs": log_buffer.get_stats(),
        "recent_errors": log_buffer.get_errors(limit=error_limit, source=source),
    }

    try:
        status["queue"] = await asyncio.to_thread(_queue_status, services.queue)
    except Exception as e:
        logger.error("Failed to read queue counts", error=str(e))
        status["queue"] = {"error": str(e)}

    if config.supabase_configured:
        try:
            status["jobs"] = await services.jobs.get_status_counts()
        except Exception as e:
            logger.error("Failed to read job counts", error=str(e))
            status["jobs"] = {"error": str(e)}

    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is not None:
        status["scheduler"] = {"running": scheduler.running}

    return status


@router.get("/logs")
async def get_logs(
    limit: int = Query(default=100, ge=1, le=1000),
    source: Optional[LogSource] = None,
    job_id: Optional[str] = None,
):
    """Recent log entries, optionally for one source or one render job."""
    return {"logs": get_log_buffer().get_recent(limit=limit, source=source, job_id=job_id)}
