"""
RQ Task Definitions for RenderSpace.

execute_render_task is what runs in the worker processes; the web app
enqueues it with enqueue_render_job. The job id is the only payload, the
render_jobs table is the source of truth.
"""

import asyncio
from typing import Dict, Any, Optional

from rq import Queue, Retry
from rq.exceptions import NoSuchJobError
from rq.job import Job

from renderspace.config import config
from renderspace.utils.logging import queue_logger as logger


# =============================================================================
# RENDER TASK
# =============================================================================

def execute_render_task(job_id: str) -> Dict[str, Any]:
    """
    RQ task for running one render job through the pipeline.

    Args:
        job_id: render_jobs id

    Returns:
        Dict with the pipeline outcome

    Raises:
        Whatever loading the job raised, so RQ applies its retry policy
    """
    # Run async code in sync context (RQ workers are sync)
    return asyncio.run(_execute_render_async(job_id))


async def _execute_render_async(job_id: str) -> Dict[str, Any]:
    """Async implementation of the render task."""
    from renderspace.container import build_services

    services = build_services(config)
    try:
        result = await services.pipeline.execute(job_id)
    finally:
        await services.close()

    return {
        "success": result.success,
        "status": result.status.value,
        "error": result.error,
        "skipped": result.skipped,
    }


# =============================================================================
# QUEUE HELPERS
# =============================================================================

def rq_job_id(job_id: str) -> str:
    return f"render_{job_id}"


def enqueue_render_job(queue: Queue, job_id: str) -> Job:
    """
    Enqueue a render job to the Redis queue.

    A worker that dies mid-render leaves the job in the started registry;
    RQ's registry cleanup re-queues it while retries remain and then moves
    it to the failed registry.

    Returns:
        RQ Job instance
    """
    retries = config.QUEUE_MAX_ATTEMPTS - 1

    return queue.enqueue(
        execute_render_task,
        job_id,
        job_id=rq_job_id(job_id),  # RQ job ID for tracking
        description=f"render {job_id}",
        job_timeout=config.QUEUE_JOB_TIMEOUT_SECONDS,
        result_ttl=config.QUEUE_KEEP_COMPLETED_SECONDS,
        failure_ttl=config.QUEUE_KEEP_FAILED_SECONDS,
        retry=Retry(max=retries) if retries > 0 else None,
    )


def trim_failed_registry(queue: Queue, keep: Optional[int] = None) -> int:
    """
    Drop the oldest failed render jobs beyond the retention count.

    failure_ttl bounds how long failed jobs stay; this bounds how many.

    Returns:
        Number of failed jobs removed
    """
    keep = config.QUEUE_KEEP_FAILED_COUNT if keep is None else keep
    registry = queue.failed_job_registry

    # Scored by expiry, so the oldest failures come first
    job_ids = registry.get_job_ids()
    overflow = job_ids[:max(len(job_ids) - keep, 0)]

    for rq_id in overflow:
        try:
            registry.remove(rq_id, delete_job=True)
        except NoSuchJobError:
            # Job hash already expired; drop the dangling registry entry
            registry.remove(rq_id)

    if overflow:
        logger.info(f"Trimmed {len(overflow)} failed render job(s)", queue=queue.name)
    return len(overflow)
