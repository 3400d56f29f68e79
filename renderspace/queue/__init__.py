"""
Redis Queue (RQ) integration for RenderSpace render jobs.
"""

from .connection import (
    create_queue_connection,
    create_redis_connection,
    get_render_queue,
    queue_counts,
    redis_health_check,
)
from .tasks import enqueue_render_job, execute_render_task, trim_failed_registry

__all__ = [
    "create_queue_connection",
    "create_redis_connection",
    "get_render_queue",
    "queue_counts",
    "redis_health_check",
    "enqueue_render_job",
    "execute_render_task",
    "trim_failed_registry",
]
