"""
Redis connection management for the RQ render queue and the event broker.

RQ talks to Redis synchronously and needs bytes responses; the event
broker uses an async client with decoded responses. Each process builds
its own connections; nothing is shared through module globals.
"""

import asyncio
from typing import Optional, Dict, Any

import redis
from redis.asyncio import Redis as AsyncRedis
from rq import Queue

from renderspace.config import config


_CONNECTION_OPTIONS = dict(
    socket_timeout=10,
    socket_connect_timeout=10,
    retry_on_timeout=True,
    health_check_interval=30,
)


def _require_url(redis_url: Optional[str]) -> str:
    redis_url = redis_url or config.REDIS_URL
    if not redis_url:
        raise ValueError(
            "REDIS_URL environment variable is required for the render queue. "
            "Set up Upstash Redis or local Redis and configure REDIS_URL."
        )
    return redis_url


def create_redis_connection(redis_url: Optional[str] = None) -> AsyncRedis:
    """
    Create the async Redis client used for live status events.

    Raises:
        ValueError: If REDIS_URL is not configured
    """
    # Upstash uses rediss:// (TLS), local Redis uses redis://
    return AsyncRedis.from_url(
        _require_url(redis_url),
        decode_responses=True,
        **_CONNECTION_OPTIONS,
    )


def create_queue_connection(redis_url: Optional[str] = None) -> redis.Redis:
    """
    Create the synchronous Redis connection RQ queues and workers use.

    Raises:
        ValueError: If REDIS_URL is not configured
    """
    return redis.Redis.from_url(
        _require_url(redis_url),
        decode_responses=False,  # RQ needs bytes
        **_CONNECTION_OPTIONS,
    )


def get_render_queue(connection: redis.Redis, name: Optional[str] = None) -> Queue:
    """Get the RQ queue render jobs are enqueued on."""
    return Queue(name or config.RENDER_QUEUE_NAME, connection=connection)


def describe_redis_url(redis_url: str) -> str:
    """Host part of the URL, without credentials, for log lines."""
    return redis_url.split("@")[-1] if "@" in redis_url else redis_url


def queue_counts(queue: Queue) -> Dict[str, int]:
    """Sizes of the render queue and its registries."""
    return {
        "waiting": queue.count,
        "active": queue.started_job_registry.count,
        "completed": queue.finished_job_registry.count,
        "failed": queue.failed_job_registry.count,
    }


async def redis_health_check(redis_client: AsyncRedis, queue: Optional[Queue] = None) -> Dict[str, Any]:
    """
    Check Redis connection health.

    Returns:
        Dict with health status and, when a queue is given, its counts
    """
    try:
        await redis_client.ping()
        health: Dict[str, Any] = {"status": "healthy", "connected": True}
        if queue is not None:
            health["queue"] = await asyncio.to_thread(queue_counts, queue)
        return health
    except Exception as e:
        return {
            "status": "unhealthy",
            "connected": False,
            "error": str(e)
        }
