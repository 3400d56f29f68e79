"""
Event Broker

Redis pub/sub channel per user. The pipeline and the timeout reaper
publish terminal render events; the live status gateway subscribes.
"""

import json
from contextlib import asynccontextmanager
from typing import Optional, Dict, Any, AsyncIterator

from pydantic import BaseModel
from redis.asyncio import Redis
from redis.asyncio.client import PubSub

from renderspace.config import config
from renderspace.database.models import RenderJob, RenderStatus
from renderspace.utils.logging import event_logger as logger


EVENT_RENDER_COMPLETED = "render.completed"
EVENT_RENDER_FAILED = "render.failed"


class RenderEvent(BaseModel):
    """Message published on a user's channel."""
    event: str
    data: Dict[str, Any]

    @classmethod
    def completed(cls, job: RenderJob) -> "RenderEvent":
        return cls(
            event=EVENT_RENDER_COMPLETED,
            data={
                "job_id": job.id,
                "title": job.title,
                "status": RenderStatus.COMPLETED.value,
                "result_image_url": job.result_image_url,
            },
        )

    @classmethod
    def failed(cls, job: RenderJob, error_message: Optional[str] = None) -> "RenderEvent":
        return cls(
            event=EVENT_RENDER_FAILED,
            data={
                "job_id": job.id,
                "title": job.title,
                "status": RenderStatus.FAILED.value,
                "error_message": error_message or job.error_message or "Render failed",
            },
        )


class EventBroker:
    """Publishes and subscribes to per-user render event channels."""

    def __init__(self, redis: Redis, channel_prefix: Optional[str] = None):
        self.redis = redis
        self.channel_prefix = channel_prefix or config.EVENT_CHANNEL_PREFIX

    def channel_for(self, user_id: str) -> str:
        return f"{self.channel_prefix}:{user_id}"

    async def publish(self, user_id: str, event: RenderEvent) -> bool:
        """
        Publish an event to a user's channel.

        Never raises: a lost event only means the client falls back to
        polling the status endpoint.
        """
        channel = self.channel_for(user_id)
        message = event.model_dump_json()
        try:
            receivers = await self.redis.publish(channel, message)
        except Exception as e:
            logger.error(f"Failed to publish to {channel}", error=str(e), event=event.event)
            return False

        logger.info(
            f"Published to {channel}",
            event=event.event,
            job_id=event.data.get("job_id"),
            receivers=receivers,
        )
        return True

    async def publish_terminal(self, job: RenderJob, error_message: Optional[str] = None) -> bool:
        """Publish the event matching a job's terminal status."""
        if job.status == RenderStatus.COMPLETED:
            return await self.publish(job.owner_id, RenderEvent.completed(job))
        return await self.publish(job.owner_id, RenderEvent.failed(job, error_message))

    @asynccontextmanager
    async def subscribe(self, user_id: str) -> AsyncIterator[PubSub]:
        """
        Open a dedicated subscription to a user's channel.

        SUBSCRIBE blocks its connection, so each live stream gets its own
        PubSub object, unsubscribed and closed on exit.
        """
        channel = self.channel_for(user_id)
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(channel)
        logger.debug(f"Subscribed to {channel}")
        try:
            yield pubsub
        finally:
            try:
                await pubsub.unsubscribe(channel)
            except Exception as e:
                logger.warning(f"Error unsubscribing {channel}", error=str(e))
            await pubsub.aclose()


def parse_event(raw: str | bytes) -> Optional[Dict[str, Any]]:
    """Decode a broker message; None if it is not valid JSON."""
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return None
