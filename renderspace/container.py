"""
Service wiring.

Builds every render collaborator once per process. The web app keeps the
result on app.state.services; each RQ task and the maintenance scheduler
build their own.
"""

from dataclasses import dataclass
from typing import Optional

import redis
from redis.asyncio import Redis
from rq import Queue
from supabase import Client

from renderspace.config import AppConfig
from renderspace.database.activity import ActivityLogService
from renderspace.database.credits import CreditService
from renderspace.database.jobs import RenderJobService
from renderspace.events.broker import EventBroker
from renderspace.queue.connection import (
    create_queue_connection,
    create_redis_connection,
    get_render_queue,
)
from renderspace.queue.run_scheduler import MaintenanceScheduler
from renderspace.render.generation import GenerationService
from renderspace.render.pipeline import RenderPipeline
from renderspace.render.reaper import TimeoutReaper
from renderspace.render.service import RenderService
from renderspace.render.storage import create_storage


@dataclass
class Services:
    redis: Redis
    queue: Queue
    jobs: RenderJobService
    credits: CreditService
    activity: ActivityLogService
    generation: GenerationService
    storage: object
    broker: EventBroker
    reaper: TimeoutReaper
    pipeline: RenderPipeline
    render: RenderService

    def create_scheduler(self) -> MaintenanceScheduler:
        return MaintenanceScheduler(reaper=self.reaper, queue=self.queue)

    async def close(self):
        await self.generation.close()
        await self.redis.aclose()


def build_services(
    config: AppConfig,
    redis_client: Optional[Redis] = None,
    queue_connection: Optional[redis.Redis] = None,
    supabase_client: Optional[Client] = None,
    generation: Optional[GenerationService] = None,
    storage=None,
) -> Services:
    """
    Build the service graph from configuration.

    Any collaborator may be passed in pre-built (tests pass fakes).
    """
    if redis_client is None:
        redis_client = create_redis_connection(config.REDIS_URL)
    if queue_connection is None:
        queue_connection = create_queue_connection(config.REDIS_URL)
    queue = get_render_queue(queue_connection, config.RENDER_QUEUE_NAME)

    jobs = RenderJobService(supabase_client)
    credits = CreditService(supabase_client)
    activity = ActivityLogService(supabase_client)
    generation = generation or GenerationService()
    storage = storage or create_storage(config.STORAGE_BACKEND)

    broker = EventBroker(redis_client, config.EVENT_CHANNEL_PREFIX)
    reaper = TimeoutReaper(jobs, broker, timeout_minutes=config.RENDER_TIMEOUT_MINUTES)

    pipeline = RenderPipeline(
        jobs=jobs,
        credits=credits,
        activity=activity,
        generation=generation,
        storage=storage,
        broker=broker,
    )
    render = RenderService(
        jobs=jobs,
        credits=credits,
        activity=activity,
        queue=queue,
        reaper=reaper,
    )

    return Services(
        redis=redis_client,
        queue=queue,
        jobs=jobs,
        credits=credits,
        activity=activity,
        generation=generation,
        storage=storage,
        broker=broker,
        reaper=reaper,
        pipeline=pipeline,
        render=render,
    )
