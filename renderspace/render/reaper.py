"""
Timeout Reaper

Fails render jobs that have not reached a terminal status within
RENDER_TIMEOUT_MINUTES of creation. Runs on every status read and as a
periodic sweep in the worker, for jobs nobody polls anymore.
"""

from datetime import datetime, timezone, timedelta
from typing import Callable, Optional, List

from renderspace.config import config
from renderspace.database.jobs import RenderJobService
from renderspace.database.models import RenderJob, RenderStatus, ACTIVE_STATUSES
from renderspace.events.broker import EventBroker
from renderspace.utils.logging import render_logger as logger


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimeoutReaper:
    def __init__(
        self,
        jobs: RenderJobService,
        broker: EventBroker,
        timeout_minutes: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.jobs = jobs
        self.broker = broker
        self.timeout_minutes = timeout_minutes or config.RENDER_TIMEOUT_MINUTES
        self.clock = clock

    @property
    def timeout(self) -> timedelta:
        return timedelta(minutes=self.timeout_minutes)

    @property
    def timeout_message(self) -> str:
        return f"Render timed out after {self.timeout_minutes} minutes."

    def is_timed_out(self, job: RenderJob) -> bool:
        if job.status not in ACTIVE_STATUSES:
            return False
        created_at = job.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return self.clock() - created_at > self.timeout

    async def check(self, job: RenderJob) -> RenderJob:
        """
        Fail the job if it has been running too long.

        Returns the record the caller should show: the failed job, the
        fresh record if something else moved it first, or the job itself.
        """
        if not self.is_timed_out(job):
            return job

        failed = await self.jobs.transition(
            job.id,
            job.status,
            RenderStatus.FAILED,
            error_message=self.timeout_message,
        )

        if failed is None:
            # Lost the race: the pipeline or another reader moved it on
            return await self.jobs.get(job.id)

        logger.warning(
            "Render job timed out",
            job_id=job.id,
            previous_status=job.status.value,
            created_at=job.created_at.isoformat(),
        )
        await self.broker.publish_terminal(failed)
        return failed

    async def sweep(self, limit: int = 100) -> List[RenderJob]:
        """Fail every stale job found. Returns the jobs this sweep failed."""
        cutoff = self.clock() - self.timeout
        stale = await self.jobs.list_stale(cutoff, limit=limit)

        reaped = []
        for job in stale:
            checked = await self.check(job)
            if checked.status == RenderStatus.FAILED and checked.error_message == self.timeout_message:
                reaped.append(checked)

        if reaped:
            logger.info(f"Reaper failed {len(reaped)} timed-out render job(s)")
        return reaped
