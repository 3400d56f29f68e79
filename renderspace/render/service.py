"""
Render Service

Request-side entry points: admit a render (validate, check balance,
create, enqueue) and read job status for the owner.
"""

import asyncio
from typing import Optional, List

from rq import Queue

from renderspace.database.activity import ActivityLogService, ActivityType
from renderspace.database.credits import CreditService, InsufficientCreditsError
from renderspace.database.jobs import RenderJobService
from renderspace.database.models import RenderJob, RenderKind
from renderspace.queue.tasks import enqueue_render_job
from renderspace.render.reaper import TimeoutReaper
from renderspace.utils.logging import render_logger as logger


class RenderAdmissionError(Exception):
    """Raised when a render request is missing required fields."""
    pass


class RenderAccessError(Exception):
    """Raised when a user reads a job they do not own."""
    pass


class RenderService:
    def __init__(
        self,
        jobs: RenderJobService,
        credits: CreditService,
        activity: ActivityLogService,
        queue: Queue,
        reaper: TimeoutReaper,
    ):
        self.jobs = jobs
        self.credits = credits
        self.activity = activity
        self.queue = queue
        self.reaper = reaper

    # =========================================================================
    # Admission
    # =========================================================================

    async def submit_transform(
        self,
        owner_id: str,
        account_id: str,
        title: Optional[str],
        room_type: Optional[str],
        lighting: Optional[str],
        input_image_url: Optional[str],
        ip_address: str = "",
    ) -> RenderJob:
        """Admit a single-step collage render."""
        _require(
            title=title,
            room_type=room_type,
            lighting=lighting,
            input_image_url=input_image_url,
        )
        return await self._admit(
            RenderKind.TRANSFORM,
            owner_id=owner_id,
            account_id=account_id,
            title=title,
            room_type=room_type,
            lighting=lighting,
            input_image_url=input_image_url,
            ip_address=ip_address,
        )

    async def submit_placement(
        self,
        owner_id: str,
        account_id: str,
        title: Optional[str],
        room_type: Optional[str],
        lighting: Optional[str],
        room_photo_url: Optional[str],
        collage_image_url: Optional[str],
        ip_address: str = "",
    ) -> RenderJob:
        """Admit a two-step render placing a collage's style into a room photo."""
        _require(
            title=title,
            room_type=room_type,
            lighting=lighting,
            room_photo_url=room_photo_url,
            collage_image_url=collage_image_url,
        )
        return await self._admit(
            RenderKind.PLACEMENT,
            owner_id=owner_id,
            account_id=account_id,
            title=title,
            room_type=room_type,
            lighting=lighting,
            input_image_url=room_photo_url,
            style_image_url=collage_image_url,
            ip_address=ip_address,
        )

    async def _admit(
        self,
        kind: RenderKind,
        owner_id: str,
        account_id: str,
        ip_address: str = "",
        **params,
    ) -> RenderJob:
        # Balance is checked here but only debited on completion
        balance = await self.credits.get_balance(account_id)
        if balance < kind.credit_cost:
            raise InsufficientCreditsError(
                f"Insufficient credits. Required: {kind.credit_cost}, available: {balance}"
            )

        job = await self.jobs.create(
            owner_id=owner_id,
            account_id=account_id,
            render_type=kind,
            **params,
        )

        try:
            await self.activity.log(account_id, owner_id, ActivityType.CREATE_RENDER, ip_address)
        except Exception as e:
            logger.error("Failed to log render creation", job_id=job.id, error=str(e))

        try:
            await asyncio.to_thread(enqueue_render_job, self.queue, job.id)
        except Exception as e:
            logger.error("Failed to enqueue render job", job_id=job.id, error=str(e))
            await self.jobs.mark_failed(job.id, "Failed to queue render job")
            raise

        logger.info(
            "Render job queued",
            job_id=job.id,
            render_type=kind.value,
            owner_id=owner_id,
        )
        return job

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_status(self, job_id: str, user_id: str) -> RenderJob:
        """
        Read a job for its owner, failing it first if it has timed out.

        Raises:
            RenderJobNotFoundError: If the job does not exist
            RenderAccessError: If the job belongs to another user
        """
        job = await self.jobs.get(job_id)
        if job.owner_id != user_id:
            raise RenderAccessError(f"Render job {job_id} does not belong to this user")
        return await self.reaper.check(job)

    async def get_active(self, owner_id: str) -> Optional[RenderJob]:
        job = await self.jobs.get_active_for_owner(owner_id)
        if job is None:
            return None
        job = await self.reaper.check(job)
        return None if job.is_terminal else job

    async def list_jobs(self, account_id: str, limit: int = 50) -> List[RenderJob]:
        return await self.jobs.list_for_account(account_id, limit=limit)


def _require(**fields):
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise RenderAdmissionError(f"Missing required fields: {', '.join(missing)}")
