"""
Render Pipeline

Runs one render job from PENDING to a terminal status:

    PENDING -> PROCESSING -> UPLOADING -> COMPLETED
    {PENDING, PROCESSING, UPLOADING} -> FAILED

Every status write is conditional, so a retried queue attempt, a second
worker or the timeout reaper can never move a job backward or overwrite
a terminal status.
"""

import time
from dataclasses import dataclass
from typing import Optional, List

from renderspace.database.activity import ActivityLogService, ActivityType
from renderspace.database.credits import CreditService
from renderspace.database.jobs import RenderJobService
from renderspace.database.models import (
    RenderJob,
    RenderStatus,
    RenderStep,
    STATUS_ORDER,
)
from renderspace.events.broker import EventBroker
from renderspace.render.generation import GenerationService, GenerationResult
from renderspace.utils.logging import render_logger as logger


class RenderCommitError(Exception):
    """Raised when the UPLOADING -> COMPLETED commit did not apply."""
    pass


@dataclass
class PipelineResult:
    """Outcome of one execute() call."""
    success: bool
    status: RenderStatus
    error: Optional[str] = None
    skipped: bool = False


@dataclass
class _StepContext:
    """Carries intermediate bytes between generation steps."""
    job: RenderJob
    last: Optional[GenerationResult] = None


class RenderPipeline:
    """
    Executes render jobs claimed from the queue.

    All collaborators are injected so the worker, the tests and a one-off
    script can each build their own.
    """

    def __init__(
        self,
        jobs: RenderJobService,
        credits: CreditService,
        activity: ActivityLogService,
        generation: GenerationService,
        storage,
        broker: EventBroker,
    ):
        self.jobs = jobs
        self.credits = credits
        self.activity = activity
        self.generation = generation
        self.storage = storage
        self.broker = broker

        self._step_handlers = {
            RenderStep.TRANSFORM: self._run_transform,
            RenderStep.REMOVE_BACKGROUND: self._run_remove_background,
            RenderStep.COMPOSE: self._run_compose,
        }

    # =========================================================================
    # Entry point
    # =========================================================================

    async def execute(self, job_id: str) -> PipelineResult:
        """
        Run the pipeline for one job.

        Load failures propagate so the queue applies its retry policy.
        Anything after that is recorded on the job itself.
        """
        job = await self.jobs.get(job_id)

        if job.is_terminal:
            logger.info(
                "Render job already terminal, skipping",
                job_id=job_id,
                status=job.status.value,
            )
            return PipelineResult(
                success=job.status == RenderStatus.COMPLETED,
                status=job.status,
                error=job.error_message,
                skipped=True,
            )

        start_time = time.time()
        logger.info(
            "Processing render job",
            job_id=job_id,
            render_type=job.render_type.value,
            status=job.status.value,
        )

        try:
            completed = await self._run(job)
        except Exception as e:
            return await self._handle_failure(job, e)

        await self._finish_completed(completed)

        logger.info(
            "Render job completed",
            job_id=job_id,
            duration_seconds=round(time.time() - start_time, 1),
        )
        return PipelineResult(success=True, status=RenderStatus.COMPLETED)

    # =========================================================================
    # Critical path
    # =========================================================================

    async def _run(self, job: RenderJob) -> RenderJob:
        job = await self._advance(job, RenderStatus.PROCESSING)

        ctx = _StepContext(job=job)
        for step in job.render_type.steps:
            logger.debug("Running render step", job_id=job.id, step=step.value)
            ctx.last = await self._step_handlers[step](ctx)

        result = ctx.last
        job = await self._advance(job, RenderStatus.UPLOADING)

        result_url = await self.storage.upload_image(result.image_data, f"{job.id}.png")

        completed = await self.jobs.transition(
            job.id,
            RenderStatus.UPLOADING,
            RenderStatus.COMPLETED,
            result_image_url=result_url,
            prompt=result.prompt,
        )
        if completed is None:
            raise RenderCommitError("Failed to update render job (status changed during upload)")

        return completed

    async def _advance(self, job: RenderJob, target: RenderStatus) -> RenderJob:
        """
        Move the job forward to target, or skip when it is already there.

        A retried attempt finds the job where the previous one left it.
        """
        if STATUS_ORDER.get(job.status, -1) >= STATUS_ORDER[target]:
            return job

        updated = await self.jobs.transition(job.id, job.status, target)
        if updated is None:
            raise RenderCommitError(
                f"Render job {job.id} changed status before it could move to {target.value}"
            )
        return updated

    # =========================================================================
    # Generation steps
    # =========================================================================

    async def _run_transform(self, ctx: _StepContext) -> GenerationResult:
        job = ctx.job
        return await self.generation.transform(job.input_image_url, job.room_type, job.lighting)

    async def _run_remove_background(self, ctx: _StepContext) -> GenerationResult:
        job = ctx.job
        result = await self.generation.remove_background(job.input_image_url, job.room_type)

        # Intermediate artifact is for inspection only; the bytes feed compose
        try:
            url = await self.storage.upload_image(result.image_data, f"{job.id}_empty_room.png")
            await self.jobs.update_fields(job.id, empty_room_image_url=url)
        except Exception as e:
            logger.error("Failed to persist empty room image", job_id=job.id, error=str(e))

        return result

    async def _run_compose(self, ctx: _StepContext) -> GenerationResult:
        job = ctx.job
        if ctx.last is None:
            raise ValueError("Compose step needs the empty room image")
        if not job.style_image_url:
            raise ValueError("Placement render has no style image")

        return await self.generation.compose(
            ctx.last.image_data,
            job.style_image_url,
            job.room_type,
            job.lighting,
        )

    # =========================================================================
    # After the commit
    # =========================================================================

    async def _finish_completed(self, job: RenderJob):
        """
        Non-critical bookkeeping after COMPLETED is committed.

        Failures are collected onto error_message; the job stays COMPLETED.
        """
        warnings: List[str] = []
        patch = {}

        try:
            await self.credits.debit_for_render(job)
            patch["credit_deducted"] = True
        except Exception as e:
            # The debit function sets credit_deducted itself when it commits,
            # so a lost response must not reset the flag here
            logger.error("Failed to deduct credits", job_id=job.id, error=str(e))
            warnings.append(f"Credit deduction failed: {e}")

        try:
            await self.activity.log(job.account_id, job.owner_id, ActivityType.COMPLETE_RENDER)
        except Exception as e:
            logger.error("Failed to log render activity", job_id=job.id, error=str(e))
            warnings.append(f"Activity log failed: {e}")

        if warnings:
            patch["error_message"] = "; ".join(warnings)

        try:
            await self.jobs.update_fields(job.id, **patch)
        except Exception as e:
            logger.error("Failed to record post-commit status", job_id=job.id, error=str(e))

        await self.broker.publish_terminal(job)

    # =========================================================================
    # Failure path
    # =========================================================================

    async def _handle_failure(self, job: RenderJob, error: Exception) -> PipelineResult:
        message = str(error) or error.__class__.__name__
        logger.error("Render job failed", job_id=job.id, error=message)

        stored: Optional[RenderJob] = None
        try:
            stored = await self.jobs.mark_failed(job.id, message)
            if stored is None:
                # Already terminal (reaper or another attempt got there first)
                stored = await self.jobs.get(job.id)
        except Exception as db_error:
            logger.error(
                "Failed to record render failure",
                job_id=job.id,
                error=str(db_error),
            )

        if stored is not None and stored.status == RenderStatus.COMPLETED:
            await self.broker.publish_terminal(stored)
            return PipelineResult(success=True, status=RenderStatus.COMPLETED)

        await self.broker.publish_terminal(
            (stored or job).model_copy(update={"status": RenderStatus.FAILED}),
            error_message=stored.error_message if stored else message,
        )
        return PipelineResult(success=False, status=RenderStatus.FAILED, error=message)
