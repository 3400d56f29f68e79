"""
Render Job Service

Durable render job records in Supabase. Every status write is a
conditional update on the status the caller expects to find, so the
pipeline, the timeout reaper and retried queue attempts can race safely.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from uuid import uuid4

from supabase import Client

from .client import get_supabase_admin_client
from .models import (
    RenderJob,
    RenderKind,
    RenderStatus,
    ACTIVE_STATUSES,
    ALLOWED_TRANSITIONS,
)


class RenderJobNotFoundError(Exception):
    """Raised when a render job does not exist."""
    pass


class InvalidTransitionError(Exception):
    """Raised when a status change is not allowed by the state machine."""
    pass


# Columns a status transition may set alongside the new status.
TRANSITION_FIELDS = frozenset({
    "result_image_url",
    "prompt",
    "completed_at",
    "error_message",
})

# Columns that may be patched without touching status.
PATCH_FIELDS = frozenset({
    "empty_room_image_url",
    "error_message",
    "credit_deducted",
})


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _serialize(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in fields.items()
    }


class RenderJobService:
    """
    Service class for render job persistence.

    The job table is the single source of truth for render state; queue
    units only carry the job id.
    """

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    # =========================================================================
    # Job Creation
    # =========================================================================

    async def create(
        self,
        owner_id: str,
        account_id: str,
        title: str,
        room_type: str,
        lighting: str,
        input_image_url: str,
        render_type: RenderKind = RenderKind.TRANSFORM,
        style_image_url: Optional[str] = None,
    ) -> RenderJob:
        """
        Create a new render job in PENDING status.

        Args:
            owner_id: Submitting user
            account_id: Billing account the credits come from
            title: Display title
            room_type: Room type requested (living room, kitchen, ...)
            lighting: Lighting requested
            input_image_url: Source image (collage, or room photo for placement)
            render_type: Which pipeline variant runs
            style_image_url: Style source for placement renders

        Returns:
            The created job
        """
        job_data = {
            "id": str(uuid4()),
            "owner_id": owner_id,
            "account_id": account_id,
            "title": title,
            "room_type": room_type,
            "lighting": lighting,
            "render_type": render_type.value,
            "status": RenderStatus.PENDING.value,
            "input_image_url": input_image_url,
            "style_image_url": style_image_url,
            "credit_deducted": False,
            "created_at": _now_iso(),
        }

        result = self.client.table("render_jobs").insert(job_data).execute()
        return RenderJob.from_row(result.data[0])

    # =========================================================================
    # Job Retrieval
    # =========================================================================

    async def get(self, job_id: str) -> RenderJob:
        """Get a job by id, raising RenderJobNotFoundError if missing."""
        result = (
            self.client.table("render_jobs")
            .select("*")
            .eq("id", job_id)
            .execute()
        )
        if not result.data:
            raise RenderJobNotFoundError(f"Render job {job_id} not found")
        return RenderJob.from_row(result.data[0])

    async def get_active_for_owner(self, owner_id: str) -> Optional[RenderJob]:
        """
        Get the most recent non-terminal job for a user.

        Lets a freshly loaded page recover an in-flight render without
        waiting for a push.
        """
        result = (
            self.client.table("render_jobs")
            .select("*")
            .eq("owner_id", owner_id)
            .in_("status", [s.value for s in ACTIVE_STATUSES])
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return RenderJob.from_row(result.data[0]) if result.data else None

    async def list_for_account(
        self,
        account_id: str,
        limit: int = 50
    ) -> List[RenderJob]:
        """Get an account's jobs, newest first."""
        result = (
            self.client.table("render_jobs")
            .select("*")
            .eq("account_id", account_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [RenderJob.from_row(row) for row in result.data]

    async def list_stale(
        self,
        created_before: datetime,
        limit: int = 100
    ) -> List[RenderJob]:
        """Get non-terminal jobs created before the cutoff (oldest first)."""
        result = (
            self.client.table("render_jobs")
            .select("*")
            .in_("status", [s.value for s in ACTIVE_STATUSES])
            .lt("created_at", created_before.isoformat())
            .order("created_at")
            .limit(limit)
            .execute()
        )
        return [RenderJob.from_row(row) for row in result.data]

    # =========================================================================
    # Status Transitions
    # =========================================================================

    async def transition(
        self,
        job_id: str,
        from_status: RenderStatus,
        to_status: RenderStatus,
        **fields: Any
    ) -> Optional[RenderJob]:
        """
        Conditionally move a job from one status to another.

        The update only applies while the stored status still equals
        from_status. Of two racing callers with the same from_status,
        exactly one gets a record back.

        Returns:
            The updated job, or None if the stored status did not match
        """
        if to_status not in ALLOWED_TRANSITIONS[from_status]:
            raise InvalidTransitionError(
                f"Cannot move render job from {from_status.value} to {to_status.value}"
            )

        unknown = set(fields) - TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Fields not settable on transition: {sorted(unknown)}")

        update_data = _serialize(fields)
        update_data["status"] = to_status.value

        if to_status.is_terminal and "completed_at" not in update_data:
            update_data["completed_at"] = _now_iso()

        result = (
            self.client.table("render_jobs")
            .update(update_data)
            .eq("id", job_id)
            .eq("status", from_status.value)
            .execute()
        )
        return RenderJob.from_row(result.data[0]) if result.data else None

    async def mark_failed(
        self,
        job_id: str,
        error_message: str,
        max_attempts: int = 3
    ) -> Optional[RenderJob]:
        """
        Fail a job from whatever non-terminal status it is in.

        Re-reads the stored status before each conditional write so a job
        that advanced meanwhile is failed from its new status instead.

        Returns:
            The failed job, or None if it was already terminal
        """
        for _ in range(max_attempts):
            job = await self.get(job_id)
            if job.is_terminal:
                return None

            failed = await self.transition(
                job_id,
                job.status,
                RenderStatus.FAILED,
                error_message=error_message,
            )
            if failed:
                return failed

        raise RuntimeError(
            f"Render job {job_id} kept changing status while being marked failed"
        )

    async def update_fields(self, job_id: str, **fields: Any) -> Optional[RenderJob]:
        """Patch non-status columns (intermediate refs, post-commit warnings)."""
        unknown = set(fields) - PATCH_FIELDS
        if unknown:
            raise ValueError(f"Fields not patchable: {sorted(unknown)}")

        result = (
            self.client.table("render_jobs")
            .update(_serialize(fields))
            .eq("id", job_id)
            .execute()
        )
        return RenderJob.from_row(result.data[0]) if result.data else None

    # =========================================================================
    # Admin/Dashboard Queries
    # =========================================================================

    async def get_status_counts(self) -> Dict[str, int]:
        """Count jobs by status for the admin endpoint."""
        result = (
            self.client.table("render_jobs")
            .select("status")
            .execute()
        )

        counts = {status.value: 0 for status in RenderStatus}
        for row in result.data:
            status = row.get("status")
            if status in counts:
                counts[status] += 1

        return counts
