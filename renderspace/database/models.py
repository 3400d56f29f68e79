"""
Render job and ledger records.

Rows come back from Supabase as dicts; these models give the pipeline
typed access to them.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, Tuple

from pydantic import BaseModel


class RenderStatus(str, Enum):
    """Status values for render jobs"""
    PENDING = "pending"
    PROCESSING = "processing"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({RenderStatus.COMPLETED, RenderStatus.FAILED})
ACTIVE_STATUSES = (RenderStatus.PENDING, RenderStatus.PROCESSING, RenderStatus.UPLOADING)

# Forward-only state machine. Any non-terminal state may fail.
ALLOWED_TRANSITIONS: Dict[RenderStatus, frozenset] = {
    RenderStatus.PENDING: frozenset({RenderStatus.PROCESSING, RenderStatus.FAILED}),
    RenderStatus.PROCESSING: frozenset({RenderStatus.UPLOADING, RenderStatus.FAILED}),
    RenderStatus.UPLOADING: frozenset({RenderStatus.COMPLETED, RenderStatus.FAILED}),
    RenderStatus.COMPLETED: frozenset(),
    RenderStatus.FAILED: frozenset(),
}

# Position of each status along the happy path, used to resume retried attempts.
STATUS_ORDER = {
    RenderStatus.PENDING: 0,
    RenderStatus.PROCESSING: 1,
    RenderStatus.UPLOADING: 2,
    RenderStatus.COMPLETED: 3,
}


class RenderStep(str, Enum):
    """A single call to the generation provider."""
    TRANSFORM = "transform"
    REMOVE_BACKGROUND = "remove_background"
    COMPOSE = "compose"


class RenderKind(str, Enum):
    """
    Job types. Each carries its generation step list and credit cost.

    - transform: one edit call turning a collage into a room render
    - placement: empty the room photo, then compose the collage style into it
    """
    TRANSFORM = "transform"
    PLACEMENT = "placement"

    @property
    def steps(self) -> Tuple[RenderStep, ...]:
        return _KIND_STEPS[self]

    @property
    def credit_cost(self) -> int:
        return _KIND_COSTS[self]


_KIND_STEPS = {
    RenderKind.TRANSFORM: (RenderStep.TRANSFORM,),
    RenderKind.PLACEMENT: (RenderStep.REMOVE_BACKGROUND, RenderStep.COMPOSE),
}

_KIND_COSTS = {
    RenderKind.TRANSFORM: 1,
    RenderKind.PLACEMENT: 2,
}


class RenderJob(BaseModel):
    """One user request to produce a generated room render."""
    id: str
    owner_id: str
    account_id: str
    title: str
    room_type: str
    lighting: str
    render_type: RenderKind = RenderKind.TRANSFORM
    status: RenderStatus
    input_image_url: str
    style_image_url: Optional[str] = None
    empty_room_image_url: Optional[str] = None
    result_image_url: Optional[str] = None
    prompt: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    credit_deducted: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def credit_cost(self) -> int:
        return self.render_type.credit_cost

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "RenderJob":
        return cls.model_validate(row)


class CreditTransaction(BaseModel):
    """Ledger entry. Negative amounts are consumption, positive are purchases."""
    id: str | int
    account_id: str
    owner_id: Optional[str] = None
    amount: int
    description: str
    balance_after: int
    render_job_id: Optional[str] = None
    payment_reference: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CreditTransaction":
        return cls.model_validate(row)
