"""
RenderSpace Database Layer

This module provides the Supabase client and service classes for
render jobs, the credit ledger and the activity log.
"""

from .client import get_supabase_admin_client, SupabaseClientError
from .models import (
    RenderJob,
    RenderKind,
    RenderStatus,
    RenderStep,
    CreditTransaction,
)
from .jobs import RenderJobService, RenderJobNotFoundError, InvalidTransitionError
from .credits import CreditService, InsufficientCreditsError, AccountNotFoundError
from .activity import ActivityLogService, ActivityType

__all__ = [
    "get_supabase_admin_client",
    "SupabaseClientError",
    "RenderJob",
    "RenderKind",
    "RenderStatus",
    "RenderStep",
    "CreditTransaction",
    "RenderJobService",
    "RenderJobNotFoundError",
    "InvalidTransitionError",
    "CreditService",
    "InsufficientCreditsError",
    "AccountNotFoundError",
    "ActivityLogService",
    "ActivityType",
]
