"""
Activity Log Service

Append-only audit trail of account actions (render created, render
completed, credits purchased).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List

from supabase import Client

from .client import get_supabase_admin_client


class ActivityType(str, Enum):
    CREATE_RENDER = "CREATE_RENDER"
    COMPLETE_RENDER = "COMPLETE_RENDER"
    PURCHASE_CREDITS = "PURCHASE_CREDITS"


class ActivityLogService:
    """Service class for the activity_logs table."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    async def log(
        self,
        account_id: str,
        user_id: Optional[str],
        action: ActivityType,
        ip_address: str = "",
    ) -> Dict[str, Any]:
        """Append one activity entry."""
        entry = {
            "account_id": account_id,
            "user_id": user_id,
            "action": action.value,
            "ip_address": ip_address,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        result = self.client.table("activity_logs").insert(entry).execute()
        return result.data[0]

    async def get_recent(self, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """A user's most recent entries, newest first."""
        result = (
            self.client.table("activity_logs")
            .select("id, action, timestamp, ip_address")
            .eq("user_id", user_id)
            .order("timestamp", desc=True)
            .limit(limit)
            .execute()
        )
        return result.data
