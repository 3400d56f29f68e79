"""
Supabase Client Configuration

Provides both user-authenticated client and admin client for different use cases.
"""

from functools import lru_cache

from supabase import create_client, Client

from renderspace.config import config


class SupabaseClientError(Exception):
    """Raised when Supabase client cannot be initialized."""
    pass


@lru_cache(maxsize=1)
def get_supabase_admin_client() -> Client:
    """
    Get Supabase client with service role key (admin access).

    Use this for:
    - Render workers and the timeout reaper
    - Token verification in route dependencies
    - Ledger writes (credit functions run as the service role)

    WARNING: This client bypasses Row Level Security!
    Only use for server-side operations where the user context is not available.
    """
    if not config.SUPABASE_URL:
        raise SupabaseClientError(
            "SUPABASE_URL is not configured. "
            "Set it in your .env file or environment variables."
        )

    if not config.SUPABASE_SERVICE_KEY:
        raise SupabaseClientError(
            "SUPABASE_SERVICE_KEY is not configured. "
            "Set it in your .env file or environment variables."
        )

    return create_client(
        config.SUPABASE_URL,
        config.SUPABASE_SERVICE_KEY
    )


def verify_supabase_connection(client: Client | None = None) -> bool:
    """
    Verify that Supabase is properly configured and accessible.

    Returns:
        True if connection successful, False otherwise.
    """
    try:
        client = client or get_supabase_admin_client()
        client.table("render_jobs").select("id").limit(1).execute()
        return True
    except Exception as e:
        print(f"Supabase connection failed: {e}")
        return False
