"""
Authentication dependencies.

Verifies Supabase access tokens and resolves the caller's billing account.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Header, Request

from renderspace.config import config
from renderspace.database.client import get_supabase_admin_client, SupabaseClientError


@dataclass
class AuthenticatedUser:
    user_id: str
    account_id: str


def get_services(request: Request):
    """The service graph built at startup."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Render services are not configured")
    return services


async def get_current_user_id(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> str:
    """
    Extract and verify user ID from Authorization header.

    In dev mode with DEV_MODE=true, allows bypass for testing.
    """
    if config.DEV_MODE and not authorization:
        return config.DEV_USER_ID

    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required"
        )

    # Extract token from "Bearer <token>" format
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=401,
            detail="Invalid authorization header format. Use 'Bearer <token>'"
        )

    token = parts[1]

    try:
        client = get_supabase_admin_client()
        user_response = client.auth.get_user(token)
    except SupabaseClientError as e:
        raise HTTPException(
            status_code=503,
            detail=f"Authentication service unavailable: {str(e)}"
        )
    except Exception as e:
        raise HTTPException(
            status_code=401,
            detail=f"Token verification failed: {str(e)}"
        )

    if not user_response or not user_response.user:
        raise HTTPException(
            status_code=401,
            detail="Invalid or expired token"
        )

    return str(user_response.user.id)


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> AuthenticatedUser:
    """
    Get the caller and the billing account their credits come from.
    """
    if config.DEV_MODE and not authorization:
        return AuthenticatedUser(user_id=config.DEV_USER_ID, account_id=config.DEV_ACCOUNT_ID)

    user_id = await get_current_user_id(authorization)

    try:
        client = get_supabase_admin_client()
        result = (
            client.table("account_members")
            .select("account_id")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
    except SupabaseClientError as e:
        raise HTTPException(
            status_code=503,
            detail=f"Authentication service unavailable: {str(e)}"
        )

    if not result.data:
        raise HTTPException(
            status_code=403,
            detail="User is not a member of any account"
        )

    return AuthenticatedUser(user_id=user_id, account_id=result.data[0]["account_id"])
