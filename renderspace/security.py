"""
Security utilities for the RenderSpace admin API.

Provides API key authentication and rate limiting with dev mode bypass.
"""

from fastapi import HTTPException, Header, Depends
import time
from typing import Optional
from collections import defaultdict

from renderspace.config import config


# Simple in-memory rate limiter (per API key)
_rate_limit_store: dict[str, list[float]] = defaultdict(list)

ADMIN_RATE_LIMIT_PER_MINUTE = 60


def get_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Optional[str]:
    """Extract the admin API key from the X-API-Key header."""
    return x_api_key or None


async def verify_api_key(
    api_key: Optional[str] = Depends(get_api_key)
) -> str:
    """
    Verify API key authentication.

    In dev mode with no API keys configured, authentication is bypassed.
    Returns the API key (or "dev" if bypassed).
    """
    # Dev mode bypass: if no API keys configured and DEV_MODE is True
    if not config.auth_required:
        return "dev"

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="API key required. Provide the X-API-Key header.",
        )

    if api_key not in config.api_keys_list:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key"
        )

    now = time.time()
    window_start = now - 60

    _rate_limit_store[api_key] = [
        t for t in _rate_limit_store[api_key] if t > window_start
    ]

    if len(_rate_limit_store[api_key]) >= ADMIN_RATE_LIMIT_PER_MINUTE:
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Max {ADMIN_RATE_LIMIT_PER_MINUTE} requests per minute."
        )

    _rate_limit_store[api_key].append(now)

    return api_key


# Convenience dependency for routes that require auth
require_auth = Depends(verify_api_key)
