"""
Credits API Routes

Read-only views of the caller's account balance, ledger and activity log.
"""

from typing import List

from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel

from renderspace.database.credits import AccountNotFoundError
from renderspace.database.models import CreditTransaction
from renderspace.routes.auth import AuthenticatedUser, get_current_user, get_services


router = APIRouter(prefix="/api/credits", tags=["credits"])


class CreditBalanceResponse(BaseModel):
    account_id: str
    credits: int
    credits_used: int
    credits_added: int


class TransactionListResponse(BaseModel):
    transactions: List[CreditTransaction]
    limit: int
    offset: int


@router.get("", response_model=CreditBalanceResponse)
async def get_credit_balance(
    user: AuthenticatedUser = Depends(get_current_user),
    services=Depends(get_services),
):
    """Current balance plus lifetime usage totals."""
    try:
        balance = await services.credits.get_balance(user.account_id)
    except AccountNotFoundError:
        raise HTTPException(status_code=404, detail="Account not found")

    summary = await services.credits.get_usage_summary(user.account_id)

    return CreditBalanceResponse(
        account_id=user.account_id,
        credits=balance,
        credits_used=summary["credits_used"],
        credits_added=summary["credits_added"],
    )


@router.get("/transactions", response_model=TransactionListResponse)
async def get_credit_transactions(
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user: AuthenticatedUser = Depends(get_current_user),
    services=Depends(get_services),
):
    """Ledger entries, newest first."""
    transactions = await services.credits.get_transactions(
        user.account_id,
        limit=limit,
        offset=offset,
    )
    return TransactionListResponse(transactions=transactions, limit=limit, offset=offset)


@router.get("/activity")
async def get_account_activity(
    limit: int = Query(default=10, ge=1, le=100),
    user: AuthenticatedUser = Depends(get_current_user),
    services=Depends(get_services),
):
    """The caller's recent activity (renders created and completed, purchases)."""
    activity = await services.activity.get_recent(user.user_id, limit=limit)
    return {"activity": activity}
