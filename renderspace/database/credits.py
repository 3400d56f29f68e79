"""
Credit Service

Handles the account credit balance and the credit transaction ledger.
Balances only change through database functions that guard the
decrement (credits >= amount) at write time.
"""

from typing import Optional, Dict, Any, List

from supabase import Client

from renderspace.utils.logging import credit_logger as logger

from .client import get_supabase_admin_client
from .models import CreditTransaction, RenderJob


class InsufficientCreditsError(Exception):
    """Raised when an account doesn't have enough credits."""
    pass


class AccountNotFoundError(Exception):
    """Raised when a billing account does not exist."""
    pass


class CreditService:
    """
    Service class for credit operations.

    All credit modifications are logged in the credit_transactions table
    with a balance snapshot, so the ledger can be audited without replay.
    """

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    # =========================================================================
    # Credit Balance
    # =========================================================================

    async def get_balance(self, account_id: str) -> int:
        """Get an account's current credit balance."""
        result = (
            self.client.table("accounts")
            .select("credits")
            .eq("id", account_id)
            .execute()
        )

        if not result.data:
            raise AccountNotFoundError(f"Account {account_id} not found")

        return result.data[0]["credits"]

    async def has_credits(self, account_id: str, amount: int = 1) -> bool:
        """Check if an account has sufficient credits."""
        balance = await self.get_balance(account_id)
        return balance >= amount

    # =========================================================================
    # Render Debits (using database function)
    # =========================================================================

    async def debit_for_render(
        self,
        job: RenderJob,
        amount: Optional[int] = None,
    ) -> CreditTransaction:
        """
        Charge an account for a completed render.

        Uses the debit_render_credits database function, which in one
        transaction decrements the balance (only if credits >= amount),
        inserts the ledger row and sets render_jobs.credit_deducted.
        Calling it again for the same job returns the existing debit.

        Args:
            job: The completed render job
            amount: Credits to charge (defaults to the job type's cost)

        Returns:
            The debit transaction

        Raises:
            InsufficientCreditsError: If the guarded decrement did not apply
        """
        amount = job.credit_cost if amount is None else amount

        result = self.client.rpc(
            "debit_render_credits",
            {
                "p_account_id": job.account_id,
                "p_owner_id": job.owner_id,
                "p_amount": amount,
                "p_render_job_id": job.id,
                "p_description": f"Credit used for render: {job.title}",
            }
        ).execute()

        # The function returns the ledger row, or null when the guard failed
        if not result.data:
            raise InsufficientCreditsError(
                f"Account {job.account_id} has insufficient credits. "
                f"Required: {amount}"
            )

        tx = CreditTransaction.from_row(result.data)
        logger.info(
            "Debited render credits",
            job_id=job.id,
            account_id=job.account_id,
            amount=amount,
            balance_after=tx.balance_after,
        )
        return tx

    async def get_render_debits(self, render_job_id: str) -> List[CreditTransaction]:
        """Get ledger rows that reference a render job."""
        result = (
            self.client.table("credit_transactions")
            .select("*")
            .eq("render_job_id", render_job_id)
            .execute()
        )
        return [CreditTransaction.from_row(row) for row in result.data]

    # =========================================================================
    # Credit Additions (using database function)
    # =========================================================================

    async def add_credits(
        self,
        account_id: str,
        amount: int,
        description: str,
        owner_id: Optional[str] = None,
        payment_reference: Optional[str] = None,
    ) -> CreditTransaction:
        """
        Add credits to an account's balance.

        Uses the add_credits database function. When payment_reference is
        given (e.g. a Stripe checkout session id) the unique constraint on
        it makes the purchase idempotent: a repeated call returns the
        original transaction without adding credits again.

        Returns:
            The credit transaction
        """
        if amount <= 0:
            raise ValueError("Credit additions must be positive")

        result = self.client.rpc(
            "add_credits",
            {
                "p_account_id": account_id,
                "p_owner_id": owner_id,
                "p_amount": amount,
                "p_description": description,
                "p_payment_reference": payment_reference,
            }
        ).execute()

        if not result.data:
            raise AccountNotFoundError(f"Account {account_id} not found")

        logger.info(
            f"Added {amount} credits",
            account_id=account_id,
            payment_reference=payment_reference,
        )
        return CreditTransaction.from_row(result.data)

    # =========================================================================
    # Transaction History
    # =========================================================================

    async def get_transactions(
        self,
        account_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> List[CreditTransaction]:
        """
        Get an account's credit transaction history, newest first.
        """
        result = (
            self.client.table("credit_transactions")
            .select("*")
            .eq("account_id", account_id)
            .order("created_at", desc=True)
            .range(offset, offset + limit - 1)
            .execute()
        )
        return [CreditTransaction.from_row(row) for row in result.data]

    async def get_usage_summary(self, account_id: str) -> Dict[str, Any]:
        """Totals of credits used and added over the account's history."""
        result = (
            self.client.table("credit_transactions")
            .select("amount")
            .eq("account_id", account_id)
            .execute()
        )

        amounts = [row["amount"] for row in result.data]
        credits_used = sum(-a for a in amounts if a < 0)
        credits_added = sum(a for a in amounts if a > 0)

        return {
            "credits_used": credits_used,
            "credits_added": credits_added,
            "net_change": credits_added - credits_used,
            "transaction_count": len(amounts),
        }
