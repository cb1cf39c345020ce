"""
Credit ledger service.

Reserve / finalize / release protocol layered over a CreditStore. The store
guarantees atomicity; this layer validates inputs, clamps the final cost and
logs every mutation.
"""

from typing import List, Optional
from uuid import UUID

from shared.errors import ValidationError
from shared.logging import get_logger
from shared.models import LedgerEntry, LedgerType
from modules.credit_ledger.store import CreditStore

logger = get_logger("credit_ledger")


class CreditLedger:
    """Credit operations used by job submission and the pipeline runner."""

    def __init__(self, store: CreditStore):
        self.store = store

    async def get_balance(self, user_id: UUID) -> int:
        """
        Current balance: the sum of every ledger entry for the user.

        Args:
            user_id: User ID

        Returns:
            Balance in credits (0 for unknown users)
        """
        return await self.store.get_credit_balance(user_id)

    async def reserve_credits(self, user_id: UUID, job_id: UUID, amount: int) -> bool:
        """
        Hold `amount` credits for a job.

        Args:
            user_id: User ID
            job_id: Job the reservation belongs to
            amount: Credits to hold (> 0)

        Returns:
            True if reserved, False if the balance is too low (nothing written)

        Raises:
            ValidationError: If amount is not positive
        """
        if amount <= 0:
            raise ValidationError(f"Reservation amount must be positive, got {amount}", job_id=job_id)

        reserved = await self.store.reserve_credits(user_id, job_id, amount)
        if reserved:
            logger.info(
                "Credits reserved",
                extra={"user_id": str(user_id), "job_id": str(job_id), "amount": amount}
            )
        else:
            logger.info(
                "Credit reservation rejected: insufficient balance",
                extra={"user_id": str(user_id), "job_id": str(job_id), "amount": amount}
            )
        return reserved

    async def finalize_job_credits(
        self,
        user_id: UUID,
        job_id: UUID,
        final_cost: int,
        reserved: Optional[int] = None
    ) -> None:
        """
        Convert a job's reservation into a charge.

        The reserve row becomes a usage row; when `final_cost` is below the
        reserved amount a refund row for the difference is appended. Without
        a reserve row this is a no-op.

        Args:
            user_id: User ID
            job_id: Job ID
            final_cost: Credits actually consumed (>= 0)
            reserved: Reserved amount, when known, used to clamp `final_cost`

        Raises:
            ValidationError: If final_cost is negative
        """
        if final_cost < 0:
            raise ValidationError(f"Final cost must be >= 0, got {final_cost}", job_id=job_id)

        if reserved is not None and final_cost > reserved:
            logger.warning(
                "Final cost exceeds reservation, clamping",
                extra={"job_id": str(job_id), "final_cost": final_cost, "reserved": reserved}
            )
            final_cost = reserved

        await self.store.finalize_job_credits(user_id, job_id, final_cost)
        logger.info(
            "Credits finalized",
            extra={"user_id": str(user_id), "job_id": str(job_id), "final_cost": final_cost}
        )

    async def release_job_credits(self, job_id: UUID) -> None:
        """
        Drop a job's reservation, restoring the pre-reservation balance.

        Idempotent: safe to call on any failure path.

        Args:
            job_id: Job ID
        """
        await self.store.release_job_credits(job_id)
        logger.info("Credits released", extra={"job_id": str(job_id)})

    async def add_credits(
        self,
        user_id: UUID,
        amount: int,
        note: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> None:
        """
        Grant purchased credits.

        A repeated `idempotency_key` (e.g. a redelivered billing webhook) is
        ignored by the store.

        Args:
            user_id: User ID
            amount: Credits to add (> 0)
            note: Ledger note
            idempotency_key: Optional deduplication key
        """
        if amount <= 0:
            raise ValidationError(f"Credit grant must be positive, got {amount}")
        await self.store.add_credits(user_id, amount, LedgerType.PURCHASE, note, idempotency_key)
        logger.info(
            "Credits added",
            extra={"user_id": str(user_id), "amount": amount, "idempotency_key": idempotency_key}
        )

    async def get_history(self, user_id: UUID, limit: int = 50) -> List[LedgerEntry]:
        """Ledger entries for a user, newest first."""
        return await self.store.list_entries(user_id, limit)
