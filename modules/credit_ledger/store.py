"""
Credit store implementations.

`CreditStore` is the narrow interface the ledger service needs from the
transactional store. Every method must be atomic with respect to concurrent
callers for the same user.
"""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional, Protocol
from uuid import UUID

from shared.database import DatabaseClient
from shared.logging import get_logger
from shared.models import LedgerEntry, LedgerType

logger = get_logger("credit_ledger.store")

RESERVE_NOTE = "Reserved for job"
USAGE_NOTE = "Video generation completed"
PARTIAL_REFUND_NOTE = "Partial refund - actual cost less than reserved"


class CreditStore(Protocol):
    """Atomic credit operations."""

    async def get_credit_balance(self, user_id: UUID) -> int: ...

    async def reserve_credits(self, user_id: UUID, job_id: UUID, amount: int) -> bool: ...

    async def finalize_job_credits(self, user_id: UUID, job_id: UUID, final_cost: int) -> None: ...

    async def release_job_credits(self, job_id: UUID) -> None: ...

    async def add_credits(
        self,
        user_id: UUID,
        amount: int,
        entry_type: LedgerType,
        note: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> None: ...

    async def list_entries(self, user_id: UUID, limit: int = 50) -> List[LedgerEntry]: ...


class SupabaseCreditStore:
    """
    Credit store backed by the Postgres stored procedures.

    Each call is a single RPC, so the check-and-insert of `reserve_credits`
    and the retype-and-refund of `finalize_job_credits` run inside one
    database transaction.
    """

    def __init__(self, db: DatabaseClient):
        self.db = db

    async def get_credit_balance(self, user_id: UUID) -> int:
        result = await self.db.rpc("get_credit_balance", {"p_user_id": str(user_id)})
        return int(result or 0)

    async def reserve_credits(self, user_id: UUID, job_id: UUID, amount: int) -> bool:
        result = await self.db.rpc("reserve_credits", {
            "p_user_id": str(user_id),
            "p_job_id": str(job_id),
            "p_amount": amount,
        })
        return bool(result)

    async def finalize_job_credits(self, user_id: UUID, job_id: UUID, final_cost: int) -> None:
        await self.db.rpc("finalize_job_credits", {
            "p_user_id": str(user_id),
            "p_job_id": str(job_id),
            "p_final_cost": final_cost,
        })

    async def release_job_credits(self, job_id: UUID) -> None:
        await self.db.rpc("release_job_credits", {"p_job_id": str(job_id)})

    async def add_credits(
        self,
        user_id: UUID,
        amount: int,
        entry_type: LedgerType,
        note: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> None:
        await self.db.rpc("add_credits", {
            "p_user_id": str(user_id),
            "p_amount": amount,
            "p_type": entry_type.value,
            "p_note": note,
            "p_idempotency_key": idempotency_key,
        })

    async def list_entries(self, user_id: UUID, limit: int = 50) -> List[LedgerEntry]:
        result = await self.db.table("credit_ledger").select("*").eq(
            "user_id", str(user_id)
        ).order("created_at", desc=True).limit(limit).execute()
        return [LedgerEntry.model_validate(row) for row in (result.data or [])]


class InMemoryCreditStore:
    """
    Process-local credit store.

    A single asyncio.Lock serializes every mutation, which gives the same
    check-and-insert atomicity the stored procedures provide.
    """

    def __init__(self):
        self._entries: List[LedgerEntry] = []
        self._lock = asyncio.Lock()

    @property
    def entries(self) -> List[LedgerEntry]:
        return list(self._entries)

    def _balance(self, user_id: UUID) -> int:
        return sum(e.amount for e in self._entries if e.user_id == user_id)

    def _reserve_entry(self, job_id: UUID) -> Optional[LedgerEntry]:
        for entry in self._entries:
            if entry.job_id == job_id and entry.type == LedgerType.RESERVE:
                return entry
        return None

    async def get_credit_balance(self, user_id: UUID) -> int:
        async with self._lock:
            return self._balance(user_id)

    async def reserve_credits(self, user_id: UUID, job_id: UUID, amount: int) -> bool:
        async with self._lock:
            if self._balance(user_id) < amount:
                return False
            self._entries.append(LedgerEntry(
                user_id=user_id,
                job_id=job_id,
                type=LedgerType.RESERVE,
                amount=-amount,
                note=RESERVE_NOTE,
                created_at=datetime.now(timezone.utc),
            ))
            return True

    async def finalize_job_credits(self, user_id: UUID, job_id: UUID, final_cost: int) -> None:
        async with self._lock:
            entry = self._reserve_entry(job_id)
            if entry is None:
                return
            reserved = abs(entry.amount)
            if final_cost < reserved:
                self._entries.append(LedgerEntry(
                    user_id=user_id,
                    job_id=job_id,
                    type=LedgerType.REFUND,
                    amount=reserved - final_cost,
                    note=PARTIAL_REFUND_NOTE,
                    created_at=datetime.now(timezone.utc),
                ))
            index = self._entries.index(entry)
            self._entries[index] = entry.model_copy(update={"type": LedgerType.USAGE, "note": USAGE_NOTE})

    async def release_job_credits(self, job_id: UUID) -> None:
        async with self._lock:
            entry = self._reserve_entry(job_id)
            if entry is not None:
                self._entries.remove(entry)

    async def add_credits(
        self,
        user_id: UUID,
        amount: int,
        entry_type: LedgerType,
        note: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> None:
        async with self._lock:
            if idempotency_key and any(e.idempotency_key == idempotency_key for e in self._entries):
                logger.info("Duplicate credit grant ignored", extra={"idempotency_key": idempotency_key})
                return
            self._entries.append(LedgerEntry(
                user_id=user_id,
                type=entry_type,
                amount=amount,
                note=note,
                idempotency_key=idempotency_key,
                created_at=datetime.now(timezone.utc),
            ))

    async def list_entries(self, user_id: UUID, limit: int = 50) -> List[LedgerEntry]:
        async with self._lock:
            rows = [e for e in self._entries if e.user_id == user_id]
        return list(reversed(rows))[:limit]
