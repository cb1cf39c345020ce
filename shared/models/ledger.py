"""
Credit ledger models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4
from pydantic import BaseModel, Field, field_serializer


class LedgerType(str, Enum):
    """Ledger entry type. reserve/usage are negative, purchase/refund positive."""

    PURCHASE = "purchase"
    RESERVE = "reserve"
    USAGE = "usage"
    REFUND = "refund"


class LedgerEntry(BaseModel):
    """Append-only credit ledger row."""

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    job_id: Optional[UUID] = None
    type: LedgerType
    amount: int
    note: Optional[str] = None
    idempotency_key: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_serializer("id", "user_id")
    def serialize_uuid(self, value: UUID) -> str:
        return str(value)

    @field_serializer("job_id")
    def serialize_job_id(self, value: Optional[UUID]) -> Optional[str]:
        return str(value) if value else None

    @field_serializer("created_at")
    def serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None
