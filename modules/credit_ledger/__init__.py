"""
Credit ledger module.

Append-only credit ledger with atomic reserve, finalize, and release.
"""

from modules.credit_ledger.ledger import CreditLedger
from modules.credit_ledger.store import (
    CreditStore,
    SupabaseCreditStore,
    InMemoryCreditStore,
    RESERVE_NOTE,
    USAGE_NOTE,
    PARTIAL_REFUND_NOTE
)

__all__ = [
    "CreditLedger",
    "CreditStore",
    "SupabaseCreditStore",
    "InMemoryCreditStore",
    "RESERVE_NOTE",
    "USAGE_NOTE",
    "PARTIAL_REFUND_NOTE",
]
