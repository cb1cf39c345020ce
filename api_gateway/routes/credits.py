"""
Credit endpoints.
"""

from fastapi import APIRouter, Query, Depends
from shared.logging import get_logger
from api_gateway.dependencies import get_credit_ledger, get_current_user, parse_uuid

logger = get_logger(__name__)

router = APIRouter()


@router.get("/credits/balance")
async def get_credit_balance(
    current_user: dict = Depends(get_current_user),
    credit_ledger=Depends(get_credit_ledger)
):
    balance = await credit_ledger.get_balance(parse_uuid(current_user["user_id"], "user ID"))
    return {"balance": balance}


@router.get("/credits/history")
async def get_credit_history(
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
    credit_ledger=Depends(get_credit_ledger)
):
    """Ledger entries for the caller, newest first."""
    entries = await credit_ledger.get_history(parse_uuid(current_user["user_id"], "user ID"), limit=limit)
    return {
        "entries": [
            entry.model_dump(mode="json", exclude={"user_id", "idempotency_key"})
            for entry in entries
        ]
    }
