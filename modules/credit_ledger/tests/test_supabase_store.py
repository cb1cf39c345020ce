"""
Tests for the Supabase credit store (RPC mapping).
"""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from modules.credit_ledger import SupabaseCreditStore
from shared.models import LedgerType


@pytest.fixture
def db():
    client = MagicMock()
    client.rpc = AsyncMock(return_value=None)
    return client


@pytest.fixture
def store(db):
    return SupabaseCreditStore(db)


@pytest.mark.asyncio
async def test_reserve_calls_rpc(store, db):
    user_id, job_id = uuid4(), uuid4()
    db.rpc.return_value = True

    assert await store.reserve_credits(user_id, job_id, 5) is True
    db.rpc.assert_awaited_once_with("reserve_credits", {
        "p_user_id": str(user_id),
        "p_job_id": str(job_id),
        "p_amount": 5,
    })


@pytest.mark.asyncio
async def test_reserve_false_when_rpc_rejects(store, db):
    db.rpc.return_value = False

    assert await store.reserve_credits(uuid4(), uuid4(), 5) is False


@pytest.mark.asyncio
async def test_balance_defaults_to_zero(store, db):
    db.rpc.return_value = None

    assert await store.get_credit_balance(uuid4()) == 0


@pytest.mark.asyncio
async def test_finalize_and_release_call_rpcs(store, db):
    user_id, job_id = uuid4(), uuid4()

    await store.finalize_job_credits(user_id, job_id, 3)
    await store.release_job_credits(job_id)

    names = [call.args[0] for call in db.rpc.await_args_list]
    assert names == ["finalize_job_credits", "release_job_credits"]
    assert db.rpc.await_args_list[0].args[1]["p_final_cost"] == 3


@pytest.mark.asyncio
async def test_add_credits_passes_idempotency_key(store, db):
    user_id = uuid4()

    await store.add_credits(user_id, 10, LedgerType.PURCHASE, "pack", "evt_1")

    db.rpc.assert_awaited_once_with("add_credits", {
        "p_user_id": str(user_id),
        "p_amount": 10,
        "p_type": "purchase",
        "p_note": "pack",
        "p_idempotency_key": "evt_1",
    })
