"""
Tests for the admin DLQ, credit, and draft endpoints.
"""

from uuid import uuid4

import pytest

from shared.models import JobStatus
from modules.job_queue import move_job_to_dead_letter_queue
from modules.pipeline import JOB_STATUS_CACHE_KEY


@pytest.mark.asyncio
async def test_dlq_requires_admin(client, auth_headers):
    response = await client.get("/api/v1/admin/dlq", headers=auth_headers)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_dlq_lists_dead_lettered_jobs(client, admin_headers, add_job, job_store):
    await add_job(status=JobStatus.FAILED)
    dead = await add_job(status=JobStatus.FAILED, retry_count=3, error_code="ERR_RENDER")
    await move_job_to_dead_letter_queue(job_store, dead.id, "ERR_RENDER: ffmpeg died")

    response = await client.get("/api/v1/admin/dlq", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 1
    assert data["jobs"][0]["id"] == str(dead.id)
    assert data["jobs"][0]["dlq_reason"] == "ERR_RENDER: ffmpeg died"
    assert "checkpoint_state" not in data["jobs"][0]


@pytest.mark.asyncio
async def test_admin_retries_dead_letter_job(client, admin_headers, add_job, job_store, cache):
    dead = await add_job(status=JobStatus.FAILED, retry_count=3)
    await move_job_to_dead_letter_queue(job_store, dead.id, "ERR_UNKNOWN")
    key = JOB_STATUS_CACHE_KEY.format(job_id=dead.id)
    cache.entries[key] = {"status": "FAILED"}

    response = await client.post(f"/api/v1/admin/dlq/{dead.id}/retry", headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == {"success": True, "job_id": str(dead.id), "status": "QUEUED"}
    job = await job_store.get_job(dead.id)
    assert job.retry_count == 0
    assert job.dlq_at is None
    assert key not in cache.entries


@pytest.mark.asyncio
async def test_admin_retry_rejects_live_and_unknown_jobs(client, admin_headers, add_job):
    job = await add_job(status=JobStatus.FAILED)

    assert (await client.post(f"/api/v1/admin/dlq/{job.id}/retry", headers=admin_headers)).status_code == 400
    assert (await client.post(f"/api/v1/admin/dlq/{uuid4()}/retry", headers=admin_headers)).status_code == 404


@pytest.mark.asyncio
async def test_credit_balance_and_history(client, auth_headers, ledger, user_id):
    await ledger.add_credits(user_id, 10, note="Starter pack")
    job_id = uuid4()
    await ledger.reserve_credits(user_id, job_id, 3)

    balance = await client.get("/api/v1/credits/balance", headers=auth_headers)
    history = await client.get("/api/v1/credits/history", headers=auth_headers)

    assert balance.json() == {"balance": 7}
    entries = history.json()["entries"]
    assert [e["type"] for e in entries] == ["reserve", "purchase"]
    assert entries[0]["amount"] == -3
    assert entries[0]["job_id"] == str(job_id)
    assert "user_id" not in entries[0]


@pytest.mark.asyncio
async def test_history_limit_is_validated(client, auth_headers):
    response = await client.get("/api/v1/credits/history?limit=0", headers=auth_headers)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_anonymous_draft_then_claim(client, auth_headers, draft_store, user_id):
    created = await client.post("/api/v1/drafts", json={
        "session_token": "sess-abc",
        "prompt_text": "Explain how the immune system works",
    })

    assert created.status_code == 201
    assert created.json()["claimed"] is False

    claimed = await client.post("/api/v1/drafts/claim", json={"session_token": "sess-abc"}, headers=auth_headers)

    assert claimed.json() == {"claimed": True, "draft_id": created.json()["draft_id"]}
    assert draft_store.drafts["sess-abc"].claimed_by_user_id == user_id

    again = await client.post("/api/v1/drafts/claim", json={"session_token": "sess-abc"}, headers=auth_headers)
    assert again.json() == {"claimed": False, "draft_id": None}


@pytest.mark.asyncio
async def test_signed_in_draft_is_claimed(client, auth_headers):
    response = await client.post("/api/v1/drafts", json={
        "session_token": "sess-abc",
        "prompt_text": "Explain how the immune system works",
    }, headers=auth_headers)

    assert response.json()["claimed"] is True


@pytest.mark.asyncio
async def test_short_draft_prompt_rejected(client):
    response = await client.post("/api/v1/drafts", json={"session_token": "sess-abc", "prompt_text": "hi"})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_claim_requires_auth(client):
    response = await client.post("/api/v1/drafts/claim", json={"session_token": "sess-abc"})

    assert response.status_code == 401
