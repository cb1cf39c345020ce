"""
Fixtures for API tests.

Requests go through httpx's ASGI transport so the app and the in-memory
stores share the test's event loop.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from jose import jwt

from shared.config import settings
from shared.models import Job, JobStatus, Project
from modules.credit_ledger import CreditLedger, InMemoryCreditStore
from modules.drafts import DraftService, InMemoryDraftStore
from modules.job_queue import InMemoryJobStore
from api_gateway.main import create_app


@pytest.fixture
def job_store():
    return InMemoryJobStore()


@pytest.fixture
def ledger():
    return CreditLedger(InMemoryCreditStore())


@pytest.fixture
def draft_store():
    return InMemoryDraftStore()


@pytest.fixture
def cache():
    """Dict-backed stand-in for RedisClient."""
    entries: Dict[str, Any] = {}
    mock = MagicMock()
    mock.entries = entries

    async def get_json(key):
        return entries.get(key)

    async def set_json(key, data, ttl=None):
        entries[key] = json.loads(json.dumps(data, default=str))
        return True

    async def delete(key):
        return entries.pop(key, None) is not None

    mock.get_json = AsyncMock(side_effect=get_json)
    mock.set_json = AsyncMock(side_effect=set_json)
    mock.delete = AsyncMock(side_effect=delete)
    mock.health_check = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def app(job_store, ledger, draft_store, cache):
    return create_app(
        job_store=job_store,
        credit_ledger=ledger,
        draft_service=DraftService(draft_store),
        cache=cache
    )


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def make_token():
    def _make(sub, role=None, secret=None):
        claims = {"email": "user@example.com"}
        if sub:
            claims["sub"] = str(sub)
        if role:
            claims["app_metadata"] = {"role": role}
        return jwt.encode(claims, secret or settings.supabase_jwt_secret, algorithm="HS256")

    return _make


@pytest.fixture
def auth_headers(make_token, user_id):
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def admin_headers(make_token):
    return {"Authorization": f"Bearer {make_token(uuid4(), role='admin')}"}


@pytest.fixture
def add_job(job_store, user_id):
    async def _add(owner=None, **fields):
        owner = owner or user_id
        project = job_store.add_project(Project(id=uuid4(), user_id=owner, title="Coral Reefs"))
        fields.setdefault("status", JobStatus.QUEUED)
        return await job_store.create_job(Job(
            id=uuid4(),
            project_id=project.id,
            user_id=owner,
            created_at=datetime.now(timezone.utc),
            **fields
        ))

    return _add
