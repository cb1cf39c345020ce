"""
Fixtures for draft tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from shared.models import DraftPrompt
from modules.drafts import DraftService, InMemoryDraftStore


@pytest.fixture
def store():
    return InMemoryDraftStore()


@pytest.fixture
def service(store):
    return DraftService(store)


@pytest.fixture
def seed_draft(store):
    """Insert a draft whose expiry is `expires_in` from now (negative for expired)."""

    def _seed(session_token, expires_in=timedelta(days=1), **fields):
        return store.add_draft(DraftPrompt(
            session_token=session_token,
            prompt_text=fields.pop("prompt_text", "A video about honeybees"),
            expires_at=datetime.now(timezone.utc) + expires_in,
            **fields
        ))

    return _seed
