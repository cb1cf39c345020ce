"""
Draft prompt store implementations.

Drafts are keyed by the anonymous session token. Claiming and cleanup must
be atomic so that a draft is never claimed by two users and a claimed draft
is never swept.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol
from uuid import UUID

from shared.database import DatabaseClient
from shared.logging import get_logger
from shared.models import DraftPrompt

logger = get_logger("drafts.store")

DRAFTS_TABLE = "draft_prompts"


class DraftStore(Protocol):
    """Persistence operations needed by the draft service."""

    async def upsert_draft(self, draft: DraftPrompt) -> DraftPrompt: ...

    async def get_draft(self, session_token: str) -> Optional[DraftPrompt]: ...

    async def claim_draft(self, session_token: str, user_id: UUID) -> Optional[UUID]: ...

    async def delete_expired_drafts(self) -> int: ...


class SupabaseDraftStore:
    """Draft store backed by the `draft_prompts` table and its stored procedures."""

    def __init__(self, db: DatabaseClient):
        self.db = db

    async def upsert_draft(self, draft: DraftPrompt) -> DraftPrompt:
        payload = draft.model_dump(exclude={"id", "created_at"})
        result = await self.db.table(DRAFTS_TABLE).upsert(
            payload, on_conflict="session_token"
        ).execute()
        rows = result.data or []
        return DraftPrompt.model_validate(rows[0]) if rows else draft

    async def get_draft(self, session_token: str) -> Optional[DraftPrompt]:
        result = await self.db.table(DRAFTS_TABLE).select("*").eq(
            "session_token", session_token
        ).limit(1).execute()
        rows = result.data or []
        return DraftPrompt.model_validate(rows[0]) if rows else None

    async def claim_draft(self, session_token: str, user_id: UUID) -> Optional[UUID]:
        result = await self.db.rpc("claim_draft_prompt", {
            "p_session_token": session_token,
            "p_user_id": str(user_id),
        })
        return UUID(str(result)) if result else None

    async def delete_expired_drafts(self) -> int:
        result = await self.db.rpc("cleanup_expired_drafts", {})
        return int(result or 0)


class InMemoryDraftStore:
    """Process-local draft store; one lock serializes claim and cleanup."""

    def __init__(self):
        self._drafts: Dict[str, DraftPrompt] = {}
        self._lock = asyncio.Lock()

    @property
    def drafts(self) -> Dict[str, DraftPrompt]:
        return dict(self._drafts)

    def add_draft(self, draft: DraftPrompt) -> DraftPrompt:
        """Seed a draft directly, bypassing validation."""
        self._drafts[draft.session_token] = draft
        return draft

    async def upsert_draft(self, draft: DraftPrompt) -> DraftPrompt:
        async with self._lock:
            existing = self._drafts.get(draft.session_token)
            if existing is not None:
                draft = draft.model_copy(update={"id": existing.id, "created_at": existing.created_at})
            elif draft.created_at is None:
                draft = draft.model_copy(update={"created_at": datetime.now(timezone.utc)})
            self._drafts[draft.session_token] = draft
            return draft

    async def get_draft(self, session_token: str) -> Optional[DraftPrompt]:
        async with self._lock:
            return self._drafts.get(session_token)

    async def claim_draft(self, session_token: str, user_id: UUID) -> Optional[UUID]:
        async with self._lock:
            draft = self._drafts.get(session_token)
            if draft is None or draft.claimed_by_user_id is not None:
                return None
            if draft.expires_at <= datetime.now(timezone.utc):
                return None
            self._drafts[session_token] = draft.model_copy(update={"claimed_by_user_id": user_id})
            return draft.id

    async def delete_expired_drafts(self) -> int:
        async with self._lock:
            now = datetime.now(timezone.utc)
            expired = [
                token for token, draft in self._drafts.items()
                if draft.expires_at < now and draft.claimed_by_user_id is None
            ]
            for token in expired:
                del self._drafts[token]
            return len(expired)
