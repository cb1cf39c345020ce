"""
Draft prompt service.

Anonymous visitors can save a prompt before signing up; after sign-in the
draft is claimed by the new account. Unclaimed drafts expire after a week.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from shared.errors import ValidationError
from shared.logging import get_logger
from shared.models import DraftPrompt
from modules.drafts.store import DraftStore

logger = get_logger("drafts")

DEFAULT_TEMPLATE_ID = "narrated_storyboard_v1"
MIN_PROMPT_LENGTH = 10
DRAFT_TTL = timedelta(days=7)


class DraftService:
    """Create, claim, and sweep draft prompts."""

    def __init__(self, store: DraftStore):
        self.store = store

    async def create_draft(
        self,
        session_token: str,
        prompt_text: str,
        template_id: str = DEFAULT_TEMPLATE_ID,
        options: Optional[Dict[str, Any]] = None,
        user_id: Optional[UUID] = None
    ) -> DraftPrompt:
        """
        Save (or overwrite) the draft for a session.

        A signed-in caller claims the draft immediately.

        Args:
            session_token: Anonymous session identifier
            prompt_text: The user's prompt
            template_id: Template the prompt targets
            options: Free-form generation options
            user_id: Set when the caller is already signed in

        Returns:
            Stored draft

        Raises:
            ValidationError: If the session token is empty or the prompt is too short
        """
        if not session_token:
            raise ValidationError("Session token is required")
        prompt_text = (prompt_text or "").strip()
        if len(prompt_text) < MIN_PROMPT_LENGTH:
            raise ValidationError(f"Prompt must be at least {MIN_PROMPT_LENGTH} characters")

        draft = DraftPrompt(
            session_token=session_token,
            prompt_text=prompt_text,
            template_id=template_id or DEFAULT_TEMPLATE_ID,
            options_json=options or {},
            claimed_by_user_id=user_id,
            expires_at=datetime.now(timezone.utc) + DRAFT_TTL,
        )
        saved = await self.store.upsert_draft(draft)
        logger.info(
            "Draft saved",
            extra={"draft_id": str(saved.id), "claimed": user_id is not None}
        )
        return saved

    async def get_draft(self, session_token: str) -> Optional[DraftPrompt]:
        return await self.store.get_draft(session_token)

    async def claim_draft_prompt(self, session_token: str, user_id: UUID) -> Optional[UUID]:
        """
        Attach an unclaimed, unexpired draft to a user.

        Returns:
            Draft ID, or None if there was nothing to claim
        """
        draft_id = await self.store.claim_draft(session_token, user_id)
        if draft_id is None:
            logger.info("No claimable draft for session", extra={"user_id": str(user_id)})
        else:
            logger.info("Draft claimed", extra={"draft_id": str(draft_id), "user_id": str(user_id)})
        return draft_id

    async def cleanup_expired_drafts(self) -> int:
        """Delete expired drafts nobody claimed. Returns the number removed."""
        deleted = await self.store.delete_expired_drafts()
        if deleted:
            logger.info("Expired drafts removed", extra={"count": deleted})
        return deleted
