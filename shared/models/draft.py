"""
Draft prompt model (prompts submitted before sign-up).
"""

from datetime import datetime
from typing import Optional, Dict, Any
from uuid import UUID, uuid4
from pydantic import BaseModel, Field, field_serializer


class DraftPrompt(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    session_token: str
    prompt_text: str
    template_id: str = "narrated_storyboard_v1"
    options_json: Dict[str, Any] = Field(default_factory=dict)
    claimed_by_user_id: Optional[UUID] = None
    expires_at: datetime
    created_at: Optional[datetime] = None

    @field_serializer("id")
    def serialize_uuid(self, value: UUID) -> str:
        return str(value)

    @field_serializer("claimed_by_user_id")
    def serialize_user_id(self, value: Optional[UUID]) -> Optional[str]:
        return str(value) if value else None

    @field_serializer("expires_at", "created_at")
    def serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None
