"""
Project models.

User-specified generation parameters read by the pipeline.
"""

from datetime import datetime
from typing import Literal, Optional, Dict, Any
from uuid import UUID
from pydantic import BaseModel, Field, field_serializer


class Project(BaseModel):
    """Project row. Only `status` and `timeline_path` are written by the pipeline."""

    id: UUID
    user_id: UUID
    title: str
    niche_preset: str = "explainer"
    target_minutes: int = Field(default=1, ge=1)
    prompt_text: Optional[str] = None
    template_id: str = "narrated_storyboard_v1"
    visual_preset_id: str = "photorealistic"
    voice_profile_id: Optional[str] = None
    image_density: Optional[Literal["low", "normal", "high"]] = "normal"
    target_resolution: Literal["720p", "1080p", "4k"] = "1080p"
    status: str = "draft"
    timeline_path: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_serializer("id", "user_id")
    def serialize_uuid(self, value: UUID) -> str:
        """Serialize UUID to string."""
        return str(value)

    @field_serializer("created_at", "updated_at")
    def serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        """Serialize datetime to ISO format string."""
        return value.isoformat() if value else None


class ProjectInput(BaseModel):
    """Source material attached to a project."""

    id: UUID
    project_id: UUID
    type: Literal["text", "file", "url"]
    title: Optional[str] = None
    content_text: Optional[str] = Field(default=None, description="Text body, or the URL for type=url")
    storage_path: Optional[str] = Field(default=None, description="bucket/path for type=file")
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    @field_serializer("id", "project_id")
    def serialize_uuid(self, value: UUID) -> str:
        return str(value)
