"""
Job-related data models.

Defines Job, JobEvent, and JobStep models for tracking pipeline execution.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any
from uuid import UUID
from pydantic import BaseModel, Field, field_serializer


class JobStatus(str, Enum):
    """Job status. Pipeline statuses are listed in execution order."""

    QUEUED = "QUEUED"
    SCRIPTING = "SCRIPTING"
    VOICE_GEN = "VOICE_GEN"
    ALIGNMENT = "ALIGNMENT"
    VISUAL_PLANNING = "VISUAL_PLANNING"
    IMAGE_GEN = "IMAGE_GEN"
    BUILD_TIMELINE = "BUILD_TIMELINE"
    RENDERING = "RENDERING"
    PACKAGING = "PACKAGING"
    READY = "READY"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.READY, JobStatus.FAILED)

    @property
    def is_active(self) -> bool:
        """Claimed and running through the pipeline."""
        return not self.is_terminal and self is not JobStatus.QUEUED


# Statuses a running pipeline moves through, in order
PIPELINE_STATUSES = (
    JobStatus.SCRIPTING,
    JobStatus.VOICE_GEN,
    JobStatus.ALIGNMENT,
    JobStatus.VISUAL_PLANNING,
    JobStatus.IMAGE_GEN,
    JobStatus.BUILD_TIMELINE,
    JobStatus.RENDERING,
    JobStatus.PACKAGING,
)

ACTIVE_STATUSES = tuple(s.value for s in PIPELINE_STATUSES)


class StepState(str, Enum):
    """State of a single row in job_steps."""

    PENDING = "pending"
    STARTED = "started"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class Job(BaseModel):
    """Job model representing one video generation request."""

    id: UUID
    project_id: UUID
    user_id: UUID
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(default=0, ge=0, le=100, description="Progress percentage 0-100")
    retry_count: int = Field(default=0, ge=0)
    cost_credits_reserved: int = Field(default=0, ge=0, description="Credits held at acceptance")
    cost_credits_final: Optional[int] = Field(default=None, ge=0, description="Credits consumed at completion")
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    claimed_at: Optional[datetime] = None
    claimed_by: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    dlq_at: Optional[datetime] = None
    dlq_reason: Optional[str] = None
    checkpoint_state: Optional[Dict[str, Any]] = Field(default=None, description="JSONB checkpoint for step retry")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def in_dead_letter_queue(self) -> bool:
        return self.dlq_at is not None

    @field_serializer("id", "project_id", "user_id")
    def serialize_uuid(self, value: UUID) -> str:
        """Serialize UUID to string."""
        return str(value)

    @field_serializer(
        "claimed_at", "started_at", "finished_at", "dlq_at", "created_at", "updated_at"
    )
    def serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        """Serialize datetime to ISO format string."""
        return value.isoformat() if value else None


class JobEvent(BaseModel):
    """Append-only job transition log entry."""

    job_id: UUID
    stage: str
    message: str
    level: str = "info"
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    @field_serializer("job_id")
    def serialize_uuid(self, value: UUID) -> str:
        return str(value)

    @field_serializer("created_at")
    def serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None


class JobStep(BaseModel):
    """Per-step progress row shown to polling clients."""

    job_id: UUID
    step_name: str
    step_order: int
    state: StepState = StepState.PENDING
    progress_pct: int = Field(default=0, ge=0, le=100)
    status_message: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @field_serializer("job_id")
    def serialize_uuid(self, value: UUID) -> str:
        return str(value)

    @field_serializer("started_at", "finished_at")
    def serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None
