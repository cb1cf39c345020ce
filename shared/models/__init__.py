"""
Data models for the video generation backend.

This module exports all Pydantic models used across modules.
"""

from .job import (
    Job,
    JobStatus,
    JobEvent,
    JobStep,
    StepState,
    PIPELINE_STATUSES,
    ACTIVE_STATUSES
)
from .project import Project, ProjectInput
from .ledger import LedgerEntry, LedgerType
from .artifacts import (
    Script,
    ScriptSection,
    WhisperWord,
    WhisperSegment,
    VisualSlot,
    VisualPlan,
    Timeline,
    TimelineTheme,
    TimelineImage,
    TimelineSegment,
    TimelineCaption
)
from .draft import DraftPrompt

__all__ = [
    # Job models
    "Job",
    "JobStatus",
    "JobEvent",
    "JobStep",
    "StepState",
    "PIPELINE_STATUSES",
    "ACTIVE_STATUSES",
    # Project models
    "Project",
    "ProjectInput",
    # Ledger models
    "LedgerEntry",
    "LedgerType",
    # Artifact models
    "Script",
    "ScriptSection",
    "WhisperWord",
    "WhisperSegment",
    "VisualSlot",
    "VisualPlan",
    "Timeline",
    "TimelineTheme",
    "TimelineImage",
    "TimelineSegment",
    "TimelineCaption",
    # Draft models
    "DraftPrompt",
]
