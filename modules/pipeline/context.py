"""
Pipeline context.

One PipelineContext is created per run and handed to every step. Steps read
earlier artifacts from it; the runner writes each successful step's outputs
back into it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import TypeAdapter

from shared.database import make_json_serializable
from shared.models import Job, Project, Script, Timeline, VisualPlan, WhisperSegment, WhisperWord

# Artifact key -> type, used to rebuild artifacts from a checkpoint
ARTIFACT_TYPES: Dict[str, Any] = {
    "merged_input_text": str,
    "outline": List[str],
    "script": Script,
    "narration_path": str,
    "narration_duration_ms": int,
    "whisper_words": List[WhisperWord],
    "whisper_segments": List[WhisperSegment],
    "captions_srt_path": str,
    "visual_plan": VisualPlan,
    "image_paths": List[str],
    "timeline": Timeline,
    "timeline_path": str,
    "video_path": str,
    "zip_path": str,
}

ARTIFACT_KEYS = tuple(ARTIFACT_TYPES)


def create_base_path(user_id: UUID, project_id: UUID, job_id: UUID) -> str:
    """Storage prefix for intermediate assets. The first segment is the bucket."""
    return f"project-assets/u_{user_id}/p_{project_id}/j_{job_id}"


def create_output_path(user_id: UUID, project_id: UUID, job_id: UUID) -> str:
    """Storage prefix for deliverables. The first segment is the bucket."""
    return f"project-outputs/u_{user_id}/p_{project_id}/j_{job_id}"


@dataclass
class PipelineContext:
    """State shared by the steps of one pipeline run."""
    job: Job
    project: Project
    job_id: UUID
    project_id: UUID
    user_id: UUID
    base_path: str
    output_path: str
    artifacts: Dict[str, Any] = field(default_factory=dict)
    services: Optional[Any] = None


def create_pipeline_context(job: Job, project: Project, services: Optional[Any] = None) -> PipelineContext:
    """
    Build a fresh context for a job.

    Args:
        job: Claimed job
        project: The job's project
        services: PipelineServices used by the steps

    Returns:
        PipelineContext with no artifacts
    """
    return PipelineContext(
        job=job,
        project=project,
        job_id=job.id,
        project_id=job.project_id,
        user_id=job.user_id,
        base_path=create_base_path(job.user_id, job.project_id, job.id),
        output_path=create_output_path(job.user_id, job.project_id, job.id),
        services=services,
    )


def _check_key(key: str) -> None:
    if key not in ARTIFACT_TYPES:
        raise KeyError(f"Unknown artifact key: {key}")


def add_artifact(ctx: PipelineContext, key: str, value: Any) -> None:
    _check_key(key)
    ctx.artifacts[key] = value


def get_artifact(ctx: PipelineContext, key: str, default: Any = None) -> Any:
    _check_key(key)
    return ctx.artifacts.get(key, default)


def has_artifact(ctx: PipelineContext, key: str) -> bool:
    _check_key(key)
    return ctx.artifacts.get(key) is not None


def remove_artifact(ctx: PipelineContext, key: str) -> None:
    _check_key(key)
    ctx.artifacts.pop(key, None)


def clear_artifacts(ctx: PipelineContext) -> None:
    ctx.artifacts.clear()


def serialize_artifacts(artifacts: Dict[str, Any]) -> Dict[str, Any]:
    """JSON-safe copy of the artifacts for a checkpoint."""
    return make_json_serializable({k: v for k, v in artifacts.items() if v is not None})


def restore_artifacts(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Rebuild typed artifacts from a checkpoint.

    Keys that are no longer known are dropped.
    """
    restored = {}
    for key, value in (data or {}).items():
        artifact_type = ARTIFACT_TYPES.get(key)
        if artifact_type is None or value is None:
            continue
        restored[key] = TypeAdapter(artifact_type).validate_python(value)
    return restored
