"""
Pipeline checkpoints.

From IMAGE_GEN onward the runner stores every artifact in
`jobs.checkpoint_state` after each successful step, so a failed render or
package can be retried without regenerating the script, audio or images.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from shared.logging import get_logger
from shared.models import Job, JobStatus, PIPELINE_STATUSES
from modules.pipeline.config import CHECKPOINT_MIN_STATUS
from modules.pipeline.context import serialize_artifacts
from modules.job_queue.store import JobStore

logger = get_logger("pipeline.checkpoint")


class Checkpoint(BaseModel):
    """Persisted shape of `jobs.checkpoint_state`."""

    last_completed_step: str
    last_completed_status: JobStatus
    artifacts: Dict[str, Any] = Field(default_factory=dict)
    saved_at: datetime
    progress: int = 0
    resume_from: Optional[JobStatus] = None


def can_retry_from_checkpoint(status: JobStatus) -> bool:
    """True for pipeline statuses at or after IMAGE_GEN."""
    try:
        status = JobStatus(status)
    except ValueError:
        return False
    if status not in PIPELINE_STATUSES:
        return False
    return PIPELINE_STATUSES.index(status) >= PIPELINE_STATUSES.index(CHECKPOINT_MIN_STATUS)


async def save_checkpoint(
    job_store: JobStore,
    job_id: UUID,
    step_name: str,
    status: JobStatus,
    artifacts: Dict[str, Any],
    progress: int
) -> Dict[str, Any]:
    """
    Persist the artifacts produced so far.

    Args:
        job_store: Job store
        job_id: Job ID
        step_name: Step that just completed
        status: Status of that step
        artifacts: Current context artifacts
        progress: Job progress at that point

    Returns:
        The stored checkpoint payload
    """
    checkpoint = Checkpoint(
        last_completed_step=step_name,
        last_completed_status=status,
        artifacts=serialize_artifacts(artifacts),
        saved_at=datetime.now(timezone.utc),
        progress=progress,
    )
    payload = checkpoint.model_dump(mode="json")
    await job_store.update_job(job_id, {"checkpoint_state": payload})
    logger.debug(
        "Checkpoint saved",
        extra={"job_id": str(job_id), "step": step_name, "artifact_keys": sorted(payload["artifacts"])}
    )
    return payload


def load_checkpoint(job: Job) -> Optional[Checkpoint]:
    """Parse a job's checkpoint; None when absent or unreadable."""
    if not job.checkpoint_state:
        return None
    try:
        return Checkpoint.model_validate(job.checkpoint_state)
    except PydanticValidationError as e:
        logger.warning("Ignoring unreadable checkpoint", exc_info=e, extra={"job_id": str(job.id)})
        return None


async def clear_checkpoint(job_store: JobStore, job_id: UUID) -> None:
    await job_store.update_job(job_id, {"checkpoint_state": None})


def get_next_step_from_checkpoint(checkpoint: Checkpoint, steps: Sequence[Any]) -> Optional[Any]:
    """
    Step a resumed run should start at.

    An explicit resume marker wins; otherwise it is the step after the last
    completed one. None when the checkpoint covers every step.
    """
    if checkpoint.resume_from is not None:
        for step in steps:
            if step.status == checkpoint.resume_from:
                return step
        return None

    names = [step.name for step in steps]
    if checkpoint.last_completed_step not in names:
        return None
    index = names.index(checkpoint.last_completed_step) + 1
    return steps[index] if index < len(steps) else None
