"""
Single-step retry.

A FAILED job with a checkpoint can be sent back through the queue starting
at one of the late steps, reusing the checkpointed artifacts instead of
regenerating the script, audio and images.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from shared.errors import JobNotFoundError, RetryStepError
from shared.logging import get_logger
from shared.models import JobEvent, JobStatus, JobStep, PIPELINE_STATUSES, StepState
from modules.job_queue.store import JobStore
from modules.pipeline.checkpoint import load_checkpoint
from modules.pipeline.steps import PIPELINE_STEPS

logger = get_logger("pipeline.retry_step")

RETRIABLE_STEPS = (
    JobStatus.IMAGE_GEN,
    JobStatus.BUILD_TIMELINE,
    JobStatus.RENDERING,
    JobStatus.PACKAGING,
)


def _parse_step(step_name: str) -> JobStatus:
    try:
        status = JobStatus(step_name.upper())
    except (ValueError, AttributeError):
        status = None
    if status not in RETRIABLE_STEPS:
        allowed = ", ".join(s.value for s in RETRIABLE_STEPS)
        raise RetryStepError(f"Step {step_name} cannot be retried individually. Retriable steps: {allowed}")
    return status


async def retry_step(
    job_store: JobStore,
    job_id: UUID,
    step_name: str,
    user_id: Optional[UUID] = None
) -> Dict[str, Any]:
    """
    Requeue a failed job to resume at `step_name`.

    Args:
        job_store: Job store
        job_id: Failed job
        step_name: Status name of the step to resume at (IMAGE_GEN, BUILD_TIMELINE, RENDERING, PACKAGING)
        user_id: When given, the job must belong to this user

    Returns:
        {"success", "step_name", "new_status", "checkpoint_preserved"}

    Raises:
        RetryStepError: Step not retriable, job not FAILED, dead-lettered, or no usable checkpoint
        JobNotFoundError: Job missing or owned by another user
    """
    status = _parse_step(step_name)

    job = await job_store.get_job(job_id)
    if job is None or (user_id is not None and job.user_id != user_id):
        raise JobNotFoundError(f"Job {job_id} not found", job_id=job_id)
    if job.status is not JobStatus.FAILED:
        raise RetryStepError(f"Only failed jobs can be retried (status is {job.status.value})", job_id=job_id)
    if job.in_dead_letter_queue:
        raise RetryStepError("Job is in the dead letter queue and must be retried by an operator", job_id=job_id)

    checkpoint = load_checkpoint(job)
    if checkpoint is None:
        raise RetryStepError("No checkpoint available for this job", job_id=job_id)

    # The step before the requested one must already be checkpointed
    completed_index = PIPELINE_STATUSES.index(checkpoint.last_completed_status)
    if PIPELINE_STATUSES.index(status) > completed_index + 1:
        raise RetryStepError(
            f"Cannot retry {status.value}: checkpoint only reaches {checkpoint.last_completed_status.value}",
            job_id=job_id
        )

    checkpoint_state = checkpoint.model_dump(mode="json")
    checkpoint_state["resume_from"] = status.value
    await job_store.update_job(job_id, {
        "status": JobStatus.QUEUED,
        "progress": checkpoint.progress,
        "error_code": None,
        "error_message": None,
        "finished_at": None,
        "claimed_by": None,
        "claimed_at": None,
        "checkpoint_state": checkpoint_state,
    })

    for order, step in enumerate(PIPELINE_STEPS, start=1):
        if PIPELINE_STATUSES.index(step.status) >= PIPELINE_STATUSES.index(status):
            await job_store.upsert_job_step(JobStep(
                job_id=job_id,
                step_name=step.name,
                step_order=order,
                state=StepState.PENDING,
                status_message="Queued for retry",
            ))

    await job_store.add_job_event(JobEvent(
        job_id=job_id,
        stage=JobStatus.QUEUED.value,
        message=f"Retrying from {status.value}",
        meta={"step_name": status.value, "last_completed_step": checkpoint.last_completed_step}
    ))
    logger.info(
        f"Job requeued to retry {status.value}",
        extra={"job_id": str(job_id), "last_completed_step": checkpoint.last_completed_step}
    )
    return {
        "success": True,
        "step_name": status.value,
        "new_status": JobStatus.QUEUED.value,
        "checkpoint_preserved": True,
    }
