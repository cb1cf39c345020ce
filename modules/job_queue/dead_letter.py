"""
Dead letter queue.

Jobs that have failed MAX_RETRY_COUNT times stop cycling through the queue
and wait for an operator. There is no separate table: a job is dead-lettered
when `dlq_at` is set.
"""

from datetime import datetime, timezone
from typing import List
from uuid import UUID

from shared.errors import DeadLetterError, JobNotFoundError, ValidationError
from shared.logging import get_logger
from shared.models import Job, JobEvent, JobStatus
from modules.job_queue.store import JobStore

logger = get_logger("job_queue.dead_letter")

MAX_RETRY_COUNT = 3


def should_move_to_dead_letter_queue(retry_count: int) -> bool:
    """True once a job has failed MAX_RETRY_COUNT times."""
    return retry_count >= MAX_RETRY_COUNT


async def move_job_to_dead_letter_queue(job_store: JobStore, job_id: UUID, reason: str) -> Job:
    """
    Park a job in the dead letter queue.

    Args:
        job_store: Job store
        job_id: Job to park
        reason: Underlying failure, kept in `dlq_reason`

    Returns:
        The updated job

    Raises:
        DeadLetterError: If the update cannot be persisted
    """
    now = datetime.now(timezone.utc)
    try:
        job = await job_store.update_job(job_id, {
            "status": JobStatus.FAILED,
            "dlq_at": now,
            "dlq_reason": reason,
            "finished_at": now,
        })
    except Exception as e:
        logger.error(
            "Failed to move job to dead letter queue",
            exc_info=e,
            extra={"job_id": str(job_id), "reason": reason}
        )
        raise DeadLetterError(f"Failed to move job {job_id} to dead letter queue: {e}", job_id=job_id) from e

    logger.error(
        "Job moved to dead letter queue",
        extra={"job_id": str(job_id), "retry_count": job.retry_count, "reason": reason}
    )
    await job_store.add_job_event(JobEvent(
        job_id=job_id,
        stage="DLQ",
        message="Job moved to dead letter queue",
        level="error",
        meta={"reason": reason, "retry_count": job.retry_count}
    ))
    return job


async def get_dead_letter_queue_jobs(job_store: JobStore, limit: int = 50) -> List[Job]:
    """Dead-lettered jobs, newest first."""
    return await job_store.list_dead_letter_jobs(limit=limit)


async def retry_job_from_dead_letter_queue(job_store: JobStore, job_id: UUID) -> Job:
    """
    Return a dead-lettered job to the queue for a fresh run.

    The job restarts from the first step: retry count, failure fields,
    timing, claim and checkpoint are all cleared. Credits are not
    re-reserved.

    Args:
        job_store: Job store
        job_id: Dead-lettered job

    Returns:
        The requeued job

    Raises:
        JobNotFoundError: If the job does not exist
        ValidationError: If the job is not in the dead letter queue
    """
    job = await job_store.get_job(job_id)
    if job is None:
        raise JobNotFoundError(f"Job {job_id} not found", job_id=job_id)
    if not job.in_dead_letter_queue:
        raise ValidationError(f"Job {job_id} is not in the dead letter queue", job_id=job_id)

    job = await job_store.update_job(job_id, {
        "status": JobStatus.QUEUED,
        "progress": 0,
        "retry_count": 0,
        "dlq_at": None,
        "dlq_reason": None,
        "error_code": None,
        "error_message": None,
        "started_at": None,
        "finished_at": None,
        "claimed_by": None,
        "claimed_at": None,
        "checkpoint_state": None,
    })
    await job_store.add_job_event(JobEvent(
        job_id=job_id,
        stage=JobStatus.QUEUED.value,
        message="Job retried from dead letter queue"
    ))
    logger.info("Job retried from dead letter queue", extra={"job_id": str(job_id)})
    return job
