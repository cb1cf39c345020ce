"""
Job submission.

Credits are reserved before the job row exists, so a job in the queue
always has its reservation behind it.
"""

from uuid import UUID, uuid4

from shared.errors import InsufficientCreditsError, ValidationError
from shared.logging import get_logger
from shared.models import Job, JobEvent, JobStatus
from modules.credit_ledger import CreditLedger
from modules.job_queue.store import JobStore

logger = get_logger("job_queue.submission")


async def submit_job(
    job_store: JobStore,
    credit_ledger: CreditLedger,
    user_id: UUID,
    project_id: UUID,
    credits: int
) -> Job:
    """
    Reserve credits and enqueue a job for a project.

    Args:
        job_store: Job store
        credit_ledger: Credit ledger
        user_id: Submitting user
        project_id: Project to render
        credits: Credits to reserve

    Returns:
        The QUEUED job

    Raises:
        ValidationError: If the project does not exist or belongs to another user
        InsufficientCreditsError: If the balance cannot cover `credits` (no job is created)
    """
    project = await job_store.get_project(project_id)
    if project is None or project.user_id != user_id:
        raise ValidationError(f"Project {project_id} not found")

    job_id = uuid4()
    if not await credit_ledger.reserve_credits(user_id, job_id, credits):
        available = await credit_ledger.get_balance(user_id)
        raise InsufficientCreditsError(
            f"Insufficient credits: {credits} required, {available} available",
            user_id=user_id,
            required=credits,
            available=available
        )

    try:
        job = await job_store.create_job(Job(
            id=job_id,
            project_id=project_id,
            user_id=user_id,
            status=JobStatus.QUEUED,
            cost_credits_reserved=credits,
        ))
    except Exception as e:
        logger.error("Failed to create job, releasing reservation", exc_info=e, extra={"job_id": str(job_id)})
        await credit_ledger.release_job_credits(job_id)
        raise

    await job_store.update_project(project_id, {"status": "generating"})
    await job_store.add_job_event(JobEvent(
        job_id=job.id,
        stage=JobStatus.QUEUED.value,
        message="Job queued",
        meta={"reserved_credits": credits}
    ))
    logger.info(
        "Job submitted",
        extra={"job_id": str(job.id), "user_id": str(user_id), "project_id": str(project_id), "credits": credits}
    )
    return job
