"""
Job claiming and stale-job recovery.

Workers poll `claim_next_job`; the store makes the claim atomic so two
workers never receive the same row. A worker that dies mid-run leaves its
job claimed, and `requeue_stale_jobs` puts such jobs back in the queue
(or in the dead letter queue once they have failed too often).
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from shared.logging import get_logger
from shared.models import Job, JobEvent, JobStatus
from modules.credit_ledger import CreditLedger
from modules.job_queue.dead_letter import move_job_to_dead_letter_queue, should_move_to_dead_letter_queue
from modules.job_queue.store import JobStore

logger = get_logger("job_queue.claim")

STALE_ERROR_CODE = "ERR_UNKNOWN"
STALE_ERROR_MESSAGE = "Worker stopped responding"


async def claim_next_job(job_store: JobStore, worker_id: str, max_active_per_user: int = 1) -> Optional[Job]:
    """
    Claim the oldest QUEUED job whose user is under the active-job cap.

    Args:
        job_store: Job store
        worker_id: Claiming worker, stored in `claimed_by`
        max_active_per_user: Maximum non-terminal claimed jobs per user

    Returns:
        The claimed job (already moved to its first pipeline status), or None
    """
    job = await job_store.claim_next_job(worker_id, max_active_per_user)
    if job is None:
        return None

    await job_store.add_job_event(JobEvent(
        job_id=job.id,
        stage=job.status.value,
        message=f"Claimed by {worker_id}",
        meta={"worker_id": worker_id, "retry_count": job.retry_count}
    ))
    logger.info(
        "Job claimed",
        extra={"job_id": str(job.id), "worker_id": worker_id, "status": job.status.value}
    )
    return job


async def requeue_stale_jobs(
    job_store: JobStore,
    credit_ledger: CreditLedger,
    stale_minutes: int = 15
) -> Dict[str, int]:
    """
    Recover jobs whose worker has gone away.

    Every non-terminal job claimed more than `stale_minutes` ago is released
    back to QUEUED with its retry count incremented. A job whose new count
    reaches the dead letter threshold is failed and dead-lettered instead,
    and its reservation released. Each update only applies if the claim is
    unchanged since the sweep read it.

    Args:
        job_store: Job store
        credit_ledger: Ledger used to release dead-lettered reservations
        stale_minutes: Claim age after which a job counts as abandoned

    Returns:
        {"requeued": n, "dead_lettered": m}
    """
    now = datetime.now(timezone.utc)
    stale = await job_store.find_stale_jobs(now - timedelta(minutes=stale_minutes))
    counts = {"requeued": 0, "dead_lettered": 0}

    for job in stale:
        retry_count = job.retry_count + 1
        if should_move_to_dead_letter_queue(retry_count):
            fields = {
                "status": JobStatus.FAILED,
                "retry_count": retry_count,
                "error_code": STALE_ERROR_CODE,
                "error_message": STALE_ERROR_MESSAGE,
                "finished_at": now,
                "claimed_by": None,
                "claimed_at": None,
            }
            if job.cost_credits_final is None:
                fields["cost_credits_final"] = 0
            if not await job_store.requeue_job(job.id, job.claimed_by, job.claimed_at, fields):
                continue
            await move_job_to_dead_letter_queue(
                job_store,
                job.id,
                reason=f"{STALE_ERROR_MESSAGE} {retry_count} times (last worker {job.claimed_by})"
            )
            if job.cost_credits_final is None:
                await credit_ledger.release_job_credits(job.id)
            counts["dead_lettered"] += 1
            continue

        requeued = await job_store.requeue_job(job.id, job.claimed_by, job.claimed_at, {
            "status": JobStatus.QUEUED,
            "retry_count": retry_count,
            "claimed_by": None,
            "claimed_at": None,
        })
        if not requeued:
            logger.debug("Stale job was re-claimed before requeue", extra={"job_id": str(job.id)})
            continue

        await job_store.add_job_event(JobEvent(
            job_id=job.id,
            stage=JobStatus.QUEUED.value,
            message="Requeued after worker timeout",
            level="warning",
            meta={"previous_worker": job.claimed_by, "failed_status": job.status.value, "retry_count": retry_count}
        ))
        logger.warning(
            "Stale job requeued",
            extra={"job_id": str(job.id), "previous_worker": job.claimed_by, "retry_count": retry_count}
        )
        counts["requeued"] += 1

    if stale:
        logger.info("Stale job sweep finished", extra={"stale": len(stale), **counts})
    return counts
