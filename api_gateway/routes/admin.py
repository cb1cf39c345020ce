"""
Admin endpoints.

Dead letter queue inspection and operator retry.
"""

from fastapi import APIRouter, Path, Query, Depends, HTTPException, status
from shared.errors import JobNotFoundError, ValidationError
from shared.logging import get_logger
from modules.job_queue import get_dead_letter_queue_jobs, retry_job_from_dead_letter_queue
from modules.pipeline import JOB_STATUS_CACHE_KEY
from api_gateway.dependencies import get_cache, get_job_store, parse_uuid, require_admin

logger = get_logger(__name__)

router = APIRouter()

_DLQ_FIELDS = {
    "id", "project_id", "user_id", "status", "progress", "retry_count",
    "error_code", "error_message", "dlq_at", "dlq_reason", "created_at",
}


@router.get("/admin/dlq")
async def list_dead_letter_jobs(
    limit: int = Query(50, ge=1, le=200),
    admin_user: dict = Depends(require_admin),
    job_store=Depends(get_job_store)
):
    """Dead-lettered jobs, newest first."""
    jobs = await get_dead_letter_queue_jobs(job_store, limit=limit)
    return {
        "jobs": [job.model_dump(mode="json", include=_DLQ_FIELDS) for job in jobs],
        "count": len(jobs),
    }


@router.post("/admin/dlq/{job_id}/retry")
async def retry_dead_letter_job(
    job_id: str = Path(...),
    admin_user: dict = Depends(require_admin),
    job_store=Depends(get_job_store),
    cache=Depends(get_cache)
):
    """
    Return a dead-lettered job to the queue with a fresh retry budget.

    The original reservation is reused; no new credits are held.
    """
    try:
        job = await retry_job_from_dead_letter_queue(job_store, parse_uuid(job_id))
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if cache is not None:
        try:
            await cache.delete(JOB_STATUS_CACHE_KEY.format(job_id=job_id))
        except Exception as e:
            logger.warning("Failed to invalidate job cache", exc_info=e, extra={"job_id": job_id})

    logger.info("Dead letter job retried by admin", extra={"job_id": job_id, "admin_id": admin_user["user_id"]})
    return {"success": True, "job_id": str(job.id), "status": job.status.value}
