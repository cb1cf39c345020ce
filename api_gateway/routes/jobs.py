"""
Job endpoints.

Job status polling and single-step retry.
"""

from fastapi import APIRouter, Path, Depends, HTTPException, status
from pydantic import BaseModel
from shared.errors import JobNotFoundError, RetryStepError
from shared.logging import get_logger
from shared.models import Job
from modules.pipeline import JOB_STATUS_CACHE_KEY, retry_step
from api_gateway.dependencies import (
    get_cache,
    get_current_user,
    get_job_store,
    parse_uuid,
    verify_job_ownership,
)

logger = get_logger(__name__)

router = APIRouter()

JOB_STATUS_CACHE_TTL_SECONDS = 30


class RetryStepRequest(BaseModel):
    step_name: str


async def _job_status_payload(job: Job, job_store) -> dict:
    steps = await job_store.list_job_steps(job.id)
    return {
        "job_id": str(job.id),
        "user_id": str(job.user_id),
        "status": job.status.value,
        "progress": job.progress,
        "error_code": job.error_code,
        "error_message": job.error_message,
        "job_steps": [step.model_dump(mode="json", exclude={"job_id"}) for step in steps],
    }


@router.get("/jobs/{job_id}")
async def get_job_status(
    job_id: str = Path(...),
    current_user: dict = Depends(get_current_user),
    job_store=Depends(get_job_store),
    cache=Depends(get_cache)
):
    """
    Get job status for polling clients.

    Served from Redis when a fresh entry exists for the caller, otherwise
    loaded from the database and cached for 30 seconds.
    """
    cache_key = JOB_STATUS_CACHE_KEY.format(job_id=job_id)
    if cache is not None:
        try:
            cached = await cache.get_json(cache_key)
            if cached and cached.get("user_id") == current_user["user_id"]:
                logger.debug("Job status retrieved from cache", extra={"job_id": job_id})
                return cached
        except Exception as e:
            logger.warning("Failed to get job status from cache", exc_info=e)

    job = await verify_job_ownership(job_id, current_user, job_store)
    payload = await _job_status_payload(job, job_store)

    # Only the owner's view is cached; the cache check above compares user_id
    if cache is not None and payload["user_id"] == current_user["user_id"]:
        try:
            await cache.set_json(cache_key, payload, ttl=JOB_STATUS_CACHE_TTL_SECONDS)
        except Exception as e:
            logger.warning("Failed to cache job status", exc_info=e, extra={"job_id": job_id})

    return payload


@router.post("/jobs/{job_id}/retry-step")
async def retry_job_step(
    body: RetryStepRequest,
    job_id: str = Path(...),
    current_user: dict = Depends(get_current_user),
    job_store=Depends(get_job_store),
    cache=Depends(get_cache)
):
    """
    Resume a failed job at a single step from its checkpoint.

    Returns:
        {"success", "step_name", "new_status", "checkpoint_preserved"}
    """
    job_uuid = parse_uuid(job_id)
    try:
        result = await retry_step(
            job_store,
            job_uuid,
            body.step_name,
            user_id=parse_uuid(current_user["user_id"], "user ID")
        )
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    except RetryStepError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if cache is not None:
        try:
            await cache.delete(JOB_STATUS_CACHE_KEY.format(job_id=job_id))
        except Exception as e:
            logger.warning("Failed to invalidate job cache", exc_info=e, extra={"job_id": job_id})

    logger.info(
        "Step retry requested",
        extra={"job_id": job_id, "step_name": body.step_name, "user_id": current_user["user_id"]}
    )
    return result
