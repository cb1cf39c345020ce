"""
Pipeline worker process.

Claims queued jobs from the database and runs the pipeline for each one,
with a periodic sweep that requeues jobs abandoned by crashed workers.
"""

import asyncio
import time
from typing import Optional, Set
from uuid import UUID
from shared.config import settings
from shared.database import DatabaseClient
from shared.logging import get_logger
from shared.redis_client import RedisClient
from shared.storage import StorageClient
from modules.credit_ledger import CreditLedger, SupabaseCreditStore
from modules.drafts import DraftService, SupabaseDraftStore
from modules.job_queue import SupabaseJobStore, claim_next_job, requeue_stale_jobs
from modules.pipeline import PipelineRunner
from modules.pipeline.providers import build_pipeline_services, check_ffmpeg_available

logger = get_logger(__name__)

# Max concurrent pipeline runs per worker process
semaphore = asyncio.Semaphore(settings.max_concurrent_jobs)


async def process_job_with_limit(runner: PipelineRunner, job_id: UUID) -> None:
    """
    Run one claimed job and give its semaphore slot back.

    The slot is acquired by the loop before claiming, so a job is never
    claimed without capacity to run it.
    """
    try:
        logger.info("Processing job (semaphore acquired)", extra={"job_id": str(job_id)})
        job = await runner.run(job_id)
        logger.info(
            "Job completed (semaphore released)",
            extra={"job_id": str(job_id), "status": job.status.value}
        )
    except Exception as e:
        logger.error("Job failed (semaphore released)", exc_info=e, extra={"job_id": str(job_id)})
    finally:
        semaphore.release()


async def worker_loop(
    job_store,
    runner: PipelineRunner,
    worker_id: Optional[str] = None,
    poll_interval: Optional[float] = None,
    max_active_per_user: Optional[int] = None
) -> None:
    """
    Poll for queued jobs until cancelled.

    Args:
        job_store: Job store to claim from
        runner: Pipeline runner
        worker_id: Identity written to claimed_by
        poll_interval: Seconds to wait when the queue is empty
        max_active_per_user: Per-user cap on running jobs
    """
    worker_id = worker_id or settings.resolved_worker_id
    poll_interval = settings.poll_interval_seconds if poll_interval is None else poll_interval
    max_active_per_user = max_active_per_user or settings.max_active_jobs_per_user
    in_flight: Set[asyncio.Task] = set()

    logger.info("Worker started", extra={"worker_id": worker_id, "max_concurrent_jobs": settings.max_concurrent_jobs})

    while True:
        try:
            logger.debug("Acquiring semaphore for job", extra={"available_slots": semaphore._value})
            await semaphore.acquire()
            try:
                job = await claim_next_job(job_store, worker_id, max_active_per_user)
            except BaseException:
                semaphore.release()
                raise

            if job is None:
                semaphore.release()
                await asyncio.sleep(poll_interval)
                continue

            task = asyncio.create_task(process_job_with_limit(runner, job.id))
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)

        except asyncio.CancelledError:
            logger.info("Worker loop cancelled", extra={"in_flight": len(in_flight)})
            pending = list(in_flight)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            break
        except Exception as e:
            logger.error("Error in worker loop", exc_info=e, extra={"worker_id": worker_id})
            await asyncio.sleep(5)  # Wait before retrying


async def maintenance_loop(
    job_store,
    credit_ledger: CreditLedger,
    draft_service: Optional[DraftService] = None,
    sweep_interval: Optional[float] = None,
    cleanup_interval: Optional[float] = None,
    stale_minutes: Optional[int] = None
) -> None:
    """
    Requeue stale jobs on every tick; sweep expired drafts less often.
    """
    sweep_interval = settings.stale_sweep_interval_seconds if sweep_interval is None else sweep_interval
    cleanup_interval = settings.draft_cleanup_interval_seconds if cleanup_interval is None else cleanup_interval
    stale_minutes = stale_minutes or settings.stale_job_minutes
    last_cleanup: Optional[float] = None

    while True:
        try:
            counts = await requeue_stale_jobs(job_store, credit_ledger, stale_minutes=stale_minutes)
            if counts["requeued"] or counts["dead_lettered"]:
                logger.info("Stale job sweep finished", extra=counts)

            now = time.monotonic()
            if draft_service is not None and (last_cleanup is None or now - last_cleanup >= cleanup_interval):
                await draft_service.cleanup_expired_drafts()
                last_cleanup = now

            await asyncio.sleep(sweep_interval)
        except asyncio.CancelledError:
            logger.info("Maintenance loop cancelled")
            break
        except Exception as e:
            logger.error("Error in maintenance loop", exc_info=e)
            await asyncio.sleep(sweep_interval)


async def main():
    """Main entry point for worker."""
    if not check_ffmpeg_available():
        logger.warning("ffmpeg not found on PATH; render steps will fail")

    db = DatabaseClient()
    cache = RedisClient()
    job_store = SupabaseJobStore(db)
    credit_ledger = CreditLedger(SupabaseCreditStore(db))
    draft_service = DraftService(SupabaseDraftStore(db))
    runner = PipelineRunner(
        job_store,
        credit_ledger,
        services=build_pipeline_services(StorageClient(db.client), job_store),
        cache=cache
    )

    try:
        await asyncio.gather(
            worker_loop(job_store, runner),
            maintenance_loop(job_store, credit_ledger, draft_service),
        )
    except KeyboardInterrupt:
        logger.info("Worker stopped by user")
    except Exception as e:
        logger.error("Worker crashed", exc_info=e)
        raise
    finally:
        await cache.close()


def run() -> None:
    """Console entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
