"""
Pipeline runner.

Drives one claimed job through the nine steps: persists status and progress
before each step, merges artifacts after each success, and settles credits
exactly once when the run ends (finalize on success; release or finalize
at the full reservation on failure, per the refund policy).
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence
from uuid import UUID

from shared.errors import JobNotFoundError
from shared.logging import get_logger, set_job_id, set_step_name
from shared.models import Job, JobEvent, JobStatus, JobStep, Project, StepState
from modules.credit_ledger import CreditLedger
from modules.job_queue.dead_letter import move_job_to_dead_letter_queue, should_move_to_dead_letter_queue
from modules.job_queue.store import JobStore
from modules.pipeline.checkpoint import (
    can_retry_from_checkpoint,
    clear_checkpoint,
    get_next_step_from_checkpoint,
    load_checkpoint,
    save_checkpoint,
)
from modules.pipeline.context import PipelineContext, add_artifact, create_pipeline_context, restore_artifacts
from modules.pipeline.cost import ComputeFinalCost, clamp_final_cost, per_minute_final_cost
from modules.pipeline.refund import should_refund_credits
from modules.pipeline.steps import PIPELINE_STEPS, PipelineStep

logger = get_logger("pipeline.runner")

JOB_STATUS_CACHE_KEY = "job_status:{job_id}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Failure:
    """The first failure of a run. Later crashes while settling it keep these values."""
    code: str
    message: str
    status: JobStatus
    progress: int
    refund_eligible: bool
    retry_count: int


@dataclass
class _RunState:
    # Credits the ledger has actually settled for this job; None while the reservation is held
    charged: Optional[int] = None
    failure: Optional[_Failure] = None


class PipelineRunner:
    """Runs claimed jobs. One instance is shared by all of a worker's tasks."""

    def __init__(
        self,
        job_store: JobStore,
        credit_ledger: CreditLedger,
        services: Optional[Any] = None,
        steps: Optional[Sequence[PipelineStep]] = None,
        compute_final_cost: Optional[ComputeFinalCost] = None,
        cache: Optional[Any] = None
    ):
        """
        Args:
            job_store: Job persistence
            credit_ledger: Ledger used to settle the job's reservation
            services: PipelineServices handed to the steps
            steps: Step sequence (defaults to PIPELINE_STEPS)
            compute_final_cost: `(project, artifacts) -> credits`, clamped to the reservation
            cache: RedisClient whose job-status entries are invalidated on every transition
        """
        self.job_store = job_store
        self.credit_ledger = credit_ledger
        self.services = services
        self.steps: List[PipelineStep] = list(steps) if steps is not None else list(PIPELINE_STEPS)
        self.compute_final_cost = compute_final_cost or per_minute_final_cost
        self.cache = cache

    async def run(self, job_id: UUID) -> Job:
        """
        Run a claimed job to READY or FAILED.

        Args:
            job_id: Job to run

        Returns:
            The job in its terminal state

        Raises:
            JobNotFoundError: If the job does not exist
        """
        set_job_id(job_id)
        try:
            job = await self.job_store.get_job(job_id)
            if job is None:
                raise JobNotFoundError(f"Job {job_id} not found", job_id=job_id)

            logger.info(
                "Pipeline started",
                extra={"job_id": str(job_id), "status": job.status.value, "retry_count": job.retry_count}
            )
            # cost_credits_final is only written after the ledger call that settled it
            state = _RunState(charged=job.cost_credits_final)
            try:
                return await self._execute(job, state)
            except Exception as e:
                logger.error("Pipeline crashed", exc_info=e, extra={"job_id": str(job_id)})
                latest = await self.job_store.get_job(job_id) or job
                return await self._fail(latest, state, "ERR_UNKNOWN", str(e) or type(e).__name__, refund=True)
        finally:
            set_job_id(None)
            set_step_name(None)

    async def _execute(self, job: Job, state: _RunState) -> Job:
        try:
            project = await self.job_store.get_project(job.project_id)
        except Exception as e:
            logger.error("Failed to load project", exc_info=e, extra={"job_id": str(job.id)})
            return await self._fail(job, state, "ERR_INPUT_FETCH", f"Failed to load project: {e}", refund=True)
        if project is None:
            return await self._fail(job, state, "ERR_INPUT_FETCH", f"Project {job.project_id} not found", refund=True)

        ctx = create_pipeline_context(job, project, self.services)
        for step in self._steps_to_run(job, ctx):
            set_step_name(step.name)
            started_at = _now()
            job = await self._start_step(job, step, started_at)
            ctx.job = job

            result = await step.run(ctx)
            if not result.success:
                error = result.error
                code = error.code if error and error.code else step.error_code
                message = error.message if error else f"{step.name} failed"
                await self._record_step(job, step, StepState.FAILED, started_at, error_message=message)
                logger.warning(
                    f"Step {step.name} failed",
                    extra={"job_id": str(job.id), "step": step.name, "error_code": code, "error": message}
                )
                return await self._fail(job, state, code, message)

            for key, value in result.data.items():
                add_artifact(ctx, key, value)
            await self._record_step(job, step, StepState.SUCCEEDED, started_at)

            if can_retry_from_checkpoint(step.status):
                await save_checkpoint(self.job_store, job.id, step.name, step.status, ctx.artifacts, job.progress)

        set_step_name(None)
        return await self._complete(job, project, ctx, state)

    def _steps_to_run(self, job: Job, ctx: PipelineContext) -> List[PipelineStep]:
        """All steps, or the tail after a checkpoint with its artifacts restored."""
        checkpoint = load_checkpoint(job)
        if checkpoint is None:
            return self.steps

        start = get_next_step_from_checkpoint(checkpoint, self.steps)
        ctx.artifacts.update(restore_artifacts(checkpoint.artifacts))
        if start is None:
            logger.info("Checkpoint covers every step", extra={"job_id": str(job.id)})
            return []

        logger.info(
            f"Resuming from checkpoint at {start.name}",
            extra={
                "job_id": str(job.id),
                "last_completed_step": checkpoint.last_completed_step,
                "artifact_keys": sorted(ctx.artifacts),
            }
        )
        return self.steps[self.steps.index(start):]

    async def _start_step(self, job: Job, step: PipelineStep, started_at: datetime) -> Job:
        # Progress never moves backwards, even when resuming
        progress = max(job.progress, step.progress)
        job = await self.job_store.update_job(job.id, {"status": step.status, "progress": progress})
        await self._invalidate_cache(job.id)
        await self.job_store.add_job_event(JobEvent(
            job_id=job.id,
            stage=step.status.value,
            message=f"Starting {step.name}",
            meta={"step": step.name, "progress": progress}
        ))
        await self._record_step(job, step, StepState.STARTED, started_at)
        return job

    async def _record_step(
        self,
        job: Job,
        step: PipelineStep,
        state: StepState,
        started_at: datetime,
        error_message: Optional[str] = None
    ) -> None:
        finished = state in (StepState.SUCCEEDED, StepState.FAILED)
        await self.job_store.upsert_job_step(JobStep(
            job_id=job.id,
            step_name=step.name,
            step_order=self.steps.index(step) + 1,
            state=state,
            progress_pct=100 if state is StepState.SUCCEEDED else 0,
            status_message=f"{step.name} {state.value}",
            error_message=error_message,
            started_at=started_at,
            finished_at=_now() if finished else None,
        ))

    async def _complete(self, job: Job, project: Project, ctx: PipelineContext, state: _RunState) -> Job:
        reserved = job.cost_credits_reserved
        if state.charged is None:
            final_cost = clamp_final_cost(self.compute_final_cost(project, ctx.artifacts), reserved)
            await self.credit_ledger.finalize_job_credits(job.user_id, job.id, final_cost, reserved=reserved)
            state.charged = final_cost
        else:
            # Settled when an earlier attempt of this job failed
            final_cost = state.charged

        job = await self.job_store.update_job(job.id, {
            "status": JobStatus.READY,
            "progress": 100,
            "finished_at": _now(),
            "cost_credits_final": final_cost,
            "error_code": None,
            "error_message": None,
        })
        await self._invalidate_cache(job.id)
        await self.job_store.update_project(project.id, {
            "status": "ready",
            "timeline_path": ctx.artifacts.get("timeline_path"),
        })
        await clear_checkpoint(self.job_store, job.id)
        await self.job_store.add_job_event(JobEvent(
            job_id=job.id,
            stage=JobStatus.READY.value,
            message="Video ready",
            meta={"final_cost": final_cost, "reserved_credits": reserved}
        ))
        logger.info(
            "Pipeline completed",
            extra={"job_id": str(job.id), "final_cost": final_cost, "reserved_credits": reserved}
        )
        return job

    async def _fail(
        self,
        job: Job,
        state: _RunState,
        code: str,
        message: str,
        refund: Optional[bool] = None
    ) -> Job:
        """
        Settle the job's credits, then mark it FAILED.

        Safe to call again from the crash handler when an earlier call raised:
        the first failure's code, refund decision and retry count are kept, and
        the ledger is only called while the reservation is still held.

        Args:
            job: Job as of the failure (status and progress decide the refund)
            state: What this run has already settled
            code: Error code stored on the job
            message: Human-readable error
            refund: Force (True) or suppress (False) the refund; None applies the policy
        """
        if state.failure is None:
            state.failure = _Failure(
                code=code,
                message=message,
                status=job.status,
                progress=job.progress,
                refund_eligible=should_refund_credits(job.status, job.progress) if refund is None else refund,
                retry_count=job.retry_count + 1,
            )
        failure = state.failure
        reserved = job.cost_credits_reserved

        if state.charged is not None:
            logger.info("Credits already settled", extra={"job_id": str(job.id), "charged": state.charged})
        elif failure.refund_eligible:
            await self.credit_ledger.release_job_credits(job.id)
            state.charged = 0
        else:
            await self.credit_ledger.finalize_job_credits(job.user_id, job.id, reserved, reserved=reserved)
            state.charged = reserved

        failed = await self.job_store.update_job(job.id, {
            "status": JobStatus.FAILED,
            "error_code": failure.code,
            "error_message": failure.message,
            "finished_at": _now(),
            "retry_count": failure.retry_count,
            "cost_credits_final": state.charged,
        })
        await self._invalidate_cache(job.id)
        await self.job_store.update_project(job.project_id, {"status": "failed"})
        await self.job_store.add_job_event(JobEvent(
            job_id=job.id,
            stage=JobStatus.FAILED.value,
            message=failure.message,
            level="error",
            meta={
                "error_code": failure.code,
                "failed_status": failure.status.value,
                "progress": failure.progress,
                "refund_eligible": failure.refund_eligible,
                "reserved_credits": reserved,
                "charged_credits": state.charged,
                "retry_count": failure.retry_count,
            }
        ))
        logger.error(
            "Job failed",
            extra={
                "job_id": str(job.id),
                "error_code": failure.code,
                "error": failure.message,
                "failed_status": failure.status.value,
                "progress": failure.progress,
                "refund_eligible": failure.refund_eligible,
                "charged": state.charged,
            }
        )

        if should_move_to_dead_letter_queue(failure.retry_count):
            failed = await move_job_to_dead_letter_queue(
                self.job_store,
                job.id,
                reason=f"{failure.code}: {failure.message} (failed {failure.retry_count} times)"
            )
            await self._invalidate_cache(job.id)
        return failed

    async def _invalidate_cache(self, job_id: UUID) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.delete(JOB_STATUS_CACHE_KEY.format(job_id=job_id))
        except Exception as e:
            logger.warning("Failed to invalidate job cache", exc_info=e, extra={"job_id": str(job_id)})
