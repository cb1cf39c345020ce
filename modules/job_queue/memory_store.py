"""
In-memory job store.

Same semantics as the Supabase store, guarded by one asyncio.Lock. Used by
tests and by single-process local runs.
"""

import asyncio
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from shared.errors import JobNotFoundError
from shared.logging import get_logger
from shared.models import Job, JobEvent, JobStatus, JobStep, Project, ProjectInput

logger = get_logger("job_queue.memory_store")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryJobStore:
    """Process-local JobStore."""

    def __init__(self):
        self._jobs: Dict[UUID, Job] = {}
        self._projects: Dict[UUID, Project] = {}
        self._inputs: Dict[UUID, List[ProjectInput]] = {}
        self._events: List[JobEvent] = []
        self._steps: Dict[tuple, JobStep] = {}
        self._lock = asyncio.Lock()

    # Seeding helpers

    def add_project(self, project: Project) -> Project:
        self._projects[project.id] = project
        return project

    def add_project_input(self, project_input: ProjectInput) -> ProjectInput:
        self._inputs.setdefault(project_input.project_id, []).append(project_input)
        return project_input

    @property
    def jobs(self) -> List[Job]:
        return list(self._jobs.values())

    @property
    def events(self) -> List[JobEvent]:
        return list(self._events)

    # JobStore

    async def get_job(self, job_id: UUID) -> Optional[Job]:
        return self._jobs.get(job_id)

    async def get_project(self, project_id: UUID) -> Optional[Project]:
        return self._projects.get(project_id)

    async def list_project_inputs(self, project_id: UUID) -> List[ProjectInput]:
        return list(self._inputs.get(project_id, []))

    async def create_job(self, job: Job) -> Job:
        async with self._lock:
            now = _now()
            job = job.model_copy(update={
                "created_at": job.created_at or now,
                "updated_at": now,
            })
            self._jobs[job.id] = job
            return job

    async def update_job(self, job_id: UUID, fields: Dict[str, Any]) -> Job:
        async with self._lock:
            return self._apply(job_id, fields)

    def _apply(self, job_id: UUID, fields: Dict[str, Any]) -> Job:
        current = self._jobs.get(job_id)
        if current is None:
            raise JobNotFoundError(f"Job {job_id} not found", job_id=job_id)
        data = current.model_dump()
        data.update(fields)
        data["updated_at"] = _now()
        updated = Job.model_validate(data)
        self._jobs[job_id] = updated
        return updated

    async def update_project(self, project_id: UUID, fields: Dict[str, Any]) -> None:
        async with self._lock:
            project = self._projects.get(project_id)
            if project is None:
                logger.warning("Project not found for update", extra={"project_id": str(project_id)})
                return
            data = project.model_dump()
            data.update(fields)
            data["updated_at"] = _now()
            self._projects[project_id] = Project.model_validate(data)

    async def claim_next_job(self, worker_id: str, max_active_per_user: int) -> Optional[Job]:
        async with self._lock:
            active = Counter(j.user_id for j in self._jobs.values() if j.status.is_active)
            queued = sorted(
                (j for j in self._jobs.values() if j.status is JobStatus.QUEUED),
                key=lambda j: j.created_at or _now()
            )
            for job in queued:
                if active[job.user_id] >= max_active_per_user:
                    continue
                resume_from = (job.checkpoint_state or {}).get("resume_from")
                now = _now()
                return self._apply(job.id, {
                    "status": JobStatus(resume_from) if resume_from else JobStatus.SCRIPTING,
                    "claimed_by": worker_id,
                    "claimed_at": now,
                    "started_at": job.started_at or now,
                    "progress": max(job.progress, 1),
                })
            return None

    async def find_stale_jobs(self, claimed_before: datetime) -> List[Job]:
        return [
            j for j in self._jobs.values()
            if j.status.is_active
            and j.claimed_by is not None
            and j.claimed_at is not None
            and j.claimed_at < claimed_before
        ]

    async def requeue_job(
        self,
        job_id: UUID,
        claimed_by: Optional[str],
        claimed_at: Optional[datetime],
        fields: Dict[str, Any]
    ) -> bool:
        async with self._lock:
            current = self._jobs.get(job_id)
            if current is None or current.claimed_by != claimed_by or current.claimed_at != claimed_at:
                return False
            self._apply(job_id, fields)
            return True

    async def add_job_event(self, event: JobEvent) -> None:
        self._events.append(event.model_copy(update={"created_at": event.created_at or _now()}))

    async def list_job_events(self, job_id: UUID) -> List[JobEvent]:
        return [e for e in self._events if e.job_id == job_id]

    async def upsert_job_step(self, step: JobStep) -> None:
        self._steps[(step.job_id, step.step_name)] = step

    async def list_job_steps(self, job_id: UUID) -> List[JobStep]:
        steps = [s for (jid, _), s in self._steps.items() if jid == job_id]
        return sorted(steps, key=lambda s: s.step_order)

    async def list_dead_letter_jobs(self, limit: int = 50) -> List[Job]:
        dead = [j for j in self._jobs.values() if j.dlq_at is not None]
        dead.sort(key=lambda j: j.dlq_at, reverse=True)
        return dead[:limit]
