"""
Supabase-backed job store.

Row-level reads and writes go through the table builder; the claim is the
`claim_next_job` stored procedure, which selects the oldest eligible QUEUED
row with FOR UPDATE SKIP LOCKED and updates it in the same transaction.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from shared.database import DatabaseClient, make_json_serializable
from shared.errors import JobNotFoundError
from shared.logging import get_logger
from shared.models import (
    ACTIVE_STATUSES,
    Job,
    JobEvent,
    JobStep,
    Project,
    ProjectInput,
)

logger = get_logger("job_queue.supabase_store")


def _first_row(data: Any) -> Optional[Dict[str, Any]]:
    """RPCs and filtered updates may return a list, a dict or nothing."""
    if not data:
        return None
    if isinstance(data, list):
        return data[0] if data else None
    return data


class SupabaseJobStore:
    """JobStore over the Supabase jobs tables."""

    def __init__(self, db: DatabaseClient):
        self.db = db

    async def get_job(self, job_id: UUID) -> Optional[Job]:
        result = await self.db.table("jobs").select("*").eq("id", str(job_id)).limit(1).execute()
        row = _first_row(result.data)
        return Job.model_validate(row) if row else None

    async def get_project(self, project_id: UUID) -> Optional[Project]:
        result = await self.db.table("projects").select("*").eq("id", str(project_id)).limit(1).execute()
        row = _first_row(result.data)
        return Project.model_validate(row) if row else None

    async def list_project_inputs(self, project_id: UUID) -> List[ProjectInput]:
        result = await self.db.table("project_inputs").select("*").eq(
            "project_id", str(project_id)
        ).order("created_at").execute()
        return [ProjectInput.model_validate(row) for row in (result.data or [])]

    async def create_job(self, job: Job) -> Job:
        payload = job.model_dump(mode="json", exclude_none=True)
        result = await self.db.table("jobs").insert(payload).execute()
        row = _first_row(result.data)
        return Job.model_validate(row) if row else job

    async def update_job(self, job_id: UUID, fields: Dict[str, Any]) -> Job:
        result = await self.db.table("jobs").update(
            make_json_serializable(fields)
        ).eq("id", str(job_id)).execute()
        row = _first_row(result.data)
        if row is None:
            raise JobNotFoundError(f"Job {job_id} not found", job_id=job_id)
        return Job.model_validate(row)

    async def update_project(self, project_id: UUID, fields: Dict[str, Any]) -> None:
        await self.db.table("projects").update(
            make_json_serializable(fields)
        ).eq("id", str(project_id)).execute()

    async def claim_next_job(self, worker_id: str, max_active_per_user: int) -> Optional[Job]:
        data = await self.db.rpc("claim_next_job", {
            "worker_name": worker_id,
            "max_active_per_user": max_active_per_user,
        })
        row = _first_row(data)
        return Job.model_validate(row) if row else None

    async def find_stale_jobs(self, claimed_before: datetime) -> List[Job]:
        result = await self.db.table("jobs").select("*").in_(
            "status", list(ACTIVE_STATUSES)
        ).not_is("claimed_by", "null").lt("claimed_at", claimed_before.isoformat()).execute()
        return [Job.model_validate(row) for row in (result.data or [])]

    async def requeue_job(
        self,
        job_id: UUID,
        claimed_by: Optional[str],
        claimed_at: Optional[datetime],
        fields: Dict[str, Any]
    ) -> bool:
        # Only matches if no other worker re-claimed the row since it was read
        query = self.db.table("jobs").update(make_json_serializable(fields)).eq("id", str(job_id))
        if claimed_by is not None:
            query = query.eq("claimed_by", claimed_by)
        if claimed_at is not None:
            query = query.eq("claimed_at", claimed_at.isoformat())
        result = await query.execute()
        return bool(result.data)

    async def add_job_event(self, event: JobEvent) -> None:
        await self.db.table("job_events").insert(
            event.model_dump(mode="json", exclude_none=True)
        ).execute()

    async def list_job_events(self, job_id: UUID) -> List[JobEvent]:
        result = await self.db.table("job_events").select("*").eq(
            "job_id", str(job_id)
        ).order("created_at").execute()
        return [JobEvent.model_validate(row) for row in (result.data or [])]

    async def upsert_job_step(self, step: JobStep) -> None:
        await self.db.table("job_steps").upsert(
            step.model_dump(mode="json"),
            on_conflict="job_id,step_name"
        ).execute()

    async def list_job_steps(self, job_id: UUID) -> List[JobStep]:
        result = await self.db.table("job_steps").select("*").eq(
            "job_id", str(job_id)
        ).order("step_order").execute()
        return [JobStep.model_validate(row) for row in (result.data or [])]

    async def list_dead_letter_jobs(self, limit: int = 50) -> List[Job]:
        result = await self.db.table("jobs").select("*").not_is(
            "dlq_at", "null"
        ).order("dlq_at", desc=True).limit(limit).execute()
        return [Job.model_validate(row) for row in (result.data or [])]
