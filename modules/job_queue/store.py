"""
Job store interface.

`JobStore` is everything the runner, the queue and the API layer need from
the jobs / projects / job_events / job_steps tables.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol
from uuid import UUID

from shared.models import Job, JobEvent, JobStep, Project, ProjectInput


class JobStore(Protocol):
    """Persistence for jobs and the rows hanging off them."""

    async def get_job(self, job_id: UUID) -> Optional[Job]: ...

    async def get_project(self, project_id: UUID) -> Optional[Project]: ...

    async def list_project_inputs(self, project_id: UUID) -> List[ProjectInput]: ...

    async def create_job(self, job: Job) -> Job: ...

    async def update_job(self, job_id: UUID, fields: Dict[str, Any]) -> Job: ...

    async def update_project(self, project_id: UUID, fields: Dict[str, Any]) -> None: ...

    async def claim_next_job(self, worker_id: str, max_active_per_user: int) -> Optional[Job]: ...

    async def find_stale_jobs(self, claimed_before: datetime) -> List[Job]: ...

    async def requeue_job(
        self,
        job_id: UUID,
        claimed_by: Optional[str],
        claimed_at: Optional[datetime],
        fields: Dict[str, Any]
    ) -> bool: ...

    async def add_job_event(self, event: JobEvent) -> None: ...

    async def list_job_events(self, job_id: UUID) -> List[JobEvent]: ...

    async def upsert_job_step(self, step: JobStep) -> None: ...

    async def list_job_steps(self, job_id: UUID) -> List[JobStep]: ...

    async def list_dead_letter_jobs(self, limit: int = 50) -> List[Job]: ...
