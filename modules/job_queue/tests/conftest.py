"""
Fixtures for job queue tests.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from shared.models import Job, JobStatus, Project
from modules.credit_ledger import CreditLedger, InMemoryCreditStore
from modules.job_queue import InMemoryJobStore


@pytest.fixture
def job_store():
    return InMemoryJobStore()


@pytest.fixture
def ledger():
    return CreditLedger(InMemoryCreditStore())


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def project(job_store, user_id):
    return job_store.add_project(Project(id=uuid4(), user_id=user_id, title="Deep Sea Creatures"))


@pytest.fixture
def add_job(job_store, project):
    """Insert a job directly; `age_minutes` back-dates created_at and claimed_at."""

    async def _add(user_id=None, status=JobStatus.QUEUED, age_minutes=0, **fields):
        when = datetime.now(timezone.utc) - timedelta(minutes=age_minutes)
        job = Job(
            id=uuid4(),
            project_id=project.id,
            user_id=user_id or project.user_id,
            status=status,
            created_at=when,
            **fields
        )
        if status.is_active:
            job = job.model_copy(update={"claimed_by": fields.get("claimed_by", "worker-old"), "claimed_at": when})
        return await job_store.create_job(job)

    return _add
