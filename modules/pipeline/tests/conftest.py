"""
Fixtures for pipeline tests.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from shared.models import Job, JobStatus, Project
from modules.credit_ledger import CreditLedger, InMemoryCreditStore
from modules.job_queue.memory_store import InMemoryJobStore
from modules.pipeline.context import create_pipeline_context
from modules.pipeline.results import StepResult, step_failure, step_success
from modules.pipeline.services import PipelineServices
from modules.pipeline.steps import PIPELINE_STEPS, PipelineStep


@pytest.fixture
def job_store():
    return InMemoryJobStore()


@pytest.fixture
def credit_store():
    return InMemoryCreditStore()


@pytest.fixture
def ledger(credit_store):
    return CreditLedger(credit_store)


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def project(job_store, user_id):
    return job_store.add_project(Project(
        id=uuid4(),
        user_id=user_id,
        title="How Volcanoes Work",
        niche_preset="science",
        target_minutes=1,
        prompt_text="Explain magma chambers and eruptions.",
        image_density="normal",
        target_resolution="1080p",
    ))


@pytest.fixture
def make_job(job_store, ledger, project):
    """Create a claimed job with `reserved` credits held for it."""

    async def _make(
        reserved: int = 5,
        balance: int = 20,
        status: JobStatus = JobStatus.SCRIPTING,
        progress: int = 1,
        retry_count: int = 0,
        **fields: Any
    ) -> Job:
        job = Job(
            id=uuid4(),
            project_id=project.id,
            user_id=project.user_id,
            status=status,
            progress=progress,
            retry_count=retry_count,
            cost_credits_reserved=reserved,
            claimed_by="worker-test",
            claimed_at=datetime.now(timezone.utc),
            **fields
        )
        await ledger.add_credits(project.user_id, balance, note="pack")
        assert await ledger.reserve_credits(project.user_id, job.id, reserved)
        return await job_store.create_job(job)

    return _make


def fake_step(step: PipelineStep, data: Optional[Dict[str, Any]] = None, fail: Optional[str] = None, calls: Optional[List[str]] = None) -> PipelineStep:
    """Copy of a real step whose body returns canned output."""

    async def run(ctx) -> StepResult:
        if calls is not None:
            calls.append(step.name)
        if fail:
            return step_failure(step.error_code, fail)
        return step_success(dict(data or {}))

    return PipelineStep(name=step.name, status=step.status, progress=step.progress, error_code=step.error_code, run=run)


FAKE_OUTPUTS: Dict[str, Dict[str, Any]] = {
    "ingest_inputs": {"merged_input_text": "# Project: How Volcanoes Work"},
    "generate_script": {"outline": ["Intro", "Magma"]},
    "generate_voice": {"narration_path": "project-assets/audio/narration.mp3", "narration_duration_ms": 90_000},
    "run_alignment": {"captions_srt_path": "project-assets/alignment/captions.srt"},
    "plan_visuals": {},
    "generate_images": {"image_paths": ["project-assets/images/slot_000.png"]},
    "build_timeline": {"timeline_path": "project-assets/timeline.json"},
    "render_video": {"video_path": "project-outputs/video.mp4"},
    "package_assets": {"zip_path": "project-outputs/assets.zip"},
}


@pytest.fixture
def step_calls():
    return []


@pytest.fixture
def make_steps(step_calls):
    """Nine fake steps; `fail_at` names the step that returns a failure."""

    def _make(fail_at: Optional[str] = None, message: str = "provider exploded") -> List[PipelineStep]:
        return [
            fake_step(
                step,
                data=FAKE_OUTPUTS[step.name],
                fail=message if step.name == fail_at else None,
                calls=step_calls,
            )
            for step in PIPELINE_STEPS
        ]

    return _make


@pytest.fixture
def storage():
    """Dict-backed artifact storage: upload returns the path, download reads it back."""
    blobs: Dict[str, bytes] = {}
    mock = MagicMock()
    mock.blobs = blobs

    async def upload(path, data, content_type=None):
        blobs[path] = data
        return path

    async def download(path):
        return blobs[path]

    mock.upload = AsyncMock(side_effect=upload)
    mock.download = AsyncMock(side_effect=download)
    return mock


@pytest.fixture
def services(storage, job_store):
    return PipelineServices(
        storage=storage,
        inputs=job_store,
        script_writer=AsyncMock(),
        speech=AsyncMock(),
        transcriber=AsyncMock(),
        images=AsyncMock(),
        media=AsyncMock(),
        web=AsyncMock(),
    )


@pytest.fixture
def ctx(project, services):
    job = Job(id=uuid4(), project_id=project.id, user_id=project.user_id, status=JobStatus.SCRIPTING)
    return create_pipeline_context(job, project, services)
