"""
Pipeline steps.

Each step is an async function `(ctx) -> StepResult`. PIPELINE_STEPS lists
them in execution order with the status and progress the runner writes
before invoking them.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, List

from shared.models import JobStatus
from modules.pipeline.config import STEP_PROGRESS
from modules.pipeline.context import PipelineContext
from modules.pipeline.results import StepResult
from modules.pipeline.steps.ingest_inputs import ingest_inputs
from modules.pipeline.steps.generate_script import generate_script
from modules.pipeline.steps.generate_voice import generate_voice
from modules.pipeline.steps.run_alignment import run_alignment
from modules.pipeline.steps.plan_visuals import plan_visuals
from modules.pipeline.steps.generate_images import generate_images
from modules.pipeline.steps.build_timeline import build_timeline
from modules.pipeline.steps.render_video import render_video
from modules.pipeline.steps.package_assets import package_assets

StepFunction = Callable[[PipelineContext], Awaitable[StepResult]]


@dataclass(frozen=True)
class PipelineStep:
    name: str
    status: JobStatus
    progress: int
    error_code: str
    run: StepFunction


def _step(name: str, status: JobStatus, error_code: str, run: StepFunction) -> PipelineStep:
    return PipelineStep(name=name, status=status, progress=STEP_PROGRESS[name], error_code=error_code, run=run)


PIPELINE_STEPS: List[PipelineStep] = [
    _step("ingest_inputs", JobStatus.SCRIPTING, "ERR_INPUT_FETCH", ingest_inputs),
    _step("generate_script", JobStatus.SCRIPTING, "ERR_SCRIPT_GEN", generate_script),
    _step("generate_voice", JobStatus.VOICE_GEN, "ERR_TTS", generate_voice),
    _step("run_alignment", JobStatus.ALIGNMENT, "ERR_ALIGNMENT", run_alignment),
    _step("plan_visuals", JobStatus.VISUAL_PLANNING, "ERR_VISUAL_PLAN", plan_visuals),
    _step("generate_images", JobStatus.IMAGE_GEN, "ERR_IMAGE_GEN", generate_images),
    _step("build_timeline", JobStatus.BUILD_TIMELINE, "ERR_TIMELINE", build_timeline),
    _step("render_video", JobStatus.RENDERING, "ERR_RENDER", render_video),
    _step("package_assets", JobStatus.PACKAGING, "ERR_PACKAGING", package_assets),
]

__all__ = [
    "PipelineStep",
    "PIPELINE_STEPS",
    "StepFunction",
    "ingest_inputs",
    "generate_script",
    "generate_voice",
    "run_alignment",
    "plan_visuals",
    "generate_images",
    "build_timeline",
    "render_video",
    "package_assets",
]
