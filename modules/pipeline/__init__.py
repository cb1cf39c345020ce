"""
Pipeline module.

Nine-step video generation pipeline: context and artifacts, the steps,
the runner that persists progress and settles credits, checkpoints and
single-step retry.
"""

from modules.pipeline.checkpoint import (
    Checkpoint,
    can_retry_from_checkpoint,
    clear_checkpoint,
    get_next_step_from_checkpoint,
    load_checkpoint,
    save_checkpoint,
)
from modules.pipeline.context import (
    ARTIFACT_KEYS,
    PipelineContext,
    add_artifact,
    clear_artifacts,
    create_pipeline_context,
    get_artifact,
    has_artifact,
    remove_artifact,
)
from modules.pipeline.cost import clamp_final_cost, per_minute_final_cost
from modules.pipeline.refund import calculate_refund_amount, should_refund_credits
from modules.pipeline.results import StepError, StepResult, step_failure, step_success
from modules.pipeline.retry_step import RETRIABLE_STEPS, retry_step
from modules.pipeline.runner import JOB_STATUS_CACHE_KEY, PipelineRunner
from modules.pipeline.services import PipelineServices
from modules.pipeline.steps import PIPELINE_STEPS, PipelineStep

__all__ = [
    "ARTIFACT_KEYS",
    "Checkpoint",
    "JOB_STATUS_CACHE_KEY",
    "PIPELINE_STEPS",
    "PipelineContext",
    "PipelineRunner",
    "PipelineServices",
    "PipelineStep",
    "RETRIABLE_STEPS",
    "StepError",
    "StepResult",
    "add_artifact",
    "calculate_refund_amount",
    "can_retry_from_checkpoint",
    "clamp_final_cost",
    "clear_artifacts",
    "clear_checkpoint",
    "create_pipeline_context",
    "get_artifact",
    "get_next_step_from_checkpoint",
    "has_artifact",
    "load_checkpoint",
    "per_minute_final_cost",
    "remove_artifact",
    "retry_step",
    "save_checkpoint",
    "should_refund_credits",
    "step_failure",
    "step_success",
]
