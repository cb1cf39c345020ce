"""
Step 5: plan one image per span of narration.
"""

import hashlib
import json
import re
from typing import List, Optional
from uuid import UUID

from shared.logging import get_logger
from shared.models import Script, VisualPlan, VisualSlot, WhisperSegment
from modules.pipeline.config import DEFAULT_STYLE, SLOTS_PER_SECTION, STYLE_PROMPTS, get_cadence_ms
from modules.pipeline.context import PipelineContext, get_artifact
from modules.pipeline.results import StepResult, step_failure, step_success

logger = get_logger("pipeline.steps.plan_visuals")

ERROR_CODE = "ERR_VISUAL_PLAN"

_NON_WORD_RE = re.compile(r"[^\w\s]")


def derive_seed(job_id: UUID, slot_id: str) -> int:
    """Stable per-slot seed so a retried image step redraws the same picture."""
    digest = hashlib.sha256(f"{job_id}:{slot_id}".encode("utf-8")).hexdigest()
    return int(digest[:8], 16) % (2 ** 31)


def build_image_prompt(text: str, keywords: List[str], style_preset: str) -> str:
    prefix = STYLE_PROMPTS.get(style_preset, STYLE_PROMPTS[DEFAULT_STYLE])
    keyword_str = ", ".join(keywords)
    clean_text = _NON_WORD_RE.sub("", text)[:100]
    return f"{prefix}{keyword_str + ', ' if keyword_str else ''}scene depicting: {clean_text}"


def build_visual_plan(
    script: Script,
    segments: List[WhisperSegment],
    cadence_ms: int,
    style_preset: str,
    job_id: Optional[UUID] = None
) -> VisualPlan:
    """
    Group consecutive segments into slots spanning at least `cadence_ms`.

    A slot closes once it reaches the cadence or at the last segment. Every
    three slots move on to the next script section's keywords, wrapping
    around.
    """
    slots: List[VisualSlot] = []
    slot_start_ms = 0
    texts: List[str] = []

    for idx, seg in enumerate(segments):
        seg_end_ms = int(round(seg.end * 1000))
        texts.append(seg.text)
        is_last = idx == len(segments) - 1
        if seg_end_ms - slot_start_ms < cadence_ms and not is_last:
            continue

        slot_index = len(slots)
        section = script.sections[(slot_index // SLOTS_PER_SECTION) % len(script.sections)] if script.sections else None
        slot_id = f"slot_{slot_index:03d}"
        text = " ".join(texts)
        slots.append(VisualSlot(
            id=slot_id,
            start_ms=slot_start_ms,
            end_ms=seg_end_ms,
            text=text,
            prompt=build_image_prompt(text, section.visual_keywords if section else [], style_preset),
            style_preset=style_preset,
            seed=derive_seed(job_id, slot_id) if job_id else None,
        ))
        slot_start_ms = seg_end_ms
        texts = []

    return VisualPlan(slots=slots, total_images=len(slots), cadence_ms=cadence_ms)


async def plan_visuals(ctx: PipelineContext) -> StepResult:
    """Produce `visual_plan` from the script and the aligned segments."""
    try:
        script: Optional[Script] = get_artifact(ctx, "script")
        segments: Optional[List[WhisperSegment]] = get_artifact(ctx, "whisper_segments")
        if script is None:
            return step_failure(ERROR_CODE, "Script artifact is required for visual planning")
        if not segments:
            return step_failure(ERROR_CODE, "Whisper segments are required for visual planning")

        cadence_ms = get_cadence_ms(ctx.project.image_density)
        style_preset = ctx.project.visual_preset_id or DEFAULT_STYLE
        plan = build_visual_plan(script, segments, cadence_ms, style_preset, job_id=ctx.job_id)
        if not plan.slots:
            return step_failure(ERROR_CODE, "Visual plan has no slots")

        await ctx.services.storage.upload(
            f"{ctx.base_path}/visuals/visual_plan.json",
            json.dumps(plan.model_dump(mode="json"), indent=2).encode("utf-8"),
            content_type="application/json"
        )
        logger.info(
            f"Created visual plan with {plan.total_images} slots",
            extra={"job_id": str(ctx.job_id), "cadence_ms": cadence_ms, "density": ctx.project.image_density}
        )
        return step_success({"visual_plan": plan})
    except Exception as e:
        logger.error("Visual planning failed", exc_info=e, extra={"job_id": str(ctx.job_id)})
        return step_failure(ERROR_CODE, str(e) or "Unknown error planning visuals")
