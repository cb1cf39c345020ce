"""
Step 7: assemble the render timeline.
"""

import json
from typing import List, Optional

from shared.logging import get_logger
from shared.models import (
    Timeline,
    TimelineCaption,
    TimelineImage,
    TimelineSegment,
    VisualPlan,
    WhisperSegment,
)
from modules.pipeline.config import KEN_BURNS_ZOOM, TIMELINE_FPS, get_resolution
from modules.pipeline.context import PipelineContext, get_artifact
from modules.pipeline.results import StepResult, step_failure, step_success

logger = get_logger("pipeline.steps.build_timeline")

ERROR_CODE = "ERR_TIMELINE"


def ms_to_frames(ms: float, fps: int = TIMELINE_FPS) -> int:
    return round(ms * fps / 1000)


def build_timeline_model(
    plan: VisualPlan,
    image_paths: List[str],
    narration_path: str,
    narration_duration_ms: int,
    target_resolution: str,
    segments: Optional[List[WhisperSegment]] = None,
    fps: int = TIMELINE_FPS
) -> Timeline:
    """
    Timeline covering the whole narration.

    Segment i shows image i over its slot's frame range with a Ken Burns
    zoom. The last segment is stretched to the end of the narration.
    """
    width, height = get_resolution(target_resolution)
    duration_frames = ms_to_frames(narration_duration_ms, fps)
    zoom_from, zoom_to = KEN_BURNS_ZOOM

    timeline_segments: List[TimelineSegment] = []
    for idx, slot in enumerate(plan.slots):
        end_frame = ms_to_frames(slot.end_ms, fps)
        if idx == len(plan.slots) - 1:
            end_frame = max(end_frame, duration_frames)
        # Alternate zoom direction between consecutive images
        image = TimelineImage(
            src=image_paths[idx],
            zoom_from=zoom_from if idx % 2 == 0 else zoom_to,
            zoom_to=zoom_to if idx % 2 == 0 else zoom_from,
        )
        timeline_segments.append(TimelineSegment(
            id=slot.id,
            start_frame=ms_to_frames(slot.start_ms, fps),
            end_frame=end_frame,
            text=slot.text,
            image=image,
        ))

    captions = [
        TimelineCaption(
            start_frame=ms_to_frames(seg.start * 1000, fps),
            end_frame=ms_to_frames(seg.end * 1000, fps),
            text=seg.text,
        )
        for seg in (segments or [])
    ]

    return Timeline(
        fps=fps,
        width=width,
        height=height,
        duration_frames=max(duration_frames, timeline_segments[-1].end_frame if timeline_segments else 0),
        tracks=[{"type": "audio", "src": narration_path, "volume": 1}],
        segments=timeline_segments,
        captions=captions,
    )


async def build_timeline(ctx: PipelineContext) -> StepResult:
    """Produce `timeline` and upload it as `{base_path}/timeline.json` (`timeline_path`)."""
    try:
        plan: Optional[VisualPlan] = get_artifact(ctx, "visual_plan")
        image_paths: List[str] = get_artifact(ctx, "image_paths") or []
        narration_path = get_artifact(ctx, "narration_path")
        duration_ms = get_artifact(ctx, "narration_duration_ms") or 0

        if plan is None or not plan.slots:
            return step_failure(ERROR_CODE, "No visual plan available")
        if len(image_paths) != len(plan.slots):
            return step_failure(
                ERROR_CODE,
                f"Expected {len(plan.slots)} images, found {len(image_paths)}"
            )
        if not narration_path or duration_ms <= 0:
            return step_failure(ERROR_CODE, "No narration available for the timeline")

        timeline = build_timeline_model(
            plan,
            image_paths,
            narration_path,
            duration_ms,
            ctx.project.target_resolution,
            segments=get_artifact(ctx, "whisper_segments"),
        )
        timeline_path = await ctx.services.storage.upload(
            f"{ctx.base_path}/timeline.json",
            json.dumps(timeline.model_dump(mode="json"), indent=2).encode("utf-8"),
            content_type="application/json"
        )
        logger.info(
            "Timeline built",
            extra={
                "job_id": str(ctx.job_id),
                "segments": len(timeline.segments),
                "duration_frames": timeline.duration_frames,
            }
        )
        return step_success({"timeline": timeline, "timeline_path": timeline_path})
    except Exception as e:
        logger.error("Timeline build failed", exc_info=e, extra={"job_id": str(ctx.job_id)})
        return step_failure(ERROR_CODE, str(e) or "Unknown error building timeline")
