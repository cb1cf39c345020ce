"""
Step 8: render the timeline to MP4.
"""

import asyncio
from typing import List, Optional

from shared.logging import get_logger
from shared.models import Timeline
from modules.pipeline.context import PipelineContext, get_artifact
from modules.pipeline.results import StepResult, step_failure, step_success

logger = get_logger("pipeline.steps.render_video")

ERROR_CODE = "ERR_RENDER"


async def render_video(ctx: PipelineContext) -> StepResult:
    """Produce `video_path` (`{output_path}/video.mp4`)."""
    try:
        timeline: Optional[Timeline] = get_artifact(ctx, "timeline")
        narration_path = get_artifact(ctx, "narration_path")
        if timeline is None:
            return step_failure(ERROR_CODE, "No timeline available to render")
        if not narration_path:
            return step_failure(ERROR_CODE, "No narration available to render")

        storage = ctx.services.storage
        images: List[bytes] = list(await asyncio.gather(
            *(storage.download(segment.image.src) for segment in timeline.segments)
        ))
        narration = await storage.download(narration_path)

        captions_srt = None
        captions_path = get_artifact(ctx, "captions_srt_path")
        if captions_path:
            captions_srt = (await storage.download(captions_path)).decode("utf-8", errors="replace")

        video = await ctx.services.media.render_video(timeline, images, narration, captions_srt)
        video_path = await storage.upload(f"{ctx.output_path}/video.mp4", video, content_type="video/mp4")

        logger.info(
            "Video rendered",
            extra={"job_id": str(ctx.job_id), "size": len(video), "segments": len(timeline.segments)}
        )
        return step_success({"video_path": video_path})
    except Exception as e:
        logger.error("Render failed", exc_info=e, extra={"job_id": str(ctx.job_id)})
        return step_failure(ERROR_CODE, str(e) or "Unknown error rendering video")
