"""
Step 6: generate one image per visual slot.
"""

import asyncio
from typing import List, Optional

from shared.logging import get_logger
from shared.models import VisualPlan, VisualSlot
from modules.pipeline.config import MAX_CONCURRENT_IMAGES, get_resolution
from modules.pipeline.context import PipelineContext, get_artifact
from modules.pipeline.results import StepResult, step_failure, step_success

logger = get_logger("pipeline.steps.generate_images")

ERROR_CODE = "ERR_IMAGE_GEN"


async def _generate_slot_image(ctx: PipelineContext, slot: VisualSlot, width: int, height: int) -> str:
    image = await ctx.services.images.generate(slot.prompt, width, height, seed=slot.seed)
    return await ctx.services.storage.upload(
        f"{ctx.base_path}/images/{slot.id}.png", image, content_type="image/png"
    )


async def generate_images(ctx: PipelineContext) -> StepResult:
    """
    Produce `image_paths`, in slot order.

    Slots are processed in batches of MAX_CONCURRENT_IMAGES; the first
    failed image fails the step.
    """
    try:
        plan: Optional[VisualPlan] = get_artifact(ctx, "visual_plan")
        if plan is None or not plan.slots:
            return step_failure(ERROR_CODE, "No visual plan available")

        width, height = get_resolution(ctx.project.target_resolution)
        image_paths: List[str] = []
        for start in range(0, len(plan.slots), MAX_CONCURRENT_IMAGES):
            batch = plan.slots[start:start + MAX_CONCURRENT_IMAGES]
            image_paths.extend(await asyncio.gather(
                *(_generate_slot_image(ctx, slot, width, height) for slot in batch)
            ))
            logger.info(
                f"Generated {len(image_paths)}/{len(plan.slots)} images",
                extra={"job_id": str(ctx.job_id)}
            )

        return step_success({"image_paths": image_paths})
    except Exception as e:
        logger.error("Image generation failed", exc_info=e, extra={"job_id": str(ctx.job_id)})
        return step_failure(ERROR_CODE, str(e) or "Unknown error generating images")
