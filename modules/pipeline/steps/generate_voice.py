"""
Step 3: synthesize narration audio, one clip per script section.
"""

from typing import Optional

from shared.logging import get_logger
from shared.models import Project, Script
from modules.pipeline.config import OPENAI_VOICES
from modules.pipeline.context import PipelineContext, get_artifact
from modules.pipeline.results import StepResult, step_failure, step_success

logger = get_logger("pipeline.steps.generate_voice")

ERROR_CODE = "ERR_TTS"


def select_voice(project: Project) -> Optional[str]:
    """The project's voice when it names a built-in voice, else the provider default."""
    if project.voice_profile_id and project.voice_profile_id.lower() in OPENAI_VOICES:
        return project.voice_profile_id.lower()
    return None


async def generate_voice(ctx: PipelineContext) -> StepResult:
    """
    Produce `narration_path` and `narration_duration_ms`.

    Section clips are uploaded to `{base_path}/audio/section_XXX.mp3`, joined
    into `narration.mp3`, and the joined file is probed for its duration.
    """
    try:
        script: Optional[Script] = get_artifact(ctx, "script")
        if script is None:
            return step_failure(ERROR_CODE, "No script available for voice generation")

        sections = [s for s in script.sections if s.narration_text.strip()]
        if not sections:
            return step_failure(ERROR_CODE, "Script has no narration text")

        voice = select_voice(ctx.project)
        storage = ctx.services.storage
        clips = []
        for idx, section in enumerate(sections):
            audio = await ctx.services.speech.synthesize(section.narration_text, voice)
            await storage.upload(f"{ctx.base_path}/audio/section_{idx:03d}.mp3", audio, content_type="audio/mpeg")
            clips.append(audio)
            if (idx + 1) % 5 == 0 or idx == len(sections) - 1:
                logger.info(
                    f"Generated {idx + 1}/{len(sections)} sections",
                    extra={"job_id": str(ctx.job_id)}
                )

        narration = await ctx.services.media.concat_audio(clips)
        narration_path = await storage.upload(
            f"{ctx.base_path}/audio/narration.mp3", narration, content_type="audio/mpeg"
        )
        duration_ms = await ctx.services.media.probe_duration_ms(narration)
        if duration_ms <= 0:
            return step_failure(ERROR_CODE, "Generated narration has no duration")

        logger.info(
            "Narration generated",
            extra={"job_id": str(ctx.job_id), "sections": len(sections), "duration_ms": duration_ms}
        )
        return step_success({
            "narration_path": narration_path,
            "narration_duration_ms": duration_ms,
        })
    except Exception as e:
        logger.error("Voice generation failed", exc_info=e, extra={"job_id": str(ctx.job_id)})
        return step_failure(ERROR_CODE, str(e) or "Unknown error generating voice")
