"""
Step 4: word-level alignment of the narration and caption files.
"""

from typing import List

from shared.logging import get_logger
from shared.models import WhisperSegment
from modules.pipeline.context import PipelineContext, get_artifact
from modules.pipeline.results import StepResult, step_failure, step_success

logger = get_logger("pipeline.steps.run_alignment")

ERROR_CODE = "ERR_ALIGNMENT"


def _split_seconds(seconds: float):
    total_ms = int(round(seconds * 1000))
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, millis = divmod(rest, 1000)
    return hours, minutes, secs, millis


def format_srt_time(seconds: float) -> str:
    """00:01:02,345"""
    h, m, s, ms = _split_seconds(seconds)
    return f"{h:02d}:{m:02d}:{s:02d},{ms:03d}"


def format_vtt_time(seconds: float) -> str:
    """00:01:02.345"""
    h, m, s, ms = _split_seconds(seconds)
    return f"{h:02d}:{m:02d}:{s:02d}.{ms:03d}"


def generate_srt(segments: List[WhisperSegment]) -> str:
    return "\n".join(
        f"{idx}\n{format_srt_time(seg.start)} --> {format_srt_time(seg.end)}\n{seg.text}\n"
        for idx, seg in enumerate(segments, start=1)
    )


def generate_vtt(segments: List[WhisperSegment]) -> str:
    cues = "\n".join(
        f"{idx}\n{format_vtt_time(seg.start)} --> {format_vtt_time(seg.end)}\n{seg.text}\n"
        for idx, seg in enumerate(segments, start=1)
    )
    return "WEBVTT\n\n" + cues


async def run_alignment(ctx: PipelineContext) -> StepResult:
    """
    Transcribe the narration with timestamps.

    Produces `whisper_words`, `whisper_segments` and `captions_srt_path`
    (a VTT copy is uploaded alongside the SRT).
    """
    try:
        narration_path = get_artifact(ctx, "narration_path")
        if not narration_path:
            return step_failure(ERROR_CODE, "No narration audio available")

        storage = ctx.services.storage
        audio = await storage.download(narration_path)
        transcription = await ctx.services.transcriber.transcribe(audio, "narration.mp3")
        if not transcription.segments:
            return step_failure(ERROR_CODE, "Transcription returned no segments")

        srt_path = await storage.upload(
            f"{ctx.base_path}/alignment/captions.srt",
            generate_srt(transcription.segments).encode("utf-8"),
            content_type="text/plain"
        )
        await storage.upload(
            f"{ctx.base_path}/alignment/captions.vtt",
            generate_vtt(transcription.segments).encode("utf-8"),
            content_type="text/vtt"
        )

        logger.info(
            f"Transcribed {len(transcription.segments)} segments, {len(transcription.words)} words",
            extra={"job_id": str(ctx.job_id)}
        )
        return step_success({
            "whisper_words": transcription.words,
            "whisper_segments": transcription.segments,
            "captions_srt_path": srt_path,
        })
    except Exception as e:
        logger.error("Alignment failed", exc_info=e, extra={"job_id": str(ctx.job_id)})
        return step_failure(ERROR_CODE, str(e) or "Unknown error running alignment")
