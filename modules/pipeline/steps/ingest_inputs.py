"""
Step 1: merge the project's inputs into one text document.
"""

from pathlib import PurePosixPath
from typing import List, Optional

from shared.logging import get_logger
from shared.models import ProjectInput
from modules.pipeline.context import PipelineContext
from modules.pipeline.results import StepResult, step_failure, step_success

logger = get_logger("pipeline.steps.ingest_inputs")

ERROR_CODE = "ERR_INPUT_FETCH"
INPUT_BUCKET = "project-assets"
TEXT_EXTENSIONS = {".txt", ".md"}
AUDIO_EXTENSIONS = {".mp3", ".wav", ".m4a", ".webm", ".mp4", ".mpeg", ".mpga"}


def _storage_path(path: str) -> str:
    return path if path.startswith(f"{INPUT_BUCKET}/") else f"{INPUT_BUCKET}/{path.lstrip('/')}"


async def _read_file_input(ctx: PipelineContext, item: ProjectInput) -> Optional[str]:
    """Text of an uploaded file; audio is transcribed. None when unsupported or unreadable."""
    suffix = PurePosixPath(item.storage_path).suffix.lower()
    if suffix not in TEXT_EXTENSIONS and suffix not in AUDIO_EXTENSIONS:
        logger.warning("Skipping unsupported file input", extra={"path": item.storage_path})
        return None
    try:
        data = await ctx.services.storage.download(_storage_path(item.storage_path))
    except Exception as e:
        logger.warning("Failed to download file input", exc_info=e, extra={"path": item.storage_path})
        return None

    if suffix in TEXT_EXTENSIONS:
        return data.decode("utf-8", errors="replace")

    transcription = await ctx.services.transcriber.transcribe(data, PurePosixPath(item.storage_path).name)
    duration = transcription.segments[-1].end if transcription.segments else 0.0
    lines = [f"[Audio Transcription - Duration: {duration:.2f}s]", ""]
    lines.extend(
        f"[{seg.start:.2f}s - {seg.end:.2f}s] {seg.text.strip()}" for seg in transcription.segments
    )
    return "\n".join(lines)


async def _read_url_input(ctx: PipelineContext, item: ProjectInput) -> List[str]:
    url = item.content_text.strip()
    try:
        content = await ctx.services.web.fetch_text(url)
    except Exception as e:
        logger.warning("Failed to fetch URL input, using the URL itself", exc_info=e, extra={"url": url})
        return [f"## Input: {item.title or 'URL Content'}", f"URL: {url}", ""]
    return [f"## Input: {item.title or 'URL Content'}", f"Source: {url}", "", content, ""]


async def ingest_inputs(ctx: PipelineContext) -> StepResult:
    """
    Build `merged_input_text` from the project header, prompt and inputs.

    Inputs are read in creation order: text inline, files downloaded from
    storage, URLs fetched. An input that cannot be read is skipped (URLs
    fall back to the bare URL). With no content at all, the project title
    becomes the topic.
    """
    try:
        project = ctx.project
        parts = [
            f"# Project: {project.title}",
            f"Niche: {project.niche_preset}",
            f"Target Duration: {project.target_minutes} minutes",
            "",
        ]
        header_length = len(parts)

        if project.prompt_text and project.prompt_text.strip():
            parts.extend(["## Prompt", project.prompt_text.strip(), ""])

        inputs = await ctx.services.inputs.list_project_inputs(ctx.project_id)
        for item in inputs:
            if item.type == "text" and item.content_text:
                parts.extend([f"## Input: {item.title or 'User Text'}", item.content_text, ""])
            elif item.type == "file" and item.storage_path:
                text = await _read_file_input(ctx, item)
                if text:
                    parts.extend([f"## Input: {item.title or 'Uploaded File'}", text, ""])
            elif item.type == "url" and item.content_text:
                parts.extend(await _read_url_input(ctx, item))

        if len(parts) == header_length:
            if not project.title.strip():
                return step_failure(ERROR_CODE, "Project has no title, prompt or inputs to build a script from")
            parts.extend(["## Topic", f"Create a video about: {project.title}"])

        merged_text = "\n".join(parts)
        await ctx.services.storage.upload(
            f"{ctx.base_path}/inputs/merged_input.txt",
            merged_text.encode("utf-8"),
            content_type="text/plain"
        )
        logger.info(
            "Inputs merged",
            extra={"job_id": str(ctx.job_id), "input_count": len(inputs), "chars": len(merged_text)}
        )
        return step_success({"merged_input_text": merged_text})
    except Exception as e:
        logger.error("Input ingestion failed", exc_info=e, extra={"job_id": str(ctx.job_id)})
        return step_failure(ERROR_CODE, str(e) or "Unknown error ingesting inputs")
