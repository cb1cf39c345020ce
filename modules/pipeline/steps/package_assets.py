"""
Step 9: bundle the deliverables into a downloadable ZIP.
"""

import io
import json
import zipfile
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Dict, List, Tuple

from shared.logging import get_logger
from modules.pipeline.context import PipelineContext, get_artifact
from modules.pipeline.results import StepResult, step_failure, step_success

logger = get_logger("pipeline.steps.package_assets")

ERROR_CODE = "ERR_PACKAGING"


def build_manifest(ctx: PipelineContext, files: List[Tuple[str, bytes]]) -> Dict[str, Any]:
    script = get_artifact(ctx, "script")
    return {
        "version": "1.0",
        "job_id": str(ctx.job_id),
        "project_id": str(ctx.project_id),
        "created_at": datetime.now(timezone.utc).isoformat(),
        "title": script.title if script else ctx.project.title,
        "niche": ctx.project.niche_preset,
        "duration_ms": get_artifact(ctx, "narration_duration_ms"),
        "files": [{"name": name, "size": len(data)} for name, data in files],
    }


def build_zip(files: List[Tuple[str, bytes]], manifest: Dict[str, Any]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, data in files:
            archive.writestr(name, data)
        archive.writestr("manifest.json", json.dumps(manifest, indent=2))
    return buffer.getvalue()


async def package_assets(ctx: PipelineContext) -> StepResult:
    """
    Produce `zip_path` (`{output_path}/assets.zip`).

    The archive holds the video, narration, SRT captions, every image and a
    manifest.json, which is also uploaded next to the archive.
    """
    try:
        video_path = get_artifact(ctx, "video_path")
        if not video_path:
            return step_failure(ERROR_CODE, "No rendered video to package")

        storage = ctx.services.storage
        files: List[Tuple[str, bytes]] = [("video.mp4", await storage.download(video_path))]

        narration_path = get_artifact(ctx, "narration_path")
        if narration_path:
            files.append(("narration.mp3", await storage.download(narration_path)))
        captions_path = get_artifact(ctx, "captions_srt_path")
        if captions_path:
            files.append(("captions.srt", await storage.download(captions_path)))
        for path in get_artifact(ctx, "image_paths") or []:
            files.append((f"images/{PurePosixPath(path).name}", await storage.download(path)))

        manifest = build_manifest(ctx, files)
        archive = build_zip(files, manifest)

        await storage.upload(
            f"{ctx.output_path}/manifest.json",
            json.dumps(manifest, indent=2).encode("utf-8"),
            content_type="application/json"
        )
        zip_path = await storage.upload(f"{ctx.output_path}/assets.zip", archive, content_type="application/zip")

        logger.info(
            "Assets packaged",
            extra={"job_id": str(ctx.job_id), "files": len(files), "size": len(archive)}
        )
        return step_success({"zip_path": zip_path})
    except Exception as e:
        logger.error("Packaging failed", exc_info=e, extra={"job_id": str(ctx.job_id)})
        return step_failure(ERROR_CODE, str(e) or "Unknown error packaging assets")
