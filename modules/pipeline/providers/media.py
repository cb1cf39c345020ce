"""
FFmpeg / ffprobe helpers.

Audio concatenation, duration probing and slideshow rendering. Every
operation works in a throwaway temp directory.
"""

import asyncio
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from shared.config import settings
from shared.errors import RenderError, RetryableError
from shared.logging import get_logger
from shared.models import Timeline
from shared.retry import retry_with_backoff
from modules.pipeline.config import (
    FFMPEG_CRF,
    FFMPEG_PRESET,
    OUTPUT_AUDIO_BITRATE,
    OUTPUT_AUDIO_CODEC,
    OUTPUT_VIDEO_CODEC,
)

logger = get_logger("pipeline.providers.media")


def check_ffmpeg_available() -> bool:
    """True if both ffmpeg and ffprobe are on PATH."""
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


@retry_with_backoff(max_attempts=2, base_delay=2)
async def run_ffmpeg_command(cmd: List[str], cwd: Optional[Path] = None, timeout: Optional[int] = None) -> bytes:
    """
    Run an ffmpeg/ffprobe command.

    Args:
        cmd: Command as list of strings
        cwd: Working directory
        timeout: Seconds before the process is abandoned (defaults to settings)

    Returns:
        Captured stdout

    Raises:
        RetryableError: Non-zero exit or timeout (retried once)
        RenderError: Binary missing or other OS failure
    """
    timeout = timeout or settings.ffmpeg_timeout_seconds
    logger.debug(f"Running command: {' '.join(cmd)}", extra={"command": cmd})
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise RetryableError(f"{cmd[0]} timeout after {timeout}s")

        if process.returncode != 0:
            error_msg = stderr.decode(errors="replace")[-2000:] if stderr else "Unknown error"
            logger.error(f"{cmd[0]} failed: {error_msg}", extra={"error": error_msg, "command": cmd})
            raise RetryableError(f"{cmd[0]} failed: {error_msg}")
        return stdout
    except RetryableError:
        raise
    except Exception as e:
        raise RenderError(f"{cmd[0]} could not be run: {e}") from e


class FFmpegMediaToolkit:
    """MediaToolkit backed by the ffmpeg and ffprobe binaries."""

    async def concat_audio(self, clips: List[bytes]) -> bytes:
        """Join MP3 clips in order."""
        if not clips:
            raise RenderError("No audio clips to concatenate")
        if len(clips) == 1:
            return clips[0]

        with tempfile.TemporaryDirectory(prefix="canvascast-audio-") as tmp:
            tmp_dir = Path(tmp)
            entries = []
            for idx, clip in enumerate(clips):
                name = f"section_{idx:03d}.mp3"
                (tmp_dir / name).write_bytes(clip)
                entries.append(f"file '{name}'\n")
            (tmp_dir / "list.txt").write_text("".join(entries))

            await run_ffmpeg_command(
                ["ffmpeg", "-y", "-f", "concat", "-safe", "0", "-i", "list.txt", "-c", "copy", "narration.mp3"],
                cwd=tmp_dir
            )
            return (tmp_dir / "narration.mp3").read_bytes()

    async def probe_duration_ms(self, audio: bytes) -> int:
        """Duration of an audio file in milliseconds."""
        with tempfile.TemporaryDirectory(prefix="canvascast-probe-") as tmp:
            audio_path = Path(tmp) / "audio.mp3"
            audio_path.write_bytes(audio)
            stdout = await run_ffmpeg_command([
                "ffprobe",
                "-v", "error",
                "-show_entries", "format=duration",
                "-of", "default=noprint_wrappers=1:nokey=1",
                str(audio_path)
            ], timeout=30)
        try:
            return int(round(float(stdout.decode().strip()) * 1000))
        except ValueError as e:
            raise RenderError(f"ffprobe returned no duration: {stdout!r}") from e

    async def render_video(
        self,
        timeline: Timeline,
        images: List[bytes],
        narration: bytes,
        captions_srt: Optional[str] = None
    ) -> bytes:
        """
        Render the timeline as an MP4 slideshow.

        Each segment shows its image for the segment's frame range; the
        narration is the audio track and captions are burned in when given.
        """
        if len(images) != len(timeline.segments):
            raise RenderError(
                f"Timeline has {len(timeline.segments)} segments but {len(images)} images were provided"
            )
        if not images:
            raise RenderError("Timeline has no segments to render")

        width, height, fps = timeline.width, timeline.height, timeline.fps
        with tempfile.TemporaryDirectory(prefix="canvascast-render-") as tmp:
            tmp_dir = Path(tmp)
            entries = []
            for idx, (segment, image) in enumerate(zip(timeline.segments, images)):
                name = f"img_{idx:03d}.png"
                (tmp_dir / name).write_bytes(image)
                duration = max(segment.end_frame - segment.start_frame, 1) / fps
                entries.append(f"file '{name}'\nduration {duration:.3f}\n")
            # The concat demuxer ignores the last duration unless the file is repeated
            entries.append(f"file 'img_{len(images) - 1:03d}.png'\n")
            (tmp_dir / "images.txt").write_text("".join(entries))
            (tmp_dir / "narration.mp3").write_bytes(narration)

            filters = [
                f"scale={width}:{height}:force_original_aspect_ratio=decrease",
                f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2",
                f"fps={fps}",
                "format=yuv420p",
            ]
            if captions_srt and timeline.caption_style.get("enabled", True):
                (tmp_dir / "captions.srt").write_text(captions_srt)
                filters.append("subtitles=captions.srt")

            await run_ffmpeg_command([
                "ffmpeg", "-y",
                "-f", "concat", "-safe", "0", "-i", "images.txt",
                "-i", "narration.mp3",
                "-vf", ",".join(filters),
                "-c:v", OUTPUT_VIDEO_CODEC,
                "-preset", FFMPEG_PRESET,
                "-crf", str(FFMPEG_CRF),
                "-c:a", OUTPUT_AUDIO_CODEC,
                "-b:a", OUTPUT_AUDIO_BITRATE,
                "-shortest",
                "-movflags", "+faststart",
                "video.mp4",
            ], cwd=tmp_dir)

            output = tmp_dir / "video.mp4"
            logger.info(
                "Rendered video",
                extra={"segments": len(images), "width": width, "height": height, "size": output.stat().st_size}
            )
            return output.read_bytes()
