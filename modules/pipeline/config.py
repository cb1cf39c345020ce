"""
Pipeline configuration.

Step progress, refund threshold, cadence and rendering constants.
"""
from typing import Dict, Tuple

from shared.models import JobStatus

# Progress written when each step starts
STEP_PROGRESS: Dict[str, int] = {
    "ingest_inputs": 5,
    "generate_script": 15,
    "generate_voice": 25,
    "run_alignment": 40,
    "plan_visuals": 50,
    "generate_images": 55,
    "build_timeline": 75,
    "render_video": 80,
    "package_assets": 95,
}

# Refund policy: full refund strictly before this point, none at or after it
REFUND_THRESHOLD_PROGRESS = 30
REFUND_THRESHOLD_STATUS = JobStatus.ALIGNMENT

# Checkpoints are written once this status has completed
CHECKPOINT_MIN_STATUS = JobStatus.IMAGE_GEN

# Per-minute pricing for the default final cost
MS_PER_CREDIT = 60_000

# Script generation
WORDS_PER_MINUTE = 150
MIN_SECTIONS = 5
MAX_SECTIONS = 8

# Visual planning: milliseconds of narration per image
IMAGE_CADENCE_MS: Dict[str, int] = {
    "low": 10_000,
    "normal": 7_000,
    "high": 4_000,
}
DEFAULT_CADENCE_MS = 8_000
SLOTS_PER_SECTION = 3

STYLE_PROMPTS: Dict[str, str] = {
    "photorealistic": "photorealistic, high quality, cinematic lighting, ",
    "illustration": "digital illustration, artistic, vibrant colors, ",
    "minimalist": "minimalist, clean, simple, modern, ",
    "cinematic": "cinematic, dramatic lighting, film still, 35mm, ",
    "anime": "anime style, manga, Japanese animation, ",
}
DEFAULT_STYLE = "photorealistic"

# Image generation
MAX_CONCURRENT_IMAGES = 3
IMAGE_TIMEOUT_SECONDS = 120

# Timeline / rendering
TIMELINE_FPS = 30
KEN_BURNS_ZOOM: Tuple[float, float] = (1.0, 1.1)
RESOLUTIONS: Dict[str, Tuple[int, int]] = {
    "720p": (1280, 720),
    "1080p": (1920, 1080),
    "4k": (3840, 2160),
}

OUTPUT_VIDEO_CODEC = "libx264"
OUTPUT_AUDIO_CODEC = "aac"
OUTPUT_AUDIO_BITRATE = "192k"
FFMPEG_PRESET = "medium"
FFMPEG_CRF = 23

# Built-in TTS voices a project may select directly
OPENAI_VOICES = ("alloy", "echo", "fable", "onyx", "nova", "shimmer")


def get_resolution(target_resolution: str) -> Tuple[int, int]:
    """Output (width, height) for a project resolution, 1080p when unknown."""
    return RESOLUTIONS.get(target_resolution, RESOLUTIONS["1080p"])


def get_cadence_ms(image_density: str) -> int:
    """Milliseconds of narration covered by one image."""
    return IMAGE_CADENCE_MS.get(image_density or "", DEFAULT_CADENCE_MS)
