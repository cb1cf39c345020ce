"""
Pipeline artifact models.

Typed intermediate outputs passed between pipeline steps.
"""

from datetime import datetime
from typing import List, Optional, Dict, Any, Literal
from pydantic import BaseModel, Field


class ScriptSection(BaseModel):
    """One narrated section of the script."""

    id: str
    order: int
    headline: str
    narration_text: str
    visual_keywords: List[str] = Field(default_factory=list)
    on_screen_text: Optional[str] = None
    pace_hint: Literal["slow", "normal", "fast"] = "normal"
    estimated_duration_ms: int = Field(default=0, ge=0)


class Script(BaseModel):
    """Full narration script."""

    title: str
    sections: List[ScriptSection]
    total_word_count: int = Field(default=0, ge=0)
    estimated_duration_ms: int = Field(default=0, ge=0)
    generated_at: Optional[datetime] = None


class WhisperWord(BaseModel):
    """Word-level timestamp (seconds)."""

    word: str
    start: float
    end: float


class WhisperSegment(BaseModel):
    """Segment-level timestamp (seconds)."""

    id: int
    start: float
    end: float
    text: str


class VisualSlot(BaseModel):
    """A span of narration covered by one generated image."""

    id: str
    start_ms: int
    end_ms: int
    text: str
    prompt: str
    style_preset: str
    seed: Optional[int] = None


class VisualPlan(BaseModel):
    """Ordered image slots covering the narration."""

    slots: List[VisualSlot]
    total_images: int
    cadence_ms: int


class TimelineTheme(BaseModel):
    primary: str = "#2563EB"
    secondary: str = "#1E293B"
    accent: str = "#F59E0B"
    text: str = "#FFFFFF"
    font_family: str = "Inter"


class TimelineImage(BaseModel):
    src: str
    zoom_from: float = 1.0
    zoom_to: float = 1.1


class TimelineSegment(BaseModel):
    id: str
    start_frame: int
    end_frame: int
    text: str
    image: TimelineImage


class TimelineCaption(BaseModel):
    start_frame: int
    end_frame: int
    text: str


class Timeline(BaseModel):
    """Render description consumed by the video renderer."""

    version: int = 1
    fps: int = 30
    width: int
    height: int
    duration_frames: int
    theme: TimelineTheme = Field(default_factory=TimelineTheme)
    tracks: List[Dict[str, Any]] = Field(default_factory=list)
    segments: List[TimelineSegment] = Field(default_factory=list)
    captions: List[TimelineCaption] = Field(default_factory=list)
    caption_style: Dict[str, Any] = Field(
        default_factory=lambda: {"enabled": True, "position": "bottom", "max_lines": 2}
    )
