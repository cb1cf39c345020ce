"""
External services used by the pipeline steps.

Steps only see these narrow interfaces through `ctx.services`; the concrete
OpenAI / Replicate / FFmpeg / Supabase Storage implementations live in
`modules.pipeline.providers` and are wired together by the worker.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol
from uuid import UUID

from shared.models import Project, ProjectInput, Timeline, WhisperSegment, WhisperWord


class ArtifactStorage(Protocol):
    """Blob storage addressed by `<bucket>/<object path>`."""

    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str: ...

    async def download(self, path: str) -> bytes: ...


class InputSource(Protocol):
    async def list_project_inputs(self, project_id: UUID) -> List[ProjectInput]: ...


class ScriptWriter(Protocol):
    async def write_script(self, merged_text: str, project: Project, target_words: int) -> Dict[str, Any]: ...


class SpeechSynthesizer(Protocol):
    async def synthesize(self, text: str, voice: Optional[str] = None) -> bytes: ...


@dataclass
class Transcription:
    segments: List[WhisperSegment] = field(default_factory=list)
    words: List[WhisperWord] = field(default_factory=list)


class Transcriber(Protocol):
    async def transcribe(self, audio: bytes, filename: str = "narration.mp3") -> Transcription: ...


class ImageGenerator(Protocol):
    async def generate(self, prompt: str, width: int, height: int, seed: Optional[int] = None) -> bytes: ...


class MediaToolkit(Protocol):
    async def concat_audio(self, clips: List[bytes]) -> bytes: ...

    async def probe_duration_ms(self, audio: bytes) -> int: ...

    async def render_video(
        self,
        timeline: Timeline,
        images: List[bytes],
        narration: bytes,
        captions_srt: Optional[str] = None
    ) -> bytes: ...


class WebFetcher(Protocol):
    async def fetch_text(self, url: str) -> str: ...


@dataclass
class PipelineServices:
    """Everything the nine steps call out to."""
    storage: ArtifactStorage
    inputs: InputSource
    script_writer: ScriptWriter
    speech: SpeechSynthesizer
    transcriber: Transcriber
    images: ImageGenerator
    media: MediaToolkit
    web: WebFetcher

