"""
OpenAI integration: script generation, text-to-speech and Whisper alignment.
"""

import json
from typing import Any, Dict, List, Optional

from openai import APIConnectionError, APIError, APITimeoutError, AsyncOpenAI
from openai import RateLimitError as OpenAIRateLimitError

from shared.config import settings
from shared.errors import ConfigError, GenerationError, RateLimitError, RetryableError
from shared.logging import get_logger
from shared.models import Project, WhisperSegment, WhisperWord
from shared.retry import retry_with_backoff
from modules.pipeline.config import MAX_SECTIONS, MIN_SECTIONS
from modules.pipeline.services import Transcription

logger = get_logger("pipeline.providers.openai")


def _build_system_prompt(project: Project, target_words: int) -> str:
    return f"""You are a professional scriptwriter for YouTube videos.
Create engaging, educational scripts with clear sections.
Each section should be 20-60 seconds when spoken.
Target word count: {target_words} words (approximately {project.target_minutes} minutes).
Write in a conversational, engaging tone appropriate for the "{project.niche_preset}" niche."""


def _build_user_prompt(merged_text: str) -> str:
    return f"""Create a video script based on this content:

{merged_text}

Return a JSON object with this structure:
{{
  "title": "Video Title",
  "sections": [
    {{
      "id": "section_001",
      "order": 0,
      "headline": "Section Headline",
      "narration_text": "The full narration text for this section...",
      "visual_keywords": ["keyword1", "keyword2"],
      "on_screen_text": "Optional on-screen text",
      "pace_hint": "normal"
    }}
  ]
}}

Include {MIN_SECTIONS}-{MAX_SECTIONS} sections. Make the first section a strong hook."""


def _translate_error(e: Exception, operation: str) -> Exception:
    """Map OpenAI SDK errors onto the retry taxonomy."""
    if isinstance(e, OpenAIRateLimitError):
        return RateLimitError(f"OpenAI rate limit during {operation}: {e}")
    if isinstance(e, (APITimeoutError, APIConnectionError)):
        return RetryableError(f"OpenAI {operation} request failed: {e}")
    if isinstance(e, APIError):
        status = getattr(e, "status_code", None)
        if status is not None and status < 500:
            return GenerationError(f"OpenAI {operation} rejected: {e}")
        return RetryableError(f"OpenAI {operation} server error: {e}")
    return GenerationError(f"OpenAI {operation} failed: {e}")


class OpenAIProvider:
    """ScriptWriter, SpeechSynthesizer and Transcriber over one AsyncOpenAI client."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, api_key: Optional[str] = None):
        if client is not None:
            self.client = client
            return
        api_key = api_key or settings.openai_api_key
        if not api_key:
            raise ConfigError("OPENAI_API_KEY is required for the OpenAI provider")
        self.client = AsyncOpenAI(api_key=api_key)

    @retry_with_backoff(max_attempts=3, base_delay=2)
    async def write_script(self, merged_text: str, project: Project, target_words: int) -> Dict[str, Any]:
        """
        Generate a sectioned script in JSON mode.

        Returns:
            Parsed JSON object with `title` and `sections`

        Raises:
            GenerationError: Empty or non-JSON response
            RetryableError: Transient API failure (retried)
        """
        try:
            response = await self.client.chat.completions.create(
                model=settings.openai_script_model,
                messages=[
                    {"role": "system", "content": _build_system_prompt(project, target_words)},
                    {"role": "user", "content": _build_user_prompt(merged_text)},
                ],
                response_format={"type": "json_object"},
                temperature=0.7,
                timeout=90.0,
            )
        except Exception as e:
            raise _translate_error(e, "script generation") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise GenerationError("No content returned from OpenAI")
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            raise GenerationError(f"Script response is not valid JSON: {e}") from e

        usage = getattr(response, "usage", None)
        logger.info(
            "Script generated",
            extra={
                "model": settings.openai_script_model,
                "sections": len(parsed.get("sections") or []),
                "input_tokens": getattr(usage, "prompt_tokens", None),
                "output_tokens": getattr(usage, "completion_tokens", None),
            }
        )
        return parsed

    @retry_with_backoff(max_attempts=3, base_delay=2)
    async def synthesize(self, text: str, voice: Optional[str] = None) -> bytes:
        """Text to MP3 bytes."""
        try:
            response = await self.client.audio.speech.create(
                model=settings.openai_tts_model,
                voice=voice or settings.openai_tts_voice,
                input=text,
                response_format="mp3",
            )
        except Exception as e:
            raise _translate_error(e, "speech synthesis") from e
        return response.content

    @retry_with_backoff(max_attempts=3, base_delay=2)
    async def transcribe(self, audio: bytes, filename: str = "narration.mp3") -> Transcription:
        """Whisper verbose transcription with segment and word timestamps."""
        try:
            response = await self.client.audio.transcriptions.create(
                model=settings.openai_transcribe_model,
                file=(filename, audio),
                response_format="verbose_json",
                timestamp_granularities=["segment", "word"],
            )
        except Exception as e:
            raise _translate_error(e, "transcription") from e

        segments: List[WhisperSegment] = [
            WhisperSegment(id=idx, start=seg.start, end=seg.end, text=seg.text.strip())
            for idx, seg in enumerate(getattr(response, "segments", None) or [])
        ]
        words: List[WhisperWord] = [
            WhisperWord(word=w.word.strip(), start=w.start, end=w.end)
            for w in (getattr(response, "words", None) or [])
        ]
        return Transcription(segments=segments, words=words)
