"""
Error hierarchy.

Exception types shared by the ledger, pipeline, queue, and API layers.
"""

from typing import Optional
from uuid import UUID


class PipelineError(Exception):
    """Base class for all application errors."""

    def __init__(
        self,
        message: str,
        job_id: Optional[UUID] = None,
        code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.job_id = job_id
        self.code = code

    def __str__(self) -> str:
        return self.message


class RetryableError(PipelineError):
    """Transient failure (network, store unavailable) that may succeed on retry."""
    pass


class RateLimitError(RetryableError):
    """Provider rate limit hit."""
    pass


class ValidationError(PipelineError):
    """Invalid input or state for the requested operation."""
    pass


class ConfigError(PipelineError):
    """Missing or invalid configuration."""
    pass


class GenerationError(PipelineError):
    """AI provider returned no usable output."""
    pass


class RenderError(PipelineError):
    """FFmpeg/ffprobe invocation failed."""
    pass


class StorageError(PipelineError):
    """Blob storage upload or download failed."""
    pass


class InsufficientCreditsError(PipelineError):
    """Credit reservation rejected because the balance is too low."""

    def __init__(self, message: str, user_id: Optional[UUID] = None, required: int = 0, available: int = 0):
        super().__init__(message, code="ERR_CREDITS")
        self.user_id = user_id
        self.required = required
        self.available = available


class JobNotFoundError(PipelineError):
    """Job row does not exist."""
    pass


class DeadLetterError(PipelineError):
    """Dead letter transition could not be persisted."""
    pass


class RetryStepError(PipelineError):
    """Single-step retry request rejected."""
    pass
