"""
Configuration management.

Centralized environment variable management and validation.
"""

import os
import socket
from typing import Literal, Optional
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from shared.errors import ConfigError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # Allow case-insensitive env var matching
        extra="ignore"
    )

    # Supabase configuration
    supabase_url: str
    supabase_service_key: str

    # Redis configuration (job status cache)
    redis_url: str = "redis://localhost:6379"

    # API keys (only needed by the worker's providers)
    openai_api_key: Optional[str] = None
    replicate_api_token: Optional[str] = None

    # JWT configuration
    supabase_jwt_secret: Optional[str] = None

    # Environment
    environment: Literal["development", "staging", "production"] = "development"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_dir: str = "logs"

    # API server
    api_port: int = 8000

    # Worker configuration
    # WORKER_ID: identity written to jobs.claimed_by; derived from host and pid when unset
    worker_id: Optional[str] = None
    poll_interval_seconds: float = 1.0
    max_concurrent_jobs: int = 2
    max_active_jobs_per_user: int = 1
    stale_sweep_interval_seconds: int = 60
    stale_job_minutes: int = 15
    draft_cleanup_interval_seconds: int = 3600

    # Pipeline providers
    openai_script_model: str = "gpt-4o"
    openai_tts_model: str = "tts-1"
    openai_tts_voice: str = "onyx"
    openai_transcribe_model: str = "whisper-1"
    replicate_image_model: str = "black-forest-labs/flux-schnell"

    # FFmpeg
    ffmpeg_timeout_seconds: int = 600

    @field_validator("supabase_url")
    @classmethod
    def validate_supabase_url(cls, v: str) -> str:
        """Validate Supabase URL format."""
        if not v:
            raise ConfigError("SUPABASE_URL is required")
        if not v.startswith(("http://", "https://")):
            raise ConfigError("SUPABASE_URL must be a valid HTTP/HTTPS URL")
        return v

    @field_validator("supabase_service_key")
    @classmethod
    def validate_supabase_service_key(cls, v: str) -> str:
        """Validate Supabase service key format."""
        if not v:
            raise ConfigError("SUPABASE_SERVICE_KEY is required")
        if len(v) < 50:  # Basic format check
            raise ConfigError("SUPABASE_SERVICE_KEY appears to be invalid")
        return v

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: str) -> str:
        """Validate Redis URL format."""
        if not v.startswith(("redis://", "rediss://")):
            raise ConfigError("REDIS_URL must start with redis:// or rediss://")
        return v

    @field_validator("openai_api_key")
    @classmethod
    def validate_openai_api_key(cls, v: Optional[str]) -> Optional[str]:
        """Validate OpenAI API key format when provided."""
        if v and not v.startswith("sk-"):
            raise ConfigError("OPENAI_API_KEY must start with 'sk-'")
        return v

    @field_validator("replicate_api_token")
    @classmethod
    def validate_replicate_api_token(cls, v: Optional[str]) -> Optional[str]:
        """Validate Replicate API token format when provided."""
        if v and not v.startswith("r8_"):
            raise ConfigError("REPLICATE_API_TOKEN must start with 'r8_'")
        return v

    @field_validator("max_concurrent_jobs", "max_active_jobs_per_user", "stale_job_minutes")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Worker limits must be at least 1."""
        if v < 1:
            raise ConfigError("Worker limits must be >= 1")
        return v

    @property
    def resolved_worker_id(self) -> str:
        """Worker identity, stable for the lifetime of the process."""
        if self.worker_id:
            return self.worker_id
        return f"worker-{socket.gethostname()}-{os.getpid()}"


# Singleton instance
try:
    settings = Settings()
except Exception as e:
    # Re-raise as ConfigError for consistency
    if isinstance(e, ConfigError):
        raise
    raise ConfigError(f"Failed to load configuration: {str(e)}") from e
