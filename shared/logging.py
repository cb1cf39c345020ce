"""
Structured logging setup for all modules.

JSON lines on stdout and a rotating file. Every record carries the worker
identity; records emitted inside a pipeline run also carry the job ID and
the step being executed.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional
from uuid import UUID

from shared.config import settings

job_id_context: ContextVar[Optional[UUID]] = ContextVar("job_id", default=None)
step_context: ContextVar[Optional[str]] = ContextVar("pipeline_step", default=None)

# Standard LogRecord attributes; everything else on a record came from extra={}
_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName", "levelname",
    "levelno", "lineno", "module", "msecs", "message", "pathname", "process",
    "processName", "relativeCreated", "thread", "threadName", "exc_info",
    "exc_text", "stack_info", "getMessage", "taskName"
}


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        job_id = job_id_context.get()
        step = step_context.get()

        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.module,
            "logger": record.name,
            "message": record.getMessage(),
            "worker_id": settings.resolved_worker_id,
        }

        if job_id:
            log_data["job_id"] = str(job_id)
        if step:
            log_data["step"] = step

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                # Convert complex types to strings, keep simple types as-is
                if isinstance(value, (str, int, float, bool, type(None))):
                    log_data[key] = value
                else:
                    log_data[key] = str(value)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Module name (e.g., "pipeline.runner")

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Don't add handlers if already configured
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(JSONFormatter())
    logger.addHandler(console_handler)

    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_dir / "canvascast.log",
        maxBytes=100 * 1024 * 1024,  # 100MB
        backupCount=5
    )
    file_handler.setFormatter(JSONFormatter())
    logger.addHandler(file_handler)

    return logger


def set_job_id(job_id: Optional[UUID]) -> None:
    """
    Set job_id in context for automatic injection into logs.

    Args:
        job_id: Job ID to set in context
    """
    job_id_context.set(job_id)


def get_job_id() -> Optional[UUID]:
    """
    Get current job_id from context.

    Returns:
        Current job_id or None
    """
    return job_id_context.get()


def set_step_name(step_name: Optional[str]) -> None:
    """Tag subsequent records in this context with the running pipeline step."""
    step_context.set(step_name)
