"""
Step results.

Steps never raise for business failures; they return a StepResult and the
runner decides what happens next.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class StepError:
    """Machine-readable code plus a message shown to the user."""
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


@dataclass
class StepResult:
    """Outcome of one pipeline step. `data` maps artifact keys to values."""
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[StepError] = None


def step_success(data: Optional[Dict[str, Any]] = None) -> StepResult:
    return StepResult(success=True, data=dict(data or {}))


def step_failure(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> StepResult:
    return StepResult(success=False, error=StepError(code=code, message=message, details=details))
