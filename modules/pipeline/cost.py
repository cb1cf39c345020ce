"""
Final cost computation.

The runner takes the pricing function as a parameter; the default charges
one credit per started minute of narration.
"""

import math
from typing import Any, Callable, Dict

from shared.models import Project
from modules.pipeline.config import MS_PER_CREDIT

ComputeFinalCost = Callable[[Project, Dict[str, Any]], int]


def per_minute_final_cost(project: Project, artifacts: Dict[str, Any]) -> int:
    """One credit per started minute of narration, at least one."""
    narration_ms = artifacts.get("narration_duration_ms") or 0
    return max(1, math.ceil(narration_ms / MS_PER_CREDIT))


def clamp_final_cost(cost: int, reserved: int) -> int:
    """Keep a computed cost within [0, reserved]."""
    return max(0, min(int(cost), reserved))
