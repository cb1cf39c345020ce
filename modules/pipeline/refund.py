"""
Refund policy.

A job that fails before the ALIGNMENT stage and below 30% progress gets its
reservation back. At or past that point the provider spend is sunk and the
full reservation is charged.
"""

from shared.models import JobStatus, PIPELINE_STATUSES
from modules.pipeline.config import REFUND_THRESHOLD_PROGRESS, REFUND_THRESHOLD_STATUS

_PRE_THRESHOLD_STATUSES = (JobStatus.QUEUED,) + PIPELINE_STATUSES[:PIPELINE_STATUSES.index(REFUND_THRESHOLD_STATUS)]


def should_refund_credits(status: JobStatus, progress: int) -> bool:
    """
    Whether a failure at this point releases the reservation.

    Args:
        status: Job status when the failure happened
        progress: Job progress when the failure happened

    Returns:
        True iff the status is before ALIGNMENT and progress is below the threshold
    """
    return JobStatus(status) in _PRE_THRESHOLD_STATUSES and progress < REFUND_THRESHOLD_PROGRESS


def calculate_refund_amount(reserved: int, status: JobStatus, progress: int) -> int:
    """Credits returned to the user: all of the reservation or nothing."""
    if reserved <= 0:
        return 0
    return reserved if should_refund_credits(status, progress) else 0
