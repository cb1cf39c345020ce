"""
Job queue module.

Job persistence, submission, claiming, stale-job recovery and the dead
letter queue.
"""

from modules.job_queue.claim import claim_next_job, requeue_stale_jobs
from modules.job_queue.dead_letter import (
    MAX_RETRY_COUNT,
    get_dead_letter_queue_jobs,
    move_job_to_dead_letter_queue,
    retry_job_from_dead_letter_queue,
    should_move_to_dead_letter_queue,
)
from modules.job_queue.memory_store import InMemoryJobStore
from modules.job_queue.store import JobStore
from modules.job_queue.submission import submit_job
from modules.job_queue.supabase_store import SupabaseJobStore

__all__ = [
    "InMemoryJobStore",
    "JobStore",
    "MAX_RETRY_COUNT",
    "SupabaseJobStore",
    "claim_next_job",
    "get_dead_letter_queue_jobs",
    "move_job_to_dead_letter_queue",
    "requeue_stale_jobs",
    "retry_job_from_dead_letter_queue",
    "should_move_to_dead_letter_queue",
    "submit_job",
]
