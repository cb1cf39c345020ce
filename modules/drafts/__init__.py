"""
Drafts module.

Pre-signup prompt drafts keyed by session token.
"""

from modules.drafts.service import DraftService, DEFAULT_TEMPLATE_ID, DRAFT_TTL, MIN_PROMPT_LENGTH
from modules.drafts.store import DraftStore, InMemoryDraftStore, SupabaseDraftStore

__all__ = [
    "DraftService",
    "DraftStore",
    "InMemoryDraftStore",
    "SupabaseDraftStore",
    "DEFAULT_TEMPLATE_ID",
    "DRAFT_TTL",
    "MIN_PROMPT_LENGTH",
]
