"""
Draft prompt endpoints.

Anonymous visitors save a prompt under their session token; after sign-in
the client claims it.
"""

from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from shared.errors import ValidationError
from shared.logging import get_logger
from modules.drafts import DEFAULT_TEMPLATE_ID
from api_gateway.dependencies import get_current_user, get_draft_service, get_optional_user, parse_uuid

logger = get_logger(__name__)

router = APIRouter()


class CreateDraftRequest(BaseModel):
    session_token: str
    prompt_text: str
    template_id: str = DEFAULT_TEMPLATE_ID
    options: Dict[str, Any] = Field(default_factory=dict)


class ClaimDraftRequest(BaseModel):
    session_token: str


@router.post("/drafts", status_code=status.HTTP_201_CREATED)
async def create_draft(
    body: CreateDraftRequest,
    current_user: Optional[dict] = Depends(get_optional_user),
    draft_service=Depends(get_draft_service)
):
    user_id = parse_uuid(current_user["user_id"], "user ID") if current_user else None
    try:
        draft = await draft_service.create_draft(
            body.session_token,
            body.prompt_text,
            template_id=body.template_id,
            options=body.options,
            user_id=user_id
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {
        "draft_id": str(draft.id),
        "expires_at": draft.expires_at.isoformat(),
        "claimed": draft.claimed_by_user_id is not None,
    }


@router.post("/drafts/claim")
async def claim_draft(
    body: ClaimDraftRequest,
    current_user: dict = Depends(get_current_user),
    draft_service=Depends(get_draft_service)
):
    draft_id = await draft_service.claim_draft_prompt(
        body.session_token,
        parse_uuid(current_user["user_id"], "user ID")
    )
    return {"claimed": draft_id is not None, "draft_id": str(draft_id) if draft_id else None}
