"""Challenge tokens handed to popups when they render."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from popboost_api.api.dependencies.discounts import get_challenge_tokens
from popboost_api.api.dependencies.session import get_storefront_session
from popboost_api.schemas.discount import ChallengeRequest
from popboost_api.services.discounts import StorefrontSession
from popboost_api.services.security import SignedChallengeTokens


router = APIRouter(prefix="/discounts", tags=["Discounts"])


class ChallengeResponse(BaseModel):
    challengeToken: str = Field(..., description="Token to echo back when requesting a discount")
    expiresAt: datetime


@router.post("/challenge", response_model=ChallengeResponse, summary="Issue a popup challenge token")
async def issue_challenge(
    payload: ChallengeRequest,
    storefront: StorefrontSession | None = Depends(get_storefront_session),
    tokens: SignedChallengeTokens = Depends(get_challenge_tokens),
) -> ChallengeResponse:
    if storefront is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")

    issued = tokens.issue(payload.session_id, payload.campaign_id)
    return ChallengeResponse(challengeToken=issued.token, expiresAt=issued.expires_at)
