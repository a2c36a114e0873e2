from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from votegate.api.deps import get_current_session, token_service
from votegate.core.security import SessionClaims, TokenService
from votegate.schemas.votes import VoteTokenRequest, VoteTokenResponse

router = APIRouter(prefix="/vote-tokens", tags=["vote-tokens"])


@router.post("", response_model=VoteTokenResponse)
def issue_vote_token(
    payload: VoteTokenRequest,
    principal: SessionClaims = Depends(get_current_session),
    tokens: TokenService = Depends(token_service),
):
    if principal.identity_id != payload.identity_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Session does not belong to this identity.")
    return VoteTokenResponse(vote_token=tokens.issue_vote_token(payload.identity_id, payload.election_id))
