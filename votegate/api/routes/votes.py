from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from votegate.api.deps import db_session, get_current_session, token_service
from votegate.core.security import SessionClaims, TokenService
from votegate.exceptions import AlreadyVoted, TokenError
from votegate.schemas.votes import CastVotesRequest, CastVotesResponse, HasVotedResponse, ReceiptEntry
from votegate.services.ballots import cast_ballot, has_voted

router = APIRouter(prefix="/votes", tags=["votes"])
logger = logging.getLogger(__name__)


@router.post("", response_model=CastVotesResponse, status_code=status.HTTP_201_CREATED)
def cast_votes(
    payload: CastVotesRequest,
    db: Session = db_session(),
    tokens: TokenService = Depends(token_service),
):
    if not payload.vote_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Vote token required.")
    if not payload.votes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No votes submitted.")
    try:
        claims = tokens.verify_vote_token(payload.vote_token)
    except TokenError as exc:
        logger.info("Vote token rejected: %s", exc.__class__.__name__)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired vote token.")

    try:
        receipt = cast_ballot(db, claims, payload.votes)
    except AlreadyVoted:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User has already voted in this election.")

    return CastVotesResponse(
        message="Votes submitted successfully",
        receipt=[ReceiptEntry(**entry) for entry in receipt],
    )


@router.get("/status", response_model=HasVotedResponse)
def vote_status(
    election_id: int = Query(alias="electionId", gt=0),
    principal: SessionClaims = Depends(get_current_session),
    db: Session = db_session(),
):
    return HasVotedResponse(has_voted=has_voted(db, principal.identity_id, election_id))
