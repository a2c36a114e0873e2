from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from votegate.api.deps import db_session, face_matcher, token_service
from votegate.core.config import get_settings
from votegate.core.security import TokenService
from votegate.schemas.faces import (
    EnrollRequest,
    EnrollResponse,
    VerificationPurpose,
    VerifyRequest,
    VerifyResponse,
)
from votegate.services.matcher import FaceMatcher, MatchReason

router = APIRouter(prefix="/faces", tags=["faces"])
logger = logging.getLogger(__name__)


@router.post("/enroll", response_model=EnrollResponse)
def enroll_face(
    payload: EnrollRequest,
    db: Session = db_session(),
    matcher: FaceMatcher = Depends(face_matcher),
):
    status = matcher.enroll(db, payload.identity_id, payload.embedding)
    return EnrollResponse(status=status.value)


@router.post("/verify", response_model=VerifyResponse, response_model_exclude_none=True)
def verify_face(
    payload: VerifyRequest,
    response: Response,
    db: Session = db_session(),
    matcher: FaceMatcher = Depends(face_matcher),
    tokens: TokenService = Depends(token_service),
):
    result = matcher.match(db, payload.identity_id, payload.embedding)
    if not result.matched:
        if result.reason is MatchReason.NO_EMBEDDING_ON_FILE:
            message = "No face registered"
        else:
            message = "Face not recognized"
        logger.info("Verification rejected for identity %s (%s)", payload.identity_id, result.reason.value)
        return VerifyResponse(matched=False, reason=result.reason.value, message=message)

    if payload.purpose is VerificationPurpose.VOTING:
        vote_token = tokens.issue_vote_token(payload.identity_id, payload.election_id)
        logger.info("Vote token issued for identity %s, election %s", payload.identity_id, payload.election_id)
        return VerifyResponse(matched=True, vote_token=vote_token, message="Face verified for voting.")

    settings = get_settings()
    session_token = tokens.issue_session_token(payload.identity_id)
    response.set_cookie(
        settings.session_cookie_name,
        session_token,
        max_age=int(tokens.session_ttl.total_seconds()),
        path="/",
        secure=settings.session_cookie_secure,
        httponly=True,
        samesite="strict",
    )
    logger.info("Session issued for identity %s", payload.identity_id)
    return VerifyResponse(matched=True, message="Face verified. User logged in.")
