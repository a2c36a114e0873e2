from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from votegate.core.config import get_settings
from votegate.core.security import SessionClaims, TokenService, get_token_service
from votegate.db.session import get_db
from votegate.exceptions import TokenError
from votegate.services.matcher import FaceMatcher, get_matcher

bearer_scheme = HTTPBearer(auto_error=False)


def db_session() -> Session:
    return Depends(get_db)  # type: ignore[return-value]


def token_service() -> TokenService:
    return get_token_service()


def face_matcher() -> FaceMatcher:
    return get_matcher()


def get_current_session(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    tokens: TokenService = Depends(token_service),
) -> SessionClaims:
    raw = credentials.credentials if credentials is not None else request.cookies.get(get_settings().session_cookie_name)
    if not raw:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated.")
    try:
        return tokens.verify_session_token(raw)
    except TokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired session.")
