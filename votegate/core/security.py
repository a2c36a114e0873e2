from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Callable

from jose import JWTError, jwt

from votegate.exceptions import TokenExpired, TokenMalformed, TokenMissingClaims

from .config import get_settings

VOTE_TOKEN_TYPE = "vote"
SESSION_TOKEN_TYPE = "session"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class VoteClaims:
    identity_id: int
    election_id: int


@dataclass(frozen=True)
class SessionClaims:
    identity_id: int
    strong_auth: bool


class TokenService:
    """Issues and verifies the signed credentials handed out after a face match.

    Vote tokens bind one identity to one election for a few minutes. Session
    tokens carry the ``mfa`` claim and live longer. Neither kind is tracked
    after issuance; one-time use of a vote token is enforced by the ballot
    store's unique (identity, election) constraint.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        vote_ttl: timedelta = timedelta(minutes=5),
        session_ttl: timedelta = timedelta(minutes=60),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self.vote_ttl = vote_ttl
        self.session_ttl = session_ttl
        self._clock = clock

    def _encode(self, claims: dict[str, Any], ttl: timedelta) -> str:
        issued = self._clock()
        payload = {**claims, "iat": issued, "exp": issued + ttl}
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def _decode(self, token: str, expected_type: str) -> dict[str, Any]:
        if not token or not isinstance(token, str):
            raise TokenMalformed("Token is empty.")
        try:
            # Expiry is checked against the injected clock below.
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise TokenMalformed(f"Token could not be decoded: {exc}") from exc

        if payload.get("typ") != expected_type:
            raise TokenMalformed(f"Expected a {expected_type} token.")

        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            raise TokenMalformed("Token has no expiry.")
        if self._clock() >= datetime.fromtimestamp(exp, tz=timezone.utc):
            raise TokenExpired("Token has expired.")
        return payload

    @staticmethod
    def _int_claim(payload: dict[str, Any], key: str) -> int:
        value = payload.get(key)
        if value is None or value == "":
            raise TokenMissingClaims(f"Token is missing the '{key}' claim.")
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise TokenMalformed(f"Claim '{key}' is not an integer id.") from exc

    def issue_vote_token(self, identity_id: int, election_id: int) -> str:
        return self._encode(
            {"sub": str(identity_id), "election_id": int(election_id), "typ": VOTE_TOKEN_TYPE},
            self.vote_ttl,
        )

    def verify_vote_token(self, token: str) -> VoteClaims:
        payload = self._decode(token, VOTE_TOKEN_TYPE)
        return VoteClaims(
            identity_id=self._int_claim(payload, "sub"),
            election_id=self._int_claim(payload, "election_id"),
        )

    def issue_session_token(self, identity_id: int) -> str:
        return self._encode(
            {"sub": str(identity_id), "mfa": True, "typ": SESSION_TOKEN_TYPE},
            self.session_ttl,
        )

    def verify_session_token(self, token: str) -> SessionClaims:
        payload = self._decode(token, SESSION_TOKEN_TYPE)
        identity_id = self._int_claim(payload, "sub")
        if payload.get("mfa") is not True:
            raise TokenMissingClaims("Session token lacks the strong-auth claim.")
        return SessionClaims(identity_id=identity_id, strong_auth=True)


@lru_cache(maxsize=1)
def get_token_service() -> TokenService:
    settings = get_settings()
    return TokenService(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        vote_ttl=timedelta(minutes=settings.vote_token_minutes),
        session_ttl=timedelta(minutes=settings.session_token_minutes),
    )
