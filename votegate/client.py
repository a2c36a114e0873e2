from __future__ import annotations

import asyncio
import threading
from typing import Any, Mapping, Optional

import requests

from votegate.core.config import Settings
from votegate.services.orchestrator import VerifyResponse


class VoteGateApiClient:
    """Blocking HTTP client for the gate API; the session cookie is kept on ``self.session``."""

    def __init__(
        self,
        base_url: str,
        api_prefix: str = "/api/v1",
        timeout: float = 8.0,
        cookie_name: str = "authToken",
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_prefix = api_prefix
        self.timeout = timeout
        self.cookie_name = cookie_name
        self.session = session or requests.Session()
        self._session_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "VoteGateApiClient":
        return cls(
            base_url=settings.api_base_url,
            api_prefix=settings.api_prefix,
            timeout=settings.request_timeout_seconds,
            cookie_name=settings.session_cookie_name,
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}{self.api_prefix}{path}"

    def _post_json(self, path: str, payload: dict[str, Any]) -> requests.Response:
        with self._session_lock:
            resp = self.session.post(self._url(path), json=payload, timeout=self.timeout)
        resp.raise_for_status()
        return resp

    def enroll(self, identity_id: int, embedding: list[float]) -> str:
        resp = self._post_json("/faces/enroll", {"identityId": identity_id, "embedding": embedding})
        return str(resp.json()["status"])

    def verify(
        self,
        identity_id: int,
        embedding: list[float],
        purpose: str,
        election_id: Optional[int] = None,
    ) -> VerifyResponse:
        payload: dict[str, Any] = {"identityId": identity_id, "embedding": embedding, "purpose": purpose}
        if election_id is not None:
            payload["electionId"] = election_id
        resp = self._post_json("/faces/verify", payload)
        body = resp.json()
        return VerifyResponse(
            matched=bool(body.get("matched")),
            reason=body.get("reason"),
            vote_token=body.get("voteToken"),
            session_token=resp.cookies.get(self.cookie_name),
        )

    def issue_vote_token(self, identity_id: int, election_id: int) -> str:
        resp = self._post_json("/vote-tokens", {"identityId": identity_id, "electionId": election_id})
        return str(resp.json()["voteToken"])

    def cast_votes(self, votes: Mapping[str, int], vote_token: str) -> dict[str, Any]:
        resp = self._post_json("/votes", {"votes": dict(votes), "voteToken": vote_token})
        return resp.json()


class ApiBackend:
    """Async adapter so the orchestrator can await the blocking client."""

    def __init__(self, client: VoteGateApiClient):
        self.client = client

    async def enroll(self, identity_id: int, embedding: list[float]) -> str:
        return await asyncio.to_thread(self.client.enroll, identity_id, embedding)

    async def verify(
        self,
        identity_id: int,
        embedding: list[float],
        purpose: str,
        election_id: Optional[int] = None,
    ) -> VerifyResponse:
        return await asyncio.to_thread(self.client.verify, identity_id, embedding, purpose, election_id)

    async def issue_vote_token(self, identity_id: int, election_id: int) -> str:
        return await asyncio.to_thread(self.client.issue_vote_token, identity_id, election_id)
