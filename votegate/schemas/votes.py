from __future__ import annotations

from pydantic import Field

from .faces import CamelModel


class VoteTokenRequest(CamelModel):
    identity_id: int = Field(gt=0)
    election_id: int = Field(gt=0)


class VoteTokenResponse(CamelModel):
    vote_token: str


class CastVotesRequest(CamelModel):
    votes: dict[str, int] = {}
    vote_token: str = ""


class ReceiptEntry(CamelModel):
    position: str
    candidate: int


class CastVotesResponse(CamelModel):
    message: str
    receipt: list[ReceiptEntry]


class HasVotedResponse(CamelModel):
    has_voted: bool
