from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VerificationPurpose(str, Enum):
    LOGIN = "login"
    VOTING = "voting"


class EnrollRequest(CamelModel):
    identity_id: int = Field(gt=0)
    embedding: list[Union[StrictFloat, StrictInt]] = Field(min_length=1)


class EnrollResponse(CamelModel):
    status: str


class VerifyRequest(CamelModel):
    identity_id: int = Field(gt=0)
    embedding: list[Union[StrictFloat, StrictInt]] = Field(min_length=1)
    purpose: VerificationPurpose
    election_id: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _voting_needs_election(self) -> "VerifyRequest":
        if self.purpose is VerificationPurpose.VOTING and self.election_id is None:
            raise ValueError("electionId is required when purpose is 'voting'.")
        return self


class VerifyResponse(CamelModel):
    matched: bool
    reason: Optional[str] = None
    vote_token: Optional[str] = None
    message: str
