from __future__ import annotations

import base64
import json
import logging
from functools import lru_cache
from typing import Mapping

from cryptography.fernet import Fernet
from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from votegate.core.config import get_settings
from votegate.core.security import VoteClaims
from votegate.db.models import Ballot, VoteReceipt
from votegate.exceptions import AlreadyVoted, StorageError

logger = logging.getLogger(__name__)


class BallotCipher:
    def __init__(self, key_material: str):
        padded = key_material.encode("utf-8")
        key = base64.urlsafe_b64encode(padded.ljust(32, b"0")[:32])
        self._fernet = Fernet(key)

    def encrypt(self, position_id: str, candidate_id: int) -> str:
        payload = json.dumps({"positionId": position_id, "candidateId": candidate_id}).encode("utf-8")
        return self._fernet.encrypt(payload).decode("utf-8")

    def decrypt(self, ciphertext: str) -> dict:
        return json.loads(self._fernet.decrypt(ciphertext.encode("utf-8")))


@lru_cache(maxsize=1)
def get_ballot_cipher() -> BallotCipher:
    return BallotCipher(get_settings().ballot_cipher_key)


def has_voted(db: Session, identity_id: int, election_id: int) -> bool:
    query = select(
        exists().where(
            VoteReceipt.identity_id == identity_id,
            VoteReceipt.election_id == election_id,
        )
    )
    try:
        return bool(db.scalar(query))
    except SQLAlchemyError as exc:
        logger.exception("Vote receipt lookup failed for election %s", election_id)
        raise StorageError("Vote receipt lookup failed.") from exc


def cast_ballot(
    db: Session,
    claims: VoteClaims,
    votes: Mapping[str, int],
    cipher: BallotCipher | None = None,
) -> list[dict]:
    """Store one encrypted row per position for a verified vote token.

    The receipt row and the ballot rows commit together; the unique
    (identity, election) constraint on receipts rejects a second submission.
    """
    if not votes:
        raise ValueError("No votes submitted.")
    cipher = cipher or get_ballot_cipher()

    if has_voted(db, claims.identity_id, claims.election_id):
        raise AlreadyVoted(f"Identity {claims.identity_id} already voted in election {claims.election_id}.")

    try:
        db.add(VoteReceipt(identity_id=claims.identity_id, election_id=claims.election_id))
        for position_id, candidate_id in votes.items():
            db.add(
                Ballot(
                    identity_id=claims.identity_id,
                    election_id=claims.election_id,
                    position_id=str(position_id),
                    encrypted_vote=cipher.encrypt(str(position_id), int(candidate_id)),
                )
            )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise AlreadyVoted(
            f"Identity {claims.identity_id} already voted in election {claims.election_id}."
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Ballot insert failed for election %s", claims.election_id)
        raise StorageError("Ballot insert failed.") from exc

    logger.info("Ballot recorded for election %s (%d positions)", claims.election_id, len(votes))
    return [{"position": str(position_id), "candidate": int(candidate_id)} for position_id, candidate_id in votes.items()]
