import pytest
from sqlalchemy import func, select

from votegate.core.security import VoteClaims
from votegate.db.models import Ballot
from votegate.exceptions import AlreadyVoted
from votegate.services.ballots import BallotCipher, cast_ballot, has_voted


@pytest.fixture
def cipher():
    return BallotCipher("unit-test-ballot-key")


def test_cast_ballot_stores_encrypted_rows(db, cipher):
    receipt = cast_ballot(db, VoteClaims(identity_id=7, election_id=3), {"1": 11, "2": 24}, cipher=cipher)

    assert receipt == [{"position": "1", "candidate": 11}, {"position": "2", "candidate": 24}]
    rows = db.scalars(select(Ballot).order_by(Ballot.position_id)).all()
    assert [row.position_id for row in rows] == ["1", "2"]
    assert cipher.decrypt(rows[0].encrypted_vote) == {"positionId": "1", "candidateId": 11}
    assert has_voted(db, 7, 3) is True
    assert has_voted(db, 7, 4) is False


def test_second_ballot_for_same_election_is_rejected(db, cipher):
    claims = VoteClaims(identity_id=7, election_id=3)
    cast_ballot(db, claims, {"1": 11}, cipher=cipher)
    with pytest.raises(AlreadyVoted):
        cast_ballot(db, claims, {"2": 30}, cipher=cipher)
    assert db.scalar(select(func.count()).select_from(Ballot)) == 1


def test_same_identity_may_vote_in_other_elections(db, cipher):
    cast_ballot(db, VoteClaims(7, 3), {"1": 11}, cipher=cipher)
    cast_ballot(db, VoteClaims(7, 4), {"1": 12}, cipher=cipher)
    assert has_voted(db, 7, 4) is True


def test_empty_ballot_is_rejected(db, cipher):
    with pytest.raises(ValueError):
        cast_ballot(db, VoteClaims(7, 3), {}, cipher=cipher)
