import numpy as np
import pytest
from sqlalchemy import func, select

from votegate.db.models import FaceEmbedding
from votegate.exceptions import InvalidEmbeddingFormat, StorageError
from votegate.services.matcher import (
    EnrollStatus,
    FaceMatcher,
    MatchReason,
    cosine_similarity,
    normalize,
    validate_embedding,
)


@pytest.mark.parametrize("vector", [[3.0, 4.0], [1e-6, -2e-6, 5e-6], list(np.linspace(-1, 1, 128) + 0.01)])
def test_normalize_produces_unit_norm(vector):
    assert np.linalg.norm(normalize(np.asarray(vector))) == pytest.approx(1.0)


def test_normalize_leaves_zero_vector_unchanged():
    result = normalize(np.zeros(4))
    assert result.tolist() == [0.0, 0.0, 0.0, 0.0]


def test_cosine_similarity_is_scale_independent():
    assert cosine_similarity(np.array([1.0, 2.0]), np.array([10.0, 20.0])) == pytest.approx(1.0)


@pytest.mark.parametrize(
    "bad",
    [
        "0.1,0.2",
        None,
        [],
        [[0.1, 0.2], [0.3, 0.4]],
        [0.1, "x"],
        [0.1, True],
        [0.1, float("nan")],
        12,
    ],
)
def test_validate_embedding_rejects_malformed_input(bad):
    with pytest.raises(InvalidEmbeddingFormat):
        validate_embedding(bad)


def test_validate_embedding_checks_dimension():
    with pytest.raises(InvalidEmbeddingFormat):
        validate_embedding([0.1, 0.2, 0.3], dimension=4)
    assert validate_embedding([1, 2, 3, 4], dimension=4).dtype == np.float64


def test_enroll_then_exact_match(db, matcher):
    assert matcher.enroll(db, 42, [0.6, 0.8]) is EnrollStatus.CREATED
    result = matcher.match(db, 42, [0.6, 0.8])
    assert result.matched is True
    assert result.similarity == pytest.approx(1.0)
    assert result.reason is None


def test_orthogonal_probe_is_rejected(db, matcher):
    matcher.enroll(db, 42, [0.6, 0.8])
    result = matcher.match(db, 42, [0.8, -0.6])
    assert result.matched is False
    assert result.similarity == pytest.approx(0.0, abs=1e-9)
    assert result.reason is MatchReason.BELOW_THRESHOLD


def test_match_without_enrollment(db, matcher):
    for probe in ([0.6, 0.8], [0.0, 0.0], [-5.0, 12.0]):
        result = matcher.match(db, 7, probe)
        assert result.matched is False
        assert result.reason is MatchReason.NO_EMBEDDING_ON_FILE


def test_enroll_normalizes_before_storage(db, matcher):
    matcher.enroll(db, 5, [3.0, 4.0])
    row = db.scalar(select(FaceEmbedding).where(FaceEmbedding.identity_id == 5))
    assert row.embedding_json == pytest.approx([0.6, 0.8])


def test_reenrollment_overwrites_single_row(db, matcher):
    matcher.enroll(db, 9, [1.0, 0.0])
    assert matcher.enroll(db, 9, [0.0, 2.0]) is EnrollStatus.UPDATED

    count = db.scalar(select(func.count()).select_from(FaceEmbedding).where(FaceEmbedding.identity_id == 9))
    assert count == 1
    assert matcher.match(db, 9, [0.0, 1.0]).matched is True
    assert matcher.match(db, 9, [1.0, 0.0]).matched is False


def test_threshold_boundary(db):
    strict = FaceMatcher(threshold=0.90)
    strict.enroll(db, 1, [1.0, 0.0])
    angle = np.arccos(0.95)
    assert strict.match(db, 1, [np.cos(angle), np.sin(angle)]).matched is True
    angle = np.arccos(0.85)
    assert strict.match(db, 1, [np.cos(angle), np.sin(angle)]).matched is False


def test_invalid_probe_fails_before_lookup(db, matcher):
    matcher.enroll(db, 3, [0.6, 0.8])
    with pytest.raises(InvalidEmbeddingFormat):
        matcher.match(db, 3, [0.6, "high"])


def test_dimension_enforced_on_enroll(db):
    sized = FaceMatcher(threshold=0.9, dimension=4)
    with pytest.raises(InvalidEmbeddingFormat):
        sized.enroll(db, 11, [0.6, 0.8])
    assert db.scalar(select(func.count()).select_from(FaceEmbedding)) == 0


def test_probe_dimension_must_match_stored(db, matcher):
    matcher.enroll(db, 4, [0.6, 0.8])
    with pytest.raises(InvalidEmbeddingFormat):
        matcher.match(db, 4, [0.6, 0.8, 0.0])


def test_corrupt_stored_row_is_a_storage_error(db, matcher):
    db.add(FaceEmbedding(identity_id=5, embedding_json=["not", "numbers"]))
    db.commit()
    with pytest.raises(StorageError):
        matcher.match(db, 5, [0.6, 0.8])


def test_stored_row_with_wrong_dimension_is_a_storage_error(db):
    db.add(FaceEmbedding(identity_id=6, embedding_json=[0.6, 0.8]))
    db.commit()
    sized = FaceMatcher(threshold=0.9, dimension=3)
    with pytest.raises(StorageError):
        sized.match(db, 6, [0.6, 0.8, 0.0])
