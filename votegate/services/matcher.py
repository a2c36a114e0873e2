from __future__ import annotations

import logging
import numbers
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Optional

import numpy as np
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from votegate.core.config import get_settings
from votegate.db.models import FaceEmbedding
from votegate.exceptions import InvalidEmbeddingFormat, StorageError

logger = logging.getLogger(__name__)


class MatchReason(str, Enum):
    NO_EMBEDDING_ON_FILE = "NoEmbeddingOnFile"
    BELOW_THRESHOLD = "BelowThreshold"
    NO_FACE_DETECTED = "NoFaceDetected"
    EXTRACTION_ERROR = "ExtractionError"


class EnrollStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


@dataclass(frozen=True)
class MatchResult:
    matched: bool
    similarity: float
    reason: Optional[MatchReason] = None


def validate_embedding(values: Any, dimension: Optional[int] = None) -> np.ndarray:
    """Return ``values`` as a float64 vector or raise ``InvalidEmbeddingFormat``."""
    if isinstance(values, (str, bytes)) or values is None:
        raise InvalidEmbeddingFormat("Embedding must be a sequence of numbers.")
    if not isinstance(values, np.ndarray):
        try:
            items = list(values)
        except TypeError as exc:
            raise InvalidEmbeddingFormat("Embedding must be a sequence of numbers.") from exc
        if any(isinstance(v, bool) or not isinstance(v, numbers.Real) for v in items):
            raise InvalidEmbeddingFormat("Embedding components must be numeric.")
        values = items

    try:
        vector = np.asarray(values, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise InvalidEmbeddingFormat("Embedding components must be numeric.") from exc
    if vector.ndim != 1 or vector.size == 0:
        raise InvalidEmbeddingFormat("Embedding must be a non-empty 1D vector.")
    if dimension is not None and vector.size != dimension:
        raise InvalidEmbeddingFormat(f"Embedding must contain exactly {dimension} values, got {vector.size}.")
    if not np.all(np.isfinite(vector)):
        raise InvalidEmbeddingFormat("Embedding contains non-finite values.")
    return vector


def normalize(vector: np.ndarray) -> np.ndarray:
    """Scale to unit length; an all-zero vector is returned unchanged."""
    vector = np.asarray(vector, dtype=np.float64)
    norm = float(np.linalg.norm(vector))
    if norm == 0.0:
        return vector
    return vector / norm


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    denom = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a, b) / denom)


class FaceMatcher:
    """One enrolled descriptor per identity, compared by cosine similarity."""

    def __init__(self, threshold: float = 0.90, dimension: Optional[int] = None) -> None:
        self.threshold = threshold
        self.dimension = dimension

    def _load(self, db: Session, identity_id: int) -> Optional[FaceEmbedding]:
        try:
            return db.scalar(select(FaceEmbedding).where(FaceEmbedding.identity_id == identity_id))
        except SQLAlchemyError as exc:
            logger.exception("Embedding lookup failed for identity %s", identity_id)
            raise StorageError("Embedding lookup failed.") from exc

    def enroll(self, db: Session, identity_id: int, raw_embedding: Any) -> EnrollStatus:
        vector = normalize(validate_embedding(raw_embedding, self.dimension))
        row = self._load(db, identity_id)
        try:
            if row is None:
                db.add(FaceEmbedding(identity_id=identity_id, embedding_json=vector.tolist()))
                status = EnrollStatus.CREATED
            else:
                row.embedding_json = vector.tolist()
                status = EnrollStatus.UPDATED
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Embedding upsert failed for identity %s", identity_id)
            raise StorageError("Embedding upsert failed.") from exc

        logger.info("Face embedding %s for identity %s", status.value, identity_id)
        return status

    def match(self, db: Session, identity_id: int, raw_probe: Any) -> MatchResult:
        probe = normalize(validate_embedding(raw_probe, self.dimension))
        row = self._load(db, identity_id)
        if row is None:
            return MatchResult(matched=False, similarity=0.0, reason=MatchReason.NO_EMBEDDING_ON_FILE)

        try:
            stored = validate_embedding(row.embedding_json, self.dimension)
        except InvalidEmbeddingFormat as exc:
            logger.error("Stored embedding for identity %s is corrupt: %s", identity_id, exc)
            raise StorageError("Stored embedding is unreadable.") from exc
        if stored.size != probe.size:
            # Reachable only when no dimension is configured.
            logger.warning(
                "Stored embedding for identity %s has %d values, probe has %d",
                identity_id,
                stored.size,
                probe.size,
            )
            raise InvalidEmbeddingFormat("Probe dimension does not match the enrolled embedding.")

        similarity = cosine_similarity(normalize(stored), probe)
        logger.debug("Similarity for identity %s: %.4f", identity_id, similarity)
        if similarity >= self.threshold:
            return MatchResult(matched=True, similarity=similarity)
        return MatchResult(matched=False, similarity=similarity, reason=MatchReason.BELOW_THRESHOLD)


@lru_cache(maxsize=1)
def get_matcher() -> FaceMatcher:
    settings = get_settings()
    return FaceMatcher(threshold=settings.match_threshold, dimension=settings.embedding_dimension)
