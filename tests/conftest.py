from __future__ import annotations

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

os.environ.setdefault("VOTEGATE_DATABASE_URL", "sqlite://")
os.environ.setdefault("VOTEGATE_LOG_DIR", str(Path(tempfile.gettempdir()) / "votegate-test-logs"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from votegate.api.deps import face_matcher, token_service
from votegate.core.security import TokenService
from votegate.db.session import get_db, init_db
from votegate.services.matcher import FaceMatcher
from votegate.vision.types import FaceLandmarks


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_landmarks(ear: float = 0.35, mar: float = 0.1, turn: float = 0.5) -> FaceLandmarks:
    """Synthetic contours whose eye, mouth and head-turn ratios equal the given values."""
    eye = ((0.0, 0.0), (1 / 3, ear / 2), (2 / 3, ear / 2), (1.0, 0.0), (2 / 3, -ear / 2), (1 / 3, -ear / 2))
    mouth = [(0.0, 0.0)] * 20
    mouth[0] = (0.0, 0.0)
    mouth[6] = (1.0, 0.0)
    mouth[13] = (0.5, mar / 2)
    mouth[19] = (0.5, -mar / 2)
    return FaceLandmarks(
        left_eye=eye,
        right_eye=eye,
        mouth=tuple(mouth),
        nose_tip=(turn, 0.5),
        left_edge=(0.0, 0.5),
        right_edge=(1.0, 0.5),
    )


@pytest.fixture
def landmarks():
    return make_landmarks


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def tokens(clock) -> TokenService:
    return TokenService(secret="test-secret-key", clock=clock)


@pytest.fixture
def matcher() -> FaceMatcher:
    return FaceMatcher(threshold=0.90)


@pytest.fixture
def client(session_factory, tokens, matcher):
    from votegate.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[token_service] = lambda: tokens
    app.dependency_overrides[face_matcher] = lambda: matcher
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
