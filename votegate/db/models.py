from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class FaceEmbedding(Base):
    __tablename__ = "face_embeddings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity_id: Mapped[int] = mapped_column(Integer, unique=True, index=True)
    embedding_json: Mapped[list] = mapped_column(JSON)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class Ballot(Base):
    __tablename__ = "ballots"
    __table_args__ = (
        UniqueConstraint("identity_id", "election_id", "position_id", name="uq_ballot_identity_election_position"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity_id: Mapped[int] = mapped_column(Integer, index=True)
    election_id: Mapped[int] = mapped_column(Integer, index=True)
    position_id: Mapped[str] = mapped_column(String(64))
    encrypted_vote: Mapped[str] = mapped_column(Text)
    cast_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class VoteReceipt(Base):
    """One row per (identity, election); the insert is the one-time-use guard for vote tokens."""

    __tablename__ = "vote_receipts"
    __table_args__ = (UniqueConstraint("identity_id", "election_id", name="uq_receipt_identity_election"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity_id: Mapped[int] = mapped_column(Integer, index=True)
    election_id: Mapped[int] = mapped_column(Integer, index=True)
    cast_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
