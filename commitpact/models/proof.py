from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Integer, Float, DateTime, ForeignKey, UniqueConstraint, Uuid, func
from commitpact.db import Base


class Proof(Base):
    __tablename__ = "proofs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    participation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("participations.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    challenge_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)

    content: Mapped[str] = mapped_column(Text(), nullable=False)   # URL, text, or JSON from the fitness bridge
    value: Mapped[float | None] = mapped_column(Float, nullable=True)
    confidence: Mapped[int | None] = mapped_column(Integer, nullable=True)  # opaque authenticity score, never decisive
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending|approved|rejected
    resolution_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)  # organizer|veto|quorum|auto

    # organizer mode
    organizer_validation: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    organizer_comment: Mapped[str | None] = mapped_column(Text(), nullable=True)
    validated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    validated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # community mode tallies (denormalized from votes under the proof lock)
    approve_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    veto_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Vote(Base):
    __tablename__ = "votes"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    proof_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("proofs.id", ondelete="CASCADE"), index=True, nullable=False)
    voter_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)
    vote_type: Mapped[str] = mapped_column(String(8), nullable=False)  # approve|veto
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("proof_id", "voter_id", name="uq_vote_once_per_voter"),
    )
