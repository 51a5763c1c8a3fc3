from __future__ import annotations
import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, BigInteger, DateTime, func, ForeignKey, Text, Uuid, UniqueConstraint, CheckConstraint, Index
from commitpact.db import Base

class Challenge(Base):
    __tablename__ = "challenges"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    creator_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)
    title: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text())
    pact_type: Mapped[str] = mapped_column(String(16), nullable=False, default="public")  # public|friends
    proof_validation_mode: Mapped[str] = mapped_column(String(16), nullable=False, default="organizer")  # organizer|community
    min_bet_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending|active|completed
    # basis points, snapshotted at creation
    commission_bps_public: Mapped[int] = mapped_column(Integer, nullable=False, default=500)
    commission_bps_friends: Mapped[int] = mapped_column(Integer, nullable=False, default=300)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("ends_at >= starts_at", name="ck_challenge_dates"),
        CheckConstraint("min_bet_cents > 0", name="ck_challenge_min_bet"),
        Index("ix_challenges_status_ends_at", "status", "ends_at"),
    )

    @property
    def commission_rate(self) -> Decimal:
        bps = self.commission_bps_friends if self.pact_type == "friends" else self.commission_bps_public
        return Decimal(bps) / Decimal(10000)

class Participation(Base):
    __tablename__ = "participations"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    challenge_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)
    bet_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")  # active|won|lost|completed|expired
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    earnings_cents: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_participation_once_per_user"),
        CheckConstraint("bet_cents > 0", name="ck_participation_bet_positive"),
    )
