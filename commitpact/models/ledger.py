from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, BigInteger, DateTime, ForeignKey, CheckConstraint, Uuid, func
from commitpact.db import Base

# Pseudo-user for commission and retained pots; it has journal entries but no account.
PLATFORM_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000000")


class Account(Base):
    """Spendable balance per user. Only ledger.debit/credit write it."""
    __tablename__ = "accounts"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    balance_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("balance_cents >= 0", name="ck_account_non_negative"),
    )


class LedgerEntry(Base):
    """
    Journal of every balance movement.
    Sign convention:
      - STAKE            => negative (debit user into a challenge)
      - PAYOUT           => positive (stake + share credited to a winner)
      - REFUND           => positive (stake returned unchanged)
      - DEPOSIT          => positive (funds added by the payments collaborator)
      - ADJUST           => +/- (admin fix)
      - PLATFORM_REVENUE => positive, against PLATFORM_USER_ID (commission + retained)
    Idempotency: external_id is unique when set.
    """
    __tablename__ = "ledger_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)
    challenge_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("challenges.id", ondelete="SET NULL"), index=True, nullable=True
    )
    participation_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)

    external_id: Mapped[str | None] = mapped_column(String(96), unique=True, nullable=True)
    note: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
