from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import BigInteger, DateTime, ForeignKey, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from commitpact.db import Base


class DistributionReceipt(Base):
    """Permanent marker that a challenge's pot was distributed. One per challenge."""
    __tablename__ = "distribution_receipts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    challenge_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    distributed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    result_json: Mapped[dict] = mapped_column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    credited_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    platform_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
