from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Literal
from uuid import UUID
from datetime import datetime
from decimal import Decimal

class Financials(BaseModel):
    total_pot: Decimal
    losers_pot: Decimal
    commission_rate: Decimal
    commission: Decimal
    distributable_pot: Decimal
    winners_total_stake: Decimal
    # distributable pot kept by the platform when nobody won
    retained: Decimal

class StatusCounts(BaseModel):
    winners: int
    losers: int
    active: int
    neutral: int
    total: int

class WinnerPreview(BaseModel):
    participation_id: UUID
    user_id: UUID
    bet_amount: Decimal
    proportion_pct: Decimal
    estimated_earnings: Decimal
    estimated_total: Decimal

class RefundLine(BaseModel):
    participation_id: UUID
    user_id: UUID
    amount: Decimal

class SettlementResult(BaseModel):
    challenge_id: UUID
    preview: bool
    financials: Financials
    status: StatusCounts
    winners_previews: list[WinnerPreview] = Field(default_factory=list)
    refunds: list[RefundLine] = Field(default_factory=list)
    can_distribute: bool

class FinalizeResult(BaseModel):
    challenge_id: UUID
    finalized: int
    lost: int
    expired: int

class DistributionPublic(BaseModel):
    challenge_id: UUID
    distributed_at: datetime
    replayed: bool
    credited: Decimal
    platform_revenue: Decimal
    result: SettlementResult

class SweepOutcome(BaseModel):
    challenge_id: UUID
    outcome: Literal["distributed", "replayed", "failed"]
    error: str | None = None
