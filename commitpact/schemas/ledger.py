from __future__ import annotations
from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from decimal import Decimal

class LedgerEntryPublic(BaseModel):
    id: UUID
    type: str
    amount: Decimal
    challenge_id: UUID | None = None
    participation_id: UUID | None = None
    external_id: str | None = None
    note: str | None = None
    created_at: datetime

class WalletSnapshot(BaseModel):
    user_id: UUID
    balance: Decimal
    entries: list[LedgerEntryPublic]
