from __future__ import annotations
from pydantic import BaseModel, Field, model_validator
from typing import Literal
from uuid import UUID
from datetime import datetime
from decimal import Decimal

PactType = Literal["public", "friends"]
ValidationMode = Literal["organizer", "community"]
ChallengeStatus = Literal["pending", "active", "completed"]
ParticipationStatus = Literal["active", "won", "lost", "completed", "expired"]
RuntimeState = Literal["upcoming", "started", "ended"]

class ChallengeCreate(BaseModel):
    title: str = Field(min_length=3, max_length=120)
    description: str | None = None
    pact_type: PactType = "public"
    proof_validation_mode: ValidationMode = "organizer"
    min_bet: Decimal = Field(gt=0, decimal_places=2)
    starts_at: datetime
    ends_at: datetime

    @model_validator(mode="after")
    def ends_after_start(self):
        if self.ends_at < self.starts_at:
            raise ValueError("ends_at must not be before starts_at")
        return self

class ChallengePublic(BaseModel):
    id: UUID
    creator_id: UUID
    title: str
    description: str | None
    pact_type: PactType
    proof_validation_mode: ValidationMode
    min_bet: Decimal
    commission_rate: Decimal
    starts_at: datetime
    ends_at: datetime
    status: ChallengeStatus
    runtime_state: RuntimeState
    participant_count: int
    is_creator: bool

class JoinRequest(BaseModel):
    bet_amount: Decimal = Field(gt=0, decimal_places=2)

class ParticipationPublic(BaseModel):
    id: UUID
    challenge_id: UUID
    user_id: UUID
    bet_amount: Decimal
    status: ParticipationStatus
    joined_at: datetime
    resolved_at: datetime | None = None
    earnings: Decimal | None = None
