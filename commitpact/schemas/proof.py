from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Literal
from uuid import UUID
from datetime import datetime

ProofStatus = Literal["pending", "approved", "rejected"]
Decision = Literal["approved", "rejected"]
VoteType = Literal["approve", "veto"]

class ProofSubmit(BaseModel):
    content: str = Field(min_length=1)
    value: float | None = None
    confidence: int | None = Field(default=None, ge=0, le=100)

class VerifiedResultSubmit(BaseModel):
    """Payload from the fitness-API bridge (HealthKit / Google Fit)."""
    achieved: bool
    measured_value: float
    target_value: float | None = None
    unit: str = Field(default="", max_length=32)
    source: str = Field(min_length=1, max_length=32)

class DecisionRequest(BaseModel):
    decision: Decision
    comment: str | None = Field(default=None, max_length=1000)

class VoteRequest(BaseModel):
    vote_type: VoteType

class ProofPublic(BaseModel):
    id: UUID
    participation_id: UUID
    challenge_id: UUID
    user_id: UUID
    content: str
    value: float | None = None
    confidence: int | None = None
    submitted_at: datetime
    status: ProofStatus
    resolution_reason: str | None = None
    organizer_validation: ProofStatus
    organizer_comment: str | None = None
    validated_by: UUID | None = None
    validated_at: datetime | None = None
    approve_count: int
    veto_count: int
    quorum: int | None = None
    votes_needed: int | None = None

class ResolutionOutcome(BaseModel):
    proof_id: UUID
    status: ProofStatus
    participation_status: str
    reason: str | None = None
    approve_count: int = 0
    veto_count: int = 0
    quorum: int | None = None
    eligible: int | None = None
    votes_needed: int | None = None
