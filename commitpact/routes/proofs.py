from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from commitpact.db import get_session
from commitpact.auth_deps import get_current_user_id
from commitpact.schemas.proof import (
    DecisionRequest, ProofPublic, ProofSubmit, ResolutionOutcome, VerifiedResultSubmit, VoteRequest,
)
from commitpact.services import proofs
from commitpact.services.clock import Clock, get_clock

router = APIRouter(tags=["proofs"])


@router.post("/participations/{participation_id}/proof", response_model=ProofPublic, status_code=201)
async def submit_proof(
    participation_id: UUID,
    payload: ProofSubmit,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
    clock: Clock = Depends(get_clock),
):
    proof = await proofs.submit_proof(
        session,
        participation_id=participation_id,
        user_id=user_id,
        content=payload.content,
        value=payload.value,
        confidence=payload.confidence,
        clock=clock,
    )
    await session.commit()
    return await proofs.to_public(session, proof)


@router.post("/participations/{participation_id}/verified-result", response_model=ProofPublic, status_code=201)
async def submit_verified_result(
    participation_id: UUID,
    payload: VerifiedResultSubmit,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
    clock: Clock = Depends(get_clock),
):
    """Called by the fitness bridge on the participant's behalf."""
    proof, _ = await proofs.submit_verified_result(
        session,
        participation_id=participation_id,
        user_id=user_id,
        achieved=payload.achieved,
        measured_value=payload.measured_value,
        target_value=payload.target_value,
        unit=payload.unit,
        source=payload.source,
        clock=clock,
    )
    await session.commit()
    return await proofs.to_public(session, proof)


@router.post("/proofs/{proof_id}/decision", response_model=ResolutionOutcome)
async def decide(
    proof_id: UUID,
    payload: DecisionRequest,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
    clock: Clock = Depends(get_clock),
):
    outcome = await proofs.decide(
        session, proof_id=proof_id, organizer_id=user_id, decision=payload.decision, comment=payload.comment, clock=clock,
    )
    await session.commit()
    return outcome


@router.post("/proofs/{proof_id}/votes", response_model=ResolutionOutcome)
async def vote(
    proof_id: UUID,
    payload: VoteRequest,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
    clock: Clock = Depends(get_clock),
):
    outcome = await proofs.vote(session, proof_id=proof_id, voter_id=user_id, vote_type=payload.vote_type, clock=clock)
    await session.commit()
    return outcome


@router.get("/proofs/{proof_id}", response_model=ProofPublic)
async def get_proof(
    proof_id: UUID,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
):
    return await proofs.to_public(session, await proofs.get_proof(session, proof_id))
