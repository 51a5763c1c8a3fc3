from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from commitpact.db import get_session
from commitpact.auth_deps import get_current_user_id
from commitpact.schemas.challenge import ChallengeCreate, ChallengePublic, JoinRequest, ParticipationPublic
from commitpact.services import participations
from commitpact.services.challenges import activate_challenge, create_challenge, get_challenge, hydrate_public
from commitpact.services.clock import Clock, get_clock
from commitpact.services.money import to_cents

router = APIRouter(prefix="/challenges", tags=["challenges"])


@router.post("", response_model=ChallengePublic, status_code=201)
async def create(
    payload: ChallengeCreate,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
    clock: Clock = Depends(get_clock),
):
    ch = await create_challenge(session, creator_id=user_id, payload=payload)
    await session.commit()
    return await hydrate_public(session, ch, user_id, clock)


@router.post("/{challenge_id}/activate", response_model=ChallengePublic)
async def activate(
    challenge_id: UUID,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
    clock: Clock = Depends(get_clock),
):
    ch = await activate_challenge(session, challenge_id=challenge_id, actor_id=user_id)
    await session.commit()
    return await hydrate_public(session, ch, user_id, clock)


@router.get("/{challenge_id}", response_model=ChallengePublic)
async def get_one(
    challenge_id: UUID,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
    clock: Clock = Depends(get_clock),
):
    ch = await get_challenge(session, challenge_id)
    return await hydrate_public(session, ch, user_id, clock)


@router.post("/{challenge_id}/join", response_model=ParticipationPublic, status_code=201)
async def join(
    challenge_id: UUID,
    payload: JoinRequest,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
    clock: Clock = Depends(get_clock),
):
    p = await participations.join(
        session, challenge_id=challenge_id, user_id=user_id, bet_cents=to_cents(payload.bet_amount), clock=clock,
    )
    await session.commit()
    return participations.to_public(p)


@router.get("/{challenge_id}/participations", response_model=list[ParticipationPublic])
async def list_participations(
    challenge_id: UUID,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
):
    await get_challenge(session, challenge_id)
    rows = await participations.list_participations(session, challenge_id)
    return [participations.to_public(p) for p in rows]
