from __future__ import annotations
import os
from uuid import UUID
import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from rq import Queue
from redis import Redis

from commitpact.db import get_session
from commitpact.auth_deps import get_current_user_id
from commitpact.jobs.settle_ended import settle_ended_challenges
from commitpact.schemas.settlement import DistributionPublic, FinalizeResult, SettlementResult
from commitpact.services import settlement
from commitpact.services.clock import Clock, get_clock
from commitpact.services.errors import AlreadyDistributed

router = APIRouter(tags=["settlement"])
log = structlog.get_logger()

# RQ queue (lazy single instance)
_redis = Redis.from_url(os.getenv("REDIS_URL", "redis://redis:6379/0"))
q = Queue("default", connection=_redis)


@router.get("/challenges/{challenge_id}/settlement/preview", response_model=SettlementResult)
async def preview(
    challenge_id: UUID,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
):
    return await settlement.preview_distribution(session, challenge_id=challenge_id)


@router.post("/challenges/{challenge_id}/finalize", response_model=FinalizeResult)
async def finalize(
    challenge_id: UUID,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
    clock: Clock = Depends(get_clock),
):
    res = await settlement.finalize(session, challenge_id=challenge_id, clock=clock, actor_id=user_id)
    await session.commit()
    return res


@router.post("/challenges/{challenge_id}/distribute", response_model=DistributionPublic)
async def distribute(
    challenge_id: UUID,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
    clock: Clock = Depends(get_clock),
):
    try:
        res = await settlement.distribute(session, challenge_id=challenge_id, clock=clock, actor_id=user_id)
        await session.commit()
    except AlreadyDistributed:
        # lost the race to a concurrent call; its receipt is the answer
        res = await settlement.replay_after_conflict(session, challenge_id=challenge_id)
    return res


@router.get("/challenges/{challenge_id}/settlement", response_model=DistributionPublic)
async def get_settlement(
    challenge_id: UUID,
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
):
    return await settlement.get_distribution(session, challenge_id=challenge_id)


@router.post("/settlements/sweep", status_code=202)
async def enqueue_sweep(user_id: UUID = Depends(get_current_user_id)):
    try:
        job = q.enqueue(settle_ended_challenges, job_timeout=300)
    except Exception as e:
        log.warning("sweep_enqueue_failed", error=str(e))
        raise HTTPException(status_code=503, detail="Job queue unavailable")
    return {"job_id": job.id, "queued": True}
