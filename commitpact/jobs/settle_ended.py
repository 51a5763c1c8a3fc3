from __future__ import annotations
import asyncio
from datetime import timedelta
import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from commitpact.config import settings
from commitpact.db import SessionLocal
from commitpact.models.challenge import Challenge
from commitpact.schemas.settlement import SweepOutcome
from commitpact.services.clock import Clock, system_clock
from commitpact.services.errors import AlreadyDistributed, SettlementError
from commitpact.services.settlement import distribute, replay_after_conflict

log = structlog.get_logger()


async def _due(session: AsyncSession, clock: Clock) -> list:
    # proofs are still accepted during the grace period, so wait it out
    cutoff = clock.now() - timedelta(hours=settings.proof_grace_hours)
    return (await session.execute(
        select(Challenge.id)
        .where(Challenge.status == "active", Challenge.ends_at <= cutoff)
        .order_by(Challenge.ends_at.asc())
        .limit(settings.sweep_batch_size)
    )).scalars().all()


async def sweep(
    session_factory: async_sessionmaker = SessionLocal,
    clock: Clock = system_clock,
) -> list[SweepOutcome]:
    async with session_factory() as session:
        due = await _due(session, clock)

    outcomes: list[SweepOutcome] = []
    # one transaction per challenge; a failing challenge never blocks the rest
    for challenge_id in due:
        async with session_factory() as session:
            try:
                res = await distribute(session, challenge_id=challenge_id, clock=clock)
                await session.commit()
                outcomes.append(SweepOutcome(challenge_id=challenge_id, outcome="replayed" if res.replayed else "distributed"))
            except AlreadyDistributed:
                await replay_after_conflict(session, challenge_id=challenge_id)
                outcomes.append(SweepOutcome(challenge_id=challenge_id, outcome="replayed"))
            except SettlementError as e:
                await session.rollback()
                log.error("sweep_challenge_failed", challenge_id=str(challenge_id), code=e.code, error=e.message)
                outcomes.append(SweepOutcome(challenge_id=challenge_id, outcome="failed", error=e.code))
            except SQLAlchemyError as e:
                await session.rollback()
                log.error("sweep_challenge_db_error", challenge_id=str(challenge_id), error=str(e))
                outcomes.append(SweepOutcome(challenge_id=challenge_id, outcome="failed", error="database_error"))

    log.info("sweep_done", due=len(due), distributed=sum(1 for o in outcomes if o.outcome == "distributed"))
    return outcomes


def settle_ended_challenges():
    # RQ entry point (sync); run the async coroutine
    outcomes = asyncio.run(sweep())
    return [o.model_dump(mode="json") for o in outcomes]
