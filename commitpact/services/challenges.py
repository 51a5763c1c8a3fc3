from __future__ import annotations
from datetime import datetime
from uuid import UUID
import structlog
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from commitpact.config import settings
from commitpact.models.challenge import Challenge, Participation
from commitpact.schemas.challenge import ChallengeCreate, ChallengePublic
from commitpact.services.clock import Clock, as_utc
from commitpact.services.errors import NotFound, Forbidden, InvalidTransition
from commitpact.services.money import to_cents, from_cents

log = structlog.get_logger()

# pending -> active -> completed, forward only
_STATUS_ORDER = {"pending": 0, "active": 1, "completed": 2}


def advance_status(ch: Challenge, to_status: str) -> None:
    if _STATUS_ORDER[to_status] < _STATUS_ORDER[ch.status]:
        raise InvalidTransition(
            f"challenge cannot go from {ch.status} to {to_status}",
            state={"status": ch.status},
        )
    ch.status = to_status


def compute_runtime_state(ch: Challenge, now: datetime) -> str:
    if now < as_utc(ch.starts_at):
        return "upcoming"
    if now <= as_utc(ch.ends_at):
        return "started"
    return "ended"


async def get_challenge(session: AsyncSession, challenge_id: UUID, *, for_update: bool = False) -> Challenge:
    ch = await session.get(Challenge, challenge_id, with_for_update=for_update)
    if not ch:
        raise NotFound("Challenge not found")
    return ch


async def create_challenge(session: AsyncSession, *, creator_id: UUID, payload: ChallengeCreate) -> Challenge:
    ch = Challenge(
        creator_id=creator_id,
        title=payload.title,
        description=payload.description,
        pact_type=payload.pact_type,
        proof_validation_mode=payload.proof_validation_mode,
        min_bet_cents=to_cents(payload.min_bet),
        starts_at=as_utc(payload.starts_at),
        ends_at=as_utc(payload.ends_at),
        status="pending",
        commission_bps_public=int(settings.commission_rate_public * 10000),
        commission_bps_friends=int(settings.commission_rate_friends * 10000),
    )
    session.add(ch)
    await session.flush()
    log.info("challenge_created", challenge_id=str(ch.id), mode=ch.proof_validation_mode, pact_type=ch.pact_type)
    return ch


async def activate_challenge(session: AsyncSession, *, challenge_id: UUID, actor_id: UUID) -> Challenge:
    ch = await get_challenge(session, challenge_id, for_update=True)
    if ch.creator_id != actor_id:
        raise Forbidden("Only the creator can activate the challenge")
    if ch.status != "active":
        advance_status(ch, "active")
        await session.flush()
        log.info("challenge_activated", challenge_id=str(ch.id))
    return ch


async def hydrate_public(session: AsyncSession, ch: Challenge, user_id: UUID, clock: Clock) -> ChallengePublic:
    participant_count = await session.scalar(
        select(func.count()).select_from(Participation).where(Participation.challenge_id == ch.id)
    )
    return ChallengePublic(
        id=ch.id, creator_id=ch.creator_id, title=ch.title, description=ch.description,
        pact_type=ch.pact_type, proof_validation_mode=ch.proof_validation_mode,
        min_bet=from_cents(ch.min_bet_cents), commission_rate=ch.commission_rate,
        starts_at=as_utc(ch.starts_at), ends_at=as_utc(ch.ends_at), status=ch.status,
        runtime_state=compute_runtime_state(ch, clock.now()),
        participant_count=int(participant_count or 0),
        is_creator=(ch.creator_id == user_id),
    )
