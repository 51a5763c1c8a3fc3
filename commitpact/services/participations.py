from __future__ import annotations
import uuid
from datetime import datetime
from uuid import UUID
import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from commitpact.models.challenge import Participation
from commitpact.schemas.challenge import ParticipationPublic
from commitpact.services import ledger
from commitpact.services.challenges import get_challenge
from commitpact.services.clock import Clock, as_utc
from commitpact.services.errors import InvalidJoin, InvalidTransition, NotFound
from commitpact.services.money import from_cents

log = structlog.get_logger()

ACTIVE = "active"
TERMINAL = frozenset({"won", "lost", "completed", "expired"})
# Every terminal state is reachable from active only; nothing leaves a terminal state.
TRANSITIONS: dict[str, frozenset[str]] = {ACTIVE: TERMINAL}


def can_transition(src: str, dst: str) -> bool:
    return dst in TRANSITIONS.get(src, frozenset())


async def transition(session: AsyncSession, participation_id: UUID, to_status: str, *, at: datetime) -> bool:
    """
    Check-and-set active -> to_status.
    Returns False when the participation was no longer active (someone else closed it first).
    """
    if not can_transition(ACTIVE, to_status):
        raise InvalidTransition(f"cannot move a participation to {to_status}")
    res = await session.execute(
        update(Participation)
        .where(Participation.id == participation_id, Participation.status == ACTIVE)
        .values(status=to_status, resolved_at=at)
        .returning(Participation.id)
        .execution_options(synchronize_session="fetch")
    )
    return res.scalar_one_or_none() is not None


async def get_participation(session: AsyncSession, participation_id: UUID) -> Participation:
    p = await session.get(Participation, participation_id)
    if not p:
        raise NotFound("Participation not found")
    return p


async def join(
    session: AsyncSession,
    *,
    challenge_id: UUID,
    user_id: UUID,
    bet_cents: int,
    clock: Clock,
) -> Participation:
    """
    Create the participation and debit the stake in the caller's transaction.
    Any failure leaves neither a participation nor a debit once the session rolls back.
    """
    ch = await get_challenge(session, challenge_id)
    now = clock.now()

    if ch.status != "active":
        raise InvalidJoin("Challenge is not active", state={"challenge_status": ch.status})
    if now >= as_utc(ch.ends_at):
        raise InvalidJoin("Challenge has ended")
    if user_id == ch.creator_id:
        raise InvalidJoin("Creators cannot join their own challenge")
    if bet_cents <= 0 or bet_cents < ch.min_bet_cents:
        raise InvalidJoin(
            f"Minimum bet is {from_cents(ch.min_bet_cents)}",
            state={"min_bet": str(from_cents(ch.min_bet_cents))},
        )

    existing = await session.scalar(
        select(Participation).where(Participation.challenge_id == ch.id, Participation.user_id == user_id)
    )
    if existing:
        raise InvalidJoin("Already participating in this challenge", state={"participation_id": str(existing.id)})

    pid = uuid.uuid4()
    await ledger.debit(
        session,
        user_id=user_id,
        cents=bet_cents,
        entry_type="STAKE",
        note="stake_join",
        challenge_id=ch.id,
        participation_id=pid,
        external_id=f"stake:{pid}",
    )

    p = Participation(id=pid, challenge_id=ch.id, user_id=user_id, bet_cents=bet_cents, status=ACTIVE, joined_at=now)
    session.add(p)
    try:
        await session.flush()
    except IntegrityError:
        # concurrent join by the same user won the unique constraint
        raise InvalidJoin("Already participating in this challenge")

    log.info("participation_joined", challenge_id=str(ch.id), participation_id=str(p.id), bet_cents=bet_cents)
    return p


async def list_participations(session: AsyncSession, challenge_id: UUID) -> list[Participation]:
    return (await session.execute(
        select(Participation)
        .where(Participation.challenge_id == challenge_id)
        .order_by(Participation.joined_at.asc(), Participation.id)
    )).scalars().all()


def to_public(p: Participation) -> ParticipationPublic:
    return ParticipationPublic(
        id=p.id,
        challenge_id=p.challenge_id,
        user_id=p.user_id,
        bet_amount=from_cents(p.bet_cents),
        status=p.status,
        joined_at=as_utc(p.joined_at),
        resolved_at=as_utc(p.resolved_at) if p.resolved_at else None,
        earnings=from_cents(p.earnings_cents) if p.earnings_cents is not None else None,
    )
