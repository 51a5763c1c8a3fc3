from __future__ import annotations
from uuid import UUID
import structlog
from sqlalchemy import select, update, exists
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from commitpact.config import settings
from commitpact.models.challenge import Challenge, Participation
from commitpact.models.proof import Proof
from commitpact.models.settlement import DistributionReceipt
from commitpact.schemas.settlement import DistributionPublic, FinalizeResult, SettlementResult
from commitpact.services import ledger
from commitpact.services.challenges import advance_status, get_challenge
from commitpact.services.clock import Clock, as_utc
from commitpact.services.errors import (
    AlreadyDistributed, ChallengeNotEligible, Forbidden, InvariantViolation, NotFound,
)
from commitpact.services.locks import advisory_xact_lock
from commitpact.services.money import from_cents
from commitpact.services.settlement_calc import ParticipationSnapshot, compute_settlement, payout_cents

log = structlog.get_logger()


def _lock_key(challenge_id: UUID) -> str:
    return f"challenge:{challenge_id}"


async def _snapshots(session: AsyncSession, challenge_id: UUID) -> list[ParticipationSnapshot]:
    rows = (await session.execute(
        select(Participation.id, Participation.user_id, Participation.bet_cents, Participation.status)
        .where(Participation.challenge_id == challenge_id)
    )).all()
    return [ParticipationSnapshot(participation_id=r[0], user_id=r[1], bet_cents=int(r[2]), status=r[3]) for r in rows]


def _receipt_public(receipt: DistributionReceipt, *, replayed: bool) -> DistributionPublic:
    return DistributionPublic(
        challenge_id=receipt.challenge_id,
        distributed_at=as_utc(receipt.distributed_at),
        replayed=replayed,
        credited=from_cents(receipt.credited_cents),
        platform_revenue=from_cents(receipt.platform_cents),
        result=SettlementResult.model_validate(receipt.result_json),
    )


async def _receipt_for(session: AsyncSession, challenge_id: UUID) -> DistributionReceipt | None:
    return await session.scalar(select(DistributionReceipt).where(DistributionReceipt.challenge_id == challenge_id))


async def finalize(
    session: AsyncSession,
    *,
    challenge_id: UUID,
    clock: Clock,
    actor_id: UUID | None = None,
) -> FinalizeResult:
    """
    Close out every participation still active at challenge end.
    Only rows that are active at this moment are touched, so a proof resolved
    a moment earlier keeps its won/lost. Calling it again is a no-op.
    """
    ch = await get_challenge(session, challenge_id)
    if actor_id is not None and actor_id != ch.creator_id:
        raise Forbidden("Only the creator can finalize the challenge")
    now = clock.now()
    if now < as_utc(ch.ends_at):
        raise ChallengeNotEligible("Challenge has not ended yet", state={"ends_at": as_utc(ch.ends_at).isoformat()})

    await advisory_xact_lock(session, _lock_key(ch.id))

    expired = 0
    if settings.finalize_mark_expired:
        # never engaged: no proof at all
        res = await session.execute(
            update(Participation)
            .where(
                Participation.challenge_id == ch.id,
                Participation.status == "active",
                ~exists().where(Proof.participation_id == Participation.id),
            )
            .values(status="expired", resolved_at=now)
            .returning(Participation.id)
            .execution_options(synchronize_session="fetch")
        )
        expired = len(res.scalars().all())

    res = await session.execute(
        update(Participation)
        .where(Participation.challenge_id == ch.id, Participation.status == "active")
        .values(status="lost", resolved_at=now)
        .returning(Participation.id)
        .execution_options(synchronize_session="fetch")
    )
    lost = len(res.scalars().all())

    if lost or expired:
        log.info("challenge_finalized", challenge_id=str(ch.id), lost=lost, expired=expired)
    return FinalizeResult(challenge_id=ch.id, finalized=lost + expired, lost=lost, expired=expired)


async def preview_distribution(session: AsyncSession, *, challenge_id: UUID) -> SettlementResult:
    """Read-only: still-active participations count as losers, nothing is written."""
    ch = await get_challenge(session, challenge_id)
    return compute_settlement(ch.id, await _snapshots(session, ch.id), ch.commission_rate, preview=True)


async def distribute(
    session: AsyncSession,
    *,
    challenge_id: UUID,
    clock: Clock,
    actor_id: UUID | None = None,
) -> DistributionPublic:
    """
    Finalize, compute, credit and record the receipt in the caller's transaction.
    A challenge with a receipt is never paid again; the stored receipt is returned.
    """
    ch = await get_challenge(session, challenge_id)
    if actor_id is not None and actor_id != ch.creator_id:
        raise Forbidden("Only the creator can distribute the pot")

    await advisory_xact_lock(session, _lock_key(ch.id))
    ch = await session.get(Challenge, ch.id, with_for_update=True, populate_existing=True)

    receipt = await _receipt_for(session, ch.id)
    if receipt:
        log.info("distribution_replayed", challenge_id=str(ch.id))
        return _receipt_public(receipt, replayed=True)

    await finalize(session, challenge_id=ch.id, clock=clock)

    snapshots = await _snapshots(session, ch.id)
    try:
        result = compute_settlement(ch.id, snapshots, ch.commission_rate)
    except InvariantViolation as e:
        log.critical("settlement_invariant_violation", challenge_id=str(ch.id), error=e.message, **e.state)
        raise

    payouts = payout_cents(result)
    refunded = sum(int(r.amount * 100) for r in result.refunds)
    credited = sum(total for _, total, _ in payouts.values()) + refunded
    platform = int((result.financials.commission + result.financials.retained) * 100)
    now = clock.now()

    # the receipt goes in first; a concurrent distributor trips the unique key here
    receipt = DistributionReceipt(
        challenge_id=ch.id,
        distributed_at=now,
        result_json=result.model_dump(mode="json"),
        credited_cents=credited,
        platform_cents=platform,
    )
    session.add(receipt)
    try:
        await session.flush()
    except IntegrityError:
        raise AlreadyDistributed("Challenge was already distributed", state={"challenge_id": str(ch.id)})

    for pid, (user_id, total, earnings) in payouts.items():
        await ledger.credit(
            session, user_id=user_id, cents=total, entry_type="PAYOUT", note="challenge_payout",
            challenge_id=ch.id, participation_id=pid, external_id=f"payout:{ch.id}:{pid}",
        )
    for r in result.refunds:
        await ledger.credit(
            session, user_id=r.user_id, cents=int(r.amount * 100), entry_type="REFUND", note="challenge_refund",
            challenge_id=ch.id, participation_id=r.participation_id, external_id=f"refund:{ch.id}:{r.participation_id}",
        )
    await ledger.record_platform_revenue(session, challenge_id=ch.id, cents=platform, note="commission_and_retained")

    # net gain per participation: share for winners, nothing for refunds, the stake for losers
    for p in (await session.execute(
        select(Participation).where(Participation.challenge_id == ch.id).execution_options(populate_existing=True)
    )).scalars():
        if p.id in payouts:
            p.earnings_cents = payouts[p.id][2]
        elif p.status == "completed":
            p.earnings_cents = 0
        else:
            p.earnings_cents = -p.bet_cents

    advance_status(ch, "completed")
    ch.completed_at = now
    await session.flush()

    log.info(
        "distribution_recorded",
        challenge_id=str(ch.id),
        winners=result.status.winners,
        losers=result.status.losers,
        credited_cents=credited,
        platform_cents=platform,
    )
    return _receipt_public(receipt, replayed=False)


async def replay_after_conflict(session: AsyncSession, *, challenge_id: UUID) -> DistributionPublic:
    """After losing the receipt race: drop our work and hand back the winner's receipt."""
    await session.rollback()
    receipt = await _receipt_for(session, challenge_id)
    if not receipt:
        raise NotFound("Distribution not found")
    return _receipt_public(receipt, replayed=True)


async def get_distribution(session: AsyncSession, *, challenge_id: UUID) -> DistributionPublic:
    await get_challenge(session, challenge_id)
    receipt = await _receipt_for(session, challenge_id)
    if not receipt:
        raise NotFound("Challenge has not been distributed")
    return _receipt_public(receipt, replayed=False)
