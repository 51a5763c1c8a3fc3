"""
Pure settlement arithmetic.

Everything is integer cents. The only rounding steps are the half-up
commission and the floored winner shares; the cents the floor leaves
behind go to the largest-stake winner so the pot always balances.
"""
from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from commitpact.schemas.settlement import (
    Financials, RefundLine, SettlementResult, StatusCounts, WinnerPreview,
)
from commitpact.services.errors import ChallengeNotFinalized, InvariantViolation
from commitpact.services.money import from_cents, round_cents

WINNER = frozenset({"won"})
LOSER = frozenset({"lost", "expired"})
NEUTRAL = frozenset({"completed"})
KNOWN = WINNER | LOSER | NEUTRAL | {"active"}


@dataclass(frozen=True)
class ParticipationSnapshot:
    participation_id: UUID
    user_id: UUID
    bet_cents: int
    status: str


def _largest_stake(winners: list[ParticipationSnapshot]) -> ParticipationSnapshot:
    # winners arrive sorted by id, so max() keeps the lowest id on a tie
    return max(winners, key=lambda w: w.bet_cents)


def compute_settlement(
    challenge_id: UUID,
    participations: Iterable[ParticipationSnapshot],
    commission_rate: Decimal,
    *,
    preview: bool = False,
) -> SettlementResult:
    rows = sorted(participations, key=lambda p: str(p.participation_id))

    for p in rows:
        if p.status not in KNOWN:
            raise InvariantViolation(f"unknown participation status {p.status!r}", state={"participation_id": str(p.participation_id)})
        if p.bet_cents <= 0:
            raise InvariantViolation("participation with non-positive stake", state={"participation_id": str(p.participation_id)})

    active = [p for p in rows if p.status == "active"]
    if active and not preview:
        raise ChallengeNotFinalized(
            "Challenge still has active participations",
            state={"active": len(active)},
        )

    winners = [p for p in rows if p.status in WINNER]
    losers = [p for p in rows if p.status in LOSER or p.status == "active"]
    neutral = [p for p in rows if p.status in NEUTRAL]

    total_pot = sum(p.bet_cents for p in rows)
    losers_pot = sum(p.bet_cents for p in losers)
    commission = round_cents(Decimal(losers_pot) * commission_rate)
    distributable = losers_pot - commission
    winners_stake = sum(w.bet_cents for w in winners)

    if winners and winners_stake <= 0:
        raise InvariantViolation("winners present but their total stake is zero")

    shares: dict[UUID, int] = {}
    retained = 0
    if winners:
        for w in winners:
            shares[w.participation_id] = distributable * w.bet_cents // winners_stake
        leftover = distributable - sum(shares.values())
        if leftover:
            shares[_largest_stake(winners).participation_id] += leftover
    else:
        # nobody to pay; the platform keeps the distributable pot
        retained = distributable

    previews = [
        WinnerPreview(
            participation_id=w.participation_id,
            user_id=w.user_id,
            bet_amount=from_cents(w.bet_cents),
            proportion_pct=(Decimal(w.bet_cents) * 100 / Decimal(winners_stake)).quantize(Decimal("0.01")),
            estimated_earnings=from_cents(shares[w.participation_id]),
            estimated_total=from_cents(w.bet_cents + shares[w.participation_id]),
        )
        for w in winners
    ]
    refunds = [
        RefundLine(participation_id=p.participation_id, user_id=p.user_id, amount=from_cents(p.bet_cents))
        for p in neutral
    ]

    paid = sum(w.bet_cents + shares[w.participation_id] for w in winners)
    refunded = sum(p.bet_cents for p in neutral)
    if paid + refunded + commission + retained != total_pot:
        raise InvariantViolation(
            "settlement does not balance",
            state={"total_pot": total_pot, "paid": paid, "refunded": refunded, "commission": commission, "retained": retained},
        )

    return SettlementResult(
        challenge_id=challenge_id,
        preview=preview,
        financials=Financials(
            total_pot=from_cents(total_pot),
            losers_pot=from_cents(losers_pot),
            commission_rate=commission_rate,
            commission=from_cents(commission),
            distributable_pot=from_cents(distributable),
            winners_total_stake=from_cents(winners_stake),
            retained=from_cents(retained),
        ),
        status=StatusCounts(
            winners=len(winners),
            losers=len(losers) - len(active),
            active=len(active),
            neutral=len(neutral),
            total=len(rows),
        ),
        winners_previews=previews,
        refunds=refunds,
        can_distribute=not active,
    )


def payout_cents(result: SettlementResult) -> dict[UUID, tuple[UUID, int, int]]:
    """participation_id -> (user_id, total credited, earnings) from a computed result."""
    return {
        w.participation_id: (w.user_id, int(w.estimated_total * 100), int(w.estimated_earnings * 100))
        for w in result.winners_previews
    }
