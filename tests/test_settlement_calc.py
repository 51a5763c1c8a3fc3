from __future__ import annotations
import uuid
from decimal import Decimal
import pytest

from commitpact.services.errors import ChallengeNotFinalized, InvariantViolation
from commitpact.services.settlement_calc import ParticipationSnapshot, compute_settlement

CH = uuid.UUID("11111111-1111-1111-1111-111111111111")
FIVE_PCT = Decimal("0.05")


def _p(bet_cents: int, status: str, pid: str | None = None) -> ParticipationSnapshot:
    return ParticipationSnapshot(
        participation_id=uuid.UUID(pid) if pid else uuid.uuid4(),
        user_id=uuid.uuid4(),
        bet_cents=bet_cents,
        status=status,
    )


def _balances(res) -> bool:
    f = res.financials
    paid = sum(w.estimated_total for w in res.winners_previews)
    refunds = sum((r.amount for r in res.refunds), Decimal("0"))
    return paid + refunds + f.commission + f.retained == f.total_pot


def test_worked_example_two_winners():
    w20, w30 = _p(20_00, "won"), _p(30_00, "won")
    res = compute_settlement(CH, [w20, w30, _p(60_00, "lost"), _p(40_00, "expired")], FIVE_PCT)

    f = res.financials
    assert f.losers_pot == Decimal("100.00")
    assert f.commission == Decimal("5.00")
    assert f.distributable_pot == Decimal("95.00")
    assert f.winners_total_stake == Decimal("50.00")
    by_id = {w.participation_id: w for w in res.winners_previews}
    assert by_id[w20.participation_id].estimated_earnings == Decimal("38.00")
    assert by_id[w30.participation_id].estimated_earnings == Decimal("57.00")
    assert by_id[w30.participation_id].estimated_total == Decimal("87.00")
    assert by_id[w20.participation_id].proportion_pct == Decimal("40.00")
    assert res.status.winners == 2 and res.status.losers == 2 and res.status.active == 0
    assert res.can_distribute
    assert _balances(res)


def test_commission_rounds_half_up():
    # 3% of 0.50 = 0.015 -> 0.02
    res = compute_settlement(CH, [_p(1_00, "won"), _p(50, "lost")], Decimal("0.03"))
    assert res.financials.commission == Decimal("0.02")
    assert res.financials.distributable_pot == Decimal("0.48")


def test_leftover_cents_go_to_largest_stake():
    small_a = _p(10_00, "won", "00000000-0000-0000-0000-00000000000a")
    small_b = _p(10_00, "won", "00000000-0000-0000-0000-00000000000b")
    big = _p(20_00, "won", "00000000-0000-0000-0000-00000000000c")
    # 1.00 lost, 5% -> 0.95 to split 1:1:2 -> 23.75 cents each quarter
    res = compute_settlement(CH, [small_a, small_b, big, _p(1_00, "lost")], FIVE_PCT)
    by_id = {w.participation_id: w for w in res.winners_previews}
    assert by_id[small_a.participation_id].estimated_earnings == Decimal("0.23")
    assert by_id[small_b.participation_id].estimated_earnings == Decimal("0.23")
    assert by_id[big.participation_id].estimated_earnings == Decimal("0.49")
    assert sum(w.estimated_earnings for w in res.winners_previews) == Decimal("0.95")
    assert _balances(res)


def test_leftover_tie_goes_to_lowest_id():
    a = _p(10_00, "won", "00000000-0000-0000-0000-00000000000a")
    b = _p(10_00, "won", "00000000-0000-0000-0000-00000000000b")
    c = _p(10_00, "won", "00000000-0000-0000-0000-00000000000c")
    res = compute_settlement(CH, [c, b, a, _p(1_00, "lost")], Decimal("0"))
    by_id = {w.participation_id: w.estimated_earnings for w in res.winners_previews}
    assert by_id[a.participation_id] == Decimal("0.34")
    assert by_id[b.participation_id] == Decimal("0.33")
    assert by_id[c.participation_id] == Decimal("0.33")


def test_zero_winners_platform_retains_pot():
    res = compute_settlement(CH, [_p(30_00, "lost"), _p(70_00, "lost")], FIVE_PCT)
    f = res.financials
    assert f.commission == Decimal("5.00")
    assert f.retained == Decimal("95.00")
    assert res.winners_previews == []
    assert _balances(res)


def test_zero_losers_winners_get_stake_back():
    res = compute_settlement(CH, [_p(20_00, "won"), _p(35_00, "won")], FIVE_PCT)
    assert res.financials.losers_pot == Decimal("0.00")
    assert res.financials.commission == Decimal("0.00")
    assert all(w.estimated_total == w.bet_amount for w in res.winners_previews)
    assert all(w.estimated_earnings == Decimal("0.00") for w in res.winners_previews)


def test_completed_is_refunded_not_counted():
    neutral = _p(25_00, "completed")
    res = compute_settlement(CH, [_p(10_00, "won"), _p(10_00, "lost"), neutral], FIVE_PCT)
    assert res.status.neutral == 1
    assert [r.amount for r in res.refunds] == [Decimal("25.00")]
    assert res.financials.losers_pot == Decimal("10.00")
    assert _balances(res)


def test_active_rows_block_real_settlement():
    rows = [_p(10_00, "won"), _p(10_00, "active")]
    with pytest.raises(ChallengeNotFinalized):
        compute_settlement(CH, rows, FIVE_PCT)


def test_preview_treats_active_as_lost():
    rows = [_p(10_00, "won"), _p(10_00, "active"), _p(10_00, "lost")]
    res = compute_settlement(CH, rows, FIVE_PCT, preview=True)
    assert res.preview is True
    assert res.financials.losers_pot == Decimal("20.00")
    assert res.status.active == 1 and res.status.losers == 1
    assert res.can_distribute is False


def test_unknown_status_halts():
    with pytest.raises(InvariantViolation):
        compute_settlement(CH, [_p(10_00, "refunded")], FIVE_PCT)


def test_same_input_same_output_in_any_order():
    rows = [_p(13_37, "won"), _p(7_01, "won"), _p(99_99, "lost"), _p(12_34, "expired")]
    first = compute_settlement(CH, rows, FIVE_PCT)
    second = compute_settlement(CH, list(reversed(rows)), FIVE_PCT)
    assert first.model_dump_json() == second.model_dump_json()
    assert _balances(first)
