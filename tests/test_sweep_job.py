from __future__ import annotations
import uuid
import pytest

from commitpact.jobs.settle_ended import sweep
from commitpact.services import ledger


@pytest.mark.asyncio
async def test_sweep_settles_after_grace(session, session_factory, clock, make_challenge, join):
    ch = await make_challenge()
    p = await join(ch, 10_00)

    # ended, but still inside the proof grace period
    clock.advance(hours=2)
    assert await sweep(session_factory, clock) == []

    clock.advance(hours=24)
    outcomes = await sweep(session_factory, clock)
    assert [(o.challenge_id, o.outcome) for o in outcomes] == [(ch.id, "distributed")]

    # completed challenges are no longer picked up
    assert await sweep(session_factory, clock) == []
    assert await ledger.balance_cents(session, p.user_id) == 0


@pytest.mark.asyncio
async def test_sweep_skips_pending_and_running(session_factory, clock, make_challenge):
    await make_challenge(activate=False)
    await make_challenge(hours=100)
    clock.advance(hours=30)
    assert await sweep(session_factory, clock) == []


@pytest.mark.asyncio
async def test_database_error_on_one_challenge_does_not_stop_sweep(session_factory, clock, make_challenge, join, monkeypatch):
    from sqlalchemy.exc import OperationalError
    from commitpact.jobs import settle_ended

    broken = await make_challenge(hours=1)
    healthy = await make_challenge(hours=2)
    await join(healthy, 10_00)
    broken_id, healthy_id = broken.id, healthy.id

    real_distribute = settle_ended.distribute

    async def _flaky(session, *, challenge_id, clock):
        if challenge_id == broken_id:
            raise OperationalError("UPDATE accounts", {}, Exception("database is locked"))
        return await real_distribute(session, challenge_id=challenge_id, clock=clock)

    monkeypatch.setattr(settle_ended, "distribute", _flaky)
    clock.advance(hours=30)
    outcomes = await settle_ended.sweep(session_factory, clock)

    assert [(o.challenge_id, o.outcome, o.error) for o in outcomes] == [
        (broken_id, "failed", "database_error"),
        (healthy_id, "distributed", None),
    ]
