from __future__ import annotations
import uuid
import pytest
from sqlalchemy import select, func

from commitpact.models.ledger import LedgerEntry, PLATFORM_USER_ID
from commitpact.services import ledger
from commitpact.services.errors import InsufficientFunds, InvalidAmount


@pytest.mark.asyncio
async def test_credit_then_debit(session):
    u = uuid.uuid4()
    await ledger.credit(session, user_id=u, cents=50_00, entry_type="DEPOSIT", note="top_up")
    await ledger.debit(session, user_id=u, cents=20_00, note="stake")
    assert await ledger.balance_cents(session, u) == 30_00

    amounts = sorted(e.amount_cents for e in await ledger.ledger_entries(session, u))
    assert amounts == [-20_00, 50_00]


@pytest.mark.asyncio
async def test_debit_refuses_overdraft(session):
    u = uuid.uuid4()
    await ledger.credit(session, user_id=u, cents=5_00, entry_type="DEPOSIT", note="top_up")
    with pytest.raises(InsufficientFunds) as exc:
        await ledger.debit(session, user_id=u, cents=5_01, note="stake")
    assert exc.value.state == {"balance": "5.00", "required": "5.01"}
    assert await ledger.balance_cents(session, u) == 5_00


@pytest.mark.asyncio
async def test_debit_without_account(session):
    with pytest.raises(InsufficientFunds):
        await ledger.debit(session, user_id=uuid.uuid4(), cents=1, note="stake")


@pytest.mark.asyncio
async def test_credit_is_idempotent_by_external_id(session):
    u = uuid.uuid4()
    first = await ledger.credit(session, user_id=u, cents=12_00, entry_type="PAYOUT", note="p", external_id="payout:x")
    again = await ledger.credit(session, user_id=u, cents=12_00, entry_type="PAYOUT", note="p", external_id="payout:x")
    assert first.id == again.id
    assert await ledger.balance_cents(session, u) == 12_00


@pytest.mark.asyncio
async def test_credits_accumulate(session):
    u = uuid.uuid4()
    for _ in range(5):
        await ledger.credit(session, user_id=u, cents=1_01, entry_type="DEPOSIT", note="drip")
    assert await ledger.balance_cents(session, u) == 5_05


@pytest.mark.asyncio
async def test_zero_credit_leaves_no_trace(session):
    u = uuid.uuid4()
    assert await ledger.credit(session, user_id=u, cents=0, entry_type="PAYOUT", note="nothing") is None
    count = await session.scalar(select(func.count()).select_from(LedgerEntry).where(LedgerEntry.user_id == u))
    assert count == 0


@pytest.mark.asyncio
async def test_negative_amounts_rejected(session):
    with pytest.raises(InvalidAmount):
        await ledger.credit(session, user_id=uuid.uuid4(), cents=-1, entry_type="ADJUST", note="x")
    with pytest.raises(InvalidAmount):
        await ledger.debit(session, user_id=uuid.uuid4(), cents=0, note="x")


@pytest.mark.asyncio
async def test_platform_revenue_journaled_once(session, make_challenge):
    ch = await make_challenge()
    await ledger.record_platform_revenue(session, challenge_id=ch.id, cents=5_00, note="commission")
    await ledger.record_platform_revenue(session, challenge_id=ch.id, cents=5_00, note="commission")
    rows = (await session.execute(
        select(LedgerEntry).where(LedgerEntry.user_id == PLATFORM_USER_ID)
    )).scalars().all()
    assert [r.amount_cents for r in rows] == [5_00]
    assert rows[0].type == "PLATFORM_REVENUE"
