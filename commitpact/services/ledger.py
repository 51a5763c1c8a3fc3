from __future__ import annotations
from uuid import UUID
import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from commitpact.models.ledger import Account, LedgerEntry, PLATFORM_USER_ID
from commitpact.services.errors import InsufficientFunds, InvalidAmount
from commitpact.services.money import from_cents

log = structlog.get_logger()


async def balance_cents(session: AsyncSession, user_id: UUID) -> int:
    bal = await session.scalar(select(Account.balance_cents).where(Account.user_id == user_id))
    return int(bal or 0)


async def ledger_entries(session: AsyncSession, user_id: UUID, limit: int = 100) -> list[LedgerEntry]:
    return (await session.execute(
        select(LedgerEntry)
        .where(LedgerEntry.user_id == user_id)
        .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id)
        .limit(limit)
    )).scalars().all()


async def _ensure_account(session: AsyncSession, user_id: UUID) -> None:
    if await session.get(Account, user_id) is None:
        session.add(Account(user_id=user_id, balance_cents=0))
        await session.flush()


async def debit(
    session: AsyncSession,
    *,
    user_id: UUID,
    cents: int,
    entry_type: str = "STAKE",
    note: str,
    challenge_id: UUID | None = None,
    participation_id: UUID | None = None,
    external_id: str | None = None,
) -> LedgerEntry:
    """
    Take `cents` from the user's balance.
    The balance check and the decrement are one conditional UPDATE, so two
    concurrent debits can never both pass the check.
    Raises InsufficientFunds if the balance is too low.
    """
    if cents <= 0:
        raise InvalidAmount("debit amount must be > 0")

    res = await session.execute(
        update(Account)
        .where(Account.user_id == user_id, Account.balance_cents >= cents)
        .values(balance_cents=Account.balance_cents - cents)
        .returning(Account.user_id)
        .execution_options(synchronize_session="fetch")
    )
    if res.scalar_one_or_none() is None:
        have = await balance_cents(session, user_id)
        raise InsufficientFunds(
            f"need {from_cents(cents)}, have {from_cents(have)}",
            state={"balance": str(from_cents(have)), "required": str(from_cents(cents))},
        )

    entry = LedgerEntry(
        user_id=user_id,
        challenge_id=challenge_id,
        participation_id=participation_id,
        type=entry_type,
        amount_cents=-int(cents),
        external_id=external_id,
        note=note,
    )
    session.add(entry)
    await session.flush()
    log.info("ledger_debit", user_id=str(user_id), cents=cents, type=entry_type)
    return entry


async def credit(
    session: AsyncSession,
    *,
    user_id: UUID,
    cents: int,
    entry_type: str,
    note: str,
    challenge_id: UUID | None = None,
    participation_id: UUID | None = None,
    external_id: str | None = None,
) -> LedgerEntry | None:
    """
    Add `cents` to the user's balance (payouts, refunds, deposits).
    Idempotent by external_id: a replay returns the first entry untouched.
    Zero credits are accepted and leave no trace.
    """
    if cents < 0:
        raise InvalidAmount("credit amount must be >= 0")

    if external_id:
        exists = await session.scalar(select(LedgerEntry).where(LedgerEntry.external_id == external_id))
        if exists:
            return exists
    if cents == 0:
        return None

    await _ensure_account(session, user_id)
    # increment in SQL, never read-modify-write in Python
    await session.execute(
        update(Account)
        .where(Account.user_id == user_id)
        .values(balance_cents=Account.balance_cents + cents)
        .execution_options(synchronize_session="fetch")
    )
    entry = LedgerEntry(
        user_id=user_id,
        challenge_id=challenge_id,
        participation_id=participation_id,
        type=entry_type,
        amount_cents=int(cents),
        external_id=external_id,
        note=note,
    )
    session.add(entry)
    await session.flush()
    log.info("ledger_credit", user_id=str(user_id), cents=cents, type=entry_type)
    return entry


async def record_platform_revenue(
    session: AsyncSession,
    *,
    challenge_id: UUID,
    cents: int,
    note: str,
) -> LedgerEntry | None:
    """Journal commission and retained pots against the platform pseudo-user."""
    if cents <= 0:
        return None
    external_id = f"platform:{challenge_id}"
    exists = await session.scalar(select(LedgerEntry).where(LedgerEntry.external_id == external_id))
    if exists:
        return exists
    entry = LedgerEntry(
        user_id=PLATFORM_USER_ID,
        challenge_id=challenge_id,
        type="PLATFORM_REVENUE",
        amount_cents=int(cents),
        external_id=external_id,
        note=note,
    )
    session.add(entry)
    await session.flush()
    return entry
