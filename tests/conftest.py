from __future__ import annotations
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from commitpact.db import Base, get_session
import commitpact.models.challenge  # register tables
import commitpact.models.proof
import commitpact.models.ledger
import commitpact.models.settlement
from commitpact.main import app
from commitpact.schemas.challenge import ChallengeCreate
from commitpact.security import make_access_token
from commitpact.services import ledger, participations
from commitpact.services.challenges import activate_challenge, create_challenge
from commitpact.services.clock import FixedClock, get_clock

T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FixedClock(T0)


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest_asyncio.fixture
async def client(session_factory, clock):
    async def _session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_clock] = lambda: clock
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth(user_id: uuid.UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_access_token(str(user_id))}"}


@pytest.fixture
def fund(session):
    async def _fund(user_id: uuid.UUID, cents: int = 100_00):
        await ledger.credit(session, user_id=user_id, cents=cents, entry_type="DEPOSIT", note="test_deposit")
        await session.commit()
    return _fund


@pytest.fixture
def make_challenge(session, clock):
    """Active challenge that started an hour ago and ends in `hours`."""
    async def _make(
        creator_id: uuid.UUID | None = None,
        *,
        mode: str = "organizer",
        pact_type: str = "public",
        min_bet: str = "10.00",
        hours: int = 1,
        activate: bool = True,
    ):
        creator_id = creator_id or uuid.uuid4()
        now = clock.now()
        ch = await create_challenge(session, creator_id=creator_id, payload=ChallengeCreate(
            title="Run 5k every day",
            pact_type=pact_type,
            proof_validation_mode=mode,
            min_bet=Decimal(min_bet),
            starts_at=now - timedelta(hours=1),
            ends_at=now + timedelta(hours=hours),
        ))
        if activate:
            await activate_challenge(session, challenge_id=ch.id, actor_id=creator_id)
        await session.commit()
        return ch
    return _make


@pytest.fixture
def join(session, clock, fund):
    """Fund a fresh user and join them with `bet_cents`."""
    async def _join(ch, bet_cents: int, user_id: uuid.UUID | None = None):
        user_id = user_id or uuid.uuid4()
        await fund(user_id, bet_cents)
        p = await participations.join(session, challenge_id=ch.id, user_id=user_id, bet_cents=bet_cents, clock=clock)
        await session.commit()
        return p
    return _join
