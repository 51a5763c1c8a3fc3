from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from commitpact.db import get_session
from commitpact.auth_deps import get_current_user_id
from commitpact.schemas.ledger import LedgerEntryPublic, WalletSnapshot
from commitpact.services.clock import as_utc
from commitpact.services.ledger import balance_cents, ledger_entries
from commitpact.services.money import from_cents

router = APIRouter(prefix="/wallet", tags=["wallet"])

@router.get("", response_model=WalletSnapshot)
async def get_wallet(
    session: AsyncSession = Depends(get_session),
    user_id: UUID = Depends(get_current_user_id),
    limit: int = Query(default=100, ge=1, le=500),
):
    bal = await balance_cents(session, user_id)
    rows = await ledger_entries(session, user_id, limit=limit)
    return WalletSnapshot(
        user_id=user_id,
        balance=from_cents(bal),
        entries=[
            LedgerEntryPublic(
                id=r.id, type=r.type, amount=from_cents(r.amount_cents), challenge_id=r.challenge_id,
                participation_id=r.participation_id, external_id=r.external_id, note=r.note,
                created_at=as_utc(r.created_at),
            ) for r in rows
        ],
    )
