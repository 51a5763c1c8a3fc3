from __future__ import annotations
import json
import uuid
import pytest

from commitpact.services import proofs
from commitpact.services.errors import (
    AlreadyDecided, AlreadyResolved, ChallengeNotEligible, DeadlineExceeded, DuplicateProof,
    Forbidden, WrongValidationMode,
)
from commitpact.services.settlement import finalize


async def _submit(session, clock, p, **kw):
    proof = await proofs.submit_proof(
        session, participation_id=p.id, user_id=p.user_id, content=kw.pop("content", "https://img/run.jpg"),
        clock=clock, **kw,
    )
    await session.commit()
    return proof


@pytest.mark.asyncio
async def test_approval_marks_participation_won(session, clock, make_challenge, join):
    creator = uuid.uuid4()
    ch = await make_challenge(creator)
    p = await join(ch, 10_00)
    proof = await _submit(session, clock, p, value=5.2, confidence=87)

    out = await proofs.decide(session, proof_id=proof.id, organizer_id=creator, decision="approved", comment="nice", clock=clock)
    await session.commit()

    assert out.status == "approved" and out.participation_status == "won"
    await session.refresh(p)
    assert p.status == "won"
    view = await proofs.to_public(session, proof)
    assert view.organizer_validation == "approved"
    assert view.validated_by == creator
    assert view.confidence == 87
    assert view.quorum is None


@pytest.mark.asyncio
async def test_rejection_marks_participation_lost(session, clock, make_challenge, join):
    creator = uuid.uuid4()
    ch = await make_challenge(creator)
    p = await join(ch, 10_00)
    proof = await _submit(session, clock, p)

    out = await proofs.decide(session, proof_id=proof.id, organizer_id=creator, decision="rejected", clock=clock)
    assert out.participation_status == "lost"


@pytest.mark.asyncio
async def test_only_creator_decides(session, clock, make_challenge, join):
    ch = await make_challenge()
    p = await join(ch, 10_00)
    proof = await _submit(session, clock, p)
    with pytest.raises(Forbidden):
        await proofs.decide(session, proof_id=proof.id, organizer_id=uuid.uuid4(), decision="approved", clock=clock)


@pytest.mark.asyncio
async def test_second_decision_refused(session, clock, make_challenge, join):
    creator = uuid.uuid4()
    ch = await make_challenge(creator)
    p = await join(ch, 10_00)
    proof = await _submit(session, clock, p)
    await proofs.decide(session, proof_id=proof.id, organizer_id=creator, decision="approved", clock=clock)
    await session.commit()

    with pytest.raises(AlreadyDecided) as exc:
        await proofs.decide(session, proof_id=proof.id, organizer_id=creator, decision="rejected", clock=clock)
    assert exc.value.state["proof_status"] == "approved"


@pytest.mark.asyncio
async def test_vote_in_organizer_mode_refused(session, clock, make_challenge, join):
    ch = await make_challenge()
    p = await join(ch, 10_00)
    other = await join(ch, 10_00)
    proof = await _submit(session, clock, p)
    with pytest.raises(WrongValidationMode):
        await proofs.vote(session, proof_id=proof.id, voter_id=other.user_id, vote_type="approve", clock=clock)


@pytest.mark.asyncio
async def test_duplicate_proof_refused(session, clock, make_challenge, join):
    ch = await make_challenge()
    p = await join(ch, 10_00)
    await _submit(session, clock, p)
    with pytest.raises(DuplicateProof):
        await _submit(session, clock, p, content="again")


@pytest.mark.asyncio
async def test_proof_only_by_owner(session, clock, make_challenge, join):
    ch = await make_challenge()
    p = await join(ch, 10_00)
    with pytest.raises(Forbidden):
        await proofs.submit_proof(session, participation_id=p.id, user_id=uuid.uuid4(), content="x", clock=clock)


@pytest.mark.asyncio
async def test_proof_deadline_is_end_plus_grace(session, clock, make_challenge, join):
    ch = await make_challenge(hours=1)
    early, late = await join(ch, 10_00), await join(ch, 10_00)

    clock.advance(hours=1 + 24)  # exactly at the deadline
    await _submit(session, clock, early)

    clock.advance(seconds=1)
    with pytest.raises(DeadlineExceeded):
        await _submit(session, clock, late)


@pytest.mark.asyncio
async def test_long_challenge_waits_for_end(session, clock, make_challenge, join):
    ch = await make_challenge(hours=72)
    p = await join(ch, 10_00)
    with pytest.raises(ChallengeNotEligible):
        await _submit(session, clock, p)

    clock.advance(hours=72)
    proof = await _submit(session, clock, p)
    assert proof.status == "pending"


@pytest.mark.asyncio
async def test_decision_after_finalize_is_already_resolved(session, clock, make_challenge, join):
    creator = uuid.uuid4()
    ch = await make_challenge(creator)
    p = await join(ch, 10_00)
    proof = await _submit(session, clock, p)

    clock.advance(hours=2)
    await finalize(session, challenge_id=ch.id, clock=clock)
    await session.commit()

    with pytest.raises(AlreadyResolved) as exc:
        await proofs.decide(session, proof_id=proof.id, organizer_id=creator, decision="approved", clock=clock)
    assert exc.value.state["participation_status"] == "lost"


@pytest.mark.asyncio
async def test_verified_result_auto_approves(session, clock, make_challenge, join):
    ch = await make_challenge()
    p = await join(ch, 10_00)

    proof, outcome = await proofs.submit_verified_result(
        session, participation_id=p.id, user_id=p.user_id, achieved=True,
        measured_value=10.4, target_value=10.0, unit="km", source="healthkit", clock=clock,
    )
    await session.commit()

    assert outcome.status == "approved" and outcome.reason == "auto"
    assert proof.validated_by is None
    assert proof.organizer_comment == "auto:healthkit"
    assert json.loads(proof.content)["achieved"] is True
    await session.refresh(p)
    assert p.status == "won"


@pytest.mark.asyncio
async def test_verified_result_not_achieved_stays_pending(session, clock, make_challenge, join):
    ch = await make_challenge()
    p = await join(ch, 10_00)
    proof, outcome = await proofs.submit_verified_result(
        session, participation_id=p.id, user_id=p.user_id, achieved=False,
        measured_value=3.1, target_value=10.0, unit="km", source="google_fit", clock=clock,
    )
    assert outcome is None
    assert proof.status == "pending"
