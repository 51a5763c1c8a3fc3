from __future__ import annotations
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from math import ceil
from typing import Protocol
from uuid import UUID
import structlog
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from commitpact.config import settings
from commitpact.models.challenge import Challenge, Participation
from commitpact.models.proof import Proof, Vote
from commitpact.schemas.proof import ProofPublic, ResolutionOutcome
from commitpact.services.challenges import get_challenge
from commitpact.services.clock import Clock, as_utc
from commitpact.services.locks import advisory_xact_lock
from commitpact.services.participations import get_participation, transition
from commitpact.services.errors import (
    AlreadyDecided, AlreadyResolved, ChallengeNotEligible, DeadlineExceeded, DuplicateProof,
    DuplicateVote, Forbidden, NotFound, SelfVote, WrongValidationMode,
)

log = structlog.get_logger()


# ---------- submission ----------

def check_proof_window(ch: Challenge, now: datetime) -> None:
    """
    Proofs are accepted up to ends_at + grace. Challenges longer than
    LONG_CHALLENGE_HOURS only open for proofs once they have ended.
    """
    starts, ends = as_utc(ch.starts_at), as_utc(ch.ends_at)
    deadline = ends + timedelta(hours=settings.proof_grace_hours)
    if ch.status != "active":
        raise ChallengeNotEligible("Challenge is not accepting proofs", state={"challenge_status": ch.status})
    if now > deadline:
        raise DeadlineExceeded("Proof deadline has passed", state={"deadline": deadline.isoformat()})
    if now < starts:
        raise ChallengeNotEligible("Challenge has not started")
    if ends - starts > timedelta(hours=settings.long_challenge_hours) and now < ends:
        raise ChallengeNotEligible("Proofs open when the challenge ends", state={"opens_at": ends.isoformat()})


async def submit_proof(
    session: AsyncSession,
    *,
    participation_id: UUID,
    user_id: UUID,
    content: str,
    value: float | None = None,
    confidence: int | None = None,
    clock: Clock,
) -> Proof:
    p = await get_participation(session, participation_id)
    if p.user_id != user_id:
        raise Forbidden("Not your participation")

    existing = await session.scalar(select(Proof).where(Proof.participation_id == p.id))
    if existing:
        raise DuplicateProof("A proof was already submitted", state={"proof_id": str(existing.id), "status": existing.status})

    ch = await get_challenge(session, p.challenge_id)
    now = clock.now()
    check_proof_window(ch, now)
    if p.status != "active":
        raise AlreadyResolved("Participation is already closed", state={"participation_status": p.status})

    proof = Proof(
        participation_id=p.id,
        challenge_id=ch.id,
        user_id=p.user_id,
        content=content,
        value=value,
        confidence=confidence,
        submitted_at=now,
        status="pending",
        organizer_validation="pending",
    )
    session.add(proof)
    try:
        await session.flush()
    except IntegrityError:
        raise DuplicateProof("A proof was already submitted")

    log.info("proof_submitted", proof_id=str(proof.id), participation_id=str(p.id), mode=ch.proof_validation_mode)
    return proof


# ---------- shared resolution step ----------

async def _resolve(session: AsyncSession, proof: Proof, *, approved: bool, reason: str, at: datetime) -> str:
    """
    Write the proof outcome and the participation outcome together.
    Whoever closes the participation first wins; if finalize got there
    before us the proof stays pending and the caller sees AlreadyResolved.
    """
    target = "won" if approved else "lost"
    moved = await transition(session, proof.participation_id, target, at=at)
    if not moved:
        current = await session.scalar(select(Participation.status).where(Participation.id == proof.participation_id))
        raise AlreadyResolved(
            "Participation is already closed",
            state={"participation_status": current, "proof_status": proof.status},
        )
    proof.status = "approved" if approved else "rejected"
    proof.resolution_reason = reason
    proof.validated_at = at
    await session.flush()
    log.info("proof_resolved", proof_id=str(proof.id), status=proof.status, reason=reason)
    return target


def _resolved_state(proof: Proof) -> dict:
    return {"proof_status": proof.status, "reason": proof.resolution_reason}


async def _locked_proof(session: AsyncSession, proof_id: UUID) -> Proof:
    await advisory_xact_lock(session, f"proof:{proof_id}")
    proof = await session.get(Proof, proof_id, with_for_update=True, populate_existing=True)
    if not proof:
        raise NotFound("Proof not found")
    return proof


async def _ensure_open(session: AsyncSession, proof: Proof) -> None:
    # finalize may have closed the participation while the proof was still pending
    p = await get_participation(session, proof.participation_id)
    if p.status != "active":
        raise AlreadyResolved(
            "Participation is already closed",
            state={"participation_status": p.status, "proof_status": proof.status},
        )


# ---------- strategies ----------

class ResolutionStrategy(Protocol):
    mode: str

    async def quorum_info(self, session: AsyncSession, proof: Proof, ch: Challenge) -> tuple[int | None, int | None]:
        """(quorum, votes_needed) for read models; (None, None) when not applicable."""
        ...


@dataclass(frozen=True)
class OrganizerDecision:
    mode: str = "organizer"

    async def decide(
        self,
        session: AsyncSession,
        *,
        proof: Proof,
        ch: Challenge,
        organizer_id: UUID | None,
        decision: str,
        comment: str | None,
        clock: Clock,
        reason: str = "organizer",
    ) -> ResolutionOutcome:
        """organizer_id=None is the automated path (fitness bridge)."""
        if organizer_id is not None and organizer_id != ch.creator_id:
            raise Forbidden("Only the organizer can validate proofs")
        if proof.organizer_validation != "pending":
            raise AlreadyDecided("Proof was already decided", state=_resolved_state(proof))
        if proof.status != "pending":
            raise AlreadyResolved("Proof is already resolved", state=_resolved_state(proof))
        await _ensure_open(session, proof)

        now = clock.now()
        participation_status = await _resolve(session, proof, approved=(decision == "approved"), reason=reason, at=now)
        proof.organizer_validation = decision
        proof.organizer_comment = comment
        proof.validated_by = organizer_id
        await session.flush()
        return ResolutionOutcome(
            proof_id=proof.id, status=proof.status, participation_status=participation_status, reason=reason,
        )

    async def quorum_info(self, session: AsyncSession, proof: Proof, ch: Challenge) -> tuple[int | None, int | None]:
        return None, None


def quorum_for(eligible: int) -> int:
    return max(1, ceil(eligible / 2))


async def eligible_voter_count(session: AsyncSession, ch: Challenge, submitter_id: UUID) -> int:
    """Other participants plus the creator, never the submitter. Counted live."""
    others = await session.scalar(
        select(func.count()).select_from(Participation)
        .where(Participation.challenge_id == ch.id, Participation.user_id != submitter_id)
    ) or 0
    return int(others) + (1 if ch.creator_id != submitter_id else 0)


@dataclass(frozen=True)
class CommunityVote:
    mode: str = "community"

    async def vote(
        self,
        session: AsyncSession,
        *,
        proof: Proof,
        ch: Challenge,
        voter_id: UUID,
        vote_type: str,
        clock: Clock,
    ) -> ResolutionOutcome:
        if proof.status != "pending":
            raise AlreadyResolved("Proof is already resolved", state=_resolved_state(proof))
        await _ensure_open(session, proof)
        if voter_id == proof.user_id:
            raise SelfVote("You cannot vote on your own proof")
        if voter_id != ch.creator_id:
            is_member = await session.scalar(
                select(Participation.id).where(Participation.challenge_id == ch.id, Participation.user_id == voter_id)
            )
            if not is_member:
                raise Forbidden("Only participants and the creator can vote")

        already = await session.scalar(select(Vote).where(Vote.proof_id == proof.id, Vote.voter_id == voter_id))
        if already:
            raise DuplicateVote("You already voted on this proof", state={"vote_type": already.vote_type})

        session.add(Vote(proof_id=proof.id, voter_id=voter_id, vote_type=vote_type, created_at=clock.now()))
        try:
            await session.flush()
        except IntegrityError:
            raise DuplicateVote("You already voted on this proof")

        tallies = dict((await session.execute(
            select(Vote.vote_type, func.count()).where(Vote.proof_id == proof.id).group_by(Vote.vote_type)
        )).all())
        proof.approve_count = int(tallies.get("approve", 0))
        proof.veto_count = int(tallies.get("veto", 0))

        eligible = await eligible_voter_count(session, ch, proof.user_id)
        quorum = quorum_for(eligible)
        outcome = ResolutionOutcome(
            proof_id=proof.id, status="pending", participation_status="active",
            approve_count=proof.approve_count, veto_count=proof.veto_count,
            quorum=quorum, eligible=eligible,
        )

        # a single veto rejects, whatever the approvals
        if proof.veto_count >= 1:
            outcome.participation_status = await _resolve(session, proof, approved=False, reason="veto", at=clock.now())
            outcome.status, outcome.reason, outcome.votes_needed = proof.status, "veto", 0
            return outcome

        if proof.approve_count >= quorum:
            outcome.participation_status = await _resolve(session, proof, approved=True, reason="quorum", at=clock.now())
            outcome.status, outcome.reason, outcome.votes_needed = proof.status, "quorum", 0
            return outcome

        await session.flush()
        outcome.votes_needed = quorum - proof.approve_count
        return outcome

    async def quorum_info(self, session: AsyncSession, proof: Proof, ch: Challenge) -> tuple[int | None, int | None]:
        quorum = quorum_for(await eligible_voter_count(session, ch, proof.user_id))
        if proof.status != "pending":
            return quorum, 0
        # closed by finalize while still under vote: no vote can change it now
        participation_status = await session.scalar(
            select(Participation.status).where(Participation.id == proof.participation_id)
        )
        if participation_status != "active":
            return quorum, 0
        return quorum, max(0, quorum - proof.approve_count)


organizer_strategy = OrganizerDecision()
community_strategy = CommunityVote()

STRATEGIES: dict[str, ResolutionStrategy] = {
    organizer_strategy.mode: organizer_strategy,
    community_strategy.mode: community_strategy,
}


def strategy_for(ch: Challenge) -> ResolutionStrategy:
    return STRATEGIES[ch.proof_validation_mode]


# ---------- entry points ----------

async def decide(
    session: AsyncSession,
    *,
    proof_id: UUID,
    organizer_id: UUID,
    decision: str,
    comment: str | None = None,
    clock: Clock,
) -> ResolutionOutcome:
    proof = await _locked_proof(session, proof_id)
    ch = await get_challenge(session, proof.challenge_id)
    strategy = strategy_for(ch)
    if not isinstance(strategy, OrganizerDecision):
        raise WrongValidationMode("This challenge is validated by community vote")
    return await strategy.decide(
        session, proof=proof, ch=ch, organizer_id=organizer_id, decision=decision, comment=comment, clock=clock,
    )


async def vote(
    session: AsyncSession,
    *,
    proof_id: UUID,
    voter_id: UUID,
    vote_type: str,
    clock: Clock,
) -> ResolutionOutcome:
    proof = await _locked_proof(session, proof_id)
    ch = await get_challenge(session, proof.challenge_id)
    strategy = strategy_for(ch)
    if not isinstance(strategy, CommunityVote):
        raise WrongValidationMode("This challenge is validated by its organizer")
    return await strategy.vote(session, proof=proof, ch=ch, voter_id=voter_id, vote_type=vote_type, clock=clock)


async def submit_verified_result(
    session: AsyncSession,
    *,
    participation_id: UUID,
    user_id: UUID,
    achieved: bool,
    measured_value: float,
    target_value: float | None,
    unit: str,
    source: str,
    clock: Clock,
) -> tuple[Proof, ResolutionOutcome | None]:
    """
    Fitness-bridge path: same submitProof entry point, then an automatic
    organizer approval when the goal was reached in organizer mode.
    """
    content = json.dumps({
        "type": "api_verification",
        "source": source,
        "achieved": achieved,
        "measured_value": measured_value,
        "target_value": target_value,
        "unit": unit,
    }, sort_keys=True)
    proof = await submit_proof(
        session, participation_id=participation_id, user_id=user_id,
        content=content, value=measured_value, clock=clock,
    )
    ch = await get_challenge(session, proof.challenge_id)
    if not (achieved and isinstance(strategy_for(ch), OrganizerDecision)):
        return proof, None
    outcome = await organizer_strategy.decide(
        session, proof=proof, ch=ch, organizer_id=None, decision="approved",
        comment=f"auto:{source}", clock=clock, reason="auto",
    )
    return proof, outcome


async def get_proof(session: AsyncSession, proof_id: UUID) -> Proof:
    proof = await session.get(Proof, proof_id)
    if not proof:
        raise NotFound("Proof not found")
    return proof


async def to_public(session: AsyncSession, proof: Proof) -> ProofPublic:
    ch = await get_challenge(session, proof.challenge_id)
    quorum, votes_needed = await strategy_for(ch).quorum_info(session, proof, ch)
    return ProofPublic(
        id=proof.id,
        participation_id=proof.participation_id,
        challenge_id=proof.challenge_id,
        user_id=proof.user_id,
        content=proof.content,
        value=proof.value,
        confidence=proof.confidence,
        submitted_at=as_utc(proof.submitted_at),
        status=proof.status,
        resolution_reason=proof.resolution_reason,
        organizer_validation=proof.organizer_validation,
        organizer_comment=proof.organizer_comment,
        validated_by=proof.validated_by,
        validated_at=as_utc(proof.validated_at) if proof.validated_at else None,
        approve_count=proof.approve_count,
        veto_count=proof.veto_count,
        quorum=quorum,
        votes_needed=votes_needed,
    )
