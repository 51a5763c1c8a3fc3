from __future__ import annotations
from typing import Any


class SettlementError(Exception):
    """Base for every error the settlement core surfaces to callers."""
    code = "settlement_error"
    status_code = 400

    def __init__(self, message: str = "", *, state: dict[str, Any] | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.state = state or {}


class NotFound(SettlementError):
    code = "not_found"
    status_code = 404


# ---------- validation: caller mistakes, never retried ----------

class ValidationFailure(SettlementError):
    status_code = 400

class InvalidJoin(ValidationFailure):
    code = "invalid_join"

class DuplicateProof(ValidationFailure):
    code = "duplicate_proof"
    status_code = 409

class DeadlineExceeded(ValidationFailure):
    code = "deadline_exceeded"

class ChallengeNotEligible(ValidationFailure):
    code = "challenge_not_eligible"

class DuplicateVote(ValidationFailure):
    code = "duplicate_vote"
    status_code = 409

class SelfVote(ValidationFailure):
    code = "self_vote"

class Forbidden(ValidationFailure):
    code = "forbidden"
    status_code = 403

class WrongValidationMode(ValidationFailure):
    code = "wrong_validation_mode"

class InvalidAmount(ValidationFailure):
    code = "invalid_amount"

class InvalidTransition(ValidationFailure):
    code = "invalid_transition"
    status_code = 409


# ---------- resource: user must take corrective action ----------

class ResourceFailure(SettlementError):
    status_code = 402

class InsufficientFunds(ResourceFailure):
    code = "insufficient_funds"


# ---------- state: duplicate call or lost race; carries existing state ----------

class StateConflict(SettlementError):
    status_code = 409

class AlreadyDecided(StateConflict):
    code = "already_decided"

class AlreadyResolved(StateConflict):
    code = "already_resolved"

class AlreadyDistributed(StateConflict):
    code = "already_distributed"

class ChallengeNotFinalized(StateConflict):
    code = "challenge_not_finalized"


# ---------- invariant: halt, never guess ----------

class InvariantViolation(SettlementError):
    code = "invariant_violation"
    status_code = 500
