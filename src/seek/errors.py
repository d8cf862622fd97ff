"""Error taxonomy for the Seek protocol.

Each class corresponds to one class of failure the outer surface has to
distinguish. Adjudication failures are never raised: they become a
failing VerificationResult. Integrity faults (PreconditionError) are
programming or state corruption errors and always propagate.
"""

from __future__ import annotations


class SeekError(Exception):
    """Base class for all protocol errors."""

    code = "error"
    http_status = 500


class ConflictError(SeekError):
    """The request contradicts existing state (e.g. a second active bounty)."""

    code = "conflict"
    http_status = 409


class ValidationError(SeekError):
    """Malformed input: bad tier, bad address, bad image format or size."""

    code = "validation"
    http_status = 400


class NotFoundError(SeekError):
    """The referenced bounty or record does not exist."""

    code = "not_found"
    http_status = 404


class PreconditionError(SeekError):
    """An internal invariant was violated (e.g. a missing mission secret).

    Never folded into a normal result. The operation must not proceed.
    """

    code = "precondition"
    http_status = 500


class SettlementError(SeekError):
    """A settlement contract call (reveal, propose, finalize) failed."""

    code = "settlement"
    http_status = 502


class ChallengePeriodActive(SettlementError):
    """Finalization attempted before the contract's challenge window closed.

    A deferral, not a failure: the caller retries later.
    """

    code = "challenge_period_active"


class InternalError(SeekError):
    """An unexpected failure while processing a submission.

    The bounty is returned to PENDING so it can be resubmitted or expire.
    """

    code = "internal"
    http_status = 500


class ConfigError(SeekError):
    """Missing or contradictory configuration detected at startup."""

    code = "config"
    http_status = 500
