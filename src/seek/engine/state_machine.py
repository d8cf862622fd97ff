"""Bounty state machine — enforces valid lifecycle transitions.

Bounty lifecycle:
    PENDING → VALIDATING → WON | LOST
    PENDING → EXPIRED
    VALIDATING → PENDING  (settlement call failed; verdict is kept)

State semantics:
- PENDING: stake locked, timer running, waiting for a photo.
- VALIDATING: a photo is being adjudicated and settled.
- WON / LOST: terminal, resolution proposed on-chain.
- EXPIRED: terminal, deadline passed without a submission.

Fail-closed: invalid transitions return errors. There are no implicit
transitions.
"""

from __future__ import annotations

from seek.models.bounty import Bounty, BountyStatus


# Valid transitions: {from_status: {allowed_to_statuses}}
_TRANSITIONS: dict[BountyStatus, set[BountyStatus]] = {
    BountyStatus.PENDING: {BountyStatus.VALIDATING, BountyStatus.EXPIRED},
    BountyStatus.VALIDATING: {
        BountyStatus.WON,
        BountyStatus.LOST,
        BountyStatus.PENDING,
    },
    # Terminal states — no outgoing transitions
    BountyStatus.WON: set(),
    BountyStatus.LOST: set(),
    BountyStatus.EXPIRED: set(),
}


class BountyStateMachine:
    """Validates and applies bounty status transitions.

    Pure computation. Locking, timestamps and event logging belong to
    BountyStateStore.
    """

    @staticmethod
    def validate_transition(bounty: Bounty, target: BountyStatus) -> list[str]:
        """Check if a transition is valid. Returns errors (empty = OK)."""
        current = bounty.status
        allowed = _TRANSITIONS.get(current, set())

        if target not in allowed:
            allowed_str = ", ".join(s.value for s in sorted(allowed, key=lambda x: x.value))
            return [
                f"Invalid bounty transition: {current.value} → {target.value}. "
                f"Allowed from {current.value}: [{allowed_str}]"
            ]
        return []

    @staticmethod
    def apply_transition(bounty: Bounty, target: BountyStatus) -> list[str]:
        """Validate and apply a transition. Mutates ``bounty.status`` on success."""
        errors = BountyStateMachine.validate_transition(bounty, target)
        if errors:
            return errors
        bounty.status = target
        return []

    @staticmethod
    def is_terminal(status: BountyStatus) -> bool:
        return len(_TRANSITIONS.get(status, set())) == 0
