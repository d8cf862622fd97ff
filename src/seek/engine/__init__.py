"""Bounty engine — state machine and state store."""

from seek.engine.bounty_store import BountyStateStore
from seek.engine.state_machine import BountyStateMachine

__all__ = ["BountyStateMachine", "BountyStateStore"]
