"""Bounty state store — authoritative in-process bounty records.

Holds every bounty by id plus a player index (wallet → latest bounty id)
used to enforce the single-active-bounty rule: a wallet may have at most
one bounty in PENDING or VALIDATING at any instant. All mutations happen
under one lock; no lock is held while any network call runs (callers
read, release, call out, then come back to mutate).

Two sweeps keep the store bounded:
- expire_overdue: PENDING bounties past their deadline become EXPIRED.
- purge_terminal: terminal bounties older than the retention horizon are
  deleted together with their player index entry. The caller deletes the
  matching mission secret using the returned ids.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from seek.engine.state_machine import BountyStateMachine
from seek.errors import ConflictError, NotFoundError, PreconditionError
from seek.models.bounty import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Bounty,
    BountyStatus,
)
from seek.policy import PolicyResolver


logger = logging.getLogger(__name__)


class BountyStateStore:
    """Creates bounties and drives their status transitions.

    Parameters (via *config* dict, the ``bounty_store`` policy section):
        retention_seconds : int — terminal bounty retention (default 86400)
    """

    def __init__(self, resolver: PolicyResolver, config: Optional[dict] = None) -> None:
        config = config or {}
        self._resolver = resolver
        self._retention = timedelta(seconds=config.get("retention_seconds", 86_400))
        self._lock = threading.RLock()
        self._bounties: dict[str, Bounty] = {}
        self._player_index: dict[str, str] = {}  # wallet (lowercase) → bounty_id
        self._by_settlement_ref: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        wallet: str,
        tier: int,
        mission_id: str,
        *,
        settlement_ref: str,
        commitment: str,
        bounty_id: Optional[str] = None,
        start_tx_ref: Optional[str] = None,
        credential_verified: bool = False,
        now: Optional[datetime] = None,
    ) -> Bounty:
        """Create a PENDING bounty for *wallet*.

        Raises:
            ValidationError: If the tier is invalid.
            ConflictError: If the wallet already has an active bounty. No
                state is changed in that case.
        """
        policy = self._resolver.tier_policy(tier)
        now_utc = now or datetime.now(timezone.utc)
        key = wallet.lower()

        with self._lock:
            active = self._active_locked(key)
            if active is not None:
                raise ConflictError(
                    f"Wallet {wallet} already has an active bounty "
                    f"({active.bounty_id}, {active.status.value})"
                )

            bounty = Bounty(
                bounty_id=bounty_id or str(uuid.uuid4()),
                mission_id=mission_id,
                player_wallet=wallet,
                tier=tier,
                stake=policy.stake_base_units,
                status=BountyStatus.PENDING,
                created_utc=now_utc,
                expires_utc=now_utc + timedelta(seconds=policy.duration_seconds),
                settlement_ref=settlement_ref,
                commitment=commitment,
                start_tx_ref=start_tx_ref,
                credential_verified=credential_verified,
            )
            if bounty.bounty_id in self._bounties:
                raise PreconditionError(f"Duplicate bounty id: {bounty.bounty_id}")

            self._bounties[bounty.bounty_id] = bounty
            self._player_index[key] = bounty.bounty_id
            self._by_settlement_ref[settlement_ref] = bounty.bounty_id

        logger.info(
            "Bounty created: %s wallet=%s tier=%d expires=%s",
            bounty.bounty_id, wallet, tier, bounty.expires_utc.isoformat(),
        )
        return bounty

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, bounty_id: str) -> Optional[Bounty]:
        with self._lock:
            return self._bounties.get(bounty_id)

    def require(self, bounty_id: str) -> Bounty:
        """Like get() but raises NotFoundError when absent."""
        bounty = self.get(bounty_id)
        if bounty is None:
            raise NotFoundError(f"Bounty not found: {bounty_id}")
        return bounty

    def latest_for(self, wallet: str) -> Optional[Bounty]:
        """The most recent bounty of *wallet*, in any status."""
        with self._lock:
            bounty_id = self._player_index.get(wallet.lower())
            return self._bounties.get(bounty_id) if bounty_id else None

    def active_for(self, wallet: str) -> Optional[Bounty]:
        with self._lock:
            return self._active_locked(wallet.lower())

    def by_settlement_ref(self, settlement_ref: str) -> Optional[Bounty]:
        with self._lock:
            bounty_id = self._by_settlement_ref.get(settlement_ref)
            return self._bounties.get(bounty_id) if bounty_id else None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def mark_validating(self, bounty_id: str, *, now: Optional[datetime] = None) -> bool:
        """Move PENDING → VALIDATING. Returns False if not allowed.

        A PENDING bounty that is already past its deadline is expired
        here instead, and False is returned.
        """
        now_utc = now or datetime.now(timezone.utc)
        with self._lock:
            bounty = self._bounties.get(bounty_id)
            if bounty is None or bounty.status != BountyStatus.PENDING:
                return False
            if now_utc >= bounty.expires_utc:
                self._resolve_locked(bounty, BountyStatus.EXPIRED, now_utc)
                logger.info("Bounty expired on submission: %s", bounty_id)
                return False
            BountyStateMachine.apply_transition(bounty, BountyStatus.VALIDATING)
            return True

    def set_terminal(
        self,
        bounty_id: str,
        status: BountyStatus,
        settlement_tx_ref: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Bounty:
        """Resolve a VALIDATING bounty to WON or LOST.

        Raises:
            NotFoundError: Unknown bounty.
            PreconditionError: Bounty is not VALIDATING (including a second
                call on an already terminal bounty) or *status* is not
                WON/LOST.
        """
        if status not in (BountyStatus.WON, BountyStatus.LOST):
            raise PreconditionError(f"set_terminal only accepts won/lost, got {status.value}")
        now_utc = now or datetime.now(timezone.utc)
        with self._lock:
            bounty = self._bounties.get(bounty_id)
            if bounty is None:
                raise NotFoundError(f"Bounty not found: {bounty_id}")
            errors = BountyStateMachine.validate_transition(bounty, status)
            if errors:
                raise PreconditionError(errors[0])
            self._resolve_locked(bounty, status, now_utc)
            if settlement_tx_ref:
                bounty.settlement_tx_ref = settlement_tx_ref
        logger.info("Bounty resolved: %s → %s", bounty_id, status.value)
        return bounty

    def release_to_pending(self, bounty_id: str) -> bool:
        """Return a VALIDATING bounty to PENDING after a failed submission."""
        with self._lock:
            bounty = self._bounties.get(bounty_id)
            if bounty is None:
                return False
            return not BountyStateMachine.apply_transition(bounty, BountyStatus.PENDING)

    # ------------------------------------------------------------------
    # Annotations (never change status)
    # ------------------------------------------------------------------

    def record_verdict(self, bounty_id: str, success: bool) -> None:
        """Record the adjudicated outcome. The first recorded verdict sticks."""
        with self._lock:
            bounty = self._bounties[bounty_id]
            if bounty.verdict is None:
                bounty.verdict = success

    def record_reveal(self, bounty_id: str) -> None:
        with self._lock:
            self._bounties[bounty_id].mission_revealed = True

    def record_attestation(self, bounty_id: str, kind: Optional[str], verified: bool) -> None:
        with self._lock:
            bounty = self._bounties[bounty_id]
            bounty.attestation_kind = kind
            bounty.attestation_verified = verified

    def record_finalization(
        self,
        settlement_ref: str,
        tx_ref: str,
        jackpot_won: bool = False,
    ) -> Optional[Bounty]:
        """Attach the finalize transaction to its bounty, if still held."""
        with self._lock:
            bounty_id = self._by_settlement_ref.get(settlement_ref)
            bounty = self._bounties.get(bounty_id) if bounty_id else None
            if bounty is not None:
                bounty.finalization_tx_ref = tx_ref
                bounty.jackpot_won = jackpot_won
            return bounty

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def expire_overdue(self, *, now: Optional[datetime] = None) -> list[str]:
        """Expire PENDING bounties past their deadline. Returns their ids."""
        now_utc = now or datetime.now(timezone.utc)
        expired: list[str] = []
        with self._lock:
            for bounty in self._bounties.values():
                if bounty.status == BountyStatus.PENDING and now_utc >= bounty.expires_utc:
                    self._resolve_locked(bounty, BountyStatus.EXPIRED, now_utc)
                    expired.append(bounty.bounty_id)
        if expired:
            logger.info("Expired %d overdue bounties", len(expired))
        return expired

    def purge_terminal(self, *, now: Optional[datetime] = None) -> list[str]:
        """Delete terminal bounties older than the retention horizon.

        Age is measured from resolution (creation if never resolved).
        Returns the purged bounty ids.
        """
        now_utc = now or datetime.now(timezone.utc)
        cutoff = now_utc - self._retention
        purged: list[str] = []
        with self._lock:
            for bounty in list(self._bounties.values()):
                if bounty.status not in TERMINAL_STATUSES:
                    continue
                if (bounty.resolved_utc or bounty.created_utc) > cutoff:
                    continue
                del self._bounties[bounty.bounty_id]
                key = bounty.player_wallet.lower()
                if self._player_index.get(key) == bounty.bounty_id:
                    del self._player_index[key]
                if self._by_settlement_ref.get(bounty.settlement_ref) == bounty.bounty_id:
                    del self._by_settlement_ref[bounty.settlement_ref]
                purged.append(bounty.bounty_id)
        if purged:
            logger.info("Purged %d terminal bounties", len(purged))
        return purged

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, int]:
        counts = {status.value: 0 for status in BountyStatus}
        with self._lock:
            for bounty in self._bounties.values():
                counts[bounty.status.value] += 1
            counts["total"] = len(self._bounties)
        return counts

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._bounties)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _active_locked(self, key: str) -> Optional[Bounty]:
        bounty_id = self._player_index.get(key)
        bounty = self._bounties.get(bounty_id) if bounty_id else None
        if bounty is not None and bounty.status in ACTIVE_STATUSES:
            return bounty
        return None

    def _resolve_locked(self, bounty: Bounty, status: BountyStatus, now: datetime) -> None:
        errors = BountyStateMachine.apply_transition(bounty, status)
        if errors:
            raise PreconditionError(errors[0])
        bounty.resolved_utc = now
