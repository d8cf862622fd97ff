"""Settlement sequencer — the synchronous half of on-chain resolution.

For one adjudicated bounty, in order:
1. reveal the mission secret (skipped if an earlier attempt already did),
2. propose the resolution (opens the contract's challenge window),
3. enqueue a deferred finalization for when the window closes.

Finalize is never called here. A reveal or propose failure is raised to
the caller immediately; the mission secret is restored if the reveal
did not go through.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from seek.crypto.commitment import MissionCommitment
from seek.engine.bounty_store import BountyStateStore
from seek.models.bounty import Bounty, PendingFinalization, SettlementOutcome
from seek.settlement.contract import SettlementContract
from seek.settlement.finalizer import FinalizationQueue


logger = logging.getLogger(__name__)


class SettlementSequencer:
    """Drives reveal → propose → enqueue for one bounty at a time."""

    def __init__(
        self,
        contract: SettlementContract,
        commitments: MissionCommitment,
        store: BountyStateStore,
        queue: FinalizationQueue,
        challenge_window_seconds: int,
    ) -> None:
        self._contract = contract
        self._commitments = commitments
        self._store = store
        self._queue = queue
        self._window = timedelta(seconds=challenge_window_seconds)

    def settle(
        self,
        bounty: Bounty,
        success: bool,
        *,
        now: Optional[datetime] = None,
    ) -> SettlementOutcome:
        """Reveal and propose for *bounty*, then schedule finalization.

        Raises:
            PreconditionError: The mission secret is missing.
            SettlementError: The reveal or propose call failed.
        """
        now_utc = now or datetime.now(timezone.utc)

        reveal_tx: Optional[str] = None
        if not bounty.mission_revealed:
            secret = self._commitments.reveal(bounty.bounty_id)
            try:
                reveal_tx = self._contract.reveal_mission(
                    bounty.settlement_ref, secret.mission_digest, secret.salt
                )
            except Exception:
                self._commitments.restore(bounty.bounty_id, secret)
                raise
            self._store.record_reveal(bounty.bounty_id)
            logger.info("Mission revealed for bounty %s (tx %s)", bounty.bounty_id, reveal_tx)

        propose_tx = self._contract.propose_resolution(bounty.settlement_ref, success)
        challenge_ends = now_utc + self._window
        logger.info(
            "Resolution proposed for bounty %s: success=%s, challenge ends %s",
            bounty.bounty_id, success, challenge_ends.isoformat(),
        )

        self._queue.enqueue(
            PendingFinalization(
                settlement_ref=bounty.settlement_ref,
                bounty_id=bounty.bounty_id,
                player_wallet=bounty.player_wallet,
                challenge_ends_utc=challenge_ends,
                enqueued_utc=now_utc,
            )
        )

        return SettlementOutcome(
            bounty_id=bounty.bounty_id,
            success=success,
            reveal_tx_ref=reveal_tx,
            propose_tx_ref=propose_tx,
            challenge_ends_utc=challenge_ends,
        )
