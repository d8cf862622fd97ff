"""Finalization worker — executes payout after the challenge window.

FinalizationQueue is the durable set of proposed-but-unfinalized
settlements, keyed by settlement ref. Enqueueing an already queued ref
is a no-op. When a storage path is given, the whole queue (pending and
exhausted records) is written to a JSON snapshot after every mutation
and reloaded on construction, so a restart does not drop anything.

FinalizationWorker.run_once(now) is one poll: for each record whose
window has closed it calls finalize_bounty outside the queue lock, then
records the outcome:
- success                → removed from the queue;
- ChallengePeriodActive  → deferred one poll interval, not an attempt;
- any other failure      → attempts += 1.
A record reaching max_attempts (or max_deferrals) is moved to the
exhausted set, logged at error level and reported by status(). It is
never retried automatically.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from seek.errors import ChallengePeriodActive
from seek.models.bounty import FinalizationReceipt, PendingFinalization
from seek.settlement.contract import SettlementContract


logger = logging.getLogger(__name__)


class FinalizationQueue:
    """Thread-safe, optionally file-backed queue of pending finalizations."""

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._lock = threading.Lock()
        self._pending: dict[str, PendingFinalization] = {}
        self._exhausted: dict[str, PendingFinalization] = {}
        self._storage_path = storage_path

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def enqueue(self, record: PendingFinalization) -> bool:
        """Add *record*. Returns False (and changes nothing) if already queued."""
        with self._lock:
            ref = record.settlement_ref
            if ref in self._pending or ref in self._exhausted:
                logger.debug("Finalization already queued: %s", ref)
                return False
            self._pending[ref] = record
            self._persist_locked()
        logger.info(
            "Finalization queued: %s (eligible %s)",
            record.settlement_ref, record.challenge_ends_utc.isoformat(),
        )
        return True

    def due(self, now: datetime) -> list[PendingFinalization]:
        """Copies of records whose challenge window has closed."""
        with self._lock:
            return [
                PendingFinalization.from_dict(r.to_dict())
                for r in self._pending.values()
                if now >= r.challenge_ends_utc
            ]

    def complete(self, settlement_ref: str) -> None:
        with self._lock:
            self._pending.pop(settlement_ref, None)
            self._persist_locked()

    def defer(self, settlement_ref: str, until: datetime, error: str) -> Optional[PendingFinalization]:
        with self._lock:
            record = self._pending.get(settlement_ref)
            if record is None:
                return None
            record.deferrals += 1
            record.last_error = error
            record.challenge_ends_utc = max(record.challenge_ends_utc, until)
            self._persist_locked()
            return PendingFinalization.from_dict(record.to_dict())

    def record_failure(self, settlement_ref: str, error: str) -> Optional[PendingFinalization]:
        with self._lock:
            record = self._pending.get(settlement_ref)
            if record is None:
                return None
            record.attempts += 1
            record.last_error = error
            self._persist_locked()
            return PendingFinalization.from_dict(record.to_dict())

    def exhaust(self, settlement_ref: str, now: datetime) -> Optional[PendingFinalization]:
        """Move a record from pending to exhausted."""
        with self._lock:
            record = self._pending.pop(settlement_ref, None)
            if record is None:
                return None
            record.exhausted_utc = now
            self._exhausted[settlement_ref] = record
            self._persist_locked()
            return PendingFinalization.from_dict(record.to_dict())

    def clear_exhausted(self, settlement_ref: str) -> bool:
        """Operator acknowledgement of a manually handled settlement."""
        with self._lock:
            removed = self._exhausted.pop(settlement_ref, None) is not None
            if removed:
                self._persist_locked()
            return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, settlement_ref: str) -> Optional[PendingFinalization]:
        with self._lock:
            return self._pending.get(settlement_ref)

    def pending(self) -> list[PendingFinalization]:
        with self._lock:
            return list(self._pending.values())

    def exhausted(self) -> list[PendingFinalization]:
        with self._lock:
            return list(self._exhausted.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist_locked(self) -> None:
        if not self._storage_path:
            return
        snapshot = {
            "pending": [r.to_dict() for r in self._pending.values()],
            "exhausted": [r.to_dict() for r in self._exhausted.values()],
        }
        tmp = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(snapshot, f, indent=2, sort_keys=True)
        os.replace(tmp, self._storage_path)

    def _load_from_file(self, path: Path) -> None:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        for raw in data.get("pending", []):
            record = PendingFinalization.from_dict(raw)
            self._pending[record.settlement_ref] = record
        for raw in data.get("exhausted", []):
            record = PendingFinalization.from_dict(raw)
            self._exhausted[record.settlement_ref] = record
        logger.info(
            "Finalization queue recovered: %d pending, %d exhausted",
            len(self._pending), len(self._exhausted),
        )


@dataclass(frozen=True)
class PollReport:
    """What one worker poll did."""
    finalized: tuple[str, ...] = ()
    deferred: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    exhausted: tuple[str, ...] = ()


class FinalizationWorker:
    """Polls the queue and finalizes eligible settlements.

    Parameters (via *config* dict, the ``finalizer`` policy section):
        poll_interval_seconds : int — scheduler cadence and deferral step (default 30)
        max_attempts          : int — failures before exhaustion (default 10)
        max_deferrals         : int — early-window rejections before exhaustion (default 20)
    """

    def __init__(
        self,
        contract: SettlementContract,
        queue: FinalizationQueue,
        config: Optional[dict] = None,
        *,
        on_finalized: Optional[Callable[[PendingFinalization, FinalizationReceipt], Any]] = None,
        on_exhausted: Optional[Callable[[PendingFinalization], Any]] = None,
    ) -> None:
        config = config or {}
        self._contract = contract
        self._queue = queue
        self._poll_interval: int = config.get("poll_interval_seconds", 30)
        self._max_attempts: int = config.get("max_attempts", 10)
        self._max_deferrals: int = config.get("max_deferrals", 20)
        self._on_finalized = on_finalized
        self._on_exhausted = on_exhausted

    @property
    def poll_interval_seconds(self) -> int:
        return self._poll_interval

    def run_once(self, *, now: Optional[datetime] = None) -> PollReport:
        """Attempt every due finalization once."""
        now_utc = now or datetime.now(timezone.utc)
        finalized: list[str] = []
        deferred: list[str] = []
        failed: list[str] = []
        exhausted: list[str] = []

        for record in self._queue.due(now_utc):
            ref = record.settlement_ref
            try:
                receipt = self._contract.finalize_bounty(ref)
            except ChallengePeriodActive as exc:
                updated = self._queue.defer(
                    ref, now_utc + timedelta(seconds=self._poll_interval), str(exc)
                )
                logger.info("Finalization deferred (challenge period active): %s", ref)
                deferred.append(ref)
                if updated is not None and updated.deferrals >= self._max_deferrals:
                    self._exhaust(ref, now_utc)
                    exhausted.append(ref)
                continue
            except Exception as exc:
                updated = self._queue.record_failure(ref, str(exc))
                attempts = updated.attempts if updated else self._max_attempts
                logger.warning(
                    "Finalization failed for %s (attempt %d/%d): %s",
                    ref, attempts, self._max_attempts, exc,
                )
                failed.append(ref)
                if attempts >= self._max_attempts:
                    self._exhaust(ref, now_utc)
                    exhausted.append(ref)
                continue

            self._queue.complete(ref)
            finalized.append(ref)
            logger.info("Bounty finalized: %s (tx %s)", ref, receipt.tx_ref)
            self._notify(self._on_finalized, record, receipt)

        return PollReport(
            finalized=tuple(finalized),
            deferred=tuple(deferred),
            failed=tuple(failed),
            exhausted=tuple(exhausted),
        )

    def status(self) -> dict[str, Any]:
        """Operational surface: queue depth plus settlements needing a human."""
        pending = self._queue.pending()
        exhausted = self._queue.exhausted()
        return {
            "queue_size": len(pending),
            "pending": [r.to_dict() for r in pending],
            "exhausted_count": len(exhausted),
            "exhausted": [r.to_dict() for r in exhausted],
            "max_attempts": self._max_attempts,
            "poll_interval_seconds": self._poll_interval,
        }

    def _exhaust(self, settlement_ref: str, now: datetime) -> None:
        record = self._queue.exhaust(settlement_ref, now)
        if record is None:
            return
        logger.error(
            "Finalization exhausted for %s after %d attempts / %d deferrals; "
            "manual intervention required. Last error: %s",
            settlement_ref, record.attempts, record.deferrals, record.last_error,
        )
        self._notify(self._on_exhausted, record)

    def _notify(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        """Run a completion callback; its failure never halts the batch."""
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Finalization callback failed for %s", args[0].settlement_ref)
