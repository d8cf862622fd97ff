"""Append-only audit log of bounty, settlement and identity events.

Every externally meaningful action (bounty created, verdict reached,
resolution proposed, finalization exhausted, identity bound) is appended
as an immutable record carrying the SHA-256 of its canonical JSON. The
log can be persisted as JSONL and is integrity-checked when loaded back:
a record whose stored hash does not match its content, or a repeated
event id, aborts recovery.
"""

from __future__ import annotations

import enum
import hashlib
import json
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class EventKind(str, enum.Enum):
    """Classification of audit events."""
    # Bounty lifecycle
    BOUNTY_CREATED = "bounty_created"
    BOUNTY_SUBMITTED = "bounty_submitted"
    BOUNTY_SUBMISSION_FAILED = "bounty_submission_failed"
    BOUNTY_ADJUDICATED = "bounty_adjudicated"
    BOUNTY_RESOLVED = "bounty_resolved"
    BOUNTY_EXPIRED = "bounty_expired"
    BOUNTY_PURGED = "bounty_purged"
    # Settlement
    RESOLUTION_PROPOSED = "resolution_proposed"
    SETTLEMENT_FAILED = "settlement_failed"
    BOUNTY_FINALIZED = "bounty_finalized"
    FINALIZATION_EXHAUSTED = "finalization_exhausted"
    # Identity
    IDENTITY_VERIFIED = "identity_verified"
    IDENTITY_REJECTED = "identity_rejected"
    SYBIL_REJECTED = "sybil_rejected"


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    subject: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "subject": subject,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable audit event.

    ``subject`` is the bounty id or wallet the event is about.
    """
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    subject: str
    payload: dict[str, Any]
    event_hash: str

    @staticmethod
    def create(
        event_kind: EventKind,
        subject: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
        event_id: Optional[str] = None,
    ) -> EventRecord:
        ts = (timestamp_utc or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")
        eid = event_id or str(uuid.uuid4())
        return EventRecord(
            event_id=eid,
            event_kind=event_kind,
            timestamp_utc=ts,
            subject=subject,
            payload=payload,
            event_hash=_canonical_hash(eid, event_kind.value, ts, subject, payload),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "subject": self.subject,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }


class EventLog:
    """Append-only event log with optional JSONL persistence."""

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._lock = threading.Lock()
        self._events: list[EventRecord] = []
        self._event_ids: set[str] = set()
        self._storage_path = storage_path

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, event: EventRecord) -> None:
        """Append an event.

        Raises ValueError if event_id is a duplicate (replay protection).
        """
        with self._lock:
            if event.event_id in self._event_ids:
                raise ValueError(f"Duplicate event ID: {event.event_id}")
            self._events.append(event)
            self._event_ids.add(event.event_id)
            if self._storage_path:
                with self._storage_path.open("a", encoding="utf-8") as f:
                    f.write(json.dumps(event.to_dict(), sort_keys=True, ensure_ascii=False) + "\n")

    def record(
        self,
        kind: EventKind,
        subject: str,
        payload: Optional[dict[str, Any]] = None,
        *,
        now: Optional[datetime] = None,
    ) -> EventRecord:
        """Create and append an event in one step."""
        event = EventRecord.create(kind, subject, payload or {}, timestamp_utc=now)
        self.append(event)
        return event

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        with self._lock:
            if kind is None:
                return list(self._events)
            return [e for e in self._events if e.event_kind == kind]

    def events_for(self, subject: str) -> list[EventRecord]:
        with self._lock:
            return [e for e in self._events if e.subject == subject]

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._events)

    def _load_from_file(self, path: Path) -> None:
        """Load events with integrity verification. Fails closed."""
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                event_id = data["event_id"]
                if event_id in self._event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event_id}"
                    )
                expected = _canonical_hash(
                    event_id,
                    data["event_kind"],
                    data["timestamp_utc"],
                    data["subject"],
                    data["payload"],
                )
                if data["event_hash"] != expected:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected}"
                    )
                self._events.append(EventRecord(
                    event_id=event_id,
                    event_kind=EventKind(data["event_kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    subject=data["subject"],
                    payload=data["payload"],
                    event_hash=data["event_hash"],
                ))
                self._event_ids.add(event_id)
