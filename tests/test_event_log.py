"""Tests for the append-only audit log."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from seek.persistence.event_log import EventKind, EventLog, EventRecord


def _now() -> datetime:
    return datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)


class TestEventRecord:
    def test_hash_is_deterministic(self) -> None:
        a = EventRecord.create(EventKind.BOUNTY_CREATED, "b1", {"tier": 1}, _now(), event_id="e1")
        b = EventRecord.create(EventKind.BOUNTY_CREATED, "b1", {"tier": 1}, _now(), event_id="e1")
        assert a.event_hash == b.event_hash
        assert a.event_hash.startswith("sha256:")
        assert a.timestamp_utc == "2026-02-16T12:00:00Z"

    def test_payload_changes_hash(self) -> None:
        a = EventRecord.create(EventKind.BOUNTY_CREATED, "b1", {"tier": 1}, _now(), event_id="e1")
        b = EventRecord.create(EventKind.BOUNTY_CREATED, "b1", {"tier": 2}, _now(), event_id="e1")
        assert a.event_hash != b.event_hash


class TestEventLog:
    def test_record_and_query(self) -> None:
        log = EventLog()
        log.record(EventKind.BOUNTY_CREATED, "b1", {"tier": 1}, now=_now())
        log.record(EventKind.BOUNTY_RESOLVED, "b1", {"status": "won"}, now=_now())
        log.record(EventKind.BOUNTY_CREATED, "b2", now=_now())
        assert log.count == 3
        assert len(log.events(EventKind.BOUNTY_CREATED)) == 2
        assert [e.event_kind for e in log.events_for("b1")] == [
            EventKind.BOUNTY_CREATED, EventKind.BOUNTY_RESOLVED,
        ]

    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        event = EventRecord.create(EventKind.BOUNTY_CREATED, "b1", {}, _now(), event_id="e1")
        log.append(event)
        with pytest.raises(ValueError, match="Duplicate event ID"):
            log.append(event)

    def test_persist_and_recover(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(path)
        log.record(EventKind.BOUNTY_CREATED, "b1", {"tier": 1}, now=_now())
        log.record(EventKind.SYBIL_REJECTED, "0xabc", {"failure": "credential_bound_elsewhere"}, now=_now())

        recovered = EventLog(path)
        assert recovered.count == 2
        assert recovered.events()[1].event_kind == EventKind.SYBIL_REJECTED

    def test_tampered_file_fails_closed(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(path).record(EventKind.BOUNTY_RESOLVED, "b1", {"status": "lost"}, now=_now())

        data = json.loads(path.read_text(encoding="utf-8"))
        data["payload"]["status"] = "won"
        path.write_text(json.dumps(data) + "\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Integrity check failed"):
            EventLog(path)

    def test_duplicate_line_fails_closed(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(path).record(EventKind.BOUNTY_CREATED, "b1", {}, now=_now())
        line = path.read_text(encoding="utf-8")
        path.write_text(line + line, encoding="utf-8")
        with pytest.raises(ValueError, match="Duplicate event ID on recovery"):
            EventLog(path)
