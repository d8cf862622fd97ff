"""Tests for the periodic task scheduler (virtual clock, no sleeping)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from seek.scheduler import Scheduler


def _now() -> datetime:
    return datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)


class TestScheduler:
    def test_runs_at_interval(self) -> None:
        calls: list[datetime] = []
        scheduler = Scheduler(clock=_now)
        scheduler.every("tick", 30, calls.append)

        assert scheduler.run_due(_now() + timedelta(seconds=29)) == []
        assert scheduler.run_due(_now() + timedelta(seconds=30)) == ["tick"]
        assert scheduler.run_due(_now() + timedelta(seconds=45)) == []
        assert scheduler.run_due(_now() + timedelta(seconds=60)) == ["tick"]
        assert calls == [_now() + timedelta(seconds=30), _now() + timedelta(seconds=60)]

    def test_run_immediately(self) -> None:
        scheduler = Scheduler(clock=_now)
        scheduler.every("now", 60, lambda now: None, run_immediately=True)
        assert scheduler.run_due(_now()) == ["now"]

    def test_uses_clock_when_no_time_given(self) -> None:
        ticks = iter([_now(), _now() + timedelta(seconds=10)])
        scheduler = Scheduler(clock=lambda: next(ticks))
        scheduler.every("t", 10, lambda now: None)
        assert scheduler.run_due() == ["t"]

    def test_failing_task_does_not_stop_others(self) -> None:
        ran: list[str] = []

        def boom(now: datetime) -> None:
            raise RuntimeError("sweep failed")

        scheduler = Scheduler(clock=_now)
        scheduler.every("boom", 10, boom)
        scheduler.every("ok", 10, lambda now: ran.append("ok"))

        assert sorted(scheduler.run_due(_now() + timedelta(seconds=10))) == ["boom", "ok"]
        assert ran == ["ok"]
        failed = next(t for t in scheduler.tasks() if t.name == "boom")
        assert failed.failures == 1
        assert failed.last_error == "sweep failed"
        assert failed.next_run_utc == _now() + timedelta(seconds=20)

    def test_duplicate_name_rejected(self) -> None:
        scheduler = Scheduler(clock=_now)
        scheduler.every("x", 10, lambda now: None)
        with pytest.raises(ValueError, match="already registered"):
            scheduler.every("x", 20, lambda now: None)

    def test_non_positive_interval_rejected(self) -> None:
        with pytest.raises(ValueError, match="must be > 0"):
            Scheduler(clock=_now).every("x", 0, lambda now: None)

    def test_start_and_stop_thread(self) -> None:
        scheduler = Scheduler()
        thread = scheduler.start(tick_seconds=0.01)
        assert thread.is_alive()
        assert scheduler.start() is thread
        scheduler.stop(timeout=2.0)
        assert not thread.is_alive()
