"""Periodic task scheduler for background sweeps and polls.

Tasks are registered with an interval and run by ``run_due(now)``, which
executes every task whose next run time has arrived. Time is always
passed in, so tests drive the scheduler with a virtual clock and never
sleep. In a process, ``start()`` runs the same loop on a daemon thread
until ``stop()`` sets the cancellation event.

A task that raises is logged and rescheduled; one failing sweep does not
stop the others.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PeriodicTask:
    name: str
    interval: timedelta
    action: Callable[[datetime], Any]
    next_run_utc: Optional[datetime] = None
    runs: int = 0
    failures: int = 0
    last_error: Optional[str] = None


class Scheduler:
    """Runs registered tasks at fixed intervals."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._tasks: dict[str, PeriodicTask] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def every(
        self,
        name: str,
        interval_seconds: float,
        action: Callable[[datetime], Any],
        *,
        run_immediately: bool = False,
        now: Optional[datetime] = None,
    ) -> PeriodicTask:
        """Register *action* to run every *interval_seconds*.

        Raises:
            ValueError: On a duplicate name or non-positive interval.
        """
        if interval_seconds <= 0:
            raise ValueError(f"Interval must be > 0, got {interval_seconds}")
        start = now or self._clock()
        interval = timedelta(seconds=interval_seconds)
        task = PeriodicTask(
            name=name,
            interval=interval,
            action=action,
            next_run_utc=start if run_immediately else start + interval,
        )
        with self._lock:
            if name in self._tasks:
                raise ValueError(f"Task already registered: {name}")
            self._tasks[name] = task
        return task

    def run_due(self, now: Optional[datetime] = None) -> list[str]:
        """Run every task that is due at *now*. Returns the names run."""
        now_utc = now or self._clock()
        with self._lock:
            due = [
                t for t in self._tasks.values()
                if t.next_run_utc is not None and now_utc >= t.next_run_utc
            ]
        ran: list[str] = []
        for task in due:
            task.next_run_utc = now_utc + task.interval
            task.runs += 1
            try:
                task.action(now_utc)
            except Exception as exc:
                task.failures += 1
                task.last_error = str(exc)
                logger.exception("Scheduled task %s failed", task.name)
            ran.append(task.name)
        return ran

    def tasks(self) -> list[PeriodicTask]:
        with self._lock:
            return list(self._tasks.values())

    # ------------------------------------------------------------------
    # Thread lifecycle
    # ------------------------------------------------------------------

    def run_forever(self, tick_seconds: float = 1.0) -> None:
        """Block, running due tasks each tick, until stop() is called."""
        while not self._stop.is_set():
            self.run_due()
            self._stop.wait(tick_seconds)

    def start(self, tick_seconds: float = 1.0) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run_forever,
            args=(tick_seconds,),
            name="seek-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("Scheduler started with %d tasks", len(self._tasks))
        return self._thread

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Scheduler stopped")
