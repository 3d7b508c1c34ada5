"""Timer facilities and the keyed timer registry used by the engine."""
from __future__ import annotations

import enum
import heapq
import itertools
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Hashable, List, Optional, Protocol, Tuple

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

LOGGER = logging.getLogger(__name__)


class TimerFacility(Protocol):
    def schedule_at(self, when: datetime, callback: Callable[[], None], run_late: bool = False) -> Hashable:
        ...

    def cancel(self, handle: Hashable) -> None:
        ...


class APSchedulerTimerFacility:
    """Wrap APScheduler to run one-off callbacks at wall-clock times.

    A single worker thread runs the callbacks so two timers never fire
    concurrently.
    """

    def __init__(self, timezone: Any, misfire_grace_seconds: int = 60) -> None:
        self._scheduler = BackgroundScheduler(
            timezone=timezone,
            executors={"default": ThreadPoolExecutor(max_workers=1)},
            job_defaults={"coalesce": True, "misfire_grace_time": misfire_grace_seconds},
        )

    def start(self) -> None:
        if not self._scheduler.running:
            LOGGER.info("Starting background scheduler")
            self._scheduler.start()

    def shutdown(self) -> None:
        if self._scheduler.running:
            LOGGER.info("Stopping background scheduler")
            self._scheduler.shutdown(wait=False)

    def schedule_at(self, when: datetime, callback: Callable[[], None], run_late: bool = False) -> str:
        """Add a one-off job; *run_late* jobs run whenever the scheduler catches up."""
        options: Dict[str, Any] = {"misfire_grace_time": None} if run_late else {}
        job = self._scheduler.add_job(callback, trigger=DateTrigger(run_date=when), **options)
        LOGGER.debug("Scheduled job %s at %s", job.id, when)
        return job.id

    def cancel(self, handle: Hashable) -> None:
        with suppress_not_found():
            self._scheduler.remove_job(str(handle))

    def job_count(self) -> int:
        return len(self._scheduler.get_jobs())


class suppress_not_found:
    """Context manager that suppresses APScheduler job lookup errors."""

    def __enter__(self) -> None:  # pragma: no cover - trivial
        return None

    def __exit__(self, exc_type, exc, tb) -> bool:
        from apscheduler.jobstores.base import JobLookupError

        if exc_type is None:
            return False
        return isinstance(exc, JobLookupError)


class ManualTimerFacility:
    """Deterministic in-process timer queue, driven by ``advance_to``.

    Used for simulations and tests: nothing fires until the caller moves
    time forward, then due callbacks run in time order (ties in
    scheduling order).
    """

    def __init__(self) -> None:
        self._queue: List[Tuple[datetime, int, Callable[[], None]]] = []
        self._counter = itertools.count()
        self._cancelled: set = set()

    def schedule_at(self, when: datetime, callback: Callable[[], None], run_late: bool = False) -> int:
        handle = next(self._counter)
        heapq.heappush(self._queue, (when, handle, callback))
        return handle

    def cancel(self, handle: Hashable) -> None:
        if any(entry[1] == handle for entry in self._queue):
            self._cancelled.add(handle)

    def pending(self) -> List[datetime]:
        return sorted(when for when, handle, _ in self._queue if handle not in self._cancelled)

    def advance_to(self, when: datetime) -> int:
        """Run every callback due at or before *when*; returns how many ran."""
        fired = 0
        while self._queue and self._queue[0][0] <= when:
            _, handle, callback = heapq.heappop(self._queue)
            if handle in self._cancelled:
                self._cancelled.discard(handle)
                continue
            callback()
            fired += 1
        return fired


class TimerState(enum.Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    FIRED = "fired"
    CANCELLED = "cancelled"


class TimerRegistry:
    """Own every live timer handle, keyed by event key.

    Registering a key that is already live cancels the previous timer first,
    so there is at most one live timer per key. A callback is skipped when
    its registration was cancelled before it claimed the lock; once claimed
    the timer counts as fired and the callback runs outside the lock.
    """

    def __init__(self, facility: TimerFacility, lock: Optional[Any] = None) -> None:
        self._facility = facility
        self.lock = lock or threading.RLock()
        self._handles: Dict[str, Hashable] = {}
        self._tokens: Dict[str, object] = {}
        self._states: Dict[str, TimerState] = {}

    def register(self, key: str, when: datetime, callback: Callable[[], None], run_late: bool = False) -> None:
        with self.lock:
            if key in self._handles:
                LOGGER.debug("Replacing live timer %s", key)
                self.cancel(key)

            token = object()

            def _fire() -> None:
                with self.lock:
                    if self._tokens.get(key) is not token:
                        LOGGER.debug("Timer %s was cancelled before firing", key)
                        return
                    self._handles.pop(key, None)
                    self._tokens.pop(key, None)
                    self._states[key] = TimerState.FIRED
                callback()

            self._tokens[key] = token
            self._handles[key] = self._facility.schedule_at(when, _fire, run_late=run_late)
            self._states[key] = TimerState.SCHEDULED

    def cancel(self, key: str) -> bool:
        with self.lock:
            handle = self._handles.pop(key, None)
            self._tokens.pop(key, None)
            if handle is None:
                return False
            self._facility.cancel(handle)
            self._states[key] = TimerState.CANCELLED
            return True

    def cancel_all(self) -> List[str]:
        with self.lock:
            keys = list(self._handles)
            for key in keys:
                self.cancel(key)
            return keys

    def state(self, key: str) -> TimerState:
        return self._states.get(key, TimerState.IDLE)

    def live_keys(self) -> List[str]:
        return list(self._handles)

    def live_count(self) -> int:
        return len(self._handles)

    def __contains__(self, key: object) -> bool:
        return key in self._handles
