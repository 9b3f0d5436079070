"""
BINGO47 — Timer Scheduling

The round engine never sleeps or owns threads; it asks a Scheduler for a
repeating callback and gets back a handle it can cancel, pause and resume.

  ManualScheduler     virtual clock, advanced explicitly (tests, CLI autoplay)
  ThreadingScheduler  threading.Timer chain on wall-clock time (web app)

Pausing captures the time left until the next firing; resuming waits only
that long before firing, then returns to the normal interval.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

logger = logging.getLogger("bingo47.clock")


class TimerHandle(ABC):
    """Cancellation token for one repeating callback."""

    interval: float

    @abstractmethod
    def cancel(self):
        ...

    @abstractmethod
    def pause(self):
        ...

    @abstractmethod
    def resume(self):
        ...

    @abstractmethod
    def remaining(self) -> float:
        """Seconds until the next firing (frozen while paused)."""
        ...

    @property
    @abstractmethod
    def active(self) -> bool:
        ...


class Scheduler(ABC):
    @abstractmethod
    def schedule_repeating(self, interval: float, callback: Callable[[], None]) -> TimerHandle:
        ...


# ═══════════════════════════════════════════════════════════════
# Virtual clock
# ═══════════════════════════════════════════════════════════════

class _ManualTimer(TimerHandle):
    def __init__(self, scheduler: "ManualScheduler", interval: float, callback):
        self._scheduler = scheduler
        self.interval = interval
        self.callback = callback
        self.next_fire = scheduler.now + interval
        self._cancelled = False
        self._paused_remaining: Optional[float] = None

    def cancel(self):
        self._cancelled = True

    def pause(self):
        if self.active and self._paused_remaining is None:
            self._paused_remaining = max(0.0, self.next_fire - self._scheduler.now)

    def resume(self):
        if self._paused_remaining is not None and not self._cancelled:
            self.next_fire = self._scheduler.now + self._paused_remaining
            self._paused_remaining = None

    def remaining(self) -> float:
        if self._paused_remaining is not None:
            return self._paused_remaining
        return max(0.0, self.next_fire - self._scheduler.now)

    @property
    def active(self) -> bool:
        return not self._cancelled

    @property
    def paused(self) -> bool:
        return self._paused_remaining is not None


class ManualScheduler(Scheduler):
    """Deterministic scheduler: nothing fires until advance() is called."""

    def __init__(self):
        self.now = 0.0
        self._timers: list[_ManualTimer] = []

    def schedule_repeating(self, interval: float, callback) -> TimerHandle:
        if interval <= 0:
            raise ValueError(f"Timer interval must be positive, got {interval}")
        timer = _ManualTimer(self, interval, callback)
        self._timers.append(timer)
        return timer

    def _due(self, until: float) -> Optional[_ManualTimer]:
        live = [t for t in self._timers if t.active and not t.paused and t.next_fire <= until + 1e-9]
        return min(live, key=lambda t: t.next_fire) if live else None

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing every due callback in time order."""
        target = self.now + seconds
        fired = 0
        while True:
            timer = self._due(target)
            if timer is None:
                break
            self.now = max(self.now, timer.next_fire)
            timer.next_fire += timer.interval
            timer.callback()
            fired += 1
        self.now = target
        self._timers = [t for t in self._timers if t.active]
        return fired

    def pending(self) -> int:
        return sum(1 for t in self._timers if t.active)


# ═══════════════════════════════════════════════════════════════
# Wall clock
# ═══════════════════════════════════════════════════════════════

class _ThreadTimer(TimerHandle):
    def __init__(self, interval: float, callback):
        self.interval = interval
        self.callback = callback
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._due_at = 0.0
        self._cancelled = False
        self._paused_remaining: Optional[float] = None

    def _arm(self, delay: float):
        self._due_at = time.monotonic() + delay
        self._timer = threading.Timer(delay, self._fire)
        self._timer.daemon = True
        self._timer.start()

    def _fire(self):
        with self._lock:
            if self._cancelled or self._paused_remaining is not None:
                return
            self._arm(self.interval)
        try:
            self.callback()
        except Exception:
            logger.exception("Timer callback failed")

    def cancel(self):
        with self._lock:
            self._cancelled = True
            if self._timer:
                self._timer.cancel()

    def pause(self):
        with self._lock:
            if self._cancelled or self._paused_remaining is not None:
                return
            self._paused_remaining = max(0.0, self._due_at - time.monotonic())
            if self._timer:
                self._timer.cancel()

    def resume(self):
        with self._lock:
            if self._cancelled or self._paused_remaining is None:
                return
            delay, self._paused_remaining = self._paused_remaining, None
            self._arm(delay)

    def remaining(self) -> float:
        with self._lock:
            if self._paused_remaining is not None:
                return self._paused_remaining
            return max(0.0, self._due_at - time.monotonic())

    @property
    def active(self) -> bool:
        return not self._cancelled


class ThreadingScheduler(Scheduler):
    """Callbacks run on timer threads; the engine serializes them with its lock."""

    def schedule_repeating(self, interval: float, callback) -> TimerHandle:
        if interval <= 0:
            raise ValueError(f"Timer interval must be positive, got {interval}")
        timer = _ThreadTimer(interval, callback)
        with timer._lock:
            timer._arm(interval)
        return timer
