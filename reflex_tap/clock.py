from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    Core logic depends on this interface rather than calling real time directly.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.perf_counter() (monotonic, sub-ms)."""

    def now(self) -> float:
        return time.perf_counter()


class TimerHandle:
    """Cancellable handle for a single scheduled callback."""

    __slots__ = ("_due_at_s", "_callback", "_cancelled", "_fired")

    def __init__(self, due_at_s: float, callback: Callable[[], None]) -> None:
        self._due_at_s = float(due_at_s)
        self._callback = callback
        self._cancelled = False
        self._fired = False

    @property
    def due_at_s(self) -> float:
        return self._due_at_s

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def pending(self) -> bool:
        return not (self._cancelled or self._fired)

    def cancel(self) -> None:
        self._cancelled = True

    def _fire(self) -> None:
        if not self.pending:
            return
        self._fired = True
        self._callback()


class Scheduler(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...


class PolledScheduler:
    """Fire-once timers driven from the caller's loop.

    Nothing runs in the background: update() fires every due, uncancelled
    callback on the calling thread, in due order. The pygame shell calls it
    once per frame; tests call it after advancing a fake clock.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._timers: list[TimerHandle] = []

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        if delay_s < 0.0:
            raise ValueError("delay_s must be >= 0")
        handle = TimerHandle(self._clock.now() + float(delay_s), callback)
        self._timers.append(handle)
        return handle

    def pending_count(self) -> int:
        return sum(1 for t in self._timers if t.pending)

    def update(self) -> int:
        """Fire due timers. Returns how many callbacks ran."""

        now = self._clock.now()
        due = sorted((t for t in self._timers if t.pending and t.due_at_s <= now), key=lambda t: t.due_at_s)
        self._timers = [t for t in self._timers if t.pending and t.due_at_s > now]

        fired = 0
        for handle in due:
            # An earlier callback in this batch may have cancelled a later one.
            if handle.pending:
                handle._fire()
                fired += 1
        return fired
