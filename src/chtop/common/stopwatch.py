"""Monotonic stopwatch used to time worker dispatches."""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import timedelta


class Stopwatch:
    """Measure wall-clock time since construction (or the last restart)."""

    __slots__ = ("_clock", "_started")

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.perf_counter
        self._started = self._clock()

    @classmethod
    def start_new(cls) -> Stopwatch:
        return cls()

    def restart(self) -> None:
        self._started = self._clock()

    def elapsed(self) -> timedelta:
        return timedelta(seconds=max(0.0, self._clock() - self._started))

    def elapsed_ms(self) -> int:
        return int(self.elapsed() / timedelta(milliseconds=1))


__all__ = ["Stopwatch"]
