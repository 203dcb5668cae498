from __future__ import annotations

from datetime import timedelta

from chtop.common.stopwatch import Stopwatch


def test_elapsed_uses_the_injected_clock() -> None:
    ticks = iter([10.0, 10.25, 11.0, 11.5])
    watch = Stopwatch(clock=lambda: next(ticks))
    assert watch.elapsed() == timedelta(milliseconds=250)
    watch.restart()
    assert watch.elapsed_ms() == 500


def test_elapsed_never_negative() -> None:
    ticks = iter([5.0, 4.0])
    watch = Stopwatch(clock=lambda: next(ticks))
    assert watch.elapsed() == timedelta(0)
