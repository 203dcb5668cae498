from __future__ import annotations

import threading
import time

import pytest

from chtop.core.background_runner import BackgroundRunner, RefreshSignal

HOUR = 3600.0


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_rejects_non_positive_interval() -> None:
    with pytest.raises(ValueError):
        BackgroundRunner(0, RefreshSignal())


def test_first_tick_runs_immediately_and_is_forced() -> None:
    calls: list[bool] = []
    ticked = threading.Event()

    def callback(forced: bool) -> None:
        calls.append(forced)
        ticked.set()

    runner = BackgroundRunner(HOUR, RefreshSignal(), name="test")
    runner.start(callback)
    try:
        assert ticked.wait(5.0)
        assert calls[0] is True
    finally:
        runner.stop(timeout=5.0)
    assert not runner.running


def test_start_twice_is_rejected() -> None:
    runner = BackgroundRunner(HOUR, RefreshSignal())
    runner.start(lambda _forced: None)
    try:
        with pytest.raises(RuntimeError):
            runner.start(lambda _forced: None)
    finally:
        runner.stop(timeout=5.0)


def test_stop_returns_and_no_callback_after_stop() -> None:
    calls: list[bool] = []
    runner = BackgroundRunner(0.01, RefreshSignal(), name="fast")
    runner.start(calls.append)
    assert _wait_for(lambda: len(calls) >= 3)

    runner.stop(timeout=5.0)
    seen = len(calls)
    time.sleep(0.1)
    assert len(calls) == seen
    assert not runner.running


def test_stop_waits_for_a_running_callback() -> None:
    entered = threading.Event()
    release = threading.Event()
    finished = threading.Event()

    def callback(_forced: bool) -> None:
        entered.set()
        release.wait(5.0)
        finished.set()

    runner = BackgroundRunner(HOUR, RefreshSignal())
    runner.start(callback)
    assert entered.wait(5.0)
    threading.Timer(0.05, release.set).start()
    runner.stop(timeout=5.0)
    assert finished.is_set()


def test_schedule_wakes_the_loop_early() -> None:
    calls: list[bool] = []
    runner = BackgroundRunner(HOUR, RefreshSignal())
    runner.start(calls.append)
    try:
        assert _wait_for(lambda: len(calls) == 1)
        runner.schedule()
        assert _wait_for(lambda: len(calls) == 2)
        assert calls[1] is True
    finally:
        runner.stop(timeout=5.0)


def test_broadcast_wakes_every_runner_sharing_the_signal() -> None:
    signal = RefreshSignal()
    first: list[bool] = []
    second: list[bool] = []
    runners = [BackgroundRunner(HOUR, signal, name="a"), BackgroundRunner(HOUR, signal, name="b")]
    runners[0].start(first.append)
    runners[1].start(second.append)
    try:
        assert _wait_for(lambda: len(first) == 1 and len(second) == 1)
        signal.broadcast()
        assert _wait_for(lambda: len(first) == 2 and len(second) == 2)
    finally:
        for runner in runners:
            runner.stop(timeout=5.0)


def test_force_flag_is_observed_once() -> None:
    signal = RefreshSignal()
    signal.set_force()
    assert signal.take_force() is True
    assert signal.take_force() is False


def test_failing_callback_keeps_the_loop_alive(caplog: pytest.LogCaptureFixture) -> None:
    calls: list[bool] = []

    def callback(forced: bool) -> None:
        calls.append(forced)
        if len(calls) == 1:
            raise RuntimeError("boom")

    runner = BackgroundRunner(0.01, RefreshSignal(), name="flaky")
    with caplog.at_level("ERROR", logger="chtop.core.background_runner"):
        runner.start(callback)
        try:
            assert _wait_for(lambda: len(calls) >= 2)
        finally:
            runner.stop(timeout=5.0)
    assert any("flaky" in record.getMessage() for record in caplog.records)


def test_stop_from_inside_the_callback_does_not_deadlock() -> None:
    calls: list[bool] = []
    runner = BackgroundRunner(0.01, RefreshSignal())

    def callback(forced: bool) -> None:
        calls.append(forced)
        runner.stop()

    runner.start(callback)
    assert _wait_for(lambda: not runner.running)
    assert calls == [True]


def test_context_manager_stops_runner() -> None:
    with BackgroundRunner(HOUR, RefreshSignal()) as runner:
        runner.start(lambda _forced: None)
        assert _wait_for(lambda: runner.running)
    assert not runner.running
