"""Thread-per-view periodic refresh scheduler."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from types import TracebackType

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[bool], None]


class RefreshSignal:
    """Condition variable and force flag shared by every runner of one app.

    ``take_force`` reads and clears the flag atomically, so exactly one callback
    observes a given force request as ``was_forced=True``.
    """

    def __init__(self) -> None:
        self.condition = threading.Condition()
        self._force = False
        self._generation = 0

    def take_force(self) -> bool:
        with self.condition:
            forced, self._force = self._force, False
            return forced

    def set_force(self) -> None:
        with self.condition:
            self._force = True

    @property
    def generation(self) -> int:
        with self.condition:
            return self._generation

    def broadcast(self) -> None:
        """Force every runner sharing this signal to refresh now."""

        with self.condition:
            self._force = True
            self._generation += 1
            self.condition.notify_all()


class BackgroundRunner:
    """Run ``callback(was_forced)`` immediately, then every ``interval`` seconds.

    ``schedule()`` wakes the loop early. ``stop()`` blocks until the thread has
    exited; the callback is never invoked once ``stop()`` has begun.
    """

    def __init__(self, interval: float, signal: RefreshSignal, *, name: str = "refresh") -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.interval = interval
        self.name = name
        self._signal = signal
        self._exit = False
        self._woken = False
        self._thread: threading.Thread | None = None
        # Held for the whole callback so stop() can fence off further invocations.
        self._run_lock = threading.Lock()

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self, callback: RefreshCallback) -> None:
        if self._thread is not None:
            raise RuntimeError(f"runner {self.name!r} already started")
        self._thread = threading.Thread(
            target=self._loop,
            args=(callback,),
            name=f"chtop-{self.name}",
            daemon=True,
        )
        # The first tick runs immediately and reports itself as forced.
        with self._signal.condition:
            self._signal.set_force()
            self._signal.condition.notify_all()
        self._thread.start()

    def schedule(self) -> None:
        """Request an out-of-cycle refresh (e.g. after a filter change)."""

        with self._signal.condition:
            self._signal.set_force()
            self._woken = True
            self._signal.condition.notify_all()

    def stop(self, timeout: float | None = None) -> None:
        thread = self._thread
        if thread is threading.current_thread():
            # Called from inside the callback: joining ourselves would deadlock.
            self._exit = True
            return
        with self._run_lock:
            with self._signal.condition:
                self._exit = True
                self._signal.condition.notify_all()
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Runner %s did not stop within %.1fs", self.name, timeout or 0.0)
        logger.debug("Runner %s stopped", self.name)

    def __enter__(self) -> BackgroundRunner:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()

    def _loop(self, callback: RefreshCallback) -> None:
        logger.debug("Runner %s started (interval %.3fs)", self.name, self.interval)
        while True:
            with self._run_lock:
                if self._exit:
                    break
                seen = self._signal.generation
                forced = self._signal.take_force()
                try:
                    callback(forced)
                except Exception:
                    logger.exception("Refresh callback of %s failed", self.name)
            if not self._wait(seen):
                break

    def _wait(self, seen: int) -> bool:
        """Sleep until the interval elapses or a wake-up arrives; ``False`` on exit."""

        signal = self._signal
        deadline = time.monotonic() + self.interval
        with signal.condition:
            while not self._exit and not self._woken and signal.generation == seen:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                signal.condition.wait(remaining)
            self._woken = False
            return not self._exit


__all__ = ["BackgroundRunner", "RefreshCallback", "RefreshSignal"]
