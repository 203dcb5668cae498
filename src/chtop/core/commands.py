"""Typed commands the worker posts for the UI thread to apply."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UpdateView:
    """Resolve the view registered as ``name`` and call its ``update(payload)``."""

    name: str
    payload: Any


@dataclass(frozen=True, slots=True)
class ShowError:
    message: str


@dataclass(frozen=True, slots=True)
class ShowInfo:
    message: str


@dataclass(frozen=True, slots=True)
class SetStatus:
    text: str


@dataclass(frozen=True, slots=True)
class ShowText:
    title: str
    text: str


@dataclass(frozen=True, slots=True)
class ShowFlamegraph:
    """Folded stacks (``frame;frame;frame``, weight) ready for a flamegraph viewer."""

    title: str
    stacks: tuple[tuple[str, int], ...]


UiCommand = UpdateView | ShowError | ShowInfo | SetStatus | ShowText | ShowFlamegraph


class UiSink(Protocol):
    def post(self, command: UiCommand) -> None: ...


class QueueSink:
    """Thread-safe mailbox drained by the UI thread.

    Posting after ``close()`` is silently dropped: the UI is gone and nothing
    can render the command any more.
    """

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[UiCommand] = queue.SimpleQueue()
        self._closed = threading.Event()

    def post(self, command: UiCommand) -> None:
        if self._closed.is_set():
            logger.debug("UI sink closed, dropping %s", type(command).__name__)
            return
        self._queue.put(command)

    def drain(self, max_items: int | None = None) -> list[UiCommand]:
        """Return pending commands in posting order without blocking."""

        items: list[UiCommand] = []
        while max_items is None or len(items) < max_items:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return items

    def close(self) -> None:
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()


__all__ = [
    "QueueSink",
    "SetStatus",
    "ShowError",
    "ShowFlamegraph",
    "ShowInfo",
    "ShowText",
    "UiCommand",
    "UiSink",
    "UpdateView",
]
