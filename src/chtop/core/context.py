"""Shared, lock-guarded state passed explicitly to the worker and the views."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any

from ..clickhouse.client import ClickHouseClient
from ..common.relative_datetime import RelativeDateTime
from ..config import AppConfig
from .background_runner import RefreshSignal
from .commands import UiSink


@dataclass(frozen=True, slots=True)
class ViewOptions:
    """Options every view and SQL builder reads; immutable, replaced wholesale."""

    delay_interval: float = 3.0
    cluster: str | None = None
    group_by: bool = False
    no_subqueries: bool = False
    no_strip_hostname_suffix: bool = False
    start: RelativeDateTime = RelativeDateTime(offset=timedelta(hours=1))
    end: RelativeDateTime = RelativeDateTime()
    queries_limit: int = 10_000
    logs_limit: int = 100

    @classmethod
    def from_config(cls, config: AppConfig) -> ViewOptions:
        return cls(
            delay_interval=config.delay_interval,
            cluster=config.connection.cluster,
            group_by=config.group_by,
            no_subqueries=config.view.no_subqueries,
            no_strip_hostname_suffix=config.view.no_strip_hostname_suffix,
            start=RelativeDateTime.parse(config.view.start),
            end=RelativeDateTime.parse(config.view.end),
            queries_limit=config.view.queries_limit,
            logs_limit=config.view.logs_limit,
        )


@dataclass(frozen=True, slots=True)
class ContextSnapshot:
    client: ClickHouseClient
    options: ViewOptions
    sink: UiSink
    server_version: str | None


class Context:
    """Cheap-to-share handle; every read copies under the lock and releases it."""

    def __init__(
        self,
        client: ClickHouseClient,
        options: ViewOptions,
        sink: UiSink,
        signal: RefreshSignal | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._client = client
        self._options = options
        self._sink = sink
        self._server_version: str | None = None
        self.signal = signal or RefreshSignal()

    @classmethod
    def from_config(cls, config: AppConfig, sink: UiSink) -> Context:
        client = ClickHouseClient(
            config.connection.url,
            user=config.connection.user,
            password=config.connection.password,
            timeout=config.connection.timeout,
        )
        return cls(client, ViewOptions.from_config(config), sink)

    def snapshot(self) -> ContextSnapshot:
        with self._lock:
            return ContextSnapshot(
                client=self._client,
                options=self._options,
                sink=self._sink,
                server_version=self._server_version,
            )

    @property
    def options(self) -> ViewOptions:
        with self._lock:
            return self._options

    @property
    def sink(self) -> UiSink:
        with self._lock:
            return self._sink

    def update_options(self, **changes: Any) -> ViewOptions:
        with self._lock:
            self._options = replace(self._options, **changes)
            return self._options

    def set_server_version(self, version: str) -> None:
        with self._lock:
            self._server_version = version

    def trigger_view_refresh(self) -> None:
        """Wake every background runner for an immediate refresh."""

        self.signal.broadcast()


__all__ = ["Context", "ContextSnapshot", "ViewOptions"]
