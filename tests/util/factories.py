"""Builders shared by the test modules: records, result sets, fake client and sink."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from chtop.clickhouse.block import Block
from chtop.clickhouse.models import ColumnMeta
from chtop.core.commands import UiCommand
from chtop.core.query import QueryRecord

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


def make_record(
    query_id: str,
    *,
    initial_query_id: str | None = None,
    elapsed: float = 1.0,
    events: Mapping[str, int] | None = None,
    running: bool = True,
    host: str = "ch-1.example.net",
    user: str = "default",
    started: datetime = T0,
    query: str = "SELECT 1",
) -> QueryRecord:
    initial = initial_query_id or query_id
    return QueryRecord(
        host_name=host,
        user=user,
        threads=1,
        memory=1024,
        elapsed=elapsed,
        query_start_time=started,
        query_end_time=started + timedelta(seconds=elapsed),
        is_initial_query=initial == query_id,
        initial_query_id=initial,
        query_id=query_id,
        normalized_query=query,
        original_query=query,
        current_database="default",
        profile_events=dict(events or {}),
        running=running,
    )


def make_block(columns: Sequence[tuple[str, str]], rows: Sequence[Sequence[Any]]) -> Block:
    return Block(
        meta=[ColumnMeta(name=name, type=type_name) for name, type_name in columns],
        rows=[list(row) for row in rows],
    )


PROCESS_COLUMNS: tuple[tuple[str, str], ...] = (
    ("host_name", "String"),
    ("user", "String"),
    ("peak_threads_usage", "UInt64"),
    ("peak_memory_usage", "Int64"),
    ("elapsed", "Float64"),
    ("query_start_time_microseconds", "DateTime64(6)"),
    ("query_end_time_microseconds", "DateTime64(6)"),
    ("is_initial_query", "UInt8"),
    ("initial_query_id", "String"),
    ("query_id", "String"),
    ("normalized_query", "String"),
    ("original_query", "String"),
    ("current_database", "String"),
    ("profile_events", "Map(String, UInt64)"),
    ("settings", "Map(String, String)"),
)


def process_row(
    query_id: str,
    *,
    initial_query_id: str | None = None,
    elapsed: float = 1.0,
    events: Mapping[str, int] | None = None,
    host: str = "ch-1.example.net",
) -> list[Any]:
    initial = initial_query_id or query_id
    return [
        host,
        "default",
        4,
        2048,
        elapsed,
        T0,
        T0 + timedelta(seconds=elapsed),
        1 if initial == query_id else 0,
        initial,
        query_id,
        "SELECT ?",
        "SELECT 1",
        "default",
        dict(events or {}),
        {"max_threads": "4"},
    ]


MERGE_COLUMNS: tuple[tuple[str, str], ...] = (
    ("database", "String"),
    ("table", "String"),
    ("part", "String"),
    ("elapsed", "Float64"),
    ("progress", "Float64"),
    ("parts", "UInt64"),
    ("mutation", "UInt8"),
    ("size", "UInt64"),
    ("rows_read", "UInt64"),
    ("rows_written", "UInt64"),
    ("memory", "UInt64"),
    ("_create_time", "DateTime"),
    ("_table_uuid", "String"),
)


def merge_row(part: str, elapsed: float) -> list[Any]:
    return ["db", "hits", part, elapsed, 0.5, 3, 0, 2048, 10, 5, 1024, T0, "uuid-1"]


class RecordingSink:
    """UI sink that keeps every posted command for inspection."""

    def __init__(self) -> None:
        self.commands: list[UiCommand] = []

    def post(self, command: UiCommand) -> None:
        self.commands.append(command)

    def of_type(self, kind: type) -> list[Any]:
        return [command for command in self.commands if isinstance(command, kind)]


Responder = Callable[[str], Block]


class FakeClient:
    """Async stand-in for :class:`ClickHouseClient`; answers from a responder or raises."""

    url = "http://fake:8123/"

    def __init__(self, responder: Responder | None = None) -> None:
        self.responder: Responder = responder or (lambda _query: Block())
        self.queries: list[str] = []
        self.calls: list[dict[str, Any]] = []
        self.error: Exception | None = None

    async def execute(
        self,
        query: str,
        *,
        database: str | None = None,
        settings: Mapping[str, str] | None = None,
    ) -> Block:
        self.queries.append(query)
        self.calls.append({"query": query, "database": database, "settings": settings})
        if self.error is not None:
            raise self.error
        return self.responder(query)


__all__ = [
    "FakeClient",
    "MERGE_COLUMNS",
    "PROCESS_COLUMNS",
    "RecordingSink",
    "T0",
    "make_block",
    "make_record",
    "merge_row",
    "process_row",
]
