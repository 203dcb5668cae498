"""Messages carried by the update bus from schedulers and user actions to the worker."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..clickhouse.sql import QueryLogKind, TraceType
from ..common.relative_datetime import RelativeDateTime

PROCESSES_VIEW = "processes"
SLOW_QUERIES_VIEW = "slow_queries"
LAST_QUERIES_VIEW = "last_queries"
SUMMARY_VIEW = "summary"


@dataclass(frozen=True, slots=True)
class Event:
    """Base class; ``label`` is what the status bar shows while processing."""

    @property
    def label(self) -> str:
        return type(self).__name__


@dataclass(frozen=True, slots=True)
class ProcessList(Event):
    filter_text: str = ""
    limit: int = 10_000
    view_name: str = PROCESSES_VIEW


@dataclass(frozen=True, slots=True)
class QueryLog(Event):
    """Finished queries from ``system.query_log`` (slow or most recent)."""

    kind: QueryLogKind = QueryLogKind.LAST
    filter_text: str = ""
    start: RelativeDateTime = field(default_factory=RelativeDateTime)
    end: RelativeDateTime = field(default_factory=RelativeDateTime)
    limit: int = 100
    view_name: str = LAST_QUERIES_VIEW

    @property
    def label(self) -> str:
        return "SlowQueryLog" if self.kind is QueryLogKind.SLOW else "LastQueryLog"

    @classmethod
    def slow(
        cls,
        filter_text: str = "",
        start: RelativeDateTime | None = None,
        end: RelativeDateTime | None = None,
        limit: int = 100,
    ) -> QueryLog:
        return cls(
            kind=QueryLogKind.SLOW,
            filter_text=filter_text,
            start=start or RelativeDateTime(),
            end=end or RelativeDateTime(),
            limit=limit,
            view_name=SLOW_QUERIES_VIEW,
        )

    @classmethod
    def last(
        cls,
        filter_text: str = "",
        start: RelativeDateTime | None = None,
        end: RelativeDateTime | None = None,
        limit: int = 100,
    ) -> QueryLog:
        return cls(
            kind=QueryLogKind.LAST,
            filter_text=filter_text,
            start=start or RelativeDateTime(),
            end=end or RelativeDateTime(),
            limit=limit,
            view_name=LAST_QUERIES_VIEW,
        )


@dataclass(frozen=True, slots=True)
class TextLog(Event):
    """Server log lines for ``view_name``, newer than ``since_microseconds``."""

    view_name: str
    query_ids: tuple[str, ...] | None = None
    since_microseconds: int | None = None
    start: RelativeDateTime = field(default_factory=RelativeDateTime)
    end: RelativeDateTime | None = None
    limit: int = 10_000


@dataclass(frozen=True, slots=True)
class ServerFlameGraph(Event):
    trace_type: TraceType
    start: RelativeDateTime
    end: RelativeDateTime

    @property
    def label(self) -> str:
        return f"ServerFlameGraph({self.trace_type})"


@dataclass(frozen=True, slots=True)
class QueryFlameGraph(Event):
    trace_type: TraceType
    query_ids: tuple[str, ...]
    start: RelativeDateTime
    end: RelativeDateTime

    @property
    def label(self) -> str:
        return f"QueryFlameGraph({self.trace_type})"


@dataclass(frozen=True, slots=True)
class LiveQueryFlameGraph(Event):
    query_ids: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class UpdateSummary(Event):
    view_name: str = SUMMARY_VIEW


@dataclass(frozen=True, slots=True)
class KillQuery(Event):
    query_id: str

    @property
    def label(self) -> str:
        return f"KillQuery({self.query_id})"


@dataclass(frozen=True, slots=True)
class Explain(Event):
    """``EXPLAIN <kind>`` of ``query`` in ``database``; ``kind`` as in ``sql.explain_query``."""

    kind: str
    database: str
    query: str
    settings: tuple[tuple[str, str], ...] = ()

    @property
    def label(self) -> str:
        return f"Explain{self.kind.capitalize()}"

    @classmethod
    def syntax(cls, database: str, query: str, settings: dict[str, str] | None = None) -> Explain:
        return cls("syntax", database, query, tuple(sorted((settings or {}).items())))

    @classmethod
    def plan(cls, database: str, query: str) -> Explain:
        return cls("plan", database, query)

    @classmethod
    def pipeline(cls, database: str, query: str) -> Explain:
        return cls("pipeline", database, query)

    @classmethod
    def indexes(cls, database: str, query: str) -> Explain:
        return cls("indexes", database, query)


@dataclass(frozen=True, slots=True)
class ViewQuery(Event):
    """Run ``query`` and hand the raw result set to the view named ``view_name``."""

    view_name: str
    query: str

    @property
    def label(self) -> str:
        return f"ViewQuery({self.view_name})"


__all__ = [
    "LAST_QUERIES_VIEW",
    "PROCESSES_VIEW",
    "SLOW_QUERIES_VIEW",
    "SUMMARY_VIEW",
    "Event",
    "Explain",
    "KillQuery",
    "LiveQueryFlameGraph",
    "ProcessList",
    "QueryFlameGraph",
    "QueryLog",
    "ServerFlameGraph",
    "TextLog",
    "UpdateSummary",
    "ViewQuery",
]
