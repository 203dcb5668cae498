"""Per-view state of the query lists: merge, rates baseline, selection and grouping."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..clickhouse.sql import QueryLogKind
from ..common.formatting import (
    find_common_hostname_prefix_and_suffix,
    format_bytes,
    format_duration,
    format_percent,
    strip_hostname,
)
from ..contracts.error import BadInputError, PolicyError
from ..core.aggregate import aggregate_subqueries
from ..core.context import ViewOptions
from ..core.events import Event, ProcessList, QueryLog
from ..core.query import QueryRecord
from .table import StableTable

logger = logging.getLogger(__name__)

LIMIT_STEP = 20


@dataclass(slots=True)
class QueryRow:
    """What the table shows for one record: the record plus display-only fields."""

    record: QueryRecord
    host: str
    selected: bool = False

    def key(self) -> str:
        return self.record.query_id


@dataclass(frozen=True, slots=True)
class QueryColumn:
    name: str
    title: str
    value: Callable[[QueryRecord], Any]
    render: Callable[[Any], str] = str


QUERY_COLUMNS: tuple[QueryColumn, ...] = (
    QueryColumn("subqueries", "Q#", lambda r: r.subqueries),
    QueryColumn("cpu", "Cpu", QueryRecord.cpu, format_percent),
    QueryColumn("io_wait", "IOWait", QueryRecord.io_wait, format_percent),
    QueryColumn("cpu_wait", "CPUWait", QueryRecord.cpu_wait, format_percent),
    QueryColumn("user", "User", lambda r: r.user),
    QueryColumn("threads", "Thr", lambda r: r.threads),
    QueryColumn("memory", "Mem", lambda r: r.memory, format_bytes),
    QueryColumn("disk_io", "Disk", QueryRecord.disk_io, format_bytes),
    QueryColumn("io", "IO", QueryRecord.io, format_bytes),
    QueryColumn("net_io", "Net", QueryRecord.net_io, format_bytes),
    QueryColumn("elapsed", "Elapsed", lambda r: r.elapsed, format_duration),
    QueryColumn("query_id", "Query ID", lambda r: r.query_id),
    QueryColumn("query", "Query", lambda r: r.normalized_query or r.original_query),
)
_COLUMNS_BY_NAME = {column.name: column for column in QUERY_COLUMNS}
HOST_COLUMN = QueryColumn("host", "Host", lambda r: r.host_name)


class QueriesViewState:
    """State of one query list (running processes, slow or last queries).

    ``update`` swaps in every fresh batch; the table and the selection follow
    records by ``query_id`` so rows never jump under the cursor.
    """

    def __init__(
        self,
        name: str,
        *,
        options: ViewOptions,
        running: bool,
        log_kind: QueryLogKind | None = None,
        limit: int | None = None,
        sort_by: str = "elapsed",
    ) -> None:
        if not running and log_kind is None:
            raise BadInputError("finished-query views need a query_log kind")
        self.name = name
        self.options = options
        self.running = running
        self.log_kind = log_kind
        default_limit = options.queries_limit if running else options.logs_limit
        self.limit = limit if limit is not None else default_limit
        self.filter_text = ""
        self.items: dict[str, QueryRecord] = {}
        self.selected: set[str] = set()
        self.drill_down: str | None = None
        self.sort_column = sort_by
        self.table: StableTable[QueryRow] = StableTable(QueryRow.key, self._sort_value)

    # -- merge -----------------------------------------------------------------

    def update(self, batch: Iterable[QueryRecord]) -> None:
        previous, self.items = self.items, {}
        for record in batch:
            prior = previous.get(record.query_id)
            if prior is not None:
                record.carry_over(prior)
            self.items[record.query_id] = record
        aggregate_subqueries(self.items, no_subqueries=self.options.no_subqueries)
        self.selected = {query_id for query_id in self.selected if query_id in self.items}
        self.rebuild()

    def rebuild(self) -> None:
        """Recompute the visible rows from ``items`` and hand them to the table."""

        if self.drill_down is not None:
            visible = [r for r in self.items.values() if r.initial_query_id == self.drill_down]
        elif self.options.group_by:
            # Sub-queries fold into their initial query while it is part of the batch.
            visible = [
                r
                for r in self.items.values()
                if r.is_initial_query or r.initial_query_id not in self.items
            ]
        else:
            visible = list(self.items.values())

        prefix, suffix = "", ""
        if not self.options.no_strip_hostname_suffix and len(visible) > 1:
            prefix, suffix = find_common_hostname_prefix_and_suffix(
                {record.host_name for record in visible}
            )
        rows = [
            QueryRow(
                record=record,
                host=strip_hostname(record.host_name, prefix, suffix),
                selected=record.query_id in self.selected,
            )
            for record in visible
        ]
        self.table.set_items_stable(rows)

    # -- presentation ------------------------------------------------------------

    @property
    def columns(self) -> list[QueryColumn]:
        columns = list(QUERY_COLUMNS)
        if self.options.cluster is not None:
            columns.insert(0, HOST_COLUMN)
        return columns

    def header(self) -> list[str]:
        titles = [column.title for column in self.columns]
        if self.selected:
            titles.insert(0, "v")
        return titles

    def cells(self, row: QueryRow) -> list[str]:
        values = []
        for column in self.columns:
            if column is HOST_COLUMN:
                values.append(row.host)
            else:
                values.append(column.render(column.value(row.record)))
        if self.selected:
            values.insert(0, "*" if row.selected else "")
        return values

    def _sort_value(self, row: QueryRow) -> Any:
        column = _COLUMNS_BY_NAME.get(self.sort_column)
        if column is None:
            return row.host
        return column.value(row.record)

    def sort_by(self, column: str, *, descending: bool | None = None) -> None:
        if column != "host" and column not in _COLUMNS_BY_NAME:
            raise BadInputError(f"Unknown column {column!r}")
        self.sort_column = column
        self.table.set_sort(self._sort_value, descending=descending)

    # -- selection ---------------------------------------------------------------

    def focused_record(self) -> QueryRecord:
        row = self.table.focused
        if row is None:
            raise PolicyError("No query selected")
        return row.record

    def toggle_selection(self) -> bool:
        """Flip the selection mark of the focused row; returns the new state."""

        query_id = self.focused_record().query_id
        if query_id in self.selected:
            self.selected.discard(query_id)
            marked = False
        else:
            self.selected.add(query_id)
            marked = True
        self.rebuild()
        return marked

    def clear_selection(self) -> None:
        if self.selected:
            self.selected.clear()
            self.rebuild()

    def query_ids_for_action(self) -> tuple[list[str], datetime, datetime | None]:
        """Query ids an action applies to, with the time span they cover.

        Without a selection: the focused query plus every record it initiated.
        With a selection: every record whose own or initial id is selected. The
        end bound is known only for finished queries.
        """

        focused = self.focused_record()
        if self.selected:
            query_ids = [
                r.query_id
                for r in self.items.values()
                if r.query_id in self.selected or r.initial_query_id in self.selected
            ]
        else:
            query_ids = [focused.query_id]
            query_ids.extend(
                r.query_id
                for r in self.items.values()
                if r.initial_query_id == focused.query_id and r.query_id != focused.query_id
            )

        wanted = set(query_ids)
        involved = [r for r in self.items.values() if r.query_id in wanted]
        min_start = min([focused.query_start_time, *(r.query_start_time for r in involved)])
        max_end = None
        if not self.running and involved:
            max_end = max(r.query_end_time for r in involved)
        return query_ids, min_start, max_end

    # -- navigation ----------------------------------------------------------------

    def show_all_subqueries(self) -> None:
        """Show every record initiated by the focused query."""

        self.drill_down = self.focused_record().query_id
        self.rebuild()

    def show_grouped(self) -> None:
        self.drill_down = None
        self.rebuild()

    def set_filter(self, text: str) -> None:
        self.filter_text = text.strip()
        logger.debug("%s: filter set to %r", self.name, self.filter_text)

    def change_limit(self, delta: int) -> int:
        self.limit = max(LIMIT_STEP, self.limit + delta)
        logger.debug("%s: limit set to %d", self.name, self.limit)
        return self.limit

    def set_options(self, options: ViewOptions) -> None:
        self.options = options
        self.rebuild()

    def next_event(self) -> Event:
        """The refresh request this view sends on every tick."""

        if self.running:
            return ProcessList(filter_text=self.filter_text, limit=self.limit, view_name=self.name)
        return QueryLog(
            kind=self.log_kind or QueryLogKind.LAST,
            filter_text=self.filter_text,
            start=self.options.start,
            end=self.options.end,
            limit=self.limit,
            view_name=self.name,
        )


__all__ = [
    "HOST_COLUMN",
    "LIMIT_STEP",
    "QUERY_COLUMNS",
    "QueriesViewState",
    "QueryColumn",
    "QueryRow",
]
