"""Generic table views backed by one SQL query over a ``system`` table."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from ..clickhouse.block import Block
from ..clickhouse.sql import table_name
from ..common.formatting import format_bytes, with_settings
from ..common.relative_datetime import RelativeDateTime
from ..contracts.error import BadInputError, InvariantError
from ..core.events import ViewQuery
from .table import StableTable

logger = logging.getLogger(__name__)

BYTE_COLUMNS = frozenset(
    {
        "size",
        "memory",
        "bytes",
        "total_size",
        "total_bytes",
        "bytes_allocated",
        "bytes_on_disk",
        "compressed",
        "uncompressed",
    }
)
DEFAULT_START = RelativeDateTime.ago(timedelta(hours=1))


def column_name(expression: str) -> str:
    """Display name of a column expression: its last whitespace-separated token."""

    parts = expression.split()
    if not parts:
        raise BadInputError("Empty column expression")
    return parts[-1]


@dataclass(frozen=True, slots=True)
class SqlViewDefinition:
    """Static description of a SQL-backed view.

    ``columns`` are SQL expressions; the last token of each is the column name
    and names starting with ``_`` are fetched but not displayed. Rows are
    identified by ``key_columns``. ``joins`` and ``where`` may reference
    ``{tables}`` for the (cluster-aware) ``system.tables`` name, and ``{start}``
    and ``{end}`` for the configured time range as ``DateTime64`` expressions.
    ``log_query_id`` is a format string over the row's columns naming the
    ``query_id`` its server logs carry, and ``log_start`` the column holding
    the time those logs start at.
    """

    name: str
    title: str
    table: str
    columns: tuple[str, ...]
    sort_by: str
    key_columns: tuple[str, ...]
    alias: str | None = None
    joins: str = ""
    where: str | None = None
    order_by: str | None = None
    limit: int | None = None
    settings: tuple[tuple[str, str], ...] = ()
    distinct_on: tuple[str, ...] = ()
    log_query_id: str | None = None
    log_start: str | None = None
    names: tuple[str, ...] = field(init=False, default=())

    def __post_init__(self) -> None:
        names = tuple(column_name(expression) for expression in self.columns)
        object.__setattr__(self, "names", names)
        if self.sort_by not in names:
            raise BadInputError(f"{self.name}: sort column {self.sort_by!r} is not selected")
        missing = [key for key in self.key_columns if key not in names]
        if missing or not self.key_columns:
            raise BadInputError(f"{self.name}: key columns {missing or '[]'} are not selected")

    def build_query(
        self,
        cluster: str | None = None,
        *,
        start: RelativeDateTime | None = None,
        end: RelativeDateTime | None = None,
    ) -> str:
        placeholders = {
            "tables": table_name("system.tables", cluster),
            "start": (start or DEFAULT_START).to_sql_datetime_64(),
            "end": (end or RelativeDateTime.now()).to_sql_datetime_64(),
        }
        source = table_name(self.table, cluster)
        if self.alias:
            source = f"{source} AS {self.alias}"
        select = "SELECT"
        if self.distinct_on:
            select += f" DISTINCT ON ({', '.join(self.distinct_on)})"
        query = f"{select} {', '.join(self.columns)} FROM {source}"
        if self.joins:
            query += " " + self.joins.format_map(placeholders)
        if self.where:
            query += " WHERE " + self.where.format_map(placeholders)
        if self.order_by:
            query += f" ORDER BY {self.order_by}"
        if self.limit is not None:
            query += f" LIMIT {int(self.limit)}"
        return with_settings(query, dict(self.settings))


@dataclass(frozen=True, slots=True)
class SqlRow:
    values: tuple[Any, ...]
    key: tuple[Any, ...]


def render_cell(name: str, value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, int | float) and name in BYTE_COLUMNS:
        return format_bytes(value)
    if isinstance(value, float):
        return f"{value:.2f}"
    text = str(value)
    return text.replace("\n", " ")


class SqlQueryViewState:
    def __init__(
        self,
        definition: SqlViewDefinition,
        *,
        cluster: str | None = None,
        start: RelativeDateTime | None = None,
        end: RelativeDateTime | None = None,
    ) -> None:
        self.definition = definition
        self.query = definition.build_query(cluster, start=start, end=end)
        names = definition.names
        self._visible = [pos for pos, name in enumerate(names) if not name.startswith("_")]
        self._key_positions = [names.index(key) for key in definition.key_columns]
        sort_position = names.index(definition.sort_by)
        self.table: StableTable[SqlRow] = StableTable(
            lambda row: row.key,
            lambda row: _sortable(row.values[sort_position]),
        )

    @property
    def name(self) -> str:
        return self.definition.name

    def header(self) -> list[str]:
        return [self.definition.names[pos] for pos in self._visible]

    def next_event(self) -> ViewQuery:
        return ViewQuery(view_name=self.name, query=self.query)

    def update(self, block: Block) -> None:
        positions = [block.column_index(name) for name in self.definition.names]
        rows = []
        for raw in block.rows:
            values = tuple(raw[pos] for pos in positions)
            rows.append(SqlRow(values, tuple(values[pos] for pos in self._key_positions)))
        self.table.set_items_stable(rows)

    def cells(self, row: SqlRow) -> list[str]:
        names = self.definition.names
        return [render_cell(names[pos], row.values[pos]) for pos in self._visible]

    def row_mapping(self, row: SqlRow) -> dict[str, Any]:
        return dict(zip(self.definition.names, row.values, strict=True))

    def row_details(self, row: SqlRow) -> str:
        width = max(len(name) for name in self.definition.names)
        return "\n".join(
            f"{name.ljust(width)}  {value}" for name, value in self.row_mapping(row).items()
        )

    def log_request(self, row: SqlRow) -> tuple[str, datetime] | None:
        """``(query_id, start)`` of the server logs that belong to ``row``, if any."""

        definition = self.definition
        if definition.log_query_id is None or definition.log_start is None:
            return None
        mapping = self.row_mapping(row)
        try:
            query_id = definition.log_query_id.format(**mapping)
        except KeyError as exc:
            raise InvariantError(f"{self.name}: log id refers to unknown column {exc}") from exc
        start = mapping.get(definition.log_start)
        if not isinstance(start, datetime):
            logger.debug("%s: no start time for logs of %s", self.name, query_id)
            return None
        return query_id, start


def _sortable(value: Any) -> tuple[int, Any]:
    # None sorts below every value; mixed types fall back to their text.
    if value is None:
        return (0, 0)
    if isinstance(value, int | float | datetime):
        return (1, value)
    return (2, str(value))


__all__ = [
    "BYTE_COLUMNS",
    "SqlQueryViewState",
    "SqlRow",
    "SqlViewDefinition",
    "column_name",
    "render_cell",
]
