"""Catalogue of the views the dashboard can switch between."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from ..clickhouse.sql import INTROSPECTION_SETTINGS, QueryLogKind
from ..contracts.error import BadInputError
from .sql_view import SqlViewDefinition


class ViewKind(StrEnum):
    QUERIES = "queries"
    SQL = "sql"
    TEXT_LOG = "text_log"


@dataclass(frozen=True, slots=True)
class ViewEntry:
    name: str
    title: str
    kind: ViewKind
    running: bool = False
    log_kind: QueryLogKind | None = None
    sql: SqlViewDefinition | None = None


MERGES = SqlViewDefinition(
    name="merges",
    title="Merges",
    table="system.merges",
    alias="merges",
    columns=(
        "merges.database database",
        "merges.table table",
        "result_part_name part",
        "elapsed",
        "progress",
        "num_parts parts",
        "is_mutation mutation",
        "total_size_bytes_compressed size",
        "rows_read",
        "rows_written",
        "memory_usage memory",
        "now()-elapsed _create_time",
        "tables.uuid::String _table_uuid",
    ),
    joins=(
        "LEFT JOIN (SELECT DISTINCT ON (database, name) database, name, uuid FROM {tables}) "
        "AS tables ON merges.database = tables.database AND merges.table = tables.name"
    ),
    sort_by="elapsed",
    key_columns=("database", "table", "part"),
    settings=(("allow_experimental_analyzer", "1"),),
    log_query_id="{_table_uuid}::{part}",
    log_start="_create_time",
)

MUTATIONS = SqlViewDefinition(
    name="mutations",
    title="Mutations",
    table="system.mutations",
    columns=(
        "database",
        "table",
        "mutation_id",
        "command",
        "create_time",
        "parts_to_do parts",
        "is_done",
        "latest_fail_reason",
        "latest_fail_time",
    ),
    where="is_done = 0",
    sort_by="create_time",
    key_columns=("database", "table", "mutation_id"),
)

REPLICATION_QUEUE = SqlViewDefinition(
    name="replication_queue",
    title="Replication queue",
    table="system.replication_queue",
    columns=(
        "database",
        "table",
        "type",
        "new_part_name part",
        "create_time",
        "is_currently_executing executing",
        "num_tries tries",
        "last_exception exception",
        "num_postponed postponed",
        "postpone_reason reason",
    ),
    sort_by="tries",
    key_columns=("database", "table", "type", "part"),
)

REPLICATED_FETCHES = SqlViewDefinition(
    name="replicated_fetches",
    title="Fetches",
    table="system.replicated_fetches",
    columns=(
        "database",
        "table",
        "result_part_name part",
        "elapsed",
        "progress",
        "total_size_bytes_compressed size",
        "bytes_read_compressed bytes",
    ),
    sort_by="elapsed",
    key_columns=("database", "table", "part"),
)

REPLICAS = SqlViewDefinition(
    name="replicas",
    title="Replicas",
    table="system.replicas",
    columns=(
        "database",
        "table",
        "is_readonly readonly",
        "parts_to_check",
        "queue_size queue",
        "absolute_delay delay",
        "last_queue_update last_update",
    ),
    order_by="queue_size DESC, database, table",
    sort_by="queue",
    key_columns=("database", "table"),
)

ERRORS = SqlViewDefinition(
    name="errors",
    title="Errors",
    table="system.errors",
    columns=(
        "name",
        "value",
        "last_error_time error_time",
        "last_error_message _error_message",
        (
            "arrayStringConcat(arrayMap(addr -> concat(addressToLine(addr), '::', "
            "demangle(addressToSymbol(addr))), last_error_trace), '\\n') _error_trace"
        ),
    ),
    sort_by="value",
    key_columns=("name",),
    settings=tuple(INTROSPECTION_SETTINGS.items()),
)

BACKUPS = SqlViewDefinition(
    name="backups",
    title="Backups",
    table="system.backups",
    columns=(
        "name",
        "status::String status",
        "error",
        "start_time",
        "end_time",
        "total_size",
        "query_id _query_id",
    ),
    sort_by="start_time",
    key_columns=("name",),
    log_query_id="{_query_id}",
    log_start="start_time",
)

DICTIONARIES = SqlViewDefinition(
    name="dictionaries",
    title="Dictionaries",
    table="system.dictionaries",
    columns=(
        "name",
        "status::String status",
        "origin",
        "bytes_allocated memory",
        "query_count queries",
        "found_rate",
        "load_factor",
        "last_successful_update_time last_update",
        "loading_duration",
        "last_exception",
    ),
    sort_by="memory",
    key_columns=("name", "origin"),
)

PART_LOG = SqlViewDefinition(
    name="part_log",
    title="Part log",
    table="system.part_log",
    columns=(
        "event_time",
        "event_type::String event_type",
        "database",
        "table",
        "part_name part",
        "merge_algorithm::String merge_algorithm",
        "part_type",
        "rows",
        "size_in_bytes size",
        "duration_ms",
        "peak_memory_usage memory",
        "exception",
        "table_uuid::String _table_uuid",
        "event_time - toIntervalMillisecond(duration_ms) _start_time",
    ),
    where=(
        "event_date BETWEEN toDate({start}) AND toDate({end}) "
        "AND event_time BETWEEN toDateTime({start}) AND toDateTime({end}) "
        "AND event_type != 'MergePartsStart'"
    ),
    order_by="event_time DESC",
    limit=1000,
    sort_by="event_time",
    key_columns=("database", "table", "part", "event_type", "event_time"),
    log_query_id="{_table_uuid}::{part}",
    log_start="_start_time",
)

ASYNCHRONOUS_INSERTS = SqlViewDefinition(
    name="asynchronous_inserts",
    title="Asynchronous inserts",
    table="system.asynchronous_inserts",
    columns=(
        "database",
        "table",
        "query",
        "total_bytes",
        "format",
        "first_update::DateTime first_update",
    ),
    order_by="first_update DESC",
    sort_by="first_update",
    key_columns=("database", "table", "query", "format", "first_update"),
)

TABLES = SqlViewDefinition(
    name="tables",
    title="Tables",
    table="system.tables",
    columns=(
        "database",
        "name table",
        "engine",
        "uuid::String _uuid",
        "assumeNotNull(total_bytes) total_bytes",
        "assumeNotNull(total_rows) total_rows",
    ),
    distinct_on=("database", "name", "uuid"),
    where=(
        "engine NOT LIKE 'System%' "
        "AND database NOT IN ('INFORMATION_SCHEMA', 'information_schema')"
    ),
    order_by="database, table, total_bytes DESC",
    sort_by="total_bytes",
    key_columns=("database", "table"),
)

TABLE_PARTS = SqlViewDefinition(
    name="table_parts",
    title="Table parts",
    table="system.parts",
    alias="parts",
    columns=(
        "parts.database database",
        "parts.table table",
        "parts.name part",
        "parts.partition partition",
        "parts.rows rows",
        "parts.bytes_on_disk bytes_on_disk",
        "parts.data_compressed_bytes compressed",
        "parts.data_uncompressed_bytes uncompressed",
        "parts.modification_time modification_time",
        "parts.active active",
        "tables.uuid::String _table_uuid",
    ),
    joins=(
        "LEFT JOIN (SELECT DISTINCT ON (database, name) database, name, uuid FROM {tables}) "
        "AS tables ON parts.database = tables.database AND parts.table = tables.name"
    ),
    order_by="parts.modification_time DESC",
    limit=1000,
    sort_by="modification_time",
    key_columns=("database", "table", "part"),
    settings=(("allow_experimental_analyzer", "1"),),
    log_query_id="{_table_uuid}::{part}",
    log_start="modification_time",
)

BACKGROUND_TASKS = SqlViewDefinition(
    name="background_tasks",
    title="Background tasks",
    table="system.background_schedule_pool",
    columns=(
        "pool",
        "database",
        "table",
        "log_name",
        "query_id",
        "elapsed_ms",
        "executing",
        "scheduled",
        "delayed",
    ),
    order_by="pool, database, table, log_name",
    sort_by="elapsed_ms",
    key_columns=("pool", "database", "table", "log_name"),
)

VIEWS: tuple[ViewEntry, ...] = (
    ViewEntry("queries", "Queries", ViewKind.QUERIES, running=True),
    ViewEntry("last_queries", "Last queries", ViewKind.QUERIES, log_kind=QueryLogKind.LAST),
    ViewEntry("slow_queries", "Slow queries", ViewKind.QUERIES, log_kind=QueryLogKind.SLOW),
    ViewEntry("merges", "Merges", ViewKind.SQL, sql=MERGES),
    ViewEntry("mutations", "Mutations", ViewKind.SQL, sql=MUTATIONS),
    ViewEntry("replication_queue", "Replication queue", ViewKind.SQL, sql=REPLICATION_QUEUE),
    ViewEntry("replicated_fetches", "Fetches", ViewKind.SQL, sql=REPLICATED_FETCHES),
    ViewEntry("replicas", "Replicas", ViewKind.SQL, sql=REPLICAS),
    ViewEntry("errors", "Errors", ViewKind.SQL, sql=ERRORS),
    ViewEntry("backups", "Backups", ViewKind.SQL, sql=BACKUPS),
    ViewEntry("dictionaries", "Dictionaries", ViewKind.SQL, sql=DICTIONARIES),
    ViewEntry("part_log", "Part log", ViewKind.SQL, sql=PART_LOG),
    ViewEntry(
        "asynchronous_inserts", "Asynchronous inserts", ViewKind.SQL, sql=ASYNCHRONOUS_INSERTS
    ),
    ViewEntry("tables", "Tables", ViewKind.SQL, sql=TABLES),
    ViewEntry("table_parts", "Table parts", ViewKind.SQL, sql=TABLE_PARTS),
    ViewEntry("background_tasks", "Background tasks", ViewKind.SQL, sql=BACKGROUND_TASKS),
    ViewEntry("server_logs", "Server logs", ViewKind.TEXT_LOG),
)

VIEW_NAMES: tuple[str, ...] = tuple(entry.name for entry in VIEWS)
_BY_NAME = {entry.name: entry for entry in VIEWS}


def get_view(name: str) -> ViewEntry:
    try:
        return _BY_NAME[name]
    except KeyError:
        raise BadInputError(
            f"Unknown view {name!r}", hint=f"choose one of: {', '.join(VIEW_NAMES)}"
        ) from None


__all__ = [
    "ASYNCHRONOUS_INSERTS",
    "BACKGROUND_TASKS",
    "PART_LOG",
    "TABLES",
    "TABLE_PARTS",
    "VIEWS",
    "VIEW_NAMES",
    "ViewEntry",
    "ViewKind",
    "get_view",
]
