"""SQL text for every view and action.

Builders are pure functions of their arguments; ``cluster`` switches every
``system.*`` table to ``clusterAllReplicas``.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum

from ..common.formatting import quote_literal
from ..common.relative_datetime import RelativeDateTime

# Log tables are flushed lazily, so pad the upper bound of time windows.
QUERY_TIME_DRIFT_BUFFER_SECONDS = 1
SLOW_QUERY_THRESHOLD_MS = 1000


class TraceType(StrEnum):
    """``system.trace_log.trace_type`` values the flamegraph actions understand."""

    CPU = "CPU"
    REAL = "Real"
    MEMORY = "Memory"
    MEMORY_SAMPLE = "MemorySample"


class QueryLogKind(StrEnum):
    SLOW = "slow"
    LAST = "last"


def table_name(table: str, cluster: str | None = None) -> str:
    """Return ``table`` or its ``clusterAllReplicas`` wrapper when a cluster is set."""

    if not cluster:
        return table
    return f"clusterAllReplicas({quote_literal(cluster)}, {table})"


def filter_clause(text: str | None) -> str:
    """Case-insensitive substring match on query text, ids and user."""

    if not text:
        return "1"
    pattern = quote_literal(f"%{text}%")
    return (
        f"(query ILIKE {pattern} OR query_id ILIKE {pattern} "
        f"OR initial_query_id ILIKE {pattern} OR user ILIKE {pattern})"
    )


def _ids_list(query_ids: Sequence[str]) -> str:
    return ", ".join(quote_literal(query_id) for query_id in query_ids)


_PROCESS_COLUMNS = """
    hostName() AS host_name,
    user,
    length(thread_ids) AS peak_threads_usage,
    peak_memory_usage,
    elapsed,
    now64(6) - toIntervalMicrosecond(toUInt64(elapsed * 1000000)) AS query_start_time_microseconds,
    now64(6) AS query_end_time_microseconds,
    is_initial_query,
    initial_query_id,
    query_id,
    normalizeQuery(query) AS normalized_query,
    query AS original_query,
    current_database,
    ProfileEvents AS profile_events,
    Settings AS settings
"""

_QUERY_LOG_COLUMNS = """
    hostName() AS host_name,
    user,
    length(thread_ids) AS peak_threads_usage,
    memory_usage AS peak_memory_usage,
    query_duration_ms / 1000 AS elapsed,
    query_start_time_microseconds,
    event_time_microseconds AS query_end_time_microseconds,
    is_initial_query,
    initial_query_id,
    query_id,
    normalizeQuery(query) AS normalized_query,
    query AS original_query,
    current_database,
    ProfileEvents AS profile_events,
    Settings AS settings
"""


def processes_query(*, filter_text: str | None, limit: int, cluster: str | None = None) -> str:
    return (
        f"SELECT{_PROCESS_COLUMNS}"
        f"FROM {table_name('system.processes', cluster)}\n"
        f"WHERE {filter_clause(filter_text)}\n"
        f"ORDER BY elapsed DESC\n"
        f"LIMIT {int(limit)}"
    )


def query_log_query(
    kind: QueryLogKind,
    *,
    filter_text: str | None,
    start: RelativeDateTime,
    end: RelativeDateTime,
    limit: int,
    cluster: str | None = None,
) -> str:
    """Finished queries within ``[start, end]``; ``slow`` orders by duration."""

    start_sql = start.to_sql_datetime_64()
    end_sql = end.to_sql_datetime_64()
    conditions = [
        f"event_date BETWEEN toDate({start_sql}) AND toDate({end_sql})",
        f"event_time_microseconds BETWEEN {start_sql} AND {end_sql}",
        "type != 'QueryStart'",
        filter_clause(filter_text),
    ]
    order = "event_time_microseconds DESC"
    if kind is QueryLogKind.SLOW:
        conditions.append(f"query_duration_ms > {SLOW_QUERY_THRESHOLD_MS}")
        order = "query_duration_ms DESC"
    where = "\n    AND ".join(conditions)
    return (
        f"SELECT{_QUERY_LOG_COLUMNS}"
        f"FROM {table_name('system.query_log', cluster)}\n"
        f"WHERE {where}\n"
        f"ORDER BY {order}\n"
        f"LIMIT {int(limit)}"
    )


def text_log_query(
    *,
    query_ids: Sequence[str] | None,
    since_microseconds: int | None,
    start: RelativeDateTime,
    end: RelativeDateTime | None,
    limit: int,
    cluster: str | None = None,
) -> str:
    """Rows of ``system.text_log`` newer than ``since_microseconds`` (or ``start``)."""

    start_sql = start.to_sql_datetime_64()
    conditions = [f"event_date >= toDate({start_sql})"]
    if since_microseconds is not None:
        conditions.append(
            f"event_time_microseconds > fromUnixTimestamp64Micro({int(since_microseconds)})"
        )
    else:
        conditions.append(f"event_time_microseconds >= {start_sql}")
    if end is not None:
        conditions.append(
            f"event_time_microseconds <= {end.to_sql_datetime_64()}"
            f" + INTERVAL {QUERY_TIME_DRIFT_BUFFER_SECONDS} SECOND"
        )
    if query_ids:
        conditions.append(f"query_id IN ({_ids_list(query_ids)})")
    where = "\n    AND ".join(conditions)
    return (
        "SELECT\n"
        "    hostName() AS host_name,\n"
        "    event_time_microseconds,\n"
        "    toUnixTimestamp64Micro(event_time_microseconds) AS event_time_us,\n"
        "    thread_id,\n"
        "    level::String AS level,\n"
        "    query_id,\n"
        "    logger_name::String AS logger_name,\n"
        "    message\n"
        f"FROM {table_name('system.text_log', cluster)}\n"
        f"WHERE {where}\n"
        "ORDER BY event_time_microseconds ASC\n"
        f"LIMIT {int(limit)}"
    )


_FOLDED_STACK = (
    "arrayStringConcat(arrayMap(addr -> demangle(addressToSymbol(addr)), "
    "arrayReverse(trace)), ';')"
)
INTROSPECTION_SETTINGS = {"allow_introspection_functions": "1"}


def _trace_weight(trace_type: TraceType) -> str:
    if trace_type in (TraceType.MEMORY, TraceType.MEMORY_SAMPLE):
        return "sum(abs(size))"
    return "count()"


def trace_log_flamegraph_query(
    trace_type: TraceType,
    *,
    query_ids: Sequence[str] | None,
    start: RelativeDateTime,
    end: RelativeDateTime,
    cluster: str | None = None,
) -> str:
    """Folded stacks (``stack``, ``weight``) from ``system.trace_log``."""

    start_sql = start.to_sql_datetime_64()
    end_sql = end.to_sql_datetime_64()
    conditions = [
        f"event_date BETWEEN toDate({start_sql}) AND toDate({end_sql})",
        f"event_time_microseconds BETWEEN {start_sql} AND {end_sql}"
        f" + INTERVAL {QUERY_TIME_DRIFT_BUFFER_SECONDS} SECOND",
        f"trace_type = {quote_literal(trace_type.value)}",
    ]
    if query_ids:
        conditions.append(f"query_id IN ({_ids_list(query_ids)})")
    where = "\n    AND ".join(conditions)
    return (
        f"SELECT {_FOLDED_STACK} AS stack, {_trace_weight(trace_type)} AS weight\n"
        f"FROM {table_name('system.trace_log', cluster)}\n"
        f"WHERE {where}\n"
        "GROUP BY stack\n"
        "ORDER BY weight DESC"
    )


def live_flamegraph_query(query_ids: Sequence[str] | None, cluster: str | None = None) -> str:
    """Folded stacks sampled right now from ``system.stack_trace``."""

    where = f"query_id IN ({_ids_list(query_ids)})" if query_ids else "1"
    return (
        f"SELECT {_FOLDED_STACK} AS stack, count() AS weight\n"
        f"FROM {table_name('system.stack_trace', cluster)}\n"
        f"WHERE {where}\n"
        "GROUP BY stack\n"
        "ORDER BY weight DESC"
    )


def kill_query(query_id: str, cluster: str | None = None) -> str:
    on_cluster = f" ON CLUSTER {quote_literal(cluster)}" if cluster else ""
    return f"KILL QUERY{on_cluster} WHERE query_id = {quote_literal(query_id)} ASYNC"


def explain_query(kind: str, query: str) -> str:
    """``EXPLAIN`` prefix for ``kind`` in ``syntax``/``plan``/``pipeline``/``indexes``."""

    prefixes = {
        "syntax": "EXPLAIN SYNTAX",
        "plan": "EXPLAIN PLAN actions=1",
        "pipeline": "EXPLAIN PIPELINE",
        "indexes": "EXPLAIN PLAN indexes=1",
    }
    try:
        prefix = prefixes[kind]
    except KeyError:
        raise ValueError(f"Unknown EXPLAIN kind {kind!r}") from None
    return f"{prefix}\n{query.strip().rstrip(';')}"


def summary_query(cluster: str | None = None) -> str:
    """One-row server summary; asynchronous metrics are already per-interval deltas."""

    metrics = table_name("system.metrics", cluster)
    async_metrics = table_name("system.asynchronous_metrics", cluster)
    events = table_name("system.events", cluster)
    processes = table_name("system.processes", cluster)
    merges = table_name("system.merges", cluster)
    return f"""
WITH
    (SELECT sum(value::UInt64) FROM {metrics} WHERE metric = 'MemoryTracking') AS memory_tracked_,
    (SELECT count() FROM {processes}) AS running_queries_,
    (SELECT count() FROM {merges}) AS running_merges_,
    (SELECT sumIf(value, event = 'SelectedRows') FROM {events}) AS selected_rows_,
    (SELECT sumIf(value, event = 'InsertedRows') FROM {events}) AS inserted_rows_
SELECT
    assumeNotNull(memory_tracked_) AS memory_tracked,
    assumeNotNull(running_queries_) AS running_queries,
    assumeNotNull(running_merges_) AS running_merges,
    assumeNotNull(selected_rows_) AS selected_rows,
    assumeNotNull(inserted_rows_) AS inserted_rows,
    maxIf(value, metric = 'Uptime')::UInt64 AS uptime,
    sumIf(value, metric = 'OSMemoryTotal')::UInt64 AS os_memory_total,
    sumIf(value, metric = 'MemoryResident')::UInt64 AS memory_resident,
    countIf(metric LIKE 'OSUserTimeCPU%')::UInt64 AS cpu_count,
    sumIf(value, metric LIKE 'OSUserTimeCPU%')::Float64 AS cpu_user,
    sumIf(value, metric LIKE 'OSSystemTimeCPU%')::Float64 AS cpu_system,
    sumIf(value, metric = 'OSThreadsTotal')::UInt64 AS threads_os_total,
    sumIf(value, metric = 'OSThreadsRunnable')::UInt64 AS threads_os_runnable,
    sumIf(value, metric LIKE 'NetworkSendBytes%')::UInt64 AS net_send_bytes,
    sumIf(value, metric LIKE 'NetworkReceiveBytes%')::UInt64 AS net_receive_bytes,
    sumIf(value, metric LIKE 'BlockReadBytes%')::UInt64 AS block_read_bytes,
    sumIf(value, metric LIKE 'BlockWriteBytes%')::UInt64 AS block_write_bytes
FROM {async_metrics}
""".strip()


__all__ = [
    "INTROSPECTION_SETTINGS",
    "QUERY_TIME_DRIFT_BUFFER_SECONDS",
    "SLOW_QUERY_THRESHOLD_MS",
    "QueryLogKind",
    "TraceType",
    "explain_query",
    "filter_clause",
    "kill_query",
    "live_flamegraph_query",
    "processes_query",
    "query_log_query",
    "summary_query",
    "table_name",
    "text_log_query",
    "trace_log_flamegraph_query",
]
