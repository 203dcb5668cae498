from __future__ import annotations

from datetime import timedelta

import pytest

from chtop.contracts.error import BadInputError, InvariantError
from chtop.core.events import ViewQuery
from chtop.common.relative_datetime import RelativeDateTime
from chtop.views.registry import (
    BACKUPS,
    MERGES,
    PART_LOG,
    TABLE_PARTS,
    TABLES,
    VIEW_NAMES,
    VIEWS,
    ViewKind,
    get_view,
)
from chtop.views.sql_view import SqlQueryViewState, SqlViewDefinition, column_name, render_cell
from tests.util.factories import MERGE_COLUMNS, T0, make_block, merge_row


def test_column_name_is_the_last_token() -> None:
    assert column_name("result_part_name part") == "part"
    assert column_name("elapsed") == "elapsed"
    with pytest.raises(BadInputError):
        column_name("   ")


def test_definition_validates_sort_and_key_columns() -> None:
    with pytest.raises(BadInputError):
        SqlViewDefinition("x", "X", "system.x", ("a",), sort_by="b", key_columns=("a",))
    with pytest.raises(BadInputError):
        SqlViewDefinition("x", "X", "system.x", ("a",), sort_by="a", key_columns=("c",))


def test_merges_query_on_cluster() -> None:
    query = MERGES.build_query("prod")
    assert "FROM clusterAllReplicas('prod', system.merges) AS merges" in query
    assert "FROM clusterAllReplicas('prod', system.tables))" in query
    assert query.rstrip().endswith("allow_experimental_analyzer='1'")


def test_update_orders_rows_and_hides_private_columns() -> None:
    state = SqlQueryViewState(MERGES)
    block = make_block(MERGE_COLUMNS, [merge_row("p1", 1.0), merge_row("p2", 7.0)])
    state.update(block)

    assert [row.key[2] for row in state.table.rows] == ["p2", "p1"]
    assert "_create_time" not in state.header()
    cells = dict(zip(state.header(), state.cells(state.table.rows[0])))
    assert cells["size"] == "2.00 KiB"
    assert cells["progress"] == "0.50"
    assert cells["mutation"] == "0"


def test_missing_column_is_an_invariant_error() -> None:
    state = SqlQueryViewState(MERGES)
    with pytest.raises(InvariantError):
        state.update(make_block(MERGE_COLUMNS[:3], [["db", "hits", "p1"]]))


def test_log_request_formats_the_part_query_id() -> None:
    state = SqlQueryViewState(MERGES)
    state.update(make_block(MERGE_COLUMNS, [merge_row("all_1_2_1", 1.0)]))
    assert state.log_request(state.table.rows[0]) == ("uuid-1::all_1_2_1", T0)


def test_log_request_without_log_columns() -> None:
    state = SqlQueryViewState(get_view("replicas").sql)  # type: ignore[arg-type]
    block = make_block(
        [
            ("database", "String"),
            ("table", "String"),
            ("readonly", "UInt8"),
            ("parts_to_check", "UInt64"),
            ("queue", "UInt64"),
            ("delay", "UInt64"),
            ("last_update", "DateTime"),
        ],
        [["db", "t", 0, 0, 4, 0, T0]],
    )
    state.update(block)
    assert state.log_request(state.table.rows[0]) is None
    assert "queue" in state.row_details(state.table.rows[0])


def test_backups_log_request_needs_a_start_time() -> None:
    state = SqlQueryViewState(BACKUPS)
    columns = [
        ("name", "String"),
        ("status", "String"),
        ("error", "String"),
        ("start_time", "DateTime"),
        ("end_time", "DateTime"),
        ("total_size", "UInt64"),
        ("_query_id", "String"),
    ]
    state.update(make_block(columns, [["b1", "CREATED", "", None, None, 0, "qid"]]))
    assert state.log_request(state.table.rows[0]) is None


def test_next_event_targets_the_view() -> None:
    state = SqlQueryViewState(MERGES)
    assert state.next_event() == ViewQuery(view_name="merges", query=state.query)


def test_render_cell_formats() -> None:
    assert render_cell("x", None) == ""
    assert render_cell("x", True) == "yes"
    assert render_cell("x", T0 + timedelta(seconds=1)) == "2024-05-01 12:00:01"
    assert render_cell("memory", 1024 * 1024) == "1.00 MiB"
    assert render_cell("message", "a\nb") == "a b"


def test_registry_lists_every_view_once() -> None:
    assert len(VIEW_NAMES) == len(set(VIEW_NAMES))
    assert VIEW_NAMES[0] == "queries"
    for entry in VIEWS:
        if entry.kind is ViewKind.SQL:
            assert entry.sql is not None and entry.sql.name == entry.name
        if entry.kind is ViewKind.QUERIES and not entry.running:
            assert entry.log_kind is not None


def test_unknown_view_lists_choices() -> None:
    with pytest.raises(BadInputError) as excinfo:
        get_view("nope")
    assert "merges" in (excinfo.value.hint or "")


def test_part_log_query_uses_the_time_range() -> None:
    query = PART_LOG.build_query(start=RelativeDateTime.parse("2h"), end=RelativeDateTime.now())
    assert "FROM system.part_log WHERE" in query
    assert "toDate(now64(6) - INTERVAL 7200000000000 NANOSECOND)" in query
    assert "toDateTime(now64(6))" in query
    assert "{start}" not in query and "{end}" not in query
    assert query.endswith("ORDER BY event_time DESC LIMIT 1000")


def test_part_log_default_range_is_the_last_hour() -> None:
    assert "now64(6) - INTERVAL 3600000000000 NANOSECOND" in PART_LOG.build_query()


def test_part_log_log_request_uses_the_part_start() -> None:
    columns = [(column_name(expression), "String") for expression in PART_LOG.columns]
    row = [
        T0,
        "MergeParts",
        "db",
        "hits",
        "all_1_2_1",
        "Horizontal",
        "Wide",
        10,
        4096,
        1500,
        2048,
        "",
        "uuid-1",
        T0 - timedelta(milliseconds=1500),
    ]
    state = SqlQueryViewState(
        PART_LOG, start=RelativeDateTime.parse("30m"), end=RelativeDateTime.now()
    )
    assert "INTERVAL 1800000000000 NANOSECOND" in state.query
    state.update(make_block(columns, [row]))

    assert state.log_request(state.table.rows[0]) == (
        "uuid-1::all_1_2_1",
        T0 - timedelta(milliseconds=1500),
    )
    cells = dict(zip(state.header(), state.cells(state.table.rows[0])))
    assert cells["size"] == "4.00 KiB"
    assert "_table_uuid" not in cells


def test_tables_query_deduplicates_replicas() -> None:
    query = TABLES.build_query("prod")
    assert query.startswith("SELECT DISTINCT ON (database, name, uuid) database, name table")
    assert "FROM clusterAllReplicas('prod', system.tables)" in query
    assert "engine NOT LIKE 'System%'" in query
    assert render_cell("total_bytes", 1024) == "1.00 KiB"


def test_table_parts_join_the_table_uuid_on_cluster() -> None:
    query = TABLE_PARTS.build_query("prod")
    assert "FROM clusterAllReplicas('prod', system.parts) AS parts" in query
    assert "FROM clusterAllReplicas('prod', system.tables))" in query
    assert TABLE_PARTS.log_query_id == "{_table_uuid}::{part}"
    assert render_cell("bytes_on_disk", 2048) == "2.00 KiB"


def test_registry_includes_table_and_part_views() -> None:
    for name in ("part_log", "asynchronous_inserts", "tables", "table_parts", "background_tasks"):
        assert name in VIEW_NAMES
        assert get_view(name).kind is ViewKind.SQL
    assert VIEW_NAMES.index("background_tasks") < VIEW_NAMES.index("server_logs")
