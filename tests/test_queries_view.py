from __future__ import annotations

from datetime import timedelta

import pytest

from chtop.clickhouse.sql import QueryLogKind
from chtop.contracts.error import BadInputError, PolicyError
from chtop.core.context import ViewOptions
from chtop.core.events import ProcessList, QueryLog
from chtop.core.query import CPU_TIME
from chtop.views.queries import LIMIT_STEP, QueriesViewState
from tests.util.factories import T0, make_record


def _state(**options: object) -> QueriesViewState:
    view_options = ViewOptions(**options)  # type: ignore[arg-type]
    return QueriesViewState("queries", options=view_options, running=True)


def _visible_ids(state: QueriesViewState) -> list[str]:
    return [row.record.query_id for row in state.table.rows]


def test_finished_view_requires_a_log_kind() -> None:
    with pytest.raises(BadInputError):
        QueriesViewState("last", options=ViewOptions(), running=False)


def test_update_carries_previous_snapshot_over() -> None:
    state = _state()
    state.update([make_record("q1", elapsed=1.0, events={CPU_TIME: 1_000_000})])
    state.update([make_record("q1", elapsed=2.0, events={CPU_TIME: 1_500_000})])

    record = state.items["q1"]
    assert record.prev_elapsed == 1.0
    assert record.prev_profile_events == {CPU_TIME: 1_000_000}
    assert record.cpu() == pytest.approx(50.0)


def test_update_drops_records_missing_from_the_new_batch() -> None:
    state = _state()
    state.update([make_record("a"), make_record("b")])
    state.update([make_record("b")])
    assert list(state.items) == ["b"]
    assert state.items["b"].prev_elapsed is not None


def test_selection_survives_reorder_and_unrelated_changes() -> None:
    state = _state()
    state.update([make_record("Q1", elapsed=5), make_record("Q2", elapsed=1)])
    assert state.table.focus_key("Q1")
    assert state.toggle_selection() is True

    state.update(
        [make_record("Q3", elapsed=9), make_record("Q1", elapsed=6), make_record("Q4", elapsed=0.5)]
    )

    assert state.selected == {"Q1"}
    marked = [row.record.query_id for row in state.table.rows if row.selected]
    assert marked == ["Q1"]
    assert state.table.focused is not None
    assert state.table.focused.record.query_id == "Q1"


def test_selection_is_pruned_when_the_query_disappears() -> None:
    state = _state()
    state.update([make_record("Q1"), make_record("Q2")])
    state.table.focus_key("Q1")
    state.toggle_selection()
    state.update([make_record("Q2")])
    assert state.selected == set()


def test_toggle_twice_unselects() -> None:
    state = _state()
    state.update([make_record("Q1")])
    state.table.focus(0)
    assert state.toggle_selection() is True
    assert state.header()[0] == "v"
    assert state.toggle_selection() is False
    assert state.header()[0] != "v"


def test_actions_without_rows_raise_policy_error() -> None:
    state = _state()
    state.update([])
    with pytest.raises(PolicyError):
        state.toggle_selection()
    with pytest.raises(PolicyError):
        state.query_ids_for_action()


def test_group_by_hides_subqueries_of_present_initial_queries() -> None:
    state = _state(group_by=True)
    state.update(
        [
            make_record("X"),
            make_record("Y", initial_query_id="X"),
            make_record("Z", initial_query_id="gone"),
        ]
    )
    assert sorted(_visible_ids(state)) == ["X", "Z"]
    assert state.items["X"].subqueries == 2


def test_drill_down_shows_every_subquery_of_the_focused_query() -> None:
    state = _state(group_by=True)
    state.update(
        [
            make_record("X", elapsed=3),
            make_record("Y", initial_query_id="X", elapsed=2),
            make_record("other", elapsed=1),
        ]
    )
    state.table.focus_key("X")
    state.show_all_subqueries()
    assert sorted(_visible_ids(state)) == ["X", "Y"]

    state.show_grouped()
    assert sorted(_visible_ids(state)) == ["X", "other"]


def test_hostnames_are_shortened_to_their_distinct_part() -> None:
    state = _state(cluster="prod")
    state.update(
        [
            make_record("a", host="ch-1.prod.example.net"),
            make_record("b", host="ch-2.prod.example.net"),
        ]
    )
    hosts = sorted(row.host for row in state.table.rows)
    assert hosts == ["1", "2"]
    assert state.header()[0] == "Host"


def test_single_host_keeps_its_full_name() -> None:
    state = _state(cluster="prod")
    state.update(
        [
            make_record("a", host="ch-1.example.com"),
            make_record("b", host="ch-1.example.com"),
        ]
    )
    assert [row.host for row in state.table.rows] == ["ch-1.example.com", "ch-1.example.com"]


def test_hostnames_kept_when_stripping_is_disabled() -> None:
    state = _state(no_strip_hostname_suffix=True)
    state.update([make_record("a", host="a.example.net"), make_record("b", host="b.example.net")])
    assert sorted(row.host for row in state.table.rows) == ["a.example.net", "b.example.net"]


def test_query_ids_for_action_without_selection_includes_subqueries() -> None:
    state = _state()
    state.update(
        [
            make_record("X", started=T0),
            make_record("Y", initial_query_id="X", started=T0 - timedelta(seconds=5)),
            make_record("other"),
        ]
    )
    state.table.focus_key("X")
    query_ids, start, end = state.query_ids_for_action()
    assert sorted(query_ids) == ["X", "Y"]
    assert start == T0 - timedelta(seconds=5)
    assert end is None


def test_query_ids_for_action_uses_the_selection() -> None:
    state = QueriesViewState(
        "last_queries", options=ViewOptions(), running=False, log_kind=QueryLogKind.LAST
    )
    state.update(
        [
            make_record("A", elapsed=2, running=False),
            make_record("A2", initial_query_id="A", elapsed=4, running=False),
            make_record("B", elapsed=1, running=False),
        ]
    )
    state.table.focus_key("A")
    state.toggle_selection()
    state.table.focus_key("B")

    query_ids, start, end = state.query_ids_for_action()
    assert sorted(query_ids) == ["A", "A2"]
    assert start == T0
    assert end == T0 + timedelta(seconds=4)


def test_rows_sorted_by_elapsed_descending_by_default() -> None:
    state = _state()
    state.update([make_record("a-short", elapsed=1), make_record("b-long", elapsed=10)])
    assert _visible_ids(state) == ["b-long", "a-short"]

    state.sort_by("query_id", descending=False)
    assert _visible_ids(state) == ["a-short", "b-long"]
    with pytest.raises(BadInputError):
        state.sort_by("nope")


def test_cells_follow_header() -> None:
    state = _state()
    state.update([make_record("abc", query="SELECT 42")])
    row = state.table.rows[0]
    cells = state.cells(row)
    assert len(cells) == len(state.header())
    assert dict(zip(state.header(), cells))["Query ID"] == "abc"
    assert dict(zip(state.header(), cells))["Query"] == "SELECT 42"


def test_next_event_reflects_filter_and_limit() -> None:
    state = _state(queries_limit=100)
    state.set_filter("  INSERT ")
    assert state.change_limit(LIMIT_STEP) == 120
    assert state.next_event() == ProcessList(filter_text="INSERT", limit=120, view_name="queries")

    assert state.change_limit(-1_000) == LIMIT_STEP


def test_finished_view_requests_query_log() -> None:
    options = ViewOptions(logs_limit=50)
    state = QueriesViewState(
        "slow_queries", options=options, running=False, log_kind=QueryLogKind.SLOW
    )
    event = state.next_event()
    assert isinstance(event, QueryLog)
    assert event.kind is QueryLogKind.SLOW
    assert event.limit == 50
    assert event.view_name == "slow_queries"
    assert event.start == options.start
