from __future__ import annotations

import math

import pytest
from hypothesis import given
from hypothesis import strategies as st

from chtop.core.query import (
    CPU_TIME,
    DISK_EVENTS,
    IO_WAIT_TIME,
    NETWORK_EVENTS,
    records_from_block,
    saturating_sub,
)
from tests.util.factories import PROCESS_COLUMNS, make_block, make_record, process_row


def _with_previous(current: int, elapsed: float, previous: int, prev_elapsed: float):
    record = make_record("q", elapsed=elapsed, events={CPU_TIME: current})
    record.carry_over(make_record("q", elapsed=prev_elapsed, events={CPU_TIME: previous}))
    return record


def test_saturating_sub_clamps_at_zero() -> None:
    assert saturating_sub(10, 3) == 7
    assert saturating_sub(3, 10) == 0
    assert saturating_sub(5, 5) == 0


def test_counter_regression_yields_zero_rate() -> None:
    record = _with_previous(current=800, elapsed=12.0, previous=1000, prev_elapsed=10.0)
    assert record.cpu() == 0.0


def test_rate_uses_delta_between_snapshots() -> None:
    record = _with_previous(current=3_000_000, elapsed=12.0, previous=1_000_000, prev_elapsed=10.0)
    assert record.cpu() == pytest.approx(100.0)


def test_first_snapshot_falls_back_to_average_over_elapsed() -> None:
    record = make_record("q", elapsed=2.0, events={CPU_TIME: 5_000_000})
    assert record.cpu() == pytest.approx(250.0)


def test_zero_elapsed_delta_falls_back_to_average() -> None:
    record = _with_previous(current=4_000_000, elapsed=2.0, previous=1_000_000, prev_elapsed=2.0)
    assert record.cpu() == pytest.approx(200.0)


def test_no_elapsed_basis_reports_raw_value() -> None:
    record = make_record("q", elapsed=0.0, events={IO_WAIT_TIME: 500_000})
    assert record.io_wait() == pytest.approx(50.0)


def test_finished_queries_report_totals() -> None:
    events = {CPU_TIME: 3_000_000, NETWORK_EVENTS[0]: 100, NETWORK_EVENTS[3]: 50}
    record = make_record("q", elapsed=10.0, events=events, running=False)
    assert record.cpu() == pytest.approx(300.0)
    assert record.net_io() == 150.0


def test_multi_counter_rate_saturates_per_counter() -> None:
    # One counter grows while the other regresses; the regression must not cancel the growth.
    send, receive = DISK_EVENTS
    record = make_record("q", elapsed=3.0, events={send: 400, receive: 0})
    record.carry_over(make_record("q", elapsed=1.0, events={send: 0, receive: 300}))
    assert record.disk_io() == pytest.approx(200.0)


def test_missing_counters_count_as_zero() -> None:
    record = make_record("q", elapsed=2.0)
    assert record.cpu() == 0.0
    assert record.net_io() == 0.0
    assert record.io() == 0.0


@given(
    current=st.integers(min_value=0, max_value=10**12),
    previous=st.integers(min_value=0, max_value=10**12),
    prev_elapsed=st.floats(min_value=0.0, max_value=1e5, allow_nan=False),
    step=st.floats(min_value=0.0, max_value=1e5, allow_nan=False),
)
def test_rates_are_never_negative(
    current: int, previous: int, prev_elapsed: float, step: float
) -> None:
    record = _with_previous(current, prev_elapsed + step, previous, prev_elapsed)
    for value in (record.cpu(), record.io_wait(), record.net_io(), record.disk_io()):
        assert value >= 0.0
        assert math.isfinite(value)


def test_records_from_block_reads_processes_layout() -> None:
    block = make_block(
        PROCESS_COLUMNS,
        [
            process_row("a", elapsed=2.5, events={CPU_TIME: 10}),
            process_row("b", initial_query_id="a"),
        ],
    )
    first, second = records_from_block(block, running=True)
    assert first.query_id == "a" and first.is_initial_query
    assert first.initial_query_id == "a"
    assert first.profile_events == {CPU_TIME: 10}
    assert first.settings == {"max_threads": "4"}
    assert first.threads == 4 and first.memory == 2048
    assert not second.is_initial_query
    assert second.initial_query_id == "a"
    assert second.running


def test_details_mentions_ids_and_settings() -> None:
    record = make_record("abc", initial_query_id="root", events={CPU_TIME: 1})
    record.settings = {"max_threads": "8"}
    text = record.details()
    assert "Query ID: abc" in text
    assert "Initial Query ID: root" in text
    assert "max_threads = 8" in text
