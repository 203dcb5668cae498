from __future__ import annotations

import asyncio
from dataclasses import fields

import pytest

from chtop.contracts.error import InvariantError
from chtop.core.commands import UpdateView
from chtop.core.context import Context, ViewOptions
from chtop.core.events import SUMMARY_VIEW, UpdateSummary
from chtop.core.summary import ServerSummary, SummaryRates, SummaryTracker, format_summary
from chtop.core.worker import Worker
from tests.util.factories import FakeClient, RecordingSink, make_block


def _summary_block(**values: float) -> object:
    columns = []
    row = []
    for item in fields(ServerSummary):
        columns.append((item.name, "Float64" if item.type == "float" else "UInt64"))
        row.append(values.get(item.name, 0.0 if item.type == "float" else 0))
    return make_block(columns, [row])


def test_from_block_reads_every_field() -> None:
    block = _summary_block(uptime=3600, cpu_user=1.5, selected_rows=10)
    summary = ServerSummary.from_block(block)  # type: ignore[arg-type]
    assert summary.uptime == 3600
    assert summary.cpu_user == pytest.approx(1.5)
    assert summary.selected_rows == 10


def test_from_block_needs_exactly_one_row() -> None:
    with pytest.raises(InvariantError):
        ServerSummary.from_block(make_block([("uptime", "UInt64")], []))


def test_tracker_turns_counters_into_rates() -> None:
    ticks = iter([100.0, 102.0, 103.0])
    tracker = SummaryTracker(clock=lambda: next(ticks))

    first = tracker.update(ServerSummary(uptime=10, selected_rows=1000, inserted_rows=50))
    assert first == SummaryRates(100.0, 5.0)

    second = tracker.update(ServerSummary(uptime=12, selected_rows=1400, inserted_rows=50))
    assert second == SummaryRates(200.0, 0.0)

    # A server restart resets the counters; rates must not go negative.
    third = tracker.update(ServerSummary(uptime=1, selected_rows=5, inserted_rows=1))
    assert third.selected_rows_per_second == 0.0
    assert third.inserted_rows_per_second == 0.0


def test_format_summary_mentions_key_figures() -> None:
    summary = ServerSummary(uptime=3_720, cpu_count=8, running_queries=3, memory_resident=2048)
    text = format_summary(summary, SummaryRates(1_500.0, 0.0))
    assert "Uptime: 1h 02m" in text
    assert "Queries: 3" in text
    assert "2.00 KiB" in text
    assert "1.50 K selected" in text


def test_worker_posts_summary_to_summary_view(sink: RecordingSink) -> None:
    block = _summary_block(uptime=5)
    client = FakeClient(lambda _query: block)  # type: ignore[arg-type, return-value]
    worker = Worker(Context(client, ViewOptions(), sink))  # type: ignore[arg-type]

    asyncio.run(worker.dispatch(UpdateSummary()))

    [update] = sink.of_type(UpdateView)
    assert update.name == SUMMARY_VIEW
    assert update.payload.uptime == 5
