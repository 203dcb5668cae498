"""Server-wide summary snapshot and its rates against the previous snapshot."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, fields

from ..clickhouse.block import Block
from ..common.formatting import format_bytes, format_duration, format_number
from ..contracts.error import InvariantError
from .query import saturating_sub


@dataclass(frozen=True, slots=True)
class ServerSummary:
    uptime: int = 0
    os_memory_total: int = 0
    memory_resident: int = 0
    memory_tracked: int = 0
    cpu_count: int = 0
    cpu_user: float = 0.0
    cpu_system: float = 0.0
    threads_os_total: int = 0
    threads_os_runnable: int = 0
    # Asynchronous metrics: bytes since the previous metrics update.
    net_send_bytes: int = 0
    net_receive_bytes: int = 0
    block_read_bytes: int = 0
    block_write_bytes: int = 0
    running_queries: int = 0
    running_merges: int = 0
    # Cumulative since server start.
    selected_rows: int = 0
    inserted_rows: int = 0

    @classmethod
    def from_block(cls, block: Block) -> ServerSummary:
        if block.row_count() != 1:
            raise InvariantError(f"Summary query returned {block.row_count()} rows, expected 1")
        values: dict[str, int | float] = {}
        for item in fields(cls):
            if item.type == "float":
                values[item.name] = block.get_float(0, item.name)
            else:
                values[item.name] = block.get_int(0, item.name)
        return cls(**values)  # type: ignore[arg-type]


@dataclass(frozen=True, slots=True)
class SummaryRates:
    selected_rows_per_second: float
    inserted_rows_per_second: float


class SummaryTracker:
    """Keep the previous summary to turn cumulative counters into rates."""

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.monotonic
        self.prev: ServerSummary | None = None
        self._prev_time: float | None = None

    def update(self, summary: ServerSummary) -> SummaryRates:
        now = self._clock()
        prev, prev_time = self.prev, self._prev_time
        if prev is not None and prev_time is not None and now > prev_time:
            since = now - prev_time
            rates = SummaryRates(
                saturating_sub(summary.selected_rows, prev.selected_rows) / since,
                saturating_sub(summary.inserted_rows, prev.inserted_rows) / since,
            )
        else:
            uptime = max(summary.uptime, 1)
            rates = SummaryRates(summary.selected_rows / uptime, summary.inserted_rows / uptime)
        self.prev = summary
        self._prev_time = now
        return rates


def format_summary(summary: ServerSummary, rates: SummaryRates) -> str:
    cpu_busy = summary.cpu_user + summary.cpu_system
    lines = [
        (
            f"Uptime: {format_duration(summary.uptime)}  "
            f"CPU: {cpu_busy:.1f}/{summary.cpu_count}  "
            f"Threads: {summary.threads_os_runnable}/{summary.threads_os_total}  "
            f"Queries: {summary.running_queries}  Merges: {summary.running_merges}"
        ),
        (
            f"Memory: {format_bytes(summary.memory_resident)} / "
            f"{format_bytes(summary.os_memory_total)} "
            f"(tracked {format_bytes(summary.memory_tracked)})  "
            f"Net: {format_bytes(summary.net_send_bytes)} out / "
            f"{format_bytes(summary.net_receive_bytes)} in  "
            f"Disk: {format_bytes(summary.block_read_bytes)} read / "
            f"{format_bytes(summary.block_write_bytes)} written  "
            f"Rows/s: {format_number(rates.selected_rows_per_second)} selected, "
            f"{format_number(rates.inserted_rows_per_second)} inserted"
        ),
    ]
    return "\n".join(lines)


__all__ = ["ServerSummary", "SummaryRates", "SummaryTracker", "format_summary"]
