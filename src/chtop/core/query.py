"""Query activity records and the per-record rate calculator."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..clickhouse.block import Block

CPU_TIME = "OSCPUVirtualTimeMicroseconds"
IO_WAIT_TIME = "OSIOWaitMicroseconds"
CPU_WAIT_TIME = "OSCPUWaitMicroseconds"

NETWORK_EVENTS = (
    "NetworkSendBytes",
    "NetworkReceiveBytes",
    "ReadBufferFromS3Bytes",
    "WriteBufferFromS3Bytes",
)
DISK_EVENTS = (
    "WriteBufferFromFileDescriptorWriteBytes",
    "ReadBufferFromFileDescriptorReadBytes",
)
IO_EVENTS = ("SelectedBytes", "InsertedBytes")


def saturating_sub(current: int, previous: int) -> int:
    """``current - previous`` clamped at zero (counters may appear to regress)."""

    return current - previous if current > previous else 0


@dataclass(slots=True)
class QueryRecord:
    """One row of ``system.processes`` or ``system.query_log``.

    ``running`` selects rate semantics (live processes) versus absolute totals
    (finished queries). ``prev_elapsed``/``prev_profile_events`` hold the
    previous snapshot of the same ``query_id`` and are filled in by the view
    state on refresh.
    """

    host_name: str
    user: str
    threads: int
    memory: int
    elapsed: float
    query_start_time: datetime
    query_end_time: datetime
    is_initial_query: bool
    initial_query_id: str
    query_id: str
    normalized_query: str
    original_query: str
    current_database: str
    profile_events: dict[str, int] = field(default_factory=dict)
    settings: dict[str, str] = field(default_factory=dict)
    subqueries: int = 1
    running: bool = True
    prev_elapsed: float | None = None
    prev_profile_events: dict[str, int] | None = None

    def key(self) -> str:
        return self.query_id

    # -- snapshots -----------------------------------------------------------

    def carry_over(self, previous: QueryRecord) -> None:
        """Remember ``previous`` (same query, prior refresh) as the rate baseline."""

        self.prev_elapsed = previous.elapsed
        self.prev_profile_events = dict(previous.profile_events)

    def _baseline(self) -> tuple[dict[str, int], float] | None:
        """Previous counters and the elapsed delta, when a usable snapshot exists."""

        if self.prev_profile_events is None or self.prev_elapsed is None:
            return None
        delta = self.elapsed - self.prev_elapsed
        if delta <= 0:
            return None
        return self.prev_profile_events, delta

    # -- rate calculator -----------------------------------------------------

    def _percent_of_wall_clock(self, name: str) -> float:
        current = self.profile_events.get(name, 0)
        if not self.running:
            return current / 1e6 * 100.0
        baseline = self._baseline()
        if baseline is not None:
            previous_events, delta = baseline
            previous = previous_events.get(name, 0)
            return saturating_sub(current, previous) / 1e6 / delta * 100.0
        if self.elapsed <= 0:
            return current / 1e6 * 100.0
        return current / 1e6 / self.elapsed * 100.0

    def _throughput(self, names: tuple[str, ...]) -> float:
        current = sum(self.profile_events.get(name, 0) for name in names)
        if not self.running:
            return float(current)
        baseline = self._baseline()
        if baseline is not None:
            previous_events, delta = baseline
            diff = sum(
                saturating_sub(self.profile_events.get(name, 0), previous_events.get(name, 0))
                for name in names
            )
            return diff / delta
        if self.elapsed <= 0:
            return float(current)
        return current / self.elapsed

    def cpu(self) -> float:
        """CPU usage in percent of one core (exceeds 100 with several threads)."""

        return self._percent_of_wall_clock(CPU_TIME)

    def io_wait(self) -> float:
        return self._percent_of_wall_clock(IO_WAIT_TIME)

    def cpu_wait(self) -> float:
        return self._percent_of_wall_clock(CPU_WAIT_TIME)

    def net_io(self) -> float:
        """Network bytes (per second while running), S3 traffic included."""

        return self._throughput(NETWORK_EVENTS)

    def disk_io(self) -> float:
        return self._throughput(DISK_EVENTS)

    def io(self) -> float:
        return self._throughput(IO_EVENTS)

    # -- presentation ----------------------------------------------------------

    def details(self) -> str:
        """Multi-line description used by the query details dialog."""

        lines = [
            f"Query ID: {self.query_id}",
            f"Initial Query ID: {self.initial_query_id}",
            f"Status: {'Running' if self.running else 'Finished'}",
            f"Host: {self.host_name}",
            f"User: {self.user}",
            f"Database: {self.current_database}",
            f"Started: {self.query_start_time.isoformat(sep=' ')}",
            f"Elapsed: {self.elapsed:.3f}s",
            f"Threads: {self.threads}",
            f"Memory: {self.memory}",
            f"Subqueries: {self.subqueries}",
            f"CPU: {self.cpu():.1f}%  IO wait: {self.io_wait():.1f}%",
            f"CPU wait: {self.cpu_wait():.1f}%",
            f"Net: {self.net_io():.0f}  Disk: {self.disk_io():.0f}  IO: {self.io():.0f}",
            "",
            self.original_query,
        ]
        if self.settings:
            lines.append("")
            lines.append("Settings:")
            lines.extend(f"  {name} = {value}" for name, value in sorted(self.settings.items()))
        if self.profile_events:
            lines.append("")
            lines.append("Profile events:")
            lines.extend(
                f"  {name}: {value}" for name, value in sorted(self.profile_events.items())
            )
        return "\n".join(lines)


def _counters(raw: Mapping[str, Any]) -> dict[str, int]:
    return {str(name): int(value) for name, value in raw.items()}


def records_from_block(block: Block, *, running: bool) -> list[QueryRecord]:
    """Convert a processes/query_log result set into :class:`QueryRecord` objects."""

    records: list[QueryRecord] = []
    for row in range(block.row_count()):
        query_id = block.get_str(row, "query_id")
        is_initial = block.get_bool(row, "is_initial_query")
        initial_query_id = block.get_str(row, "initial_query_id") or query_id
        if is_initial:
            initial_query_id = query_id
        settings = {
            str(name): str(value) for name, value in block.get_map(row, "settings").items()
        }
        records.append(
            QueryRecord(
                host_name=block.get_str(row, "host_name"),
                user=block.get_str(row, "user"),
                threads=block.get_int(row, "peak_threads_usage"),
                memory=block.get_int(row, "peak_memory_usage"),
                elapsed=max(0.0, block.get_float(row, "elapsed")),
                query_start_time=block.get_datetime(row, "query_start_time_microseconds"),
                query_end_time=block.get_datetime(row, "query_end_time_microseconds"),
                is_initial_query=is_initial,
                initial_query_id=initial_query_id,
                query_id=query_id,
                normalized_query=block.get_str(row, "normalized_query"),
                original_query=block.get_str(row, "original_query"),
                current_database=block.get_str(row, "current_database"),
                profile_events=_counters(block.get_map(row, "profile_events")),
                settings=settings,
                running=running,
            )
        )
    return records


__all__ = [
    "CPU_TIME",
    "CPU_WAIT_TIME",
    "DISK_EVENTS",
    "IO_EVENTS",
    "IO_WAIT_TIME",
    "NETWORK_EVENTS",
    "QueryRecord",
    "records_from_block",
    "saturating_sub",
]
