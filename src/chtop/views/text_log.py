"""Incremental server log state backing the log views."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from ..clickhouse.block import Block
from ..common.formatting import find_common_hostname_prefix_and_suffix, strip_hostname
from ..common.relative_datetime import RelativeDateTime
from ..core.events import TextLog

logger = logging.getLogger(__name__)

# flush_interval_milliseconds of the server's *_log tables.
FLUSH_INTERVAL = timedelta(milliseconds=7500)
# Log lines may be flushed after the query_log row of the query that emitted them.
QUERY_END_SLACK = timedelta(seconds=3)
MAX_LINES = 50_000


@dataclass(frozen=True, slots=True)
class LogLine:
    host_name: str
    event_time: datetime
    event_time_us: int
    thread_id: int
    level: str
    query_id: str
    logger_name: str
    message: str

    def render(self, host: str | None = None) -> str:
        stamp = self.event_time.strftime("%Y-%m-%d %H:%M:%S.%f")
        prefix = f"[{host}] " if host else ""
        query = f" {{{self.query_id}}}" if self.query_id else ""
        source = f" {self.logger_name}:" if self.logger_name else ""
        return f"{prefix}{stamp} [ {self.thread_id} ]{query} <{self.level}>{source} {self.message}"


def log_lines_from_block(block: Block) -> list[LogLine]:
    lines: list[LogLine] = []
    for row in range(block.row_count()):
        lines.append(
            LogLine(
                host_name=block.get_str(row, "host_name"),
                event_time=block.get_datetime(row, "event_time_microseconds"),
                event_time_us=block.get_int(row, "event_time_us"),
                thread_id=block.get_int(row, "thread_id"),
                level=block.get_str(row, "level"),
                query_id=block.get_str(row, "query_id"),
                logger_name=block.get_str(row, "logger_name"),
                message=block.get_str(row, "message"),
            )
        )
    return lines


class TextLogState:
    """Accumulates log lines; every pull asks only for lines newer than the last one seen.

    When the time range is closed (its end lies far enough in the past) a single
    fetch is enough and ``needs_polling`` is ``False``.
    """

    def __init__(
        self,
        view_name: str,
        *,
        start: RelativeDateTime,
        end: RelativeDateTime | None = None,
        query_ids: Iterable[str] | None = None,
        limit: int = 10_000,
        max_lines: int = MAX_LINES,
        show_hosts: bool = False,
        strip_hostnames: bool = True,
        now: datetime | None = None,
    ) -> None:
        self.view_name = view_name
        self.start = start
        self.end = end if end is not None and not end.is_now else None
        self.query_ids = tuple(query_ids) if query_ids is not None else None
        self.limit = limit
        self.max_lines = max_lines
        self.show_hosts = show_hosts
        self.strip_hostnames = strip_hostnames
        self.lines: list[LogLine] = []
        self.last_event_time_us: int | None = None
        self._closed_end = self._closed_range_end(now or datetime.now(tz=UTC))

    @property
    def needs_polling(self) -> bool:
        return self._closed_end is None

    def _closed_range_end(self, now: datetime) -> datetime | None:
        if self.end is None:
            return None
        end = self.end.resolve(now)
        if now - end < FLUSH_INTERVAL and self.query_ids is not None:
            return None
        if self.query_ids is not None:
            end += QUERY_END_SLACK
        return end

    def next_event(self) -> TextLog:
        if self._closed_end is not None:
            return TextLog(
                view_name=self.view_name,
                query_ids=self.query_ids,
                start=self.start,
                end=RelativeDateTime(date_time=self._closed_end),
                limit=self.limit,
            )
        return TextLog(
            view_name=self.view_name,
            query_ids=self.query_ids,
            since_microseconds=self.last_event_time_us,
            start=self.start,
            end=self.end,
            limit=self.limit,
        )

    def update(self, lines: Iterable[LogLine]) -> int:
        """Append ``lines``; returns how many were added."""

        added = 0
        for line in lines:
            if self.last_event_time_us is None or line.event_time_us > self.last_event_time_us:
                self.last_event_time_us = line.event_time_us
            self.lines.append(line)
            added += 1
        overflow = len(self.lines) - self.max_lines
        if overflow > 0:
            del self.lines[:overflow]
            logger.debug("%s: dropped %d oldest log lines", self.view_name, overflow)
        return added

    def rendered(self, lines: Iterable[LogLine] | None = None) -> list[str]:
        selected = self.lines if lines is None else list(lines)
        if not self.show_hosts:
            return [line.render() for line in selected]
        prefix, suffix = ("", "")
        if self.strip_hostnames:
            prefix, suffix = find_common_hostname_prefix_and_suffix(
                {line.host_name for line in self.lines}
            )
        return [line.render(strip_hostname(line.host_name, prefix, suffix)) for line in selected]


__all__ = [
    "FLUSH_INTERVAL",
    "LogLine",
    "MAX_LINES",
    "QUERY_END_SLACK",
    "TextLogState",
    "log_lines_from_block",
]
