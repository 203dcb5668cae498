"""Absolute or now-relative points in time for the ``--start``/``--end`` options."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from ..contracts.error import BadInputError

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

_UNITS: dict[str, timedelta] = {
    "us": timedelta(microseconds=1),
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "sec": timedelta(seconds=1),
    "secs": timedelta(seconds=1),
    "second": timedelta(seconds=1),
    "seconds": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "min": timedelta(minutes=1),
    "mins": timedelta(minutes=1),
    "minute": timedelta(minutes=1),
    "minutes": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "hr": timedelta(hours=1),
    "hrs": timedelta(hours=1),
    "hour": timedelta(hours=1),
    "hours": timedelta(hours=1),
    "d": timedelta(days=1),
    "day": timedelta(days=1),
    "days": timedelta(days=1),
    "w": timedelta(weeks=1),
    "week": timedelta(weeks=1),
    "weeks": timedelta(weeks=1),
}

_DURATION_PART = re.compile(r"\s*(\d+)\s*([a-z]+)\s*")


def parse_duration(value: str) -> timedelta:
    """Parse ``1h 30min``-style durations (units may be glued or space separated)."""

    text = value.strip().lower()
    if not text:
        raise BadInputError("Duration must not be empty")
    total = timedelta()
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise BadInputError(f"Invalid duration {value!r}", hint="Use e.g. 1h, 30m, 2d 3h")
        amount, unit = match.groups()
        if unit not in _UNITS:
            raise BadInputError(f"Unknown duration unit {unit!r} in {value!r}")
        total += int(amount) * _UNITS[unit]
        pos = match.end()
    return total


def parse_datetime_or_date(value: str) -> datetime:
    """Parse an ISO datetime (naive values are local time) or a plain date (midnight)."""

    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            day = date.fromisoformat(text)
        except ValueError as exc:
            raise BadInputError(
                f"Invalid datetime or date {value!r}",
                hint="Expected YYYY-MM-DD[ HH:MM:SS[.ffffff]][+HH:MM]",
            ) from exc
        parsed = datetime(day.year, day.month, day.day)
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


@dataclass(frozen=True, slots=True)
class RelativeDateTime:
    """A point in time: an absolute ``date_time``, ``now``, minus an optional ``offset``.

    With neither field set it means "now", evaluated every time it is used, so a
    running dashboard keeps following the wall clock.
    """

    date_time: datetime | None = None
    offset: timedelta | None = None

    @classmethod
    def parse(cls, value: str) -> RelativeDateTime:
        if not value.strip():
            return cls()
        try:
            return cls(date_time=parse_datetime_or_date(value))
        except BadInputError:
            pass
        return cls(offset=parse_duration(value))

    @classmethod
    def now(cls) -> RelativeDateTime:
        return cls()

    @classmethod
    def ago(cls, offset: timedelta) -> RelativeDateTime:
        return cls(offset=offset)

    @property
    def is_now(self) -> bool:
        return self.date_time is None and self.offset is None

    def resolve(self, now: datetime | None = None) -> datetime:
        base = self.date_time
        if base is None:
            base = now if now is not None else datetime.now(tz=UTC)
        if self.offset is not None:
            base = base - self.offset
        return base

    def to_sql_datetime_64(self) -> str:
        """Render as a ClickHouse ``DateTime64`` expression."""

        if self.date_time is None:
            if self.offset is None:
                return "now64(6)"
            return f"now64(6) - INTERVAL {_nanoseconds(self.offset)} NANOSECOND"
        stamp = f"fromUnixTimestamp64Nano({_nanoseconds(self.date_time - _EPOCH)})"
        if self.offset is None:
            return stamp
        return f"{stamp} - INTERVAL {_nanoseconds(self.offset)} NANOSECOND"

    def __str__(self) -> str:
        if self.is_now:
            return "now"
        parts = []
        if self.date_time is not None:
            parts.append(self.date_time.isoformat(sep=" "))
        else:
            parts.append("now")
        if self.offset is not None:
            parts.append(f"- {self.offset}")
        return " ".join(parts)


def _nanoseconds(delta: timedelta) -> int:
    return (delta // timedelta(microseconds=1)) * 1000


__all__ = ["RelativeDateTime", "parse_datetime_or_date", "parse_duration"]
