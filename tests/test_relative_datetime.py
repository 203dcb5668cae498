from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from chtop.common.relative_datetime import RelativeDateTime, parse_datetime_or_date, parse_duration
from chtop.contracts.error import BadInputError

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("1h", timedelta(hours=1)),
        ("30min", timedelta(minutes=30)),
        ("2d 3h", timedelta(days=2, hours=3)),
        ("1 hour 15 minutes", timedelta(hours=1, minutes=15)),
        ("500ms", timedelta(milliseconds=500)),
    ],
)
def test_parse_duration(text: str, expected: timedelta) -> None:
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "h", "5 fortnights", "1h and more"])
def test_parse_duration_rejects_garbage(text: str) -> None:
    with pytest.raises(BadInputError):
        parse_duration(text)


def test_parse_date_means_local_midnight() -> None:
    parsed = parse_datetime_or_date("2024-03-04")
    assert (parsed.year, parsed.month, parsed.day, parsed.hour) == (2024, 3, 4, 0)
    assert parsed.tzinfo is not None


def test_parse_keeps_explicit_timezone() -> None:
    parsed = parse_datetime_or_date("2024-03-04 10:00:00+00:00")
    assert parsed == datetime(2024, 3, 4, 10, tzinfo=UTC)


def test_relative_values_resolve_against_now() -> None:
    assert RelativeDateTime.parse("").is_now
    assert RelativeDateTime.parse("1h").resolve(NOW) == NOW - timedelta(hours=1)
    assert RelativeDateTime.now().resolve(NOW) == NOW


def test_absolute_value_ignores_now() -> None:
    value = RelativeDateTime.parse("2024-03-04 10:00:00+00:00")
    assert value.resolve(NOW) == datetime(2024, 3, 4, 10, tzinfo=UTC)


def test_sql_rendering() -> None:
    assert RelativeDateTime().to_sql_datetime_64() == "now64(6)"
    assert (
        RelativeDateTime.ago(timedelta(seconds=2)).to_sql_datetime_64()
        == "now64(6) - INTERVAL 2000000000 NANOSECOND"
    )
    epoch_plus_one = RelativeDateTime(date_time=datetime(1970, 1, 1, 0, 0, 1, tzinfo=UTC))
    assert epoch_plus_one.to_sql_datetime_64() == "fromUnixTimestamp64Nano(1000000000)"


def test_str_is_readable() -> None:
    assert str(RelativeDateTime()) == "now"
    assert str(RelativeDateTime.ago(timedelta(hours=1))) == "now - 1:00:00"
