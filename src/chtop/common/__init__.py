"""Shared helpers: time ranges, stopwatch and text formatting."""

from .formatting import (
    find_common_hostname_prefix_and_suffix,
    format_bytes,
    format_duration,
    format_number,
    format_percent,
    quote_literal,
    strip_hostname,
    with_settings,
)
from .relative_datetime import RelativeDateTime, parse_datetime_or_date, parse_duration
from .stopwatch import Stopwatch

__all__ = [
    "RelativeDateTime",
    "Stopwatch",
    "find_common_hostname_prefix_and_suffix",
    "format_bytes",
    "format_duration",
    "format_number",
    "format_percent",
    "parse_datetime_or_date",
    "parse_duration",
    "quote_literal",
    "strip_hostname",
    "with_settings",
]
