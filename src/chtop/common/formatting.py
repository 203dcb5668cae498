"""Small text helpers shared by the views and the SQL builders."""

from __future__ import annotations

import math
import os
from collections.abc import Iterable, Mapping

_BYTE_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB")
_NUMBER_UNITS = ("", "K", "M", "B", "T")
_HOST_SEPARATORS = ".-"


def format_bytes(value: float) -> str:
    """Render a byte count with binary units (``1.50 MiB``)."""

    if not math.isfinite(value):
        return "n/a"
    sign = "-" if value < 0 else ""
    amount = abs(float(value))
    for unit in _BYTE_UNITS:
        if amount < 1024 or unit == _BYTE_UNITS[-1]:
            if unit == "B":
                return f"{sign}{amount:.0f} B"
            return f"{sign}{amount:.2f} {unit}"
        amount /= 1024
    return f"{sign}{amount:.2f} {_BYTE_UNITS[-1]}"  # pragma: no cover - loop always returns


def format_number(value: float) -> str:
    """Render a count with short-scale suffixes (``12.34 M``)."""

    if not math.isfinite(value):
        return "n/a"
    amount = float(value)
    for unit in _NUMBER_UNITS:
        if abs(amount) < 1000 or unit == _NUMBER_UNITS[-1]:
            return f"{amount:.0f}" if not unit else f"{amount:.2f} {unit}"
        amount /= 1000
    return f"{amount:.2f} {_NUMBER_UNITS[-1]}"  # pragma: no cover


def format_percent(value: float) -> str:
    return f"{value:.1f}" if math.isfinite(value) else "n/a"


def format_duration(seconds: float) -> str:
    """Render seconds as ``1h 02m``/``3m 05s``/``4.20s``."""

    if not math.isfinite(seconds) or seconds < 0:
        return "n/a"
    if seconds < 60:
        return f"{seconds:.2f}s"
    whole = int(seconds)
    days, rest = divmod(whole, 86_400)
    hours, rest = divmod(rest, 3_600)
    minutes, secs = divmod(rest, 60)
    if days:
        return f"{days}d {hours:02d}h"
    if hours:
        return f"{hours}h {minutes:02d}m"
    return f"{minutes}m {secs:02d}s"


def find_common_hostname_prefix_and_suffix(hostnames: Iterable[str]) -> tuple[str, str]:
    """Return the prefix/suffix shared by every hostname, cut at ``.``/``-`` boundaries.

    Stripping both from any hostname always leaves a non-empty name.
    """

    names = list(hostnames)
    if len(names) < 2:
        return "", ""

    prefix = os.path.commonprefix(names)
    cut = max(prefix.rfind(sep) for sep in _HOST_SEPARATORS)
    prefix = prefix[: cut + 1] if cut >= 0 else ""

    reversed_suffix = os.path.commonprefix([name[::-1] for name in names])
    suffix = reversed_suffix[::-1]
    cuts = [idx for idx in (suffix.find(sep) for sep in _HOST_SEPARATORS) if idx >= 0]
    cut = min(cuts, default=-1)
    suffix = suffix[cut:] if cut >= 0 else ""

    shortest = min(len(name) for name in names)
    if len(prefix) + len(suffix) >= shortest:
        # Never strip a hostname down to nothing.
        suffix = suffix if len(suffix) < shortest else ""
        if len(prefix) + len(suffix) >= shortest:
            prefix = ""
    return prefix, suffix


def strip_hostname(hostname: str, prefix: str, suffix: str) -> str:
    if prefix and hostname.startswith(prefix):
        hostname = hostname[len(prefix) :]
    if suffix and hostname.endswith(suffix):
        hostname = hostname[: -len(suffix)]
    return hostname


def quote_literal(value: str) -> str:
    """Quote ``value`` as a ClickHouse string literal."""

    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def quote_identifier(name: str) -> str:
    escaped = name.replace("`", "\\`")
    return f"`{escaped}`"


def with_settings(query: str, settings: Mapping[str, str]) -> str:
    """Append ``settings`` to ``query`` as a ``SETTINGS`` clause."""

    if not settings:
        return query
    rendered = ",\n".join(f"\t{key}={quote_literal(value)}" for key, value in settings.items())
    separator = ",\n" if "SETTINGS" in query else "\nSETTINGS\n"
    return f"{query.rstrip()}{separator}{rendered}"


__all__ = [
    "find_common_hostname_prefix_and_suffix",
    "format_bytes",
    "format_duration",
    "format_number",
    "format_percent",
    "quote_identifier",
    "quote_literal",
    "strip_hostname",
    "with_settings",
]
