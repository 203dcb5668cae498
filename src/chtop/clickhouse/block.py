"""Rectangular, named-column result set with typed cell access."""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ..contracts.error import InvariantError
from .models import ColumnMeta, CompactPayload, QueryStatistics

_WRAPPERS = re.compile(r"^(?:Nullable|LowCardinality)\((.*)\)$")

Converter = Callable[[Any], Any]


def _unwrap_type(type_name: str) -> str:
    while True:
        match = _WRAPPERS.match(type_name)
        if match is None:
            return type_name
        type_name = match.group(1)


def _to_datetime(value: Any) -> Any:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value, tz=UTC)
    text = str(value)
    parsed = datetime.fromisoformat(text.replace(" ", "T", 1))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _to_int(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return value
    return int(value)


def _to_float(value: Any) -> Any:
    if value is None:
        return math.nan
    return float(value)


def _identity(value: Any) -> Any:
    return value


def _converter_for(type_name: str) -> Converter:
    base = _unwrap_type(type_name)
    if base.startswith("DateTime"):
        return _to_datetime
    if base.startswith(("UInt", "Int")):
        return _to_int
    if base.startswith(("Float", "Decimal")):
        return _to_float
    return _identity


@dataclass(slots=True)
class Block:
    """Result of one query: column metadata plus converted rows."""

    meta: list[ColumnMeta] = field(default_factory=list)
    rows: list[list[Any]] = field(default_factory=list)
    statistics: QueryStatistics | None = None
    _index: dict[str, int] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        self._index = {column.name: pos for pos, column in enumerate(self.meta)}

    @classmethod
    def from_payload(cls, payload: CompactPayload) -> Block:
        try:
            payload.check_shape()
        except ValueError as exc:
            raise InvariantError(f"Malformed result set: {exc}") from exc
        converters = [_converter_for(column.type) for column in payload.meta]
        rows: list[list[Any]] = []
        for raw in payload.data:
            try:
                rows.append([convert(cell) for convert, cell in zip(converters, raw, strict=True)])
            except (TypeError, ValueError) as exc:
                raise InvariantError(f"Unexpected value in result set: {exc}") from exc
        return cls(meta=list(payload.meta), rows=rows, statistics=payload.statistics)

    @property
    def columns(self) -> list[str]:
        return [column.name for column in self.meta]

    def row_count(self) -> int:
        return len(self.rows)

    def has_column(self, column: str) -> bool:
        return column in self._index

    def column_index(self, column: str) -> int:
        try:
            return self._index[column]
        except KeyError:
            raise InvariantError(
                f"Column {column!r} is missing from the result set",
                hint=f"available columns: {', '.join(self.columns) or '<none>'}",
            ) from None

    def get(self, row: int, column: str) -> Any:
        return self.rows[row][self.column_index(column)]

    def get_str(self, row: int, column: str) -> str:
        value = self.get(row, column)
        if value is None:
            return ""
        if not isinstance(value, str):
            raise InvariantError(f"Column {column!r} holds {type(value).__name__}, expected str")
        return value

    def get_int(self, row: int, column: str) -> int:
        value = self.get(row, column)
        if value is None:
            return 0
        if isinstance(value, bool):
            return int(value)
        if not isinstance(value, int):
            raise InvariantError(f"Column {column!r} holds {type(value).__name__}, expected int")
        return value

    def get_float(self, row: int, column: str) -> float:
        value = self.get(row, column)
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise InvariantError(
                f"Column {column!r} holds {type(value).__name__}, expected a number"
            )
        return float(value)

    def get_bool(self, row: int, column: str) -> bool:
        value = self.get(row, column)
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return value != 0
        raise InvariantError(f"Column {column!r} holds {type(value).__name__}, expected bool")

    def get_datetime(self, row: int, column: str) -> datetime:
        value = self.get(row, column)
        if not isinstance(value, datetime):
            raise InvariantError(
                f"Column {column!r} holds {type(value).__name__}, expected DateTime"
            )
        return value

    def get_map(self, row: int, column: str) -> dict[str, Any]:
        value = self.get(row, column)
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise InvariantError(f"Column {column!r} holds {type(value).__name__}, expected Map")
        return value

    def iter_dicts(self) -> Iterator[dict[str, Any]]:
        names = self.columns
        for row in self.rows:
            yield dict(zip(names, row, strict=True))


__all__ = ["Block"]
