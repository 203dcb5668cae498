"""Pydantic models for the server's ``JSONCompact`` response payload."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ColumnMeta(BaseModel):
    """Name and ClickHouse type of one result column."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str = Field(..., description="ClickHouse type name, e.g. ``Map(String, UInt64)``.")


class QueryStatistics(BaseModel):
    """Execution statistics the server appends to every JSON response."""

    model_config = ConfigDict(extra="ignore")

    elapsed: float = Field(default=0.0, ge=0.0, description="Server-side seconds.")
    rows_read: int = Field(default=0, ge=0)
    bytes_read: int = Field(default=0, ge=0)


class CompactPayload(BaseModel):
    """Top-level ``FORMAT JSONCompact`` document."""

    model_config = ConfigDict(extra="ignore")

    meta: list[ColumnMeta] = Field(default_factory=list)
    data: list[list[Any]] = Field(default_factory=list)
    rows: int | None = Field(default=None, ge=0)
    statistics: QueryStatistics | None = None

    @field_validator("data")
    @classmethod
    def _rows_are_lists(cls, value: list[list[Any]]) -> list[list[Any]]:
        for index, row in enumerate(value):
            if not isinstance(row, list):
                raise ValueError(f"row {index} is not an array")
        return value

    def check_shape(self) -> None:
        """Raise ``ValueError`` when a row does not have one cell per column."""

        width = len(self.meta)
        for index, row in enumerate(self.data):
            if len(row) != width:
                raise ValueError(f"row {index} has {len(row)} cells, expected {width}")


__all__ = ["ColumnMeta", "CompactPayload", "QueryStatistics"]
