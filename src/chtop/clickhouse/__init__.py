"""ClickHouse access: HTTP client, typed result sets and SQL builders."""

from .block import Block
from .client import ClickHouseClient
from .models import ColumnMeta, CompactPayload, QueryStatistics

__all__ = ["Block", "ClickHouseClient", "ColumnMeta", "CompactPayload", "QueryStatistics"]
