"""View state: what each table shows and how it follows refreshes."""

from .queries import QueriesViewState, QueryRow
from .registry import VIEW_NAMES, VIEWS, ViewEntry, ViewKind, get_view
from .sql_view import SqlQueryViewState, SqlViewDefinition
from .table import StableTable
from .text_log import LogLine, TextLogState

__all__ = [
    "LogLine",
    "QueriesViewState",
    "QueryRow",
    "SqlQueryViewState",
    "SqlViewDefinition",
    "StableTable",
    "TextLogState",
    "VIEWS",
    "VIEW_NAMES",
    "ViewEntry",
    "ViewKind",
    "get_view",
]
