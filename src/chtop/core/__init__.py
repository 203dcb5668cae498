"""Refresh pipeline: scheduling, update bus, rates and sub-query roll-up."""

from .aggregate import aggregate_subqueries, count_subqueries, sum_profile_events
from .background_runner import BackgroundRunner, RefreshSignal
from .query import QueryRecord, records_from_block, saturating_sub

__all__ = [
    "BackgroundRunner",
    "QueryRecord",
    "RefreshSignal",
    "aggregate_subqueries",
    "count_subqueries",
    "records_from_block",
    "saturating_sub",
    "sum_profile_events",
]
