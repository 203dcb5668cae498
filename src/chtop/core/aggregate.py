"""Roll-up of distributed sub-queries into their initial query."""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Mapping

from .query import QueryRecord


def count_subqueries(batch: Mapping[str, QueryRecord]) -> None:
    """Set ``subqueries`` on every record to the size of its ``initial_query_id`` group."""

    sizes = Counter(record.initial_query_id for record in batch.values())
    for record in batch.values():
        record.subqueries = sizes[record.initial_query_id]


def sum_profile_events(batch: Mapping[str, QueryRecord]) -> None:
    """Overwrite the initial record's counters with the sum over its whole group.

    Non-initial records keep their own counters. Groups whose initial query is
    not part of the batch are left untouched.
    """

    totals: defaultdict[str, Counter[str]] = defaultdict(Counter)
    for record in batch.values():
        totals[record.initial_query_id].update(record.profile_events)
    for record in batch.values():
        if record.is_initial_query:
            record.profile_events = dict(totals[record.initial_query_id])


def aggregate_subqueries(batch: Mapping[str, QueryRecord], *, no_subqueries: bool) -> None:
    count_subqueries(batch)
    if not no_subqueries:
        sum_profile_events(batch)


__all__ = ["aggregate_subqueries", "count_subqueries", "sum_profile_events"]
