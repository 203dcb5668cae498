"""Row ordering for refreshing tables that must not jump under the cursor."""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable
from typing import Any, Generic, TypeVar

T = TypeVar("T")

KeyFunc = Callable[[T], Hashable]
SortFunc = Callable[[T], Any]


class StableTable(Generic[T]):
    """Rows identified by an explicit ``key`` function.

    ``set_items_stable`` replaces the rows while keeping rows that survived the
    refresh in their previous relative order (among equal sort values) and the
    cursor on the same logical row when it still exists.
    """

    def __init__(
        self,
        key: KeyFunc[T],
        sort_key: SortFunc[T] | None = None,
        *,
        descending: bool = True,
    ) -> None:
        self._key = key
        self._sort_key = sort_key
        self.descending = descending
        self.rows: list[T] = []
        self._focused_index: int | None = None
        self._focused_key: Hashable | None = None

    def __len__(self) -> int:
        return len(self.rows)

    def key_of(self, row: T) -> Hashable:
        return self._key(row)

    def keys(self) -> list[Hashable]:
        return [self._key(row) for row in self.rows]

    def set_sort(self, sort_key: SortFunc[T] | None, *, descending: bool | None = None) -> None:
        self._sort_key = sort_key
        if descending is not None:
            self.descending = descending
        self.set_items_stable(list(self.rows))

    def set_items_stable(self, items: Iterable[T]) -> None:
        previous_positions = {key: pos for pos, key in enumerate(self.keys())}
        fresh = list(items)
        unseen = len(previous_positions)
        # Survivors keep their old relative order, newcomers go last (stable sort keeps that).
        fresh.sort(key=lambda row: previous_positions.get(self._key(row), unseen))
        if self._sort_key is not None:
            fresh.sort(key=self._sort_key, reverse=self.descending)
        self.rows = fresh
        self._restore_focus()

    def _restore_focus(self) -> None:
        if not self.rows:
            self._focused_index = None
            return
        if self._focused_key is not None:
            for index, row in enumerate(self.rows):
                if self._key(row) == self._focused_key:
                    self._focused_index = index
                    return
        if self._focused_index is None:
            return
        self._focused_index = min(self._focused_index, len(self.rows) - 1)
        self._focused_key = self._key(self.rows[self._focused_index])

    # -- focus ---------------------------------------------------------------

    @property
    def focused_index(self) -> int | None:
        return self._focused_index

    @property
    def focused(self) -> T | None:
        if self._focused_index is None or not self.rows:
            return None
        return self.rows[self._focused_index]

    def focus(self, index: int | None) -> None:
        if index is None or not self.rows:
            self._focused_index = None
            self._focused_key = None
            return
        index = max(0, min(index, len(self.rows) - 1))
        self._focused_index = index
        self._focused_key = self._key(self.rows[index])

    def focus_key(self, key: Hashable) -> bool:
        for index, row in enumerate(self.rows):
            if self._key(row) == key:
                self.focus(index)
                return True
        return False


__all__ = ["KeyFunc", "SortFunc", "StableTable"]
