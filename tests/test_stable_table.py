from __future__ import annotations

from chtop.views.table import StableTable


def _table(descending: bool = True) -> StableTable[tuple[str, int]]:
    return StableTable(lambda row: row[0], lambda row: row[1], descending=descending)


def test_rows_follow_sort_key() -> None:
    table = _table()
    table.set_items_stable([("a", 1), ("b", 3), ("c", 2)])
    assert table.keys() == ["b", "c", "a"]


def test_ties_keep_previous_relative_order() -> None:
    table = StableTable(lambda row: row[0])
    table.set_items_stable([("b", 0), ("a", 0)])
    table.set_items_stable([("a", 0), ("new", 0), ("b", 0)])
    assert table.keys() == ["b", "a", "new"]


def test_focus_follows_the_same_key() -> None:
    table = _table()
    table.set_items_stable([("a", 3), ("b", 2), ("c", 1)])
    table.focus(1)
    table.set_items_stable([("c", 9), ("b", 2), ("a", 1)])
    assert table.focused == ("b", 2)
    assert table.focused_index == 1


def test_focus_clamps_when_the_row_vanishes() -> None:
    table = _table()
    table.set_items_stable([("a", 3), ("b", 2), ("c", 1)])
    table.focus(2)
    table.set_items_stable([("a", 3)])
    assert table.focused == ("a", 3)


def test_empty_refresh_clears_focus() -> None:
    table = _table()
    table.set_items_stable([("a", 1)])
    table.focus(0)
    table.set_items_stable([])
    assert table.focused is None
    assert len(table) == 0


def test_focus_key_and_resort() -> None:
    table = _table()
    table.set_items_stable([("a", 1), ("b", 2)])
    assert table.focus_key("a")
    assert not table.focus_key("zzz")
    table.set_sort(lambda row: row[1], descending=False)
    assert table.keys() == ["a", "b"]
    assert table.focused == ("a", 1)
