"""Tests for the grid view model."""

import pytest

from reflex_kendo_grid.models import FilterNode, GroupDescriptor, SortState
from reflex_kendo_grid.view import GridView, ViewChange


@pytest.fixture
def view() -> GridView:
    return GridView(page_size=10)


@pytest.fixture
def changes(view: GridView) -> list[ViewChange]:
    seen: list[ViewChange] = []
    view.subscribe(seen.append)
    return seen


def test_set_filters_returns_to_first_page(view, changes):
    view.move_to_page(3)
    view.set_filters([FilterNode(column_id="Status")])
    assert view.page_index == 0
    assert changes == [ViewChange.PAGE, ViewChange.FILTER]


def test_move_to_same_page_is_silent(view, changes):
    view.move_to_page(0)
    assert changes == []
    with pytest.raises(ValueError):
        view.move_to_page(-1)


def test_set_page_size_resets_page(view, changes):
    view.move_to_page(2)
    view.set_page_size(25)
    view.set_page_size(25)
    assert view.page_index == 0
    assert view.page_size == 25
    assert changes == [ViewChange.PAGE, ViewChange.PAGE_SIZE]
    with pytest.raises(ValueError):
        view.set_page_size(0)


def test_snapshot_freezes_current_state(view):
    view.set_sort(SortState(column_id="Name"))
    view.set_groups([GroupDescriptor(column_id="Region")])
    view.move_to_page(1)
    state = view.snapshot(sequence=7)
    view.set_sort(None)
    assert state.sort.column_id == "Name"
    assert state.is_grouped
    assert state.page_index == 1
    assert state.sequence == 7
    assert not view.sort.is_set


def test_unsubscribe(view):
    seen: list[ViewChange] = []
    unsubscribe = view.subscribe(seen.append)
    unsubscribe()
    view.refresh()
    assert seen == []


@pytest.mark.parametrize(
    ("change", "reshapes"),
    [
        (ViewChange.FILTER, True),
        (ViewChange.SORT, True),
        (ViewChange.GROUP, True),
        (ViewChange.PAGE, False),
        (ViewChange.PAGE_SIZE, False),
        (ViewChange.REFRESH, False),
    ],
)
def test_reshapes_query(change, reshapes):
    assert change.reshapes_query is reshapes
