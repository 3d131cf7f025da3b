"""Tests for the suppression guard and the backing stores."""

import copy
import pickle

import pytest

from reflex_kendo_grid.store import (
    UNLOADED,
    ChangeAction,
    CollectionChange,
    SlotBuffer,
    VirtualWindow,
)
from reflex_kendo_grid.suppression import ChangeSuppressionGuard


def record(store) -> list[tuple[CollectionChange, bool]]:
    """Subscribe to *store*, recording each change with the guard state."""
    seen: list[tuple[CollectionChange, bool]] = []
    store.subscribe(lambda change: seen.append((change, store.guard.active)))
    return seen


# ---------------------------------------------------------------------------
# ChangeSuppressionGuard
# ---------------------------------------------------------------------------

def test_guard_nests_by_depth():
    guard = ChangeSuppressionGuard()
    assert not guard.active
    with guard.bulk_update():
        with guard.bulk_update():
            assert guard.depth == 2
        assert guard.active
    assert not guard.active


def test_guard_released_when_region_raises():
    guard = ChangeSuppressionGuard()
    with pytest.raises(KeyError):
        with guard.bulk_update():
            raise KeyError("x")
    assert guard.depth == 0


def test_guard_rejects_unbalanced_end():
    with pytest.raises(RuntimeError):
        ChangeSuppressionGuard().end_bulk_update()


# ---------------------------------------------------------------------------
# UNLOADED
# ---------------------------------------------------------------------------

def test_unloaded_marker_is_a_falsy_singleton():
    assert not UNLOADED
    assert repr(UNLOADED) == "UNLOADED"
    assert copy.copy(UNLOADED) is UNLOADED
    assert pickle.loads(pickle.dumps(UNLOADED)) is UNLOADED


# ---------------------------------------------------------------------------
# SlotBuffer
# ---------------------------------------------------------------------------

def test_slot_writes_notify_replace_outside_bulk_update():
    buffer = SlotBuffer(3)
    seen = record(buffer)
    buffer.write(1, "b")
    assert seen == [(CollectionChange(ChangeAction.REPLACE, 1), False)]
    assert buffer[1] == "b"
    assert buffer[0] is UNLOADED


def test_bulk_update_folds_changes_into_one_reset_under_guard():
    buffer = SlotBuffer(2)
    seen = record(buffer)
    with buffer.bulk_update():
        with buffer.bulk_update():
            buffer.clear()
            buffer.write_many(0, ["a", "b", "c"])
        assert seen == []
    assert seen == [(CollectionChange(ChangeAction.RESET), True)]
    assert not buffer.guard.active


def test_bulk_update_without_changes_is_silent():
    buffer = SlotBuffer(2)
    seen = record(buffer)
    with buffer.bulk_update():
        buffer.clear()
    assert seen == []


def test_bulk_update_releases_guard_when_write_fails():
    buffer = SlotBuffer(2)
    with pytest.raises(IndexError):
        with buffer.bulk_update():
            buffer.write(0, "a")
            buffer.write(-1, "b")
    assert not buffer.guard.active
    assert buffer[0] == "a"


def test_slot_buffer_grows_sparsely():
    buffer = SlotBuffer()
    assert buffer.ensure_size(5) == 5
    assert buffer.ensure_size(3) == 0
    assert buffer.write_many(3, ["d", "e", "f"]) == 3
    assert len(buffer) == 6
    assert buffer.loaded_count == 3
    assert buffer.loaded_items() == ["d", "e", "f"]
    assert buffer.loaded_items(0, 4) == ["d"]
    assert not buffer.is_loaded(0)
    assert buffer.is_loaded(5)
    assert not buffer.is_loaded(99)


def test_slot_buffer_keeps_none_rows_distinct_from_unloaded():
    buffer = SlotBuffer(2)
    buffer.write(0, None)
    assert buffer.is_loaded(0)
    assert buffer.loaded_items() == [None]


def test_slot_buffer_clear_range_and_truncate():
    buffer = SlotBuffer()
    buffer.write_many(0, [1, 2, 3, 4])
    buffer.clear_range(1, 3)
    assert list(buffer) == [1, UNLOADED, UNLOADED, 4]
    buffer.truncate(2)
    assert len(buffer) == 2


# ---------------------------------------------------------------------------
# VirtualWindow
# ---------------------------------------------------------------------------

def test_virtual_window_reports_declared_count():
    window = VirtualWindow(100)
    assert len(window) == 100
    assert window[50] is UNLOADED
    with pytest.raises(IndexError):
        window[100]


def test_virtual_window_load_and_contiguous_items():
    window = VirtualWindow(10)
    seen = record(window)
    assert window.load(0, ["a", "b"]) == 2
    window.load(3, ["d"])
    assert window.contiguous_items() == ["a", "b"]
    assert window.contiguous_items(3) == ["d"]
    assert window.loaded_count == 3
    assert [change.action for change, _ in seen] == [ChangeAction.RESET, ChangeAction.RESET]


def test_virtual_window_last_write_wins():
    window = VirtualWindow(10)
    window.load(0, ["old", "old"])
    window.load(1, ["new"])
    assert window.contiguous_items() == ["old", "new"]


def test_virtual_window_count_changes_notify():
    window = VirtualWindow(10)
    seen = record(window)
    window.virtual_count = 10
    assert seen == []
    window.virtual_count = 0
    assert len(window) == 0
    assert seen == [(CollectionChange(ChangeAction.RESET), False)]
    with pytest.raises(ValueError):
        window.virtual_count = -1


def test_virtual_window_clear():
    window = VirtualWindow(5)
    window.load(0, [1, 2])
    window.clear()
    assert window.loaded_count == 0
    assert not window.is_loaded(0)
