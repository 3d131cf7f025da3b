"""Backing stores written by the loaders and read by the grid.

Two shapes are provided:

* :class:`SlotBuffer` -- an index-addressed arena of slots, grown
  sparsely, where ``offset = page_index * page_size + local_index``.
* :class:`VirtualWindow` -- an open-ended window addressed by absolute
  index, sized by a declared ``virtual_count`` that may be a provisional
  estimate until the first result arrives.

Slots that hold no row contain :data:`UNLOADED` rather than ``None``,
so a server row that legitimately is ``None`` cannot be confused with a
slot that was never filled (or was left behind by an earlier page).
"""

from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from enum import Enum
from typing import Any, Generic, NamedTuple, TypeVar

from reflex_kendo_grid.suppression import ChangeSuppressionGuard

T = TypeVar("T")

PROVISIONAL_VIRTUAL_COUNT: int = 100


class _Unloaded:
    """Marker type of :data:`UNLOADED` (a single, falsy instance)."""

    _instance: "_Unloaded | None" = None

    def __new__(cls) -> "_Unloaded":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNLOADED"

    def __reduce__(self) -> tuple[type, tuple]:
        return (_Unloaded, ())


UNLOADED = _Unloaded()


class ChangeAction(str, Enum):
    REPLACE = "replace"
    RESET = "reset"


class CollectionChange(NamedTuple):
    action: ChangeAction
    index: int | None = None


ChangeListener = Callable[[CollectionChange], None]


class _ObservableStore:
    """Change-notification plumbing shared by both store shapes.

    Outside a bulk update every mutated slot raises a ``replace``
    notification.  Inside one, per-slot notifications are folded into a
    single ``reset`` raised when the outermost region closes -- while the
    guard is still active, so a listener that reloads on reset can tell
    the notification came from a bulk write and ignore it.
    """

    def __init__(self, guard: ChangeSuppressionGuard | None = None) -> None:
        self.guard = guard if guard is not None else ChangeSuppressionGuard()
        self._listeners: list[ChangeListener] = []
        self._pending_reset = False

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, change: CollectionChange) -> None:
        for listener in list(self._listeners):
            listener(change)

    def _changed(self, index: int | None) -> None:
        if self.guard.active:
            self._pending_reset = True
        elif index is None:
            self._emit(CollectionChange(ChangeAction.RESET))
        else:
            self._emit(CollectionChange(ChangeAction.REPLACE, index))

    def mark_reset(self) -> None:
        """Signal a change the store cannot see (e.g. a side list was rebuilt)."""
        self._changed(None)

    @contextmanager
    def bulk_update(self) -> Iterator[Any]:
        self.guard.begin_bulk_update()
        try:
            yield self
        finally:
            try:
                if self.guard.depth == 1 and self._pending_reset:
                    self._pending_reset = False
                    self._emit(CollectionChange(ChangeAction.RESET))
            finally:
                self.guard.end_bulk_update()


class SlotBuffer(_ObservableStore, Generic[T]):
    """Index-addressed arena of row slots.

    Example::

        buffer = SlotBuffer(10)
        with buffer.bulk_update():
            buffer.clear()
            buffer.write_many(0, rows)
    """

    def __init__(self, size: int = 0, *, guard: ChangeSuppressionGuard | None = None) -> None:
        super().__init__(guard)
        self._slots: list[T | _Unloaded] = [UNLOADED] * size

    def __len__(self) -> int:
        return len(self._slots)

    def __getitem__(self, index: int) -> T | _Unloaded:
        return self._slots[index]

    def __iter__(self) -> Iterator[T | _Unloaded]:
        return iter(self._slots)

    def __repr__(self) -> str:
        return f"SlotBuffer(size={len(self._slots)}, loaded={self.loaded_count})"

    @property
    def loaded_count(self) -> int:
        return sum(1 for slot in self._slots if slot is not UNLOADED)

    def is_loaded(self, index: int) -> bool:
        return 0 <= index < len(self._slots) and self._slots[index] is not UNLOADED

    def ensure_size(self, size: int) -> int:
        """Grow the arena with unloaded slots; returns the number added."""
        missing = size - len(self._slots)
        if missing <= 0:
            return 0
        self._slots.extend([UNLOADED] * missing)
        self._changed(None)
        return missing

    def truncate(self, size: int) -> None:
        if size < len(self._slots):
            del self._slots[size:]
            self._changed(None)

    def write(self, index: int, item: T) -> None:
        if index < 0:
            raise IndexError(f"slot index must be >= 0, got {index}")
        self.ensure_size(index + 1)
        self._slots[index] = item
        self._changed(index)

    def write_many(self, start: int, items: Iterable[T]) -> int:
        """Write *items* into consecutive slots from *start*; returns the count."""
        count = 0
        for count, item in enumerate(items, start=1):
            self.write(start + count - 1, item)
        return count

    def clear_range(self, start: int, stop: int) -> None:
        stop = min(stop, len(self._slots))
        for index in range(max(start, 0), stop):
            if self._slots[index] is not UNLOADED:
                self._slots[index] = UNLOADED
                self._changed(index)

    def clear(self) -> None:
        self.clear_range(0, len(self._slots))

    def loaded_items(self, start: int = 0, stop: int | None = None) -> list[T]:
        """Return the loaded rows of ``[start, stop)``, skipping empty slots."""
        window = self._slots[start:stop]
        return [slot for slot in window if slot is not UNLOADED]  # type: ignore[misc]


class VirtualWindow(_ObservableStore, Generic[T]):
    """Sparse rows of a virtually scrolled result set.

    ``len(window)`` is the declared ``virtual_count``; indexes below it
    that were never loaded return :data:`UNLOADED`.
    """

    def __init__(
        self,
        virtual_count: int = PROVISIONAL_VIRTUAL_COUNT,
        *,
        guard: ChangeSuppressionGuard | None = None,
    ) -> None:
        super().__init__(guard)
        self._virtual_count = virtual_count
        self._items: dict[int, T] = {}

    @property
    def virtual_count(self) -> int:
        return self._virtual_count

    @virtual_count.setter
    def virtual_count(self, value: int) -> None:
        if value < 0:
            raise ValueError(f"virtual_count must be >= 0, got {value}")
        if value != self._virtual_count:
            self._virtual_count = value
            self._changed(None)

    def __len__(self) -> int:
        return self._virtual_count

    def __getitem__(self, index: int) -> T | _Unloaded:
        if not 0 <= index < self._virtual_count:
            raise IndexError(f"index {index} outside virtual count {self._virtual_count}")
        return self._items.get(index, UNLOADED)

    def __repr__(self) -> str:
        return f"VirtualWindow(virtual_count={self._virtual_count}, loaded={len(self._items)})"

    @property
    def loaded_count(self) -> int:
        return len(self._items)

    def is_loaded(self, index: int) -> bool:
        return index in self._items

    def load(self, start: int, items: Iterable[T]) -> int:
        """Store *items* at consecutive indexes from *start*; last write wins."""
        count = 0
        for offset, item in enumerate(items):
            self._items[start + offset] = item
            count += 1
        if count:
            self._changed(None)
        return count

    def clear(self) -> None:
        if self._items:
            self._items.clear()
            self._changed(None)

    def contiguous_items(self, start: int = 0) -> list[T]:
        """Rows from *start* up to the first unloaded index."""
        rows: list[T] = []
        index = start
        while index < self._virtual_count and index in self._items:
            rows.append(self._items[index])
            index += 1
        return rows
