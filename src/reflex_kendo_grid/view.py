"""Mutable grid view model: the filter/sort/group/page state the UI edits.

Loaders subscribe to a :class:`GridView` and react to its change
notifications; they read it only through :meth:`GridView.snapshot`, which
freezes the current state into a :class:`QueryState`.
"""

from collections.abc import Callable, Iterable
from enum import Enum

from reflex_kendo_grid.models import (
    DEFAULT_PAGE_SIZE,
    FilterNode,
    GroupDescriptor,
    QueryState,
    SortState,
)


class ViewChange(str, Enum):
    FILTER = "filter"
    SORT = "sort"
    GROUP = "group"
    PAGE = "page"
    PAGE_SIZE = "page_size"
    REFRESH = "refresh"

    @property
    def reshapes_query(self) -> bool:
        """Whether the change alters which rows match (not just which page)."""
        return self in (ViewChange.FILTER, ViewChange.SORT, ViewChange.GROUP)


ViewListener = Callable[[ViewChange], None]


class GridView:
    """Filter, sort, group and paging state of one grid.

    Setting filters (or the page size) moves the view back to the first
    page, so a narrower result set is never viewed past its end.
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        if page_size <= 0:
            raise ValueError(f"page_size must be > 0, got {page_size}")
        self._filters: tuple[FilterNode, ...] = ()
        self._sort = SortState()
        self._groups: tuple[GroupDescriptor, ...] = ()
        self._page_index = 0
        self._page_size = page_size
        self._listeners: list[ViewListener] = []

    # -- read access --------------------------------------------------

    @property
    def filters(self) -> tuple[FilterNode, ...]:
        return self._filters

    @property
    def sort(self) -> SortState:
        return self._sort

    @property
    def groups(self) -> tuple[GroupDescriptor, ...]:
        return self._groups

    @property
    def page_index(self) -> int:
        return self._page_index

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def is_grouped(self) -> bool:
        return bool(self._groups)

    def snapshot(self, sequence: int = 0) -> QueryState:
        return QueryState(
            filters=self._filters,
            sort=self._sort,
            groups=self._groups,
            page_index=self._page_index,
            page_size=self._page_size,
            sequence=sequence,
        )

    # -- notifications ------------------------------------------------

    def subscribe(self, listener: ViewListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: ViewChange) -> None:
        for listener in list(self._listeners):
            listener(change)

    # -- mutations ----------------------------------------------------

    def set_filters(self, filters: Iterable[FilterNode]) -> None:
        self._filters = tuple(filters)
        self._page_index = 0
        self._notify(ViewChange.FILTER)

    def set_sort(self, sort: SortState | None) -> None:
        self._sort = sort if sort is not None else SortState()
        self._notify(ViewChange.SORT)

    def set_groups(self, groups: Iterable[GroupDescriptor]) -> None:
        self._groups = tuple(groups)
        self._notify(ViewChange.GROUP)

    def move_to_page(self, page_index: int) -> None:
        if page_index < 0:
            raise ValueError(f"page_index must be >= 0, got {page_index}")
        if page_index != self._page_index:
            self._page_index = page_index
            self._notify(ViewChange.PAGE)

    def set_page_size(self, page_size: int) -> None:
        if page_size <= 0:
            raise ValueError(f"page_size must be > 0, got {page_size}")
        if page_size != self._page_size:
            self._page_size = page_size
            self._page_index = 0
            self._notify(ViewChange.PAGE_SIZE)

    def refresh(self) -> None:
        """Ask subscribers to reload without changing any state."""
        self._notify(ViewChange.REFRESH)
