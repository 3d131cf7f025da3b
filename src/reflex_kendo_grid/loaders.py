"""Loading strategies that fill a backing store from the remote endpoint.

Three variants share one capability surface (:class:`DataSourceAdapter`:
``load(state)`` fetches, ``apply_result(state, result)`` writes) and are
picked at construction with :func:`create_loader`:

* :class:`PagedRefillLoader` -- eager paging.  Any view change reloads
  the current page and rewrites its slots in place.
* :class:`GroupAwareLoader` -- eager paging that keeps server group
  buckets in a side list while grouping is active.
* :class:`WindowedLoader` -- virtual scrolling.  Windows are loaded on
  demand into a :class:`~reflex_kendo_grid.store.VirtualWindow` whose
  ``virtual_count`` tracks the server total.

Every fetch carries the sequence number of the snapshot it was built
from.  Responses are written only when that number is still the latest
one issued, so two overlapping fetches resolve to the newer state no
matter which one completes last.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Protocol

from pydantic import ValidationError

from reflex_kendo_grid.errors import TransportFailure
from reflex_kendo_grid.models import DEFAULT_PAGE_SIZE, GroupBucket, QueryResult, QueryState
from reflex_kendo_grid.serializer import build_query_params, build_query_string
from reflex_kendo_grid.store import (
    PROVISIONAL_VIRTUAL_COUNT,
    ChangeAction,
    CollectionChange,
    SlotBuffer,
    VirtualWindow,
)
from reflex_kendo_grid.suppression import ChangeSuppressionGuard
from reflex_kendo_grid.transport import JsonFetcher
from reflex_kendo_grid.view import GridView, ViewChange

logger = logging.getLogger(__name__)


class LoaderMode(str, Enum):
    PAGED = "paged"
    GROUPED = "grouped"
    VIRTUAL = "virtual"


class LoaderState(str, Enum):
    IDLE = "idle"
    INVALIDATED = "invalidated"
    FETCHING = "fetching"
    WRITING = "writing"


class DataSourceAdapter(Protocol):
    async def load(self, state: QueryState) -> QueryResult: ...

    def apply_result(self, state: QueryState, result: QueryResult) -> bool: ...


class SequenceFence:
    """Hands out increasing sequence numbers and recognises the latest."""

    def __init__(self) -> None:
        self._latest = 0

    @property
    def latest(self) -> int:
        return self._latest

    def issue(self) -> int:
        self._latest += 1
        return self._latest

    def is_current(self, sequence: int) -> bool:
        return sequence == self._latest


class _RemoteLoader:
    """Fetch and decode one query; shared by all loader variants."""

    def __init__(
        self,
        url: str,
        fetcher: JsonFetcher,
        view: GridView,
        *,
        item_type: type | None = None,
        guard: ChangeSuppressionGuard | None = None,
    ) -> None:
        self.url = url
        self.fetcher = fetcher
        self.view = view
        self.item_type = item_type
        self.guard = guard if guard is not None else ChangeSuppressionGuard()
        self.fence = SequenceFence()
        self.total = 0
        self.aggregates: list[Any] = []

    async def load(self, state: QueryState) -> QueryResult:
        """Issue the query for *state* and decode the response.

        Raises:
            TransportFailure: If the request fails or the body is not a
                query result envelope.
        """
        logger.debug("query #%d: %s?%s", state.sequence, self.url, build_query_string(state))
        payload = await self.fetcher.fetch_json(self.url, build_query_params(state))
        try:
            result = QueryResult.from_payload(
                payload,
                grouped=state.is_grouped,
                item_type=self.item_type,
            )
        except ValidationError as exc:
            raise TransportFailure(self.url, f"unexpected response shape: {exc}") from exc
        if result.errors:
            logger.warning("server reported errors for query #%d: %r", state.sequence, result.errors)
        return result

    def _is_stale(self, state: QueryState) -> bool:
        if self.fence.is_current(state.sequence):
            return False
        logger.debug(
            "dropping stale response #%d (latest #%d)",
            state.sequence,
            self.fence.latest,
        )
        return True


# ---------------------------------------------------------------------------
# Eager paging
# ---------------------------------------------------------------------------

class PagedRefillLoader(_RemoteLoader):
    """Reload the whole current page whenever the view changes.

    State machine::

        idle -> invalidated -> fetching -> writing -> idle
                                   \\-> idle (fetch failed, or cancelled without a successor)

    A collection reset arriving while the guard is active comes from the
    loader's own bulk write and is ignored; any other reset invalidates.
    The buffer is cleared and rewritten only after the fetch succeeded,
    inside a single suppressed bulk update, so a failed fetch leaves the
    previous page on screen.

    Slots ``[offset, offset + page_size)`` hold the current page, with
    ``offset = page_index * page_size``.  The arena grows sparsely when a
    later page is loaded, and slots past the returned rows are left
    unloaded rather than keeping rows from an earlier, longer page.
    """

    def __init__(
        self,
        url: str,
        fetcher: JsonFetcher,
        view: GridView | None = None,
        *,
        item_type: type | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        super().__init__(url, fetcher, view or GridView(page_size), item_type=item_type)
        self.buffer: SlotBuffer[Any] = SlotBuffer(self.view.page_size, guard=self.guard)
        self.state = LoaderState.IDLE
        self._task: asyncio.Task | None = None
        self.view.subscribe(self._on_view_changed)
        self.buffer.subscribe(self.on_collection_changed)

    # -- reads --------------------------------------------------------

    @property
    def offset(self) -> int:
        return self.view.page_index * self.view.page_size

    @property
    def page_slots(self) -> list[Any]:
        """The current page's slots, unloaded ones included."""
        stop = min(self.offset + self.view.page_size, len(self.buffer))
        return [self.buffer[index] for index in range(self.offset, stop)]

    @property
    def items(self) -> list[Any]:
        """The loaded rows of the current page."""
        return self.buffer.loaded_items(self.offset, self.offset + self.view.page_size)

    # -- invalidation -------------------------------------------------

    def _on_view_changed(self, change: ViewChange) -> None:
        self.on_collection_changed(CollectionChange(ChangeAction.RESET))

    def on_collection_changed(self, change: CollectionChange) -> asyncio.Task | None:
        """Entry point for collection-change notifications.

        Returns the scheduled refresh task, or ``None`` when the change
        was ignored or no event loop is running (call :meth:`refresh`
        yourself in that case).
        """
        if change.action is not ChangeAction.RESET:
            return None
        if self.guard.active:
            logger.debug("reset during bulk update ignored")
            return None
        return self.invalidate()

    def invalidate(self) -> asyncio.Task | None:
        """Schedule a refresh, cancelling one still in flight."""
        self.state = LoaderState.INVALIDATED
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("no running event loop; refresh deferred to the caller")
            return None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = loop.create_task(self.refresh())
        self._task.add_done_callback(_log_task_failure)
        return self._task

    async def wait_idle(self) -> QueryResult | None:
        """Wait for pending refresh work and return what it applied.

        A refresh superseded while waiting is followed to its successor.
        An invalidation that happened with no running event loop is
        refreshed here.

        Raises:
            TransportFailure: The latest refresh failed.
        """
        if self.state is LoaderState.INVALIDATED and (self._task is None or self._task.done()):
            return await self.refresh()
        while self._task is not None:
            task = self._task
            try:
                return await task
            except asyncio.CancelledError:
                if task is self._task or not task.cancelled():
                    raise
        return None

    # -- fetch / write ------------------------------------------------

    async def refresh(self) -> QueryResult | None:
        """Fetch the current page and write it into the buffer.

        Returns the applied result, or ``None`` when the response was
        superseded by a newer refresh.

        Raises:
            TransportFailure: The fetch failed; the buffer is unchanged.
        """
        state = self.view.snapshot(self.fence.issue())
        self.state = LoaderState.FETCHING
        t0 = time.perf_counter()
        try:
            result = await self.load(state)
        except asyncio.CancelledError:
            # Only the task that still owns the loader may mark it idle.
            if self._task is asyncio.current_task():
                self.state = LoaderState.IDLE
            raise
        except Exception:
            if self.fence.is_current(state.sequence):
                self.state = LoaderState.IDLE
            raise
        if not self.apply_result(state, result):
            return None
        logger.debug(
            "page refresh #%d: page=%d, rows=%d, total=%d, elapsed=%.1fms",
            state.sequence,
            state.page,
            len(result.items),
            self.total,
            (time.perf_counter() - t0) * 1000,
        )
        return result

    def apply_result(self, state: QueryState, result: QueryResult) -> bool:
        if self._is_stale(state):
            return False
        self.state = LoaderState.WRITING
        try:
            with self.buffer.bulk_update():
                self.total = result.total
                self.aggregates = list(result.aggregates)
                self._write(state, result)
        finally:
            self.state = LoaderState.IDLE
        return True

    def _write(self, state: QueryState, result: QueryResult) -> None:
        items = result.items
        self.buffer.clear()
        self.buffer.ensure_size(state.offset + state.page_size)
        self.buffer.write_many(state.offset, items)
        expected = min(state.page_size, max(result.total - state.offset, 0))
        if len(items) < expected:
            logger.warning(
                "inconsistent total: page %d returned %d rows, expected %d of %d",
                state.page,
                len(items),
                expected,
                result.total,
            )


class GroupAwareLoader(PagedRefillLoader):
    """Eager paging that switches response shape while grouping is active.

    Grouped responses carry :class:`GroupBucket` entries, which manage
    their own rows; they are appended to :attr:`groups` and the slot
    buffer is left empty.  Ungrouped responses behave as in
    :class:`PagedRefillLoader`.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.groups: list[GroupBucket] = []

    def _write(self, state: QueryState, result: QueryResult) -> None:
        self.groups.clear()
        if not state.is_grouped:
            super()._write(state, result)
            return
        self.buffer.clear()
        for bucket in result.items:
            self.groups.append(bucket)
        self.buffer.mark_reset()


# ---------------------------------------------------------------------------
# Virtual scrolling
# ---------------------------------------------------------------------------

class WindowedLoader(_RemoteLoader):
    """Load arbitrary index windows of a virtually scrolled result set.

    ``virtual_count`` starts at a provisional estimate and follows the
    server total once a window has loaded.  When filter, sort or groups
    change, loaded rows are dropped and responses to earlier requests are
    discarded; a count that had fallen to zero is put back to the
    provisional value, because a grid that believes it has no rows never
    asks for any.

    Window requests are independent: overlapping requests all complete
    and write their rows, the last one to arrive winning.
    """

    def __init__(
        self,
        url: str,
        fetcher: JsonFetcher,
        view: GridView | None = None,
        *,
        item_type: type | None = None,
        window_size: int = DEFAULT_PAGE_SIZE,
        provisional_count: int = PROVISIONAL_VIRTUAL_COUNT,
    ) -> None:
        if window_size <= 0:
            raise ValueError(f"window_size must be > 0, got {window_size}")
        super().__init__(url, fetcher, view or GridView(window_size), item_type=item_type)
        self.window_size = window_size
        self.provisional_count = provisional_count
        self.window: VirtualWindow[Any] = VirtualWindow(provisional_count, guard=self.guard)
        self.pending = 0
        self.fence.issue()
        self.view.subscribe(self._on_view_changed)

    @property
    def virtual_count(self) -> int:
        return self.window.virtual_count

    @property
    def loading(self) -> bool:
        return self.pending > 0

    def _on_view_changed(self, change: ViewChange) -> None:
        if change.reshapes_query or change is ViewChange.REFRESH:
            self.on_query_changed()

    def on_query_changed(self) -> None:
        self.fence.issue()
        with self.window.bulk_update():
            self.window.clear()
            if self.window.virtual_count == 0:
                self.window.virtual_count = self.provisional_count

    def _window_states(self, start: int, count: int) -> list[QueryState]:
        base = self.view.snapshot(self.fence.latest)
        first_page = start // self.window_size
        last_page = (start + count - 1) // self.window_size
        return [
            base.model_copy(update={"page_index": page, "page_size": self.window_size})
            for page in range(first_page, last_page + 1)
        ]

    async def request_window(self, start: int, count: int | None = None) -> int:
        """Load the rows ``[start, start + count)``.

        The range is widened to whole windows of ``window_size`` rows;
        each window is fetched concurrently and written at its own
        offset as soon as it arrives.  Returns the number of rows written.

        Raises:
            TransportFailure: If any window fetch fails.  Windows that
                completed are still written.
        """
        if start < 0:
            raise ValueError(f"start must be >= 0, got {start}")
        count = self.window_size if count is None else count
        if count <= 0:
            return 0
        states = self._window_states(start, count)
        written = await asyncio.gather(*(self._load_window(state) for state in states))
        return sum(written)

    async def _load_window(self, state: QueryState) -> int:
        self.pending += 1
        try:
            result = await self.load(state)
        finally:
            self.pending -= 1
        if not self.apply_result(state, result):
            return 0
        return len(result.items)

    def apply_result(self, state: QueryState, result: QueryResult) -> bool:
        if self._is_stale(state):
            return False
        with self.window.bulk_update():
            self.total = result.total
            self.aggregates = list(result.aggregates)
            self.window.virtual_count = result.total
            self.window.load(state.offset, result.items)
        return True


def create_loader(
    mode: LoaderMode | str,
    url: str,
    fetcher: JsonFetcher,
    view: GridView | None = None,
    *,
    item_type: type | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> PagedRefillLoader | WindowedLoader:
    """Build the loader variant for *mode* (``paged``, ``grouped`` or ``virtual``)."""
    mode = LoaderMode(mode)
    if mode is LoaderMode.VIRTUAL:
        return WindowedLoader(url, fetcher, view, item_type=item_type, window_size=page_size)
    if mode is LoaderMode.GROUPED:
        return GroupAwareLoader(url, fetcher, view, item_type=item_type, page_size=page_size)
    return PagedRefillLoader(url, fetcher, view, item_type=item_type, page_size=page_size)


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("background refresh failed: %s", exc)
