"""Reflex state mixin and UI helpers for a DataGrid backed by a remote endpoint.

Users inherit from :class:`RemoteGridMixin` **and** ``rx.State``, call
:meth:`~RemoteGridMixin.set_remote_source` with the endpoint URL and the
entity's polars schema, and render with :func:`remote_grid`::

    import polars as pl
    import reflex as rx

    from reflex_kendo_grid import RemoteGridMixin, remote_grid

    ORDERS = {"Id": pl.Int64, "Status": pl.Enum(["Open", "Closed"]), "CreatedAt": pl.Datetime}

    class OrdersState(RemoteGridMixin, rx.State):
        async def load(self):
            async for update in self.set_remote_source("https://host/api/orders", ORDERS):
                yield update

    def index():
        return rx.cond(OrdersState.rg_loaded, remote_grid(OrdersState))

Three loading modes are available:

* ``"virtual"`` -- infinite scroll; windows are fetched as the grid
  scrolls (:class:`~reflex_kendo_grid.loaders.WindowedLoader`).
* ``"paged"`` -- server pagination; each page change or query change
  refills the current page (:class:`~reflex_kendo_grid.loaders.PagedRefillLoader`).
* ``"grouped"`` -- paged, plus server-side grouping via
  :meth:`~RemoteGridMixin.handle_rg_group`.

Loaders, transports and column metadata are not JSON-serialisable, so
each grid's :class:`~reflex_kendo_grid.session.GridSession` lives in a
module-level registry keyed by the state class name; only plain rows,
column defs and status strings are kept in Reflex state.
"""

from collections.abc import Iterable, Mapping
from typing import Any

import httpx
import polars as pl
import reflex as rx
from reflex_mui_datagrid import build_column_defs_from_schema, data_grid

from reflex_kendo_grid.errors import KendoGridError
from reflex_kendo_grid.loaders import LoaderMode
from reflex_kendo_grid.mui_utils import ROW_ID_FIELD
from reflex_kendo_grid.session import (
    DEFAULT_CHUNK_SIZE,
    GROUP_FIELD,
    GridSession,
    GridSnapshot,
)
from reflex_kendo_grid.transport import DEFAULT_TIMEOUT, HttpTransport


# ---------------------------------------------------------------------------
# Module-level session registry
# ---------------------------------------------------------------------------

_session_registry: dict[str, GridSession] = {}


def _get_session(cache_id: str) -> GridSession | None:
    return _session_registry.get(cache_id)


async def _replace_session(cache_id: str, session: GridSession) -> None:
    """Register *session* for *cache_id*, closing the one it replaces."""
    previous = _session_registry.get(cache_id)
    _session_registry[cache_id] = session
    if previous is not None and previous is not session:
        await previous.aclose()


# ---------------------------------------------------------------------------
# RemoteGridMixin
# ---------------------------------------------------------------------------

class RemoteGridMixin(rx.State, mixin=True):
    """Reflex State mixin for DataGrids served by a Kendo-style endpoint.

    All state variable names are prefixed with ``rg_`` to avoid
    collisions when composed with other state.  Each concrete subclass
    gets its own set of vars and its own :class:`GridSession`.
    """

    # -- Frontend state vars --
    rg_rows: list[dict[str, Any]] = []
    rg_columns: list[dict[str, Any]] = []
    rg_row_count: int = 0
    rg_loading: bool = False
    rg_loaded: bool = False
    rg_mode: str = LoaderMode.VIRTUAL.value
    rg_stats: str = ""
    rg_error: str = ""
    rg_query: str = ""
    rg_selected_info: str = "Click a row to see details."
    rg_filter_model: dict[str, Any] = {"items": []}
    rg_active_filter_fields: list[str] = []
    rg_group_fields: list[str] = []
    rg_pagination_model: dict[str, int] = {"page": 0, "pageSize": DEFAULT_CHUNK_SIZE}

    # -- Backend-only vars --
    _rg_cache_id: str = ""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def set_remote_source(
        self,
        url: str,
        schema: pl.Schema | Mapping[str, pl.DataType],
        *,
        mode: LoaderMode | str = LoaderMode.VIRTUAL,
        page_size: int = DEFAULT_CHUNK_SIZE,
        nullable_columns: Iterable[str] = (),
        descriptions: dict[str, str] | None = None,
        auth: httpx.Auth | tuple[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        item_type: type | None = None,
    ):
        """Bind the grid to *url* and load the first page.

        This is an **async generator** -- iterate it from your event
        handler so the loading state reaches the frontend immediately.

        Args:
            url: Resource URL of the paged query endpoint.
            schema: Column names and polars types of the entity.  Enum
                and boolean columns get their filter values locally.
            mode: ``"virtual"``, ``"paged"`` or ``"grouped"``.
            page_size: Rows per page (paged) or per scroll chunk (virtual).
            nullable_columns: Columns whose values may be null.
            descriptions: Optional ``{column: description}`` mapping for
                column header tooltips.
            auth: Credentials for the endpoint.
            timeout: Request timeout in seconds.
            item_type: Optional row type to validate rows into.
        """
        mode = LoaderMode(mode)
        self.rg_loading = True  # type: ignore[assignment]
        self.rg_selected_info = f"Connecting to {url}..."  # type: ignore[assignment]
        yield

        cache_id = type(self).__name__
        self._rg_cache_id = cache_id  # type: ignore[assignment]
        session = GridSession(
            url,
            HttpTransport(auth=auth, timeout=timeout),
            schema,
            mode=mode,
            page_size=page_size,
            nullable_columns=nullable_columns,
            item_type=item_type,
        )
        col_defs = build_column_defs_from_schema(
            session.schema,
            value_options_map=session.value_options_map(),
            column_descriptions=descriptions or {},
        )
        session.col_defs = [c.dict() for c in col_defs]
        await _replace_session(cache_id, session)

        self.rg_columns = session.col_defs  # type: ignore[assignment]
        self.rg_mode = mode.value  # type: ignore[assignment]
        self.rg_loaded = True  # type: ignore[assignment]
        self.rg_filter_model = {"items": []}  # type: ignore[assignment]
        self.rg_active_filter_fields = []  # type: ignore[assignment]
        self.rg_group_fields = []  # type: ignore[assignment]
        self.rg_pagination_model = session.pagination_model  # type: ignore[assignment]

        self._publish_rg(await session.start())
        self.rg_selected_info = (  # type: ignore[assignment]
            f"Ready: {self.rg_row_count:,} rows."
        )

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def handle_rg_filter(self, filter_model: dict[str, Any]):
        """Handle a MUI filter change, accumulating one item per column.

        Every filter change returns the grid to the first page.  A filter
        the endpoint cannot express is rejected and the previous filter
        stays in force.
        """
        session = self._rg_session()
        if session is None:
            return
        self.rg_loading = True  # type: ignore[assignment]
        self.rg_stats = "Filtering..."  # type: ignore[assignment]
        yield

        try:
            fields = session.apply_filter_model(filter_model)
        except (KendoGridError, ValueError) as exc:
            self._publish_rg(session.fail(exc))
            return

        self.rg_filter_model = filter_model  # type: ignore[assignment]
        self.rg_active_filter_fields = fields  # type: ignore[assignment]
        self.rg_pagination_model = session.pagination_model  # type: ignore[assignment]
        self._publish_rg(await session.load())

    async def handle_rg_sort(self, sort_model: list[dict[str, Any]]):
        """Handle a MUI sort change; only the first sort column is sent."""
        session = self._rg_session()
        if session is None:
            return
        self.rg_loading = True  # type: ignore[assignment]
        self.rg_stats = "Sorting..."  # type: ignore[assignment]
        yield

        session.apply_sort(sort_model)
        self._publish_rg(await session.load())

    async def handle_rg_group(self, fields: list[str]):
        """Group rows on the server by *fields* (``"grouped"`` mode only)."""
        session = self._rg_session()
        if session is None:
            return
        if session.mode is not LoaderMode.GROUPED:
            self.rg_stats = "Grouping needs mode='grouped'."  # type: ignore[assignment]
            return
        self.rg_loading = True  # type: ignore[assignment]
        self.rg_stats = "Grouping..."  # type: ignore[assignment]
        yield

        session.apply_groups(fields)
        self.rg_group_fields = list(fields)  # type: ignore[assignment]
        self._publish_rg(await session.load())

    async def handle_rg_pagination(self, pagination_model: dict[str, int]):
        """Handle a page or page-size change (``"paged"`` / ``"grouped"`` modes)."""
        session = self._rg_session()
        if session is None or session.is_virtual:
            return
        self.rg_loading = True  # type: ignore[assignment]
        yield

        try:
            self.rg_pagination_model = session.apply_pagination(pagination_model)  # type: ignore[assignment]
        except ValueError as exc:
            self._publish_rg(session.fail(exc))
            return
        self._publish_rg(await session.load())

    async def handle_rg_scroll_end(self, _params: dict[str, Any]):
        """Load the next window when the virtual scroller nears the bottom."""
        session = self._rg_session()
        if session is None or self.rg_loading:
            return
        next_offset = session.next_window_offset()
        if next_offset is None:
            return

        self.rg_loading = True  # type: ignore[assignment]
        self.rg_stats = f"Loading rows {next_offset:,}..."  # type: ignore[assignment]
        yield

        self._publish_rg(await session.load(next_offset))

    async def handle_rg_request_value_options(self, field: str) -> None:
        """Fill a column's filter dropdown with its distinct values."""
        session = self._rg_session()
        if session is None:
            return
        try:
            col_defs = await session.value_options(field)
        except KendoGridError as exc:
            self._publish_rg(session.fail(exc))
            return
        if col_defs is not None:
            self.rg_columns = col_defs  # type: ignore[assignment]

    def handle_rg_row_click(self, params: dict[str, Any]) -> None:
        """Show all fields of the clicked row."""
        row: dict[str, Any] = params.get("row", {})
        if not row:
            return
        lines = [
            f"{field}: {value}"
            for field, value in row.items()
            if field not in (ROW_ID_FIELD, GROUP_FIELD)
        ]
        self.rg_selected_info = "\n".join(lines)  # type: ignore[assignment]

    async def clear_rg_filters(self):
        """Clear all accumulated filters and the MUI filter UI."""
        session = self._rg_session()
        if session is None:
            return
        self.rg_loading = True  # type: ignore[assignment]
        self.rg_stats = "Clearing filters..."  # type: ignore[assignment]
        yield

        session.clear_filters()
        self.rg_filter_model = {"items": []}  # type: ignore[assignment]
        self.rg_active_filter_fields = []  # type: ignore[assignment]
        self.rg_pagination_model = session.pagination_model  # type: ignore[assignment]
        self._publish_rg(await session.load())

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _rg_session(self) -> GridSession | None:
        if not self._rg_cache_id:
            return None
        return _get_session(self._rg_cache_id)

    def _publish_rg(self, snapshot: GridSnapshot) -> None:
        self.rg_rows = snapshot.rows  # type: ignore[assignment]
        self.rg_row_count = snapshot.total  # type: ignore[assignment]
        self.rg_query = snapshot.query  # type: ignore[assignment]
        self.rg_error = snapshot.error  # type: ignore[assignment]
        self.rg_stats = snapshot.stats  # type: ignore[assignment]
        self.rg_loading = False  # type: ignore[assignment]


# ---------------------------------------------------------------------------
# UI helpers
# ---------------------------------------------------------------------------

def remote_grid(
    state_cls: type,
    *,
    height: str = "600px",
    width: str = "100%",
    density: str = "compact",
    scroll_end_threshold: int = 260,
    page_size_options: list[int] | None = None,
    show_toolbar: bool = True,
    on_row_click: Any = None,
    **extra_props: Any,
) -> rx.Component:
    """Return a ``data_grid(...)`` wired to a :class:`RemoteGridMixin` state.

    Filtering and sorting always run on the server.  The mode chosen in
    ``set_remote_source`` decides between infinite scroll and server
    pagination at runtime.

    Args:
        state_cls: The ``rx.State`` subclass that also inherits from
            :class:`RemoteGridMixin`.
        height: CSS height of the grid container.
        width: CSS width of the grid container.
        density: Grid density (``"comfortable"``, ``"compact"``, ``"standard"``).
        scroll_end_threshold: Pixel distance from bottom to trigger the
            next window load in virtual mode.
        page_size_options: Page sizes offered in paged mode.
        show_toolbar: Show the MUI toolbar.
        on_row_click: Override the default row-click handler.
        **extra_props: Additional props forwarded to ``data_grid()``.
    """
    if on_row_click is None:
        on_row_click = state_cls.handle_rg_row_click

    common: dict[str, Any] = dict(
        rows=state_cls.rg_rows,
        columns=state_cls.rg_columns,
        row_id_field=ROW_ID_FIELD,
        filter_mode="server",
        sorting_mode="server",
        filter_model=state_cls.rg_filter_model,
        active_filter_fields=state_cls.rg_active_filter_fields,
        loading=state_cls.rg_loading,
        show_toolbar=show_toolbar,
        always_show_filter_icon=True,
        density=density,
        on_filter_model_change=state_cls.handle_rg_filter,
        on_sort_model_change=state_cls.handle_rg_sort,
        on_request_value_options=state_cls.handle_rg_request_value_options,
        on_row_click=on_row_click,
        height=height,
        width=width,
        **extra_props,
    )

    return rx.cond(
        state_cls.rg_mode == LoaderMode.VIRTUAL.value,
        data_grid(
            pagination=False,
            hide_footer=True,
            scroll_end_threshold=scroll_end_threshold,
            on_rows_scroll_end=state_cls.handle_rg_scroll_end,
            **common,
        ),
        data_grid(
            pagination=True,
            pagination_mode="server",
            row_count=state_cls.rg_row_count,
            pagination_model=state_cls.rg_pagination_model,
            page_size_options=page_size_options or [10, 25, 50, 100],
            on_pagination_model_change=state_cls.handle_rg_pagination,
            **common,
        ),
    )


def remote_grid_stats_bar(state_cls: type) -> rx.Component:
    """Return a bar showing the matching row count, last load and query."""
    return rx.box(
        rx.hstack(
            rx.text(
                state_cls.rg_row_count.to(str),  # type: ignore[union-attr]
                " rows (filtered)",
                size="2",
                weight="medium",
            ),
            rx.text("|", size="2", color="var(--gray-7)"),
            rx.text(
                state_cls.rg_stats,
                size="1",
                color="var(--gray-9)",
                font_family="monospace",
            ),
            spacing="2",
            align="center",
        ),
        rx.cond(
            state_cls.rg_error != "",
            rx.text(state_cls.rg_error, size="1", color="var(--red-11)"),
        ),
        rx.text(
            state_cls.rg_query,
            size="1",
            color="var(--gray-9)",
            font_family="monospace",
            white_space="pre-wrap",
        ),
        padding="0.4em 0.8em",
        border_radius="6px",
        background="var(--blue-a2)",
        border="1px solid var(--blue-a5)",
        margin_bottom="0.5em",
    )


def remote_grid_detail_box(state_cls: type) -> rx.Component:
    """Return a box showing the selected row's fields."""
    return rx.box(
        rx.text(
            state_cls.rg_selected_info,
            white_space="pre-wrap",
            size="2",
        ),
        margin_top="1em",
        padding="1em",
        border_radius="8px",
        background="var(--gray-a3)",
    )
