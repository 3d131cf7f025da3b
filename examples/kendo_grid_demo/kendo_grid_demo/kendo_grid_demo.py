"""Example Reflex app browsing a remote orders endpoint.

Two tabs:
  1. Infinite scroll -- windows of rows are fetched as the grid scrolls
     (``mode="virtual"``).
  2. Server pages -- classic pagination, plus server-side grouping by a
     chosen column (``mode="grouped"``).

Point ``KENDO_GRID_URL`` at any endpoint speaking the Kendo
``DataSourceRequest`` protocol whose rows match ``ORDERS_SCHEMA``.
"""

import os

import polars as pl
import reflex as rx

from reflex_kendo_grid import (
    RemoteGridMixin,
    remote_grid,
    remote_grid_detail_box,
    remote_grid_stats_bar,
)

ORDERS_URL: str = os.environ.get("KENDO_GRID_URL", "http://localhost:5000/api/orders")

ORDERS_SCHEMA: dict[str, pl.DataType] = {
    "Id": pl.Int64(),
    "Customer": pl.String(),
    "Region": pl.String(),
    "Status": pl.Enum(["Open", "Shipped", "Closed"]),
    "Priority": pl.Enum(["Low", "Normal", "High"]),
    "Total": pl.Float64(),
    "Paid": pl.Boolean(),
    "CreatedAt": pl.Datetime(),
}

ORDERS_DESCRIPTIONS: dict[str, str] = {
    "Status": "Fulfilment status",
    "Priority": "Handling priority",
    "Paid": "Whether the invoice was settled (unknown for drafts)",
}

GROUPABLE_COLUMNS: list[str] = ["Region", "Status", "Priority"]


def _auth() -> tuple[str, str] | None:
    user = os.environ.get("KENDO_GRID_USER")
    if not user:
        return None
    return user, os.environ.get("KENDO_GRID_PASSWORD", "")


class ScrollState(RemoteGridMixin, rx.State):
    """Infinite-scroll grid over the orders endpoint."""

    async def load(self):
        async for update in self.set_remote_source(
            ORDERS_URL,
            ORDERS_SCHEMA,
            mode="virtual",
            page_size=100,
            nullable_columns=["Paid"],
            descriptions=ORDERS_DESCRIPTIONS,
            auth=_auth(),
        ):
            yield update


class PagedState(RemoteGridMixin, rx.State):
    """Paged, groupable grid over the orders endpoint."""

    group_column: str = ""

    async def load(self):
        async for update in self.set_remote_source(
            ORDERS_URL,
            ORDERS_SCHEMA,
            mode="grouped",
            page_size=25,
            nullable_columns=["Paid"],
            descriptions=ORDERS_DESCRIPTIONS,
            auth=_auth(),
        ):
            yield update

    async def set_group_column(self, column: str):
        self.group_column = "" if column == "none" else column
        async for update in self.handle_rg_group([self.group_column] if self.group_column else []):
            yield update


def _status_box(*children: rx.Component) -> rx.Component:
    return rx.box(
        *children,
        margin_top="1em",
        padding="1em",
        border_radius="8px",
        background="var(--gray-a3)",
    )


def scroll_tab() -> rx.Component:
    """Infinite-scroll tab content."""
    return rx.box(
        rx.text(
            "Rows are requested a window at a time as you scroll near the "
            "bottom. Filtering and sorting run on the server; the row count "
            "follows the server total.",
            margin_bottom="1em",
            color="var(--gray-11)",
        ),
        rx.cond(
            ScrollState.rg_loaded,
            rx.fragment(
                remote_grid_stats_bar(ScrollState),
                remote_grid(ScrollState, height="540px"),
            ),
            rx.button("Connect", on_click=ScrollState.load, loading=ScrollState.rg_loading, size="3"),
        ),
        remote_grid_detail_box(ScrollState),
        padding_top="1em",
    )


def paged_tab() -> rx.Component:
    """Server pagination and grouping tab content."""
    return rx.box(
        rx.text(
            "Each page is fetched on demand. Pick a column to group by; the "
            "server returns group buckets, shown here with their key in the "
            "first column.",
            margin_bottom="1em",
            color="var(--gray-11)",
        ),
        rx.cond(
            PagedState.rg_loaded,
            rx.fragment(
                rx.hstack(
                    rx.text("Group by", size="2"),
                    rx.select(
                        ["none", *GROUPABLE_COLUMNS],
                        default_value="none",
                        on_change=PagedState.set_group_column,
                        size="1",
                    ),
                    align="center",
                    margin_bottom="0.5em",
                ),
                remote_grid_stats_bar(PagedState),
                remote_grid(PagedState, height="540px", page_size_options=[25, 50, 100]),
            ),
            rx.button("Connect", on_click=PagedState.load, loading=PagedState.rg_loading, size="3"),
        ),
        _status_box(
            rx.text(
                PagedState.rg_selected_info,
                white_space="pre-wrap",
                size="2",
            ),
        ),
        padding_top="1em",
    )


def index() -> rx.Component:
    """Render the main page with tabs."""
    return rx.box(
        rx.heading("Remote Grid -- Reflex Demo", size="6", margin_bottom="1em"),
        rx.tabs.root(
            rx.tabs.list(
                rx.tabs.trigger("Infinite Scroll", value="scroll"),
                rx.tabs.trigger("Server Pages", value="paged"),
            ),
            rx.tabs.content(scroll_tab(), value="scroll"),
            rx.tabs.content(paged_tab(), value="paged"),
            default_value="scroll",
        ),
        padding="2em",
        max_width="1400px",
        margin="0 auto",
    )


app = rx.App()
app.add_page(index, title="Remote Grid Demo")
