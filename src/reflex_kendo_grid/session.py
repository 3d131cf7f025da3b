"""Reflex-independent state of one remote grid.

A :class:`GridSession` owns the view, loader, distinct-value resolver
and column defs of one grid, and turns MUI model changes into view
changes.  Query changes are validated before they reach the view, so a
rejected change leaves the view, the accumulated filter model and the
rows on screen as they were.

:class:`~reflex_kendo_grid.remote_grid.RemoteGridMixin` copies the
:class:`GridSnapshot` returned by :meth:`GridSession.load` into Reflex
state; nothing here imports Reflex.
"""

import logging
import time
from collections.abc import Iterable, Mapping
from typing import Any

import polars as pl
from pydantic import BaseModel, Field

from reflex_kendo_grid.distinct import (
    DistinctValuesResolver,
    _is_boolean,
    column_metas_from_schema,
    static_values,
)
from reflex_kendo_grid.errors import KendoGridError
from reflex_kendo_grid.loaders import (
    GroupAwareLoader,
    LoaderMode,
    PagedRefillLoader,
    WindowedLoader,
    create_loader,
)
from reflex_kendo_grid.mui_utils import (
    filter_nodes_from_mui,
    flatten_group_buckets,
    groups_from_mui,
    merge_filter_model,
    rows_with_ids,
    sort_state_from_mui,
)
from reflex_kendo_grid.serializer import build_query_string, serialize_filter
from reflex_kendo_grid.transport import JsonFetcher
from reflex_kendo_grid.view import GridView

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE: int = 100
GROUP_FIELD: str = "__group__"


class GridSnapshot(BaseModel):
    """What the grid shows after a load attempt."""

    rows: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0
    query: str = ""
    stats: str = ""
    error: str = ""


def with_value_options(
    col_defs: list[dict[str, Any]],
    field: str,
    options: Iterable[Any],
) -> list[dict[str, Any]]:
    """Return *col_defs* with *field* upgraded to a ``singleSelect`` column."""
    values = [value for value in options if value is not None]
    updated: list[dict[str, Any]] = []
    for col_def in col_defs:
        if col_def.get("field") == field and col_def.get("type") != "boolean":
            col_def = {**col_def, "type": "singleSelect", "valueOptions": values}
        updated.append(col_def)
    return updated


class GridSession:
    """Loader stack of one grid served by a Kendo-style endpoint.

    Args:
        url: Resource URL of the paged query endpoint.
        fetcher: Injected JSON transport.
        schema: Column names and polars types of the entity.
        mode: ``"virtual"``, ``"paged"`` or ``"grouped"``.
        page_size: Rows per page (paged) or per scroll chunk (virtual).
        nullable_columns: Columns whose values may be null.
        item_type: Optional row type to validate rows into.
    """

    def __init__(
        self,
        url: str,
        fetcher: JsonFetcher,
        schema: pl.Schema | Mapping[str, pl.DataType],
        *,
        mode: LoaderMode | str = LoaderMode.VIRTUAL,
        page_size: int = DEFAULT_CHUNK_SIZE,
        nullable_columns: Iterable[str] = (),
        item_type: type | None = None,
    ) -> None:
        self.url = url
        self.fetcher = fetcher
        self.mode = LoaderMode(mode)
        self.schema = pl.Schema(schema)
        self.view = GridView(page_size)
        self.loader = create_loader(
            self.mode,
            url,
            fetcher,
            self.view,
            item_type=item_type,
            page_size=page_size,
        )
        self.resolver = DistinctValuesResolver(url, fetcher)
        self.columns = column_metas_from_schema(self.schema, nullable_columns)
        self.col_defs: list[dict[str, Any]] = []
        self.filter_model: dict[str, Any] = {}
        self.snapshot = GridSnapshot()

    @property
    def is_virtual(self) -> bool:
        return isinstance(self.loader, WindowedLoader)

    @property
    def pagination_model(self) -> dict[str, int]:
        return {"page": self.view.page_index, "pageSize": self.view.page_size}

    def value_options_map(self) -> dict[str, list[str]]:
        """Filter values of enum columns, known without a round trip."""
        options: dict[str, list[str]] = {}
        for name, column in self.columns.items():
            values = static_values(column)
            if values is not None and not _is_boolean(column.dtype):
                options[name] = [
                    str(getattr(value, "value", value)) for value in values if value is not None
                ]
        return options

    # -- query changes ------------------------------------------------

    def apply_filter_model(self, filter_model: Mapping[str, Any]) -> list[str]:
        """Merge a MUI filter change into the accumulated filter.

        Returns the columns that carry a filter afterwards.  The view
        moves back to the first page.

        Raises:
            UnsupportedOperatorError: The merged filter has no protocol
                form; nothing is changed.
            ValueError: A column has more than two clauses.
        """
        merged = merge_filter_model(self.filter_model, filter_model)
        nodes = filter_nodes_from_mui(merged)
        serialize_filter(nodes)
        self.filter_model = merged
        self.view.set_filters(nodes)
        return [node.column_id for node in nodes]

    def clear_filters(self) -> None:
        self.filter_model = {}
        self.view.set_filters([])

    def apply_sort(self, sort_model: list[dict[str, Any]]) -> None:
        self.view.set_sort(sort_state_from_mui(sort_model))

    def apply_groups(self, fields: Iterable[Any]) -> None:
        if not isinstance(self.loader, GroupAwareLoader):
            raise ValueError("grouping needs mode='grouped'")
        self.view.set_groups(groups_from_mui(fields))

    def apply_pagination(self, pagination_model: Mapping[str, Any]) -> dict[str, int]:
        """Move to the requested page; a new page size restarts at page 0."""
        page_size = int(pagination_model.get("pageSize", self.view.page_size))
        page = int(pagination_model.get("page", 0))
        if page_size != self.view.page_size:
            self.view.set_page_size(page_size)
        else:
            self.view.move_to_page(page)
        return self.pagination_model

    def next_window_offset(self) -> int | None:
        """First row index not loaded yet, or ``None`` when nothing is left."""
        if not isinstance(self.loader, WindowedLoader):
            return None
        offset = len(self.loader.window.contiguous_items(0))
        if offset >= self.loader.virtual_count:
            return None
        return offset

    async def value_options(self, field: str) -> list[dict[str, Any]] | None:
        """Column defs with *field*'s distinct values, or ``None`` for unknown fields.

        Raises:
            TransportFailure: The distinct-values request failed.
        """
        column = self.columns.get(field)
        if column is None:
            return None
        values = await self.resolver.resolve(column, self.view.filters)
        self.col_defs = with_value_options(self.col_defs, field, values)
        return self.col_defs

    # -- loading ------------------------------------------------------

    async def start(self) -> GridSnapshot:
        """Load the first page (or window) of a fresh session."""
        if isinstance(self.loader, PagedRefillLoader):
            self.view.refresh()
        return await self.load()

    async def load(self, start: int = 0) -> GridSnapshot:
        """Settle the loader after a view change and snapshot its rows.

        In virtual mode the window at *start* is requested.  A failed
        load keeps the previous rows and reports the error instead.
        """
        loader = self.loader
        t0 = time.perf_counter()
        try:
            if isinstance(loader, WindowedLoader):
                await loader.request_window(start, self.view.page_size)
            else:
                await loader.wait_idle()
        except KendoGridError as exc:
            return self.fail(exc)

        rows = self.rows()
        elapsed_ms = (time.perf_counter() - t0) * 1000
        self.snapshot = GridSnapshot(
            rows=rows,
            total=loader.total,
            query=build_query_string(self.view.snapshot()),
            stats=f"loaded={len(rows):,} / {loader.total:,}  {elapsed_ms:.0f}ms  ({self.mode.value})",
        )
        return self.snapshot

    def fail(self, exc: Exception) -> GridSnapshot:
        """Report *exc* on top of the rows already shown."""
        logger.warning("remote grid %s: %s", self.url, exc)
        self.snapshot = self.snapshot.model_copy(update={"error": str(exc), "stats": f"Error: {exc}"})
        return self.snapshot

    def rows(self) -> list[dict[str, Any]]:
        """Loaded rows as grid rows with absolute row ids."""
        loader = self.loader
        if isinstance(loader, GroupAwareLoader) and self.view.is_grouped:
            return rows_with_ids(flatten_group_buckets(loader.groups, GROUP_FIELD))
        if isinstance(loader, WindowedLoader):
            return rows_with_ids(loader.window.contiguous_items(0))
        return rows_with_ids(loader.items, offset=loader.offset)

    async def aclose(self) -> None:
        aclose = getattr(self.fetcher, "aclose", None)
        if aclose is not None:
            await aclose()
