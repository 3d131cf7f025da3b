"""CLI for reflex-kendo-grid -- query a Kendo-style grid endpoint from the shell.

Usage::

    # Print the request URL for a query (no network)
    reflex-kendo-grid url https://host/api/orders --filter Status:eq:Open --sort CreatedAt:desc

    # Fetch one page and print it as a table
    reflex-kendo-grid fetch https://host/api/orders --page 2 --page-size 25

    # List the distinct values of a column under a filter
    reflex-kendo-grid distinct https://host/api/orders Region --filter Status:eq:Open

    # Browse the endpoint in an interactive grid
    reflex-kendo-grid view https://host/api/orders --schema orders.json

Filters are ``column:token:value`` where ``token`` is one of the protocol
operators (``eq``, ``neq``, ``lt``, ``lte``, ``gt``, ``gte``,
``contains``, ``doesnotcontain``, ``startswith``, ``endswith``, ``in``).
Giving the same column twice combines both clauses with ``and``.
"""

import asyncio
import json
import logging
import os
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Annotated, Any, Optional

import httpx
import polars as pl
import typer

from reflex_kendo_grid.distinct import DistinctValuesResolver
from reflex_kendo_grid.errors import KendoGridError
from reflex_kendo_grid.loaders import GroupAwareLoader
from reflex_kendo_grid.models import (
    DEFAULT_PAGE_SIZE,
    ColumnMeta,
    FilterNode,
    GroupDescriptor,
    SimpleFilter,
    SortDirection,
    SortState,
)
from reflex_kendo_grid.mui_utils import rows_to_frame
from reflex_kendo_grid.serializer import build_query_string, build_url, operator_from_token
from reflex_kendo_grid.transport import DEFAULT_TIMEOUT, HttpTransport
from reflex_kendo_grid.view import GridView

app = typer.Typer(
    name="reflex-kendo-grid",
    help="Query and browse paged grid endpoints that speak the Kendo DataSourceRequest protocol.",
    no_args_is_help=True,
)

# ---------------------------------------------------------------------------
# Shared options
# ---------------------------------------------------------------------------

UrlArg = Annotated[str, typer.Argument(envvar="KENDO_GRID_URL", help="Resource URL of the grid endpoint")]
FilterOpt = Annotated[
    Optional[list[str]],
    typer.Option("--filter", "-f", help="Filter clause as column:token:value (repeatable)"),
]
SortOpt = Annotated[Optional[str], typer.Option("--sort", "-s", help="Sort as column[:asc|desc]")]
GroupOpt = Annotated[
    Optional[list[str]],
    typer.Option("--group", "-g", help="Group level as column[:asc|desc] (repeatable)"),
]
PageOpt = Annotated[int, typer.Option("--page", "-p", min=1, help="1-based page number")]
PageSizeOpt = Annotated[int, typer.Option("--page-size", "-n", min=1, help="Rows per page")]
UserOpt = Annotated[Optional[str], typer.Option("--user", envvar="KENDO_GRID_USER", help="Basic auth user")]
PasswordOpt = Annotated[
    Optional[str],
    typer.Option("--password", envvar="KENDO_GRID_PASSWORD", help="Basic auth password"),
]
TimeoutOpt = Annotated[
    float,
    typer.Option("--timeout", envvar="KENDO_GRID_TIMEOUT", help="Request timeout in seconds"),
]
VerboseOpt = Annotated[bool, typer.Option("--verbose", "-v", help="Log queries and timings")]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _split_direction(spec: str) -> tuple[str, SortDirection]:
    column, _, direction = spec.partition(":")
    direction = direction.lower() or "asc"
    if direction not in ("asc", "desc"):
        raise typer.BadParameter(f"direction must be asc or desc, got {direction!r}")
    return column, SortDirection.DESCENDING if direction == "desc" else SortDirection.ASCENDING


def parse_filters(specs: list[str] | None) -> list[FilterNode]:
    """Parse ``column:token:value`` options into one node per column."""
    clauses: dict[str, list[SimpleFilter]] = {}
    for spec in specs or []:
        parts = spec.split(":", 2)
        if len(parts) != 3 or not parts[0]:
            raise typer.BadParameter(f"expected column:token:value, got {spec!r}")
        column, token, value = parts
        try:
            operator = operator_from_token(token)
        except KendoGridError as exc:
            raise typer.BadParameter(str(exc)) from exc
        clauses.setdefault(column, []).append(SimpleFilter(operator=operator, value=value))

    nodes: list[FilterNode] = []
    for column, column_clauses in clauses.items():
        if len(column_clauses) > 2:
            raise typer.BadParameter(f"at most two clauses per column, got {len(column_clauses)} for {column!r}")
        nodes.append(
            FilterNode(
                column_id=column,
                filter1=column_clauses[0],
                filter2=column_clauses[1] if len(column_clauses) > 1 else None,
            )
        )
    return nodes


def build_view(
    filters: list[str] | None = None,
    sort: str | None = None,
    groups: list[str] | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> GridView:
    """Build a :class:`GridView` from command-line options."""
    view = GridView(page_size)
    view.set_filters(parse_filters(filters))
    if sort:
        column, direction = _split_direction(sort)
        view.set_sort(SortState(column_id=column, direction=direction))
    if groups:
        levels = [_split_direction(group) for group in groups]
        view.set_groups(GroupDescriptor(column_id=column, direction=direction) for column, direction in levels)
    view.move_to_page(page - 1)
    return view


def make_transport(
    timeout: float = DEFAULT_TIMEOUT,
    user: str | None = None,
    password: str | None = None,
) -> HttpTransport:
    """Create the HTTP transport used by the network commands."""
    auth = httpx.BasicAuth(user, password or "") if user else None
    return HttpTransport(timeout=timeout, auth=auth)


def _fail(exc: Exception) -> None:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def url(
    base_url: UrlArg,
    filter: FilterOpt = None,
    sort: SortOpt = None,
    group: GroupOpt = None,
    page: PageOpt = 1,
    page_size: PageSizeOpt = DEFAULT_PAGE_SIZE,
    raw: Annotated[bool, typer.Option("--raw", help="Print the unencoded query string")] = False,
) -> None:
    """Print the request URL for a query without sending it."""
    view = build_view(filter, sort, group, page, page_size)
    state = view.snapshot()
    try:
        text = build_query_string(state) if raw else build_url(base_url, state)
    except KendoGridError as exc:
        _fail(exc)
    typer.echo(text)


async def _fetch_page(
    base_url: str,
    view: GridView,
    transport: HttpTransport,
) -> GroupAwareLoader:
    async with transport:
        loader = GroupAwareLoader(base_url, transport, view)
        await loader.refresh()
    return loader


@app.command()
def fetch(
    base_url: UrlArg,
    filter: FilterOpt = None,
    sort: SortOpt = None,
    group: GroupOpt = None,
    page: PageOpt = 1,
    page_size: PageSizeOpt = DEFAULT_PAGE_SIZE,
    user: UserOpt = None,
    password: PasswordOpt = None,
    timeout: TimeoutOpt = DEFAULT_TIMEOUT,
    as_json: Annotated[bool, typer.Option("--json", help="Print rows as JSON instead of a table")] = False,
    verbose: VerboseOpt = False,
) -> None:
    """Fetch one page and print it."""
    _configure_logging(verbose)
    view = build_view(filter, sort, group, page, page_size)
    transport = make_transport(timeout, user, password)
    try:
        loader = asyncio.run(_fetch_page(base_url, view, transport))
    except KendoGridError as exc:
        _fail(exc)

    if view.is_grouped:
        frame = pl.DataFrame(
            {
                "key": [str(bucket.key) for bucket in loader.groups],
                "item_count": [bucket.item_count for bucket in loader.groups],
            }
        )
        typer.echo(frame)
        return

    rows = loader.items
    if as_json:
        typer.echo(json.dumps(rows_to_frame(rows).to_dicts(), default=str, indent=2))
    else:
        with pl.Config(tbl_rows=page_size):
            typer.echo(rows_to_frame(rows))
    typer.echo(f"page {view.page_index + 1}: {len(rows)} of {loader.total:,} rows")


async def _fetch_distinct(
    base_url: str,
    column: str,
    view: GridView,
    transport: HttpTransport,
    nullable: bool,
) -> list[Any]:
    async with transport:
        resolver = DistinctValuesResolver(base_url, transport)
        return await resolver.resolve(ColumnMeta(column_id=column, nullable=nullable), view.filters)


@app.command()
def distinct(
    base_url: UrlArg,
    column: Annotated[str, typer.Argument(help="Column to list values for")],
    filter: FilterOpt = None,
    nullable: Annotated[bool, typer.Option("--nullable", help="List null as a value")] = False,
    user: UserOpt = None,
    password: PasswordOpt = None,
    timeout: TimeoutOpt = DEFAULT_TIMEOUT,
    verbose: VerboseOpt = False,
) -> None:
    """Print the distinct values of a column under the given filters."""
    _configure_logging(verbose)
    view = build_view(filter)
    transport = make_transport(timeout, user, password)
    try:
        values = asyncio.run(_fetch_distinct(base_url, column, view, transport, nullable))
    except KendoGridError as exc:
        _fail(exc)
    for value in values:
        typer.echo("null" if value is None else value)


# ---------------------------------------------------------------------------
# Viewer app
# ---------------------------------------------------------------------------

_DTYPES: dict[str, pl.DataType] = {
    "string": pl.String(),
    "str": pl.String(),
    "int": pl.Int64(),
    "integer": pl.Int64(),
    "float": pl.Float64(),
    "number": pl.Float64(),
    "bool": pl.Boolean(),
    "boolean": pl.Boolean(),
    "date": pl.Date(),
    "datetime": pl.Datetime(),
}


def load_schema(path: Path) -> tuple[dict[str, pl.DataType], list[str]]:
    """Read a ``{column: type}`` JSON schema file.

    A type is a name (``string``, ``int``, ``float``, ``bool``, ``date``,
    ``datetime``), a list of enum categories, or either one with a
    trailing ``?`` / inside ``{"type": ..., "nullable": true}`` to mark a
    nullable column.
    """
    raw: dict[str, Any] = json.loads(path.read_text())
    schema: dict[str, pl.DataType] = {}
    nullable: list[str] = []
    for column, spec in raw.items():
        if isinstance(spec, dict):
            if spec.get("nullable"):
                nullable.append(column)
            spec = spec.get("type", "string")
        if isinstance(spec, list):
            schema[column] = pl.Enum([str(value) for value in spec])
            continue
        name = str(spec).lower()
        if name.endswith("?"):
            nullable.append(column)
            name = name[:-1]
        if name not in _DTYPES:
            raise typer.BadParameter(f"unknown type {spec!r} for column {column!r}")
        schema[column] = _DTYPES[name]
    return schema, nullable


def _build_app_code(
    base_url: str,
    schema_path: Path,
    mode: str,
    page_size: int,
    height: str,
    title: str,
) -> str:
    """Generate the Reflex app module source code."""
    template = _APP_TEMPLATE
    template = template.replace("__URL__", json.dumps(base_url))
    template = template.replace("__SCHEMA_PATH__", json.dumps(str(schema_path.resolve())))
    template = template.replace("__MODE__", json.dumps(mode))
    template = template.replace("__PAGE_SIZE__", str(page_size))
    template = template.replace("__TITLE__", json.dumps(title))
    template = template.replace("__HEIGHT__", json.dumps(height))
    return template


# ---------------------------------------------------------------------------
# App template -- uses __PLACEHOLDER__ tokens for dynamic parts.
# ---------------------------------------------------------------------------

_APP_TEMPLATE = '''"""Auto-generated viewer app for a remote grid endpoint."""

import os
from pathlib import Path

import reflex as rx

from reflex_kendo_grid import (
    RemoteGridMixin,
    remote_grid,
    remote_grid_detail_box,
    remote_grid_stats_bar,
)
from reflex_kendo_grid.cli import load_schema


class ViewerState(RemoteGridMixin, rx.State):
    """Viewer state backed by the remote endpoint."""

    async def load_data(self):
        schema, nullable = load_schema(Path(__SCHEMA_PATH__))
        user = os.environ.get("KENDO_GRID_USER")
        auth = (user, os.environ.get("KENDO_GRID_PASSWORD", "")) if user else None
        async for update in self.set_remote_source(
            __URL__,
            schema,
            mode=__MODE__,
            page_size=__PAGE_SIZE__,
            nullable_columns=nullable,
            auth=auth,
        ):
            yield update


def index() -> rx.Component:
    return rx.box(
        rx.heading(__TITLE__, size="6", margin_bottom="0.5em"),
        rx.cond(
            ViewerState.rg_loaded,
            rx.fragment(
                remote_grid_stats_bar(ViewerState),
                remote_grid(ViewerState, height=__HEIGHT__),
            ),
            rx.text("Loading...", color="var(--gray-9)"),
        ),
        remote_grid_detail_box(ViewerState),
        padding="2em",
        max_width="1400px",
        margin="0 auto",
    )


app = rx.App()
app.add_page(index, on_load=ViewerState.load_data)
'''


@app.command()
def view(
    base_url: UrlArg,
    schema: Annotated[Path, typer.Option("--schema", help="JSON file mapping columns to types")],
    mode: Annotated[str, typer.Option("--mode", "-m", help="virtual, paged or grouped")] = "virtual",
    page_size: Annotated[int, typer.Option("--page-size", "-n", min=1, help="Rows per page or scroll chunk")] = 100,
    height: Annotated[str, typer.Option("--height", help="CSS height of the grid")] = "calc(100vh - 200px)",
    port: Annotated[int, typer.Option("--port", help="Port for the Reflex frontend")] = 3000,
    title: Annotated[Optional[str], typer.Option("--title", "-t", help="Page title")] = None,
) -> None:
    """Browse the endpoint in an interactive browser grid.

    Requires the [ui] extra.  Credentials are read from
    ``KENDO_GRID_USER`` / ``KENDO_GRID_PASSWORD``.
    """
    schema = schema.resolve()
    if not schema.exists():
        typer.echo(f"Error: schema file not found: {schema}", err=True)
        raise typer.Exit(code=1)
    if mode not in ("virtual", "paged", "grouped"):
        typer.echo(f"Error: unknown mode {mode!r}", err=True)
        raise typer.Exit(code=1)
    load_schema(schema)

    try:
        import reflex  # noqa: F401
        import reflex_mui_datagrid  # noqa: F401
    except ImportError:
        typer.echo(
            "Error: the viewer requires the [ui] extra.\n"
            'Install it with: uv add "reflex-kendo-grid[ui]"',
            err=True,
        )
        raise typer.Exit(code=1)

    if title is None:
        title = f"{base_url} -- Remote Grid Viewer"

    app_code = _build_app_code(base_url, schema, mode, page_size, height, title)

    # Create a temporary Reflex app directory.
    tmp_dir = Path(tempfile.mkdtemp(prefix="kendo_grid_viewer_"))
    app_name = "viewer_app"
    app_pkg = tmp_dir / app_name
    app_pkg.mkdir()
    (app_pkg / "__init__.py").write_text("")
    (app_pkg / f"{app_name}.py").write_text(app_code)

    rxconfig_code = f"""import reflex as rx
config = rx.Config(app_name="{app_name}", frontend_port={port})
"""
    (tmp_dir / "rxconfig.py").write_text(rxconfig_code)

    typer.echo(f"Launching viewer for: {base_url}")
    typer.echo(f"Mode: {mode} | Page size: {page_size} | Port: {port}")

    os.chdir(tmp_dir)

    # reflex's CLI calls sys.exit() on completion, so init runs in a subprocess.
    typer.echo("Initializing Reflex project...")
    subprocess.run(
        [sys.executable, "-m", "reflex", "init"],
        cwd=str(tmp_dir),
        check=True,
    )

    typer.echo("Starting viewer...")
    os.execvp(sys.executable, [sys.executable, "-m", "reflex", "run"])


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
