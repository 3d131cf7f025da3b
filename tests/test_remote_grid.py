"""Tests for the Reflex binding helpers (needs the [ui] extra)."""

import asyncio
import importlib

import polars as pl
import pytest

from conftest import URL, FakeFetcher
from reflex_kendo_grid.session import GridSession

pytest.importorskip("reflex")
pytest.importorskip("reflex_mui_datagrid")

# The package re-exports the remote_grid() function under the module's name.
remote_grid = importlib.import_module("reflex_kendo_grid.remote_grid")

SCHEMA = {"Id": pl.Int64, "Name": pl.String}


class ClosingFetcher(FakeFetcher):
    def __init__(self) -> None:
        super().__init__(lambda url, params: {"Data": [], "Total": 0})
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def empty_registry(monkeypatch):
    monkeypatch.setattr(remote_grid, "_session_registry", {})


def test_replacing_a_session_closes_the_previous_one():
    first = GridSession(URL, ClosingFetcher(), SCHEMA, mode="paged")
    second = GridSession(URL, ClosingFetcher(), SCHEMA, mode="paged")

    asyncio.run(remote_grid._replace_session("OrdersState", first))
    asyncio.run(remote_grid._replace_session("OrdersState", second))

    assert remote_grid._get_session("OrdersState") is second
    assert first.fetcher.closed
    assert not second.fetcher.closed


def test_sessions_are_kept_per_state_class():
    orders = GridSession(URL, ClosingFetcher(), SCHEMA)
    asyncio.run(remote_grid._replace_session("OrdersState", orders))
    assert remote_grid._get_session("OrdersState") is orders
    assert remote_grid._get_session("OtherState") is None
