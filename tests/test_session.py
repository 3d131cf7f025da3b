"""Tests for the grid session behind the Reflex mixin."""

import asyncio

import polars as pl
import pytest

from conftest import URL, FakeFetcher, make_rows
from reflex_kendo_grid.errors import TransportFailure, UnsupportedOperatorError
from reflex_kendo_grid.mui_utils import ROW_ID_FIELD
from reflex_kendo_grid.session import GROUP_FIELD, GridSession, with_value_options

SCHEMA = {
    "Id": pl.Int64,
    "Name": pl.String,
    "Status": pl.Enum(["Open", "Closed"]),
    "Region": pl.String,
    "Paid": pl.Boolean,
}

OPEN = {"items": [{"field": "Status", "operator": "is", "value": "Open"}]}
NAME_IS_EMPTY = {"items": [{"field": "Name", "operator": "isEmpty", "value": None}]}


def paged(fetcher, page_size=10) -> GridSession:
    return GridSession(URL, fetcher, SCHEMA, mode="paged", page_size=page_size)


def row_ids(snapshot) -> list[int]:
    return [row[ROW_ID_FIELD] for row in snapshot.rows]


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def test_start_loads_first_page(fetcher):
    session = paged(fetcher)
    snapshot = asyncio.run(session.start())
    assert snapshot.total == 25
    assert row_ids(snapshot) == list(range(10))
    assert snapshot.rows[0]["Name"] == "row-0"
    assert snapshot.query == "sort=&page=1&pageSize=10&filter="
    assert snapshot.error == ""
    assert len(fetcher.calls) == 1


def test_failed_load_keeps_rows_and_reports_error(rows):
    responses = iter([{"Data": rows[:10], "Total": 25}, TransportFailure(URL, "down")])
    session = paged(FakeFetcher(lambda url, params: next(responses)))

    async def scenario():
        loaded = await session.start()
        session.apply_sort([{"field": "Id", "sort": "desc"}])
        failed = await session.load()
        return loaded, failed

    loaded, failed = asyncio.run(scenario())
    assert failed.rows == loaded.rows
    assert failed.total == 25
    assert "down" in failed.error
    assert failed.stats.startswith("Error:")


def test_next_success_clears_error(rows):
    responses = iter(
        [{"Data": rows[:10], "Total": 25}, TransportFailure(URL, "down"), {"Data": rows[:10], "Total": 25}]
    )
    session = paged(FakeFetcher(lambda url, params: next(responses)))

    async def scenario():
        await session.start()
        session.view.refresh()
        await session.load()
        session.view.refresh()
        return await session.load()

    assert asyncio.run(scenario()).error == ""


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

def test_filter_change_returns_to_first_page(fetcher):
    session = paged(fetcher)

    async def scenario():
        await session.start()
        session.apply_pagination({"page": 1, "pageSize": 10})
        await session.load()
        fields = session.apply_filter_model(OPEN)
        return fields, await session.load()

    fields, snapshot = asyncio.run(scenario())
    assert fields == ["Status"]
    assert session.pagination_model == {"page": 0, "pageSize": 10}
    assert fetcher.calls[-1][1]["filter"] == "Status~eq~'Open'"
    assert fetcher.calls[-1][1]["page"] == 1
    assert snapshot.query.endswith("filter=Status~eq~'Open'")


def test_unsupported_filter_leaves_previous_filter_in_force(fetcher):
    session = paged(fetcher)

    async def scenario():
        await session.start()
        session.apply_filter_model(OPEN)
        await session.load()
        with pytest.raises(UnsupportedOperatorError):
            session.apply_filter_model(NAME_IS_EMPTY)
        session.apply_sort([{"field": "Name", "sort": "desc"}])
        return await session.load()

    snapshot = asyncio.run(scenario())
    assert snapshot.error == ""
    assert [item["field"] for item in session.filter_model["items"]] == ["Status"]
    assert [node.column_id for node in session.view.filters] == ["Status"]
    assert len(fetcher.calls) == 3
    assert fetcher.calls[-1][1]["sort"] == "Name-desc"
    assert fetcher.calls[-1][1]["filter"] == "Status~eq~'Open'"


def test_rejected_filter_is_reported_on_current_rows(fetcher):
    session = paged(fetcher)

    async def scenario():
        loaded = await session.start()
        try:
            session.apply_filter_model(NAME_IS_EMPTY)
        except UnsupportedOperatorError as exc:
            return loaded, session.fail(exc)

    loaded, failed = asyncio.run(scenario())
    assert failed.rows == loaded.rows
    assert "IsEmpty" in failed.error
    assert len(fetcher.calls) == 1


def test_clear_filters(fetcher):
    session = paged(fetcher)

    async def scenario():
        await session.start()
        session.apply_filter_model(OPEN)
        await session.load()
        session.clear_filters()
        await session.load()

    asyncio.run(scenario())
    assert session.filter_model == {}
    assert session.view.filters == ()
    assert fetcher.calls[-1][1]["filter"] == ""


# ---------------------------------------------------------------------------
# Paging and scrolling
# ---------------------------------------------------------------------------

def test_page_size_change_returns_to_first_page(fetcher):
    session = paged(fetcher)

    async def scenario():
        await session.start()
        moved = session.apply_pagination({"page": 2, "pageSize": 10})
        await session.load()
        resized = session.apply_pagination({"page": 2, "pageSize": 5})
        return moved, resized, await session.load()

    moved, resized, snapshot = asyncio.run(scenario())
    assert moved == {"page": 2, "pageSize": 10}
    assert resized == {"page": 0, "pageSize": 5}
    assert row_ids(snapshot) == [0, 1, 2, 3, 4]
    assert snapshot.rows[0]["Name"] == "row-0"
    assert fetcher.calls[-1][1]["page"] == 1
    assert fetcher.calls[-1][1]["pageSize"] == 5


def test_negative_page_is_rejected(fetcher):
    session = paged(fetcher)
    with pytest.raises(ValueError):
        session.apply_pagination({"page": -1, "pageSize": 10})
    assert session.pagination_model == {"page": 0, "pageSize": 10}


def test_scroll_requests_window_after_contiguous_rows(fetcher):
    session = GridSession(URL, fetcher, SCHEMA, mode="virtual", page_size=10)

    async def scenario():
        offsets = []
        snapshot = await session.start()
        offset = session.next_window_offset()
        while offset is not None:
            offsets.append(offset)
            snapshot = await session.load(offset)
            offset = session.next_window_offset()
        return offsets, snapshot

    offsets, snapshot = asyncio.run(scenario())
    assert offsets == [10, 20]
    assert row_ids(snapshot) == list(range(25))
    assert [params["page"] for _, params in fetcher.calls] == [1, 2, 3]


def test_paged_session_has_no_scroll_window(fetcher):
    session = paged(fetcher)
    assert not session.is_virtual
    assert session.next_window_offset() is None


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------

def grouped_responder(url, params):
    if params.get("group"):
        return {
            "Data": [
                {"Key": "North", "Items": [{"Id": 1}], "HasSubgroups": False},
                {"Key": "South", "Items": [{"Id": 2}, {"Id": 3}], "HasSubgroups": False},
            ],
            "Total": 3,
        }
    return {"Data": make_rows(3), "Total": 3}


def test_grouped_rows_are_tagged_with_their_bucket():
    fetcher = FakeFetcher(grouped_responder)
    session = GridSession(URL, fetcher, SCHEMA, mode="grouped", page_size=10)

    async def scenario():
        await session.start()
        session.apply_groups(["Region"])
        return await session.load()

    snapshot = asyncio.run(scenario())
    assert [(row[GROUP_FIELD], row["Id"]) for row in snapshot.rows] == [
        ("North", 1),
        ("South", 2),
        ("South", 3),
    ]
    assert row_ids(snapshot) == [0, 1, 2]
    assert fetcher.calls[-1][1]["group"] == "Region-asc"


def test_grouping_needs_grouped_mode(fetcher):
    session = paged(fetcher)
    with pytest.raises(ValueError):
        session.apply_groups(["Region"])
    assert session.view.groups == ()


# ---------------------------------------------------------------------------
# Value options
# ---------------------------------------------------------------------------

def test_value_options_map_lists_enum_categories(fetcher):
    assert paged(fetcher).value_options_map() == {"Status": ["Open", "Closed"]}


def test_value_options_fetch_remote_distinct_values():
    fetcher = FakeFetcher(lambda url, params: ["North", "South"])
    session = paged(fetcher)
    session.col_defs = [
        {"field": "Region", "type": "string"},
        {"field": "Paid", "type": "boolean"},
    ]

    col_defs = asyncio.run(session.value_options("Region"))
    assert col_defs[0] == {"field": "Region", "type": "singleSelect", "valueOptions": ["North", "South"]}
    assert session.col_defs == col_defs
    assert fetcher.calls[0][1]["columnName"] == "Region"
    assert asyncio.run(session.value_options("Missing")) is None


def test_with_value_options_turns_column_into_single_select():
    col_defs = [
        {"field": "Region", "type": "string"},
        {"field": "Paid", "type": "boolean"},
        {"field": "Id", "type": "number"},
    ]
    updated = with_value_options(col_defs, "Region", [None, "North", "South"])
    assert updated[0] == {"field": "Region", "type": "singleSelect", "valueOptions": ["North", "South"]}
    assert with_value_options(col_defs, "Paid", [True, False])[1] == col_defs[1]
    assert col_defs[0]["type"] == "string"
