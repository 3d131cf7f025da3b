"""Shared fakes for loader, resolver and CLI tests."""

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

import pytest

URL = "http://grid.test/api/orders"

Responder = Callable[[str, dict[str, Any]], Any]


class FakeFetcher:
    """In-memory :class:`~reflex_kendo_grid.transport.JsonFetcher`.

    *responder* receives ``(url, params)`` and returns the decoded body;
    returning an exception instance raises it instead.
    """

    def __init__(self, responder: Responder) -> None:
        self.responder = responder
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def fetch_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any:
        params = dict(params or {})
        self.calls.append((url, params))
        body = self.responder(url, params)
        if isinstance(body, Exception):
            raise body
        return body


class GatedFetcher:
    """Serves ``bodies[i]`` for the i-th call, once the test releases it."""

    def __init__(self, bodies: list[Any]) -> None:
        self.bodies = bodies
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.gates: list[asyncio.Event] = []

    async def fetch_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any:
        index = len(self.calls)
        self.calls.append((url, dict(params or {})))
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        body = self.bodies[index]
        if isinstance(body, Exception):
            raise body
        return body

    async def wait_for_calls(self, count: int) -> None:
        while len(self.calls) < count:
            await asyncio.sleep(0)

    def release(self, index: int) -> None:
        self.gates[index].set()


def table_responder(rows: list[dict[str, Any]], total: int | None = None) -> Responder:
    """Serve *rows* page by page, like a real paged endpoint."""

    def respond(url: str, params: dict[str, Any]) -> dict[str, Any]:
        page = int(params.get("page", 1))
        size = int(params.get("pageSize", len(rows) or 1))
        start = (page - 1) * size
        return {
            "Data": rows[start:start + size],
            "Total": len(rows) if total is None else total,
            "AggregateResults": None,
            "Errors": None,
        }

    return respond


def make_rows(count: int, prefix: str = "row") -> list[dict[str, Any]]:
    return [{"Id": index, "Name": f"{prefix}-{index}"} for index in range(count)]


@pytest.fixture
def rows() -> list[dict[str, Any]]:
    return make_rows(25)


@pytest.fixture
def fetcher(rows: list[dict[str, Any]]) -> FakeFetcher:
    return FakeFetcher(table_responder(rows))
