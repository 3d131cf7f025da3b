"""HTTP GET-JSON transport for the remote query endpoint.

The transport is constructed explicitly and injected into each loader
and resolver; there is no process-wide client configuration.  Anything
exposing an ``async fetch_json(url, params)`` coroutine satisfies
:class:`JsonFetcher`, which keeps loaders testable with in-memory fakes.
"""

import logging
import time
from collections.abc import Mapping
from typing import Any, Protocol

import httpx

from reflex_kendo_grid.errors import TransportFailure

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT: float = 10.0


class JsonFetcher(Protocol):
    async def fetch_json(
        self,
        url: str,
        params: Mapping[str, Any] | None = None,
    ) -> Any: ...


def append_path_segment(base_url: str, segment: str) -> str:
    """Append *segment* to the path of *base_url*, keeping its query string.

    Example:
        ``append_path_segment("http://host/api/orders", "GetDistinctValues")``
        -> ``"http://host/api/orders/GetDistinctValues"``
    """
    url = httpx.URL(base_url)
    path = url.path.rstrip("/") + "/" + segment.strip("/")
    return str(url.copy_with(path=path))


class HttpTransport:
    """Credential-aware JSON client backed by an ``httpx.AsyncClient``.

    Args:
        client: A ready client.  When given, the remaining options are
            ignored and the caller owns the client's lifetime.
        timeout: Request timeout in seconds.
        auth: Any ``httpx`` auth (``httpx.BasicAuth``, a ``(user,
            password)`` tuple, a custom ``httpx.Auth`` for NTLM/Kerberos).
        headers: Extra headers sent with every request.
        verify: TLS verification flag or CA bundle path.

    Usage::

        async with HttpTransport(auth=("user", "secret")) as transport:
            rows = await transport.fetch_json("https://host/api/orders", {"page": 1})
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        auth: httpx.Auth | tuple[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        verify: bool | str = True,
    ) -> None:
        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(
                timeout=timeout,
                auth=auth,
                headers={"Accept": "application/json", **(headers or {})},
                verify=verify,
            )
        self._client = client

    async def fetch_json(
        self,
        url: str,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """GET *url* and decode the JSON body.

        Raises:
            TransportFailure: On connection errors, timeouts, non-2xx
                responses and undecodable bodies.  No retry is attempted.
        """
        t0 = time.perf_counter()
        try:
            response = await self._client.get(url, params=dict(params) if params else None)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            logger.warning("GET %s failed: %s", url, exc)
            raise TransportFailure(url, str(exc)) from exc
        except ValueError as exc:
            logger.warning("GET %s returned a body that is not JSON", url)
            raise TransportFailure(url, f"invalid JSON body: {exc}") from exc
        logger.debug(
            "GET %s -> %s (%.1fms)",
            response.url,
            response.status_code,
            (time.perf_counter() - t0) * 1000,
        )
        return payload

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
