"""Distinct values offered in a column's filter list.

Enumerations and booleans are answered locally from the column's declared
type; every other column asks the server::

    GET <base>/GetDistinctValues?columnName=<col>&filter=<current filter>

The full current filter is sent, including the column's own clauses, so
a column filtered on itself lists only the values its own filter lets
through.
"""

import enum
import logging
import types
import typing
from collections.abc import Iterable, Mapping
from typing import Any

import polars as pl

from reflex_kendo_grid.errors import TransportFailure
from reflex_kendo_grid.models import ColumnMeta, FilterNode
from reflex_kendo_grid.serializer import serialize_filter
from reflex_kendo_grid.transport import JsonFetcher, append_path_segment

logger = logging.getLogger(__name__)

DISTINCT_VALUES_ENDPOINT: str = "GetDistinctValues"


def _unwrap_optional(dtype: Any) -> tuple[Any, bool]:
    """Split ``X | None`` / ``Optional[X]`` into ``(X, True)``."""
    origin = typing.get_origin(dtype)
    if origin is typing.Union or origin is types.UnionType:
        args = [arg for arg in typing.get_args(dtype) if arg is not type(None)]
        if len(args) == 1:
            return args[0], True
    return dtype, False


def _is_boolean(dtype: Any) -> bool:
    if dtype is bool:
        return True
    if isinstance(dtype, type):
        return issubclass(dtype, pl.Boolean)
    return isinstance(dtype, pl.Boolean)


def static_values(column: ColumnMeta) -> list[Any] | None:
    """Return the column's value list when it is known without a query.

    * polars ``Enum`` with categories -> the categories
    * Python ``enum.Enum`` subclass -> its members
    * boolean -> ``[True, False]``

    ``None`` is prepended for nullable columns.  Returns ``None`` when
    the values must be fetched.
    """
    dtype, nullable = _unwrap_optional(column.dtype)
    nullable = nullable or column.nullable

    values: list[Any] | None = None
    if isinstance(dtype, pl.Enum):
        values = dtype.categories.to_list()
    elif isinstance(dtype, type) and issubclass(dtype, enum.Enum):
        values = list(dtype)
    elif _is_boolean(dtype):
        values = [True, False]

    if values is None:
        return None
    if nullable:
        values = [None, *values]
    return values


def column_metas_from_schema(
    schema: pl.Schema | Mapping[str, pl.DataType],
    nullable_columns: Iterable[str] = (),
) -> dict[str, ColumnMeta]:
    """Build :class:`ColumnMeta` entries from a polars schema.

    Polars types carry no nullability, so nullable columns are listed
    explicitly in *nullable_columns*.
    """
    nullable = set(nullable_columns)
    return {
        name: ColumnMeta(column_id=name, dtype=dtype, nullable=name in nullable)
        for name, dtype in schema.items()
    }


class DistinctValuesResolver:
    """Decide and produce the distinct-value list for a column.

    Args:
        base_url: The resource URL of the paged query endpoint.
        fetcher: Injected JSON transport.
        endpoint: Path segment of the distinct-values action.
    """

    def __init__(
        self,
        base_url: str,
        fetcher: JsonFetcher,
        *,
        endpoint: str = DISTINCT_VALUES_ENDPOINT,
    ) -> None:
        self.base_url = base_url
        self.fetcher = fetcher
        self.url = append_path_segment(base_url, endpoint)

    async def resolve(
        self,
        column: ColumnMeta,
        filters: Iterable[FilterNode] = (),
    ) -> list[Any]:
        """Return the distinct values of *column* under the current *filters*.

        Raises:
            TransportFailure: If the remote request fails or does not
                return a JSON array.
            UnsupportedOperatorError: If the current filter cannot be
                serialized.
        """
        values = static_values(column)
        if values is not None:
            logger.debug("distinct values for %r resolved locally (%d)", column.column_id, len(values))
            return values

        params = {"columnName": column.column_id, "filter": serialize_filter(filters)}
        payload = await self.fetcher.fetch_json(self.url, params)
        if not isinstance(payload, list):
            raise TransportFailure(
                self.url,
                f"expected a JSON array of values, got {type(payload).__name__}",
            )
        _, nullable = _unwrap_optional(column.dtype)
        if nullable or column.nullable:
            payload = [None, *(value for value in payload if value is not None)]
        logger.debug("distinct values for %r fetched (%d)", column.column_id, len(payload))
        return payload
