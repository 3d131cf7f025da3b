"""Serialize grid descriptors into the Kendo ``DataSourceRequest`` query grammar.

The remote endpoint accepts four query parameters (plus ``group`` when
grouping is active)::

    sort=<column>-<asc|desc>
    page=<1-based page>
    pageSize=<rows per page>
    filter=<clause>~and~<clause>...
    group=<column>-<asc|desc>~<column>-<asc|desc>...

Filter clauses follow::

    clause := simple
            | "(" simple "~" ("and" | "or") "~" simple ")"
            | "(" simple ("~or~" simple)* ")"
    simple := column "~" operator "~" "'" value "'"

Every function here is pure: the same descriptors always produce the same
string, in column iteration order.
"""

from collections.abc import Iterable, Iterator, Sequence
from typing import Any

import httpx
from pydantic_core import to_json

from reflex_kendo_grid.errors import UnsupportedOperatorError
from reflex_kendo_grid.models import (
    FilterNode,
    FilterOperator,
    GroupDescriptor,
    QueryState,
    SimpleFilter,
    SortState,
)

# Operators that map 1:1 onto a protocol token.
_DIRECT_TOKENS: dict[FilterOperator, str] = {
    FilterOperator.IS_LESS_THAN: "lt",
    FilterOperator.IS_LESS_THAN_OR_EQUAL_TO: "lte",
    FilterOperator.IS_EQUAL_TO: "eq",
    FilterOperator.IS_NOT_EQUAL_TO: "neq",
    FilterOperator.IS_GREATER_THAN_OR_EQUAL_TO: "gte",
    FilterOperator.IS_GREATER_THAN: "gt",
    FilterOperator.STARTS_WITH: "startswith",
    FilterOperator.ENDS_WITH: "endswith",
    FilterOperator.CONTAINS: "contains",
    FilterOperator.IS_CONTAINED_IN: "in",
}

# Operators whose UI position does not line up with the server enum.
_ALTERNATE_TOKENS: dict[FilterOperator, str] = {
    FilterOperator.DOES_NOT_CONTAIN: "doesnotcontain",
}

AND_JOINER: str = "~and~"
OR_JOINER: str = "~or~"


def operator_token(operator: FilterOperator | str) -> str:
    """Return the protocol token for a UI filter operator.

    Raises:
        UnsupportedOperatorError: If the operator has no token (e.g.
            ``IsNull``).  The clause is never dropped silently.
    """
    try:
        operator = FilterOperator(operator)
    except ValueError:
        raise UnsupportedOperatorError(operator) from None
    if operator in _DIRECT_TOKENS:
        return _DIRECT_TOKENS[operator]
    if operator in _ALTERNATE_TOKENS:
        return _ALTERNATE_TOKENS[operator]
    raise UnsupportedOperatorError(operator)


def operator_from_token(token: str) -> FilterOperator:
    """Return the UI operator a protocol token (``eq``, ``contains``...) stands for."""
    for table in (_DIRECT_TOKENS, _ALTERNATE_TOKENS):
        for operator, candidate in table.items():
            if candidate == token.lower():
                return operator
    raise UnsupportedOperatorError(token)


def format_value(value: Any) -> str:
    """Render a filter value as a quoted protocol literal.

    The value is JSON-encoded, its surrounding double quotes are removed
    and the result is wrapped in single quotes.  ``None`` renders as the
    bare ``null`` literal.  Embedded single quotes are passed through
    unchanged.

    Examples:
        ``"Open"`` -> ``'Open'``
        ``42`` -> ``'42'``
        ``True`` -> ``'true'``
        ``None`` -> ``null``
    """
    if value is None:
        return "null"
    text = to_json(value).decode("utf-8")
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        text = text[1:-1]
    return f"'{text}'"


def serialize_simple(column_id: str, clause: SimpleFilter) -> str:
    return f"{column_id}~{operator_token(clause.operator)}~{format_value(clause.value)}"


def _node_clauses(node: FilterNode) -> Iterator[str]:
    """Yield the top-level clauses contributed by one column filter."""
    column_id = node.column_id
    filter1 = node.filter1 if node.filter1 is not None and node.filter1.is_active else None
    filter2 = node.filter2 if node.filter2 is not None and node.filter2.is_active else None

    if filter1 is not None and filter2 is not None:
        logic = node.logical_operator.value.lower()
        yield (
            f"({serialize_simple(column_id, filter1)}"
            f"~{logic}~"
            f"{serialize_simple(column_id, filter2)})"
        )
    elif filter1 is not None:
        yield serialize_simple(column_id, filter1)
    elif filter2 is not None:
        yield serialize_simple(column_id, filter2)

    # Sibling clause, never merged into the field clause above.
    distinct = node.distinct_filter
    if distinct is not None and distinct.is_active:
        parts = [serialize_simple(column_id, clause) for clause in distinct.active_clauses]
        yield "(" + OR_JOINER.join(parts) + ")"


def serialize_filter(nodes: Iterable[FilterNode]) -> str:
    """Serialize every active column filter, joined with ``~and~``."""
    clauses: list[str] = []
    for node in nodes:
        clauses.extend(_node_clauses(node))
    return AND_JOINER.join(clauses)


def serialize_sort(sort: SortState | Sequence[SortState] | None) -> str:
    """Serialize the primary sort column, or ``""`` when unsorted.

    A stacked descriptor list is accepted; only its first entry is sent
    because the protocol carries a single sort token.
    """
    if sort is None:
        return ""
    if not isinstance(sort, SortState):
        sort = SortState.first_of(list(sort))
    if not sort.is_set:
        return ""
    return f"{sort.column_id}-{sort.direction.token}"


def serialize_group(groups: Iterable[GroupDescriptor]) -> str:
    """Serialize group levels as ``col-dir`` joined with ``~``.

    A level without a direction keeps the dash with an empty suffix.
    """
    parts: list[str] = []
    for group in groups:
        suffix = group.direction.token if group.direction is not None else ""
        parts.append(f"{group.column_id}-{suffix}")
    return "~".join(parts)


def build_query_params(state: QueryState) -> dict[str, str | int]:
    """Build the ordered query parameters for a paged query.

    ``sort`` and ``filter`` are always sent (empty when unset); ``group``
    is sent only when grouping is active.
    """
    params: dict[str, str | int] = {
        "sort": serialize_sort(state.sort),
        "page": state.page,
        "pageSize": state.page_size,
        "filter": serialize_filter(state.filters),
    }
    if state.is_grouped:
        params["group"] = serialize_group(state.groups)
    return params


def build_query_string(state: QueryState) -> str:
    """Render the raw, unencoded query string (for logs and display)."""
    return "&".join(f"{key}={value}" for key, value in build_query_params(state).items())


def build_url(base_url: str, state: QueryState) -> str:
    """Return the fully encoded request URL for *state*."""
    return str(httpx.URL(base_url).copy_merge_params(build_query_params(state)))
