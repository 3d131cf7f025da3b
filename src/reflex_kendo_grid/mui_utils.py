"""Translate MUI X DataGrid models into grid descriptors, and rows back.

The MUI DataGrid reports its state as plain JSON models::

    filterModel = {
        "items": [{"field": "status", "operator": "is", "value": "Open"}],
        "logicOperator": "and",
    }
    sortModel = [{"field": "created_at", "sort": "desc"}]
    rowGroupingModel = ["department"]

These helpers turn them into :class:`FilterNode` / :class:`SortState` /
:class:`GroupDescriptor` lists for the query serializer, and turn fetched
rows into the JSON-safe, id-carrying dicts the grid renders.
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import polars as pl
from pydantic_core import to_jsonable_python

from reflex_kendo_grid.errors import UnsupportedOperatorError
from reflex_kendo_grid.models import (
    DistinctFilter,
    FilterNode,
    FilterOperator,
    GroupDescriptor,
    LogicalOperator,
    SimpleFilter,
    SortDirection,
    SortState,
)

ROW_ID_FIELD: str = "__row_id__"

_MUI_OPERATORS: dict[str, FilterOperator] = {
    # string
    "contains": FilterOperator.CONTAINS,
    "doesNotContain": FilterOperator.DOES_NOT_CONTAIN,
    "equals": FilterOperator.IS_EQUAL_TO,
    "doesNotEqual": FilterOperator.IS_NOT_EQUAL_TO,
    "startsWith": FilterOperator.STARTS_WITH,
    "endsWith": FilterOperator.ENDS_WITH,
    # singleSelect / boolean
    "is": FilterOperator.IS_EQUAL_TO,
    "not": FilterOperator.IS_NOT_EQUAL_TO,
    # number
    "=": FilterOperator.IS_EQUAL_TO,
    "!=": FilterOperator.IS_NOT_EQUAL_TO,
    ">": FilterOperator.IS_GREATER_THAN,
    ">=": FilterOperator.IS_GREATER_THAN_OR_EQUAL_TO,
    "<": FilterOperator.IS_LESS_THAN,
    "<=": FilterOperator.IS_LESS_THAN_OR_EQUAL_TO,
    # date
    "after": FilterOperator.IS_GREATER_THAN,
    "onOrAfter": FilterOperator.IS_GREATER_THAN_OR_EQUAL_TO,
    "before": FilterOperator.IS_LESS_THAN,
    "onOrBefore": FilterOperator.IS_LESS_THAN_OR_EQUAL_TO,
    # valueless
    "isEmpty": FilterOperator.IS_EMPTY,
    "isNotEmpty": FilterOperator.IS_NOT_EMPTY,
}

_VALUELESS_OPERATORS: frozenset[str] = frozenset({"isEmpty", "isNotEmpty"})
_DISTINCT_OPERATOR: str = "isAnyOf"


def _has_value(item: Mapping[str, Any]) -> bool:
    operator = item.get("operator", "")
    if operator in _VALUELESS_OPERATORS:
        return True
    value = item.get("value")
    if operator == _DISTINCT_OPERATOR:
        return isinstance(value, list) and bool(value)
    return value is not None and value != ""


def mui_operator(operator: str) -> FilterOperator:
    """Map a MUI filter operator name onto :class:`FilterOperator`.

    Raises:
        UnsupportedOperatorError: For operators with no counterpart.
    """
    try:
        return _MUI_OPERATORS[operator]
    except KeyError:
        raise UnsupportedOperatorError(operator) from None


def filter_nodes_from_mui(filter_model: Mapping[str, Any] | None) -> list[FilterNode]:
    """Convert a MUI filter model into one :class:`FilterNode` per column.

    * Items without a value (the user is still typing) are skipped.
    * ``isAnyOf`` becomes the column's :class:`DistinctFilter`.
    * Two items on the same column become a composite clause combined
      by the model's ``logicOperator``.  Columns are always AND-combined
      with each other, as the query grammar has no cross-column OR.

    Raises:
        UnsupportedOperatorError: For an operator with no counterpart.
        ValueError: If a column carries more than two field clauses.
    """
    if not filter_model:
        return []
    items: list[dict[str, Any]] = list(filter_model.get("items") or [])
    logic = LogicalOperator(str(filter_model.get("logicOperator") or "and").lower())

    field_order: list[str] = []
    clauses: dict[str, list[SimpleFilter]] = {}
    distinct: dict[str, DistinctFilter] = {}

    for item in items:
        field = item.get("field")
        operator = item.get("operator")
        if not field or not operator or not _has_value(item):
            continue
        if field not in field_order:
            field_order.append(field)
        if operator == _DISTINCT_OPERATOR:
            distinct[field] = DistinctFilter.of(item["value"])
            continue
        value = None if operator in _VALUELESS_OPERATORS else item.get("value")
        clauses.setdefault(field, []).append(
            SimpleFilter(operator=mui_operator(operator), value=value)
        )

    nodes: list[FilterNode] = []
    for field in field_order:
        field_clauses = clauses.get(field, [])
        if len(field_clauses) > 2:
            raise ValueError(
                f"At most two filter clauses per column are supported; "
                f"{field!r} has {len(field_clauses)}"
            )
        nodes.append(
            FilterNode(
                column_id=field,
                filter1=field_clauses[0] if field_clauses else None,
                filter2=field_clauses[1] if len(field_clauses) > 1 else None,
                logical_operator=logic,
                distinct_filter=distinct.get(field),
            )
        )
    return nodes


def sort_state_from_mui(sort_model: Sequence[Mapping[str, Any]] | None) -> SortState:
    """Keep the primary entry of a MUI sort model."""
    descriptors: list[SortState] = []
    for entry in sort_model or []:
        field = entry.get("field")
        direction = entry.get("sort")
        if not field or direction not in ("asc", "desc"):
            continue
        descriptors.append(
            SortState(
                column_id=field,
                direction=SortDirection.DESCENDING if direction == "desc" else SortDirection.ASCENDING,
            )
        )
    return SortState.first_of(descriptors)


def groups_from_mui(grouping_model: Iterable[Any] | None) -> list[GroupDescriptor]:
    """Convert a row-grouping model (field names or ``{field, sort}`` dicts)."""
    groups: list[GroupDescriptor] = []
    for entry in grouping_model or []:
        if isinstance(entry, Mapping):
            field = entry.get("field")
            direction = SortDirection.DESCENDING if entry.get("sort") == "desc" else SortDirection.ASCENDING
        else:
            field, direction = entry, SortDirection.ASCENDING
        if field:
            groups.append(GroupDescriptor(column_id=str(field), direction=direction))
    return groups


def merge_filter_model(
    existing: Mapping[str, Any] | None,
    incoming: Mapping[str, Any],
) -> dict[str, Any]:
    """Merge an incoming MUI filter model into the accumulated one.

    MUI DataGrid Community only sends one filter item at a time, so each
    incoming item is upserted per ``field``:

    * Item **has a value** -> replace or add the filter for that field.
    * Item **has no value** and the field already has a filter -> keep
      the existing filter, following an operator change if there is one.
    * Item **has no value** and the field is new -> ignore.
    * Incoming items list is **empty** -> clear everything.

    Returns:
        The merged filter model, or ``{}`` if no filters remain.
    """
    incoming_items: list[dict[str, Any]] = list(incoming.get("items") or [])
    if not incoming_items:
        return {}

    by_field: dict[str, dict[str, Any]] = {}
    for item in (existing or {}).get("items") or []:
        if item.get("field"):
            by_field[item["field"]] = item

    for item in incoming_items:
        field = item.get("field")
        if not field:
            continue
        if _has_value(item):
            by_field[field] = item
        elif field in by_field:
            operator = item.get("operator", "")
            if operator and operator != by_field[field].get("operator"):
                by_field[field] = {**by_field[field], "operator": operator}

    if not by_field:
        return {}
    return {
        "items": list(by_field.values()),
        "logicOperator": incoming.get("logicOperator", "and"),
    }


def rows_to_frame(rows: Iterable[Any]) -> pl.DataFrame:
    """Build a DataFrame from fetched rows (dicts, pydantic models, dataclasses)."""
    records = [to_jsonable_python(row) for row in rows]
    if not records:
        return pl.DataFrame()
    if not isinstance(records[0], Mapping):
        records = [{"value": record} for record in records]
    return pl.from_dicts(records, infer_schema_length=None)


def frame_to_dicts(df: pl.DataFrame) -> list[dict[str, Any]]:
    """Convert a DataFrame to JSON-safe dicts.

    Temporal columns become ISO-8601 strings; list and struct columns are
    cast to strings.
    """
    exprs: list[pl.Expr] = []
    for name, dtype in df.schema.items():
        col = pl.col(name)
        if isinstance(dtype, (pl.Date, pl.Datetime, pl.Time, pl.Duration, pl.Struct)):
            exprs.append(col.cast(pl.String))
        elif isinstance(dtype, pl.List):
            exprs.append(col.cast(pl.List(pl.String)).list.join(","))
        else:
            exprs.append(col)
    if not exprs:
        return []
    return df.select(exprs).to_dicts()


def flatten_group_buckets(
    buckets: Iterable[Any],
    group_field: str = "__group__",
) -> list[dict[str, Any]]:
    """Flatten one level of group buckets into rows tagged with their key."""
    rows: list[dict[str, Any]] = []
    for bucket in buckets:
        key = to_jsonable_python(bucket.key)
        for item in bucket.items:
            record = to_jsonable_python(item)
            if not isinstance(record, Mapping):
                record = {"value": record}
            rows.append({group_field: key, **record})
    return rows


def rows_with_ids(
    rows: Iterable[Any],
    offset: int = 0,
    id_field: str = ROW_ID_FIELD,
) -> list[dict[str, Any]]:
    """Turn fetched rows into grid rows with a stable global row id.

    The id is the row's absolute index in the filtered and sorted result
    (``offset`` + position), so it stays unique across loaded pages.
    """
    df = rows_to_frame(rows)
    if df.width == 0:
        return []
    return frame_to_dicts(df.with_row_index(id_field, offset=offset))
