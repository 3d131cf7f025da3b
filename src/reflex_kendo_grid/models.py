"""Pydantic models for grid descriptors, query snapshots and server results.

Descriptor models (filters, sort, groups) mirror what the grid control
keeps in its filter/sort/group collections.  They are frozen: a
:class:`QueryState` built from them is an immutable snapshot of the grid
at the moment a fetch is issued.

Result models parse the JSON envelope returned by a Kendo-style
``DataSourceRequest`` endpoint::

    {"Data": [...], "Total": 42, "AggregateResults": [...], "Errors": null}

ASP.NET Core serializers may emit camelCase keys instead; both spellings
are accepted.
"""

from collections.abc import Iterable, Mapping, Sequence
from enum import Enum
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_pascal

DEFAULT_PAGE_SIZE: int = 10


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class FilterOperator(str, Enum):
    """Filter operators offered by the grid's column filter UI."""

    IS_LESS_THAN = "IsLessThan"
    IS_LESS_THAN_OR_EQUAL_TO = "IsLessThanOrEqualTo"
    IS_EQUAL_TO = "IsEqualTo"
    IS_NOT_EQUAL_TO = "IsNotEqualTo"
    IS_GREATER_THAN_OR_EQUAL_TO = "IsGreaterThanOrEqualTo"
    IS_GREATER_THAN = "IsGreaterThan"
    STARTS_WITH = "StartsWith"
    ENDS_WITH = "EndsWith"
    CONTAINS = "Contains"
    IS_CONTAINED_IN = "IsContainedIn"
    DOES_NOT_CONTAIN = "DoesNotContain"
    IS_NULL = "IsNull"
    IS_NOT_NULL = "IsNotNull"
    IS_EMPTY = "IsEmpty"
    IS_NOT_EMPTY = "IsNotEmpty"


class LogicalOperator(str, Enum):
    AND = "and"
    OR = "or"


class SortDirection(str, Enum):
    ASCENDING = "ascending"
    DESCENDING = "descending"

    @property
    def token(self) -> str:
        """Protocol token: ``asc`` or ``desc``."""
        return "asc" if self is SortDirection.ASCENDING else "desc"


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------

class _Descriptor(BaseModel):
    model_config = ConfigDict(frozen=True)


class SimpleFilter(_Descriptor):
    """One ``operator value`` clause of a column filter."""

    operator: FilterOperator
    value: Any = None
    is_active: bool = True


class DistinctFilter(_Descriptor):
    """Values picked in a column's distinct-values list, OR-combined."""

    clauses: tuple[SimpleFilter, ...] = ()

    @classmethod
    def of(cls, values: Iterable[Any]) -> "DistinctFilter":
        """Build an equality clause for each selected value."""
        return cls(
            clauses=tuple(
                SimpleFilter(operator=FilterOperator.IS_EQUAL_TO, value=value)
                for value in values
            )
        )

    @property
    def active_clauses(self) -> tuple[SimpleFilter, ...]:
        return tuple(clause for clause in self.clauses if clause.is_active)

    @property
    def is_active(self) -> bool:
        return bool(self.active_clauses)


class FilterNode(_Descriptor):
    """All filter state attached to a single column.

    Up to two field clauses (``filter1`` / ``filter2``) combined by
    ``logical_operator`` when both are active, plus an optional
    :class:`DistinctFilter`.
    """

    column_id: str
    filter1: SimpleFilter | None = None
    filter2: SimpleFilter | None = None
    logical_operator: LogicalOperator = LogicalOperator.AND
    distinct_filter: DistinctFilter | None = None

    @property
    def is_active(self) -> bool:
        return any(
            clause is not None and clause.is_active
            for clause in (self.filter1, self.filter2, self.distinct_filter)
        )


class SortState(_Descriptor):
    """The single honoured sort column (``column_id=None`` means unsorted)."""

    column_id: str | None = None
    direction: SortDirection = SortDirection.ASCENDING

    @property
    def is_set(self) -> bool:
        return bool(self.column_id)

    @classmethod
    def first_of(cls, descriptors: Sequence["SortState"]) -> "SortState":
        """Keep only the primary sort of a stacked sort descriptor list."""
        return descriptors[0] if descriptors else cls()


class GroupDescriptor(_Descriptor):
    column_id: str
    direction: SortDirection | None = SortDirection.ASCENDING


class QueryState(_Descriptor):
    """Immutable snapshot of the grid state for one fetch.

    ``sequence`` identifies the snapshot among all snapshots issued by
    one loader; responses are applied only for the latest sequence.
    """

    filters: tuple[FilterNode, ...] = ()
    sort: SortState = Field(default_factory=SortState)
    groups: tuple[GroupDescriptor, ...] = ()
    page_index: int = Field(default=0, ge=0)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, gt=0)
    sequence: int = 0

    @property
    def is_grouped(self) -> bool:
        return bool(self.groups)

    @property
    def page(self) -> int:
        """1-based page number sent on the wire."""
        return self.page_index + 1

    @property
    def offset(self) -> int:
        return self.page_index * self.page_size


# ---------------------------------------------------------------------------
# Server results
# ---------------------------------------------------------------------------

def _pascal_key(key: Any) -> Any:
    if not isinstance(key, str):
        return key
    if "_" in key:
        return to_pascal(key)
    return key[:1].upper() + key[1:]


def _pascal_keys(data: Any) -> Any:
    if isinstance(data, Mapping):
        return {_pascal_key(key): value for key, value in data.items()}
    return data


class _ServerModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_pascal,
        populate_by_name=True,
        extra="allow",
    )

    @model_validator(mode="before")
    @classmethod
    def _accept_camel_case(cls, data: Any) -> Any:
        return _pascal_keys(data)


class AggregateResult(_ServerModel):
    member: str | None = None
    value: Any = None
    function_name: str | None = None
    aggregate_method_name: str | None = None
    formatted_value: Any = None
    item_count: int | None = None
    caption: str | None = None


class GroupBucket(_ServerModel):
    """One group key's rows, as returned when server-side grouping is on.

    Only one level is handled: when ``has_subgroups`` is true, ``items``
    holds nested buckets in raw form.
    """

    key: Any = None
    items: list[Any] = Field(default_factory=list)
    has_subgroups: bool = False
    item_count: int | None = None
    member: str | None = None
    aggregates: Any = None

    @field_validator("items", mode="before")
    @classmethod
    def _null_items(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode="after")
    def _default_item_count(self) -> "GroupBucket":
        if self.item_count is None:
            self.item_count = len(self.items)
        return self


class QueryResult(BaseModel):
    """Decoded response of a paged query.

    ``total`` is the number of matching rows before paging.  ``items``
    holds row payloads for a flat query and :class:`GroupBucket` entries
    for a grouped one.
    """

    model_config = ConfigDict(populate_by_name=True)

    items: list[Any] = Field(
        default_factory=list,
        validation_alias=AliasChoices("Data", "Items", "data", "items"),
    )
    total: int | None = Field(default=None, validation_alias=AliasChoices("Total", "total"))
    aggregates: list[AggregateResult] = Field(
        default_factory=list,
        validation_alias=AliasChoices("AggregateResults", "aggregateResults", "aggregates"),
    )
    errors: Any = Field(default=None, validation_alias=AliasChoices("Errors", "errors"))

    @field_validator("items", "aggregates", mode="before")
    @classmethod
    def _null_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode="after")
    def _default_total(self) -> "QueryResult":
        if self.total is None:
            self.total = len(self.items)
        return self

    @classmethod
    def from_payload(
        cls,
        payload: Any,
        *,
        grouped: bool = False,
        item_type: type | None = None,
    ) -> "QueryResult":
        """Validate a decoded JSON body.

        Args:
            payload: The decoded response body.
            grouped: Whether the query carried a ``group`` parameter, in
                which case ``items`` are parsed as :class:`GroupBucket`.
            item_type: Optional row type (pydantic model, dataclass,
                TypedDict...).  Rows are validated into it when given and
                left as plain dicts otherwise.

        Raises:
            pydantic.ValidationError: If the body does not match the
                envelope shape.
        """
        result = cls.model_validate(payload)
        rows_adapter = TypeAdapter(list[item_type]) if item_type is not None else None
        if grouped:
            buckets = [GroupBucket.model_validate(bucket) for bucket in result.items]
            if rows_adapter is not None:
                for bucket in buckets:
                    if not bucket.has_subgroups:
                        bucket.items = rows_adapter.validate_python(bucket.items)
            result.items = buckets
        elif rows_adapter is not None:
            result.items = rows_adapter.validate_python(result.items)
        return result


class ColumnMeta(BaseModel):
    """Declared value type of a grid column.

    ``dtype`` is a polars data type (class or instance, e.g. ``pl.Boolean``
    or ``pl.Enum(["a", "b"])``) or a Python type (``bool``, an
    ``enum.Enum`` subclass, ``str``...).
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    column_id: str
    dtype: Any = None
    nullable: bool = False
