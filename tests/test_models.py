"""Tests for descriptor models and the server result envelope."""

import pytest
from pydantic import BaseModel, ValidationError

from reflex_kendo_grid.models import (
    DistinctFilter,
    FilterNode,
    FilterOperator,
    GroupBucket,
    QueryResult,
    QueryState,
    SimpleFilter,
    SortDirection,
    SortState,
)


class Order(BaseModel):
    Id: int
    Status: str


def test_query_state_paging():
    state = QueryState(page_index=2, page_size=25)
    assert state.page == 3
    assert state.offset == 50
    assert not state.is_grouped


def test_query_state_rejects_invalid_paging():
    with pytest.raises(ValidationError):
        QueryState(page_index=-1)
    with pytest.raises(ValidationError):
        QueryState(page_size=0)


def test_descriptors_are_frozen():
    clause = SimpleFilter(operator=FilterOperator.CONTAINS, value="x")
    with pytest.raises(ValidationError):
        clause.value = "y"


def test_distinct_filter_of_values():
    distinct = DistinctFilter.of(["a", "b"])
    assert [clause.value for clause in distinct.clauses] == ["a", "b"]
    assert all(clause.operator is FilterOperator.IS_EQUAL_TO for clause in distinct.clauses)
    assert distinct.is_active
    assert not DistinctFilter().is_active


def test_filter_node_activity():
    assert not FilterNode(column_id="A").is_active
    assert FilterNode(column_id="A", distinct_filter=DistinctFilter.of([1])).is_active
    inactive = SimpleFilter(operator=FilterOperator.IS_EQUAL_TO, value=1, is_active=False)
    assert not FilterNode(column_id="A", filter1=inactive).is_active


def test_sort_state_first_of():
    assert SortState.first_of([]) == SortState()
    first = SortState(column_id="A", direction=SortDirection.DESCENDING)
    assert SortState.first_of([first, SortState(column_id="B")]) is first
    assert SortDirection.DESCENDING.token == "desc"
    assert SortDirection.ASCENDING.token == "asc"


# ---------------------------------------------------------------------------
# QueryResult
# ---------------------------------------------------------------------------

def test_result_pascal_case_envelope():
    result = QueryResult.from_payload(
        {
            "Data": [{"Id": 1}, {"Id": 2}],
            "Total": 40,
            "AggregateResults": [{"Member": "Total", "Value": 12.5, "FunctionName": "Sum"}],
            "Errors": None,
        }
    )
    assert result.items == [{"Id": 1}, {"Id": 2}]
    assert result.total == 40
    assert result.aggregates[0].member == "Total"
    assert result.aggregates[0].function_name == "Sum"
    assert result.errors is None


def test_result_camel_case_envelope():
    result = QueryResult.from_payload(
        {
            "data": [{"Id": 1}],
            "total": 3,
            "aggregateResults": [{"member": "Total", "value": 1, "functionName": "Count"}],
        }
    )
    assert result.total == 3
    assert result.aggregates[0].function_name == "Count"


def test_result_null_data_and_missing_total():
    assert QueryResult.from_payload({"Data": None, "Total": 0}).items == []
    assert QueryResult.from_payload({"Data": [{"Id": 1}, {"Id": 2}]}).total == 2


def test_result_rows_validated_into_item_type():
    result = QueryResult.from_payload(
        {"Data": [{"Id": 1, "Status": "Open"}], "Total": 1},
        item_type=Order,
    )
    assert result.items == [Order(Id=1, Status="Open")]


def test_result_rejects_unexpected_shape():
    with pytest.raises(ValidationError):
        QueryResult.from_payload([{"Id": 1}])
    with pytest.raises(ValidationError):
        QueryResult.from_payload({"Data": [], "Total": "many"})


def test_grouped_result_parses_buckets():
    result = QueryResult.from_payload(
        {
            "Data": [
                {"Key": "North", "Items": [{"Id": 1, "Status": "Open"}], "HasSubgroups": False, "Member": "Region"},
                {"key": "South", "items": None, "hasSubgroups": False},
            ],
            "Total": 1,
        },
        grouped=True,
        item_type=Order,
    )
    north, south = result.items
    assert isinstance(north, GroupBucket)
    assert north.key == "North"
    assert north.member == "Region"
    assert north.items == [Order(Id=1, Status="Open")]
    assert north.item_count == 1
    assert south.items == []
    assert south.item_count == 0


def test_group_bucket_keeps_server_item_count():
    bucket = GroupBucket.model_validate({"Key": 1, "Items": [], "ItemCount": 12})
    assert bucket.item_count == 12
