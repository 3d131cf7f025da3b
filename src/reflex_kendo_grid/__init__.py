"""reflex-kendo-grid – remote paged data for grids, over the Kendo DataSourceRequest protocol.

Install the base package for the query serializer, loaders and CLI::

    pip install reflex-kendo-grid

Install with the ``[ui]`` extra for the Reflex state mixin and the MUI
DataGrid binding::

    pip install reflex-kendo-grid[ui]
"""

from reflex_kendo_grid.distinct import (
    DISTINCT_VALUES_ENDPOINT,
    DistinctValuesResolver,
    column_metas_from_schema,
    static_values,
)
from reflex_kendo_grid.errors import KendoGridError, TransportFailure, UnsupportedOperatorError
from reflex_kendo_grid.loaders import (
    DataSourceAdapter,
    GroupAwareLoader,
    LoaderMode,
    LoaderState,
    PagedRefillLoader,
    SequenceFence,
    WindowedLoader,
    create_loader,
)
from reflex_kendo_grid.models import (
    DEFAULT_PAGE_SIZE,
    AggregateResult,
    ColumnMeta,
    DistinctFilter,
    FilterNode,
    FilterOperator,
    GroupBucket,
    GroupDescriptor,
    LogicalOperator,
    QueryResult,
    QueryState,
    SimpleFilter,
    SortDirection,
    SortState,
)
from reflex_kendo_grid.mui_utils import (
    filter_nodes_from_mui,
    groups_from_mui,
    merge_filter_model,
    rows_with_ids,
    sort_state_from_mui,
)
from reflex_kendo_grid.session import GridSession, GridSnapshot
from reflex_kendo_grid.serializer import (
    build_query_params,
    build_query_string,
    build_url,
    format_value,
    operator_token,
    serialize_filter,
    serialize_group,
    serialize_sort,
)
from reflex_kendo_grid.store import (
    PROVISIONAL_VIRTUAL_COUNT,
    UNLOADED,
    ChangeAction,
    CollectionChange,
    SlotBuffer,
    VirtualWindow,
)
from reflex_kendo_grid.suppression import ChangeSuppressionGuard
from reflex_kendo_grid.transport import DEFAULT_TIMEOUT, HttpTransport, JsonFetcher
from reflex_kendo_grid.view import GridView, ViewChange

# Optional Reflex integration – available when installed with [ui] extra.
try:
    from reflex_kendo_grid.remote_grid import (
        RemoteGridMixin,
        remote_grid,
        remote_grid_detail_box,
        remote_grid_stats_bar,
    )
except ImportError:
    pass
