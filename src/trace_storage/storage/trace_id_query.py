"""
Query plans for trace searches.

The span table has no native multi-predicate planner, so a QueryRequest is mapped onto
one of three access patterns:

* an indexed plan: one or two secondary index queries keyed on service and/or span
  name, range-bounded on the composite timestamp key, with duration and tag predicates
  as filters;
* a scan plan: a filtered full-table scan. This is the most expensive path and is only
  used when neither a service nor a span name narrows the search;
* a point lookup by trace id, used to materialise the spans of every ranked trace.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from trace_storage.core.data.query_data import QueryRequest
from trace_storage.core.utilities.key_codec import sort_key_bounds, truncate_trace_id
from trace_storage.runtime.storage.schema import FIELD_DELIMITER, Spans
from trace_storage.runtime.storage.store_interface import (
    AnyOf,
    FilterClause,
    KeyCondition,
    QueryFilter,
    QueryOperator,
    QuerySpec,
    ScanSpec,
    SortOrder,
)

# Minimal projection needed to rank candidate traces
QUERY_PROJECTION = [Spans.TRACE_ID, Spans.TRACE_ID_64, Spans.SPAN_TIMESTAMP]
TRACE_PROJECTION = [Spans.TRACE_ID, Spans.TRACE_ID_64, Spans.SPAN_BLOB]


class PlanStrategy(str, Enum):
    INDEX = "index"
    SCAN = "scan"


@dataclass
class TraceIdQueryPlan:
    strategy: PlanStrategy
    queries: list[QuerySpec] = field(default_factory=list)
    scan: Optional[ScanSpec] = None


def time_range_filter(request: QueryRequest) -> QueryFilter:
    return QueryFilter(
        Spans.SPAN_TIMESTAMP_ID,
        QueryOperator.BETWEEN,
        sort_key_bounds(request.start_ts, request.end_ts),
    )


def duration_filter(request: QueryRequest) -> Optional[QueryFilter]:
    if request.min_duration is None:
        return None
    if request.max_duration is None:
        return QueryFilter(Spans.SPAN_DURATION, QueryOperator.GREATER_EQUAL, request.min_duration)
    if request.max_duration == request.min_duration:
        return QueryFilter(Spans.SPAN_DURATION, QueryOperator.EQUAL, request.min_duration)
    return QueryFilter(
        Spans.SPAN_DURATION, QueryOperator.BETWEEN, (request.min_duration, request.max_duration)
    )


def annotation_filters(request: QueryRequest) -> list[FilterClause]:
    clauses: list[FilterClause] = []
    for key, value in request.annotation_query.items():
        tag_field = Spans.TAG_PREFIX + key
        if value:
            clauses.append(QueryFilter(tag_field, QueryOperator.EQUAL, value))
        else:
            clauses.append(AnyOf((
                QueryFilter(tag_field, QueryOperator.EXISTS),
                QueryFilter(Spans.ANNOTATIONS, QueryOperator.CONTAINS, key),
            )))
    return clauses


def request_filters(request: QueryRequest) -> list[FilterClause]:
    filters: list[FilterClause] = []
    duration = duration_filter(request)
    if duration is not None:
        filters.append(duration)
    filters.extend(annotation_filters(request))
    return filters


def _index_query(spans_table: str, index: str, key: str, request: QueryRequest) -> QuerySpec:
    return QuerySpec(
        table=spans_table,
        index_name=index,
        key_condition=KeyCondition(index, key, time_range_filter(request)),
        filters=request_filters(request),
        projection=list(QUERY_PROJECTION),
        order=SortOrder.DESCENDING,
    )


def plan_trace_id_query(spans_table: str, request: QueryRequest) -> TraceIdQueryPlan:
    if request.service_name is not None:
        if request.span_name is not None:
            key = request.service_name + FIELD_DELIMITER + request.span_name
            local_index, remote_index = Spans.LOCAL_SERVICE_SPAN_NAME, Spans.REMOTE_SERVICE_SPAN_NAME
        else:
            key = request.service_name
            local_index, remote_index = Spans.LOCAL_SERVICE_NAME, Spans.REMOTE_SERVICE_NAME
        return TraceIdQueryPlan(PlanStrategy.INDEX, queries=[
            _index_query(spans_table, local_index, key, request),
            _index_query(spans_table, remote_index, key, request),
        ])

    if request.span_name is not None:
        return TraceIdQueryPlan(PlanStrategy.INDEX, queries=[
            _index_query(spans_table, Spans.SPAN_NAME, request.span_name, request),
        ])

    # We have to scan because no index narrows a search on time range alone
    return TraceIdQueryPlan(PlanStrategy.SCAN, scan=ScanSpec(
        table=spans_table,
        filters=request_filters(request) + [time_range_filter(request)],
        projection=list(QUERY_PROJECTION),
    ))


def trace_lookup(spans_table: str, trace_id: str, strict_trace_id: bool) -> QuerySpec:
    """Point query for every span of one trace"""
    if strict_trace_id:
        return QuerySpec(
            table=spans_table,
            key_condition=KeyCondition(Spans.TRACE_ID, trace_id),
            projection=list(TRACE_PROJECTION),
        )
    return QuerySpec(
        table=spans_table,
        index_name=Spans.TRACE_ID_64,
        key_condition=KeyCondition(Spans.TRACE_ID_64, truncate_trace_id(trace_id)),
        projection=list(TRACE_PROJECTION),
    )
