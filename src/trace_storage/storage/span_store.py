import asyncio
from collections.abc import Awaitable, Iterable, Mapping
from typing import Any, Optional, TypeVar, Union

from trace_storage.core.data.dependency_data import DependencyLink
from trace_storage.core.data.query_data import QueryRequest
from trace_storage.core.data.span_data import Span
from trace_storage.core.utilities.day_buckets import link_days
from trace_storage.core.utilities.key_codec import normalize_trace_id
from trace_storage.core.utilities.span_codec import decode_span
from trace_storage.logger import get_logger
from trace_storage.runtime.storage.schema import UNKNOWN, Dependencies, Search, Spans
from trace_storage.runtime.storage.store_interface import (
    KeyCondition,
    QuerySpec,
    WideColumnStore,
)

from .merge import merge_dependency_links, merge_trace_rows
from .search_table import SearchTableReader
from .trace_id_query import PlanStrategy, plan_trace_id_query, trace_lookup

logger = get_logger('span-store')

T = TypeVar('T')


class SpanStore:
    """
    Read path over the span, search and dependency tables.

    Sub-queries that do not depend on each other run concurrently and are joined before
    their rows are merged. If any of them fails, the whole operation fails.
    """

    def __init__(
        self,
        store: WideColumnStore,
        spans_table: str,
        dependencies_table: str,
        search_reader: SearchTableReader,
        strict_trace_id: bool = True,
        search_enabled: bool = True,
        max_concurrency: int = 8,
        max_scan_pages: Optional[int] = 10,
        max_query_pages: Optional[int] = 100,
    ):
        self.store = store
        self.spans_table = spans_table
        self.dependencies_table = dependencies_table
        self.search_reader = search_reader
        self.strict_trace_id = strict_trace_id
        self.search_enabled = search_enabled
        self.max_concurrency = max_concurrency
        self.max_scan_pages = max_scan_pages
        self.max_query_pages = max_query_pages

    @property
    def trace_id_field(self) -> str:
        return Spans.TRACE_ID if self.strict_trace_id else Spans.TRACE_ID_64

    async def _bounded_gather(self, calls: Iterable[Awaitable[T]]) -> list[T]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(call: Awaitable[T]) -> T:
            async with semaphore:
                return await call

        return list(await asyncio.gather(*[run(c) for c in calls]))

    async def get_trace_ids(self, request: Union[QueryRequest, Mapping[str, Any]]) -> list[str]:
        """Trace ids matching the request, newest first, at most request.limit of them"""
        if not self.search_enabled:
            return []
        if not isinstance(request, QueryRequest):
            request = QueryRequest.model_validate(request)
        plan = plan_trace_id_query(self.spans_table, request)

        if plan.strategy == PlanStrategy.INDEX:
            results = await asyncio.gather(*[
                self.store.query(spec, max_pages=self.max_query_pages) for spec in plan.queries
            ])
            rows = [row for result in results for row in result]
        else:
            logger.debug(f"No service or span name given, scanning {self.spans_table}")
            rows = await self.store.scan(plan.scan, max_pages=self.max_scan_pages)

        return merge_trace_rows(rows, request.limit, self.trace_id_field)

    async def get_traces(self, request: Union[QueryRequest, Mapping[str, Any]]) -> list[list[Span]]:
        trace_ids = await self.get_trace_ids(request)
        if not trace_ids:
            return []
        traces = await self._bounded_gather(self._fetch_trace(trace_id) for trace_id in trace_ids)
        return [trace for trace in traces if trace]

    async def get_trace(self, trace_id: str) -> list[Span]:
        return await self._fetch_trace(normalize_trace_id(trace_id))

    async def _fetch_trace(self, trace_id: str) -> list[Span]:
        rows = await self.store.query(
            trace_lookup(self.spans_table, trace_id, self.strict_trace_id),
            max_pages=self.max_query_pages,
        )
        return [decode_span(row[Spans.SPAN_BLOB]) for row in rows if row.get(Spans.SPAN_BLOB)]

    async def get_service_names(self, excluded: Iterable[str] = ()) -> list[str]:
        if not self.search_enabled:
            return []
        return await self.search_reader.keys(
            Search.SERVICE_SPAN_ENTITY_TYPE, excluded={UNKNOWN, *excluded}
        )

    async def get_span_names(self, service_name: str, excluded: Iterable[str] = ()) -> list[str]:
        if not self.search_enabled or not service_name:
            return []
        return await self.search_reader.values(
            Search.SERVICE_SPAN_ENTITY_TYPE, service_name.lower(), excluded={UNKNOWN, *excluded}
        )

    async def get_dependencies(self, end_ts: int, lookback: int) -> list[DependencyLink]:
        """
        Links observed in the UTC days overlapping [end_ts - lookback, end_ts].

        Args:
            end_ts: Epoch milliseconds of the end of the window
            lookback: Window length in milliseconds
        """
        if end_ts <= 0:
            raise ValueError("end_ts <= 0")
        if lookback <= 0:
            raise ValueError("lookback <= 0")

        days = link_days(end_ts, lookback)
        results = await self._bounded_gather(self._links_for_day(day) for day in days)
        return merge_dependency_links(link for links in results for link in links)

    async def _links_for_day(self, day_millis: int) -> list[DependencyLink]:
        rows = await self.store.query(QuerySpec(
            table=self.dependencies_table,
            key_condition=KeyCondition(Dependencies.LINK_DAY, str(day_millis)),
        ), max_pages=self.max_query_pages)
        return [
            DependencyLink(
                parent=row[Dependencies.PARENT],
                child=row[Dependencies.CHILD],
                call_count=int(row.get(Dependencies.CALL_COUNT, 0)),
                error_count=int(row.get(Dependencies.ERROR_COUNT, 0)),
            )
            for row in rows
        ]
