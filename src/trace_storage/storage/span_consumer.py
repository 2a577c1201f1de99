import asyncio
import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Callable, Union

from trace_storage.core.data.span_data import Span
from trace_storage.logger import get_logger
from trace_storage.runtime.storage.schema import (
    FIELD_DELIMITER,
    TTL_COLUMN,
    UNKNOWN,
    WILDCARD_FOR_INVERTED_INDEX_LOOKUP,
    Search,
    Spans,
)
from trace_storage.runtime.storage.store_interface import PartialWriteException, WideColumnStore

from .indexable import span_item, span_ttl
from .merge import merge_by_max

logger = get_logger('span-consumer')


@dataclass(frozen=True)
class SearchRow:
    """One (key, value) pair of the name index or the autocomplete index"""
    entity_type: str
    key: str
    value: str
    ttl: int

    @property
    def identity(self) -> tuple[str, str, str]:
        return self.entity_type, self.key, self.value

    def as_key(self) -> dict[str, Any]:
        return {
            Search.ENTITY_TYPE: self.entity_type,
            Search.ENTITY_KEY_VALUE: self.key + FIELD_DELIMITER + self.value,
        }

    def as_updates(self) -> dict[str, Any]:
        return {
            Search.ENTITY_KEY: self.key,
            Search.ENTITY_VALUE: self.value,
            TTL_COLUMN: self.ttl,
        }


def service_span_rows(span: Span, ttl: int) -> list[SearchRow]:
    kind = Search.SERVICE_SPAN_ENTITY_TYPE
    span_name = span.name or UNKNOWN
    rows = [SearchRow(kind, span.local_service_name or UNKNOWN, span_name, ttl)]
    if span.local_service_name:
        rows.append(SearchRow(kind, span.local_service_name, WILDCARD_FOR_INVERTED_INDEX_LOOKUP, ttl))
    if span.remote_service_name:
        rows.append(SearchRow(kind, span.remote_service_name, span_name, ttl))
        rows.append(SearchRow(kind, span.remote_service_name, WILDCARD_FOR_INVERTED_INDEX_LOOKUP, ttl))
    return rows


def autocomplete_tag_rows(span: Span, ttl: int, autocomplete_keys: frozenset[str]) -> list[SearchRow]:
    kind = Search.AUTOCOMPLETE_TAG_ENTITY_TYPE
    rows = []
    for key, value in span.tags.items():
        if key not in autocomplete_keys:
            continue
        # Index keys cannot hold empty strings; the key is still listed through its wildcard row
        if value:
            rows.append(SearchRow(kind, key, value, ttl))
        rows.append(SearchRow(kind, key, WILDCARD_FOR_INVERTED_INDEX_LOOKUP, ttl))
    return rows


def merge_search_rows(rows: Iterable[SearchRow]) -> list[SearchRow]:
    """One row per (type, key, value), carrying the largest TTL seen in the batch"""
    return list(merge_by_max(rows, key=lambda r: r.identity, rank=lambda r: r.ttl).values())


class SpanConsumer:
    """
    Write path: span rows go out in size-limited batches, then name-index and
    autocomplete rows are upserted once per distinct pair.

    Batches are not transactional. If a later chunk fails, earlier chunks stay written.
    """

    def __init__(
        self,
        store: WideColumnStore,
        spans_table: str,
        search_table: str,
        autocomplete_keys: Iterable[str] = (),
        data_ttl_seconds: int = 7 * 24 * 3600,
        max_concurrency: int = 8,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.spans_table = spans_table
        self.search_table = search_table
        self.autocomplete_keys = frozenset(autocomplete_keys)
        self.data_ttl_seconds = data_ttl_seconds
        self.max_concurrency = max_concurrency
        self._clock = clock

    @staticmethod
    def _coerce(spans: Sequence[Union[Span, Mapping[str, Any]]]) -> list[Span]:
        """Validate the whole batch up front so a bad span prevents every write"""
        result = []
        for i, span in enumerate(spans):
            if isinstance(span, Span):
                result.append(span)
            elif isinstance(span, Mapping):
                result.append(Span.model_validate(span))
            else:
                raise ValueError(f"Span at position {i} is not a Span: {type(span).__name__}")
        return result

    async def accept(self, spans: Sequence[Union[Span, Mapping[str, Any]]]) -> None:
        batch = self._coerce(spans)
        if not batch:
            return

        now = self._clock()
        ttls = [span_ttl(span, self.data_ttl_seconds, now) for span in batch]

        await self._write_spans([span_item(span, ttl) for span, ttl in zip(batch, ttls)])

        search_rows = []
        for span, ttl in zip(batch, ttls):
            search_rows.extend(service_span_rows(span, ttl))
            search_rows.extend(autocomplete_tag_rows(span, ttl, self.autocomplete_keys))
        await self._upsert_search_rows(merge_search_rows(search_rows))

    async def _write_spans(self, items: list[dict[str, Any]]) -> None:
        # A batch write may not name the same primary key twice; the last copy wins
        unique = {(item[Spans.TRACE_ID], item[Spans.SPAN_TIMESTAMP_ID]): item for item in items}
        if len(unique) < len(items):
            logger.debug(f"Dropped {len(items) - len(unique)} duplicate spans from the batch")
        pending = list(unique.values())
        while pending:
            chunk = pending[:self.store.max_batch_size]
            await self.store.put_batch(self.spans_table, chunk)
            del pending[:len(chunk)]
            logger.debug(f"Wrote {len(chunk)} spans to {self.spans_table}, {len(pending)} pending")

    async def _upsert_search_rows(self, rows: list[SearchRow]) -> None:
        if not rows:
            return
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def upsert(row: SearchRow) -> None:
            async with semaphore:
                await self.store.upsert_item(self.search_table, row.as_key(), row.as_updates())

        results = await asyncio.gather(*[upsert(row) for row in rows], return_exceptions=True)
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            logger.error(f"{len(errors)} of {len(rows)} search row upserts failed: {errors[0]}")
            raise PartialWriteException(errors, attempted=len(rows))
