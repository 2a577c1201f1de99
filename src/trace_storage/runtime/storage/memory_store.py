import os
import time
from collections.abc import Mapping, Sequence
from copy import deepcopy
from typing import Any, Optional

from .store_config import StoreConfig, TableSchema
from .store_interface import (
    AnyOf,
    FilterClause,
    KeyCondition,
    QueryFilter,
    QueryOperator,
    QuerySpec,
    ScanSpec,
    SortOrder,
    StoreFactory,
    WideColumnStore,
)


class MemoryStore(WideColumnStore):
    """
    In-memory implementation of WideColumnStore using one dictionary per table.

    Mirrors the semantics the engine relies on: secondary indexes are sparse (rows
    without the index key are not visible through it), filters are applied after a
    page of key-matching rows is read, and reads page through results page_size rows
    at a time.
    """

    def __init__(
        self,
        max_batch_size: int = 25,
        page_size: int | None = None,
        ttl_attribute: str | None = None,
    ):
        super().__init__(max_batch_size=max_batch_size)
        self._schemas: dict[str, TableSchema] = {}
        self._storage: dict[str, dict[tuple[Any, ...], dict[str, Any]]] = {}
        self._page_size = page_size if page_size is not None else int(os.environ.get('MEMORY_STORE_PAGE_SIZE', '100'))
        self._ttl_attribute = ttl_attribute

    async def initialize(self, schemas: Sequence[TableSchema] = ()) -> None:
        for schema in schemas:
            if schema.name not in self._schemas:
                self._schemas[schema.name] = schema
                self._storage[schema.name] = {}

    def _table(self, table: str) -> tuple[TableSchema, dict[tuple[Any, ...], dict[str, Any]]]:
        if table not in self._schemas:
            raise ValueError(f"Unknown table: {table}")
        return self._schemas[table], self._storage[table]

    def _evict(self, table: str) -> None:
        """Drop rows whose TTL attribute (epoch seconds) is in the past"""
        if not self._ttl_attribute:
            return
        now = time.time()
        _, rows = self._table(table)
        expired = [
            key for key, row in rows.items()
            if isinstance(row.get(self._ttl_attribute), (int, float)) and row[self._ttl_attribute] < now
        ]
        for key in expired:
            del rows[key]

    async def put_batch(self, table: str, items: Sequence[Mapping[str, Any]]) -> None:
        self._check_batch(items)
        schema, rows = self._table(table)
        # Validate every key before writing anything, like a rejected batch call
        keyed = [(schema.primary_key(dict(item)), deepcopy(dict(item))) for item in items]
        for key, item in keyed:
            rows[key] = item

    async def upsert_item(
        self,
        table: str,
        key: Mapping[str, Any],
        updates: Mapping[str, Any]
    ) -> None:
        schema, rows = self._table(table)
        primary_key = schema.primary_key(dict(key))
        row = rows.setdefault(primary_key, deepcopy(dict(key)))
        row.update(deepcopy(dict(updates)))

    def _matches_filter(self, doc: dict[str, Any], filter_: QueryFilter) -> bool:
        """Check if document matches the given filter"""
        if filter_.operator == QueryOperator.EXISTS:
            return filter_.field in doc

        value = doc.get(filter_.field)
        if value is None:
            return False

        filter_value = filter_.value

        if filter_.operator == QueryOperator.EQUAL:
            return value == filter_value

        # CONTAINS checks set/list membership, or substring for strings
        if filter_.operator == QueryOperator.CONTAINS:
            if isinstance(value, (set, frozenset, list, tuple, str)):
                return filter_value in value
            return False

        try:
            if filter_.operator == QueryOperator.GREATER_EQUAL:
                return value >= filter_value
            if filter_.operator == QueryOperator.LESS_EQUAL:
                return value <= filter_value
            if filter_.operator == QueryOperator.BETWEEN:
                low, high = filter_value
                return low <= value <= high
        except TypeError:
            # Types don't match or aren't comparable
            return False

        return False

    def _matches_clause(self, doc: dict[str, Any], clause: FilterClause) -> bool:
        if isinstance(clause, AnyOf):
            return any(self._matches_filter(doc, f) for f in clause.filters)
        return self._matches_filter(doc, clause)

    def _project(self, doc: dict[str, Any], projection: Optional[list[str]]) -> dict[str, Any]:
        if projection is None:
            return deepcopy(doc)
        return {k: deepcopy(doc[k]) for k in projection if k in doc}

    def _paged(
        self,
        candidates: list[dict[str, Any]],
        filters: list[FilterClause],
        projection: Optional[list[str]],
        max_pages: Optional[int],
    ) -> list[dict[str, Any]]:
        results = []
        pages = 0
        for start in range(0, len(candidates), self._page_size):
            if max_pages is not None and pages >= max_pages:
                break
            pages += 1
            for doc in candidates[start:start + self._page_size]:
                if all(self._matches_clause(doc, clause) for clause in filters):
                    results.append(self._project(doc, projection))
        return results

    async def query(self, spec: QuerySpec, max_pages: Optional[int] = None) -> list[dict[str, Any]]:
        self._evict(spec.table)
        schema, rows = self._table(spec.table)
        hash_field, range_field = schema.key_fields(spec.index_name)
        condition: KeyCondition = spec.key_condition
        if condition.hash_field != hash_field:
            raise ValueError(
                f"Key condition on {condition.hash_field} does not match hash key {hash_field}"
            )

        candidates = []
        for doc in rows.values():
            if doc.get(hash_field) != condition.hash_value:
                continue
            # Secondary indexes only hold rows that carry the index range key
            if range_field is not None and range_field not in doc:
                continue
            if condition.range_filter is not None and not self._matches_filter(doc, condition.range_filter):
                continue
            candidates.append(doc)

        if range_field is not None:
            candidates.sort(
                key=lambda x: x[range_field],
                reverse=(spec.order == SortOrder.DESCENDING)
            )

        return self._paged(candidates, spec.filters, spec.projection, max_pages)

    async def scan(self, spec: ScanSpec, max_pages: Optional[int] = None) -> list[dict[str, Any]]:
        self._evict(spec.table)
        _, rows = self._table(spec.table)
        return self._paged(list(rows.values()), spec.filters, spec.projection, max_pages)

    def rows(self, table: str) -> list[dict[str, Any]]:
        """Snapshot of every row in a table"""
        _, rows = self._table(table)
        return [deepcopy(row) for row in rows.values()]


class MemoryStoreConfig(StoreConfig):
    """Memory-specific configuration"""
    page_size: int | None = None  # Rows read per simulated page
    ttl_attribute: str | None = None  # Expire rows by this epoch-seconds attribute


class MemoryStoreFactory(StoreFactory):
    """Factory for creating memory store instances"""

    async def create_store(self, config: StoreConfig) -> MemoryStore:
        """Create and return a configured memory store instance"""
        if not isinstance(config, MemoryStoreConfig):
            raise ValueError("Memory store requires MemoryStoreConfig")

        return MemoryStore(
            max_batch_size=config.max_batch_size,
            page_size=config.page_size,
            ttl_attribute=config.ttl_attribute,
        )
