from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from .store_config import StoreConfig, TableSchema


class SortOrder(Enum):
    ASCENDING = 1
    DESCENDING = -1

class StoreException(Exception):
    """Base exception class for Store operations"""
    pass

class StoreCallException(StoreException):
    """Raised when the underlying store rejects or fails a call"""
    def __init__(self, operation: str, table: str, cause: BaseException):
        super().__init__(f"{operation} on {table} failed: {cause}")
        self.operation = operation
        self.table = table
        self.cause = cause

class PartialWriteException(StoreException):
    """Raised after a group of independent writes finished with at least one failure"""
    def __init__(self, errors: Sequence[BaseException], attempted: int):
        super().__init__(f"{len(errors)} of {attempted} writes failed: {errors[0]}")
        self.errors = list(errors)
        self.attempted = attempted

class QueryOperator(Enum):
    EQUAL = "eq"
    GREATER_EQUAL = "gte"
    LESS_EQUAL = "lte"
    BETWEEN = "between"
    EXISTS = "exists"
    CONTAINS = "contains"

@dataclass(frozen=True)
class QueryFilter:
    field: str
    operator: QueryOperator
    value: Any = None

@dataclass(frozen=True)
class AnyOf:
    """Disjunction of filters; matches when at least one of them does"""
    filters: tuple[QueryFilter, ...]

FilterClause = Union[QueryFilter, AnyOf]

@dataclass(frozen=True)
class KeyCondition:
    """Equality on a hash key plus an optional condition on the matching range key"""
    hash_field: str
    hash_value: Any
    range_filter: Optional[QueryFilter] = None

@dataclass
class QuerySpec:
    """
    A fully built request against a table or one of its secondary indexes.
    Filters are ANDed together.
    """
    table: str
    key_condition: KeyCondition
    index_name: Optional[str] = None
    filters: list[FilterClause] = field(default_factory=list)
    projection: Optional[list[str]] = None
    order: SortOrder = SortOrder.ASCENDING

@dataclass
class ScanSpec:
    table: str
    filters: list[FilterClause] = field(default_factory=list)
    projection: Optional[list[str]] = None


"""
Abstract wide-column store: point/range queries by key, secondary index queries,
filtered scans and size-limited batch writes.
"""
class WideColumnStore(ABC):
    def __init__(self, max_batch_size: int = 25):
        self.max_batch_size = max_batch_size

    @abstractmethod
    async def initialize(self, schemas: Sequence[TableSchema] = ()) -> None:
        """Create any missing tables described by the schemas"""
        pass

    @abstractmethod
    async def put_batch(self, table: str, items: Sequence[Mapping[str, Any]]) -> None:
        """Write at most max_batch_size items, overwriting rows with the same primary key"""
        pass

    @abstractmethod
    async def upsert_item(
        self,
        table: str,
        key: Mapping[str, Any],
        updates: Mapping[str, Any]
    ) -> None:
        """Create the row if needed, then set the given attributes"""
        pass

    @abstractmethod
    async def query(self, spec: QuerySpec, max_pages: Optional[int] = None) -> list[dict[str, Any]]:
        """Run a key-condition query, following pages until exhausted or max_pages is hit"""
        pass

    @abstractmethod
    async def scan(self, spec: ScanSpec, max_pages: Optional[int] = None) -> list[dict[str, Any]]:
        """Filtered full-table scan"""
        pass

    async def close(self) -> None:
        pass

    def _check_batch(self, items: Sequence[Mapping[str, Any]]) -> None:
        if len(items) > self.max_batch_size:
            raise ValueError(
                f"Batch of {len(items)} items exceeds the limit of {self.max_batch_size}"
            )

class StoreFactory(ABC):
    """Abstract factory for creating store instances"""
    @abstractmethod
    async def create_store(self, config: StoreConfig) -> WideColumnStore:
        """Create and return a configured store instance"""
        pass
