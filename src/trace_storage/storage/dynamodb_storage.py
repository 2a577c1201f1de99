from typing import Optional

from trace_storage.config import StorageSettings
from trace_storage.logger import get_logger, setup_logger
from trace_storage.runtime.storage.dynamodb_store import DynamoDBStoreConfig, DynamoDBStoreFactory
from trace_storage.runtime.storage.schema import (
    all_tables,
    dependencies_table_name,
    search_table_name,
    spans_table_name,
)
from trace_storage.runtime.storage.store_interface import WideColumnStore

from .autocomplete_tags import AutocompleteTags
from .dependency_writer import DependencyWriter
from .search_table import SearchTableReader
from .span_consumer import SpanConsumer
from .span_store import SpanStore

logger = get_logger('storage')


class DynamoDBStorage:
    """
    Entry point wiring the write path, the read path and the name index readers to one
    store and one set of settings.

    Use ``await DynamoDBStorage.create()`` to build a storage backed by DynamoDB from the
    environment, or pass any WideColumnStore (e.g. MemoryStore) to the constructor.
    """

    def __init__(self, store: WideColumnStore, settings: Optional[StorageSettings] = None):
        self.store = store
        self.settings = settings or StorageSettings()
        setup_logger(self.settings.log_level)
        prefix = self.settings.table_prefix

        self.spans_table = spans_table_name(prefix)
        self.search_table = search_table_name(prefix)
        self.dependencies_table = dependencies_table_name(prefix)

        reader = SearchTableReader(store, self.search_table, self.settings.max_query_pages)

        self.span_consumer = SpanConsumer(
            store,
            self.spans_table,
            self.search_table,
            autocomplete_keys=self.settings.autocomplete_keys,
            data_ttl_seconds=self.settings.data_ttl_seconds,
            max_concurrency=self.settings.max_concurrency,
        )
        self.span_store = SpanStore(
            store,
            self.spans_table,
            self.dependencies_table,
            reader,
            strict_trace_id=self.settings.strict_trace_id,
            search_enabled=self.settings.search_enabled,
            max_concurrency=self.settings.max_concurrency,
            max_scan_pages=self.settings.max_scan_pages,
            max_query_pages=self.settings.max_query_pages,
        )
        self.autocomplete_tags = AutocompleteTags(reader, search_enabled=self.settings.search_enabled)
        self.dependency_writer = DependencyWriter(store, self.dependencies_table)

    @classmethod
    async def create(cls, settings: Optional[StorageSettings] = None) -> "DynamoDBStorage":
        settings = settings or StorageSettings()
        store = await DynamoDBStoreFactory().create_store(DynamoDBStoreConfig(
            region_name=settings.aws_region,
            endpoint_url=settings.dynamodb_endpoint,
            max_workers=settings.max_concurrency,
        ))
        return cls(store, settings)

    async def initialize(self) -> None:
        """Create missing tables"""
        logger.info(f"Initializing tables with prefix '{self.settings.table_prefix}'")
        await self.store.initialize(all_tables(self.settings.table_prefix))

    async def close(self) -> None:
        await self.store.close()

    async def __aenter__(self) -> "DynamoDBStorage":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
