from collections.abc import Iterable
from typing import Optional

from trace_storage.runtime.storage.schema import WILDCARD_FOR_INVERTED_INDEX_LOOKUP, Search
from trace_storage.runtime.storage.store_interface import (
    KeyCondition,
    QueryFilter,
    QueryOperator,
    QuerySpec,
    WideColumnStore,
)


class SearchTableReader:
    """
    Reads the (key, value) pairs written by the span consumer.

    Listing keys goes through the wildcard rows (value == sentinel) on the value index;
    listing the values of one key goes through the key index. The sentinel itself never
    leaves this class.
    """

    def __init__(self, store: WideColumnStore, search_table: str, max_query_pages: Optional[int] = None):
        self.store = store
        self.search_table = search_table
        self.max_query_pages = max_query_pages

    async def keys(self, entity_type: str, excluded: Iterable[str] = ()) -> list[str]:
        rows = await self.store.query(QuerySpec(
            table=self.search_table,
            index_name=Search.VALUE_INDEX,
            key_condition=KeyCondition(
                Search.ENTITY_TYPE, entity_type,
                QueryFilter(Search.ENTITY_VALUE, QueryOperator.EQUAL, WILDCARD_FOR_INVERTED_INDEX_LOOKUP),
            ),
            projection=[Search.ENTITY_KEY],
        ), max_pages=self.max_query_pages)
        return self._clean((row.get(Search.ENTITY_KEY) for row in rows), excluded)

    async def values(self, entity_type: str, key: str, excluded: Iterable[str] = ()) -> list[str]:
        rows = await self.store.query(QuerySpec(
            table=self.search_table,
            index_name=Search.KEY_INDEX,
            key_condition=KeyCondition(
                Search.ENTITY_TYPE, entity_type,
                QueryFilter(Search.ENTITY_KEY, QueryOperator.EQUAL, key),
            ),
            projection=[Search.ENTITY_VALUE],
        ), max_pages=self.max_query_pages)
        return self._clean((row.get(Search.ENTITY_VALUE) for row in rows), excluded)

    @staticmethod
    def _clean(values: Iterable[Optional[str]], excluded: Iterable[str]) -> list[str]:
        skip = set(excluded) | {WILDCARD_FOR_INVERTED_INDEX_LOOKUP}
        return sorted({v for v in values if v and v not in skip})
