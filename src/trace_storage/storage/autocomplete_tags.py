from trace_storage.runtime.storage.schema import Search

from .search_table import SearchTableReader


class AutocompleteTags:
    """Tag keys and values seen on spans, restricted to the configured autocomplete keys"""

    def __init__(self, reader: SearchTableReader, search_enabled: bool = True):
        self.reader = reader
        self.search_enabled = search_enabled

    async def get_keys(self) -> list[str]:
        if not self.search_enabled:
            return []
        return await self.reader.keys(Search.AUTOCOMPLETE_TAG_ENTITY_TYPE)

    async def get_values(self, key: str) -> list[str]:
        if not self.search_enabled or not key:
            return []
        return await self.reader.values(Search.AUTOCOMPLETE_TAG_ENTITY_TYPE, key)
