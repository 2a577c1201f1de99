from collections.abc import Iterable
from typing import Any

from trace_storage.core.data.dependency_data import DependencyLink
from trace_storage.core.utilities.day_buckets import utc_midnight_millis
from trace_storage.logger import get_logger
from trace_storage.runtime.storage.schema import Dependencies
from trace_storage.runtime.storage.store_interface import WideColumnStore

from .merge import merge_dependency_links

logger = get_logger('dependency-writer')


def link_item(day_millis: int, link: DependencyLink) -> dict[str, Any]:
    return {
        Dependencies.LINK_DAY: str(day_millis),
        Dependencies.PARENT_CHILD: f"{link.parent}->{link.child}",
        Dependencies.PARENT: link.parent,
        Dependencies.CHILD: link.child,
        Dependencies.CALL_COUNT: link.call_count,
        Dependencies.ERROR_COUNT: link.error_count,
    }


class DependencyWriter:
    """
    Stores the aggregated links of one UTC day. Links for the same pair are summed before
    writing, and writing a pair that already exists for the day replaces its counts.
    """

    def __init__(self, store: WideColumnStore, dependencies_table: str):
        self.store = store
        self.dependencies_table = dependencies_table

    async def write(self, timestamp_millis: int, links: Iterable[DependencyLink]) -> None:
        day = utc_midnight_millis(timestamp_millis)
        items = [link_item(day, link) for link in merge_dependency_links(links)]
        for start in range(0, len(items), self.store.max_batch_size):
            await self.store.put_batch(
                self.dependencies_table, items[start:start + self.store.max_batch_size]
            )
        logger.info(f"Stored {len(items)} dependency links for day {day}")
