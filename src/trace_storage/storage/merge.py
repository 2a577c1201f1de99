from collections.abc import Hashable, Iterable, Mapping
from typing import Any, Callable, TypeVar

from trace_storage.core.data.dependency_data import DependencyLink
from trace_storage.runtime.storage.schema import Spans

K = TypeVar('K', bound=Hashable)
R = TypeVar('R')


def merge_by_max(rows: Iterable[R], key: Callable[[R], K], rank: Callable[[R], Any]) -> dict[K, R]:
    """
    Fold rows into one row per key, keeping the row with the highest rank.

    Ties keep the row seen first, so the result is deterministic for a given input order.
    """
    keep: dict[K, R] = {}
    for row in rows:
        k = key(row)
        current = keep.get(k)
        if current is None or rank(row) > rank(current):
            keep[k] = row
    return keep


def merge_trace_rows(
    rows: Iterable[Mapping[str, Any]],
    limit: int,
    trace_id_field: str = Spans.TRACE_ID,
) -> list[str]:
    """
    Rank trace ids found by one or more sub-queries.

    One row survives per trace id (the most recent), survivors are ordered by timestamp,
    newest first, and at most ``limit`` ids are returned.
    """
    if limit <= 0:
        return []
    latest = merge_by_max(
        rows,
        key=lambda r: r[trace_id_field],
        rank=lambda r: int(r.get(Spans.SPAN_TIMESTAMP) or 0),
    )
    # sorted() is stable, so equal timestamps keep first-seen order
    ordered = sorted(latest.values(), key=lambda r: int(r.get(Spans.SPAN_TIMESTAMP) or 0), reverse=True)
    return [r[trace_id_field] for r in ordered[:limit]]


def merge_dependency_links(links: Iterable[DependencyLink]) -> list[DependencyLink]:
    """Sum call and error counts of links sharing the same (parent, child) pair"""
    merged: dict[tuple[str, str], DependencyLink] = {}
    for link in links:
        existing = merged.get(link.pair)
        if existing is None:
            merged[link.pair] = link.model_copy()
        else:
            merged[link.pair] = existing.model_copy(update={
                "call_count": existing.call_count + link.call_count,
                "error_count": existing.error_count + link.error_count,
            })
    return list(merged.values())
