"""
Projection of a span onto the attributes of its span-table row.

Every attribute a secondary index or a filter expression reads is computed here, once,
at write time, so store adapters never need span- or tag-specific logic.
"""

import time
from typing import Any, Optional

from trace_storage.core.data.span_data import Span
from trace_storage.core.utilities.key_codec import encode_sort_key, row_local_id, truncate_trace_id
from trace_storage.core.utilities.span_codec import encode_span
from trace_storage.runtime.storage.schema import FIELD_DELIMITER, TTL_COLUMN, Spans


def span_ttl(span: Span, data_ttl_seconds: int, now: Optional[float] = None) -> int:
    """Expiry in epoch seconds: the span's own time (or now, if it has none) plus the data TTL"""
    if span.timestamp:
        base = span.timestamp // 1_000_000
    else:
        base = int(now if now is not None else time.time())
    return base + data_ttl_seconds


def _composite(service_name: Optional[str], span_name: Optional[str]) -> Optional[str]:
    if service_name and span_name:
        return service_name + FIELD_DELIMITER + span_name
    return None


def span_sort_key(span: Span) -> int:
    local_id = row_local_id(
        span.id,
        span.kind.value if span.kind else None,
        bool(span.shared),
        span.local_service_name,
    )
    return encode_sort_key((span.timestamp or 0) // 1000, local_id)


def span_item(span: Span, ttl: int) -> dict[str, Any]:
    item: dict[str, Any] = {
        Spans.TRACE_ID: span.trace_id,
        Spans.TRACE_ID_64: truncate_trace_id(span.trace_id),
        Spans.SPAN_TIMESTAMP_ID: span_sort_key(span),
        Spans.SPAN_ID: span.id,
        Spans.SPAN_BLOB: encode_span(span),
        TTL_COLUMN: ttl,
    }

    optional = {
        Spans.SPAN_NAME: span.name,
        Spans.LOCAL_SERVICE_NAME: span.local_service_name,
        Spans.REMOTE_SERVICE_NAME: span.remote_service_name,
        Spans.LOCAL_SERVICE_SPAN_NAME: _composite(span.local_service_name, span.name),
        Spans.REMOTE_SERVICE_SPAN_NAME: _composite(span.remote_service_name, span.name),
        Spans.SPAN_TIMESTAMP: span.timestamp,
        Spans.SPAN_DURATION: span.duration,
    }
    item.update({k: v for k, v in optional.items() if v})

    # An empty tag value is kept as a present-but-null attribute so "key exists" still matches
    for key, value in span.tags.items():
        item[Spans.TAG_PREFIX + key] = value if value else None

    annotation_values = {a.value for a in span.annotations if a.value}
    if annotation_values:
        item[Spans.ANNOTATIONS] = annotation_values

    return item
