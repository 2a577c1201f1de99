"""
Sortable composite keys for the span table.

The range key packs the span timestamp (milliseconds) into the upper 64 bits and a
per-row local id into the lower 64 bits, so a time window maps onto one contiguous
key range: ``[start << 64, end << 64 | 0xffffffffffffffff]``.
"""

import hashlib

from trace_storage.core.data.span_data import normalize_hex_id

MAX_UINT64 = (1 << 64) - 1
LENIENT_TRACE_ID_LENGTH = 16


def encode_sort_key(timestamp_millis: int, local_id: int) -> int:
    if timestamp_millis < 0:
        raise ValueError(f"timestamp_millis must be >= 0: {timestamp_millis}")
    if not 0 <= local_id <= MAX_UINT64:
        raise ValueError(f"local_id must fit in 64 unsigned bits: {local_id}")
    return (timestamp_millis << 64) | local_id


def decode_sort_key(sort_key: int) -> tuple[int, int]:
    """Inverse of encode_sort_key: returns (timestamp_millis, local_id)"""
    return sort_key >> 64, sort_key & MAX_UINT64


def sort_key_bounds(start_millis: int, end_millis: int) -> tuple[int, int]:
    """Inclusive range of sort keys covering every local id in [start_millis, end_millis]"""
    lower = max(0, start_millis) << 64
    upper = (max(0, end_millis) << 64) | MAX_UINT64
    return lower, upper


def row_local_id(span_id: str, *discriminators: object) -> int:
    """
    Lower 64 bits of a span row's sort key.

    A client span and its shared server half carry the same span id, so the id alone does not
    identify a row. The id is hashed together with the discriminators (kind, shared flag, local
    service) into 64 bits. The same span always maps to the same key, so a retransmission
    overwrites its earlier row instead of adding a second one.
    """
    span_id = normalize_hex_id(span_id, "span_id", max_length=16)
    material = "|".join([span_id, *("" if d is None else str(d) for d in discriminators)])
    return int.from_bytes(hashlib.blake2b(material.encode("utf-8"), digest_size=8).digest(), "big")


def truncate_trace_id(trace_id: str) -> str:
    """The lenient (lower 64 bit) form of a trace id: its last 16 hex characters"""
    return trace_id[-LENIENT_TRACE_ID_LENGTH:]


def normalize_trace_id(trace_id: str) -> str:
    return normalize_hex_id(trace_id, "trace_id", max_length=32)
