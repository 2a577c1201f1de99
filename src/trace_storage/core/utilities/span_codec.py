from trace_storage.core.data.span_data import Span


def encode_span(span: Span) -> bytes:
    """Opaque payload stored in the span table's blob column"""
    return span.model_dump_json(exclude_none=True, exclude_defaults=True).encode("utf-8")


def decode_span(payload: bytes | bytearray | memoryview) -> Span:
    return Span.model_validate_json(bytes(payload))
