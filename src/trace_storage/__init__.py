from .config import StorageSettings
from .core.data.dependency_data import DependencyLink
from .core.data.query_data import QueryRequest
from .core.data.span_data import Annotation, Endpoint, Span, SpanKind
from .runtime.storage.store_interface import (
    PartialWriteException,
    StoreCallException,
    StoreException,
)
from .storage import (
    AutocompleteTags,
    DependencyWriter,
    DynamoDBStorage,
    SpanConsumer,
    SpanStore,
)

__all__ = [
    "Annotation",
    "AutocompleteTags",
    "DependencyLink",
    "DependencyWriter",
    "DynamoDBStorage",
    "Endpoint",
    "PartialWriteException",
    "QueryRequest",
    "Span",
    "SpanConsumer",
    "SpanKind",
    "SpanStore",
    "StorageSettings",
    "StoreCallException",
    "StoreException",
]
