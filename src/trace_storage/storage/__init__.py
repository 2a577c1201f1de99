from .autocomplete_tags import AutocompleteTags
from .dependency_writer import DependencyWriter
from .dynamodb_storage import DynamoDBStorage
from .span_consumer import SpanConsumer
from .span_store import SpanStore

__all__ = [
    "AutocompleteTags",
    "DependencyWriter",
    "DynamoDBStorage",
    "SpanConsumer",
    "SpanStore",
]
