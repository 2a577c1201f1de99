from .store_config import IndexSchema, TableSchema

SPANS_TABLE_BASE_NAME = "spans"
SEARCH_TABLE_BASE_NAME = "search"
DEPENDENCIES_TABLE_BASE_NAME = "dependencies"

FIELD_DELIMITER = "░"

# Reserved value of the wildcard rows that back "list all X" lookups
WILDCARD_FOR_INVERTED_INDEX_LOOKUP = "__ANY__"

# Placeholder for a missing service or span name in the name index
UNKNOWN = "unknown"

TTL_COLUMN = "ttl"


class Spans:
    TRACE_ID = "trace_id"
    TRACE_ID_64 = "trace_id_64"
    SPAN_TIMESTAMP_ID = "span_timestamp_id"
    SPAN_ID = "span_id"
    SPAN_NAME = "span_name"
    SPAN_BLOB = "span_blob"
    LOCAL_SERVICE_NAME = "local_service_name"
    LOCAL_SERVICE_SPAN_NAME = "local_service_span_name"
    REMOTE_SERVICE_NAME = "remote_service_name"
    REMOTE_SERVICE_SPAN_NAME = "remote_service_span_name"
    SPAN_TIMESTAMP = "span_timestamp"
    SPAN_DURATION = "span_duration"
    TAG_PREFIX = "tag."
    ANNOTATIONS = "annotations"


class Search:
    KEY_INDEX = "key_index"
    VALUE_INDEX = "value_index"

    ENTITY_TYPE = "entity_type"
    ENTITY_KEY_VALUE = "entity_key_value"
    ENTITY_KEY = "entity_key"
    ENTITY_VALUE = "entity_value"

    SERVICE_SPAN_ENTITY_TYPE = "service-span"
    AUTOCOMPLETE_TAG_ENTITY_TYPE = "autocomplete-tag"


class Dependencies:
    LINK_DAY = "link_day"
    PARENT_CHILD = "parent_child"
    PARENT = "parent"
    CHILD = "child"
    CALL_COUNT = "call_count"
    ERROR_COUNT = "error_count"


def spans_table_name(prefix: str) -> str:
    return prefix + SPANS_TABLE_BASE_NAME


def search_table_name(prefix: str) -> str:
    return prefix + SEARCH_TABLE_BASE_NAME


def dependencies_table_name(prefix: str) -> str:
    return prefix + DEPENDENCIES_TABLE_BASE_NAME


def spans_table(prefix: str) -> TableSchema:
    by_time = Spans.SPAN_TIMESTAMP_ID
    return TableSchema(
        name=spans_table_name(prefix),
        hash_key=Spans.TRACE_ID,
        range_key=by_time,
        attribute_types={by_time: "N"},
        ttl_attribute=TTL_COLUMN,
        indexes=[
            IndexSchema(name=name, hash_key=name, range_key=by_time)
            for name in (
                Spans.TRACE_ID_64,
                Spans.SPAN_NAME,
                Spans.LOCAL_SERVICE_NAME,
                Spans.REMOTE_SERVICE_NAME,
                Spans.LOCAL_SERVICE_SPAN_NAME,
                Spans.REMOTE_SERVICE_SPAN_NAME,
            )
        ],
    )


def search_table(prefix: str) -> TableSchema:
    return TableSchema(
        name=search_table_name(prefix),
        hash_key=Search.ENTITY_TYPE,
        range_key=Search.ENTITY_KEY_VALUE,
        ttl_attribute=TTL_COLUMN,
        indexes=[
            IndexSchema(name=Search.KEY_INDEX, hash_key=Search.ENTITY_TYPE, range_key=Search.ENTITY_KEY),
            IndexSchema(name=Search.VALUE_INDEX, hash_key=Search.ENTITY_TYPE, range_key=Search.ENTITY_VALUE),
        ],
    )


def dependencies_table(prefix: str) -> TableSchema:
    return TableSchema(
        name=dependencies_table_name(prefix),
        hash_key=Dependencies.LINK_DAY,
        range_key=Dependencies.PARENT_CHILD,
    )


def all_tables(prefix: str) -> list[TableSchema]:
    return [spans_table(prefix), search_table(prefix), dependencies_table(prefix)]
