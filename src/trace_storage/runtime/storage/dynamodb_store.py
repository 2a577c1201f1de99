import asyncio
import functools

from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from typing import Any, Callable, Optional

import boto3
from boto3.dynamodb.types import Binary, TypeDeserializer, TypeSerializer
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from trace_storage.logger import get_logger

from .store_config import StoreConfig, TableSchema
from .store_interface import (
    AnyOf,
    FilterClause,
    QueryFilter,
    QueryOperator,
    QuerySpec,
    ScanSpec,
    SortOrder,
    StoreCallException,
    StoreException,
    StoreFactory,
    WideColumnStore,
)

logger = get_logger('dynamodb-store')


class DynamoDBStoreConfig(StoreConfig):
    """DynamoDB-specific configuration"""
    region_name: str | None = None
    endpoint_url: str | None = None
    max_workers: int = 8
    # Billing for tables created by initialize()
    billing_mode: str = "PAY_PER_REQUEST"


class ExpressionBuilder:
    """
    Builds DynamoDB expression strings with placeholders for every attribute name and
    value. Names always go through placeholders because tag attributes contain dots
    and several column names (ttl among them) are reserved words.
    """

    def __init__(self, serializer: TypeSerializer):
        self._serializer = serializer
        self.names: dict[str, str] = {}
        self.values: dict[str, dict[str, Any]] = {}

    def name(self, attribute: str) -> str:
        for placeholder, existing in self.names.items():
            if existing == attribute:
                return placeholder
        placeholder = f"#n{len(self.names)}"
        self.names[placeholder] = attribute
        return placeholder

    def value(self, value: Any) -> str:
        placeholder = f":v{len(self.values)}"
        self.values[placeholder] = self._serializer.serialize(value)
        return placeholder

    def condition(self, filter_: QueryFilter) -> str:
        name = self.name(filter_.field)
        op = filter_.operator
        if op == QueryOperator.EQUAL:
            return f"{name} = {self.value(filter_.value)}"
        if op == QueryOperator.GREATER_EQUAL:
            return f"{name} >= {self.value(filter_.value)}"
        if op == QueryOperator.LESS_EQUAL:
            return f"{name} <= {self.value(filter_.value)}"
        if op == QueryOperator.BETWEEN:
            low, high = filter_.value
            return f"{name} BETWEEN {self.value(low)} AND {self.value(high)}"
        if op == QueryOperator.EXISTS:
            return f"attribute_exists({name})"
        if op == QueryOperator.CONTAINS:
            return f"contains({name}, {self.value(filter_.value)})"
        raise ValueError(f"Unsupported operator: {op}")

    def clause(self, clause: FilterClause) -> str:
        if isinstance(clause, AnyOf):
            return "(" + " OR ".join(self.condition(f) for f in clause.filters) + ")"
        return self.condition(clause)

    def filter_expression(self, clauses: Sequence[FilterClause]) -> Optional[str]:
        if not clauses:
            return None
        return " AND ".join(self.clause(c) for c in clauses)

    def projection(self, attributes: Optional[Sequence[str]]) -> Optional[str]:
        if not attributes:
            return None
        return ", ".join(self.name(a) for a in attributes)

    def apply(self, request: dict[str, Any]) -> dict[str, Any]:
        if self.names:
            request["ExpressionAttributeNames"] = dict(self.names)
        if self.values:
            request["ExpressionAttributeValues"] = dict(self.values)
        return request


def _plain(value: Any) -> Any:
    """Unwrap deserialized DynamoDB types into plain python values"""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, Binary):
        return bytes(value.value)
    if isinstance(value, set):
        return {_plain(v) for v in value}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


class DynamoDBStore(WideColumnStore):
    def __init__(
        self,
        client: Any,
        max_batch_size: int = 25,
        max_workers: int = 8,
        billing_mode: str = "PAY_PER_REQUEST",
    ):
        super().__init__(max_batch_size=max_batch_size)
        self.client = client
        self.billing_mode = billing_mode
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="dynamodb")
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    async def _call(self, operation: str, table: str, fn: Callable[..., Any], **kwargs) -> Any:
        """Run a blocking client call on the worker pool, wrapping client errors"""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, functools.partial(fn, **kwargs))
        except (ClientError, BotoCoreError) as e:
            raise StoreCallException(operation, table, e) from e

    def _serialize_item(self, item: Mapping[str, Any]) -> dict[str, Any]:
        return {k: self._serializer.serialize(v) for k, v in item.items()}

    def _deserialize_item(self, item: Mapping[str, Any]) -> dict[str, Any]:
        return {k: _plain(self._deserializer.deserialize(v)) for k, v in item.items()}

    async def initialize(self, schemas: Sequence[TableSchema] = ()) -> None:
        """
        Create the tables in DynamoDB if they do not exist.
        Enables TTL expiry when the schema names a TTL attribute.
        """
        for schema in schemas:
            try:
                await self._call("DescribeTable", schema.name, self.client.describe_table, TableName=schema.name)
                continue
            except StoreCallException as e:
                cause = e.cause
                if not (isinstance(cause, ClientError)
                        and cause.response.get("Error", {}).get("Code") == "ResourceNotFoundException"):
                    raise

            logger.info(f"Creating table {schema.name}")
            await self._call("CreateTable", schema.name, self.client.create_table, **self._create_table_request(schema))
            waiter = self.client.get_waiter("table_exists")
            await self._call("WaitTableExists", schema.name, waiter.wait, TableName=schema.name)

            if schema.ttl_attribute:
                await self._call(
                    "UpdateTimeToLive", schema.name, self.client.update_time_to_live,
                    TableName=schema.name,
                    TimeToLiveSpecification={"Enabled": True, "AttributeName": schema.ttl_attribute},
                )

    def _create_table_request(self, schema: TableSchema) -> dict[str, Any]:
        def key_schema(hash_key: str, range_key: Optional[str]) -> list[dict[str, str]]:
            keys = [{"AttributeName": hash_key, "KeyType": "HASH"}]
            if range_key:
                keys.append({"AttributeName": range_key, "KeyType": "RANGE"})
            return keys

        attributes = {schema.hash_key}
        if schema.range_key:
            attributes.add(schema.range_key)
        for index in schema.indexes:
            attributes.add(index.hash_key)
            if index.range_key:
                attributes.add(index.range_key)

        request: dict[str, Any] = {
            "TableName": schema.name,
            "AttributeDefinitions": [
                {"AttributeName": a, "AttributeType": schema.attribute_type(a)} for a in sorted(attributes)
            ],
            "KeySchema": key_schema(schema.hash_key, schema.range_key),
            "BillingMode": self.billing_mode,
        }
        if schema.indexes:
            request["GlobalSecondaryIndexes"] = [
                {
                    "IndexName": index.name,
                    "KeySchema": key_schema(index.hash_key, index.range_key),
                    "Projection": {"ProjectionType": "ALL"},
                }
                for index in schema.indexes
            ]
        return request

    async def put_batch(self, table: str, items: Sequence[Mapping[str, Any]]) -> None:
        self._check_batch(items)
        if not items:
            return
        result = await self._call(
            "BatchWriteItem", table, self.client.batch_write_item,
            RequestItems={table: [{"PutRequest": {"Item": self._serialize_item(item)}} for item in items]},
        )
        unprocessed = result.get("UnprocessedItems", {}).get(table, [])
        if unprocessed:
            raise StoreException(f"BatchWriteItem on {table} left {len(unprocessed)} of {len(items)} items unprocessed")

    async def upsert_item(
        self,
        table: str,
        key: Mapping[str, Any],
        updates: Mapping[str, Any]
    ) -> None:
        builder = ExpressionBuilder(self._serializer)
        assignments = [f"{builder.name(k)} = {builder.value(v)}" for k, v in updates.items()]
        request = builder.apply({
            "TableName": table,
            "Key": self._serialize_item(key),
            "UpdateExpression": "SET " + ", ".join(assignments),
        })
        await self._call("UpdateItem", table, self.client.update_item, **request)

    async def _paginate(
        self,
        operation: str,
        table: str,
        fn: Callable[..., Any],
        request: dict[str, Any],
        max_pages: Optional[int],
    ) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        pages = 0
        while True:
            result = await self._call(operation, table, fn, **request)
            pages += 1
            rows.extend(self._deserialize_item(item) for item in result.get("Items", []))
            last_key = result.get("LastEvaluatedKey")
            if not last_key:
                return rows
            if max_pages is not None and pages >= max_pages:
                logger.warning(f"{operation} on {table} stopped after {pages} pages; results are truncated")
                return rows
            request = {**request, "ExclusiveStartKey": last_key}

    async def query(self, spec: QuerySpec, max_pages: Optional[int] = None) -> list[dict[str, Any]]:
        builder = ExpressionBuilder(self._serializer)
        condition = spec.key_condition
        key_expression = f"{builder.name(condition.hash_field)} = {builder.value(condition.hash_value)}"
        if condition.range_filter is not None:
            key_expression += " AND " + builder.condition(condition.range_filter)

        request: dict[str, Any] = {
            "TableName": spec.table,
            "KeyConditionExpression": key_expression,
            "ScanIndexForward": spec.order == SortOrder.ASCENDING,
        }
        if spec.index_name:
            request["IndexName"] = spec.index_name
        filter_expression = builder.filter_expression(spec.filters)
        if filter_expression:
            request["FilterExpression"] = filter_expression
        projection = builder.projection(spec.projection)
        if projection:
            request["ProjectionExpression"] = projection

        return await self._paginate("Query", spec.table, self.client.query, builder.apply(request), max_pages)

    async def scan(self, spec: ScanSpec, max_pages: Optional[int] = None) -> list[dict[str, Any]]:
        builder = ExpressionBuilder(self._serializer)
        request: dict[str, Any] = {"TableName": spec.table}
        filter_expression = builder.filter_expression(spec.filters)
        if filter_expression:
            request["FilterExpression"] = filter_expression
        projection = builder.projection(spec.projection)
        if projection:
            request["ProjectionExpression"] = projection

        return await self._paginate("Scan", spec.table, self.client.scan, builder.apply(request), max_pages)

    async def close(self) -> None:
        self._executor.shutdown(wait=True)


class DynamoDBStoreFactory(StoreFactory):
    async def create_store(self, config: StoreConfig) -> DynamoDBStore:
        if not isinstance(config, DynamoDBStoreConfig):
            raise ValueError("DynamoDB store requires DynamoDBStoreConfig")

        client = boto3.client(
            "dynamodb",
            region_name=config.region_name,
            endpoint_url=config.endpoint_url,
            config=BotoConfig(max_pool_connections=max(10, config.max_workers)),
        )
        return DynamoDBStore(
            client=client,
            max_batch_size=config.max_batch_size,
            max_workers=config.max_workers,
            billing_mode=config.billing_mode,
        )
