import unittest
from unittest.mock import MagicMock, patch

from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from trace_storage.config import StorageSettings
from trace_storage.runtime.storage.dynamodb_store import DynamoDBStore, ExpressionBuilder
from trace_storage.runtime.storage.schema import all_tables, spans_table
from trace_storage.runtime.storage.store_interface import (
    AnyOf,
    KeyCondition,
    QueryFilter,
    QueryOperator,
    QuerySpec,
    ScanSpec,
    SortOrder,
    StoreCallException,
    StoreException,
)
from trace_storage.storage.dynamodb_storage import DynamoDBStorage


def client_error(code, operation):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestExpressionBuilder(unittest.TestCase):
    def test_filter_expression(self):
        builder = ExpressionBuilder(TypeSerializer())
        expression = builder.filter_expression([
            QueryFilter("span_duration", QueryOperator.GREATER_EQUAL, 5),
            AnyOf((
                QueryFilter("tag.error", QueryOperator.EXISTS),
                QueryFilter("annotations", QueryOperator.CONTAINS, "error"),
            )),
        ])
        self.assertEqual(expression, "#n0 >= :v0 AND (attribute_exists(#n1) OR contains(#n2, :v1))")
        self.assertEqual(builder.names, {"#n0": "span_duration", "#n1": "tag.error", "#n2": "annotations"})
        self.assertEqual(builder.values, {":v0": {"N": "5"}, ":v1": {"S": "error"}})

    def test_names_are_reused(self):
        builder = ExpressionBuilder(TypeSerializer())
        self.assertEqual(builder.name("ttl"), builder.name("ttl"))
        self.assertEqual(builder.projection(["ttl", "trace_id"]), "#n0, #n1")

    def test_between_and_equal(self):
        builder = ExpressionBuilder(TypeSerializer())
        self.assertEqual(
            builder.condition(QueryFilter("d", QueryOperator.BETWEEN, (1, 2))), "#n0 BETWEEN :v0 AND :v1"
        )
        self.assertEqual(builder.condition(QueryFilter("d", QueryOperator.EQUAL, 3)), "#n0 = :v2")
        self.assertIsNone(builder.filter_expression([]))


class TestDynamoDBStore(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.client = MagicMock()
        self.store = DynamoDBStore(self.client, max_workers=2)

    async def asyncTearDown(self):
        await self.store.close()

    async def test_query_request_and_pagination(self):
        self.client.query.side_effect = [
            {"Items": [{"trace_id": {"S": "a"}, "span_timestamp": {"N": "5"}}],
             "LastEvaluatedKey": {"trace_id": {"S": "a"}}},
            {"Items": [{"trace_id": {"S": "b"}, "span_blob": {"B": b"{}"}}]},
        ]
        spec = QuerySpec(
            table="spans",
            index_name="span_name",
            key_condition=KeyCondition(
                "span_name", "get /", QueryFilter("span_timestamp_id", QueryOperator.BETWEEN, (1, 2))
            ),
            filters=[QueryFilter("tag.http.method", QueryOperator.EQUAL, "GET")],
            projection=["trace_id"],
            order=SortOrder.DESCENDING,
        )

        rows = await self.store.query(spec)

        self.assertEqual(rows, [{"trace_id": "a", "span_timestamp": 5}, {"trace_id": "b", "span_blob": b"{}"}])
        first = self.client.query.call_args_list[0].kwargs
        self.assertEqual(first["IndexName"], "span_name")
        self.assertFalse(first["ScanIndexForward"])
        self.assertEqual(first["KeyConditionExpression"], "#n0 = :v0 AND #n1 BETWEEN :v1 AND :v2")
        self.assertEqual(first["FilterExpression"], "#n2 = :v3")
        self.assertEqual(first["ExpressionAttributeNames"]["#n2"], "tag.http.method")
        self.assertEqual(first["ProjectionExpression"], "#n3")
        self.assertNotIn("ExclusiveStartKey", first)
        second = self.client.query.call_args_list[1].kwargs
        self.assertEqual(second["ExclusiveStartKey"], {"trace_id": {"S": "a"}})

    async def test_page_cap_truncates_with_warning(self):
        self.client.scan.return_value = {
            "Items": [{"trace_id": {"S": "a"}}], "LastEvaluatedKey": {"trace_id": {"S": "a"}},
        }
        with self.assertLogs("trace-storage.dynamodb-store", level="WARNING") as logs:
            rows = await self.store.scan(ScanSpec(table="spans"), max_pages=2)
        self.assertEqual(len(rows), 2)
        self.assertEqual(self.client.scan.call_count, 2)
        self.assertIn("truncated", logs.output[0])

    async def test_client_errors_are_wrapped(self):
        self.client.scan.side_effect = client_error("ProvisionedThroughputExceededException", "Scan")
        with self.assertRaises(StoreCallException) as ctx:
            await self.store.scan(ScanSpec(table="spans"))
        self.assertEqual(ctx.exception.operation, "Scan")
        self.assertEqual(ctx.exception.table, "spans")
        self.assertIsInstance(ctx.exception.cause, ClientError)

    async def test_put_batch(self):
        self.client.batch_write_item.return_value = {"UnprocessedItems": {}}
        await self.store.put_batch("spans", [{"trace_id": "a", "span_timestamp_id": 1, "annotations": {"ws"}}])
        request = self.client.batch_write_item.call_args.kwargs["RequestItems"]
        self.assertEqual(request["spans"][0]["PutRequest"]["Item"], {
            "trace_id": {"S": "a"}, "span_timestamp_id": {"N": "1"}, "annotations": {"SS": ["ws"]},
        })

    async def test_put_batch_limits(self):
        with self.assertRaises(ValueError):
            await self.store.put_batch("spans", [{"trace_id": str(i)} for i in range(26)])

        self.client.batch_write_item.return_value = {
            "UnprocessedItems": {"spans": [{"PutRequest": {"Item": {}}}]},
        }
        with self.assertRaises(StoreException):
            await self.store.put_batch("spans", [{"trace_id": "a"}, {"trace_id": "b"}])

    async def test_upsert_item(self):
        await self.store.upsert_item(
            "search",
            {"entity_type": "service-span", "entity_key_value": "svc░op"},
            {"entity_key": "svc", "ttl": 10},
        )
        request = self.client.update_item.call_args.kwargs
        self.assertEqual(request["UpdateExpression"], "SET #n0 = :v0, #n1 = :v1")
        self.assertEqual(request["ExpressionAttributeNames"], {"#n0": "entity_key", "#n1": "ttl"})
        self.assertEqual(request["Key"]["entity_key_value"], {"S": "svc░op"})

    async def test_initialize_creates_missing_tables(self):
        self.client.describe_table.side_effect = client_error("ResourceNotFoundException", "DescribeTable")

        await self.store.initialize([spans_table("test-")])

        request = self.client.create_table.call_args.kwargs
        self.assertEqual(request["TableName"], "test-spans")
        self.assertEqual(request["BillingMode"], "PAY_PER_REQUEST")
        self.assertIn({"AttributeName": "span_timestamp_id", "AttributeType": "N"}, request["AttributeDefinitions"])
        self.assertEqual(len(request["GlobalSecondaryIndexes"]), 6)
        self.client.get_waiter.assert_called_once_with("table_exists")
        self.client.get_waiter.return_value.wait.assert_called_once_with(TableName="test-spans")
        self.client.update_time_to_live.assert_called_once_with(
            TableName="test-spans",
            TimeToLiveSpecification={"Enabled": True, "AttributeName": "ttl"},
        )

    async def test_initialize_keeps_existing_tables(self):
        self.client.describe_table.return_value = {"Table": {}}
        await self.store.initialize(all_tables("test-"))
        self.assertEqual(self.client.describe_table.call_count, 3)
        self.client.create_table.assert_not_called()

    async def test_initialize_propagates_other_errors(self):
        self.client.describe_table.side_effect = client_error("AccessDeniedException", "DescribeTable")
        with self.assertRaises(StoreCallException):
            await self.store.initialize(all_tables("test-"))


class TestDynamoDBStorageCreate(unittest.IsolatedAsyncioTestCase):
    async def test_create_builds_client_from_settings(self):
        settings = StorageSettings(
            table_prefix="dev-", aws_region="us-west-2", dynamodb_endpoint="http://localhost:8000",
        )
        with patch("trace_storage.runtime.storage.dynamodb_store.boto3.client") as client:
            storage = await DynamoDBStorage.create(settings)
            await storage.close()

        args, kwargs = client.call_args
        self.assertEqual(args, ("dynamodb",))
        self.assertEqual(kwargs["region_name"], "us-west-2")
        self.assertEqual(kwargs["endpoint_url"], "http://localhost:8000")
        self.assertEqual(storage.spans_table, "dev-spans")
        self.assertEqual(storage.search_table, "dev-search")
        self.assertEqual(storage.dependencies_table, "dev-dependencies")


if __name__ == "__main__":
    unittest.main()
