import unittest

from trace_storage.config import StorageSettings
from trace_storage.runtime.storage.memory_store import MemoryStore
from trace_storage.storage.dynamodb_storage import DynamoDBStorage

TIMESTAMP = 1_700_000_000_000_000


def tagged_span(span_id, tags):
    return {
        "trace_id": "b000000000000001",
        "id": span_id,
        "name": "op",
        "timestamp": TIMESTAMP,
        "local_endpoint": {"service_name": "svc"},
        "tags": tags,
    }


class TestAutocompleteTags(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.storage = DynamoDBStorage(MemoryStore(), StorageSettings(
            table_prefix="test-",
            autocomplete_keys=["environment", "http.method", "http.route"],
        ))
        await self.storage.initialize()
        await self.storage.span_consumer.accept([
            tagged_span("1", {"environment": "prod", "http.method": "GET", "region": "eu"}),
            tagged_span("2", {"environment": "staging"}),
            tagged_span("3", {"environment": "prod", "http.method": ""}),
            tagged_span("4", {"http.route": ""}),
        ])

    async def test_keys(self):
        self.assertEqual(
            await self.storage.autocomplete_tags.get_keys(),
            ["environment", "http.method", "http.route"],
        )

    async def test_values(self):
        tags = self.storage.autocomplete_tags
        self.assertEqual(await tags.get_values("environment"), ["prod", "staging"])
        self.assertEqual(await tags.get_values("http.method"), ["GET"])
        self.assertEqual(await tags.get_values("http.route"), [])

    async def test_unindexed_or_missing_keys(self):
        tags = self.storage.autocomplete_tags
        self.assertEqual(await tags.get_values("region"), [])
        self.assertEqual(await tags.get_values(""), [])

    async def test_tags_do_not_leak_into_service_names(self):
        self.assertEqual(await self.storage.span_store.get_service_names(), ["svc"])


if __name__ == "__main__":
    unittest.main()
