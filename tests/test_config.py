import os
import unittest
from unittest.mock import patch

from pydantic import ValidationError

from trace_storage.config import StorageSettings


class TestStorageSettings(unittest.TestCase):
    def test_defaults(self):
        settings = StorageSettings(_env_file=None)
        self.assertEqual(settings.table_prefix, "zipkin-")
        self.assertTrue(settings.strict_trace_id)
        self.assertTrue(settings.search_enabled)
        self.assertEqual(settings.max_scan_pages, 10)
        self.assertEqual(settings.data_ttl_seconds, 7 * 24 * 3600)

    def test_environment_overrides(self):
        env = {
            "TRACE_STORAGE_TABLE_PREFIX": "dev-",
            "TRACE_STORAGE_STRICT_TRACE_ID": "false",
            "TRACE_STORAGE_AUTOCOMPLETE_KEYS": "environment, http.method,,",
            "TRACE_STORAGE_DATA_TTL_DAYS": "1",
        }
        with patch.dict(os.environ, env):
            settings = StorageSettings(_env_file=None)
        self.assertEqual(settings.table_prefix, "dev-")
        self.assertFalse(settings.strict_trace_id)
        self.assertEqual(settings.autocomplete_keys, ["environment", "http.method"])
        self.assertEqual(settings.data_ttl_seconds, 24 * 3600)

    def test_rejects_non_positive_bounds(self):
        with self.assertRaises(ValidationError):
            StorageSettings(_env_file=None, max_concurrency=0)
        with self.assertRaises(ValidationError):
            StorageSettings(_env_file=None, data_ttl_days=0)


if __name__ == "__main__":
    unittest.main()
