import json
import logging
import unittest

from fastapi.testclient import TestClient

from config.logging_config import JsonFormatter, RequestIdFilter, reset_request_id, set_request_id
from main import create_app
from support import make_settings


class RequestIdTests(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(create_app(make_settings()))

    def test_generated_request_id_echoed(self):
        r = self.client.get("/api/billing/plans")
        self.assertEqual(r.status_code, 200)
        self.assertRegex(r.headers["X-Request-ID"], r"^[0-9a-f]{16}$")

    def test_safe_caller_id_kept(self):
        r = self.client.get("/api/billing/plans", headers={"X-Request-ID": "edge-abc.123"})
        self.assertEqual(r.headers["X-Request-ID"], "edge-abc.123")

    def test_unsafe_caller_id_replaced(self):
        r = self.client.get("/api/billing/plans", headers={"X-Request-ID": "bad id with spaces"})
        self.assertNotEqual(r.headers["X-Request-ID"], "bad id with spaces")


class JsonFormatterTests(unittest.TestCase):
    def _record(self):
        return logging.LogRecord("billing", logging.INFO, __file__, 1, "checkout user_id=%s", ("u1",), None)

    def test_request_id_from_context(self):
        record = self._record()
        token = set_request_id("rid-1")
        try:
            RequestIdFilter().filter(record)
        finally:
            reset_request_id(token)

        entry = json.loads(JsonFormatter().format(record))
        self.assertEqual(entry["request_id"], "rid-1")
        self.assertEqual(entry["message"], "checkout user_id=u1")

    def test_outside_request(self):
        record = self._record()
        RequestIdFilter().filter(record)
        self.assertEqual(record.request_id, "-")


if __name__ == "__main__":
    unittest.main()
