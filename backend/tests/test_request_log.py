from __future__ import annotations

import sys
import unittest
from pathlib import Path

import httpx

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.main import app
from app.utils.errors import exception_summary, safe_str
from app.utils.request_log import to_logfmt


class LogfmtTests(unittest.TestCase):
    def test_quotes_and_escapes_values(self):
        line = to_logfmt(
            [
                ("method", "GET"),
                ("path", "/api/entries"),
                ("status", 200),
                ("ok", True),
                ("error", 'ValueError: bad "x"\nnext'),
                ("rid", None),
            ]
        )
        self.assertEqual(
            line,
            'method=GET path=/api/entries status=200 ok=true error="ValueError: bad \\"x\\"\\\\nnext"',
        )

    def test_exception_summary(self):
        self.assertEqual(exception_summary(ValueError("a\nb")), "ValueError: a b")
        self.assertEqual(exception_summary(ValueError("x" * 10), max_len=3), "ValueError: xxx…")
        self.assertEqual(exception_summary(KeyError()), "KeyError")
        self.assertEqual(safe_str({"k": 1}, max_len=0), "")


class AccessLogMiddlewareTests(unittest.IsolatedAsyncioTestCase):
    async def test_each_request_logged_with_request_id(self):
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            with self.assertLogs("app.access", level="INFO") as logs:
                resp = await client.get("/", headers={"X-Request-Id": "abc-123"})

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers["X-Request-Id"], "abc-123")
        self.assertEqual(len(logs.records), 1)
        self.assertIn("method=GET path=/ status=200", logs.output[0])
        self.assertIn("rid=abc-123", logs.output[0])


if __name__ == "__main__":
    unittest.main()
