from __future__ import annotations

import asyncio
import unittest
from typing import Any

import aiohttp

from circles.errors import LedgerNetworkError, RateLimitedError
from utils.http_client import ResilientHttpClient

URL = "http://rpc.test"


class _StubResponse:
    def __init__(self, status: int, body: Any) -> None:
        self.status = status
        self._body = body

    async def json(self, content_type: str | None = None) -> Any:
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class _StubPost:
    def __init__(self, outcome: Any) -> None:
        self._outcome = outcome

    async def __aenter__(self) -> _StubResponse:
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class _StubSession:
    def __init__(self, outcome: Any) -> None:
        self.outcome = outcome
        self.closed = False
        self.requests: list[dict[str, Any]] = []

    def post(self, url: str, *, json: dict[str, Any], headers: dict[str, str] | None = None) -> _StubPost:
        self.requests.append({"url": url, "json": json, "headers": dict(headers or {})})
        return _StubPost(self.outcome)


def _client(outcome: Any) -> tuple[ResilientHttpClient, _StubSession]:
    session = _StubSession(outcome)
    client = ResilientHttpClient(timeout_seconds=5, session=session)  # type: ignore[arg-type]
    return client, session


class CallRpcTests(unittest.IsolatedAsyncioTestCase):
    async def test_returns_result_member(self) -> None:
        client, session = _client(_StubResponse(200, {"jsonrpc": "2.0", "id": 1, "result": "42.5"}))
        result = await client.call_rpc(URL, "circlesV2_getTotalBalance", ["0xabc", True], source="circles_rpc")
        self.assertEqual(result, "42.5")
        payload = session.requests[0]["json"]
        self.assertEqual(payload["method"], "circlesV2_getTotalBalance")
        self.assertEqual(payload["params"], ["0xabc", True])
        self.assertEqual(client.snapshot_stats()["circles_rpc"]["ok"], 1)

    async def test_http_429_is_rate_limited(self) -> None:
        client, _ = _client(_StubResponse(429, None))
        with self.assertRaises(RateLimitedError) as ctx:
            await client.call_rpc(URL, "circles_query", [{}], source="circles_rpc")
        self.assertEqual(ctx.exception.status, 429)
        stats = client.snapshot_stats()["circles_rpc"]
        self.assertEqual(stats["rate_limited"], 1)
        self.assertEqual(stats["fail"], 1)

    async def test_other_http_status_is_network_error(self) -> None:
        client, _ = _client(_StubResponse(503, None))
        with self.assertRaises(LedgerNetworkError) as ctx:
            await client.call_rpc(URL, "circles_query", [{}])
        self.assertNotIsInstance(ctx.exception, RateLimitedError)
        self.assertEqual(ctx.exception.status, 503)

    async def test_rate_limit_rpc_code_is_rate_limited(self) -> None:
        client, _ = _client(_StubResponse(200, {"error": {"code": -32016, "message": "too many requests"}}))
        with self.assertRaises(RateLimitedError):
            await client.call_rpc(URL, "circles_query", [{}])
        self.assertEqual(client.snapshot_stats()["default"]["rate_limited"], 1)

    async def test_rate_limit_message_is_rate_limited(self) -> None:
        client, _ = _client(_StubResponse(200, {"error": {"code": -32000, "message": "Rate limit exceeded"}}))
        with self.assertRaises(RateLimitedError):
            await client.call_rpc(URL, "circles_query", [{}])

    async def test_other_rpc_error_is_network_error(self) -> None:
        client, _ = _client(_StubResponse(200, {"error": {"code": -32602, "message": "invalid params"}}))
        with self.assertRaises(LedgerNetworkError) as ctx:
            await client.call_rpc(URL, "circles_query", [{}])
        self.assertNotIsInstance(ctx.exception, RateLimitedError)
        self.assertIn("-32602", str(ctx.exception))

    async def test_timeout_is_network_error(self) -> None:
        client, _ = _client(asyncio.TimeoutError())
        with self.assertRaises(LedgerNetworkError):
            await client.call_rpc(URL, "circles_query", [{}])
        self.assertEqual(client.snapshot_stats()["default"]["fail"], 1)

    async def test_client_error_is_network_error(self) -> None:
        client, _ = _client(aiohttp.ClientConnectionError("connection reset"))
        with self.assertRaises(LedgerNetworkError) as ctx:
            await client.call_rpc(URL, "circles_query", [{}])
        self.assertIn("connection reset", str(ctx.exception))

    async def test_undecodable_body_is_network_error(self) -> None:
        client, _ = _client(_StubResponse(200, ValueError("not json")))
        with self.assertRaises(LedgerNetworkError):
            await client.call_rpc(URL, "circles_query", [{}])

    async def test_non_object_body_is_network_error(self) -> None:
        client, _ = _client(_StubResponse(200, ["unexpected"]))
        with self.assertRaises(LedgerNetworkError):
            await client.call_rpc(URL, "circles_query", [{}])

    async def test_close_leaves_injected_session_open(self) -> None:
        client, session = _client(_StubResponse(200, {"result": None}))
        await client.close()
        self.assertFalse(session.closed)


if __name__ == "__main__":
    unittest.main()
