from __future__ import annotations

import unittest

from circles.errors import LedgerNetworkError, RateLimitedError
from circles.ledger import ResilientLedgerClient, RetryPolicy
from utils.retry import backoff_delay, retry_async


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RetryAsyncTests(unittest.IsolatedAsyncioTestCase):
    async def test_rate_limit_exhaustion_after_configured_attempts(self) -> None:
        calls = 0
        sleep = SleepRecorder()

        async def always_limited() -> int:
            nonlocal calls
            calls += 1
            raise RateLimitedError("http_status_429", status=429)

        with self.assertRaises(RateLimitedError):
            await retry_async(
                always_limited,
                attempts=3,
                base_delay=1.0,
                is_retryable=lambda exc: isinstance(exc, RateLimitedError),
                sleep=sleep,
            )
        self.assertEqual(calls, 3)
        self.assertEqual(sleep.delays, [1.0, 2.0])

    async def test_non_retryable_error_propagates_immediately(self) -> None:
        calls = 0
        sleep = SleepRecorder()

        async def broken() -> int:
            nonlocal calls
            calls += 1
            raise LedgerNetworkError("http_status_500", status=500)

        with self.assertRaises(LedgerNetworkError):
            await retry_async(
                broken,
                attempts=5,
                base_delay=1.0,
                is_retryable=lambda exc: isinstance(exc, RateLimitedError),
                sleep=sleep,
            )
        self.assertEqual(calls, 1)
        self.assertEqual(sleep.delays, [])

    async def test_recovers_after_transient_rate_limit(self) -> None:
        outcomes: list[object] = [RateLimitedError(), RateLimitedError(), 42]
        sleep = SleepRecorder()

        async def flaky() -> int:
            item = outcomes.pop(0)
            if isinstance(item, Exception):
                raise item
            return int(item)  # type: ignore[call-overload]

        result = await retry_async(
            flaky,
            attempts=3,
            base_delay=0.5,
            is_retryable=lambda exc: isinstance(exc, RateLimitedError),
            sleep=sleep,
        )
        self.assertEqual(result, 42)
        self.assertEqual(sleep.delays, [0.5, 1.0])

    async def test_on_exhausted_translates_error(self) -> None:
        async def limited() -> int:
            raise ValueError("rate limit")

        with self.assertRaises(RateLimitedError) as ctx:
            await retry_async(
                limited,
                attempts=2,
                base_delay=0.0,
                is_retryable=lambda exc: isinstance(exc, ValueError),
                on_exhausted=lambda exc, n: RateLimitedError(str(exc), attempts=n),
                sleep=SleepRecorder(),
            )
        self.assertEqual(ctx.exception.attempts, 2)

    def test_backoff_delay_doubles(self) -> None:
        self.assertEqual([backoff_delay(i, 1.0) for i in range(4)], [1.0, 2.0, 4.0, 8.0])


class ResilientLedgerClientRetryTests(unittest.IsolatedAsyncioTestCase):
    async def test_every_read_surfaces_rate_limited_with_attempt_count(self) -> None:
        class LimitedReader:
            def __init__(self) -> None:
                self.calls: dict[str, int] = {}

            def _hit(self, name: str) -> None:
                self.calls[name] = self.calls.get(name, 0) + 1
                raise RateLimitedError(f"{name} limited")

            async def get_profile(self, address: str):
                self._hit("profile")

            async def get_balance(self, address: str):
                self._hit("balance")

            async def get_trust_relations(self, address: str, limit: int):
                self._hit("relations")

            async def get_transaction_history(self, address: str, limit: int):
                self._hit("history")

        reader = LimitedReader()
        sleep = SleepRecorder()
        client = ResilientLedgerClient(reader, RetryPolicy(attempts=3, base_delay=1.0), sleep=sleep)
        address = "0x1111111111111111111111111111111111111111"
        for call in (
            lambda: client.get_profile(address),
            lambda: client.get_balance(address),
            lambda: client.get_trust_relations(address, 10),
            lambda: client.get_transaction_history(address, 10),
        ):
            with self.assertRaises(RateLimitedError) as ctx:
                await call()
            self.assertEqual(ctx.exception.attempts, 3)
        self.assertEqual(reader.calls, {"profile": 3, "balance": 3, "relations": 3, "history": 3})
        self.assertEqual(sleep.delays, [1.0, 2.0] * 4)


if __name__ == "__main__":
    unittest.main()
