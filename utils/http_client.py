"""Shared aiohttp JSON-RPC client with per-source limits and stats.

The client performs exactly one attempt per call and reports failures as
typed ledger errors; retrying is left to ``utils.retry.retry_async``.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Any

import aiohttp

import config
from circles.errors import LedgerNetworkError, RateLimitedError

logger = logging.getLogger(__name__)

RPC_RATE_LIMIT_CODE = -32016


@dataclass
class HttpSourceStats:
    ok: int = 0
    fail: int = 0
    rate_limited: int = 0
    latency_total_ms: float = 0.0
    latency_max_ms: float = 0.0
    latency_count: int = 0


def is_rate_limit_error(code: Any, message: Any) -> bool:
    try:
        if int(code) == RPC_RATE_LIMIT_CODE:
            return True
    except (TypeError, ValueError):
        pass
    return "rate limit" in str(message or "").lower()


class ResilientHttpClient:
    def __init__(
        self,
        timeout_seconds: float,
        headers: dict[str, str] | None = None,
        source_limits: dict[str, int] | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._timeout = aiohttp.ClientTimeout(total=max(1.0, float(timeout_seconds)))
        self._headers = dict(headers or {})
        self._source_limits = dict(source_limits or {})
        self._session = session
        self._owns_session = session is None
        self._semaphores: dict[str, asyncio.Semaphore] = {}
        self._stats: dict[str, HttpSourceStats] = {}
        self._ids = itertools.count(1)

    async def close(self) -> None:
        session = self._session
        self._session = None
        if self._owns_session and session is not None and not session.closed:
            await session.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=max(1, int(getattr(config, "HTTP_CONNECTOR_LIMIT", 30) or 30)))
            self._session = aiohttp.ClientSession(timeout=self._timeout, connector=connector)
            self._owns_session = True
        return self._session

    @staticmethod
    def _source_key(source: str) -> str:
        return str(source or "default").strip().lower() or "default"

    def _get_semaphore(self, source_key: str) -> asyncio.Semaphore:
        sem = self._semaphores.get(source_key)
        if sem is not None:
            return sem
        default_limit = max(1, int(getattr(config, "CIRCLES_RPC_CONCURRENCY", 8) or 8))
        sem = asyncio.Semaphore(max(1, int(self._source_limits.get(source_key, default_limit))))
        self._semaphores[source_key] = sem
        return sem

    def _stats_row(self, source_key: str) -> HttpSourceStats:
        row = self._stats.get(source_key)
        if row is None:
            row = HttpSourceStats()
            self._stats[source_key] = row
        return row

    @staticmethod
    def _record_latency(stats: HttpSourceStats, started: float) -> None:
        elapsed_ms = max(0.0, (time.perf_counter() - started) * 1000.0)
        stats.latency_total_ms += elapsed_ms
        stats.latency_count += 1
        stats.latency_max_ms = max(stats.latency_max_ms, elapsed_ms)

    def snapshot_stats(self, reset: bool = False) -> dict[str, dict[str, int | float]]:
        out: dict[str, dict[str, int | float]] = {}
        for source, row in self._stats.items():
            total = int(row.ok + row.fail)
            err_pct = (float(row.fail) / total * 100.0) if total > 0 else 0.0
            out[source] = {
                "ok": int(row.ok),
                "fail": int(row.fail),
                "total": total,
                "rate_limited": int(row.rate_limited),
                "error_percent": round(err_pct, 2),
                "latency_avg_ms": round((row.latency_total_ms / row.latency_count), 2) if row.latency_count > 0 else 0.0,
                "latency_max_ms": round(float(row.latency_max_ms), 2),
            }
        if reset:
            self._stats = {}
        return out

    async def call_rpc(
        self,
        url: str,
        method: str,
        params: list[Any] | None = None,
        *,
        source: str = "default",
    ) -> Any:
        """Send one JSON-RPC request and return its ``result`` member.

        Raises RateLimitedError on HTTP 429 or a rate-limit RPC error and
        LedgerNetworkError on any other transport or protocol failure.
        """
        source_key = self._source_key(source)
        stats = self._stats_row(source_key)
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": list(params or [])}
        async with self._get_semaphore(source_key):
            started = time.perf_counter()
            try:
                session = await self._get_session()
                async with session.post(url, json=payload, headers=self._headers) as response:
                    status = int(response.status or 0)
                    if status == 429:
                        self._record_latency(stats, started)
                        stats.rate_limited += 1
                        stats.fail += 1
                        raise RateLimitedError(f"http_status_429 method={method}", status=status)
                    if status != 200:
                        self._record_latency(stats, started)
                        stats.fail += 1
                        raise LedgerNetworkError(f"http_status_{status} method={method}", status=status)
                    body = await response.json(content_type=None)
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
                self._record_latency(stats, started)
                stats.fail += 1
                raise LedgerNetworkError(f"http_error method={method}: {exc}") from exc
            self._record_latency(stats, started)

        if not isinstance(body, dict):
            stats.fail += 1
            raise LedgerNetworkError(f"malformed_rpc_response method={method}")
        error = body.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message") if isinstance(error, dict) else error
            stats.fail += 1
            if is_rate_limit_error(code, message):
                stats.rate_limited += 1
                raise RateLimitedError(f"rpc_rate_limited method={method}: {message}")
            raise LedgerNetworkError(f"rpc_error method={method} code={code}: {message}")
        stats.ok += 1
        logger.debug("RPC_OK source=%s method=%s", source_key, method)
        return body.get("result")
