"""Bounded retry with exponential backoff for async operations."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay before retry number ``attempt + 1`` (attempt is 0-indexed)."""
    return max(0.0, float(base_delay)) * (2 ** max(0, int(attempt)))


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    base_delay: float,
    is_retryable: Callable[[BaseException], bool],
    on_exhausted: Callable[[BaseException, int], BaseException] | None = None,
    label: str = "",
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds, fails with a non-retryable error, or runs out of attempts.

    Non-retryable errors propagate on the first occurrence. When the last attempt
    fails with a retryable error, ``on_exhausted`` may translate it; otherwise the
    original error is re-raised.
    """
    total = max(1, int(attempts))
    for attempt in range(total):
        try:
            return await operation()
        except Exception as exc:
            if not is_retryable(exc):
                raise
            if attempt >= total - 1:
                logger.warning("RETRY_EXHAUSTED op=%s attempts=%s error=%s", label or "-", total, exc)
                if on_exhausted is not None:
                    raise on_exhausted(exc, total) from exc
                raise
            delay = backoff_delay(attempt, base_delay)
            logger.debug(
                "RETRY op=%s attempt=%s/%s delay=%.2fs error=%s",
                label or "-",
                attempt + 1,
                total,
                delay,
                exc,
            )
            await sleep(delay)
    raise RuntimeError("retry loop exited without result")  # pragma: no cover
