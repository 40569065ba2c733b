"""Bounded retry helpers for collaborators and the backing store."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from assessment_engine.errors import StorageTransient

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_seconds: float) -> float:
    """Return the exponential delay to wait after a failed attempt (1-based)."""
    return base_seconds * (2 ** (attempt - 1))


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    timeout_seconds: float,
    backoff_seconds: float,
    label: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run an awaitable factory with a per-call timeout and bounded retries.

    The last error is re-raised once every attempt has failed.
    """
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(operation(), timeout=timeout_seconds)
        except Exception as exc:  # noqa: BLE001
            last_error = exc
            logger.warning(
                "%s attempt %s/%s failed: %s", label, attempt, attempts, exc
            )
            if attempt < attempts:
                await sleep(backoff_delay(attempt, backoff_seconds))
    if last_error is None:
        raise RuntimeError(f"{label} was called with no attempts")
    raise last_error


def retry_storage(
    operation: Callable[[], T],
    *,
    attempts: int = 3,
    backoff_seconds: float = 0.2,
    label: str = "storage",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Retry a backing-store call on timeouts, then raise StorageTransient."""
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            logger.warning(
                "%s attempt %s/%s timed out: %s", label, attempt, attempts, exc
            )
            if attempt == attempts:
                raise StorageTransient(label) from exc
            sleep(backoff_delay(attempt, backoff_seconds))
    raise StorageTransient(label)
