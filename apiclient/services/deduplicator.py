"""
RequestDeduplicator - Prevents duplicate concurrent read requests.

When multiple callers request the same resource with the same credential
simultaneously, only one request chain runs and every caller receives
its result, or the same exception.
"""

import asyncio
import hashlib
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


def make_dedupe_key(path: str, credential: str) -> str:
    """
    Build the dedupe key for a path (including query string) and credential.

    The credential is hashed so keys can be logged without leaking tokens.
    """
    digest = hashlib.sha256(credential.encode()).hexdigest()[:16]
    return f"{path}#{digest}"


class RequestDeduplicator:
    """
    Deduplicates concurrent async requests.

    Usage:
        dedup = RequestDeduplicator()

        async def fetch_drivers(token: str):
            return await dedup.dedupe(
                key=make_dedupe_key("/schools/5/drivers", token),
                request_fn=lambda: client.fetch("/schools/5/drivers", token),
            )
    """

    def __init__(self, debug: bool = False):
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._lock = asyncio.Lock()
        self._debug = debug
        self._stats = DeduplicatorStats()

    def acquire(self, key: str) -> asyncio.Task[Any] | None:
        """Get the in-flight task for a key, if any."""
        return self._in_flight.get(key)

    def register(self, key: str, task: asyncio.Task[Any]) -> None:
        """Register a pending task as the shared result for a key."""
        if key in self._in_flight:
            raise KeyError(f"Request already in flight: {key[:50]}")
        self._in_flight[key] = task

    def release(self, key: str, task: asyncio.Task[Any] | None = None) -> bool:
        """
        Remove the entry for a key.

        When ``task`` is given, the entry is only removed if it still
        belongs to that task.
        """
        current = self._in_flight.get(key)
        if current is None or (task is not None and current is not task):
            return False
        del self._in_flight[key]
        return True

    async def dedupe(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Execute request with deduplication.

        If a request with the same key is already in flight,
        wait for and return its result instead of making a new request.

        Args:
            key: Dedupe key, see make_dedupe_key
            request_fn: Async function to execute if no duplicate exists

        Returns:
            Result from request_fn (either fresh or from in-flight request)
        """
        async with self._lock:
            task = self.acquire(key)
            if task is not None:
                self._stats.deduplicated += 1
                self._log(f"DEDUPE: Waiting for in-flight request: {key[:50]}...")
            else:
                self._stats.total += 1
                self._log(f"NEW: Starting request: {key[:50]}...")
                task = asyncio.create_task(self._execute_and_cleanup(key, request_fn))
                self.register(key, task)

        # A cancelled waiter must not cancel the request shared with others
        return await asyncio.shield(task)

    async def _execute_and_cleanup(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """Execute request and clean up when done."""
        try:
            return await request_fn()
        finally:
            async with self._lock:
                self.release(key, asyncio.current_task())
                self._log(f"DONE: Request completed: {key[:50]}...")

    def get_in_flight_count(self) -> int:
        """Get number of in-flight requests."""
        return len(self._in_flight)

    def get_in_flight_keys(self) -> list[str]:
        """Get keys of all in-flight requests."""
        return list(self._in_flight.keys())

    def get_stats(self) -> "DeduplicatorStats":
        """Get deduplication statistics."""
        self._stats.in_flight = len(self._in_flight)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Deduplicator] {message}")


class DeduplicatorStats:
    """Statistics for request deduplication."""

    def __init__(self):
        self.total: int = 0  # Request chains actually started
        self.deduplicated: int = 0  # Callers attached to an existing chain
        self.in_flight: int = 0

    @property
    def dedup_rate(self) -> float:
        """Calculate deduplication rate."""
        total = self.total + self.deduplicated
        if total == 0:
            return 0.0
        return self.deduplicated / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_requests": self.total,
            "deduplicated": self.deduplicated,
            "in_flight": self.in_flight,
            "dedup_rate": f"{self.dedup_rate:.2%}",
        }
