"""
ApiClient - Async client for the backend JSON API.

Combines:
- RequestExecutor for single timeout-bound attempts
- RetryPolicy for bounded retries of idempotent reads
- RequestDeduplicator for concurrent read coalescing
- SessionGuard for debounced sign-out on expired sessions
"""

import asyncio
from typing import Any, Awaitable, Callable, Mapping

import httpx
from loguru import logger

from apiclient.services.deduplicator import RequestDeduplicator, make_dedupe_key
from apiclient.services.errors import ApiError
from apiclient.services.executor import RequestDescriptor, RequestExecutor, Success
from apiclient.services.retry import RetryPolicy, is_idempotent
from apiclient.services.session_guard import SessionExpiredHandler, SessionGuard
from apiclient.settings import global_settings


class ClientStats:
    """Counters for requests made through a client."""

    def __init__(self):
        self.requests: int = 0  # Logical requests that reached the network
        self.attempts: int = 0  # Network attempts, retries included
        self.retries: int = 0
        self.failures: int = 0  # Requests that ended in an ApiError

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "requests": self.requests,
            "attempts": self.attempts,
            "retries": self.retries,
            "failures": self.failures,
        }


class ApiClient:
    """
    HTTP client with retries, deduplication and session handling.

    Usage:
        async with ApiClient(on_session_expired=sign_out) as client:
            drivers = await client.get("/schools/5/drivers", token)

            await client.patch(
                "/bookings/12",
                token,
                body={"status": "cancelled"},
            )

    Every failure surfaces as ApiError.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        retry_policy: RetryPolicy | None = None,
        session_guard: SessionGuard | None = None,
        on_session_expired: SessionExpiredHandler | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        debug: bool | None = None,
    ):
        self._base_url = base_url or global_settings.api_base_url
        self._timeout = timeout if timeout is not None else global_settings.api_request_timeout
        self._debug = global_settings.debug if debug is None else debug
        self._sleep = sleep

        # Initialize components
        self._retry_policy = retry_policy or RetryPolicy()
        self._session_guard = session_guard or SessionGuard(on_session_expired)
        self._deduplicator = RequestDeduplicator(debug=self._debug)
        self._stats = ClientStats()

        # HTTP client (lazy initialization unless injected)
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._executor: RequestExecutor | None = None

        # Attempt chains in flight; close() waits for them to settle
        self._active_chains = 0
        self._settled = asyncio.Event()
        self._settled.set()

    def _get_executor(self) -> RequestExecutor:
        """Get or create the executor and its HTTP client."""
        if self._executor is None:
            if self._http_client is None:
                # Timeouts are enforced per attempt by the executor
                self._http_client = httpx.AsyncClient(
                    base_url=self._base_url,
                    timeout=None,
                    follow_redirects=True,
                )
            self._executor = RequestExecutor(self._http_client, debug=self._debug)
        return self._executor

    async def request(
        self,
        path: str,
        credential: str,
        *,
        method: str = "GET",
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """
        Make an API request.

        Args:
            path: Resource path relative to the base URL, may include a query
            credential: Bearer token of the calling session
            method: HTTP method (default GET)
            body: JSON-serializable body, or str/bytes sent as-is
            headers: Additional headers
            params: Query parameters
            timeout: Override the per-attempt timeout in seconds

        Returns:
            Parsed JSON body, or an empty dict for empty/non-JSON responses

        Raises:
            ApiError: For any network or HTTP failure
            ValueError: If no credential is given or the path is not a valid URL
        """
        if not credential:
            raise ValueError("An authorization credential is required.")

        descriptor = RequestDescriptor(
            path=path,
            credential=credential,
            method=method,
            headers=dict(headers or {}),
            body=body,
            params=params,
        )
        req_timeout = timeout if timeout is not None else self._timeout

        async def do_request() -> Any:
            return await self._execute_with_retry(descriptor, req_timeout)

        if is_idempotent(descriptor.method):
            key = make_dedupe_key(f"{descriptor.method} {descriptor.full_path}", credential)
            return await self._deduplicator.dedupe(key, do_request)
        return await do_request()

    async def _execute_with_retry(self, descriptor: RequestDescriptor, timeout: float) -> Any:
        """Run attempts until success or a terminal failure."""
        self._active_chains += 1
        self._settled.clear()
        try:
            return await self._run_attempts(descriptor, timeout)
        finally:
            self._active_chains -= 1
            if self._active_chains == 0:
                self._settled.set()

    async def _run_attempts(self, descriptor: RequestDescriptor, timeout: float) -> Any:
        executor = self._get_executor()
        state = self._retry_policy.new_state()
        self._stats.requests += 1

        while True:
            self._stats.attempts += 1
            outcome = await executor.execute(descriptor, timeout)
            if isinstance(outcome, Success):
                return outcome.data

            decision = self._retry_policy.decide(outcome, descriptor.method, state)
            if not decision.retry:
                break

            state.consume(decision.delay)
            self._stats.retries += 1
            logger.warning(
                f"Retrying {descriptor.method} {descriptor.path} in {decision.delay:.2f}s "
                f"({decision.reason}, retry {state.attempt}/{self._retry_policy.max_retries})"
            )
            await self._sleep(decision.delay)

        error = ApiError.from_outcome(outcome)
        self._stats.failures += 1
        logger.warning(
            f"{descriptor.method} {descriptor.path} failed with status {error.status} "
            f"[{error.code}]: {decision.reason}"
        )
        await self._session_guard.notify(error.status)
        raise error

    async def get(self, path: str, credential: str, **kwargs: Any) -> Any:
        return await self.request(path, credential, method="GET", **kwargs)

    async def post(self, path: str, credential: str, **kwargs: Any) -> Any:
        return await self.request(path, credential, method="POST", **kwargs)

    async def put(self, path: str, credential: str, **kwargs: Any) -> Any:
        return await self.request(path, credential, method="PUT", **kwargs)

    async def patch(self, path: str, credential: str, **kwargs: Any) -> Any:
        return await self.request(path, credential, method="PATCH", **kwargs)

    async def delete(self, path: str, credential: str, **kwargs: Any) -> Any:
        return await self.request(path, credential, method="DELETE", **kwargs)

    async def close(self) -> None:
        """
        Close the HTTP client and cleanup resources.

        In-flight requests are not cancelled; close waits for them to settle
        so their callers still receive a result or an ApiError.
        """
        if self._active_chains:
            logger.debug(f"Waiting for {self._active_chains} in-flight requests before closing")
            await self._settled.wait()
        if self._http_client and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None
            self._executor = None
        logger.debug("ApiClient closed")

    async def __aenter__(self) -> "ApiClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def get_stats(self) -> dict[str, Any]:
        """Get request, deduplication and session statistics."""
        return {
            "client": self._stats.to_dict(),
            "deduplicator": self._deduplicator.get_stats().to_dict(),
            "session_redirects": self._session_guard.trigger_count,
        }
