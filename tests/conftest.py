"""
Shared pytest fixtures for the API client tests.

The network is faked with httpx.MockTransport; handlers receive the
outgoing httpx.Request and return an httpx.Response (or raise an httpx
transport error). Backoff sleeps are recorded instead of awaited.
"""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from apiclient.services.client import ApiClient
from apiclient.services.retry import RetryPolicy
from apiclient.services.session_guard import SessionGuard

BASE_URL = "http://api.test"


class SleepRecorder:
    """Stands in for asyncio.sleep and records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it was handed."""

    def __init__(self, handler: Callable[[httpx.Request], Any]):
        self.requests: list[httpx.Request] = []

        async def recording_handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            response = handler(request)
            if not isinstance(response, httpx.Response):
                response = await response
            return response

        super().__init__(recording_handler)

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_retries=2,
        server_error_delay=0.5,
        rate_limit_base_delay=1.0,
        max_delay=30.0,
    )


@pytest.fixture
def make_client(sleep_recorder, retry_policy):
    """
    Factory building an ApiClient over a RecordingTransport.

    Returns (client, transport). Extra keyword arguments go to ApiClient.
    """

    def _make(handler, **kwargs) -> tuple[ApiClient, RecordingTransport]:
        transport = RecordingTransport(handler)
        http_client = httpx.AsyncClient(transport=transport, base_url=BASE_URL)
        kwargs.setdefault("retry_policy", retry_policy)
        kwargs.setdefault("sleep", sleep_recorder)
        kwargs.setdefault("timeout", 5.0)
        kwargs.setdefault("session_guard", SessionGuard(cooldown=5.0))
        client = ApiClient(base_url=BASE_URL, http_client=http_client, **kwargs)
        return client, transport

    return _make
