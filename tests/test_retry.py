"""
Unit tests for apiclient/services/retry.py.

Covers retry eligibility by method and outcome, the fixed and exponential
delay schedules, Retry-After handling and budget exhaustion.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from apiclient.services.executor import HttpFailure, NetworkFailure, Success
from apiclient.services.retry import RetryPolicy, is_idempotent, parse_retry_after


def _http(status: int, headers: dict | None = None) -> HttpFailure:
    return HttpFailure(status, httpx.Response(status, headers=headers or {}))


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(
        max_retries=2,
        server_error_delay=0.5,
        rate_limit_base_delay=1.0,
        max_delay=30.0,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestIsIdempotent:

    @pytest.mark.parametrize("method", ["GET", "get", "HEAD"])
    def test_reads(self, method):
        assert is_idempotent(method)

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    def test_writes(self, method):
        assert not is_idempotent(method)


class TestParseRetryAfter:

    def test_seconds(self):
        assert parse_retry_after("5") == 5.0

    def test_fractional_seconds(self):
        assert parse_retry_after(" 1.5 ") == 1.5

    def test_negative_is_clamped(self):
        assert parse_retry_after("-3") == 0.0

    def test_missing_or_blank(self):
        assert parse_retry_after(None) is None
        assert parse_retry_after("") is None

    def test_garbage(self):
        assert parse_retry_after("soon") is None

    def test_http_date(self):
        now = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)
        header = format_datetime(now + timedelta(seconds=20), usegmt=True)
        assert parse_retry_after(header, now=now) == pytest.approx(20.0)

    def test_http_date_in_past(self):
        now = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)
        header = format_datetime(now - timedelta(seconds=20), usegmt=True)
        assert parse_retry_after(header, now=now) == 0.0


# ---------------------------------------------------------------------------
# decide()
# ---------------------------------------------------------------------------

class TestDecide:

    def test_success_is_terminal(self, policy):
        decision = policy.decide(Success({"ok": True}), "GET", policy.new_state())
        assert not decision.retry

    def test_server_error_on_get_retries_after_fixed_delay(self, policy):
        decision = policy.decide(_http(503), "GET", policy.new_state())
        assert decision.retry
        assert decision.delay == 0.5

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    @pytest.mark.parametrize("status", [500, 503, 429])
    def test_mutations_never_retry(self, policy, method, status):
        decision = policy.decide(_http(status), method, policy.new_state())
        assert not decision.retry

    def test_mutation_network_failure_not_retried(self, policy):
        decision = policy.decide(NetworkFailure("timeout"), "POST", policy.new_state())
        assert not decision.retry

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 409, 422])
    def test_client_errors_are_terminal(self, policy, status):
        decision = policy.decide(_http(status), "GET", policy.new_state())
        assert not decision.retry

    def test_network_failure_on_get_retries(self, policy):
        decision = policy.decide(NetworkFailure("connection"), "GET", policy.new_state())
        assert decision.retry
        assert decision.delay == 0.5

    def test_rate_limit_honors_retry_after(self, policy):
        decision = policy.decide(_http(429, {"Retry-After": "7"}), "GET", policy.new_state())
        assert decision.retry
        assert decision.delay == 7.0

    def test_long_retry_after_is_honored(self, policy):
        decision = policy.decide(
            _http(429, {"Retry-After": "120"}), "GET", policy.new_state()
        )
        assert decision.retry
        assert decision.delay == 120.0

    def test_retry_after_ceiling_is_opt_in(self):
        policy = RetryPolicy(max_delay=30.0, max_retry_after=60.0)
        decision = policy.decide(
            _http(429, {"Retry-After": "3600"}), "GET", policy.new_state()
        )
        assert decision.delay == 60.0

    def test_rate_limit_backoff_is_non_decreasing(self):
        policy = RetryPolicy(max_retries=6, rate_limit_base_delay=1.0, max_delay=30.0)
        state = policy.new_state()
        delays = []
        while True:
            decision = policy.decide(_http(429), "GET", state)
            if not decision.retry:
                break
            state.consume(decision.delay)
            delays.append(decision.delay)
        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]
        assert delays == sorted(delays)

    def test_budget_exhaustion_is_terminal(self, policy):
        state = policy.new_state()
        for _ in range(2):
            decision = policy.decide(_http(500), "GET", state)
            assert decision.retry
            state.consume(decision.delay)

        decision = policy.decide(_http(500), "GET", state)
        assert not decision.retry
        assert "exhausted" in decision.reason
        assert state.attempts_remaining == 0

    def test_zero_budget_never_retries(self):
        policy = RetryPolicy(max_retries=0)
        decision = policy.decide(_http(503), "GET", policy.new_state())
        assert not decision.retry


class TestBackoffDelay:

    def test_schedule(self, policy):
        assert [policy.backoff_delay(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_cap(self, policy):
        assert policy.backoff_delay(10) == 30.0
