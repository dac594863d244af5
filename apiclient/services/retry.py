"""
RetryPolicy - Decides whether a failed attempt is retried, and when.

Rules:
- Only idempotent reads (GET, HEAD) are retried automatically
- 5xx and transport failures: fixed delay
- 429: Retry-After hint if present, otherwise capped exponential backoff
- Other 4xx and successes are terminal
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from apiclient.services.executor import HttpFailure, NetworkFailure, Outcome, Success
from apiclient.settings import global_settings

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD"})


def is_idempotent(method: str) -> bool:
    """Check whether a method is safe to retry and deduplicate."""
    return method.upper() in IDEMPOTENT_METHODS


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """
    Parse a Retry-After header into seconds.

    Accepts delta-seconds ("5", "1.5") or an HTTP date. Returns None for a
    missing or unparsable value; negative waits are clamped to zero.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    try:
        return max(0.0, float(value))
    except ValueError:
        pass

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (retry_at - now).total_seconds())


@dataclass
class RetryState:
    """Retry bookkeeping for one logical request."""

    attempts_remaining: int
    attempt: int = 0  # retries performed so far
    delay: float = 0.0

    @property
    def exhausted(self) -> bool:
        return self.attempts_remaining <= 0

    def consume(self, delay: float) -> None:
        """Record that a retry is about to happen after ``delay`` seconds."""
        self.attempts_remaining -= 1
        self.attempt += 1
        self.delay = delay


@dataclass(frozen=True)
class RetryDecision:
    retry: bool
    delay: float = 0.0
    reason: str = ""


@dataclass
class RetryPolicy:
    """
    Retry configuration and decision logic.

    Usage:
        policy = RetryPolicy(max_retries=2)
        state = policy.new_state()
        decision = policy.decide(outcome, "GET", state)
        if decision.retry:
            state.consume(decision.delay)
            await asyncio.sleep(decision.delay)
    """

    max_retries: int = global_settings.api_max_retries
    server_error_delay: float = global_settings.api_server_error_delay
    rate_limit_base_delay: float = global_settings.api_rate_limit_base_delay
    max_delay: float = global_settings.api_max_retry_delay
    # Optional ceiling for server Retry-After hints; None honors them as given
    max_retry_after: float | None = None

    def new_state(self) -> RetryState:
        return RetryState(attempts_remaining=self.max_retries)

    def backoff_delay(self, retry_number: int) -> float:
        """Exponential delay for the given 1-based retry number, capped."""
        delay = self.rate_limit_base_delay * (2 ** max(0, retry_number - 1))
        return min(delay, self.max_delay)

    def rate_limit_delay(self, failure: HttpFailure, retry_number: int) -> float:
        """Delay before retrying a 429, preferring the server's Retry-After."""
        hint = parse_retry_after(failure.response.headers.get("retry-after"))
        if hint is not None:
            if self.max_retry_after is not None:
                return min(hint, self.max_retry_after)
            return hint
        return self.backoff_delay(retry_number)

    def decide(self, outcome: Outcome, method: str, state: RetryState) -> RetryDecision:
        """
        Decide whether to retry after an attempt.

        Args:
            outcome: Result of the attempt that just finished
            method: HTTP method of the logical request
            state: Retry state for this logical request

        Returns:
            RetryDecision; retry is False for terminal outcomes, including
            retryable ones once the budget is exhausted
        """
        if isinstance(outcome, Success):
            return RetryDecision(False, reason="success")

        if not is_idempotent(method):
            return RetryDecision(False, reason=f"{method.upper()} is not retried")

        if isinstance(outcome, NetworkFailure):
            delay = self.server_error_delay
            reason = f"network {outcome.reason}"
        elif outcome.status == 429:
            delay = self.rate_limit_delay(outcome, state.attempt + 1)
            reason = "rate limited"
        elif outcome.status >= 500:
            delay = self.server_error_delay
            reason = f"server error {outcome.status}"
        else:
            return RetryDecision(False, reason=f"client error {outcome.status}")

        if state.exhausted:
            return RetryDecision(False, reason=f"{reason}, retry budget exhausted")

        return RetryDecision(True, delay=delay, reason=reason)
