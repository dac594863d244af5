"""
Service layer infrastructure - resilience patterns for backend API calls.

Provides:
- ApiError: Typed error surfaced for every failure
- RequestExecutor: Single timeout-bound request attempt
- RetryPolicy: Bounded retries with fixed and exponential backoff
- RequestDeduplicator: Prevents duplicate concurrent reads
- SessionGuard: Debounced sign-out on expired sessions
- ApiClient: Unified client combining all patterns
"""

from apiclient.services.errors import (
    ServiceError,
    ApiError,
    ErrorCategory,
    categorize_status,
    default_message,
    get_error_message,
    is_api_error,
)
from apiclient.services.executor import (
    RequestDescriptor,
    RequestExecutor,
    Success,
    NetworkFailure,
    HttpFailure,
    Outcome,
)
from apiclient.services.retry import (
    RetryPolicy,
    RetryState,
    RetryDecision,
    is_idempotent,
    parse_retry_after,
)
from apiclient.services.deduplicator import RequestDeduplicator, make_dedupe_key
from apiclient.services.session_guard import SessionGuard, sign_out_handler
from apiclient.services.client import ApiClient

__all__ = [
    # Errors
    "ServiceError",
    "ApiError",
    "ErrorCategory",
    "categorize_status",
    "default_message",
    "get_error_message",
    "is_api_error",
    # Executor
    "RequestDescriptor",
    "RequestExecutor",
    "Success",
    "NetworkFailure",
    "HttpFailure",
    "Outcome",
    # Retry
    "RetryPolicy",
    "RetryState",
    "RetryDecision",
    "is_idempotent",
    "parse_retry_after",
    # Deduplicator
    "RequestDeduplicator",
    "make_dedupe_key",
    # Session
    "SessionGuard",
    "sign_out_handler",
    # Client
    "ApiClient",
]
