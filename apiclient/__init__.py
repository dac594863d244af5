"""
apiclient - resilient async client for the backend JSON API.
"""

from apiclient.services import (
    ApiClient,
    ApiError,
    ErrorCategory,
    RetryPolicy,
    SessionGuard,
    get_error_message,
    is_api_error,
    sign_out_handler,
)

__all__ = [
    "ApiClient",
    "ApiError",
    "ErrorCategory",
    "RetryPolicy",
    "SessionGuard",
    "get_error_message",
    "is_api_error",
    "sign_out_handler",
]
