"""
Service layer exceptions.

ApiError is the only failure that leaves the client. It carries the HTTP
status (0 for transport-level failures), a machine-readable code, optional
structured details and a ready-to-display message.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import httpx

    from apiclient.services.executor import Outcome


class ServiceError(Exception):
    """Base exception for service layer errors."""

    pass


class ErrorCategory(str, Enum):
    """User-facing error categories."""

    NETWORK = "network"
    VALIDATION = "validation"
    AUTHENTICATION_EXPIRED = "authentication_expired"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"
    SERVER = "server"
    UNKNOWN = "unknown"


NETWORK_ERROR_MESSAGE = (
    "Unable to connect to the server. Please check your internet connection."
)
TIMEOUT_MESSAGE = "The server took too long to respond. Please try again."
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred. Please try again."

_STATUS_CATEGORIES: dict[int, ErrorCategory] = {
    0: ErrorCategory.NETWORK,
    400: ErrorCategory.VALIDATION,
    401: ErrorCategory.AUTHENTICATION_EXPIRED,
    403: ErrorCategory.FORBIDDEN,
    404: ErrorCategory.NOT_FOUND,
    409: ErrorCategory.CONFLICT,
    422: ErrorCategory.VALIDATION,
    429: ErrorCategory.RATE_LIMITED,
}

_CATEGORY_CODES: dict[ErrorCategory, str] = {
    ErrorCategory.NETWORK: "NETWORK_ERROR",
    ErrorCategory.VALIDATION: "VALIDATION_ERROR",
    ErrorCategory.AUTHENTICATION_EXPIRED: "AUTHENTICATION_EXPIRED",
    ErrorCategory.FORBIDDEN: "FORBIDDEN",
    ErrorCategory.NOT_FOUND: "NOT_FOUND",
    ErrorCategory.CONFLICT: "CONFLICT",
    ErrorCategory.RATE_LIMITED: "RATE_LIMITED",
    ErrorCategory.SERVER: "SERVER_ERROR",
    ErrorCategory.UNKNOWN: "UNKNOWN_ERROR",
}

_DEFAULT_MESSAGES: dict[int, str] = {
    0: NETWORK_ERROR_MESSAGE,
    400: "The request was invalid. Please check your input.",
    401: "Your session has expired. Please sign in again.",
    403: "You do not have permission to perform this action.",
    404: "The requested resource was not found.",
    409: "A conflict occurred. The resource may already exist.",
    422: "The provided data is invalid. Please check and try again.",
    429: "Too many requests. Please wait a moment and try again.",
    500: "An internal server error occurred. Please try again later.",
    502: "The server is temporarily unavailable. Please try again in a few moments.",
    503: "The server is temporarily unavailable. Please try again in a few moments.",
    504: "The server is temporarily unavailable. Please try again in a few moments.",
}


def categorize_status(status: int) -> ErrorCategory:
    """Map an HTTP status (0 for transport failures) to its category."""
    if status >= 500:
        return ErrorCategory.SERVER
    return _STATUS_CATEGORIES.get(status, ErrorCategory.UNKNOWN)


def default_message(status: int) -> str:
    """Get a user-friendly message for an HTTP status."""
    message = _DEFAULT_MESSAGES.get(status)
    if message is not None:
        return message
    if status >= 500:
        return _DEFAULT_MESSAGES[500]
    return f"Request failed (error {status}). Please try again."


def parse_error_payload(response: "httpx.Response") -> dict[str, Any]:
    """
    Extract message, code and details from a failed response body.

    Recognizes the common shapes ``{"error": ...}``, ``{"message": ...}``
    and ``{"detail": ...}`` with optional ``code`` and ``errors``/``details``
    keys. Returns an empty dict when the body is not a JSON object.
    """
    try:
        data = response.json()
    except ValueError:
        return {}
    if not isinstance(data, dict):
        return {}

    # {"error": {"message": ..., "code": ...}}
    nested = data.get("error")
    if isinstance(nested, dict):
        data = {**data, **nested}
        data.pop("error", None)

    payload: dict[str, Any] = {}
    for key in ("error", "message", "detail"):
        value = data.get(key)
        if isinstance(value, str) and value:
            payload["message"] = value
            break

    if data.get("code") is not None:
        payload["code"] = str(data["code"])

    details = data.get("errors", data.get("details"))
    if details is None and data.get("detail") is not None and "message" not in payload:
        # FastAPI-style validation errors put a list under "detail"
        details = data["detail"]
    if details is not None:
        payload["details"] = details

    return payload


class ApiError(ServiceError):
    """
    Typed API error with status, code and details.

    All attributes are read-only once the error is constructed.
    """

    def __init__(
        self,
        message: str,
        status: int,
        code: str | None = None,
        details: Any = None,
    ):
        self._message = message
        self._status = status
        self._category = categorize_status(status)
        self._code = code or _CATEGORY_CODES[self._category]
        self._details = details
        super().__init__(message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def status(self) -> int:
        return self._status

    @property
    def code(self) -> str:
        return self._code

    @property
    def details(self) -> Any:
        return self._details

    @property
    def category(self) -> ErrorCategory:
        return self._category

    @property
    def is_network_error(self) -> bool:
        """Connection or timeout failure, no response received."""
        return self._status == 0

    @property
    def is_auth_error(self) -> bool:
        """The caller needs to re-authenticate."""
        return self._status == 401

    @property
    def is_forbidden(self) -> bool:
        return self._status == 403

    @property
    def is_not_found(self) -> bool:
        return self._status == 404

    @property
    def is_validation_error(self) -> bool:
        return self._status in (400, 422)

    @property
    def is_conflict(self) -> bool:
        return self._status == 409

    @property
    def is_rate_limited(self) -> bool:
        return self._status == 429

    @property
    def is_server_error(self) -> bool:
        return self._status >= 500

    @classmethod
    def network(cls, timed_out: bool = False) -> "ApiError":
        """Build the status-0 error for a transport failure."""
        if timed_out:
            return cls(TIMEOUT_MESSAGE, 0, code="TIMEOUT")
        return cls(NETWORK_ERROR_MESSAGE, 0, code="NETWORK_ERROR")

    @classmethod
    def from_response(cls, response: "httpx.Response") -> "ApiError":
        """Build an error from a failed HTTP response."""
        status = response.status_code
        payload = parse_error_payload(response)
        return cls(
            payload.get("message") or default_message(status),
            status,
            code=payload.get("code"),
            details=payload.get("details"),
        )

    @classmethod
    def from_outcome(cls, outcome: "Outcome") -> "ApiError":
        """Convert a terminal failure outcome into an ApiError."""
        from apiclient.services.executor import HttpFailure, NetworkFailure

        if isinstance(outcome, NetworkFailure):
            return cls.network(timed_out=outcome.reason == "timeout")
        if isinstance(outcome, HttpFailure):
            return cls.from_response(outcome.response)
        raise TypeError(f"Cannot build an ApiError from {type(outcome).__name__}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "message": self._message,
            "status": self._status,
            "code": self._code,
            "category": self._category.value,
            "details": self._details,
        }

    def __repr__(self) -> str:
        return f"ApiError(status={self._status}, code={self._code!r}, message={self._message!r})"


def is_api_error(error: object) -> bool:
    """Check whether an object is an ApiError."""
    return isinstance(error, ApiError)


def get_error_message(error: object) -> str:
    """Get a user-friendly message from any error."""
    if isinstance(error, ApiError):
        return error.message
    if isinstance(error, Exception) and str(error):
        return str(error)
    return UNEXPECTED_ERROR_MESSAGE
