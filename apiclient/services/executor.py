"""
RequestExecutor - Performs a single timeout-bound request attempt.

Each attempt produces a fresh, immutable outcome:
- Success: parsed JSON body (empty dict for empty or non-JSON bodies)
- NetworkFailure: no response received (timeout or connection error)
- HttpFailure: a response with status >= 400, kept for classification
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping
from urllib.parse import urlencode

import httpx
from loguru import logger


@dataclass(frozen=True)
class RequestDescriptor:
    """Everything needed to issue one logical request."""

    path: str
    credential: str
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    params: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", (self.method or "GET").upper())

    @property
    def full_path(self) -> str:
        """Path including any query parameters."""
        if not self.params:
            return self.path
        separator = "&" if "?" in self.path else "?"
        return f"{self.path}{separator}{urlencode(self.params, doseq=True)}"


@dataclass(frozen=True)
class Success:
    data: Any
    status: int = 200


@dataclass(frozen=True)
class NetworkFailure:
    reason: Literal["timeout", "connection"]
    detail: str = ""


@dataclass(frozen=True)
class HttpFailure:
    status: int
    response: httpx.Response


Outcome = Success | NetworkFailure | HttpFailure


def is_json_content_type(content_type: str | None) -> bool:
    """Check whether a Content-Type header denotes a JSON body."""
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


class RequestExecutor:
    """
    Issues exactly one network attempt per call.

    Usage:
        executor = RequestExecutor(httpx.AsyncClient(base_url=...))
        outcome = await executor.execute(descriptor, timeout=15.0)
    """

    def __init__(self, http_client: httpx.AsyncClient, debug: bool = False):
        self._http_client = http_client
        self._debug = debug

    def build_headers(self, descriptor: RequestDescriptor) -> dict[str, str]:
        """Merge caller headers with the bearer Authorization header."""
        if not descriptor.credential:
            raise ValueError("An authorization credential is required.")
        headers = {
            name: value
            for name, value in descriptor.headers.items()
            if name.lower() != "authorization"
        }
        headers["Authorization"] = f"Bearer {descriptor.credential}"
        return headers

    async def execute(self, descriptor: RequestDescriptor, timeout: float) -> Outcome:
        """
        Execute one attempt and classify its outcome.

        Args:
            descriptor: The request to send
            timeout: Seconds to wait for a response before abandoning it

        Returns:
            Success, NetworkFailure or HttpFailure

        Raises:
            ValueError: If the descriptor carries no credential or an invalid path
        """
        headers = self.build_headers(descriptor)
        body = descriptor.body
        content_kwargs: dict[str, Any] = {}
        if isinstance(body, (str, bytes)):
            content_kwargs["content"] = body
        elif body is not None:
            content_kwargs["json"] = body

        self._log(f"{descriptor.method} {descriptor.path} (timeout={timeout}s)")

        try:
            # wait_for cancels the attempt on expiry, so a late response is dropped
            response = await asyncio.wait_for(
                self._http_client.request(
                    descriptor.method,
                    descriptor.path,
                    params=descriptor.params,
                    headers=headers,
                    **content_kwargs,
                ),
                timeout=timeout,
            )

        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning(
                f"{descriptor.method} {descriptor.path} timed out after {timeout}s"
            )
            return NetworkFailure("timeout", str(e))

        except httpx.InvalidURL as e:
            raise ValueError(f"Invalid request path {descriptor.path!r}: {e}") from e

        except httpx.RequestError as e:
            logger.warning(
                f"{descriptor.method} {descriptor.path} failed: "
                f"{type(e).__name__}: {e}"
            )
            return NetworkFailure("connection", f"{type(e).__name__}: {e}")

        self._log(f"{descriptor.method} {descriptor.path} -> HTTP {response.status_code}")
        if response.status_code >= 400:
            return HttpFailure(response.status_code, response)

        return Success(self._parse_body(response), response.status_code)

    def _parse_body(self, response: httpx.Response) -> Any:
        """Parse a successful body, treating empty or non-JSON bodies as {}."""
        if not response.content:
            return {}
        if not is_json_content_type(response.headers.get("content-type")):
            return {}
        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"Discarding unparsable JSON body: {e}")
            return {}

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Executor] {message}")
