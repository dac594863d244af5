"""
SessionGuard - Signs the user out once per cooldown window on 401s.

A burst of requests failing with an expired token must produce a single
sign-out/redirect, not one per request. The side effect itself is
injected, so the guard does not depend on any storage or navigation API.
"""

import inspect
import time
from typing import Any, Awaitable, Callable, MutableMapping

from loguru import logger

from apiclient.settings import global_settings

SessionExpiredHandler = Callable[[], Awaitable[None] | None]


def sign_out_handler(
    storage: MutableMapping[str, Any],
    navigate: Callable[[str], Any],
    token_key: str = global_settings.session_token_key,
    sign_in_path: str = global_settings.sign_in_path,
) -> Callable[[], Any]:
    """
    Build the default sign-out side effect.

    Removes the persisted session token from ``storage`` and navigates to
    the sign-in path. ``navigate`` may be sync or async.
    """

    def handler() -> Any:
        storage.pop(token_key, None)
        return navigate(sign_in_path)

    return handler


class SessionGuard:
    """
    Debounces the session-expired side effect.

    Usage:
        guard = SessionGuard(on_session_expired=sign_out_handler(store, router.push))
        await guard.notify(error.status)
    """

    def __init__(
        self,
        on_session_expired: SessionExpiredHandler | None = None,
        cooldown: float = global_settings.session_redirect_cooldown,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._on_session_expired = on_session_expired
        self._cooldown = cooldown
        self._clock = clock
        self._last_triggered_at: float | None = None
        self._trigger_count = 0

    @property
    def last_triggered_at(self) -> float | None:
        return self._last_triggered_at

    @property
    def trigger_count(self) -> int:
        return self._trigger_count

    def should_trigger(self, status: int) -> bool:
        """Check whether a terminal status should fire the side effect now."""
        if status != 401:
            return False
        if self._last_triggered_at is None:
            return True
        return self._clock() - self._last_triggered_at >= self._cooldown

    async def notify(self, status: int) -> bool:
        """
        Inspect a terminal failure status.

        Returns:
            True if the sign-out side effect fired for this call
        """
        if not self.should_trigger(status):
            return False

        # Claim the window before the first await so concurrent 401s see it
        self._last_triggered_at = self._clock()
        self._trigger_count += 1
        logger.info("Session expired, signing out")

        if self._on_session_expired is None:
            return True

        try:
            result = self._on_session_expired()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Session expired handler failed: {type(e).__name__}: {e}")
        return True

    def reset(self) -> None:
        """Forget the last trigger, e.g. after a fresh sign-in."""
        self._last_triggered_at = None
