"""Implementation of a per-client rate limiter.

Controls how often each client may hit an endpoint using a fixed window:
the first request opens a window of `window_seconds`, and at most
`max_requests` are admitted until it closes.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Dict

from quotaguard.domain.models.common import ClientId, Clock, WindowCheck

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 100
DEFAULT_WINDOW_SECONDS = 15 * 60


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed-window rate limiter keyed by client id."""

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        message: str = "Too many requests",
        clock: Clock = time.time,
    ):
        """Initializes the rate limiter.

        Args:
            max_requests: Maximum number of requests allowed in a window.
            window_seconds: Window length in seconds.
            message: Text returned to rejected clients.
            clock: Time source in seconds; wall clock so reset times can be
                published in headers.
        """
        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError("Max requests and window must be positive.")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message
        self._clock = clock
        self._windows: Dict[ClientId, _Window] = {}
        logger.debug(f"RateLimiter initialized: {max_requests} requests / {window_seconds} seconds")

    def _cleanup(self, now: float) -> None:
        """Removes windows that have closed."""
        expired = [client for client, window in self._windows.items() if window.reset_at <= now]
        for client in expired:
            del self._windows[client]

    def check(self, client_id: str) -> WindowCheck:
        """Counts a request for `client_id` and reports whether it is allowed."""
        now = self._clock()
        self._cleanup(now)
        key = ClientId(client_id or "unknown")

        window = self._windows.get(key)
        if window is None:
            window = _Window(count=1, reset_at=now + self.window_seconds)
            self._windows[key] = window
            return WindowCheck(True, self.max_requests, self.max_requests - 1, window.reset_at)

        if window.count >= self.max_requests:
            logger.debug(f"Rate limit reached for client {key}")
            return WindowCheck(False, self.max_requests, 0, window.reset_at)

        window.count += 1
        return WindowCheck(True, self.max_requests, self.max_requests - window.count, window.reset_at)

    def retry_after_seconds(self, result: WindowCheck) -> int:
        return max(0, math.ceil(result.reset_at - self._clock()))

    @staticmethod
    def headers(result: WindowCheck) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(math.ceil(result.reset_at)),
        }


def build_default_limiters(clock: Clock = time.time) -> Dict[str, RateLimiter]:
    """Pre-configured limiters for the application's endpoint groups."""
    return {
        "general": RateLimiter(100, 15 * 60, "Too many requests from this IP", clock),
        "places": RateLimiter(10, 60, "Google Places API rate limit exceeded", clock),
        "auth": RateLimiter(5, 15 * 60, "Too many authentication attempts", clock),
        "upload": RateLimiter(5, 60, "Too many file uploads", clock),
    }


def limiter_for_path(path: str, limiters: Dict[str, RateLimiter]) -> RateLimiter:
    """Selects the limiter guarding an API path."""
    if "/api/auth/" in path:
        return limiters["auth"]
    if "/api/google-places" in path or "/api/google-place-details" in path:
        return limiters["places"]
    if "/api/upload" in path or "/api/vendor-photos" in path:
        return limiters["upload"]
    return limiters["general"]
