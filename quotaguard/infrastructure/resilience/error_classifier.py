"""Classifies upstream failures into retry categories.

Precedence is status code first, message text second: an explicit 401/403
is an auth failure even when the message also mentions rate limits. Message
heuristics only apply when the status is absent or not one of the
recognised codes, since SDKs surface rate-limit signals inconsistently.
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Optional, Tuple

import httpx

from quotaguard.domain.models.common import ClassifiedError, ErrorKind

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS = 429
AUTH_STATUSES = (401, 403)
TRANSIENT_STATUSES = (500, 502, 503, 504)

# Order matters: the daily quota check runs before the generic rate-limit
# patterns, which also contain "quota exceeded".
QUOTA_PHRASE = "quota exceeded"
DAILY_MARKERS = ("daily", "per day", "today", "tomorrow")
RATE_LIMIT_PATTERNS = (
    "rate limit",
    "ratelimitexceeded",
    "quota exceeded",
    "user-rate limit",
    "daily limit",
    "too many requests",
)
AUTH_PATTERNS = ("invalid_grant", "invalid_token", "unauthorized", "forbidden")
TRANSIENT_PATTERNS = ("network", "fetch", "timeout", "connection reset", "econnreset")

TRANSIENT_EXCEPTIONS: Tuple[type, ...] = (
    httpx.TransportError,
    ConnectionError,
    asyncio.TimeoutError,
)

USER_MESSAGES = {
    ErrorKind.AUTH_EXPIRED: "Please reconnect your Gmail account.",
    ErrorKind.QUOTA_EXCEEDED: "Daily quota reached. Please try again tomorrow.",
    ErrorKind.RATE_LIMITED: "Service temporarily unavailable, please retry.",
    ErrorKind.TRANSIENT: "Service temporarily unavailable, please retry.",
    ErrorKind.UNKNOWN: "Something went wrong. Please try again.",
}


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _lookup(error: Any, name: str) -> Any:
    if isinstance(error, Mapping):
        return error.get(name)
    return getattr(error, name, None)


def extract_status(error: Any) -> Optional[int]:
    """Finds an HTTP-like status on the error, whatever SDK produced it."""
    for name in ("status", "status_code", "code"):
        status = _as_int(_lookup(error, name))
        if status is not None:
            return status
    response = _lookup(error, "response")
    if response is not None:
        return _as_int(getattr(response, "status_code", None))
    return None


def extract_message(error: Any) -> str:
    message = _lookup(error, "message")
    if isinstance(message, str) and message:
        return message
    if isinstance(error, Mapping):
        return str(error.get("error", "") or "")
    return str(error)


def parse_retry_after(value: Any) -> Optional[int]:
    """Converts a Retry-After value in seconds to milliseconds.

    HTTP-date values are not supported and yield None.
    """
    if value is None:
        return None
    try:
        seconds = float(str(value).strip())
    except ValueError:
        return None
    if seconds < 0:
        return None
    return int(seconds * 1000)


def extract_retry_after_ms(error: Any) -> Optional[int]:
    explicit = _as_int(_lookup(error, "retry_after_ms"))
    if explicit is not None:
        return explicit
    candidates = [_lookup(error, "headers")]
    response = _lookup(error, "response")
    if response is not None:
        candidates.append(getattr(response, "headers", None))
    for headers in candidates:
        if not headers:
            continue
        try:
            value = headers.get("Retry-After")
            if value is None:
                value = headers.get("retry-after")
        except AttributeError:
            continue
        parsed = parse_retry_after(value)
        if parsed is not None:
            return parsed
    return None


def _kind_from_message(text: str) -> Optional[ErrorKind]:
    if QUOTA_PHRASE in text and any(marker in text for marker in DAILY_MARKERS):
        return ErrorKind.QUOTA_EXCEEDED
    if any(pattern in text for pattern in RATE_LIMIT_PATTERNS):
        return ErrorKind.RATE_LIMITED
    if any(pattern in text for pattern in AUTH_PATTERNS):
        return ErrorKind.AUTH_EXPIRED
    if any(pattern in text for pattern in TRANSIENT_PATTERNS):
        return ErrorKind.TRANSIENT
    return None


def classify(error: Any) -> ClassifiedError:
    """Maps an error object to a ClassifiedError.

    Accepts exceptions exposing `.status`/`.status_code`/`.code`, httpx
    errors carrying a response, or plain mappings such as
    `{"status": 429, "message": "..."}`. Pure: the result depends only on
    the error itself.
    """
    status = extract_status(error)
    message = extract_message(error)
    retry_after_ms = extract_retry_after_ms(error)

    if status == RATE_LIMIT_STATUS:
        kind = ErrorKind.RATE_LIMITED
    elif status in AUTH_STATUSES:
        kind = ErrorKind.AUTH_EXPIRED
    else:
        text = message.lower()
        code = _lookup(error, "code")
        if isinstance(code, str) and _as_int(code) is None:
            # Symbolic codes, e.g. ECONNRESET
            text = f"{text} {code.lower()}"
        kind = _kind_from_message(text)
        if kind is None:
            if status in TRANSIENT_STATUSES or isinstance(error, TRANSIENT_EXCEPTIONS):
                kind = ErrorKind.TRANSIENT
            else:
                kind = ErrorKind.UNKNOWN

    return ClassifiedError(
        kind=kind,
        raw=error,
        retry_after_ms=retry_after_ms,
        status=status,
        message=message,
    )


def is_retryable(kind: ErrorKind) -> bool:
    return kind in (ErrorKind.RATE_LIMITED, ErrorKind.TRANSIENT)


def user_message(kind: ErrorKind) -> str:
    """Text the application boundary shows for a failure kind."""
    return USER_MESSAGES[kind]
