"""Exceptions raised by the resilience layer.

Callers at the application boundary pattern-match on `ClassifiedApiError.kind`
to decide between a re-authentication prompt, a "try again tomorrow" notice,
or a generic retry message.
"""

from typing import Any, Mapping, Optional

from quotaguard.domain.models.common import ClassifiedError, ErrorKind


class QuotaGuardError(Exception):
    """Base class for all quotaguard errors."""


class UpstreamError(QuotaGuardError):
    """An HTTP-like failure returned by an upstream API."""

    def __init__(
        self,
        status: Optional[int],
        message: str,
        retry_after_ms: Optional[int] = None,
        headers: Optional[Mapping[str, str]] = None,
    ):
        self.status = status
        self.message = message
        self.retry_after_ms = retry_after_ms
        self.headers = dict(headers or {})
        super().__init__(f"[{status}] {message}" if status is not None else message)


class ClassifiedApiError(QuotaGuardError):
    """Final failure of a call, carrying its classification.

    The original exception is kept as `raw` and chained as `__cause__`.
    """

    def __init__(self, classified: ClassifiedError, attempts: int = 1):
        self.classified = classified
        self.attempts = attempts
        super().__init__(
            f"{classified.kind.value} after {attempts} attempt(s): {classified.message or classified.raw}"
        )

    @property
    def kind(self) -> ErrorKind:
        return self.classified.kind

    @property
    def raw(self) -> Any:
        return self.classified.raw

    @property
    def retry_after_ms(self) -> Optional[int]:
        return self.classified.retry_after_ms


class QueueTimeoutError(QuotaGuardError):
    """Raised locally when a caller stops waiting for a queued request."""

    def __init__(self, key: str, timeout: float):
        self.key = key
        self.timeout = timeout
        super().__init__(f"Request for '{key}' not settled within {timeout:.2f}s")
