"""Defines common Value Objects used across the resilience contexts.

These objects represent retry configuration, classified failures, queue
bookkeeping and quota snapshots, ensuring consistency and type safety
between the executor, the queue and the CLI.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, NewType, Optional, Dict, List

# === Core Value Objects ===

RequestKey = NewType("RequestKey", str)      # Logical resource id, e.g. a place id
CacheKey = NewType("CacheKey", str)          # Unique key for a cache entry
ClientId = NewType("ClientId", str)          # Caller identity for window limits
UserId = NewType("UserId", str)              # Owner of a daily quota

# === Retry Context ===

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 30000
JITTER_CEILING_MS = 1000


@dataclass(frozen=True)
class RetryPolicy:
    """Value Object representing retry backoff configuration."""
    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS
    jitter: bool = True

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0.")
        if self.base_delay_ms <= 0:
            raise ValueError("base_delay_ms must be positive.")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms.")


class ErrorKind(str, enum.Enum):
    """Failure categories produced by the error classifier."""
    RATE_LIMITED = "RateLimited"
    AUTH_EXPIRED = "AuthExpired"
    QUOTA_EXCEEDED = "QuotaExceeded"
    TRANSIENT = "Transient"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ClassifiedError:
    """A failure together with its category.

    Derived from a raw exception by the classifier and never mutated.
    """
    kind: ErrorKind
    raw: Any
    retry_after_ms: Optional[int] = None
    status: Optional[int] = None
    message: str = ""

    @property
    def retryable(self) -> bool:
        return self.kind in (ErrorKind.RATE_LIMITED, ErrorKind.TRANSIENT)


# === Queue Context ===

@dataclass
class QueueEntry:
    """Represents one pending request in the serial queue.

    Each caller waiting on the request owns a separate future, so a caller
    that cancels or times out leaves the others untouched.
    """
    key: RequestKey
    enqueued_at: float
    waiters: List[Any] = field(default_factory=list)  # asyncio.Future per caller

    def add_waiter(self, future: Any) -> Any:
        self.waiters.append(future)
        return future

    def resolve(self, value: Any) -> None:
        for future in self.waiters:
            if not future.done():
                future.set_result(value)

    def reject(self, error: BaseException) -> None:
        for future in self.waiters:
            if not future.done():
                future.set_exception(error)

    def cancel(self) -> None:
        for future in self.waiters:
            future.cancel()


@dataclass
class CacheEntry:
    """Internal representation of a cached successful response."""
    key: CacheKey
    value: Any
    cached_at: float

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return now - self.cached_at < ttl_seconds


@dataclass(frozen=True)
class QueueStatus:
    """Read-only snapshot of a queue's state."""
    queue_length: int
    is_draining: bool
    last_dispatch_at: Optional[float]
    cache_size: int
    in_flight: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "queue_length": self.queue_length,
            "is_draining": self.is_draining,
            "last_dispatch_at": self.last_dispatch_at,
            "cache_size": self.cache_size,
            "in_flight": self.in_flight,
        }


# === Quota Context ===

@dataclass(frozen=True)
class QuotaCheck:
    """Outcome of a daily quota check."""
    allowed: bool
    remaining: int
    reset_at: Optional[datetime]
    reason: Optional[str] = None


@dataclass
class DailyUsage:
    """Per-user daily counters."""
    emails_sent_today: int = 0
    emails_sent_reset_at: Optional[datetime] = None
    messages_imported_today: int = 0
    messages_imported_reset_at: Optional[datetime] = None


@dataclass(frozen=True)
class WindowCheck:
    """Outcome of a fixed-window rate limit check."""
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # clock value at which the window closes


# === Vendor Context ===

@dataclass(frozen=True)
class VendorContact:
    """Contact details extracted from a place lookup."""
    place_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


Clock = Callable[[], float]
