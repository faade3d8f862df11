"""Domain Events related to upstream calls and resilience.

Examples include events for when calls are deferred, retried, fail, or succeed,
and when the queue serves a request from its cache.
"""

from dataclasses import dataclass, field
import logging
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


EventListener = Callable[[DomainEvent], None]

# --- Specific API Events ---

@dataclass
class ApiCallInitiated(DomainEvent):
    """Event triggered when an upstream call is about to be made."""
    endpoint: str
    attempt_number: int = 1
    timestamp: float = field(default_factory=time.time)

@dataclass
class ApiCallSucceeded(DomainEvent):
    """Event triggered when an upstream call succeeds."""
    endpoint: str
    latency_ms: float
    attempts: int = 1
    timestamp: float = field(default_factory=time.time)

@dataclass
class ApiCallFailed(DomainEvent):
    """Event triggered when a call fails definitively (after retries)."""
    endpoint: str
    error_kind: str
    error_message: str
    attempts: int = 1
    timestamp: float = field(default_factory=time.time)

@dataclass
class ApiCallDeferred(DomainEvent):
    """Event triggered when a dispatch is held back to keep request spacing."""
    endpoint: str
    wait_time_seconds: float
    timestamp: float = field(default_factory=time.time)

@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed call."""
    endpoint: str
    attempt_number: int
    delay_seconds: float
    error_kind: str
    timestamp: float = field(default_factory=time.time)

@dataclass
class RequestEnqueued(DomainEvent):
    """Event triggered when a key is appended to a queue."""
    queue_name: str
    key: str
    queue_length: int
    timestamp: float = field(default_factory=time.time)

@dataclass
class CacheHit(DomainEvent):
    """Event triggered when the queue answers from its cache."""
    queue_name: str
    key: str
    timestamp: float = field(default_factory=time.time)


def dispatch_event(listener: Optional[EventListener], event: DomainEvent) -> None:
    """Hands an event to a listener; listener failures are logged, not raised."""
    logger.debug(f"EVENT: {event}")
    if listener is None:
        return
    try:
        listener(event)
    except Exception as e:
        logger.error(f"Event listener failed for {type(event).__name__}: {e}", exc_info=True)
