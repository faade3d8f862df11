"""Service for executing upstream calls with automatic retries.

Implements exponential backoff for rate-limit (429) and transient failures.
Auth failures, daily quota exhaustion and unrecognised errors are handed
straight back to the caller, which decides whether to re-authenticate or
tell the user to come back tomorrow.
"""

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Optional

from quotaguard.domain.events.api_events import (
    ApiCallFailed,
    ApiCallInitiated,
    ApiCallSucceeded,
    EventListener,
    RetryScheduled,
    dispatch_event,
)
from quotaguard.domain.exceptions import ClassifiedApiError
from quotaguard.domain.models.common import JITTER_CEILING_MS, RetryPolicy
from quotaguard.infrastructure.resilience.error_classifier import classify

logger = logging.getLogger(__name__)

Work = Callable[[], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[Any]]

DEFAULT_POLICY = RetryPolicy()


def compute_delay(
    attempt: int,
    policy: RetryPolicy,
    retry_after_ms: Optional[int] = None,
    rng: Callable[[], float] = random.random,
) -> int:
    """Returns the delay in milliseconds before the next attempt.

    Args:
        attempt: 1-based number of the attempt that just failed.
        policy: Backoff configuration.
        retry_after_ms: Server-provided delay; replaces the exponential value.
        rng: Source of randomness in [0, 1) for jitter.
    """
    if attempt < 1:
        raise ValueError("attempt is 1-based.")
    if retry_after_ms is not None:
        delay = retry_after_ms
    else:
        delay = min(policy.max_delay_ms, policy.base_delay_ms * 2 ** (attempt - 1))
    if policy.jitter:
        delay += int(rng() * JITTER_CEILING_MS)
    return min(policy.max_delay_ms, delay)


class ApiRetryService:
    """Handles upstream call execution with classified retries."""

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
        rng: Callable[[], float] = random.random,
        event_listener: Optional[EventListener] = None,
    ):
        """Initializes the ApiRetryService.

        Args:
            policy: Default retry policy for calls that don't pass their own.
            sleep: Awaitable sleep taking seconds (injectable for tests).
            rng: Random source for jitter.
            event_listener: Optional callable receiving domain events.
        """
        self.policy = policy or DEFAULT_POLICY
        self._sleep = sleep
        self._rng = rng
        self.event_listener = event_listener
        logger.debug(
            f"ApiRetryService initialized: max_retries={self.policy.max_retries}, "
            f"base_delay={self.policy.base_delay_ms}ms, max_delay={self.policy.max_delay_ms}ms, "
            f"jitter={self.policy.jitter}"
        )

    async def execute_with_retry(
        self,
        work: Work,
        policy: Optional[RetryPolicy] = None,
        endpoint_name: Optional[str] = None,
    ) -> Any:
        """Runs `work` until it succeeds, fails terminally, or retries run out.

        Args:
            work: Zero-argument callable returning an awaitable; one attempt.
            policy: Overrides the service default for this call.
            endpoint_name: Label used in logs and events.

        Returns:
            Whatever `work` produced on its successful attempt.

        Raises:
            ClassifiedApiError: On a non-retryable failure or once
                `max_retries` retries have been spent. The last raw
                exception is chained as the cause.
        """
        effective_policy = policy or self.policy
        endpoint = endpoint_name or getattr(work, "__name__", "call")
        max_attempts = effective_policy.max_retries + 1

        for attempt in range(1, max_attempts + 1):
            dispatch_event(self.event_listener, ApiCallInitiated(endpoint=endpoint, attempt_number=attempt))
            start_time = time.perf_counter()
            try:
                result = await work()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                classified = classify(e)
                if not classified.retryable:
                    logger.error(
                        f"Non-retryable {classified.kind.value} error calling {endpoint} "
                        f"on attempt {attempt}: {classified.message}"
                    )
                    dispatch_event(self.event_listener, ApiCallFailed(
                        endpoint=endpoint, error_kind=classified.kind.value,
                        error_message=classified.message, attempts=attempt,
                    ))
                    raise ClassifiedApiError(classified, attempts=attempt) from e

                if attempt >= max_attempts:
                    logger.error(
                        f"Max retries ({effective_policy.max_retries}) reached for {endpoint}. "
                        f"Last error: {classified.message}"
                    )
                    dispatch_event(self.event_listener, ApiCallFailed(
                        endpoint=endpoint, error_kind=classified.kind.value,
                        error_message=classified.message, attempts=attempt,
                    ))
                    raise ClassifiedApiError(classified, attempts=attempt) from e

                delay_ms = compute_delay(attempt, effective_policy, classified.retry_after_ms, self._rng)
                logger.warning(
                    f"{classified.kind.value} error calling {endpoint} on attempt "
                    f"{attempt}/{max_attempts}. Waiting {delay_ms / 1000:.2f}s..."
                )
                dispatch_event(self.event_listener, RetryScheduled(
                    endpoint=endpoint, attempt_number=attempt,
                    delay_seconds=delay_ms / 1000, error_kind=classified.kind.value,
                ))
                await self._sleep(delay_ms / 1000)
                continue

            latency_ms = (time.perf_counter() - start_time) * 1000
            dispatch_event(self.event_listener, ApiCallSucceeded(
                endpoint=endpoint, latency_ms=latency_ms, attempts=attempt,
            ))
            return result

        # Unreachable: the loop either returns or raises.
        raise RuntimeError("retry loop exited without a result")


async def execute_with_retry(work: Work, policy: Optional[RetryPolicy] = None) -> Any:
    """Convenience wrapper using a default ApiRetryService."""
    return await ApiRetryService().execute_with_retry(work, policy=policy)
