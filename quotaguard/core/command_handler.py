"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py) and delegates the
work to the classifier, the backoff executor, the request queue and the
vendor contact service, rendering results through the ConsoleDisplay.
"""

import asyncio
import logging
from collections import Counter
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from quotaguard.core.services.vendor_contact_service import VendorContactService
from quotaguard.domain.exceptions import ClassifiedApiError, UpstreamError
from quotaguard.domain.models.common import ClassifiedError, RetryPolicy
from quotaguard.infrastructure.cli.display import ConsoleDisplay
from quotaguard.infrastructure.resilience.api_retry import compute_delay
from quotaguard.infrastructure.resilience.error_classifier import (
    classify,
    parse_retry_after,
    user_message,
)
from quotaguard.infrastructure.resilience.request_queue import SerialRequestQueue

logger = logging.getLogger(__name__)


class SimulatedUpstream:
    """Upstream stand-in that fails the first `fail_first` calls per key."""

    def __init__(self, fail_first: int = 0, status: int = 429, message: str = "Rate Limit Exceeded"):
        self.fail_first = fail_first
        self.status = status
        self.message = message
        self.calls: Counter = Counter()

    async def __call__(self, key: str) -> Dict[str, Any]:
        self.calls[key] += 1
        if self.calls[key] <= self.fail_first:
            raise UpstreamError(self.status, self.message)
        return {"key": key, "attempts": self.calls[key]}


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services."""

    def __init__(
        self,
        ui: ConsoleDisplay,
        retry_policy: RetryPolicy,
        queue_settings: Dict[str, Any],
        vendor_service_factory: Optional[Callable[[], VendorContactService]] = None,
    ):
        """Initializes the CommandHandler.

        Args:
            ui: Output renderer.
            retry_policy: Policy for commands that dispatch calls.
            queue_settings: Keyword arguments for SerialRequestQueue.
            vendor_service_factory: Builds the vendor service lazily, since
                it needs an API key that other commands don't.
        """
        self.ui = ui
        self.retry_policy = retry_policy
        self.queue_settings = dict(queue_settings)
        self.vendor_service_factory = vendor_service_factory

    def handle_classify(self, status: Optional[int], message: str, retry_after: Optional[str] = None) -> ClassifiedError:
        error: Dict[str, Any] = {"status": status, "message": message}
        retry_after_ms = parse_retry_after(retry_after)
        if retry_after_ms is not None:
            error["retry_after_ms"] = retry_after_ms
        classified = classify(error)
        logger.info(f"Classified status={status} message={message!r} as {classified.kind.value}")
        self.ui.display_classification(classified, user_message(classified.kind))
        return classified

    def handle_schedule(self, policy: RetryPolicy) -> List[Tuple[int, int]]:
        delays = [(attempt, compute_delay(attempt, policy)) for attempt in range(1, policy.max_retries + 1)]
        self.ui.display_schedule(delays)
        return delays

    async def handle_simulate(
        self,
        keys: Sequence[str],
        upstream: SimulatedUpstream,
        policy: Optional[RetryPolicy] = None,
        min_interval_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        settings = dict(self.queue_settings)
        if min_interval_ms is not None:
            settings["min_interval_ms"] = min_interval_ms
        queue = SerialRequestQueue(upstream, retry_policy=policy or self.retry_policy, name="simulate", **settings)
        futures = [queue.enqueue(key) for key in keys]
        outcomes = await asyncio.gather(*futures, return_exceptions=True)

        results: Dict[str, Any] = {}
        for index, (key, outcome) in enumerate(zip(keys, outcomes)):
            label = key if key not in results else f"{key}#{index}"
            if isinstance(outcome, ClassifiedApiError):
                results[label] = outcome.classified
            elif isinstance(outcome, Exception):
                results[label] = classify(outcome)
            else:
                results[label] = outcome
        self.ui.display_outcomes(results)
        self.ui.display_status(queue.get_status())
        return results

    async def handle_vendor(self, place_ids: Sequence[str]) -> bool:
        if self.vendor_service_factory is None:
            self.ui.display_error("Google Places API key not configured (GOOGLE_PLACES_API_KEY).")
            return False
        service = self.vendor_service_factory()
        try:
            results = await service.get_contacts(place_ids)
        finally:
            fetcher = service.queue.fetcher
            if hasattr(fetcher, "aclose"):
                await fetcher.aclose()
        contacts = [value for value in results.values() if not isinstance(value, ClassifiedError)]
        failures = {key: value for key, value in results.items() if isinstance(value, ClassifiedError)}
        if contacts:
            self.ui.display_contacts(contacts)
        if failures:
            self.ui.display_outcomes(failures)
        return not failures
