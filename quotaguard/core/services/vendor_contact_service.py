"""Application service for looking up vendor contact details.

Vendor lookups go through a SerialRequestQueue so that bursts of requests
(e.g. a dashboard listing many vendors) reach the Places API one at a
time and repeated lookups are served from the queue's cache.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from quotaguard.domain.exceptions import ClassifiedApiError
from quotaguard.domain.models.common import ClassifiedError, VendorContact
from quotaguard.infrastructure.resilience.error_classifier import classify
from quotaguard.infrastructure.resilience.request_queue import SerialRequestQueue

logger = logging.getLogger(__name__)

ContactResult = Union[VendorContact, ClassifiedError]


def contact_from_place(place_id: str, result: Mapping[str, Any]) -> VendorContact:
    """Extracts the contact fields from a Places details result."""
    return VendorContact(
        place_id=place_id,
        name=result.get("name"),
        email=result.get("email") or None,
        phone=result.get("formatted_phone_number") or result.get("international_phone_number"),
        website=result.get("website"),
        raw=dict(result),
    )


class VendorContactService:
    """Resolves place ids to vendor contacts through a request queue."""

    def __init__(self, queue: SerialRequestQueue):
        self.queue = queue

    async def get_contact(self, place_id: str, timeout: Optional[float] = None) -> VendorContact:
        """Looks up one vendor. Errors propagate to the caller."""
        result = await self.queue.request(place_id, timeout=timeout)
        return contact_from_place(place_id, result)

    async def get_contacts(self, place_ids: Iterable[str]) -> Dict[str, ContactResult]:
        """Looks up many vendors concurrently.

        Each place id maps to its contact or to the ClassifiedError that
        ended its lookup; one failure never hides the other results.
        """
        unique_ids = list(dict.fromkeys(place_ids))
        outcomes = await asyncio.gather(
            *(self.get_contact(place_id) for place_id in unique_ids),
            return_exceptions=True,
        )
        results: Dict[str, ContactResult] = {}
        for place_id, outcome in zip(unique_ids, outcomes):
            if isinstance(outcome, ClassifiedApiError):
                results[place_id] = outcome.classified
            elif isinstance(outcome, Exception):
                results[place_id] = classify(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results[place_id] = outcome
        failures = sum(1 for value in results.values() if isinstance(value, ClassifiedError))
        logger.info(f"Resolved {len(results) - failures}/{len(results)} vendor contacts")
        return results
