"""Google Places details client.

Performs exactly one HTTP request per call and turns upstream failures into
`UpstreamError`s carrying a status code, so the error classifier can decide
whether a retry makes sense. Retrying and pacing are the queue's job.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from quotaguard.domain.exceptions import UpstreamError
from quotaguard.infrastructure.resilience.error_classifier import parse_retry_after

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://maps.googleapis.com/maps/api"
DEFAULT_FIELDS = "place_id,name,formatted_phone_number,international_phone_number,website,email"
DEFAULT_TIMEOUT_SECONDS = 10.0

# Places reports most failures with HTTP 200 and a status field.
BODY_STATUS_CODES = {
    "OVER_QUERY_LIMIT": 429,
    "REQUEST_DENIED": 403,
    "INVALID_REQUEST": 400,
    "NOT_FOUND": 404,
    "ZERO_RESULTS": 404,
    "UNKNOWN_ERROR": 503,
}


class PlacesClient:
    """Thin async client for the Places details endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        fields: str = DEFAULT_FIELDS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ValueError("Google Places API key not provided.")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.fields = fields
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def fetch_place_details(self, place_id: str) -> Dict[str, Any]:
        """Fetches the details record for one place.

        Raises:
            UpstreamError: On HTTP errors or a non-OK body status.
            httpx.TransportError: On network failures.
        """
        url = f"{self.base_url}/place/details/json"
        params = {"place_id": place_id, "fields": self.fields, "key": self.api_key}
        logger.debug(f"Fetching place details for {place_id}")
        response = await self._client.get(url, params=params)

        if response.status_code >= 400:
            raise UpstreamError(
                status=response.status_code,
                message=self._error_message(response),
                retry_after_ms=parse_retry_after(response.headers.get("Retry-After")),
                headers=response.headers,
            )

        payload = response.json()
        body_status = payload.get("status", "OK")
        if body_status != "OK":
            raise UpstreamError(
                status=BODY_STATUS_CODES.get(body_status),
                message=payload.get("error_message") or body_status,
            )
        return payload.get("result", {})

    async def __call__(self, place_id: str) -> Dict[str, Any]:
        return await self.fetch_place_details(place_id)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:500] or response.reason_phrase
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return str(error.get("message") or error.get("status") or response.reason_phrase)
        if isinstance(body, dict) and body.get("error_message"):
            return str(body["error_message"])
        return response.reason_phrase

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
