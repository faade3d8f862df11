import httpx
import pytest

from quotaguard.domain.exceptions import UpstreamError
from quotaguard.domain.models.common import ErrorKind
from quotaguard.infrastructure.places.places_client import PlacesClient
from quotaguard.infrastructure.resilience.error_classifier import classify


def make_client(handler) -> PlacesClient:
    transport = httpx.MockTransport(handler)
    return PlacesClient(api_key="test-key", client=httpx.AsyncClient(transport=transport))


def test_requires_api_key():
    with pytest.raises(ValueError, match="API key not provided"):
        PlacesClient(api_key="")


@pytest.mark.asyncio
async def test_fetch_place_details_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        return httpx.Response(200, json={"status": "OK", "result": {"name": "Bloom Florist", "website": "https://bloom.test"}})

    client = make_client(handler)
    result = await client.fetch_place_details("place-1")

    assert result == {"name": "Bloom Florist", "website": "https://bloom.test"}
    assert seen["url"].path == "/maps/api/place/details/json"
    assert seen["url"].params["place_id"] == "place-1"
    assert seen["url"].params["key"] == "test-key"


@pytest.mark.asyncio
async def test_http_429_with_retry_after():
    def handler(request):
        return httpx.Response(429, headers={"Retry-After": "3"}, json={"error": {"message": "Rate Limit Exceeded"}})

    with pytest.raises(UpstreamError) as exc_info:
        await make_client(handler).fetch_place_details("place-1")

    error = exc_info.value
    assert error.status == 429
    assert error.retry_after_ms == 3000
    assert error.message == "Rate Limit Exceeded"
    assert classify(error).kind == ErrorKind.RATE_LIMITED


@pytest.mark.asyncio
@pytest.mark.parametrize("body_status, kind", [
    ("OVER_QUERY_LIMIT", ErrorKind.RATE_LIMITED),
    ("REQUEST_DENIED", ErrorKind.AUTH_EXPIRED),
    ("UNKNOWN_ERROR", ErrorKind.TRANSIENT),
    ("NOT_FOUND", ErrorKind.UNKNOWN),
])
async def test_body_status_mapped_to_http_status(body_status, kind):
    def handler(request):
        return httpx.Response(200, json={"status": body_status})

    with pytest.raises(UpstreamError) as exc_info:
        await make_client(handler).fetch_place_details("place-1")

    assert classify(exc_info.value).kind == kind


@pytest.mark.asyncio
async def test_plain_text_error_body():
    def handler(request):
        return httpx.Response(503, text="upstream unavailable")

    with pytest.raises(UpstreamError) as exc_info:
        await make_client(handler).fetch_place_details("place-1")

    assert exc_info.value.status == 503
    assert exc_info.value.message == "upstream unavailable"


@pytest.mark.asyncio
async def test_client_is_callable_as_fetcher():
    def handler(request):
        return httpx.Response(200, json={"status": "OK", "result": {"name": "Hall"}})

    client = make_client(handler)
    assert await client("place-9") == {"name": "Hall"}
    await client.aclose()
