import pytest

from quotaguard.core.services.vendor_contact_service import VendorContactService, contact_from_place
from quotaguard.domain.exceptions import ClassifiedApiError, UpstreamError
from quotaguard.domain.models.common import ClassifiedError, ErrorKind, RetryPolicy, VendorContact
from quotaguard.infrastructure.resilience.request_queue import SerialRequestQueue

PLACES = {
    "place-1": {"name": "Bloom Florist", "email": "hello@bloom.test", "formatted_phone_number": "555-0100"},
    "place-2": {"name": "Grand Hall", "international_phone_number": "+1 555-0200", "website": "https://hall.test"},
}


@pytest.fixture
def service(make_fetcher, fake_clock):
    fetcher = make_fetcher({
        "place-1": [PLACES["place-1"]],
        "place-2": [PLACES["place-2"]],
        "place-bad": [UpstreamError(403, "REQUEST_DENIED")],
        "place-broken": [KeyError("result")],
    })
    queue = SerialRequestQueue(
        fetcher, retry_policy=RetryPolicy(max_retries=1, jitter=False),
        min_interval_ms=200, clock=fake_clock, sleep=fake_clock.sleep, name="places",
    )
    service = VendorContactService(queue)
    service.fetcher = fetcher
    return service


def test_contact_from_place_prefers_formatted_phone():
    contact = contact_from_place("place-1", PLACES["place-1"])
    assert contact == VendorContact(place_id="place-1", name="Bloom Florist", email="hello@bloom.test", phone="555-0100")


def test_contact_without_email():
    contact = contact_from_place("place-2", PLACES["place-2"])
    assert contact.email is None
    assert contact.phone == "+1 555-0200"
    assert contact.website == "https://hall.test"


@pytest.mark.asyncio
async def test_get_contact(service):
    contact = await service.get_contact("place-1")
    assert contact.name == "Bloom Florist"
    assert contact.email == "hello@bloom.test"


@pytest.mark.asyncio
async def test_get_contact_propagates_classified_error(service):
    with pytest.raises(ClassifiedApiError) as exc_info:
        await service.get_contact("place-bad")
    assert exc_info.value.kind == ErrorKind.AUTH_EXPIRED


@pytest.mark.asyncio
async def test_get_contacts_isolates_failures(service):
    results = await service.get_contacts(["place-1", "place-bad", "place-2", "place-broken", "place-1"])

    assert list(results) == ["place-1", "place-bad", "place-2", "place-broken"]
    assert isinstance(results["place-1"], VendorContact)
    assert isinstance(results["place-2"], VendorContact)
    assert isinstance(results["place-bad"], ClassifiedError)
    assert results["place-bad"].kind == ErrorKind.AUTH_EXPIRED
    assert results["place-broken"].kind == ErrorKind.UNKNOWN
    # Duplicate ids are looked up once.
    assert service.fetcher.calls.count("place-1") == 1
