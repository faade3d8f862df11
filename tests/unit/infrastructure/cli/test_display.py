import pytest
from rich.console import Console

from quotaguard.domain.models.common import ClassifiedError, ErrorKind, QueueStatus, VendorContact
from quotaguard.infrastructure.cli.display import ConsoleDisplay


@pytest.fixture
def display():
    return ConsoleDisplay(console=Console(record=True, width=120, color_system=None))


def rendered(display: ConsoleDisplay) -> str:
    return display.console.export_text()


def test_display_error_escapes_markup(display):
    display.display_error("bad [token] value")
    assert "Error: bad [token] value" in rendered(display)


def test_display_classification(display):
    classified = ClassifiedError(kind=ErrorKind.RATE_LIMITED, raw=None, retry_after_ms=3000, status=429)
    display.display_classification(classified, "Service temporarily unavailable, please retry.")

    text = rendered(display)
    assert "RateLimited" in text
    assert "3000 ms" in text
    assert "yes" in text


def test_display_schedule_cumulative(display):
    display.display_schedule([(1, 1000), (2, 2000)])
    assert "3000" in rendered(display)


def test_display_outcomes(display):
    display.display_outcomes({
        "place-1": {"name": "Bloom"},
        "place-2": ClassifiedError(kind=ErrorKind.AUTH_EXPIRED, raw=None, message="[401] invalid_grant"),
    })

    text = rendered(display)
    assert "place-1" in text and "ok" in text
    assert "AuthExpired" in text and "[401] invalid_grant" in text


def test_display_contacts_and_status(display):
    display.display_contacts([VendorContact(place_id="place-1", name="Bloom", email="hi@bloom.test")])
    display.display_status(QueueStatus(queue_length=2, is_draining=True, last_dispatch_at=None, cache_size=1))

    text = rendered(display)
    assert "hi@bloom.test" in text
    assert "queue_length: 2" in text
    assert "is_draining: True" in text
