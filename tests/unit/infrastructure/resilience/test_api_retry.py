from unittest.mock import AsyncMock

import pytest

from quotaguard.domain.events.api_events import ApiCallFailed, ApiCallSucceeded, RetryScheduled
from quotaguard.domain.exceptions import ClassifiedApiError, UpstreamError
from quotaguard.domain.models.common import ErrorKind, RetryPolicy
from quotaguard.infrastructure.resilience.api_retry import ApiRetryService, compute_delay

NO_JITTER = RetryPolicy(max_retries=3, base_delay_ms=1000, max_delay_ms=30000, jitter=False)


@pytest.fixture
def service(fake_clock):
    return ApiRetryService(policy=NO_JITTER, sleep=fake_clock.sleep)


def test_default_policy_values():
    policy = RetryPolicy()
    assert (policy.max_retries, policy.base_delay_ms, policy.max_delay_ms, policy.jitter) == (3, 1000, 30000, True)


@pytest.mark.parametrize("kwargs", [
    {"max_retries": -1},
    {"base_delay_ms": 0},
    {"base_delay_ms": 2000, "max_delay_ms": 1000},
])
def test_invalid_policy_rejected(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_delay_sequence_without_jitter():
    delays = [compute_delay(attempt, NO_JITTER) for attempt in range(1, 8)]
    assert delays == [1000, 2000, 4000, 8000, 16000, 30000, 30000]


def test_retry_after_replaces_exponential_delay():
    assert compute_delay(1, NO_JITTER, retry_after_ms=7000) == 7000
    assert compute_delay(4, NO_JITTER, retry_after_ms=500) == 500
    assert compute_delay(1, NO_JITTER, retry_after_ms=120000) == 30000


def test_jitter_added_before_cap():
    policy = RetryPolicy(max_retries=3, base_delay_ms=1000, max_delay_ms=30000, jitter=True)
    assert compute_delay(1, policy, rng=lambda: 0.5) == 1500
    assert compute_delay(1, policy, rng=lambda: 0.0) == 1000
    assert compute_delay(6, policy, rng=lambda: 0.999) == 30000


def test_attempt_is_one_based():
    with pytest.raises(ValueError):
        compute_delay(0, NO_JITTER)


@pytest.mark.asyncio
async def test_success_first_try_does_not_sleep(service, fake_clock):
    work = AsyncMock(return_value="ok")
    assert await service.execute_with_retry(work) == "ok"
    work.assert_awaited_once()
    assert fake_clock.sleeps == []


@pytest.mark.asyncio
async def test_zero_retries_fails_immediately(fake_clock, rate_limited_error):
    service = ApiRetryService(sleep=fake_clock.sleep)
    work = AsyncMock(side_effect=rate_limited_error)

    with pytest.raises(ClassifiedApiError) as exc_info:
        await service.execute_with_retry(work, policy=RetryPolicy(max_retries=0, jitter=False))

    assert work.await_count == 1
    assert fake_clock.sleeps == []
    assert exc_info.value.kind == ErrorKind.RATE_LIMITED
    assert exc_info.value.__cause__ is rate_limited_error


@pytest.mark.asyncio
@pytest.mark.parametrize("max_retries", [1, 2, 5])
async def test_persistent_rate_limit_invokes_at_most_n_plus_one(fake_clock, rate_limited_error, max_retries):
    service = ApiRetryService(sleep=fake_clock.sleep)
    work = AsyncMock(side_effect=rate_limited_error)
    policy = RetryPolicy(max_retries=max_retries, base_delay_ms=1000, max_delay_ms=30000, jitter=False)

    with pytest.raises(ClassifiedApiError) as exc_info:
        await service.execute_with_retry(work, policy=policy)

    assert work.await_count == max_retries + 1
    assert exc_info.value.attempts == max_retries + 1
    # One sleep per retry, none after the final failure.
    assert len(fake_clock.sleeps) == max_retries


@pytest.mark.asyncio
async def test_recovers_after_two_rate_limits(service, fake_clock, rate_limited_error):
    work = AsyncMock(side_effect=[rate_limited_error, rate_limited_error, {"id": "place-1"}])

    result = await service.execute_with_retry(work)

    assert result == {"id": "place-1"}
    assert work.await_count == 3
    assert fake_clock.sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_auth_error_not_retried(service, fake_clock):
    work = AsyncMock(side_effect=UpstreamError(401, "invalid_grant"))

    with pytest.raises(ClassifiedApiError) as exc_info:
        await service.execute_with_retry(work)

    assert exc_info.value.kind == ErrorKind.AUTH_EXPIRED
    work.assert_awaited_once()
    assert fake_clock.sleeps == []


@pytest.mark.asyncio
async def test_daily_quota_not_retried(service):
    work = AsyncMock(side_effect=UpstreamError(None, "Quota exceeded for today"))

    with pytest.raises(ClassifiedApiError) as exc_info:
        await service.execute_with_retry(work)

    assert exc_info.value.kind == ErrorKind.QUOTA_EXCEEDED
    work.assert_awaited_once()


@pytest.mark.asyncio
async def test_unknown_errors_fail_closed(service):
    work = AsyncMock(side_effect=TypeError("bad argument"))

    with pytest.raises(ClassifiedApiError) as exc_info:
        await service.execute_with_retry(work)

    assert exc_info.value.kind == ErrorKind.UNKNOWN
    assert isinstance(exc_info.value.raw, TypeError)
    work.assert_awaited_once()


@pytest.mark.asyncio
async def test_transient_errors_retried(service, fake_clock):
    work = AsyncMock(side_effect=[ConnectionError("network unreachable"), "ok"])
    assert await service.execute_with_retry(work) == "ok"
    assert fake_clock.sleeps == [1.0]


@pytest.mark.asyncio
async def test_retry_after_header_honoured(service, fake_clock):
    work = AsyncMock(side_effect=[UpstreamError(429, "slow down", headers={"Retry-After": "7"}), "ok"])
    assert await service.execute_with_retry(work) == "ok"
    assert fake_clock.sleeps == [7.0]


@pytest.mark.asyncio
async def test_service_is_reusable_across_calls(service, rate_limited_error):
    first = AsyncMock(side_effect=[rate_limited_error, "a"])
    second = AsyncMock(return_value="b")
    assert await service.execute_with_retry(first) == "a"
    assert await service.execute_with_retry(second) == "b"
    second.assert_awaited_once()


@pytest.mark.asyncio
async def test_events_emitted(fake_clock, rate_limited_error):
    events = []
    service = ApiRetryService(policy=NO_JITTER, sleep=fake_clock.sleep, event_listener=events.append)

    await service.execute_with_retry(AsyncMock(side_effect=[rate_limited_error, "ok"]), endpoint_name="places")
    with pytest.raises(ClassifiedApiError):
        await service.execute_with_retry(AsyncMock(side_effect=UpstreamError(403, "forbidden")), endpoint_name="gmail")

    retries = [e for e in events if isinstance(e, RetryScheduled)]
    assert len(retries) == 1 and retries[0].delay_seconds == 1.0 and retries[0].error_kind == "RateLimited"
    assert [e.attempts for e in events if isinstance(e, ApiCallSucceeded)] == [2]
    failed = [e for e in events if isinstance(e, ApiCallFailed)]
    assert failed[0].endpoint == "gmail" and failed[0].error_kind == "AuthExpired"


@pytest.mark.asyncio
async def test_broken_listener_does_not_break_calls(fake_clock):
    def listener(event):
        raise RuntimeError("listener down")

    service = ApiRetryService(policy=NO_JITTER, sleep=fake_clock.sleep, event_listener=listener)
    assert await service.execute_with_retry(AsyncMock(return_value=1)) == 1
