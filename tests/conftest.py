import asyncio
from typing import List

import pytest

from quotaguard.domain.exceptions import UpstreamError
from quotaguard.infrastructure.config.settings import clear_test_config


class FakeClock:
    """Monotonic clock that only moves when the fake sleep is awaited."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        # Still yield so other tasks get a turn, as a real sleep would.
        await asyncio.sleep(0)


class RecordingFetcher:
    """Upstream stand-in recording when each call happened.

    `script` maps a key to a list of outcomes consumed one per call; an
    exception instance is raised, anything else is returned. Keys without
    a script return {"key": key}.
    """

    def __init__(self, clock: FakeClock, script=None):
        self.clock = clock
        self.script = {key: list(outcomes) for key, outcomes in (script or {}).items()}
        self.calls: List[str] = []
        self.call_times: List[float] = []

    async def __call__(self, key: str):
        self.calls.append(key)
        self.call_times.append(self.clock())
        outcomes = self.script.get(key)
        if outcomes:
            outcome = outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return {"key": key}


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_fetcher(fake_clock):
    def factory(script=None) -> RecordingFetcher:
        return RecordingFetcher(fake_clock, script)
    return factory


@pytest.fixture
def rate_limited_error():
    return UpstreamError(429, "Rate Limit Exceeded")


@pytest.fixture(autouse=True)
def reset_test_config():
    yield
    clear_test_config()
