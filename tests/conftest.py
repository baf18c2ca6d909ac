import asyncio

import pytest

from server_clock.timing import LocalClock, Sample


class FakeClock(LocalClock):
    """Manually advanced clock."""

    def __init__(self, now: float = 1_700_000_000_000.0, monotonic: float = 0.0):
        self._now = now
        self._monotonic = monotonic

    def monotonic(self) -> float:
        return self._monotonic

    def now(self) -> float:
        return self._now

    def advance(self, ms: float):
        self._now += ms
        self._monotonic += ms


class ScriptedSampler:
    """Sampler stand-in replaying a script of offsets and exceptions."""

    def __init__(self, clock: FakeClock, script=(), elapsed: float = 20.0):
        self._clock = clock
        self.script = list(script)
        self.elapsed = elapsed
        self.calls = 0
        self.closed = False

    async def collect(self, url: str, timeout_after: float) -> Sample:
        self.calls += 1
        await asyncio.sleep(0)
        if not self.script:
            raise AssertionError("sampler script exhausted")
        outcome = self.script.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return Sample(offset_ms=outcome, elapsed_ms=self.elapsed, collected_at=self._clock.monotonic())

    async def close(self):
        self.closed = True


class FakeSleep:
    """Sleep replacement advancing a FakeClock instead of waiting."""

    def __init__(self, clock: FakeClock):
        self._clock = clock
        self.delays = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds * 1000)
        self._clock.advance(seconds * 1000)
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep(clock):
    return FakeSleep(clock)
