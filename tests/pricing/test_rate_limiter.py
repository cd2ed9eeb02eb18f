"""Tests for the token-bucket rate limiter and pair pacing."""

from __future__ import annotations

from src.common.config import PipelineSettings
from src.pricing.common.rate_limiter import RateLimiter
from src.pricing.driver.pacing import PairPacer


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class TestRateLimiter:
    def test_first_request_is_free(self):
        clock = FakeClock()
        limiter = RateLimiter(60, clock=clock, sleep=clock.sleep)
        assert limiter.wait() == 0.0
        assert clock.sleeps == []

    def test_sustained_rate(self):
        clock = FakeClock()
        limiter = RateLimiter(60, clock=clock, sleep=clock.sleep)
        limiter.wait()
        limiter.wait()
        limiter.wait()
        assert clock.sleeps == [1.0, 1.0]
        assert limiter.interval == 1.0

    def test_refills_while_idle(self):
        clock = FakeClock()
        limiter = RateLimiter(30, clock=clock, sleep=clock.sleep)
        limiter.wait()
        clock.now += 10
        assert limiter.wait() == 0.0

    def test_burst(self):
        clock = FakeClock()
        limiter = RateLimiter(60, burst=3, clock=clock, sleep=clock.sleep)
        for _ in range(3):
            assert limiter.wait() == 0.0
        assert limiter.wait() == 1.0

    def test_sleep_without_clock_advance(self):
        sleeps = []
        limiter = RateLimiter(60, clock=lambda: 0.0, sleep=sleeps.append)
        limiter.wait()
        limiter.wait()
        limiter.wait()
        assert sleeps == [1.0, 1.0]


class TestPairPacer:
    def test_delay_and_cooldown(self):
        sleeps = []
        pacer = PairPacer(pair_delay=0.5, cooldown_every=5, cooldown_seconds=2.0, sleep=sleeps.append)
        for _ in range(10):
            pacer.after_pair()
        assert sleeps == [0.5, 0.5, 0.5, 0.5, 2.0, 0.5, 0.5, 0.5, 0.5, 2.0]
        assert pacer.pairs == 10

    def test_zero_delay_does_not_sleep(self):
        sleeps = []
        pacer = PairPacer(pair_delay=0, cooldown_every=2, cooldown_seconds=0, sleep=sleeps.append)
        pacer.after_pair()
        pacer.after_pair()
        assert sleeps == []

    def test_from_settings(self):
        pipeline = PipelineSettings(pair_delay_seconds=0.1, cooldown_every=3, cooldown_seconds=1.5)
        pacer = PairPacer.from_settings(pipeline, sleep=lambda s: None)
        assert pacer.pair_delay == 0.1
        assert pacer.cooldown_every == 3
        assert pacer.cooldown_seconds == 1.5
