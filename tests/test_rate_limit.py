"""Tests for the sliding-window rate limiter."""

import pytest

from erflow_core.exceptions import RateLimitedError
from erflow_core.utils import RateLimiter


class ManualTime:
    def __init__(self):
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value


@pytest.fixture
def now() -> ManualTime:
    return ManualTime()


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_allows_up_to_limit(self, now):
        limiter = RateLimiter(limit=3, window_seconds=60, clock=now)
        assert [limiter.check("triage-assessment") for _ in range(4)] == [True, True, True, False]

    def test_window_slides(self, now):
        """Requests leave the window once it has fully elapsed."""
        limiter = RateLimiter(limit=2, window_seconds=60, clock=now)
        limiter.check("a")
        now.value += 30
        limiter.check("a")
        assert not limiter.check("a")

        now.value += 30
        assert limiter.check("a")
        assert not limiter.check("a")

    def test_identifiers_are_independent(self, now):
        limiter = RateLimiter(limit=1, window_seconds=60, clock=now)
        assert limiter.check("triage-assessment")
        assert limiter.check("first-aid-instructions")
        assert not limiter.check("triage-assessment")

    def test_retry_after(self, now):
        limiter = RateLimiter(limit=1, window_seconds=60, clock=now)
        assert limiter.retry_after("a") == 0.0
        limiter.check("a")
        now.value += 20
        assert limiter.retry_after("a") == pytest.approx(40.0)

    def test_acquire_raises_with_retry_after(self, now):
        limiter = RateLimiter(limit=1, window_seconds=60, clock=now)
        limiter.acquire("speech-to-text")
        now.value += 0.5
        with pytest.raises(RateLimitedError) as exc_info:
            limiter.acquire("speech-to-text")
        assert exc_info.value.retry_after == 60

    def test_refused_requests_do_not_count(self, now):
        """A refused request does not extend the wait."""
        limiter = RateLimiter(limit=1, window_seconds=10, clock=now)
        limiter.check("a")
        for _ in range(5):
            now.value += 1
            limiter.check("a")
        now.value += 5
        assert limiter.check("a")

    def test_reset(self, now):
        limiter = RateLimiter(limit=1, window_seconds=60, clock=now)
        limiter.check("a")
        limiter.check("b")
        limiter.reset("a")
        assert limiter.check("a")
        assert not limiter.check("b")
        limiter.reset()
        assert limiter.check("b")

    @pytest.mark.parametrize("kwargs", [{"limit": 0}, {"window_seconds": 0}])
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(ValueError):
            RateLimiter(**kwargs)
