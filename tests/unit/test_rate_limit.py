from datetime import UTC, datetime, timedelta

import pytest

from src.app_shell.rate_limit import RateLimiter
from src.rules.models import RateLimitRules, RateLimitWindow


class MockTime:
    def __init__(self) -> None:
        self.current = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture
def time_port():
    return MockTime()


@pytest.fixture
def limiter(time_port):
    rules = RateLimitRules(
        tracking=RateLimitWindow(window_seconds=60, max_requests=3),
        analytics=RateLimitWindow(window_seconds=60, max_requests=2),
    )
    return RateLimiter(rules, time_port=time_port)


def test_allow_request_basic(limiter):
    assert limiter.allow_request("k", 60, 2) is True
    assert limiter.allow_request("k", 60, 2) is True
    assert limiter.allow_request("k", 60, 2) is False


def test_zero_limit_denies(limiter):
    assert limiter.allow_request("k", 60, 0) is False


def test_window_slides(limiter, time_port):
    assert limiter.allow_request("k", 60, 1) is True
    time_port.advance(30)
    assert limiter.allow_request("k", 60, 1) is False
    time_port.advance(31)
    assert limiter.allow_request("k", 60, 1) is True


def test_tracking_and_analytics_are_separate(limiter):
    for _ in range(2):
        assert limiter.check_analytics("1.2.3.4") == (True, 0)
    allowed, _ = limiter.check_analytics("1.2.3.4")
    assert allowed is False

    assert limiter.check_tracking("1.2.3.4")[0] is True


def test_limits_are_per_ip(limiter):
    for _ in range(3):
        limiter.check_tracking("10.0.0.1")
    assert limiter.check_tracking("10.0.0.1")[0] is False
    assert limiter.check_tracking("10.0.0.2")[0] is True


def test_retry_after_counts_down(limiter, time_port):
    for _ in range(3):
        limiter.check_tracking("ip")
    time_port.advance(20)

    allowed, retry_after = limiter.check_tracking("ip")

    assert allowed is False
    assert retry_after == 40


def test_retry_after_at_least_one(limiter):
    assert limiter.retry_after("unknown", 60) == 1


def test_reset(limiter):
    for _ in range(3):
        limiter.check_tracking("ip")
    limiter.reset()
    assert limiter.check_tracking("ip")[0] is True


def test_idle_clients_are_swept(limiter, time_port):
    for i in range(50):
        limiter.check_tracking(f"10.0.0.{i}")
    assert len(limiter._history) == 50

    time_port.advance(61)
    limiter.check_tracking("10.0.1.1")

    assert list(limiter._history) == ["tracking:10.0.1.1"]


def test_sweep_keeps_active_clients(limiter, time_port):
    limiter.check_tracking("10.0.0.1")
    time_port.advance(40)
    limiter.check_tracking("10.0.0.2")
    time_port.advance(21)
    limiter.check_tracking("10.0.0.3")

    assert set(limiter._history) == {"tracking:10.0.0.2", "tracking:10.0.0.3"}
