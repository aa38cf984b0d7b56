"""
Unit tests for the provider circuit breaker
"""

import pytest

from newswire.services.provider_health import CircuitState, ProviderHealth


class FakeClock:
    def __init__(self):
        self.now = 10_000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def health(clock):
    return ProviderHealth(failure_threshold=3, reset_timeout=300, clock=clock)


class TestCircuit:

    def test_opens_after_consecutive_failures(self, health):
        for _ in range(2):
            health.record_failure("serpapi", "HTTP error 500")
        assert health.allow_request("serpapi")

        health.record_failure("serpapi", "HTTP error 500")
        assert health.get_state("serpapi") == CircuitState.OPEN
        assert not health.allow_request("serpapi")

    def test_success_resets_failure_streak(self, health):
        health.record_failure("serpapi")
        health.record_failure("serpapi")
        health.record_success("serpapi", 120)
        health.record_failure("serpapi")

        assert health.get_state("serpapi") == CircuitState.CLOSED

    def test_half_open_trial_then_close(self, health, clock):
        for _ in range(3):
            health.record_failure("serpapi")

        clock.now += 300
        assert health.allow_request("serpapi")
        assert health.get_state("serpapi") == CircuitState.HALF_OPEN
        assert not health.allow_request("serpapi")  # one trial at a time

        health.record_success("serpapi", 200)
        assert health.get_state("serpapi") == CircuitState.CLOSED

    def test_failed_trial_reopens(self, health, clock):
        for _ in range(3):
            health.record_failure("serpapi")
        clock.now += 300
        health.allow_request("serpapi")

        health.record_failure("serpapi", "still down")
        assert health.get_state("serpapi") == CircuitState.OPEN
        assert not health.allow_request("serpapi")

    def test_release_returns_trial_slot(self, health, clock):
        for _ in range(3):
            health.record_failure("serpapi")
        clock.now += 300
        assert health.allow_request("serpapi")

        health.release("serpapi")
        assert health.allow_request("serpapi")

    def test_average_response_time(self, health):
        health.record_success("rss", 100)
        health.record_success("rss", 300)
        assert health.avg_response_time_ms("rss") == pytest.approx(200)

    def test_reset(self, health):
        for _ in range(3):
            health.record_failure("serpapi")
        health.reset("serpapi")
        assert health.get_state("serpapi") == CircuitState.CLOSED
        assert health.get_stats("serpapi")["serpapi"]["total_requests"] == 0
