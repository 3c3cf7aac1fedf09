"""Tests for vocab_gateway/credentials/health.py — per-key error streaks and cooldowns."""

import pytest

from vocab_gateway.credentials.health import (
    COOLDOWN_MAX_SECONDS,
    HealthTracker,
    cooldown_seconds,
)


class FakeClock:

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker(clock) -> HealthTracker:
    return HealthTracker(clock=clock)


class TestCooldownSeconds:

    @pytest.mark.parametrize("errors,expected", [(3, 120.0), (4, 240.0), (5, 300.0), (12, 300.0)])
    def test_doubles_and_caps(self, errors, expected):
        assert cooldown_seconds(errors) == expected

    def test_first_error_is_base(self):
        assert cooldown_seconds(1) == 30.0


class TestRecordFailure:

    def test_streak_below_threshold_has_no_cooldown(self, tracker):
        assert tracker.record_failure("k", "busy") == 0.0
        assert tracker.record_failure("k", "busy") == 0.0
        assert not tracker.in_cooldown("k")
        assert tracker.get("k").consecutive_errors == 2

    def test_third_error_starts_cooldown(self, tracker, clock):
        for _ in range(2):
            tracker.record_failure("k", "busy")
        assert tracker.record_failure("k", "busy") == 120.0
        assert tracker.in_cooldown("k")

        clock.now += 119
        assert tracker.in_cooldown("k")
        clock.now += 1
        assert not tracker.in_cooldown("k")

    def test_retry_after_applies_immediately(self, tracker):
        assert tracker.record_failure("k", "quota", retry_after=17) == 17
        assert tracker.cooldown_remaining("k") == 17
        assert tracker.get("k").consecutive_errors == 1

    def test_retry_after_is_capped(self, tracker):
        assert tracker.record_failure("k", "quota", retry_after=3600) == COOLDOWN_MAX_SECONDS

    def test_keeps_last_error(self, tracker):
        tracker.record_failure("k", "first")
        tracker.record_failure("k", "second")
        health = tracker.get("k")
        assert health.last_error == "second"
        assert health.total_errors == 2
        assert health.total_requests == 2


class TestRecordSuccess:

    def test_clears_streak_and_cooldown(self, tracker):
        tracker.record_failure("k", "quota", retry_after=60)
        tracker.record_success("k", 200.0)

        health = tracker.get("k")
        assert health.consecutive_errors == 0
        assert not tracker.in_cooldown("k")
        assert health.total_requests == 2
        assert health.total_errors == 1

    def test_latency_is_smoothed(self, tracker):
        tracker.record_success("k", 100.0)
        assert tracker.get("k").avg_response_ms == 100.0
        tracker.record_success("k", 200.0)
        assert tracker.get("k").avg_response_ms == pytest.approx(110.0)


class TestResetAndForget:

    def test_reset_clears_cooldown_keeps_totals(self, tracker):
        tracker.record_failure("k", "quota", retry_after=60)
        tracker.reset("k")

        health = tracker.get("k")
        assert not tracker.in_cooldown("k")
        assert health.consecutive_errors == 0
        assert health.last_error == ""
        assert health.total_errors == 1

    def test_reset_unknown_is_noop(self, tracker):
        tracker.reset("never-seen")
        assert tracker.to_public("never-seen")["totalRequests"] == 0

    def test_forget_drops_everything(self, tracker):
        tracker.record_failure("k", "quota", retry_after=60)
        tracker.forget("k")
        assert not tracker.in_cooldown("k")
        assert tracker.to_public("k")["totalErrors"] == 0


class TestToPublic:

    def test_shape(self, tracker, clock):
        tracker.record_success("k", 150.0)
        tracker.record_failure("k", "AI service returned 429", retry_after=20)
        clock.now += 5

        assert tracker.to_public("k") == {
            "consecutiveErrors": 1,
            "totalRequests": 2,
            "totalErrors": 1,
            "avgResponseMs": 150.0,
            "lastError": "AI service returned 429",
            "cooldownSeconds": 15.0,
        }
