"""Tests for RecoveryTracker — episodes, hysteresis, one-shot recovery."""

from __future__ import annotations

from alertflow.core.clock import ManualClock
from alertflow.alerting.recovery import RecoveryTracker


def _tracker(threshold: int = 3) -> tuple[RecoveryTracker, ManualClock]:
    clock = ManualClock(start_ms=1_000)
    return RecoveryTracker(clock=clock, threshold=threshold), clock


class TestEpisodes:
    def test_first_failure_starts_episode(self) -> None:
        tracker, _ = _tracker()
        state = tracker.record_failure("agent")
        assert state.failure_count == 1
        assert state.start_time == 1_000
        assert state.is_recovered is False

    def test_repeat_failure_keeps_start_time(self) -> None:
        tracker, clock = _tracker()
        tracker.record_failure("agent")
        clock.advance(5_000)
        state = tracker.record_failure("agent")
        assert state.failure_count == 2
        assert state.start_time == 1_000

    def test_success_without_episode(self) -> None:
        tracker, _ = _tracker()
        assert tracker.record_success("agent") is None
        assert tracker.get_recovery_state("agent") is None


class TestRecovery:
    def test_recovers_once_at_threshold(self) -> None:
        tracker, _ = _tracker(threshold=3)
        tracker.record_failure("agent")
        assert tracker.record_success("agent") is None
        assert tracker.record_success("agent") is None
        recovered = tracker.record_success("agent")
        assert recovered is not None
        assert recovered.is_recovered is True
        assert recovered.consecutive_success == 3
        assert tracker.record_success("agent") is None

    def test_failure_resets_streak(self) -> None:
        tracker, _ = _tracker(threshold=3)
        tracker.record_failure("agent")
        tracker.record_success("agent")
        tracker.record_success("agent")
        tracker.record_failure("agent")
        assert tracker.record_success("agent") is None
        assert tracker.record_success("agent") is None
        recovered = tracker.record_success("agent")
        assert recovered is not None
        assert recovered.failure_count == 2

    def test_failure_after_recovery_reopens_episode(self) -> None:
        tracker, _ = _tracker(threshold=1)
        tracker.record_failure("agent")
        assert tracker.record_success("agent") is not None
        tracker.record_failure("agent")
        assert [s.key for s in tracker.get_active_failures()] == ["agent"]
        assert tracker.record_success("agent") is not None

    def test_recovered_not_listed_as_active(self) -> None:
        tracker, _ = _tracker(threshold=1)
        tracker.record_failure("agent")
        tracker.record_failure("merge")
        tracker.record_success("agent")
        assert [s.key for s in tracker.get_active_failures()] == ["merge"]

    def test_clear(self) -> None:
        tracker, _ = _tracker()
        tracker.record_failure("agent")
        assert tracker.clear_recovery_state("agent") is True
        assert tracker.clear_recovery_state("agent") is False
        assert tracker.record_success("agent") is None


class TestIntrospection:
    def test_failure_duration(self) -> None:
        tracker, clock = _tracker()
        assert tracker.get_failure_duration("agent") is None
        tracker.record_failure("agent")
        clock.advance(65_500)
        assert tracker.get_failure_duration("agent") == 65

    def test_returned_state_is_copy(self) -> None:
        tracker, _ = _tracker()
        state = tracker.record_failure("agent")
        state.failure_count = 100
        assert tracker.get_recovery_state("agent").failure_count == 1  # type: ignore[union-attr]


class TestDefaultThreshold:
    def test_fifth_success_recovers(self) -> None:
        tracker = RecoveryTracker(clock=ManualClock(start_ms=0))
        tracker.record_failure("agent")
        for _ in range(4):
            assert tracker.record_success("agent") is None
        recovered = tracker.record_success("agent")
        assert recovered is not None
        assert recovered.is_recovered is True
        assert recovered.consecutive_success == 5

        tracker.record_failure("agent")
        state = tracker.get_recovery_state("agent")
        assert state is not None
        assert state.consecutive_success == 0
        assert state.is_recovered is False
