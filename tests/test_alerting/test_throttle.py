"""Tests for ThrottleAggregator — windows, carry-forward counts, bypasses."""

from __future__ import annotations

import threading

from alertflow.core.clock import ManualClock
from alertflow.core.config import AlertsConfig
from alertflow.core.types import AlertEvent, Rule, RuleMatch, Severity, ThrottlePolicy
from alertflow.alerting.rules import RuleConfigStore
from alertflow.alerting.throttle import ThrottleAggregator


def _agg(
    window_ms: int = 5000,
    rules: list[Rule] | None = None,
    max_errors: int = 10,
) -> tuple[ThrottleAggregator, ManualClock]:
    clock = ManualClock(start_ms=0)
    store = RuleConfigStore(
        AlertsConfig(rules=rules or [], default_throttle=ThrottlePolicy(window_ms=window_ms))
    )
    return ThrottleAggregator(store, clock=clock, max_aggregated_errors=max_errors), clock


def _ev(**kw: object) -> AlertEvent:
    defaults: dict[str, object] = {"error_type": "agent", "error": "boom"}
    defaults.update(kw)
    return AlertEvent(**defaults)  # type: ignore[arg-type]


# ── Windowing ───────────────────────────────────────────────────


class TestWindow:
    def test_timeline(self) -> None:
        agg, clock = _agg(window_ms=5000)

        first = agg.should_send(_ev())
        assert first.allow is True
        assert first.reason == "first-occurrence"

        clock.set(100)
        d = agg.should_send(_ev())
        assert d.allow is False
        assert d.reason == "throttled-5s-remaining"

        clock.set(200)
        d = agg.should_send(_ev())
        assert d.allow is False
        assert d.reason.startswith("throttled-")

        clock.set(5100)
        d = agg.should_send(_ev())
        assert d.allow is True
        assert d.reason == "aggregated-3-occurrences"
        assert d.state is not None
        assert d.state.count == 3
        assert d.window_ends_at == 5100 + 5000

        clock.set(5200)
        d = agg.should_send(_ev())
        assert d.allow is False
        assert d.reason.startswith("throttled-")

    def test_window_boundary_is_inclusive(self) -> None:
        agg, clock = _agg(window_ms=1000)
        agg.should_send(_ev())
        clock.set(1000)
        d = agg.should_send(_ev())
        assert d.allow is True
        assert d.reason == "aggregated-1-occurrences"

    def test_remaining_rounds_up(self) -> None:
        agg, clock = _agg(window_ms=5000)
        agg.should_send(_ev())
        clock.set(4999)
        assert agg.should_send(_ev()).reason == "throttled-1s-remaining"

    def test_distinct_keys_independent(self) -> None:
        agg, _ = _agg()
        assert agg.should_send(_ev(status_code=500)).allow is True
        assert agg.should_send(_ev(status_code=502)).allow is True
        assert agg.should_send(_ev(scenario="onboarding")).allow is True
        assert agg.should_send(_ev(status_code=500)).allow is False

    def test_throttled_state_reports_pending_count(self) -> None:
        agg, clock = _agg()
        agg.should_send(_ev())
        clock.set(10)
        agg.should_send(_ev())
        clock.set(20)
        d = agg.should_send(_ev())
        assert d.state is not None
        assert d.state.count == 2
        assert d.state.first_seen == 10
        assert d.state.last_seen == 20

    def test_rule_window_applies(self) -> None:
        rule = Rule(
            name="rate-limit",
            match=RuleMatch(error_type=["agent"], error_code="^429$"),
            severity=Severity.WARNING,
            throttle=ThrottlePolicy(window_ms=600_000),
        )
        agg, clock = _agg(window_ms=5000, rules=[rule])
        agg.should_send(_ev(status_code=429))
        clock.set(10_000)
        assert agg.should_send(_ev(status_code=429)).allow is False
        # Default window governs the unmatched key.
        agg.should_send(_ev(status_code=500))
        clock.set(20_000)
        assert agg.should_send(_ev(status_code=500)).allow is True


# ── Bypasses ────────────────────────────────────────────────────


class TestBypass:
    def test_force_skip_always_allows(self) -> None:
        agg, _ = _agg()
        for _ in range(100):
            d = agg.should_send(_ev(force_skip_throttle=True))
            assert d.allow is True
            assert d.reason == "forced"
        assert agg.get_all_states() == []

    def test_disabled_policy(self) -> None:
        rule = Rule(
            name="noisy",
            match=RuleMatch(error_type=["merge"]),
            severity=Severity.WARNING,
            throttle=ThrottlePolicy(enabled=False),
        )
        agg, _ = _agg(rules=[rule])
        for _ in range(3):
            d = agg.should_send(_ev(error_type="merge"))
            assert d.allow is True
            assert d.reason == "throttle-disabled"


# ── Aggregated errors ───────────────────────────────────────────


class TestAggregatedErrors:
    def test_dedup(self) -> None:
        agg, clock = _agg(window_ms=1000)
        agg.should_send(_ev(error="a"))
        agg.should_send(_ev(error="b"))
        agg.should_send(_ev(error="b"))
        agg.should_send(_ev(error="c"))
        clock.set(1000)
        d = agg.should_send(_ev(error="a"))
        assert d.state is not None
        assert d.state.aggregated_errors == ["b", "c", "a"]
        assert d.state.count == 4

    def test_cap(self) -> None:
        agg, _ = _agg(max_errors=10)
        agg.should_send(_ev(error="first"))
        for i in range(20):
            agg.should_send(_ev(error=f"err-{i}"))
        state = agg.get_state("agent")
        assert state is not None
        assert len(state.aggregated_errors) == 10
        assert state.aggregated_errors[0] == "err-0"
        assert state.count == 20


# ── Maintenance ─────────────────────────────────────────────────


class TestMaintenance:
    def test_reset(self) -> None:
        agg, _ = _agg()
        agg.should_send(_ev())
        assert agg.reset("agent") is True
        assert agg.reset("agent") is False
        assert agg.should_send(_ev()).reason == "first-occurrence"

    def test_get_state_is_copy(self) -> None:
        agg, _ = _agg()
        agg.should_send(_ev())
        state = agg.get_state("agent")
        assert state is not None
        state.count = 999
        assert agg.get_state("agent").count == 0  # type: ignore[union-attr]

    def test_sweep_evicts_idle_keys(self) -> None:
        agg, clock = _agg(window_ms=1000)
        agg.should_send(_ev(status_code=500))
        clock.set(1500)
        agg.should_send(_ev(status_code=502))
        clock.set(2500)
        assert agg.sweep() == 1
        assert agg.get_state("agent:500") is None
        assert agg.get_state("agent:502") is not None

    def test_concurrent_first_occurrence(self) -> None:
        agg, _ = _agg()
        results: list[bool] = []

        def worker() -> None:
            results.append(agg.should_send(_ev()).allow)

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results.count(True) == 1
