"""ThrottleAggregator — single-slot per-key rate limiter with carry-forward counts."""

from __future__ import annotations

import math
import threading

import structlog

from alertflow.core.clock import Clock, system_clock
from alertflow.core.types import AlertEvent
from alertflow.alerting.keys import throttle_key
from alertflow.alerting.rules import RuleConfigStore
from alertflow.alerting.types import ThrottleDecision, ThrottleState

logger = structlog.get_logger(__name__)

DEFAULT_MAX_AGGREGATED_ERRORS = 10


class ThrottleAggregator:
    """Decides whether an occurrence of an alert key may notify now.

    - The first occurrence of a key is allowed immediately.
    - Later occurrences increment ``count`` and are denied until
      ``window_ms`` has elapsed since the last allowed send; the next
      occurrence after that is allowed and reports the accumulated count.
    - At most one notification per key per window; ``max_occurrences`` on
      the policy is not consulted.
    """

    def __init__(
        self,
        store: RuleConfigStore,
        clock: Clock | None = None,
        max_aggregated_errors: int = DEFAULT_MAX_AGGREGATED_ERRORS,
    ) -> None:
        self._store = store
        self._clock = clock or system_clock
        self._max_errors = max_aggregated_errors
        self._lock = threading.Lock()
        self._states: dict[str, ThrottleState] = {}

    def should_send(self, event: AlertEvent) -> ThrottleDecision:
        if event.force_skip_throttle:
            return ThrottleDecision(allow=True, reason="forced")

        policy = self._store.throttle_policy_for(event)
        if not policy.enabled:
            return ThrottleDecision(allow=True, reason="throttle-disabled")

        key = throttle_key(event)
        message = event.error_message()
        window = policy.window_ms

        with self._lock:
            now = self._clock()
            state = self._states.get(key)

            if state is None:
                state = ThrottleState(
                    key=key,
                    count=1,
                    first_seen=now,
                    last_seen=now,
                    last_sent=now,
                    aggregated_errors=[message],
                )
                self._states[key] = state
                return ThrottleDecision(
                    allow=True,
                    reason="first-occurrence",
                    state=self._flush(state),
                    window_ms=window,
                )

            if state.count == 0:
                state.first_seen = now
            state.count += 1
            state.last_seen = now
            self._add_error(state, message)

            elapsed = now - state.last_sent
            if elapsed >= window:
                state.last_sent = now
                return ThrottleDecision(
                    allow=True,
                    reason=f"aggregated-{state.count}-occurrences",
                    state=self._flush(state),
                    window_ms=window,
                )

            remaining = math.ceil((window - elapsed) / 1000)
            return ThrottleDecision(
                allow=False,
                reason=f"throttled-{remaining}s-remaining",
                state=state.model_copy(deep=True),
                window_ms=window,
            )

    @staticmethod
    def _flush(state: ThrottleState) -> ThrottleState:
        """Snapshot *state* for an allowed send, then restart its aggregate.

        Each send reports only the occurrences since the previous send.
        """
        snapshot = state.model_copy(deep=True)
        state.count = 0
        state.aggregated_errors = []
        return snapshot

    def _add_error(self, state: ThrottleState, message: str) -> None:
        if message in state.aggregated_errors:
            return
        if len(state.aggregated_errors) < self._max_errors:
            state.aggregated_errors.append(message)

    # ── Introspection / maintenance ─────────────────────────────

    def get_state(self, key: str) -> ThrottleState | None:
        with self._lock:
            state = self._states.get(key)
            return state.model_copy(deep=True) if state is not None else None

    def get_all_states(self) -> list[ThrottleState]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._states.values()]

    def reset(self, key: str) -> bool:
        with self._lock:
            removed = self._states.pop(key, None)
        if removed is None:
            return False
        logger.info("throttle_reset", key=key)
        return True

    def sweep(self) -> int:
        """Evict keys idle for more than twice the default window."""
        idle_limit = self._store.default_throttle().window_ms * 2
        with self._lock:
            now = self._clock()
            stale = [k for k, s in self._states.items() if now - s.last_seen > idle_limit]
            for key in stale:
                del self._states[key]
        if stale:
            logger.debug("throttle_sweep", removed=len(stale))
        return len(stale)
