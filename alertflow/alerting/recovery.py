"""RecoveryTracker — failure episodes with consecutive-success hysteresis."""

from __future__ import annotations

import threading

import structlog

from alertflow.core.clock import Clock, system_clock
from alertflow.alerting.types import RecoveryState

logger = structlog.get_logger(__name__)

DEFAULT_RECOVERY_THRESHOLD = 5


class RecoveryTracker:
    """Remembers failing keys and reports recovery after N straight successes.

    :meth:`record_success` returns a snapshot exactly once per episode, when
    the run of successes first reaches the threshold. The tracker never
    forgets an episode by itself: the caller clears it with
    :meth:`clear_recovery_state` after announcing the recovery.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        threshold: int = DEFAULT_RECOVERY_THRESHOLD,
    ) -> None:
        self._clock = clock or system_clock
        self._threshold = threshold
        self._lock = threading.Lock()
        self._states: dict[str, RecoveryState] = {}

    @property
    def threshold(self) -> int:
        return self._threshold

    def record_failure(self, key: str) -> RecoveryState:
        with self._lock:
            state = self._states.get(key)
            if state is None:
                state = RecoveryState(key=key, start_time=self._clock())
                self._states[key] = state
                logger.debug("failure_episode_started", key=key)
            else:
                state.failure_count += 1
                state.consecutive_success = 0
                state.is_recovered = False
            return state.model_copy()

    def record_success(self, key: str) -> RecoveryState | None:
        """Count a success; return a snapshot when the episode just recovered."""
        with self._lock:
            state = self._states.get(key)
            if state is None:
                return None

            state.consecutive_success += 1
            if state.consecutive_success >= self._threshold and not state.is_recovered:
                state.is_recovered = True
                snapshot = state.model_copy()
            else:
                return None

        logger.info(
            "failure_recovered",
            key=key,
            duration_secs=int((self._clock() - snapshot.start_time) // 1000),
            failure_count=snapshot.failure_count,
        )
        return snapshot

    def clear_recovery_state(self, key: str) -> bool:
        with self._lock:
            removed = self._states.pop(key, None)
        if removed is None:
            return False
        logger.debug("recovery_state_cleared", key=key)
        return True

    def get_recovery_state(self, key: str) -> RecoveryState | None:
        with self._lock:
            state = self._states.get(key)
            return state.model_copy() if state is not None else None

    def get_active_failures(self) -> list[RecoveryState]:
        """Episodes not yet marked recovered."""
        with self._lock:
            return [s.model_copy() for s in self._states.values() if not s.is_recovered]

    def get_failure_duration(self, key: str) -> int | None:
        """Whole seconds since the episode started, or None."""
        with self._lock:
            state = self._states.get(key)
            if state is None:
                return None
            start = state.start_time
        return int((self._clock() - start) // 1000)
