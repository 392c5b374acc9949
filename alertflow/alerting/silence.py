"""SilenceRegistry — operator-declared suppression windows."""

from __future__ import annotations

import threading

import structlog

from alertflow.core.clock import Clock, system_clock
from alertflow.alerting.keys import SEPARATOR, silence_key
from alertflow.alerting.types import SilenceRule

logger = structlog.get_logger(__name__)


class SilenceRegistry:
    """Tracks silences keyed by ``error_type`` or ``error_type:scenario``.

    A scenario-specific silence masks only that scenario; a general silence
    masks every scenario of its error type. Expiry is checked against the
    clock on every read, so a rule past ``until`` stops silencing even
    before :meth:`sweep` removes it.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or system_clock
        self._lock = threading.Lock()
        self._rules: dict[str, SilenceRule] = {}

    def add_silence(
        self,
        error_type: str,
        duration_ms: float,
        reason: str = "",
        scenario: str | None = None,
        created_by: str | None = None,
    ) -> SilenceRule:
        """Silence *error_type* (optionally one scenario) for *duration_ms*.

        Replaces any existing rule with the same key.
        """
        now = self._clock()
        key = silence_key(error_type, scenario)
        rule = SilenceRule(
            key=key,
            error_type=error_type,
            scenario=scenario or None,
            until=now + duration_ms,
            reason=reason,
            created_at=now,
            created_by=created_by,
        )
        with self._lock:
            self._rules[key] = rule
        logger.info("silence_added", key=key, until=rule.until, reason=reason)
        return rule

    def get_silence_info(
        self, error_type: str, scenario: str | None = None
    ) -> SilenceRule | None:
        """The unexpired rule silencing this event, scenario-specific first."""
        now = self._clock()
        candidates = [silence_key(error_type)]
        if scenario:
            candidates.insert(0, silence_key(error_type, scenario))
        with self._lock:
            for key in candidates:
                rule = self._rules.get(key)
                if rule is not None and rule.is_active(now):
                    return rule
        return None

    def is_silenced(self, error_type: str, scenario: str | None = None) -> bool:
        rule = self.get_silence_info(error_type, scenario)
        if rule is None:
            return False
        logger.debug("alert_silenced", key=rule.key, reason=rule.reason)
        return True

    def get_remaining_seconds(
        self, error_type: str, scenario: str | None = None
    ) -> int | None:
        """Whole seconds (rounded up) until the silence lapses, or None."""
        rule = self.get_silence_info(error_type, scenario)
        if rule is None:
            return None
        return rule.remaining_seconds(self._clock())

    def remove_silence(self, error_type_or_key: str, scenario: str | None = None) -> bool:
        """Remove a silence by ``(error_type, scenario)`` or by raw composite key.

        A string containing ``:`` with no *scenario* is taken as a raw key.
        Returns False when nothing was removed.
        """
        if scenario is None and SEPARATOR in error_type_or_key:
            key = error_type_or_key
        else:
            key = silence_key(error_type_or_key, scenario)

        with self._lock:
            removed = self._rules.pop(key, None)
        if removed is None:
            return False
        logger.info("silence_removed", key=key)
        return True

    def list_silence_rules(self) -> list[SilenceRule]:
        """All rules, including expired ones not yet swept."""
        with self._lock:
            return [r.model_copy() for r in self._rules.values()]

    def get_active_silence_rules(self) -> list[SilenceRule]:
        now = self._clock()
        with self._lock:
            return [r.model_copy() for r in self._rules.values() if r.is_active(now)]

    def clear_all(self) -> int:
        with self._lock:
            count = len(self._rules)
            self._rules.clear()
        logger.info("silences_cleared", count=count)
        return count

    def sweep(self) -> int:
        """Delete rules whose ``until`` has passed. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, r in self._rules.items() if not r.is_active(now)]
            for key in expired:
                del self._rules[key]
        if expired:
            logger.info("silence_sweep", removed=len(expired))
        return len(expired)
