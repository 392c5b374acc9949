"""SeverityClassifier — override, then rule match, then status-code heuristics."""

from __future__ import annotations

import structlog

from alertflow.core.types import AlertEvent, ErrorType, Severity
from alertflow.alerting.rules import RuleConfigStore

logger = structlog.get_logger(__name__)

# Fallback severity per error type when neither a rule nor a status code decides.
_ERROR_TYPE_DEFAULTS: dict[str, Severity] = {
    ErrorType.AGENT: Severity.ERROR,
    ErrorType.MESSAGE: Severity.WARNING,
    ErrorType.DELIVERY: Severity.WARNING,
    ErrorType.MERGE: Severity.WARNING,
}

_ICONS: dict[Severity, str] = {
    Severity.CRITICAL: "\U0001f534",  # red circle
    Severity.ERROR: "\U0001f6a8",  # rotating light
    Severity.WARNING: "⚠️",
    Severity.INFO: "ℹ️",
}

# Feishu card header templates.
_COLORS: dict[Severity, str] = {
    Severity.CRITICAL: "purple",
    Severity.ERROR: "red",
    Severity.WARNING: "orange",
    Severity.INFO: "blue",
}


def _as_int(value: int | str | None) -> int | None:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


class SeverityClassifier:
    """Pure severity decision for an :class:`AlertEvent`.

    Precedence:

    1. ``event.severity`` when the caller set one.
    2. The first matching rule in the :class:`RuleConfigStore`.
    3. Heuristics: 401/403 → CRITICAL, 429 → WARNING, 5xx → ERROR,
       other 4xx → WARNING, then a per-error-type table, then the
       store's default severity.
    """

    def __init__(self, store: RuleConfigStore) -> None:
        self._store = store

    def determine_severity(self, event: AlertEvent) -> Severity:
        if event.severity is not None:
            return event.severity

        rule = self._store.rule_for(event)
        if rule is not None:
            logger.debug("severity_rule_matched", rule=rule.name, severity=rule.severity)
            return rule.severity

        return self.infer_severity(event)

    def infer_severity(self, event: AlertEvent) -> Severity:
        status = _as_int(event.status_code)
        code = _as_int(event.error_code)

        if status in (401, 403) or code in (401, 403):
            return Severity.CRITICAL
        if status == 429 or code == 429:
            return Severity.WARNING
        if status is not None and 500 <= status < 600:
            return Severity.ERROR
        if status is not None and 400 <= status < 500:
            return Severity.WARNING

        default = _ERROR_TYPE_DEFAULTS.get(event.error_type)
        if default is not None:
            return default
        return self._store.default_severity()


def severity_icon(severity: Severity) -> str:
    return _ICONS.get(severity, "\U0001f4e2")


def severity_label(severity: Severity) -> str:
    return severity.name


def severity_color(severity: Severity) -> str:
    return _COLORS.get(severity, "blue")
