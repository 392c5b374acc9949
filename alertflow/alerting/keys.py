"""Alert key composition shared by the throttle, silence and recovery tables."""

from __future__ import annotations

from alertflow.core.types import AlertEvent

SEPARATOR = ":"


def alert_key(
    error_type: str,
    scenario: str | None = None,
    code: str | int | None = None,
) -> str:
    """Join the present identity parts as ``error_type[:scenario][:code]``."""
    parts = [str(error_type)]
    if scenario:
        parts.append(scenario)
    if code is not None and code != "":
        parts.append(str(code))
    return SEPARATOR.join(parts)


def throttle_key(event: AlertEvent) -> str:
    """Throttle identity: error type, scenario, and error or status code."""
    return alert_key(event.error_type, event.scenario, event.code)


def recovery_key(
    error_type: str,
    scenario: str | None = None,
    error_code: str | None = None,
) -> str:
    """Recovery identity: error type, scenario, and error code (never status code)."""
    return alert_key(error_type, scenario, error_code)


def silence_key(error_type: str, scenario: str | None = None) -> str:
    return alert_key(error_type, scenario)

