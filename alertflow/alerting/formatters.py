"""Pure functions that convert pipeline outcomes into AlertMessage instances."""

from __future__ import annotations

import datetime
from typing import Any

from alertflow.core.types import AlertEvent, Severity
from alertflow.alerting.severity import severity_icon, severity_label
from alertflow.alerting.types import AlertMessage, MetricAlert, RecoveryState, ThrottleState

_SENSITIVE_MARKERS = ("key", "token", "secret", "password", "authorization")

_MAX_ERROR_LINES = 5


def _fmt_ts(ms: float) -> str:
    return datetime.datetime.fromtimestamp(ms / 1000, datetime.UTC).strftime(
        "%Y-%m-%d %H:%M:%S UTC"
    )


def mask_secret(value: str) -> str:
    """Keep the first and last four characters of long secrets."""
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}****{value[-4:]}"


def _mask_metadata(metadata: dict[str, Any]) -> dict[str, str]:
    masked: dict[str, str] = {}
    for k, v in metadata.items():
        if any(marker in k.lower() for marker in _SENSITIVE_MARKERS):
            masked[k] = mask_secret(str(v))
        else:
            masked[k] = str(v)
    return masked


# ── Failures ────────────────────────────────────────────────────


def format_failure(
    event: AlertEvent,
    severity: Severity,
    state: ThrottleState | None = None,
) -> AlertMessage:
    """Notification for an event the pipeline decided to send.

    When *state* covers more than one occurrence, the aggregated count,
    time span and a sample of distinct error messages are included.
    """
    fields: dict[str, str] = {"Severity": severity_label(severity)}
    if event.conversation_id:
        fields["Conversation"] = event.conversation_id
    if event.scenario:
        fields["Scenario"] = event.scenario
    if event.api_endpoint:
        fields["Endpoint"] = event.api_endpoint
    if event.code:
        fields["Code"] = event.code
    if event.channel:
        fields["Channel"] = event.channel
    if event.contact_name:
        fields["Contact"] = event.contact_name
    if event.duration_ms is not None:
        fields["Duration"] = f"{event.duration_ms:.0f}ms"
    if event.fallback_message:
        seen = "" if event.fallback_success is None else (
            " (delivered)" if event.fallback_success else " (failed)"
        )
        fields["Fallback"] = f"{event.fallback_message}{seen}"
    fields.update(_mask_metadata(event.metadata))

    body_parts = [event.error_message()]
    if event.user_message:
        body_parts.append(f"User message: {event.user_message}")

    if state is not None and state.count > 1:
        fields["Occurrences"] = str(state.count)
        fields["Window"] = f"{_fmt_ts(state.first_seen)} → {_fmt_ts(state.last_seen)}"
        sample = state.aggregated_errors[:_MAX_ERROR_LINES]
        if sample:
            body_parts.append(
                "Recent errors:\n" + "\n".join(f"{i}. {m}" for i, m in enumerate(sample, 1))
            )

    return AlertMessage(
        severity=severity,
        title=f"{severity_icon(severity)} {event.error_type} failure",
        body="\n\n".join(body_parts),
        fields=fields,
        source_key=state.key if state is not None else event.error_type,
    )


# ── Recovery ────────────────────────────────────────────────────


def format_recovery(state: RecoveryState, now_ms: float) -> AlertMessage:
    duration_secs = int(max(0.0, now_ms - state.start_time) // 1000)
    return AlertMessage(
        severity=Severity.INFO,
        title=f"✅ Recovered [{state.key}]",
        fields={
            "Recovered at": _fmt_ts(now_ms),
            "Outage": f"{duration_secs // 60} min ({duration_secs} s)",
            "Failures during outage": str(state.failure_count),
            "Consecutive successes": str(state.consecutive_success),
        },
        source_key=state.key,
    )


# ── Metrics ─────────────────────────────────────────────────────


def infer_metric_unit(metric_name: str) -> tuple[str, float]:
    """Return ``(unit, divisor)`` guessed from the metric name."""
    name = metric_name.lower()
    if "success" in name:
        return "%", 1.0
    if "duration" in name or "latency" in name:
        return "s", 1000.0
    if "queue" in name:
        return " items", 1.0
    if "error rate" in name or "error_rate" in name:
        return "/h", 1.0
    return "", 1.0


def _fmt_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}"


def format_metric_alert(alert: MetricAlert) -> AlertMessage:
    if alert.unit is not None:
        unit, divisor = alert.unit, 1.0
    else:
        unit, divisor = infer_metric_unit(alert.metric_name)

    fields = {
        "Metric": alert.metric_name,
        "Current": f"{_fmt_number(alert.current_value / divisor)}{unit}",
        "Threshold": f"{_fmt_number(alert.threshold / divisor)}{unit}",
        "Severity": severity_label(alert.severity),
    }
    if alert.time_window:
        fields["Window"] = alert.time_window
    fields.update({k: str(v) for k, v in alert.additional_info.items()})

    return AlertMessage(
        severity=alert.severity,
        title=f"{severity_icon(alert.severity)} Metric alert: {alert.metric_name}",
        fields=fields,
        source_key=f"metric:{alert.metric_name}",
    )
