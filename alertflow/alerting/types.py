"""Domain types for the alert decision pipeline."""

from __future__ import annotations

import math
import time
from typing import Any

from pydantic import BaseModel, Field

from alertflow.core.types import Severity

# ── Per-key State ───────────────────────────────────────────────


class ThrottleState(BaseModel):
    """Occurrence counter for one throttle key (times in epoch ms)."""

    key: str
    count: int = 1
    first_seen: float
    last_seen: float
    last_sent: float
    aggregated_errors: list[str] = Field(default_factory=list)


class ThrottleDecision(BaseModel):
    """Outcome of a throttle check."""

    allow: bool
    reason: str
    state: ThrottleState | None = None
    window_ms: int | None = None

    @property
    def window_ends_at(self) -> float | None:
        if self.state is None or self.window_ms is None:
            return None
        return self.state.last_sent + self.window_ms


class SilenceRule(BaseModel):
    """Operator-declared suppression window.

    ``key`` is ``error_type`` or ``error_type:scenario``.
    """

    key: str
    error_type: str
    scenario: str | None = None
    until: float
    reason: str = ""
    created_at: float
    created_by: str | None = None

    def is_active(self, now: float) -> bool:
        return self.until > now

    def remaining_seconds(self, now: float) -> int:
        """Whole seconds (rounded up) until expiry, never negative."""
        return max(0, math.ceil((self.until - now) / 1000))


class RecoveryState(BaseModel):
    """An ongoing failure episode for one recovery key."""

    key: str
    start_time: float
    failure_count: int = 1
    consecutive_success: int = 0
    is_recovered: bool = False


# ── Results ─────────────────────────────────────────────────────


class ChannelResult(BaseModel):
    """Delivery outcome for one notification channel."""

    channel: str
    success: bool
    error: str | None = None


class ThrottleSnapshot(BaseModel):
    """Aggregation info attached to throttled and sent results."""

    aggregated_count: int
    window_ends_at: float


class AlertResult(BaseModel):
    """Decision returned for every evaluated event.

    ``reason`` is a stable machine-readable token: ``first-occurrence``,
    ``aggregated-N-occurrences``, ``throttled-Xs-remaining``,
    ``silenced-Xs-remaining``, ``forced``, ``throttle-disabled``,
    ``globally-disabled``, ``all-channels-failed`` or
    ``orchestrator-error: ...``.
    """

    sent: bool
    skipped: bool
    reason: str
    severity: Severity | None = None
    channels: list[ChannelResult] = Field(default_factory=list)
    throttle_state: ThrottleSnapshot | None = None


# ── Metric Alerts ───────────────────────────────────────────────


class MetricAlert(BaseModel):
    """A business metric that crossed a configured threshold."""

    metric_name: str
    current_value: float
    threshold: float
    severity: Severity
    time_window: str | None = None
    unit: str | None = None
    additional_info: dict[str, Any] = Field(default_factory=dict)


# ── Rendered Notification ───────────────────────────────────────


class AlertMessage(BaseModel):
    """Normalised notification ready for delivery to channels."""

    severity: Severity
    title: str
    body: str = ""
    fields: dict[str, str] = Field(default_factory=dict)
    source_key: str = ""
    timestamp: float = Field(default_factory=time.time)
