"""AlertPipeline — classify, silence, track recovery, throttle, then dispatch."""

from __future__ import annotations

import threading

import structlog

from alertflow.core.clock import Clock, system_clock
from alertflow.core.config import AlertsConfig, MetricThreshold
from alertflow.core.logging import DECISION_LOGGER
from alertflow.core.types import AlertEvent, Severity
from alertflow.alerting.channels import NotificationChannel
from alertflow.alerting.formatters import (
    format_failure,
    format_metric_alert,
    format_recovery,
)
from alertflow.alerting.keys import alert_key, recovery_key
from alertflow.alerting.recovery import RecoveryTracker
from alertflow.alerting.rules import RuleConfigStore
from alertflow.alerting.severity import SeverityClassifier
from alertflow.alerting.silence import SilenceRegistry
from alertflow.alerting.sweeper import PeriodicSweeper
from alertflow.alerting.throttle import ThrottleAggregator
from alertflow.alerting.types import (
    AlertMessage,
    AlertResult,
    ChannelResult,
    MetricAlert,
    RecoveryState,
    SilenceRule,
    ThrottleDecision,
    ThrottleSnapshot,
    ThrottleState,
)

# Dedicated structured logger for decision records.
decision_logger = structlog.get_logger(DECISION_LOGGER)

logger = structlog.get_logger(__name__)

# Metrics where a *lower* value is worse.
_LOWER_IS_WORSE = frozenset({"success_rate"})


class AlertPipeline:
    """Single entry point that turns failure events into notification decisions.

    Per event, in this order:

    1. Global switch off → ``globally-disabled``.
    2. Severity is classified.
    3. An active silence short-circuits → ``silenced-Xs-remaining``. Silenced
       events touch neither recovery tracking nor throttle aggregation.
    4. The failure is recorded for recovery detection (throttled events
       still count).
    5. The throttle decides; a denial → ``throttled-Xs-remaining``.
    6. The rendered alert goes to every channel; per-channel failures are
       recorded, never raised.

    Any unexpected exception becomes ``orchestrator-error: ...``;
    :meth:`evaluate` never raises.
    """

    def __init__(
        self,
        store: RuleConfigStore,
        channels: list[NotificationChannel] | None = None,
        clock: Clock | None = None,
    ) -> None:
        config = store.snapshot()
        self._store = store
        self._channels: list[NotificationChannel] = channels or []
        self._clock = clock or system_clock
        self._classifier = SeverityClassifier(store)
        self._silences = SilenceRegistry(clock=self._clock)
        self._throttle = ThrottleAggregator(
            store,
            clock=self._clock,
            max_aggregated_errors=config.max_aggregated_errors,
        )
        self._recovery = RecoveryTracker(
            clock=self._clock,
            threshold=config.recovery_threshold,
        )
        self._metric_lock = threading.Lock()
        self._metric_last_sent: dict[str, float] = {}
        self._sweepers = [
            PeriodicSweeper("silence", self._silences.sweep, config.silence_sweep_secs),
            PeriodicSweeper("throttle", self._throttle.sweep, config.throttle_sweep_secs),
        ]

    # ── Components (read-only access for wiring and tests) ──────

    @property
    def store(self) -> RuleConfigStore:
        return self._store

    @property
    def classifier(self) -> SeverityClassifier:
        return self._classifier

    @property
    def silences(self) -> SilenceRegistry:
        return self._silences

    @property
    def throttle(self) -> ThrottleAggregator:
        return self._throttle

    @property
    def recovery(self) -> RecoveryTracker:
        return self._recovery

    # ── Evaluation ──────────────────────────────────────────────

    async def evaluate(self, event: AlertEvent) -> AlertResult:
        try:
            result = await self._evaluate(event)
        except Exception as exc:
            logger.exception("orchestrator_error", error_type=event.error_type)
            result = AlertResult(
                sent=False,
                skipped=True,
                reason=f"orchestrator-error: {exc}",
            )
        self._log_decision(event, result)
        return result

    async def _evaluate(self, event: AlertEvent) -> AlertResult:
        if not self._store.is_enabled():
            return AlertResult(sent=False, skipped=True, reason="globally-disabled")

        severity = self._classifier.determine_severity(event)

        silence = self._silences.get_silence_info(event.error_type, event.scenario)
        if silence is not None:
            remaining = silence.remaining_seconds(self._clock())
            logger.warning(
                "alert_silenced",
                key=silence.key,
                reason=silence.reason,
                remaining_secs=remaining,
            )
            return AlertResult(
                sent=False,
                skipped=True,
                reason=f"silenced-{remaining}s-remaining",
                severity=severity,
            )

        self._recovery.record_failure(
            recovery_key(event.error_type, event.scenario, event.error_code)
        )

        decision = self._throttle.should_send(event)
        snapshot = _throttle_snapshot(decision)
        if not decision.allow:
            logger.debug("alert_throttled", reason=decision.reason)
            return AlertResult(
                sent=False,
                skipped=True,
                reason=decision.reason,
                severity=severity,
                throttle_state=snapshot,
            )

        msg = format_failure(event, severity, decision.state)
        channel_results = await self._dispatch_to_channels(msg)
        sent = not channel_results or any(r.success for r in channel_results)

        if sent:
            logger.info(
                "alert_sent",
                error_type=event.error_type,
                severity=severity,
                reason=decision.reason,
            )

        return AlertResult(
            sent=sent,
            skipped=not sent,
            reason=decision.reason if sent else "all-channels-failed",
            severity=severity,
            channels=channel_results,
            throttle_state=snapshot,
        )

    # ── Recovery ────────────────────────────────────────────────

    def record_success(
        self,
        error_type: str,
        scenario: str | None = None,
        error_code: str | None = None,
    ) -> RecoveryState | None:
        """Count a success for the failure episode of this identity.

        Returns the recovered episode exactly once; pass its ``key`` to
        :meth:`send_recovery_notification`.
        """
        return self.record_success_key(recovery_key(error_type, scenario, error_code))

    def record_success_key(self, key: str) -> RecoveryState | None:
        try:
            return self._recovery.record_success(key)
        except Exception:
            logger.exception("record_success_error", key=key)
            return None

    async def send_recovery_notification(self, key: str) -> bool:
        """Announce the recovery of *key* and clear its episode.

        Returns False when *key* has no recovered episode or delivery failed.
        """
        try:
            state = self._recovery.get_recovery_state(key)
            if state is None or not state.is_recovered:
                logger.warning("recovery_not_ready", key=key)
                return False

            msg = format_recovery(state, self._clock())
            results = await self._dispatch_to_channels(msg)
            self._recovery.clear_recovery_state(key)
            logger.info(
                "recovery_notified",
                key=key,
                failure_count=state.failure_count,
            )
            return not results or any(r.success for r in results)
        except Exception:
            logger.exception("recovery_notification_error", key=key)
            return False

    # ── Metric alerts ───────────────────────────────────────────

    def check_metric(
        self,
        metric: str,
        value: float,
        time_window: str | None = None,
    ) -> MetricAlert | None:
        """Classify *value* against the configured thresholds for *metric*.

        *metric* is one of ``success_rate``, ``avg_duration``,
        ``queue_depth``, ``error_rate``. Returns None when within bounds.
        """
        metrics = self._store.metrics_config()
        threshold = getattr(metrics, metric, None)
        if not isinstance(threshold, MetricThreshold):
            raise ValueError(f"unknown metric {metric!r}")

        if _breached(metric, value, threshold.critical):
            severity, limit = Severity.CRITICAL, threshold.critical
        elif _breached(metric, value, threshold.warning):
            severity, limit = Severity.WARNING, threshold.warning
        else:
            return None

        return MetricAlert(
            metric_name=metric,
            current_value=value,
            threshold=limit,
            severity=severity,
            time_window=time_window,
        )

    async def send_metric_alert(self, alert: MetricAlert) -> bool:
        """Send a metric alert directly (no silence or throttle).

        Returns False without sending while the same metric at the same
        severity is within ``metrics.cooldown_ms`` of its previous alert.
        """
        try:
            if not self._claim_metric_slot(alert):
                logger.debug(
                    "metric_alert_cooldown",
                    metric=alert.metric_name,
                    severity=alert.severity,
                )
                return False
            msg = format_metric_alert(alert)
            results = await self._dispatch_to_channels(msg)
            logger.info(
                "metric_alert_sent",
                metric=alert.metric_name,
                value=alert.current_value,
                threshold=alert.threshold,
            )
            return not results or any(r.success for r in results)
        except Exception:
            logger.exception("metric_alert_error", metric=alert.metric_name)
            return False

    def _claim_metric_slot(self, alert: MetricAlert) -> bool:
        key = alert_key("metric", alert.metric_name, alert.severity)
        cooldown = self._store.metrics_config().cooldown_ms
        with self._metric_lock:
            now = self._clock()
            last = self._metric_last_sent.get(key)
            if last is not None and now - last < cooldown:
                return False
            self._metric_last_sent[key] = now
        return True

    # ── Silences ────────────────────────────────────────────────

    def add_silence(
        self,
        error_type: str,
        duration_ms: float,
        reason: str = "",
        scenario: str | None = None,
        created_by: str | None = None,
    ) -> SilenceRule:
        return self._silences.add_silence(
            error_type,
            duration_ms,
            reason=reason,
            scenario=scenario,
            created_by=created_by,
        )

    def remove_silence(self, error_type_or_key: str, scenario: str | None = None) -> bool:
        return self._silences.remove_silence(error_type_or_key, scenario)

    def list_silence_rules(self) -> list[SilenceRule]:
        return self._silences.list_silence_rules()

    # ── Introspection ───────────────────────────────────────────

    def get_active_failures(self) -> list[RecoveryState]:
        return self._recovery.get_active_failures()

    def get_all_throttle_states(self) -> list[ThrottleState]:
        return self._throttle.get_all_states()

    def reset_throttle(self, key: str) -> bool:
        return self._throttle.reset(key)

    def reload_config(self, config: AlertsConfig) -> None:
        self._store.reload(config)

    # ── Internal ────────────────────────────────────────────────

    def _log_decision(self, event: AlertEvent, result: AlertResult) -> None:
        decision_logger.info(
            "decision",
            error_type=event.error_type,
            scenario=event.scenario,
            code=event.code,
            conversation_id=event.conversation_id,
            severity=result.severity,
            sent=result.sent,
            reason=result.reason,
        )

    async def _dispatch_to_channels(self, msg: AlertMessage) -> list[ChannelResult]:
        results: list[ChannelResult] = []
        for ch in self._channels:
            try:
                ok = await ch.send(msg)
            except Exception as exc:
                logger.exception("channel_dispatch_error", channel=ch.name, title=msg.title)
                results.append(ChannelResult(channel=ch.name, success=False, error=str(exc)))
                continue
            results.append(
                ChannelResult(
                    channel=ch.name,
                    success=bool(ok),
                    error=None if ok else "delivery rejected",
                )
            )
        return results

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        """Start the background silence and throttle sweeps."""
        for sweeper in self._sweepers:
            await sweeper.start()

    async def stop(self) -> None:
        for sweeper in self._sweepers:
            await sweeper.stop()

    async def close(self) -> None:
        await self.stop()
        for ch in self._channels:
            try:
                await ch.close()
            except Exception:
                logger.exception("channel_close_error", channel=ch.name)


def _breached(metric: str, value: float, limit: float) -> bool:
    if metric in _LOWER_IS_WORSE:
        return value < limit
    return value > limit


def _throttle_snapshot(decision: ThrottleDecision) -> ThrottleSnapshot | None:
    ends_at = decision.window_ends_at
    if decision.state is None or ends_at is None:
        return None
    return ThrottleSnapshot(aggregated_count=decision.state.count, window_ends_at=ends_at)
