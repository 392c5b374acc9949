"""Convenience factory for wiring the alert pipeline."""

from __future__ import annotations

from alertflow.core.clock import Clock
from alertflow.core.config import AlertsConfig
from alertflow.alerting.channels import NotificationChannel, WebhookChannel
from alertflow.alerting.pipeline import AlertPipeline
from alertflow.alerting.rules import RuleConfigStore


def create_alert_pipeline(
    config: AlertsConfig,
    channels: list[NotificationChannel] | None = None,
    clock: Clock | None = None,
) -> AlertPipeline:
    """Build a pipeline from config.

    Explicit *channels* replace the configured ones; otherwise the webhook
    channel is added when enabled.
    """
    if channels is None:
        channels = []
        if config.webhook.enabled:
            channels.append(WebhookChannel(config.webhook, clock=clock))

    store = RuleConfigStore(config)
    return AlertPipeline(store=store, channels=channels, clock=clock)
