"""Alert decision pipeline: severity, silences, throttling, recovery."""

from alertflow.alerting.channels import NotificationChannel, WebhookChannel
from alertflow.alerting.factory import create_alert_pipeline
from alertflow.alerting.pipeline import AlertPipeline
from alertflow.alerting.recovery import RecoveryTracker
from alertflow.alerting.rules import ConfigSource, RuleConfigStore, YamlConfigSource
from alertflow.alerting.severity import SeverityClassifier
from alertflow.alerting.silence import SilenceRegistry
from alertflow.alerting.throttle import ThrottleAggregator
from alertflow.alerting.types import (
    AlertMessage,
    AlertResult,
    ChannelResult,
    MetricAlert,
    RecoveryState,
    SilenceRule,
    ThrottleState,
)

__all__ = [
    "AlertMessage",
    "AlertPipeline",
    "AlertResult",
    "ChannelResult",
    "ConfigSource",
    "MetricAlert",
    "NotificationChannel",
    "RecoveryState",
    "RecoveryTracker",
    "RuleConfigStore",
    "SeverityClassifier",
    "SilenceRegistry",
    "SilenceRule",
    "ThrottleAggregator",
    "ThrottleState",
    "WebhookChannel",
    "YamlConfigSource",
    "create_alert_pipeline",
]
