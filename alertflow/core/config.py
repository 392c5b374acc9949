"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Callable, Mapping, TypeVar

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator

from alertflow.core.types import Rule, RuleMatch, Severity, ThrottlePolicy

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")

_FIVE_MINUTES_MS = 5 * 60 * 1000

_N = TypeVar("_N", int, float)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"
    decision_log: bool = True


class MetricThreshold(BaseModel):
    """Warning / critical thresholds for one business metric."""

    warning: float
    critical: float


class MetricAlertConfig(BaseModel):
    """Business metric thresholds.

    ``success_rate`` breaches when the value drops *below* a threshold;
    every other metric breaches when it rises *above* one. At most one
    alert per metric is sent within ``cooldown_ms``.
    """

    success_rate: MetricThreshold = MetricThreshold(warning=90, critical=80)
    avg_duration: MetricThreshold = MetricThreshold(warning=5000, critical=10000)
    queue_depth: MetricThreshold = MetricThreshold(warning=50, critical=100)
    error_rate: MetricThreshold = MetricThreshold(warning=10, critical=20)
    cooldown_ms: int = Field(default=_FIVE_MINUTES_MS, ge=0)


class WebhookConfig(BaseModel):
    """Chat webhook (Feishu custom bot) delivery configuration."""

    enabled: bool = False
    url: SecretStr = SecretStr("")
    secret: SecretStr = SecretStr("")
    timeout_secs: float = 5.0
    environment: str = "unknown"


def default_rules() -> list[Rule]:
    """Built-in rule list used when the config file provides none."""
    return [
        Rule(
            name="agent-auth-failure",
            description="Agent API authentication failure (401/403)",
            match=RuleMatch(error_type=["agent"], error_code="401|403"),
            severity=Severity.CRITICAL,
            throttle=ThrottlePolicy(window_ms=_FIVE_MINUTES_MS, max_occurrences=3),
        ),
        Rule(
            name="agent-rate-limit",
            description="Agent API rate limited (429)",
            match=RuleMatch(error_type=["agent"], error_code="429"),
            severity=Severity.WARNING,
            throttle=ThrottlePolicy(window_ms=2 * _FIVE_MINUTES_MS, max_occurrences=5),
        ),
        Rule(
            name="agent-general-error",
            description="Agent API generic error",
            match=RuleMatch(error_type=["agent"]),
            severity=Severity.ERROR,
            throttle=ThrottlePolicy(window_ms=_FIVE_MINUTES_MS, max_occurrences=10),
        ),
        Rule(
            name="message-processing-error",
            match=RuleMatch(error_type=["message"]),
            severity=Severity.WARNING,
            throttle=ThrottlePolicy(window_ms=_FIVE_MINUTES_MS, max_occurrences=10),
        ),
        Rule(
            name="message-delivery-failure",
            match=RuleMatch(error_type=["delivery"]),
            severity=Severity.WARNING,
            throttle=ThrottlePolicy(window_ms=_FIVE_MINUTES_MS, max_occurrences=10),
        ),
        Rule(
            name="message-merge-failure",
            match=RuleMatch(error_type=["merge"]),
            severity=Severity.WARNING,
            throttle=ThrottlePolicy(window_ms=_FIVE_MINUTES_MS, max_occurrences=5),
        ),
    ]


class AlertsConfig(BaseModel):
    """Alert pipeline configuration: rules, defaults, and sweep cadence."""

    enabled: bool = True
    default_severity: Severity = Severity.ERROR
    default_throttle: ThrottlePolicy = ThrottlePolicy(
        window_ms=_FIVE_MINUTES_MS, max_occurrences=5
    )
    rules: list[Rule] = Field(default_factory=default_rules)
    metrics: MetricAlertConfig = MetricAlertConfig()
    recovery_threshold: int = 5
    max_aggregated_errors: int = 10
    silence_sweep_secs: float = Field(default=60.0, gt=0)
    throttle_sweep_secs: float = Field(default=300.0, gt=0)
    webhook: WebhookConfig = WebhookConfig()

    @field_validator("rules")
    @classmethod
    def _check_patterns(cls, rules: list[Rule]) -> list[Rule]:
        for rule in rules:
            if rule.match.error_code:
                try:
                    re.compile(rule.match.error_code)
                except re.error as exc:
                    raise ValueError(
                        f"rule {rule.name!r} has invalid error_code pattern: {exc}"
                    ) from exc
        return rules


class Settings(BaseModel):
    """Root settings container."""

    alerts: AlertsConfig = AlertsConfig()
    logging: LoggingConfig = LoggingConfig()


def _env_number(
    env: Mapping[str, str], name: str, cast: Callable[[str], _N]
) -> _N | None:
    raw = env.get(name)
    if raw is None:
        return None
    try:
        return cast(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def apply_env_overrides(
    config: AlertsConfig, environ: Mapping[str, str] | None = None
) -> AlertsConfig:
    """Return a copy of *config* with ``ALERT_*`` environment overrides applied.

    Raises ValueError naming the variable when a numeric override is malformed.
    """
    env = os.environ if environ is None else environ
    update: dict[str, Any] = {}

    enabled = env.get("ALERT_ENABLED")
    if enabled is not None:
        update["enabled"] = enabled.strip().lower() == "true"

    window = _env_number(env, "ALERT_THROTTLE_WINDOW_MS", int)
    if window is not None:
        update["default_throttle"] = config.default_throttle.model_copy(
            update={"window_ms": window}
        )

    warn = _env_number(env, "ALERT_SUCCESS_RATE_WARNING", float)
    crit = _env_number(env, "ALERT_SUCCESS_RATE_CRITICAL", float)
    if warn is not None or crit is not None:
        current = config.metrics.success_rate
        success_rate = MetricThreshold(
            warning=warn if warn is not None else current.warning,
            critical=crit if crit is not None else current.critical,
        )
        update["metrics"] = config.metrics.model_copy(
            update={"success_rate": success_rate}
        )

    if not update:
        return config
    return config.model_copy(update=update)


def read_yaml(path: str | Path) -> dict[str, Any]:
    """Read a YAML mapping from *path*; a missing file or non-mapping yields {}."""
    config_path = Path(path)
    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw
    return data


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance, with ``ALERT_*`` environment overrides applied.
    """
    global _settings  # noqa: PLW0603

    data = read_yaml(path if path else _DEFAULT_CONFIG_PATH)
    settings = Settings(**data)
    settings.alerts = apply_env_overrides(settings.alerts)

    _settings = settings
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
