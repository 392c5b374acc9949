"""RuleConfigStore — ordered rule matching over a swappable config snapshot."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Protocol

import structlog
import yaml
from pydantic import ValidationError

from alertflow.core.config import (
    AlertsConfig,
    MetricAlertConfig,
    apply_env_overrides,
    read_yaml,
)
from alertflow.core.types import AlertEvent, Rule, Severity, ThrottlePolicy
from alertflow.alerting.exceptions import ConfigSourceError

logger = structlog.get_logger(__name__)


class ConfigSource(Protocol):
    """Anything that can produce a fresh :class:`AlertsConfig`."""

    def load(self) -> AlertsConfig: ...


class YamlConfigSource:
    """Reads the ``alerts`` section of a YAML settings file.

    A file with no ``alerts`` key is treated as the whole alerts section.
    Environment overrides (``ALERT_*``) are applied on every load.
    """

    def __init__(self, path: str | Path, apply_env: bool = True) -> None:
        self._path = Path(path)
        self._apply_env = apply_env

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AlertsConfig:
        try:
            data = read_yaml(self._path)
            section = data.get("alerts", data)
            config = AlertsConfig(**section)
            if self._apply_env:
                config = apply_env_overrides(config)
        except (OSError, ValueError, TypeError, ValidationError, yaml.YAMLError) as exc:
            raise ConfigSourceError(f"failed to load {self._path}: {exc}") from exc
        return config


class RuleConfigStore:
    """Holds the active alert config and answers rule lookups.

    The config is an immutable snapshot replaced wholesale by :meth:`reload`;
    lookups read the current reference once, so an evaluation never sees a
    half-applied reload.
    """

    def __init__(self, config: AlertsConfig | None = None) -> None:
        self._lock = threading.Lock()
        self._config: AlertsConfig = (config or AlertsConfig()).model_copy(deep=True)

    # ── Snapshot management ─────────────────────────────────────

    def snapshot(self) -> AlertsConfig:
        """The current config snapshot. Treat as read-only."""
        with self._lock:
            return self._config

    def reload(self, config: AlertsConfig) -> None:
        """Atomically replace the active config."""
        fresh = config.model_copy(deep=True)
        with self._lock:
            self._config = fresh
        logger.info(
            "alert_config_reloaded",
            enabled=fresh.enabled,
            rules=len(fresh.rules),
        )

    def reload_from(self, source: ConfigSource) -> AlertsConfig:
        """Load from *source* and swap it in.

        On failure the previous snapshot stays active and
        :class:`ConfigSourceError` propagates to the caller.
        """
        try:
            config = source.load()
        except ConfigSourceError:
            logger.exception("alert_config_reload_failed")
            raise
        self.reload(config)
        return config

    # ── Lookups ─────────────────────────────────────────────────

    def find_matching_rule(
        self,
        error_type: str | None = None,
        error_code: str | None = None,
        scenario: str | None = None,
    ) -> Rule | None:
        """Return the first enabled rule whose predicates all match, else None."""
        for rule in self.snapshot().rules:
            if not rule.enabled:
                continue
            if rule.match.matches(error_type, error_code, scenario):
                return rule
        return None

    def rule_for(self, event: AlertEvent) -> Rule | None:
        return self.find_matching_rule(
            error_type=event.error_type,
            error_code=event.code,
            scenario=event.scenario,
        )

    def throttle_policy_for(self, event: AlertEvent) -> ThrottlePolicy:
        """The matched rule's throttle policy, or the default one."""
        rule = self.rule_for(event)
        if rule is not None and rule.throttle is not None:
            return rule.throttle
        return self.default_throttle()

    def default_throttle(self) -> ThrottlePolicy:
        return self.snapshot().default_throttle

    def default_severity(self) -> Severity:
        return self.snapshot().default_severity

    def metrics_config(self) -> MetricAlertConfig:
        return self.snapshot().metrics

    def is_enabled(self) -> bool:
        return self.snapshot().enabled
