"""Core module — config, clock, types, logging."""

from alertflow.core.clock import Clock, ManualClock, system_clock
from alertflow.core.config import (
    AlertsConfig,
    Settings,
    get_settings,
    load_settings,
    reset_settings,
)
from alertflow.core.logging import setup_logging
from alertflow.core.types import (
    AlertEvent,
    ErrorType,
    Rule,
    RuleMatch,
    Severity,
    ThrottlePolicy,
)

__all__ = [
    "AlertEvent",
    "AlertsConfig",
    "Clock",
    "ErrorType",
    "ManualClock",
    "Rule",
    "RuleMatch",
    "Settings",
    "Severity",
    "ThrottlePolicy",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
    "system_clock",
]
