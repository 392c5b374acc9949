"""Alerting exceptions."""

from __future__ import annotations


class AlertingError(Exception):
    """Base exception for alert pipeline errors."""


class ConfigSourceError(AlertingError):
    """A configuration source failed to produce a valid rule snapshot."""
