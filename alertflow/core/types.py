"""Shared domain types: severities, incoming alert events, and rules."""

from __future__ import annotations

import re
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_SEVERITY_RANK = {"info": 0, "warning": 1, "error": 2, "critical": 3}


class Severity(StrEnum):
    """Alert severity, ordered via :attr:`rank`."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self.value]


class ErrorType(StrEnum):
    """Known error categories. Events may carry any string."""

    AGENT = "agent"
    MESSAGE = "message"
    DELIVERY = "delivery"
    SYSTEM = "system"
    MERGE = "merge"
    UNKNOWN = "unknown"


# ── Alert Events ────────────────────────────────────────────────


class AlertEvent(BaseModel):
    """A single failure report handed to the pipeline.

    Immutable: the caller builds it once and the pipeline consumes it once.
    ``error`` is the opaque payload (string, exception, or structured
    response body).
    """

    model_config = ConfigDict(frozen=True)

    error_type: str
    error: Any = None
    severity: Severity | None = None
    scenario: str | None = None
    error_code: str | None = None
    status_code: int | str | None = None

    conversation_id: str = ""
    user_message: str | None = None
    channel: str | None = None
    contact_name: str | None = None
    api_endpoint: str | None = None
    duration_ms: float | None = None
    fallback_message: str | None = None
    fallback_success: bool | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    force_skip_throttle: bool = False

    @field_validator("error_code", mode="before")
    @classmethod
    def _code_as_str(cls, v: Any) -> Any:
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @property
    def code(self) -> str | None:
        """Error code if present, else the status code, as a string."""
        if self.error_code:
            return self.error_code
        if self.status_code is not None and self.status_code != "":
            return str(self.status_code)
        return None

    def error_message(self) -> str:
        """Best-effort human message extracted from the opaque payload."""
        err = self.error
        if isinstance(err, str):
            return err
        if isinstance(err, BaseException):
            return str(err) or type(err).__name__
        if isinstance(err, Mapping):
            if err.get("message"):
                return str(err["message"])
            response = err.get("response")
            if isinstance(response, Mapping):
                data = response.get("data")
                if isinstance(data, Mapping) and data.get("message"):
                    return str(data["message"])
        message = getattr(err, "message", None)
        if message:
            return str(message)
        return "unknown error"


# ── Rules ───────────────────────────────────────────────────────


class RuleMatch(BaseModel):
    """Match predicate. Unset fields are wildcards."""

    error_type: list[str] | None = None
    error_code: str | None = None  # regex, e.g. "401|403"
    scenario: list[str] | None = None

    @field_validator("error_type", "scenario", mode="before")
    @classmethod
    def _wrap_single(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v]
        return v

    def matches(
        self,
        error_type: str | None = None,
        error_code: str | None = None,
        scenario: str | None = None,
    ) -> bool:
        """Return True when every specified predicate accepts the criteria.

        A specified predicate fails against a missing criterion.
        """
        if self.error_type and error_type not in self.error_type:
            return False
        if self.error_code:
            if error_code is None or not re.search(self.error_code, str(error_code)):
                return False
        if self.scenario and scenario not in self.scenario:
            return False
        return True


class ThrottlePolicy(BaseModel):
    """Per-rule throttle window.

    ``max_occurrences`` is carried for configuration compatibility; the
    aggregator does not enforce it.
    """

    enabled: bool = True
    window_ms: int = 5 * 60 * 1000
    max_occurrences: int | None = None


class RuleSilence(BaseModel):
    """Static silence metadata attached to a rule."""

    enabled: bool = False
    until: float | None = None
    reason: str = ""


class Rule(BaseModel):
    """A configured alert rule. Rules are evaluated in list order."""

    name: str
    description: str = ""
    enabled: bool = True
    match: RuleMatch = RuleMatch()
    severity: Severity
    throttle: ThrottlePolicy | None = None
    silence: RuleSilence | None = None
