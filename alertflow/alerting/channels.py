"""Notification channels — chat webhook delivery."""

from __future__ import annotations

import abc
import base64
import hashlib
import hmac
from typing import Any

import aiohttp
import structlog

from alertflow.core.clock import Clock, system_clock
from alertflow.core.config import WebhookConfig
from alertflow.alerting.severity import severity_color
from alertflow.alerting.types import AlertMessage

logger = structlog.get_logger(__name__)


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels."""

    name: str = "channel"

    @abc.abstractmethod
    async def send(self, msg: AlertMessage) -> bool:
        """Send an alert message. Returns True on success."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


def sign_webhook(secret: str, timestamp: int) -> str:
    """Feishu custom-bot signature: HMAC-SHA256 keyed by ``"{ts}\\n{secret}"``."""
    string_to_sign = f"{timestamp}\n{secret}".encode()
    digest = hmac.new(string_to_sign, b"", hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def build_card(msg: AlertMessage, environment: str = "") -> dict[str, Any]:
    """Render *msg* as a Feishu interactive card payload."""
    lines = []
    if environment:
        lines.append(f"**Environment**: {environment}")
    lines.extend(f"**{k}**: {v}" for k, v in msg.fields.items())

    elements: list[dict[str, Any]] = []
    if lines:
        elements.append({"tag": "div", "text": {"tag": "lark_md", "content": "\n".join(lines)}})
    if msg.body:
        elements.append({"tag": "hr"})
        elements.append({"tag": "div", "text": {"tag": "lark_md", "content": msg.body}})

    return {
        "msg_type": "interactive",
        "card": {
            "config": {"wide_screen_mode": True},
            "header": {
                "template": severity_color(msg.severity),
                "title": {"tag": "plain_text", "content": msg.title},
            },
            "elements": elements,
        },
    }


class WebhookChannel(NotificationChannel):
    """Delivers alerts to a Feishu custom-bot webhook.

    When a secret is configured each request carries ``timestamp`` and
    ``sign`` fields. A 200 response with ``code == 0`` counts as success.
    """

    name = "webhook"

    def __init__(self, config: WebhookConfig, clock: Clock | None = None) -> None:
        self._url = config.url.get_secret_value()
        self._secret = config.secret.get_secret_value()
        self._environment = config.environment
        self._timeout = aiohttp.ClientTimeout(total=config.timeout_secs)
        self._clock = clock or system_clock
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    def _payload(self, msg: AlertMessage) -> dict[str, Any]:
        payload = build_card(msg, self._environment)
        if self._secret:
            ts = int(self._clock() // 1000)
            payload["timestamp"] = str(ts)
            payload["sign"] = sign_webhook(self._secret, ts)
        return payload

    async def send(self, msg: AlertMessage) -> bool:
        if not self._url:
            logger.warning("webhook_not_configured")
            return False

        payload = self._payload(msg)
        try:
            session = self._get_session()
            async with session.post(self._url, json=payload) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    logger.warning("webhook_send_failed", status=resp.status, body=body[:200])
                    return False
                data = await resp.json(content_type=None)
                code = data.get("code", 0) if isinstance(data, dict) else 0
                if code != 0:
                    logger.warning(
                        "webhook_rejected",
                        code=code,
                        msg=data.get("msg", ""),
                    )
                    return False
                return True
        except Exception:
            logger.exception("webhook_send_error", title=msg.title)
            return False

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
