#!/usr/bin/env python3
"""Replay CLI — run a recorded event timeline through the alert pipeline.

No notifications are delivered; each decision is printed so rule and
throttle settings can be tuned offline.

Usage:
    python -m scripts.replay_events timeline.yaml
    python -m scripts.replay_events timeline.yaml --config config/settings.yaml
    python -m scripts.replay_events timeline.yaml --json

Timeline YAML format::

    silences:
      - error_type: delivery
        duration_ms: 600000
        reason: provider maintenance
    events:
      - at_ms: 0
        error_type: agent
        status_code: 500
        error: upstream timeout
      - at_ms: 100
        error_type: agent
        status_code: 500
        error: upstream timeout
      - at_ms: 9000
        kind: success
        error_type: agent
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import structlog
import yaml

from alertflow.core.clock import ManualClock
from alertflow.core.config import AlertsConfig, load_settings
from alertflow.core.logging import setup_logging
from alertflow.core.types import AlertEvent
from alertflow.alerting.factory import create_alert_pipeline

logger = structlog.get_logger(__name__)


def load_timeline(path: str | Path) -> dict[str, Any]:
    with open(path) as f:
        raw = yaml.safe_load(f)
    if isinstance(raw, list):
        return {"events": raw}
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a mapping or a list of events")
    return raw


async def replay(timeline: dict[str, Any], config: AlertsConfig) -> list[dict[str, Any]]:
    """Replay *timeline* on a manual clock and return one row per entry."""
    clock = ManualClock(start_ms=0)
    pipeline = create_alert_pipeline(config, channels=[], clock=clock)

    for silence in timeline.get("silences", []):
        pipeline.add_silence(
            silence["error_type"],
            silence["duration_ms"],
            reason=silence.get("reason", ""),
            scenario=silence.get("scenario"),
        )

    rows: list[dict[str, Any]] = []
    for entry in timeline.get("events", []):
        entry = dict(entry)
        at_ms = float(entry.pop("at_ms", clock()))
        kind = entry.pop("kind", "failure")
        if at_ms > clock():
            clock.set(at_ms)

        if kind == "success":
            recovered = pipeline.record_success(
                entry["error_type"],
                scenario=entry.get("scenario"),
                error_code=entry.get("error_code"),
            )
            if recovered is not None:
                await pipeline.send_recovery_notification(recovered.key)
            rows.append({
                "at_ms": at_ms,
                "kind": kind,
                "key": entry["error_type"],
                "reason": f"recovered-{recovered.key}" if recovered else "success",
            })
            continue

        result = await pipeline.evaluate(AlertEvent(**entry))
        rows.append({
            "at_ms": at_ms,
            "kind": kind,
            "key": entry["error_type"],
            "severity": result.severity.value if result.severity else None,
            "sent": result.sent,
            "reason": result.reason,
        })

    await pipeline.close()
    return rows


def main() -> int:
    parser = argparse.ArgumentParser(description="Replay alert events offline")
    parser.add_argument("timeline", help="Path to timeline YAML")
    parser.add_argument("--config", default=None, help="Settings YAML path")
    parser.add_argument("--log-level", default="WARNING", help="Log level")
    parser.add_argument("--json", action="store_true", help="Emit JSON lines")
    args = parser.parse_args()

    settings = load_settings(args.config)
    setup_logging(level=args.log_level, fmt="console")

    try:
        timeline = load_timeline(args.timeline)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"Cannot read timeline: {exc}", file=sys.stderr)
        return 1

    rows = asyncio.run(replay(timeline, settings.alerts))

    for row in rows:
        if args.json:
            print(json.dumps(row))
        else:
            print(f"{row['at_ms']:>10.0f}  {row['kind']:<8} {row['key']:<12} {row['reason']}")

    sent = sum(1 for r in rows if r.get("sent"))
    logger.info("replay_complete", entries=len(rows), sent=sent)
    return 0


if __name__ == "__main__":
    sys.exit(main())
