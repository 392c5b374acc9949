"""Tests for the replay CLI — timeline loading and offline decisions."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from alertflow.core.config import AlertsConfig
from alertflow.core.types import ThrottlePolicy
from scripts.replay_events import load_timeline, replay


def _config(**kw: object) -> AlertsConfig:
    defaults: dict[str, object] = {
        "rules": [],
        "default_throttle": ThrottlePolicy(window_ms=5000),
        "recovery_threshold": 2,
    }
    defaults.update(kw)
    return AlertsConfig(**defaults)  # type: ignore[arg-type]


class TestLoadTimeline:
    def test_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "t.yaml"
        path.write_text(yaml.dump({"events": [{"at_ms": 0, "error_type": "agent"}]}))
        assert load_timeline(path)["events"][0]["error_type"] == "agent"

    def test_bare_list(self, tmp_path: Path) -> None:
        path = tmp_path / "t.yaml"
        path.write_text(yaml.dump([{"error_type": "merge"}]))
        assert load_timeline(path) == {"events": [{"error_type": "merge"}]}

    def test_scalar_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "t.yaml"
        path.write_text("just a string\n")
        with pytest.raises(ValueError):
            load_timeline(path)


class TestReplay:
    async def test_throttle_timeline(self) -> None:
        timeline = {
            "events": [
                {"at_ms": 0, "error_type": "agent", "error": "x"},
                {"at_ms": 100, "error_type": "agent", "error": "x"},
                {"at_ms": 200, "error_type": "agent", "error": "x"},
                {"at_ms": 5100, "error_type": "agent", "error": "x"},
                {"at_ms": 5200, "error_type": "agent", "error": "x"},
            ]
        }
        rows = await replay(timeline, _config())
        reasons = [r["reason"] for r in rows]
        assert reasons[0] == "first-occurrence"
        assert reasons[1].startswith("throttled-")
        assert reasons[2].startswith("throttled-")
        assert reasons[3] == "aggregated-3-occurrences"
        assert reasons[4].startswith("throttled-")
        assert [r["sent"] for r in rows] == [True, False, False, True, False]

    async def test_silences_applied(self) -> None:
        timeline = {
            "silences": [{"error_type": "delivery", "duration_ms": 60_000}],
            "events": [{"at_ms": 0, "error_type": "delivery", "error": "bounced"}],
        }
        rows = await replay(timeline, _config())
        assert rows[0]["reason"] == "silenced-60s-remaining"
        assert rows[0]["severity"] == "warning"

    async def test_recovery_rows(self) -> None:
        timeline = {
            "events": [
                {"at_ms": 0, "error_type": "agent", "error": "x"},
                {"at_ms": 1000, "kind": "success", "error_type": "agent"},
                {"at_ms": 2000, "kind": "success", "error_type": "agent"},
                {"at_ms": 3000, "kind": "success", "error_type": "agent"},
            ]
        }
        rows = await replay(timeline, _config())
        assert [r["reason"] for r in rows[1:]] == ["success", "recovered-agent", "success"]
