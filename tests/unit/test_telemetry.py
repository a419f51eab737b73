from __future__ import annotations

import json
from pathlib import Path

import pytest

from hyperreal_factory import telemetry


def test_events_are_buffered_and_filterable() -> None:
    telemetry.emit_event("pipeline.phase", {"to": "sketching"})
    telemetry.emit_event("supervisor.alert", {"kind": "remote"})

    names = [event["name"] for event in telemetry.get_events()]
    assert names == ["pipeline.phase", "supervisor.alert"]
    (alert,) = telemetry.get_events("supervisor.alert")
    assert alert["payload"] == {"kind": "remote"}

    telemetry.clear_events()
    assert telemetry.get_events() == []


def test_events_mirror_to_jsonl(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    sink = tmp_path / "events.jsonl"
    monkeypatch.setenv("HYPERREAL_TELEMETRY_LOG", str(sink))
    telemetry.emit_event("pipeline.artifact.created", {"artifact_id": "abc"})
    telemetry.emit_event("pipeline.artifact.captioned")

    lines = [json.loads(line) for line in sink.read_text(encoding="utf-8").splitlines()]
    assert [line["name"] for line in lines] == ["pipeline.artifact.created", "pipeline.artifact.captioned"]
    assert lines[1]["payload"] == {}


def test_unwritable_sink_is_ignored(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HYPERREAL_TELEMETRY_LOG", str(tmp_path / "missing-dir" / "events.jsonl"))
    telemetry.emit_event("pipeline.phase")
    assert len(telemetry.get_events("pipeline.phase")) == 1


def test_configured_path_takes_precedence_over_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    from_env = tmp_path / "env.jsonl"
    configured = tmp_path / "configured.jsonl"
    monkeypatch.setenv("HYPERREAL_TELEMETRY_LOG", str(from_env))
    telemetry.set_log_path(configured)
    telemetry.emit_event("supervisor.run.start", {"cursor": 0})

    assert json.loads(configured.read_text(encoding="utf-8"))["name"] == "supervisor.run.start"
    assert not from_env.exists()

    telemetry.set_log_path(None)
    telemetry.emit_event("supervisor.run.stop")
    assert json.loads(from_env.read_text(encoding="utf-8"))["name"] == "supervisor.run.stop"
