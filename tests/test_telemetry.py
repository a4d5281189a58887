"""Tests for telemetry and metrics tracking."""
import sqlite3
import time
from pathlib import Path

import pytest

import herocycle.telemetry as telemetry_module
from herocycle.telemetry import (
    MetricEvent,
    MetricType,
    TelemetryCollector,
    get_telemetry,
    track_duration,
)


def test_metric_event_creation():
    """Test MetricEvent dataclass creation."""
    event = MetricEvent(
        timestamp=time.time(),
        metric_type=MetricType.MISSION_ACTIVITY,
        name="mission_submitted",
        value=1.0,
        tags={"mission_id": "m001"},
        metadata={"bucket": "a"},
    )

    assert event.metric_type == MetricType.MISSION_ACTIVITY
    assert event.tags["mission_id"] == "m001"
    assert event.metadata["bucket"] == "a"


def test_telemetry_collector_init(tmp_path):
    db_path = tmp_path / "test_telemetry.db"
    collector = TelemetryCollector(db_path)

    assert collector.db_path == db_path
    assert db_path.exists()
    assert len(collector._metrics_buffer) == 0


def test_track_mission_activity(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")

    collector.track_mission_activity(
        "mission_submitted",
        "m001",
        player_id="alice",
        details={"bucket": "b"},
    )

    event = collector._metrics_buffer[0]
    assert event.metric_type == MetricType.MISSION_ACTIVITY
    assert event.name == "mission_submitted"
    assert event.tags == {"mission_id": "m001", "player_id": "alice"}
    assert event.metadata["bucket"] == "b"


def test_track_admin_and_cycle(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")

    collector.track_admin_action("resolve_submission", "sub_1", details={"resolved": True})
    collector.track_cycle_advance(4)
    collector.track_reputation_fill("sync", 6)

    admin, cycle, reputation = collector._metrics_buffer
    assert admin.metric_type == MetricType.ADMIN_ACTION
    assert admin.tags["subject_id"] == "sub_1"
    assert cycle.metric_type == MetricType.CYCLE
    assert cycle.value == 4.0
    assert reputation.tags["source"] == "sync"
    assert reputation.value == 6.0


def test_track_error(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")

    collector.track_error(
        error_type="DuplicateSubmissionError",
        operation="submit_mission",
        player_id="alice",
        error_details="alice has already submitted mission m001",
    )

    event = collector._metrics_buffer[0]
    assert event.metric_type == MetricType.ERROR_RATE
    assert event.name == "DuplicateSubmissionError"
    assert event.tags["operation"] == "submit_mission"
    assert "already submitted" in event.metadata["error_details"]


def test_flush_and_summary(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")
    collector.track_mission_activity("mission_submitted", "m001")
    collector.track_mission_activity("mission_submitted", "m002")
    collector.track_performance("submit_mission", 12.5)

    collector.flush()
    assert collector._metrics_buffer == []

    summary = collector.summary(hours=1)
    assert summary["mission_activity"]["mission_submitted"] == {"count": 2, "total": 2.0}
    assert summary["performance"]["submit_mission"]["total"] == pytest.approx(12.5)


def test_cleanup_old_data(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")
    collector.record(MetricType.CYCLE, "cycle_advanced", 2.0)
    collector._metrics_buffer[0].timestamp = time.time() - 40 * 86400
    collector.flush()

    assert collector.cleanup_old_data(days_to_keep=30) == 1
    assert collector.summary(hours=24 * 60) == {}


def test_track_duration_records_errors(tmp_path):
    collector = TelemetryCollector(tmp_path / "test.db")

    with pytest.raises(ValueError):
        with track_duration("submit_mission", tags={"mission_id": "m1"}, collector=collector):
            raise ValueError("boom")

    performance, error = collector._metrics_buffer
    assert performance.metric_type == MetricType.PERFORMANCE
    assert performance.tags == {"mission_id": "m1"}
    assert error.metric_type == MetricType.ERROR_RATE
    assert error.name == "ValueError"


def test_get_telemetry_singleton(monkeypatch, tmp_path):
    monkeypatch.setattr(telemetry_module, "_telemetry", None)
    monkeypatch.setenv("HEROCYCLE_TELEMETRY_DB", str(tmp_path / "singleton.db"))

    first = get_telemetry()
    second = get_telemetry()

    assert first is second
    assert first.db_path == Path(tmp_path / "singleton.db")


def test_connections_are_closed(monkeypatch, tmp_path):
    opened = []
    real_connect = telemetry_module.sqlite3.connect

    def tracking_connect(*args, **kwargs):
        conn = real_connect(*args, **kwargs)
        opened.append(conn)
        return conn

    monkeypatch.setattr(telemetry_module.sqlite3, "connect", tracking_connect)
    collector = TelemetryCollector(tmp_path / "test.db")
    collector.track_cycle_advance(2)
    collector.summary(hours=1)
    collector.cleanup_old_data()

    assert len(opened) == 4
    for conn in opened:
        with pytest.raises(sqlite3.ProgrammingError):
            conn.execute("SELECT 1")


def test_explicit_path_replaces_singleton(monkeypatch, tmp_path):
    monkeypatch.setattr(telemetry_module, "_telemetry", None)
    monkeypatch.delenv("HEROCYCLE_TELEMETRY_DB", raising=False)

    first = get_telemetry(tmp_path / "first.db")
    first.track_cycle_advance(3)
    second = get_telemetry(tmp_path / "second.db")

    assert second is not first
    assert second.db_path == tmp_path / "second.db"
    assert get_telemetry() is second
    assert first.summary(hours=1)["cycle"]["cycle_advanced"]["count"] == 1
