"""Telemetry and gameplay metrics tracking for Hero Cycle."""
from __future__ import annotations

import json
import logging
import os
import sqlite3
import time
from contextlib import closing
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class MetricType(Enum):
    """Types of metrics tracked."""
    MISSION_ACTIVITY = "mission_activity"
    ADMIN_ACTION = "admin_action"
    CYCLE = "cycle"
    REPUTATION = "reputation"
    ERROR_RATE = "error_rate"
    PERFORMANCE = "performance"


@dataclass
class MetricEvent:
    """Individual metric event."""
    timestamp: float
    metric_type: MetricType
    name: str
    value: float
    tags: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)


class TelemetryCollector:
    """Collects and stores telemetry data for Hero Cycle."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize telemetry collector with database storage."""
        self.db_path = db_path or Path("telemetry.db")
        self._init_database()
        self._metrics_buffer: List[MetricEvent] = []
        self._flush_interval = 60  # Flush to DB every 60 seconds
        self._last_flush = time.time()

    def _init_database(self):
        """Initialize telemetry database schema."""
        with closing(sqlite3.connect(self.db_path)) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS metrics (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp REAL NOT NULL,
                    metric_type TEXT NOT NULL,
                    name TEXT NOT NULL,
                    value REAL NOT NULL,
                    tags TEXT,
                    metadata TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_metrics_type_name
                ON metrics(metric_type, name)
            """)
            conn.commit()

    def track_mission_activity(
        self,
        event_name: str,
        mission_id: str,
        player_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Track mission submissions and views."""
        tags = {"mission_id": mission_id}
        if player_id:
            tags["player_id"] = player_id

        self.record(
            MetricType.MISSION_ACTIVITY,
            event_name,
            1.0,
            tags=tags,
            metadata=details or {},
        )

    def track_admin_action(
        self,
        action: str,
        subject_id: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Track reviewer changes such as overrides and resolutions."""
        self.record(
            MetricType.ADMIN_ACTION,
            action,
            1.0,
            tags={"subject_id": subject_id},
            metadata=details or {},
        )

    def track_cycle_advance(self, new_cycle: int):
        self.record(MetricType.CYCLE, "cycle_advanced", float(new_cycle))

    def track_reputation_fill(self, source: str, inserted: int):
        """Track how many neutral reputation rows were materialised."""
        self.record(
            MetricType.REPUTATION,
            "reputation_filled",
            float(inserted),
            tags={"source": source},
        )

    def track_error(
        self,
        error_type: str,
        operation: Optional[str] = None,
        player_id: Optional[str] = None,
        error_details: Optional[str] = None
    ):
        """Track errors and rejected operations."""
        tags = {}
        if operation:
            tags["operation"] = operation
        if player_id:
            tags["player_id"] = player_id

        self.record(
            MetricType.ERROR_RATE,
            error_type,
            1.0,
            tags=tags,
            metadata={"error_details": error_details} if error_details else {}
        )

    def track_performance(
        self,
        operation: str,
        duration_ms: float,
        tags: Optional[Dict[str, str]] = None
    ):
        """Track performance metrics."""
        self.record(
            MetricType.PERFORMANCE,
            operation,
            duration_ms,
            tags=tags or {},
            metadata={"unit": "milliseconds"}
        )

    def record(
        self,
        metric_type: MetricType,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """Record a metric event."""
        event = MetricEvent(
            timestamp=time.time(),
            metric_type=metric_type,
            name=name,
            value=value,
            tags=tags or {},
            metadata=metadata or {}
        )

        self._metrics_buffer.append(event)

        # Auto-flush if buffer is getting large or enough time has passed
        if len(self._metrics_buffer) >= 100 or \
           time.time() - self._last_flush > self._flush_interval:
            self.flush()

    def flush(self):
        """Flush buffered metrics to database."""
        if not self._metrics_buffer:
            return

        try:
            with closing(sqlite3.connect(self.db_path)) as conn:
                for event in self._metrics_buffer:
                    conn.execute("""
                        INSERT INTO metrics
                        (timestamp, metric_type, name, value, tags, metadata)
                        VALUES (?, ?, ?, ?, ?, ?)
                    """, (
                        event.timestamp,
                        event.metric_type.value,
                        event.name,
                        event.value,
                        json.dumps(event.tags),
                        json.dumps(event.metadata, default=str)
                    ))
                conn.commit()

            logger.info(f"Flushed {len(self._metrics_buffer)} metrics to database")
            self._metrics_buffer.clear()
            self._last_flush = time.time()

        except Exception as e:
            logger.error(f"Failed to flush metrics: {e}")

    def summary(self, hours: int = 24) -> Dict[str, Dict[str, Dict[str, float]]]:
        """Totals per metric type and name over the last ``hours``."""
        self.flush()
        cutoff = time.time() - hours * 3600
        with closing(sqlite3.connect(self.db_path)) as conn:
            rows = conn.execute(
                """
                SELECT metric_type, name, COUNT(*), SUM(value)
                FROM metrics
                WHERE timestamp >= ?
                GROUP BY metric_type, name
                """,
                (cutoff,),
            ).fetchall()

        report: Dict[str, Dict[str, Dict[str, float]]] = {}
        for metric_type, name, count, total in rows:
            report.setdefault(metric_type, {})[name] = {
                "count": count,
                "total": total or 0.0,
            }
        return report

    def cleanup_old_data(self, days_to_keep: int = 30):
        """Clean up old telemetry data."""
        cutoff_time = time.time() - (days_to_keep * 86400)

        with closing(sqlite3.connect(self.db_path)) as conn:
            cursor = conn.execute(
                "DELETE FROM metrics WHERE timestamp < ?",
                (cutoff_time,)
            )
            deleted = cursor.rowcount
            conn.commit()

        logger.info(f"Cleaned up {deleted} old metric events")
        return deleted


# Singleton instance
_telemetry: Optional[TelemetryCollector] = None


def get_telemetry(db_path: Optional[Path] = None) -> TelemetryCollector:
    """Get or create singleton telemetry collector.

    An explicit ``db_path`` replaces a singleton that writes elsewhere.
    """
    global _telemetry
    if db_path is not None:
        db_path = Path(db_path)
        if _telemetry is None or _telemetry.db_path != db_path:
            if _telemetry is not None:
                _telemetry.flush()
            _telemetry = TelemetryCollector(db_path)
    elif _telemetry is None:
        env_path = os.getenv("HEROCYCLE_TELEMETRY_DB")
        _telemetry = TelemetryCollector(Path(env_path) if env_path else None)
    return _telemetry


# Context manager for timing operations
class track_duration:
    """Context manager for tracking operation duration."""

    def __init__(
        self,
        operation: str,
        tags: Optional[Dict[str, str]] = None,
        collector: Optional[TelemetryCollector] = None,
    ):
        self.operation = operation
        self.tags = tags or {}
        self.collector = collector
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = (time.time() - self.start_time) * 1000
        telemetry = self.collector or get_telemetry()
        telemetry.track_performance(self.operation, duration_ms, self.tags)

        # Track error if exception occurred
        if exc_type:
            telemetry.track_error(
                exc_type.__name__,
                operation=self.operation,
                error_details=str(exc_val)
            )
