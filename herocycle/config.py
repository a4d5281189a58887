"""Configuration loading utilities for Hero Cycle."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import yaml

from .models import MAX_ANSWER_SLOTS


DEFAULT_SETTINGS_PATH = Path(__file__).parent / "data" / "settings.yaml"


@dataclass(frozen=True)
class Settings:
    """Typed view over the settings YAML file."""

    store_path: Path
    store_timeout_seconds: float
    initial_cycle: int
    max_answers: int
    telemetry_path: Path

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Settings":
        data = data or {}
        store_cfg = data.get("store", {}) or {}
        cycle_cfg = data.get("cycle", {}) or {}
        mission_cfg = data.get("missions", {}) or {}
        telemetry_cfg = data.get("telemetry", {}) or {}
        store_path = os.getenv("HEROCYCLE_DB_PATH") or store_cfg.get("path", "herocycle.db")
        telemetry_path = os.getenv("HEROCYCLE_TELEMETRY_DB") or telemetry_cfg.get(
            "path", "telemetry.db"
        )
        # The submissions tab only has four answer columns.
        max_answers = min(int(mission_cfg.get("max_answers", MAX_ANSWER_SLOTS)), MAX_ANSWER_SLOTS)
        return Settings(
            store_path=Path(store_path),
            store_timeout_seconds=float(store_cfg.get("timeout_seconds", 5.0)),
            initial_cycle=max(1, int(cycle_cfg.get("initial_cycle", 1))),
            max_answers=max(1, max_answers),
            telemetry_path=Path(telemetry_path),
        )


class SettingsLoader:
    """Loads and caches settings from YAML configuration files."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or DEFAULT_SETTINGS_PATH
        self._cache: Settings | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self, force: bool = False) -> Settings:
        if self._cache is not None and not force:
            return self._cache
        with self._path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        self._cache = Settings.from_dict(data)
        return self._cache


def get_settings() -> Settings:
    """Convenience accessor for default settings."""

    return SettingsLoader().load()


__all__ = ["Settings", "SettingsLoader", "get_settings"]
