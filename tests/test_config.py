"""Tests for settings loading."""
from __future__ import annotations

from pathlib import Path

from herocycle.config import Settings, SettingsLoader, get_settings


def test_default_settings_load(monkeypatch):
    monkeypatch.delenv("HEROCYCLE_DB_PATH", raising=False)
    monkeypatch.delenv("HEROCYCLE_TELEMETRY_DB", raising=False)
    settings = get_settings()
    assert settings.store_path == Path("herocycle.db")
    assert settings.initial_cycle == 1
    assert settings.max_answers == 4
    assert settings.store_timeout_seconds == 5.0


def test_environment_overrides_paths(monkeypatch, tmp_path):
    monkeypatch.setenv("HEROCYCLE_DB_PATH", str(tmp_path / "rows.db"))
    monkeypatch.setenv("HEROCYCLE_TELEMETRY_DB", str(tmp_path / "metrics.db"))
    settings = Settings.from_dict({"store": {"path": "ignored.db"}})
    assert settings.store_path == tmp_path / "rows.db"
    assert settings.telemetry_path == tmp_path / "metrics.db"


def test_answer_limit_is_clamped(monkeypatch):
    monkeypatch.delenv("HEROCYCLE_DB_PATH", raising=False)
    assert Settings.from_dict({"missions": {"max_answers": 9}}).max_answers == 4
    assert Settings.from_dict({"missions": {"max_answers": 0}}).max_answers == 1
    assert Settings.from_dict({"cycle": {"initial_cycle": -2}}).initial_cycle == 1


def test_loader_caches_until_forced(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("cycle:\n  initial_cycle: 3\n", encoding="utf-8")
    loader = SettingsLoader(path)
    assert loader.load().initial_cycle == 3

    path.write_text("cycle:\n  initial_cycle: 5\n", encoding="utf-8")
    assert loader.load().initial_cycle == 3
    assert loader.load(force=True).initial_cycle == 5


def test_empty_file_uses_defaults(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("", encoding="utf-8")
    settings = SettingsLoader(path).load()
    assert settings.max_answers == 4
