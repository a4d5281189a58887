"""Tests for the reviewer command line tools."""
from __future__ import annotations

import json

import pytest

import herocycle.telemetry as telemetry_module
from herocycle.state import MISSION_QUESTIONS, MISSIONS
from herocycle.tools import manage_missions
from herocycle.tools.seed_db import SAMPLE_MISSION_ID, seed_database


@pytest.fixture(autouse=True)
def isolated_telemetry(monkeypatch, tmp_path):
    monkeypatch.setenv("HEROCYCLE_TELEMETRY_DB", str(tmp_path / "telemetry.db"))
    monkeypatch.setattr(telemetry_module, "_telemetry", None)


def _run(db_path, *argv):
    return manage_missions.main(["--state-db", str(db_path), *argv])


def test_seed_database_is_idempotent(tmp_path, capsys):
    db_path = tmp_path / "rows.db"
    service = seed_database(db_path)
    seed_database(db_path)

    missions = service.store.read_rows(MISSIONS)
    assert [row.get("mission_id") for row in missions] == [SAMPLE_MISSION_ID]
    assert len(service.store.read_rows(MISSION_QUESTIONS)) == 6
    assert service.cycle.load_state().current_cycle == 1
    assert "already present" in capsys.readouterr().out


def test_resolve_and_list_submissions(tmp_path, capsys):
    db_path = tmp_path / "rows.db"
    service = seed_database(db_path)
    submission = service.submit_mission("alice", "Ash", SAMPLE_MISSION_ID, ["1b", "2b", "3a"])
    assert submission.outcome_bucket.value == "b"
    capsys.readouterr()

    assert _run(db_path, "resolve", submission.submission_id, "--override", "a", "--resolved", "yes") == 0
    out = capsys.readouterr().out
    assert f"Submission {submission.submission_id}: override a, resolved yes" in out
    assert "effective bucket a" in out

    assert _run(db_path, "submissions", "--json") == 0
    groups = json.loads(capsys.readouterr().out)
    assert groups[0]["mission_id"] == SAMPLE_MISSION_ID
    assert groups[0]["submissions"][0]["effective_bucket"] == "a"

    assert _run(db_path, "submissions", "--pending") == 0
    assert "No submissions awaiting review." in capsys.readouterr().out


def test_cycle_advance_and_show(tmp_path, capsys):
    db_path = tmp_path / "rows.db"
    seed_database(db_path)
    capsys.readouterr()

    assert _run(db_path, "cycle", "advance") == 0
    assert "Advanced to cycle 2." in capsys.readouterr().out

    assert _run(db_path, "cycle", "--json") == 0
    overview = json.loads(capsys.readouterr().out)
    assert overview["current_cycle"] == 2
    assert overview["cycle_id"].startswith("2.00.00.")


def test_advance_without_cycle_settings_fails(tmp_path, capsys):
    assert _run(tmp_path / "empty.db", "cycle", "advance") == 1
    assert "Error:" in capsys.readouterr().err


def test_reputation_sync_and_set(tmp_path, capsys):
    db_path = tmp_path / "rows.db"
    service = seed_database(db_path)
    service.store.append_row("Players", {"username": "alice", "hero_name": "Ash"})
    service.store.append_row("Factions", {"faction_name": "Mongrels Towing"})
    capsys.readouterr()

    assert _run(db_path, "reputation", "sync") == 0
    assert "Added 1 missing reputation rows" in capsys.readouterr().out
    assert _run(db_path, "reputation", "sync") == 0
    assert "Nothing to add." in capsys.readouterr().out

    assert _run(db_path, "reputation", "set", "--hero", "Ash", "--faction", "Mongrels Towing", "--level", "ally") == 0
    assert "Ash / Mongrels Towing: ally" in capsys.readouterr().out

    assert _run(db_path, "reputation", "set", "--hero", "Ash", "--faction", "Mongrels Towing", "--level", "meh") == 1


def test_empty_submission_listings(tmp_path, capsys):
    db_path = tmp_path / "rows.db"
    seed_database(db_path)
    capsys.readouterr()

    assert _run(db_path, "submissions") == 0
    assert "No mission submissions yet." in capsys.readouterr().out

    assert _run(db_path, "submissions", "--mission", "m404") == 0
    assert "No submissions for mission m404." in capsys.readouterr().out

