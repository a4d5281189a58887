"""Tests for the hero/faction reputation matrix."""
from __future__ import annotations

import pytest

from herocycle.config import Settings
from herocycle.errors import ValidationError
from herocycle.models import ReputationLevel
from herocycle.service import MissionService
from herocycle.services.reputation import missing_pairs
from herocycle.state import FACTIONS, PLAYERS, REPUTATION, MemoryRowStore
from herocycle.telemetry import TelemetryCollector


def build_service(tmp_path, heroes=("Ash", "Bee"), factions=("Mongrels", "Harbor")):
    store = MemoryRowStore(
        {
            PLAYERS: [{"username": hero.lower(), "hero_name": hero} for hero in heroes],
            FACTIONS: [{"faction_name": faction} for faction in factions],
        }
    )
    return MissionService(
        settings=Settings.from_dict({}),
        store=store,
        telemetry=TelemetryCollector(tmp_path / "telemetry.db"),
    )


def _pairs(service):
    return [
        (row.get("hero_name"), row.get("faction_name"), row.get("reputation"))
        for row in service.store.read_rows(REPUTATION)
    ]


def test_missing_pairs_hero_major_and_deduplicated():
    pairs = missing_pairs(
        [" Ash", "Bee", "Ash", ""],
        ["F1", "F2", "F1 "],
        {("Ash", "F2")},
    )
    assert pairs == [("Ash", "F1"), ("Bee", "F1"), ("Bee", "F2")]


def test_new_hero_gets_neutral_row_per_faction(tmp_path):
    service = build_service(tmp_path, heroes=())
    inserted = service.ensure_reputation_for_player("Ash")

    assert [(entry.hero_name, entry.faction_name) for entry in inserted] == [
        ("Ash", "Mongrels"),
        ("Ash", "Harbor"),
    ]
    assert _pairs(service) == [
        ("Ash", "Mongrels", "neutral"),
        ("Ash", "Harbor", "neutral"),
    ]


def test_new_faction_gets_neutral_row_per_hero(tmp_path):
    service = build_service(tmp_path, factions=())
    service.store.append_row(REPUTATION, {"hero_name": "Bee", "faction_name": "Drifters", "reputation": "ally"})

    inserted = service.ensure_reputation_for_faction("Drifters")

    assert [(entry.hero_name, entry.faction_name) for entry in inserted] == [("Ash", "Drifters")]
    assert ("Bee", "Drifters", "ally") in _pairs(service)


def test_sync_fills_matrix_once(tmp_path):
    service = build_service(tmp_path)
    service.store.append_row(REPUTATION, {"hero_name": "Ash", "faction_name": "Harbor", "reputation": "hostile"})

    first = service.sync_reputation()
    second = service.sync_reputation()

    assert len(first) == 3
    assert second == []
    assert len(service.store.read_rows(REPUTATION)) == 4
    assert ("Ash", "Harbor", "hostile") in _pairs(service)


def test_fill_requires_names(tmp_path):
    service = build_service(tmp_path)
    with pytest.raises(ValidationError):
        service.ensure_reputation_for_player(" ")
    with pytest.raises(ValidationError):
        service.ensure_reputation_for_faction("")


def test_set_reputation_updates_in_place(tmp_path):
    service = build_service(tmp_path)
    service.sync_reputation()

    entry = service.set_reputation("Ash", "Mongrels", "Negative")

    assert entry.level is ReputationLevel.NEGATIVE
    assert ("Ash", "Mongrels", "negative") in _pairs(service)
    assert len(service.store.read_rows(REPUTATION)) == 4
    assert [event.action for event in service.export_events()] == ["reputation_filled", "reputation_set"]


def test_set_reputation_unchanged_writes_nothing(tmp_path):
    service = build_service(tmp_path)
    service.sync_reputation()
    service.set_reputation("Ash", "Mongrels", "neutral")
    assert [event.action for event in service.export_events()] == ["reputation_filled"]


def test_set_reputation_rejects_unknown_level(tmp_path):
    service = build_service(tmp_path)
    with pytest.raises(ValidationError):
        service.set_reputation("Ash", "Mongrels", "besties")


def test_reputation_for_defaults_to_neutral(tmp_path):
    service = build_service(tmp_path)
    service.set_reputation("Ash", "Harbor", ReputationLevel.ALLY)

    standings = service.reputation_for("Ash")

    assert standings == {
        "Mongrels": ReputationLevel.NEUTRAL,
        "Harbor": ReputationLevel.ALLY,
    }


def test_reputation_levels_are_ordered():
    ranks = [level.rank for level in ReputationLevel]
    assert ranks == sorted(ranks)
    assert ReputationLevel.HOSTILE.rank < ReputationLevel.NEUTRAL.rank < ReputationLevel.ALLY.rank
