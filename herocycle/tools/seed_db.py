"""Seed the row store with the cycle settings and a sample mission."""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict, List

from ..config import get_settings
from ..models import Bucket, Mission, MissionOutcome
from ..service import MissionService
from ..state import MISSION_QUESTIONS, MISSIONS

SAMPLE_MISSION_ID = "m001"

_SAMPLE_QUESTIONS: List[Dict[str, Any]] = [
    {
        "question_num": "1",
        "question_text": "Mongrel calls. He needs a car brought in tonight. What do you do?",
        "options": [
            ("1a", "Take the job", "Money is money.", "a"),
            ("1b", "Ask what you're walking into", "You want to know the risks.", "b"),
        ],
    },
    {
        "question_num": "2",
        "question_text": "The address is in a rough part of town. You arrive after dark.",
        "options": [
            ("2a", "Move fast and quiet", "No witnesses, no problems.", "a"),
            ("2b", "Take your time and scope it first", "Better safe than stuck.", "b"),
        ],
    },
    {
        "question_num": "3",
        "question_text": "The car is there. But someone is asleep in the back seat.",
        "options": [
            ("3a", "Take the car anyway", "Job's a job.", "a"),
            ("3b", "Wake them up and tell them to go", "This just got complicated.", "b"),
        ],
    },
]


def sample_mission(cycle_id: str) -> Mission:
    return Mission(
        mission_id=SAMPLE_MISSION_ID,
        title="The Repo Job",
        description=(
            "Mongrel needs a vehicle retrieved before the owner can move it. "
            "The job is off the books, no questions asked. You've got 4 hours."
        ),
        visible=True,
        cycle_id=cycle_id,
        outcomes={
            Bucket.A: MissionOutcome(
                label="Played It Straight",
                narrative=(
                    "You delivered the car and got paid. Mongrel barely looked up, "
                    "but that's practically a handshake from him."
                ),
                changes="bank:+500",
            ),
            Bucket.B: MissionOutcome(
                label="Walked Away",
                narrative=(
                    "You turned it down. Someone else picked up the call. "
                    "Mongrel doesn't forget who said no."
                ),
                changes="reputation:mongrels-towing:negative",
            ),
        },
    )


def seed_database(path: Path) -> MissionService:
    service = MissionService(path, settings=get_settings())
    state = service.cycle.initialise()
    existing = {row.get("mission_id") for row in service.store.read_rows(MISSIONS)}
    if SAMPLE_MISSION_ID in existing:
        print(f"Mission {SAMPLE_MISSION_ID} already present in {path}; skipping.")
    else:
        service.store.append_row(MISSIONS, sample_mission(service.current_cycle_id()).to_record())
        for question in _SAMPLE_QUESTIONS:
            for option_id, text, flavor, weight in question["options"]:
                service.store.append_row(
                    MISSION_QUESTIONS,
                    {
                        "mission_id": SAMPLE_MISSION_ID,
                        "question_num": question["question_num"],
                        "question_text": question["question_text"],
                        "option_id": option_id,
                        "option_text": text,
                        "option_flavor": flavor,
                        "option_weight": weight,
                    },
                )
        print(f"Seeded mission {SAMPLE_MISSION_ID} into {path}")
    print(f"Current cycle: {state.current_cycle} ({service.current_cycle_id()})")
    return service


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the Hero Cycle database")
    parser.add_argument("db", type=Path, help="Path to SQLite database")
    args = parser.parse_args()
    seed_database(args.db)


if __name__ == "__main__":  # pragma: no cover - CLI tool
    main()
