"""Core data models for Hero Cycle."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Mapping, Optional

MAX_ANSWER_SLOTS = 4

_TRUTHY = {"yes", "true", "1", "y"}


def parse_flag(value: object) -> bool:
    """Interpret a yes/no style cell."""

    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in _TRUTHY


def format_flag(value: bool) -> str:
    return "yes" if value else "no"


class Bucket(str, Enum):
    """Outcome classes a mission submission resolves to."""

    A = "a"
    B = "b"
    C = "c"

    @classmethod
    def parse(cls, value: object) -> Optional["Bucket"]:
        """Return the bucket for ``value`` or ``None`` when it is blank.

        Raises ``ValueError`` for anything that is not a known label.
        """

        if isinstance(value, Bucket):
            return value
        text = str(value or "").strip().lower()
        if not text:
            return None
        return cls(text)


class ReputationLevel(str, Enum):
    """Ordered standing of a hero with a faction."""

    HOSTILE = "hostile"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    POSITIVE = "positive"
    ALLY = "ally"

    @property
    def rank(self) -> int:
        return _REPUTATION_ORDER.index(self)

    @classmethod
    def parse(cls, value: object) -> "ReputationLevel":
        if isinstance(value, ReputationLevel):
            return value
        return cls(str(value or "").strip().lower())


_REPUTATION_ORDER: List[ReputationLevel] = [
    ReputationLevel.HOSTILE,
    ReputationLevel.NEGATIVE,
    ReputationLevel.NEUTRAL,
    ReputationLevel.POSITIVE,
    ReputationLevel.ALLY,
]


class MissionState(str, Enum):
    AVAILABLE = "available"
    SUBMITTED = "submitted"
    RESOLVED = "resolved"


@dataclass
class MissionOutcome:
    label: str = ""
    narrative: str = ""
    image: str = ""
    changes: str = ""

    def is_defined(self) -> bool:
        return any((self.label, self.narrative, self.image, self.changes))


@dataclass
class Mission:
    mission_id: str
    title: str
    description: str = ""
    image_url: str = ""
    visible: bool = True
    cycle_id: str = ""
    outcomes: Dict[Bucket, MissionOutcome] = field(default_factory=dict)

    def outcome_for(self, bucket: Optional[Bucket]) -> Optional[MissionOutcome]:
        if bucket is None:
            return None
        outcome = self.outcomes.get(bucket)
        if outcome is None or not outcome.is_defined():
            return None
        return outcome

    @staticmethod
    def from_record(record: Mapping[str, str]) -> "Mission":
        outcomes: Dict[Bucket, MissionOutcome] = {}
        for bucket in Bucket:
            prefix = f"outcome_{bucket.value}_"
            outcome = MissionOutcome(
                label=record.get(prefix + "label", "") or "",
                narrative=record.get(prefix + "narrative", "") or "",
                image=record.get(prefix + "image", "") or "",
                changes=record.get(prefix + "changes", "") or "",
            )
            if outcome.is_defined():
                outcomes[bucket] = outcome
        return Mission(
            mission_id=str(record.get("mission_id", "")).strip(),
            title=record.get("title", "") or "",
            description=record.get("description", "") or "",
            image_url=record.get("image_url", "") or "",
            visible=parse_flag(record.get("visible")),
            cycle_id=record.get("cycle_id", "") or "",
            outcomes=outcomes,
        )

    def to_record(self) -> Dict[str, str]:
        record = {
            "mission_id": self.mission_id,
            "title": self.title,
            "description": self.description,
            "image_url": self.image_url,
            "visible": format_flag(self.visible),
            "cycle_id": self.cycle_id,
        }
        for bucket in Bucket:
            outcome = self.outcomes.get(bucket) or MissionOutcome()
            prefix = f"outcome_{bucket.value}_"
            record[prefix + "label"] = outcome.label
            record[prefix + "narrative"] = outcome.narrative
            record[prefix + "image"] = outcome.image
            record[prefix + "changes"] = outcome.changes
        return record


@dataclass
class Option:
    option_id: str
    text: str
    flavor: str = ""
    image: str = ""
    weight: Optional[Bucket] = None

    def public_payload(self) -> Dict[str, str]:
        """Player facing view; the weight is never included."""

        return {
            "option_id": self.option_id,
            "text": self.text,
            "flavor": self.flavor,
            "image": self.image,
        }


@dataclass
class Question:
    number: str
    text: str
    options: List[Option] = field(default_factory=list)


@dataclass
class Submission:
    submission_id: str
    username: str
    hero_name: str
    mission_id: str
    answers: List[str]
    outcome_bucket: Bucket
    dm_override: Optional[Bucket] = None
    resolved: bool = False
    cycle_id: str = ""
    timestamp: str = ""
    row_ref: Optional[int] = None

    @property
    def effective_bucket(self) -> Bucket:
        return self.dm_override or self.outcome_bucket

    @staticmethod
    def from_record(record: Mapping[str, str], row_ref: Optional[int] = None) -> "Submission":
        answers = [
            str(record.get(f"q{slot}_answer", "") or "")
            for slot in range(1, MAX_ANSWER_SLOTS + 1)
        ]
        try:
            bucket = Bucket.parse(record.get("outcome_bucket")) or Bucket.A
        except ValueError:
            bucket = Bucket.A
        try:
            override = Bucket.parse(record.get("dm_override"))
        except ValueError:
            override = None
        return Submission(
            submission_id=str(record.get("submission_id", "")).strip(),
            username=str(record.get("username", "")).strip(),
            hero_name=record.get("hero_name", "") or "",
            mission_id=str(record.get("mission_id", "")).strip(),
            answers=answers,
            outcome_bucket=bucket,
            dm_override=override,
            resolved=parse_flag(record.get("resolved")),
            cycle_id=record.get("cycle_id", "") or "",
            timestamp=record.get("timestamp", "") or "",
            row_ref=row_ref,
        )

    def to_record(self) -> Dict[str, str]:
        record = {
            "submission_id": self.submission_id,
            "username": self.username,
            "hero_name": self.hero_name,
            "mission_id": self.mission_id,
        }
        padded = list(self.answers[:MAX_ANSWER_SLOTS])
        padded += [""] * (MAX_ANSWER_SLOTS - len(padded))
        for slot, answer in enumerate(padded, start=1):
            record[f"q{slot}_answer"] = answer
        record.update(
            {
                "outcome_bucket": self.outcome_bucket.value,
                "dm_override": self.dm_override.value if self.dm_override else "",
                "resolved": format_flag(self.resolved),
                "cycle_id": self.cycle_id,
                "timestamp": self.timestamp,
            }
        )
        return record


@dataclass
class CycleState:
    current_cycle: int
    cycle_start: Optional[datetime] = None


@dataclass
class CycleAdvance:
    new_cycle: int
    new_start: datetime


@dataclass
class ReputationEntry:
    hero_name: str
    faction_name: str
    level: ReputationLevel = ReputationLevel.NEUTRAL

    def to_record(self) -> Dict[str, str]:
        return {
            "hero_name": self.hero_name,
            "faction_name": self.faction_name,
            "reputation": self.level.value,
        }


@dataclass
class OutcomePayload:
    bucket: str = ""
    label: str = ""
    narrative: str = ""
    image: str = ""
    changes: str = ""


@dataclass
class MissionView:
    """A mission as seen by one player in the mission list."""

    mission_id: str
    title: str
    description: str
    image_url: str
    cycle_id: str
    state: MissionState
    startable: bool = True
    submitted_cycle_id: Optional[str] = None
    outcome: Optional[OutcomePayload] = None


@dataclass
class Event:
    timestamp: datetime
    action: str
    payload: Dict[str, object]
    cycle_id: str = ""
