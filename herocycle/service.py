"""High-level mission service orchestrating the row store and cycle clock."""
from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from .config import Settings, get_settings
from .cycle import CycleClock, utc_now
from .errors import (
    DuplicateSubmissionError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from .models import (
    Bucket,
    CycleAdvance,
    Event,
    Mission,
    MissionState,
    MissionView,
    OutcomePayload,
    Question,
    ReputationEntry,
    ReputationLevel,
    Submission,
    format_flag,
)
from .services.outcomes import compute_bucket
from .services.questions import group_questions, option_weights, public_questions
from .services.reputation import missing_pairs
from .state import (
    EVENTS,
    FACTIONS,
    MISSION_QUESTIONS,
    MISSION_SUBMISSIONS,
    MISSIONS,
    PLAYERS,
    REPUTATION,
    CellUpdate,
    RowStore,
    SqliteRowStore,
)
from .telemetry import TelemetryCollector, get_telemetry, track_duration

logger = logging.getLogger(__name__)


def _clean(value: object) -> str:
    return str(value or "").strip()


def _same_user(left: str, right: str) -> bool:
    return left.strip().lower() == right.strip().lower()


class MissionService:
    """Coordinates missions, submissions, reputation and the cycle clock.

    Every public operation re-reads what it needs from the row store; the
    service holds no game state between calls.
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        settings: Settings | None = None,
        *,
        store: Optional[RowStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
        telemetry: Optional[TelemetryCollector] = None,
    ) -> None:
        self.settings = settings or get_settings()
        if store is None:
            store = SqliteRowStore(
                db_path or self.settings.store_path,
                timeout=self.settings.store_timeout_seconds,
            )
        self.store = store
        self.cycle = CycleClock(
            self.store,
            initial_cycle=self.settings.initial_cycle,
            clock=clock or utc_now,
        )
        self._telemetry = telemetry or get_telemetry(self.settings.telemetry_path)

    # Telemetry ---------------------------------------------------------
    def _track(self, method: str, *args, **kwargs) -> None:
        try:
            getattr(self._telemetry, method)(*args, **kwargs)
        except Exception:
            logger.debug("Telemetry tracking for %s failed", method, exc_info=True)

    # Event log ---------------------------------------------------------
    def _append_event(self, action: str, payload: Dict[str, object], *, cycle_id: str = "") -> None:
        event = Event(
            timestamp=self.cycle.now(),
            action=action,
            payload=payload,
            cycle_id=cycle_id,
        )
        try:
            self.store.append_row(
                EVENTS,
                {
                    "timestamp": event.timestamp.isoformat(),
                    "cycle_id": event.cycle_id,
                    "action": event.action,
                    "payload": json.dumps(event.payload, default=str),
                },
            )
        except StoreUnavailableError:
            # The state change itself has already been written.
            logger.warning("Could not record %s event: %s", action, payload)

    def export_events(self) -> List[Event]:
        events: List[Event] = []
        for row in self.store.read_rows(EVENTS):
            try:
                payload = json.loads(row.get("payload") or "{}")
            except json.JSONDecodeError:
                payload = {"raw": row.get("payload")}
            events.append(
                Event(
                    timestamp=datetime.fromisoformat(row.get("timestamp")),
                    action=row.get("action"),
                    payload=payload,
                    cycle_id=row.get("cycle_id"),
                )
            )
        return events

    # Cycle clock -------------------------------------------------------
    def current_cycle_id(self) -> str:
        return self.cycle.current_cycle_id()

    def advance_cycle(self) -> CycleAdvance:
        """Move the world into the next cycle and restart its clock."""

        result = self.cycle.advance_cycle()
        self._append_event(
            "cycle_advanced",
            {"new_cycle": result.new_cycle, "new_start": result.new_start.isoformat()},
            cycle_id=self.current_cycle_id(),
        )
        self._track("track_cycle_advance", result.new_cycle)
        return result

    def stamp_cycle(self, record: Mapping[str, object]) -> Dict[str, object]:
        """Return a copy of ``record`` stamped with the current cycle coordinate."""

        stamped = dict(record)
        stamped["cycle_id"] = self.current_cycle_id()
        return stamped

    # Store readers -----------------------------------------------------
    def _missions(self) -> List[Mission]:
        return [Mission.from_record(row.values) for row in self.store.read_rows(MISSIONS)]

    def _visible_mission(self, mission_id: str) -> Mission:
        for mission in self._missions():
            if mission.mission_id == mission_id and mission.visible:
                return mission
        raise NotFoundError(f"Mission {mission_id} not found")

    def _questions_for(self, mission_id: str) -> List[Question]:
        rows = [
            row.values
            for row in self.store.read_rows(MISSION_QUESTIONS)
            if _clean(row.get("mission_id")) == mission_id
        ]
        return group_questions(rows)

    def _submissions(self) -> List[Submission]:
        return [
            Submission.from_record(row.values, row_ref=row.ref)
            for row in self.store.read_rows(MISSION_SUBMISSIONS)
        ]

    def get_submission(self, submission_id: str) -> Submission:
        submission_id = _clean(submission_id)
        if not submission_id:
            raise ValidationError("A submission id is required")
        for submission in self._submissions():
            if submission.submission_id == submission_id:
                return submission
        raise NotFoundError(f"Submission {submission_id} not found")

    # Player facing missions -------------------------------------------
    def list_missions(self, username: str) -> List[MissionView]:
        """Visible missions with this player's state for each one."""

        with track_duration("list_missions", collector=self._telemetry):
            username = _clean(username)
            if not username:
                raise ValidationError("A username is required")
            missions = [mission for mission in self._missions() if mission.visible]
            own: Dict[str, Submission] = {}
            for submission in self._submissions():
                if _same_user(submission.username, username):
                    own.setdefault(submission.mission_id, submission)
            with_questions = {
                _clean(row.get("mission_id")) for row in self.store.read_rows(MISSION_QUESTIONS)
            }

        views: List[MissionView] = []
        for mission in missions:
            view = MissionView(
                mission_id=mission.mission_id,
                title=mission.title,
                description=mission.description,
                image_url=mission.image_url,
                cycle_id=mission.cycle_id,
                state=MissionState.AVAILABLE,
                startable=mission.mission_id in with_questions,
            )
            submission = own.get(mission.mission_id)
            if submission is not None:
                view.startable = False
                if submission.resolved:
                    view.state = MissionState.RESOLVED
                    view.outcome = self._outcome_payload(mission, submission.effective_bucket)
                else:
                    view.state = MissionState.SUBMITTED
                    view.submitted_cycle_id = submission.cycle_id
            views.append(view)
        return views

    @staticmethod
    def _outcome_payload(mission: Mission, bucket: Bucket) -> OutcomePayload:
        outcome = mission.outcome_for(bucket)
        if outcome is None:
            logger.warning(
                "Mission %s has no authored outcome for bucket %s", mission.mission_id, bucket.value
            )
            return OutcomePayload(bucket=bucket.value)
        return OutcomePayload(
            bucket=bucket.value,
            label=outcome.label,
            narrative=outcome.narrative,
            image=outcome.image,
            changes=outcome.changes,
        )

    def get_questions(self, mission_id: str) -> List[Dict[str, object]]:
        """Grouped questions for a mission with option weights removed."""

        with track_duration("get_questions", collector=self._telemetry):
            mission_id = _clean(mission_id)
            if not mission_id:
                raise ValidationError("A mission id is required")
            self._visible_mission(mission_id)
            return public_questions(self._questions_for(mission_id))

    def submit_mission(
        self,
        username: str,
        hero_name: str,
        mission_id: str,
        answers: Iterable[str],
        *,
        submission_id: Optional[str] = None,
    ) -> Submission:
        """Record a player's answers for a mission exactly once."""

        username = _clean(username)
        hero_name = _clean(hero_name)
        mission_id = _clean(mission_id)
        chosen = [_clean(answer) for answer in (answers or []) if _clean(answer)]

        with track_duration("submit_mission", tags={"mission_id": mission_id}, collector=self._telemetry):
            if not username or not hero_name or not mission_id:
                raise ValidationError("Missing required fields.")
            if not chosen:
                raise ValidationError("At least one answer is required.")
            if len(chosen) > self.settings.max_answers:
                raise ValidationError(
                    f"Too many answers ({len(chosen)}); at most {self.settings.max_answers} are allowed."
                )
            self._visible_mission(mission_id)
            questions = self._questions_for(mission_id)
            if not questions:
                raise ValidationError(f"Mission {mission_id} has no questions yet.")
            bucket = compute_bucket(chosen, option_weights(questions))
            cycle_id = self.current_cycle_id()
            submission = Submission(
                submission_id=_clean(submission_id) or f"sub_{uuid.uuid4().hex[:12]}",
                username=username,
                hero_name=hero_name,
                mission_id=mission_id,
                answers=chosen,
                outcome_bucket=bucket,
                cycle_id=cycle_id,
                timestamp=self.cycle.now().isoformat(),
            )

            # Read-then-append with no lock: two simultaneous submissions for
            # the same player and mission can both pass this scan.
            for existing in self._submissions():
                if existing.mission_id == mission_id and _same_user(existing.username, username):
                    logger.info("Rejected duplicate submission of %s by %s", mission_id, username)
                    raise DuplicateSubmissionError(username, mission_id)
                if existing.submission_id == submission.submission_id:
                    raise ValidationError(f"Submission id {submission.submission_id} is already in use.")
            submission.row_ref = self.store.append_row(MISSION_SUBMISSIONS, submission.to_record())

        logger.info(
            "%s submitted mission %s (bucket %s, cycle %s)",
            username,
            mission_id,
            bucket.value,
            cycle_id,
        )
        self._append_event(
            "mission_submitted",
            {
                "submission_id": submission.submission_id,
                "username": username,
                "mission_id": mission_id,
                "outcome_bucket": bucket.value,
            },
            cycle_id=cycle_id,
        )
        self._track(
            "track_mission_activity",
            "mission_submitted",
            mission_id,
            player_id=username,
            details={"bucket": bucket.value, "answers": len(chosen)},
        )
        return submission

    # Review ------------------------------------------------------------
    def resolve_submission(
        self,
        submission_id: str,
        dm_override: Optional[Union[str, Bucket]] = None,
        resolved: Optional[bool] = None,
    ) -> Submission:
        """Set or clear the reviewer override and the resolved flag.

        ``None`` leaves a field untouched; a blank override clears it.
        Answers and the computed bucket are never modified.
        """

        with track_duration("resolve_submission", collector=self._telemetry):
            submission = self.get_submission(submission_id)
            updates: List[CellUpdate] = []
            changes: Dict[str, object] = {}

            if dm_override is not None:
                try:
                    override = Bucket.parse(dm_override)
                except ValueError:
                    raise ValidationError(
                        f"Invalid override {dm_override!r}; choose a, b, c or blank."
                    ) from None
                if override != submission.dm_override:
                    updates.append(
                        CellUpdate(
                            row_ref=submission.row_ref,
                            field="dm_override",
                            value=override.value if override else "",
                        )
                    )
                    changes["dm_override"] = override.value if override else ""
                    submission.dm_override = override

            if resolved is not None and bool(resolved) != submission.resolved:
                updates.append(
                    CellUpdate(row_ref=submission.row_ref, field="resolved", value=format_flag(bool(resolved)))
                )
                changes["resolved"] = bool(resolved)
                submission.resolved = bool(resolved)

            if not updates:
                logger.debug("Submission %s already up to date", submission.submission_id)
                return submission

            self.store.batch_update_cells(MISSION_SUBMISSIONS, updates)
        logger.info("Updated submission %s: %s", submission.submission_id, changes)
        self._append_event(
            "submission_reviewed",
            {"submission_id": submission.submission_id, **changes},
            cycle_id=self.current_cycle_id(),
        )
        self._track("track_admin_action", "resolve_submission", submission.submission_id, details=changes)
        return submission

    def review_submissions(
        self,
        mission_id: Optional[str] = None,
        *,
        pending_only: bool = False,
    ) -> List[Dict[str, object]]:
        """Submissions grouped by mission for the reviewer queue."""

        titles = {mission.mission_id: mission.title or mission.mission_id for mission in self._missions()}
        groups: Dict[str, Dict[str, object]] = {}
        for submission in self._submissions():
            if mission_id and submission.mission_id != _clean(mission_id):
                continue
            if pending_only and submission.resolved:
                continue
            group = groups.setdefault(
                submission.mission_id,
                {
                    "mission_id": submission.mission_id,
                    "title": titles.get(submission.mission_id, submission.mission_id),
                    "submissions": [],
                },
            )
            group["submissions"].append(
                {
                    "submission_id": submission.submission_id,
                    "username": submission.username,
                    "hero_name": submission.hero_name,
                    "answers": [answer for answer in submission.answers if answer],
                    "outcome_bucket": submission.outcome_bucket.value,
                    "dm_override": submission.dm_override.value if submission.dm_override else "",
                    "effective_bucket": submission.effective_bucket.value,
                    "resolved": submission.resolved,
                    "cycle_id": submission.cycle_id,
                    "timestamp": submission.timestamp,
                }
            )
        return list(groups.values())

    def overview(self) -> Dict[str, object]:
        state = self.cycle.current_state()
        submissions = self._submissions()
        return {
            "current_cycle": state.current_cycle,
            "cycle_start": state.cycle_start.isoformat() if state.cycle_start else None,
            "cycle_id": self.current_cycle_id(),
            "total_submissions": len(submissions),
            "pending_submissions": sum(1 for item in submissions if not item.resolved),
        }

    # Reputation --------------------------------------------------------
    def _hero_names(self) -> List[str]:
        return [row.get("hero_name") for row in self.store.read_rows(PLAYERS)]

    def _faction_names(self) -> List[str]:
        return [row.get("faction_name") for row in self.store.read_rows(FACTIONS)]

    def _existing_pairs(self) -> Set[Tuple[str, str]]:
        pairs: Set[Tuple[str, str]] = set()
        for row in self.store.read_rows(REPUTATION):
            hero = _clean(row.get("hero_name"))
            faction = _clean(row.get("faction_name"))
            if hero and faction:
                pairs.add((hero, faction))
        return pairs

    def _fill_reputation(
        self,
        heroes: Iterable[str],
        factions: Iterable[str],
        *,
        source: str,
    ) -> List[ReputationEntry]:
        existing = self._existing_pairs()
        inserted: List[ReputationEntry] = []
        for hero, faction in missing_pairs(heroes, factions, existing):
            if (hero, faction) in existing:
                continue
            entry = ReputationEntry(hero_name=hero, faction_name=faction)
            self.store.append_row(REPUTATION, entry.to_record())
            existing.add((hero, faction))
            inserted.append(entry)
        if inserted:
            logger.info("Added %d neutral reputation rows (%s)", len(inserted), source)
            self._append_event(
                "reputation_filled",
                {"source": source, "count": len(inserted)},
                cycle_id=self.current_cycle_id(),
            )
            self._track("track_reputation_fill", source, len(inserted))
        return inserted

    def ensure_reputation_for_player(self, hero_name: str) -> List[ReputationEntry]:
        """Give a hero a neutral standing with every faction they lack one for."""

        with track_duration("ensure_reputation", tags={"source": "player"}, collector=self._telemetry):
            hero_name = _clean(hero_name)
            if not hero_name:
                raise ValidationError("A hero name is required")
            return self._fill_reputation([hero_name], self._faction_names(), source="player")

    def ensure_reputation_for_faction(self, faction_name: str) -> List[ReputationEntry]:
        """Give every known hero a neutral standing with a faction."""

        with track_duration("ensure_reputation", tags={"source": "faction"}, collector=self._telemetry):
            faction_name = _clean(faction_name)
            if not faction_name:
                raise ValidationError("A faction name is required")
            return self._fill_reputation(self._hero_names(), [faction_name], source="faction")

    def sync_reputation(self) -> List[ReputationEntry]:
        return self._fill_reputation(self._hero_names(), self._faction_names(), source="sync")

    def set_reputation(
        self,
        hero_name: str,
        faction_name: str,
        level: Union[str, ReputationLevel],
    ) -> ReputationEntry:
        hero_name = _clean(hero_name)
        faction_name = _clean(faction_name)
        with track_duration("set_reputation", collector=self._telemetry):
            if not hero_name or not faction_name:
                raise ValidationError("Hero and faction are required")
            try:
                parsed = ReputationLevel.parse(level)
            except ValueError:
                choices = ", ".join(item.value for item in ReputationLevel)
                raise ValidationError(f"Invalid reputation {level!r}; choose from {choices}") from None

        entry = ReputationEntry(hero_name=hero_name, faction_name=faction_name, level=parsed)
        for row in self.store.read_rows(REPUTATION):
            if _clean(row.get("hero_name")) == hero_name and _clean(row.get("faction_name")) == faction_name:
                if _clean(row.get("reputation")).lower() == parsed.value:
                    return entry
                self.store.update_cell(REPUTATION, row.ref, "reputation", parsed.value)
                break
        else:
            self.store.append_row(REPUTATION, entry.to_record())

        logger.info("Reputation of %s with %s set to %s", hero_name, faction_name, parsed.value)
        self._append_event(
            "reputation_set",
            {"hero_name": hero_name, "faction_name": faction_name, "reputation": parsed.value},
            cycle_id=self.current_cycle_id(),
        )
        self._track("track_admin_action", "set_reputation", hero_name, details={"faction": faction_name})
        return entry

    def reputation_for(self, hero_name: str) -> Dict[str, ReputationLevel]:
        """A hero's standing per faction; factions without a row read as neutral."""

        hero_name = _clean(hero_name)
        standings: Dict[str, ReputationLevel] = {}
        for faction in self._faction_names():
            faction = _clean(faction)
            if faction:
                standings.setdefault(faction, ReputationLevel.NEUTRAL)
        for row in self.store.read_rows(REPUTATION):
            if _clean(row.get("hero_name")) != hero_name:
                continue
            faction = _clean(row.get("faction_name"))
            if not faction:
                continue
            try:
                standings[faction] = ReputationLevel.parse(row.get("reputation"))
            except ValueError:
                logger.warning(
                    "Unknown reputation %r for %s/%s", row.get("reputation"), hero_name, faction
                )
                standings[faction] = ReputationLevel.NEUTRAL
        return standings


__all__ = ["MissionService"]
