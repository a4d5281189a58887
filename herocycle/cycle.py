"""The cycle clock: the in-game epoch every record is stamped against."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from .errors import ConfigurationError
from .models import CycleAdvance, CycleState
from .state import SETTINGS, CellUpdate, RowStore, StoredRow

logger = logging.getLogger(__name__)

CURRENT_CYCLE_KEY = "current_cycle"
CYCLE_START_KEY = "cycle_start"

_MINUTES_PER_DAY = 1440


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_instant(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 instant; naive values are taken as UTC."""

    text = (value or "").strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def cycle_id_at(state: CycleState, now: datetime) -> str:
    """Return the ``cycle.days.hours.block`` coordinate for ``now``.

    ``block`` is the ten-minute slot within the hour (0-5). Elapsed time is
    clamped at zero so a clock running backwards never goes negative.
    """

    if state.cycle_start is None:
        return f"{state.current_cycle}.00.00.0"
    elapsed_minutes = max(0, int((now - state.cycle_start).total_seconds() // 60))
    days = elapsed_minutes // _MINUTES_PER_DAY
    hours = (elapsed_minutes % _MINUTES_PER_DAY) // 60
    block = (elapsed_minutes % 60) // 10
    return f"{state.current_cycle}.{days:02d}.{hours:02d}.{block}"


class CycleClock:
    """Reads and advances the cycle stored in the ``Settings`` tab.

    State is loaded fresh on every call; nothing is cached between calls.
    """

    def __init__(
        self,
        store: RowStore,
        *,
        initial_cycle: int = 1,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._initial_cycle = initial_cycle
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def _settings_rows(self) -> Dict[str, StoredRow]:
        rows: Dict[str, StoredRow] = {}
        for row in self._store.read_rows(SETTINGS):
            key = row.get("key").strip()
            if key and key not in rows:
                rows[key] = row
        return rows

    def load_state(self) -> Optional[CycleState]:
        """Return the stored cycle state, or ``None`` when it is missing or unusable."""

        rows = self._settings_rows()
        cycle_row = rows.get(CURRENT_CYCLE_KEY)
        if cycle_row is None:
            return None
        try:
            current = int(str(cycle_row.get("value")).strip())
        except ValueError:
            logger.warning("Malformed current_cycle setting: %r", cycle_row.get("value"))
            return None
        if current < 1:
            logger.warning("Non-positive current_cycle setting: %s", current)
            return None
        start_row = rows.get(CYCLE_START_KEY)
        start = parse_instant(start_row.get("value")) if start_row else None
        if start_row is not None and start is None and start_row.get("value").strip():
            logger.warning("Ignoring malformed cycle_start setting: %r", start_row.get("value"))
        return CycleState(current_cycle=current, cycle_start=start)

    def current_state(self) -> CycleState:
        state = self.load_state()
        if state is None:
            return CycleState(current_cycle=self._initial_cycle)
        return state

    def current_cycle_id(self) -> str:
        return cycle_id_at(self.current_state(), self.now())

    def advance_cycle(self) -> CycleAdvance:
        rows = self._settings_rows()
        state = self.load_state()
        if state is None:
            raise ConfigurationError(
                "Cycle settings are missing; initialise current_cycle before advancing"
            )
        new_cycle = state.current_cycle + 1
        new_start = self.now()
        updates = [
            CellUpdate(row_ref=rows[CURRENT_CYCLE_KEY].ref, field="value", value=str(new_cycle))
        ]
        start_row = rows.get(CYCLE_START_KEY)
        if start_row is not None:
            updates.append(CellUpdate(row_ref=start_row.ref, field="value", value=new_start.isoformat()))
        self._store.batch_update_cells(SETTINGS, updates)
        if start_row is None:
            self._store.append_row(SETTINGS, {"key": CYCLE_START_KEY, "value": new_start.isoformat()})
        logger.info("Advanced to cycle %s (started %s)", new_cycle, new_start.isoformat())
        return CycleAdvance(new_cycle=new_cycle, new_start=new_start)

    def initialise(self, cycle: Optional[int] = None) -> CycleState:
        """Create the cycle settings rows when they do not exist yet.

        An existing ``current_cycle`` row is never overwritten.
        """

        rows = self._settings_rows()
        if CURRENT_CYCLE_KEY not in rows:
            start = self.now()
            number = cycle if cycle is not None else self._initial_cycle
            if number < 1:
                raise ConfigurationError("The first cycle must be a positive number")
            self._store.append_row(SETTINGS, {"key": CURRENT_CYCLE_KEY, "value": str(number)})
            if CYCLE_START_KEY in rows:
                self._store.update_cell(SETTINGS, rows[CYCLE_START_KEY].ref, "value", start.isoformat())
            else:
                self._store.append_row(SETTINGS, {"key": CYCLE_START_KEY, "value": start.isoformat()})
            logger.info("Initialised cycle %s at %s", number, start.isoformat())
        return self.current_state()


__all__ = ["CycleClock", "cycle_id_at", "parse_instant", "utc_now"]
