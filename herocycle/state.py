"""Row store persistence.

The game keeps its data in "tabs" of header-keyed rows. Every tab is a
plain list of records in insertion order; rows are addressed by a
store-assigned reference obtained from a prior read. There are no
transactions across calls and the last write wins.
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import closing, contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

from .errors import StoreUnavailableError, ValidationError
from .models import MAX_ANSWER_SLOTS

logger = logging.getLogger(__name__)

MISSIONS = "Missions"
MISSION_QUESTIONS = "MissionQuestions"
MISSION_SUBMISSIONS = "MissionSubmissions"
SETTINGS = "Settings"
PLAYERS = "Players"
FACTIONS = "Factions"
REPUTATION = "Reputation"
EVENTS = "Events"

_OUTCOME_HEADERS = [
    f"outcome_{bucket}_{part}"
    for bucket in ("a", "b", "c")
    for part in ("label", "narrative", "image", "changes")
]

TABLE_HEADERS: Dict[str, List[str]] = {
    MISSIONS: [
        "mission_id",
        "title",
        "description",
        "image_url",
        "visible",
        "cycle_id",
        *_OUTCOME_HEADERS,
    ],
    MISSION_QUESTIONS: [
        "mission_id",
        "question_num",
        "question_text",
        "option_id",
        "option_text",
        "option_image",
        "option_flavor",
        "option_weight",
    ],
    MISSION_SUBMISSIONS: [
        "submission_id",
        "username",
        "hero_name",
        "mission_id",
        *[f"q{slot}_answer" for slot in range(1, MAX_ANSWER_SLOTS + 1)],
        "outcome_bucket",
        "dm_override",
        "resolved",
        "cycle_id",
        "timestamp",
    ],
    SETTINGS: ["key", "value"],
    PLAYERS: ["username", "hero_name", "class", "faction"],
    FACTIONS: ["faction_name", "description", "leader"],
    REPUTATION: ["hero_name", "faction_name", "reputation"],
    EVENTS: ["timestamp", "cycle_id", "action", "payload"],
}


@dataclass
class StoredRow:
    """A record read from the store together with its row reference."""

    ref: int
    values: Dict[str, str] = field(default_factory=dict)

    def get(self, key: str, default: str = "") -> str:
        return self.values.get(key, default)


@dataclass
class CellUpdate:
    row_ref: int
    field: str
    value: str


@runtime_checkable
class RowStore(Protocol):
    """Narrow interface the game layer uses to talk to its storage.

    Implementations:
    - SqliteRowStore: file-backed persistence (production)
    - MemoryRowStore: in-process lists (embedding and tests)
    """

    def read_rows(self, table: str) -> List[StoredRow]:
        ...

    def append_row(self, table: str, record: Mapping[str, object]) -> int:
        ...

    def update_cell(self, table: str, row_ref: int, field: str, value: object) -> None:
        ...

    def batch_update_cells(self, table: str, updates: Sequence[CellUpdate]) -> None:
        ...


def _headers(table: str) -> List[str]:
    try:
        return TABLE_HEADERS[table]
    except KeyError:
        raise ValidationError(f"Unknown table: {table}") from None


def _check_field(table: str, field_name: str) -> None:
    if field_name not in _headers(table):
        raise ValidationError(f"Unknown field {field_name!r} for table {table}")


def _row_values(table: str, record: Mapping[str, object]) -> List[str]:
    """Order a record by the tab's headers; unknown keys are ignored."""

    values = []
    for header in _headers(table):
        value = record.get(header)
        values.append("" if value is None else str(value))
    return values


class SqliteRowStore:
    """Row store backed by a SQLite file, one table per tab."""

    def __init__(self, db_path: Path, *, timeout: float = 5.0) -> None:
        self._db_path = Path(db_path)
        self._timeout = timeout
        self._ensure_schema()

    @property
    def path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            with closing(sqlite3.connect(self._db_path, timeout=self._timeout)) as conn:
                yield conn
        except (sqlite3.OperationalError, sqlite3.DatabaseError) as exc:
            logger.warning("Row store unavailable (%s): %s", self._db_path, exc)
            raise StoreUnavailableError(f"Row store unavailable: {exc}") from exc

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            for table, headers in TABLE_HEADERS.items():
                columns = ", ".join(f'"{name}" TEXT NOT NULL DEFAULT \'\'' for name in headers)
                conn.execute(
                    f'CREATE TABLE IF NOT EXISTS "{table}" '
                    f"(row_ref INTEGER PRIMARY KEY AUTOINCREMENT, {columns})"
                )
                existing = {
                    row[1] for row in conn.execute(f"PRAGMA table_info('{table}')").fetchall()
                }
                for name in headers:
                    if name not in existing:
                        conn.execute(
                            f'ALTER TABLE "{table}" ADD COLUMN "{name}" TEXT NOT NULL DEFAULT \'\''
                        )
            conn.commit()

    def read_rows(self, table: str) -> List[StoredRow]:
        headers = _headers(table)
        column_sql = ", ".join(f'"{name}"' for name in headers)
        with self._connect() as conn:
            rows = conn.execute(
                f'SELECT row_ref, {column_sql} FROM "{table}" ORDER BY row_ref ASC'
            ).fetchall()
        return [
            StoredRow(ref=int(row[0]), values=dict(zip(headers, (value or "" for value in row[1:]))))
            for row in rows
        ]

    def append_row(self, table: str, record: Mapping[str, object]) -> int:
        headers = _headers(table)
        column_sql = ", ".join(f'"{name}"' for name in headers)
        placeholders = ", ".join("?" for _ in headers)
        with self._connect() as conn:
            cursor = conn.execute(
                f'INSERT INTO "{table}" ({column_sql}) VALUES ({placeholders})',
                _row_values(table, record),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def update_cell(self, table: str, row_ref: int, field: str, value: object) -> None:
        self.batch_update_cells(table, [CellUpdate(row_ref=row_ref, field=field, value=value)])

    def batch_update_cells(self, table: str, updates: Sequence[CellUpdate]) -> None:
        if not updates:
            return
        for update in updates:
            _check_field(table, update.field)
        with self._connect() as conn:
            for update in updates:
                conn.execute(
                    f'UPDATE "{table}" SET "{update.field}" = ? WHERE row_ref = ?',
                    ("" if update.value is None else str(update.value), int(update.row_ref)),
                )
            conn.commit()


class MemoryRowStore:
    """In-memory row store with the same addressing rules as SQLite."""

    def __init__(self, tables: Optional[Mapping[str, Sequence[Mapping[str, object]]]] = None) -> None:
        self._rows: Dict[str, List[StoredRow]] = {table: [] for table in TABLE_HEADERS}
        self._next_ref = 1
        for table, records in (tables or {}).items():
            for record in records:
                self.append_row(table, record)

    def read_rows(self, table: str) -> List[StoredRow]:
        _headers(table)
        return [StoredRow(ref=row.ref, values=dict(row.values)) for row in self._rows[table]]

    def append_row(self, table: str, record: Mapping[str, object]) -> int:
        headers = _headers(table)
        ref = self._next_ref
        self._next_ref += 1
        self._rows[table].append(StoredRow(ref=ref, values=dict(zip(headers, _row_values(table, record)))))
        return ref

    def update_cell(self, table: str, row_ref: int, field: str, value: object) -> None:
        self.batch_update_cells(table, [CellUpdate(row_ref=row_ref, field=field, value=value)])

    def batch_update_cells(self, table: str, updates: Sequence[CellUpdate]) -> None:
        for update in updates:
            _check_field(table, update.field)
        by_ref = {row.ref: row for row in self._rows[table]}
        for update in updates:
            row = by_ref.get(int(update.row_ref))
            if row is None:
                continue
            row.values[update.field] = "" if update.value is None else str(update.value)


__all__ = [
    "TABLE_HEADERS",
    "StoredRow",
    "CellUpdate",
    "RowStore",
    "SqliteRowStore",
    "MemoryRowStore",
    "MISSIONS",
    "MISSION_QUESTIONS",
    "MISSION_SUBMISSIONS",
    "SETTINGS",
    "PLAYERS",
    "FACTIONS",
    "REPUTATION",
    "EVENTS",
]
