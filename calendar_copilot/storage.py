from __future__ import annotations

import hashlib
import json
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from calendar_copilot.models import Event, StorageConfig, sort_events


class StoreError(RuntimeError):
    """Persistence failure in a storage backend."""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StoredCalendar:
    events: list[Event] = field(default_factory=list)
    # Highest id ever issued for this user; ids freed by deletes stay retired.
    last_id: int = 0

    def next_id(self) -> int:
        highest = max((event.id for event in self.events), default=0)
        return max(highest, self.last_id) + 1

    def clone(self) -> "StoredCalendar":
        return StoredCalendar(events=[event.clone() for event in self.events], last_id=self.last_id)


class EventBackend(Protocol):
    def read(self, user_id: str) -> StoredCalendar | None: ...

    def write(self, user_id: str, calendar: StoredCalendar) -> None: ...


class JsonFileBackend:
    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)
        self._lock = threading.RLock()

    def _path_for(self, user_id: str) -> Path:
        digest = hashlib.sha1(str(user_id).encode("utf-8")).hexdigest()[:16]  # nosec B324
        return self.data_dir / f"user-{digest}.json"

    def read(self, user_id: str) -> StoredCalendar | None:
        path = self._path_for(user_id)
        with self._lock:
            try:
                with path.open("r", encoding="utf-8") as handle:
                    payload = json.load(handle)
            except FileNotFoundError:
                return None
            except (OSError, json.JSONDecodeError) as exc:
                raise StoreError(f"Unable to read events for user {user_id}: {exc}") from exc
        raw_events = payload.get("events", []) if isinstance(payload, dict) else []
        try:
            events = [Event.from_dict(item) for item in raw_events]
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreError(f"Corrupt event file for user {user_id}: {exc}") from exc
        return StoredCalendar(events=events, last_id=int(payload.get("last_id", 0) or 0))

    def write(self, user_id: str, calendar: StoredCalendar) -> None:
        path = self._path_for(user_id)
        payload: dict[str, Any] = {
            "user_id": str(user_id),
            "last_id": calendar.last_id,
            "updated_at": _utc_now(),
            "events": [event.to_dict() for event in sort_events(calendar.events)],
        }
        with self._lock:
            try:
                self.data_dir.mkdir(parents=True, exist_ok=True)
                tmp_path = path.with_suffix(path.suffix + ".tmp")
                with tmp_path.open("w", encoding="utf-8") as handle:
                    json.dump(payload, handle, ensure_ascii=False, indent=2)
                    handle.write("\n")
                tmp_path.replace(path)
            except OSError as exc:
                raise StoreError(f"Unable to write events for user {user_id}: {exc}") from exc


class SqliteBackend:
    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        schema_sql = """
        CREATE TABLE IF NOT EXISTS calendar_users (
            user_id TEXT PRIMARY KEY,
            last_id INTEGER NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS calendar_events (
            user_id TEXT NOT NULL,
            id INTEGER NOT NULL,
            title TEXT NOT NULL,
            event_date TEXT NOT NULL,
            event_time TEXT NOT NULL,
            event_type TEXT NOT NULL,
            PRIMARY KEY (user_id, id)
        );

        CREATE INDEX IF NOT EXISTS idx_calendar_events_date
            ON calendar_events (user_id, event_date);
        """
        try:
            with self._lock:
                with self._connect() as conn:
                    conn.executescript(schema_sql)
        except sqlite3.Error as exc:
            raise StoreError(f"Unable to initialise event database: {exc}") from exc

    def read(self, user_id: str) -> StoredCalendar | None:
        try:
            with self._lock:
                with self._connect() as conn:
                    owner = conn.execute(
                        "SELECT last_id FROM calendar_users WHERE user_id = ?",
                        (str(user_id),),
                    ).fetchone()
                    if owner is None:
                        return None
                    rows = conn.execute(
                        """
                        SELECT id, title, event_date, event_time, event_type
                        FROM calendar_events
                        WHERE user_id = ?
                        ORDER BY event_date, event_time, id
                        """,
                        (str(user_id),),
                    ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Unable to read events for user {user_id}: {exc}") from exc
        events = [
            Event(
                id=int(row["id"]),
                title=row["title"],
                date=row["event_date"],
                time=row["event_time"],
                type=row["event_type"],
            )
            for row in rows
        ]
        return StoredCalendar(events=events, last_id=int(owner["last_id"]))

    def write(self, user_id: str, calendar: StoredCalendar) -> None:
        try:
            with self._lock:
                with self._connect() as conn:
                    conn.execute("DELETE FROM calendar_events WHERE user_id = ?", (str(user_id),))
                    conn.executemany(
                        """
                        INSERT INTO calendar_events(user_id, id, title, event_date, event_time, event_type)
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        [
                            (str(user_id), event.id, event.title, event.date, event.time, event.type)
                            for event in calendar.events
                        ],
                    )
                    conn.execute(
                        """
                        INSERT INTO calendar_users(user_id, last_id, updated_at)
                        VALUES (?, ?, ?)
                        ON CONFLICT(user_id) DO UPDATE SET
                            last_id = excluded.last_id,
                            updated_at = excluded.updated_at
                        """,
                        (str(user_id), int(calendar.last_id), _utc_now()),
                    )
                    conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Unable to write events for user {user_id}: {exc}") from exc


def build_backend(config: StorageConfig) -> EventBackend:
    if config.backend == "sqlite":
        return SqliteBackend(config.sqlite_path)
    return JsonFileBackend(config.json_dir)
