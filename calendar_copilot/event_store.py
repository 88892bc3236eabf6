from __future__ import annotations

import threading
import weakref
from contextlib import contextmanager
from datetime import date
from typing import Any, Callable, Iterator, Mapping

from calendar_copilot.applier import build_event, merge_event
from calendar_copilot.models import Event, sort_events
from calendar_copilot.sample_events import sample_event_payloads
from calendar_copilot.storage import EventBackend, StoredCalendar


class EventStore:
    """Per-user event collections on top of a persistence backend.

    A user's calendar is seeded once from the sample set the first time it is
    read; an emptied calendar stays empty. Mutations for one user run under
    that user's lock and are written back in full.
    """

    def __init__(self, backend: EventBackend, today: Callable[[], date] = date.today) -> None:
        self.backend = backend
        self.today = today
        # Entries drop out once no caller holds the lock.
        self._locks: "weakref.WeakValueDictionary[str, Any]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, user_id: str) -> Any:
        key = str(user_id)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def locked(self, user_id: str) -> Iterator[None]:
        with self._lock_for(user_id):
            yield

    def _seed(self) -> StoredCalendar:
        events = [
            Event(id=index, **payload)
            for index, payload in enumerate(sample_event_payloads(self.today()), start=1)
        ]
        return StoredCalendar(events=events, last_id=len(events))

    def snapshot(self, user_id: str) -> StoredCalendar:
        with self.locked(user_id):
            calendar = self.backend.read(user_id)
            if calendar is None:
                calendar = self._seed()
                self.backend.write(user_id, calendar)
            return calendar.clone()

    def replace(self, user_id: str, calendar: StoredCalendar) -> list[Event]:
        with self.locked(user_id):
            self.backend.write(user_id, calendar)
            return sort_events(calendar.events)

    def list(self, user_id: str) -> list[Event]:
        return sort_events(self.snapshot(user_id).events)

    def list_by_date(self, user_id: str, day: str) -> list[Event]:
        return [event for event in self.list(user_id) if event.date == day]

    def list_upcoming(self, user_id: str, limit: int = 5) -> list[Event]:
        today = self.today().isoformat()
        upcoming = [event for event in self.list(user_id) if event.date >= today]
        return upcoming[: max(0, int(limit))]

    def get(self, user_id: str, event_id: int) -> Event | None:
        return next((event for event in self.snapshot(user_id).events if event.id == event_id), None)

    def create(self, user_id: str, fields: Mapping[str, Any]) -> Event:
        with self.locked(user_id):
            calendar = self.snapshot(user_id)
            event = build_event(calendar.next_id(), fields)
            calendar.events.append(event)
            calendar.last_id = event.id
            self.backend.write(user_id, calendar)
            return event.clone()

    def update(self, user_id: str, event_id: int, patch: Mapping[str, Any]) -> Event | None:
        with self.locked(user_id):
            calendar = self.snapshot(user_id)
            for position, existing in enumerate(calendar.events):
                if existing.id != event_id:
                    continue
                updated = merge_event(existing, patch)
                calendar.events[position] = updated
                self.backend.write(user_id, calendar)
                return updated.clone()
            return None

    def delete(self, user_id: str, event_id: int) -> Event | None:
        with self.locked(user_id):
            calendar = self.snapshot(user_id)
            for position, existing in enumerate(calendar.events):
                if existing.id != event_id:
                    continue
                removed = calendar.events.pop(position)
                self.backend.write(user_id, calendar)
                return removed
            return None
