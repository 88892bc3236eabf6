from datetime import date

from calendar_copilot.event_store import EventStore
from calendar_copilot.models import Event
from calendar_copilot.storage import StoredCalendar


class MemoryBackend:
    def __init__(self) -> None:
        self.calendars: dict[str, StoredCalendar] = {}
        self.writes = 0

    def read(self, user_id: str) -> StoredCalendar | None:
        calendar = self.calendars.get(user_id)
        return calendar.clone() if calendar is not None else None

    def write(self, user_id: str, calendar: StoredCalendar) -> None:
        self.writes += 1
        self.calendars[user_id] = calendar.clone()


def store_with(events: list[Event], user_id: str = "alice", today: date = date(2024, 9, 1)) -> EventStore:
    backend = MemoryBackend()
    backend.calendars[user_id] = StoredCalendar(
        events=[event.clone() for event in events],
        last_id=max((event.id for event in events), default=0),
    )
    return EventStore(backend, today=lambda: today)
