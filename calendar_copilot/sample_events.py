from __future__ import annotations

from datetime import date, timedelta


# (days from today, title, time, type)
SAMPLE_EVENTS = [
    (2, "Design critique", "09:30", "meeting"),
    (4, "Engineering sync", "11:00", "meeting"),
    (6, "Launch prep", "15:00", "milestone"),
    (8, "Team offsite", "10:00", "social"),
    (10, "Sprint planning", "14:00", "planning"),
    (13, "Customer demo", "16:00", "demo"),
    (16, "Wellness hour", "12:30", "wellness"),
    (20, "Hackathon", "09:00", "social"),
    (24, "Roadmap review", "13:30", "planning"),
    (28, "Birthday celebration", "17:00", "social"),
]


def sample_event_payloads(today: date | None = None) -> list[dict[str, str]]:
    """Sample events in their fixed order, dated relative to ``today``."""
    base = today or date.today()
    return [
        {
            "title": title,
            "date": (base + timedelta(days=offset)).isoformat(),
            "time": time,
            "type": event_type,
        }
        for offset, title, time, event_type in SAMPLE_EVENTS
    ]
