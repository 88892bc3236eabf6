from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Mapping

from calendar_copilot.models import DEFAULT_EVENT_TYPE, ApplyResult, Event, OperationResult
from calendar_copilot.storage import StoredCalendar

if TYPE_CHECKING:
    from calendar_copilot.event_store import EventStore
    from calendar_copilot.log_store import LogStore


SUPPORTED_ACTIONS = ("create", "update", "delete")

REASON_UNSUPPORTED = "Unsupported action"
REASON_CREATE_FIELDS = "Create requires title, date, and time"
REASON_ID_REQUIRED = "Update/delete operations require an id"
REASON_NOT_FOUND = "Event not found"


def build_event(event_id: int, fields: Mapping[str, Any]) -> Event:
    return Event(
        id=event_id,
        title=str(fields["title"]),
        date=str(fields["date"]),
        time=str(fields["time"]),
        type=str(fields.get("type") or DEFAULT_EVENT_TYPE),
    )


def merge_event(existing: Event, patch: Mapping[str, Any]) -> Event:
    """Return ``existing`` with only the fields present in ``patch`` replaced.

    ``type`` keeps the existing value when the patch leaves it out or blank.
    """
    title = patch.get("title")
    date = patch.get("date")
    time = patch.get("time")
    event_type = patch.get("type")
    return Event(
        id=existing.id,
        title=str(title) if title is not None else existing.title,
        date=str(date) if date is not None else existing.date,
        time=str(time) if time is not None else existing.time,
        type=str(event_type) if event_type else existing.type,
    )


def _as_mapping(operation: Any) -> dict[str, Any]:
    if hasattr(operation, "model_dump"):
        return operation.model_dump(exclude_none=True)
    if isinstance(operation, Mapping):
        return dict(operation)
    return {}


def _coerce_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class OperationApplier:
    def __init__(self, store: "EventStore", sink: "LogStore | None" = None) -> None:
        self.store = store
        self.sink = sink

    def apply(self, user_id: str, operations: Iterable[Any]) -> ApplyResult:
        """Apply ``operations`` in order; each one succeeds or is skipped on its own.

        The user's calendar is read once, mutated in memory and written back once.
        """
        with self.store.locked(user_id):
            calendar = self.store.snapshot(user_id)
            results: list[OperationResult] = []
            for index, operation in enumerate(operations):
                results.append(self._apply_one(index, _as_mapping(operation), calendar))
            events = self.store.replace(user_id, calendar)

        if self.sink is not None:
            counts: dict[str, int] = {}
            for result in results:
                counts[result.status] = counts.get(result.status, 0) + 1
            self.sink.record(
                source="applier",
                level="info",
                message=f"Applied {len(results)} operation(s) for user {user_id}",
                detail=counts,
            )
        return ApplyResult(events=events, results=results)

    def _apply_one(self, index: int, operation: dict[str, Any], calendar: StoredCalendar) -> OperationResult:
        events = calendar.events
        action = operation.get("action")
        if action not in SUPPORTED_ACTIONS:
            return OperationResult(index=index, status="skipped", reason=REASON_UNSUPPORTED)

        if action == "create":
            if not (operation.get("title") and operation.get("date") and operation.get("time")):
                return OperationResult(index=index, status="skipped", reason=REASON_CREATE_FIELDS)
            event = build_event(calendar.next_id(), operation)
            events.append(event)
            calendar.last_id = event.id
            return OperationResult(index=index, status="created", event=event.clone())

        raw_id = operation.get("id")
        if not raw_id:
            return OperationResult(index=index, status="skipped", reason=REASON_ID_REQUIRED)
        event_id = _coerce_id(raw_id)
        position = next((pos for pos, event in enumerate(events) if event.id == event_id), None)
        if position is None:
            return OperationResult(index=index, status="skipped", reason=REASON_NOT_FOUND)

        if action == "delete":
            removed = events.pop(position)
            return OperationResult(index=index, status="deleted", event=removed)

        updated = merge_event(events[position], operation)
        events[position] = updated
        return OperationResult(index=index, status="updated", event=updated.clone())

