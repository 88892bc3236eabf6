from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Iterable, Protocol

from calendar_copilot.models import Event
from calendar_copilot.plan_schema import Plan, PlanValidationError, format_instructions, parse_plan_text

if TYPE_CHECKING:
    from calendar_copilot.log_store import LogStore


SYSTEM_PROMPT = """You help maintain a calendar.
You must return structured JSON that respects the format instructions.

Rules:
1. Keep existing event IDs when modifying or deleting events.
2. Never invent an id for a new event; create operations have no id.
3. Use 24-hour time format HH:MM. Dates are YYYY-MM-DD.
4. Propose at most 10 operations. Return an empty operations list when nothing should change.
"""

REPAIR_PROMPT = """The text below was supposed to be a JSON calendar plan but it does not satisfy the format instructions.
Correct it so that it is strictly valid JSON matching the format instructions.
Keep the intent of the original text. Return only the corrected JSON.
"""


class ChatClient(Protocol):
    def request_payload(self, messages: list[dict[str, str]]) -> dict[str, Any]: ...

    def chat(self, *, messages: list[dict[str, str]]) -> tuple[Any, str]: ...


class PlanUnavailable(RuntimeError):
    """No schema-valid plan could be produced, even after the repair pass."""


def serialize_events(events: Iterable[Event]) -> str:
    return json.dumps([event.to_dict() for event in events], ensure_ascii=False, indent=2)


def build_messages(
    *,
    prompt: str,
    events: Iterable[Event],
    focus_date: str | None = None,
) -> list[dict[str, str]]:
    sections = [f"User request:\n{prompt.strip()}"]
    if focus_date:
        sections.append(f"The user is currently looking at {focus_date}.")
    sections.append(f"Existing events JSON:\n{serialize_events(events)}")
    sections.append(format_instructions())
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": "\n\n".join(sections)},
    ]


def build_repair_messages(*, invalid_text: str, error: PlanValidationError) -> list[dict[str, str]]:
    content = (
        f"{format_instructions()}\n\n"
        f"Validation errors:\n{error.describe()}\n\n"
        f"Text to correct:\n{invalid_text}"
    )
    return [
        {"role": "system", "content": REPAIR_PROMPT},
        {"role": "user", "content": content},
    ]


class CalendarPlanner:
    def __init__(self, client: ChatClient, sink: "LogStore | None" = None) -> None:
        self.client = client
        self.sink = sink

    def _record(self, level: str, message: str, detail: Any = None) -> None:
        if self.sink is not None:
            self.sink.record(source="planner", level=level, message=message, detail=detail)

    def _generate(self, stage: str, messages: list[dict[str, str]]) -> str:
        self._record("info", f"Model request ({stage})", self.client.request_payload(messages))
        raw, text = self.client.chat(messages=messages)
        self._record("info", f"Model response ({stage})", raw)
        return text

    def plan_edits(
        self,
        prompt: str,
        current_events: Iterable[Event],
        *,
        focus_date: str | None = None,
    ) -> Plan:
        """Ask the model for a plan, with exactly one repair attempt on invalid output.

        Transport errors from the client propagate unchanged.
        """
        messages = build_messages(prompt=prompt, events=list(current_events), focus_date=focus_date)
        text = self._generate("generate", messages)

        try:
            return parse_plan_text(text)
        except PlanValidationError as exc:
            first_error = exc
            self._record("warn", "Plan failed validation, requesting repair", exc.describe())

        corrected = self._generate("repair", build_repair_messages(invalid_text=text, error=first_error))
        self._record("info", "Corrected plan text", corrected)
        try:
            return parse_plan_text(corrected)
        except PlanValidationError as exc:
            self._record("error", "Corrected plan failed validation", exc.describe())
            raise PlanUnavailable("The AI planner could not produce a valid plan.") from exc
