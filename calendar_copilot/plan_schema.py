from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator


DATE_PATTERN = r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$"
TIME_PATTERN = r"^([01][0-9]|2[0-3]):[0-5][0-9]$"
MAX_OPERATIONS = 10
ACTIONS = ("create", "update", "delete")

JSON_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)


class _Operation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    @field_validator("title", "type", check_fields=False)
    @classmethod
    def _not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("must not be blank")
        return value


class CreateOperation(_Operation):
    """Add a new event. The id is assigned when the plan is applied."""

    action: Literal["create"]
    title: str = Field(min_length=1, description="Event title")
    date: str = Field(pattern=DATE_PATTERN, description="Event date, YYYY-MM-DD")
    time: str = Field(pattern=TIME_PATTERN, description="Start time, 24-hour HH:MM")
    type: Optional[str] = Field(default=None, description="Category such as meeting, social or planning")


class UpdateOperation(_Operation):
    """Change some fields of an existing event, identified by id."""

    action: Literal["update"]
    id: int = Field(gt=0, strict=True, description="Id of the existing event")
    title: Optional[str] = Field(default=None, min_length=1)
    date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    type: Optional[str] = None

    @model_validator(mode="after")
    def _requires_a_change(self) -> "UpdateOperation":
        if all(getattr(self, name) is None for name in ("title", "date", "time", "type")):
            raise ValueError("update must change at least one of title, date, time, type")
        return self


class DeleteOperation(_Operation):
    """Remove an existing event, identified by id."""

    action: Literal["delete"]
    id: int = Field(gt=0, strict=True, description="Id of the existing event")


Operation = Annotated[
    Union[CreateOperation, UpdateOperation, DeleteOperation],
    Field(discriminator="action"),
]


class Plan(BaseModel):
    model_config = ConfigDict(extra="forbid")

    summary: str = Field(min_length=1, description="Why the changes were proposed")
    operations: list[Operation] = Field(
        max_length=MAX_OPERATIONS,
        description="Set of changes to apply to the calendar, at most 10",
    )

    @field_validator("summary")
    @classmethod
    def _summary_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("summary must not be blank")
        return value

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


@dataclass(frozen=True)
class PlanIssue:
    location: str
    rule: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"location": self.location, "rule": self.rule, "message": self.message}


class PlanValidationError(ValueError):
    def __init__(self, issues: list[PlanIssue]) -> None:
        self.issues = list(issues)
        super().__init__(self.describe())

    def describe(self) -> str:
        return "\n".join(f"{issue.location}: {issue.message} ({issue.rule})" for issue in self.issues)


def _location(loc: tuple[Any, ...]) -> str:
    parts: list[str] = []
    previous: Any = None
    for part in loc:
        # Discriminated unions insert the tag after the list index.
        if isinstance(previous, int) and part in ACTIONS:
            previous = part
            continue
        parts.append(str(part))
        previous = part
    return ".".join(parts) or "$"


def _issues_from(exc: ValidationError) -> list[PlanIssue]:
    return [
        PlanIssue(location=_location(tuple(error["loc"])), rule=error["type"], message=error["msg"])
        for error in exc.errors()
    ]


def validate_plan(data: Any) -> Plan:
    try:
        return Plan.model_validate(data)
    except ValidationError as exc:
        raise PlanValidationError(_issues_from(exc)) from exc


def extract_json_payload(content: str) -> str:
    text = content.strip()
    if text.startswith("{") and text.endswith("}"):
        return text
    block = JSON_BLOCK_PATTERN.search(text)
    if block:
        return block.group(1)
    start = text.find("{")
    end = text.rfind("}")
    if start >= 0 and end > start:
        return text[start : end + 1]
    return text


def parse_plan_text(text: str) -> Plan:
    try:
        data = json.loads(extract_json_payload(text))
    except json.JSONDecodeError as exc:
        raise PlanValidationError(
            [PlanIssue(location="$", rule="json_invalid", message=f"Response is not valid JSON: {exc.msg}")]
        ) from exc
    return validate_plan(data)


def format_instructions() -> str:
    schema = json.dumps(Plan.model_json_schema(), indent=2)
    return (
        "Return only a JSON object that conforms to the JSON schema below. "
        "Do not return the schema itself and do not add commentary.\n"
        "Each operation's \"action\" selects its fields: create needs title, date and time and never an id; "
        "update needs the id and at least one field to change; delete needs only the id.\n\n"
        f"```json\n{schema}\n```"
    )
