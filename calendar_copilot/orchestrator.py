from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from calendar_copilot.applier import OperationApplier
from calendar_copilot.event_store import EventStore
from calendar_copilot.log_store import LogStore
from calendar_copilot.models import ApplyResult
from calendar_copilot.plan_schema import Plan
from calendar_copilot.planner import CalendarPlanner, PlanUnavailable
from calendar_copilot.storage import StoreError


logger = logging.getLogger(__name__)

NO_CHANGES_MESSAGE = "No changes were proposed."


class EditFailed(RuntimeError):
    def __init__(self, stage: str, message: str) -> None:
        self.stage = stage
        super().__init__(message)


@dataclass
class EditOutcome:
    plan: Plan
    apply_result: ApplyResult

    def to_dict(self) -> dict[str, Any]:
        return {"plan": self.plan.to_dict(), "applyResult": self.apply_result.to_dict()}


class EditOrchestrator:
    def __init__(self, store: EventStore, planner: CalendarPlanner, sink: LogStore | None = None) -> None:
        self.store = store
        self.planner = planner
        self.applier = OperationApplier(store, sink=sink)

    def edit_by_prompt(self, user_id: str, prompt: str, *, focus_date: str | None = None) -> EditOutcome:
        if not str(prompt or "").strip():
            raise ValueError("prompt must not be empty")

        events = self.store.list(user_id)
        try:
            plan = self.planner.plan_edits(prompt, events, focus_date=focus_date)
        except PlanUnavailable as exc:
            raise EditFailed("planner", str(exc)) from exc
        except requests.RequestException as exc:
            logger.warning("Model call failed for user %s: %s", user_id, exc)
            raise EditFailed("planner", f"The AI model is unavailable: {type(exc).__name__}") from exc

        if not plan.operations:
            return EditOutcome(plan=plan, apply_result=ApplyResult(events=events, message=NO_CHANGES_MESSAGE))

        try:
            apply_result = self.applier.apply(user_id, plan.operations)
        except StoreError as exc:
            logger.error("Applying AI edits failed for user %s: %s", user_id, exc)
            raise EditFailed("apply", "The proposed changes could not be saved.") from exc
        return EditOutcome(plan=plan, apply_result=apply_result)
