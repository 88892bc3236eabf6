from __future__ import annotations

import os
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from calendar_copilot.ai_client import OllamaChatClient
from calendar_copilot.config_manager import ConfigManager
from calendar_copilot.event_store import EventStore
from calendar_copilot.log_store import LogStore
from calendar_copilot.orchestrator import EditFailed, EditOrchestrator
from calendar_copilot.plan_schema import DATE_PATTERN, TIME_PATTERN
from calendar_copilot.planner import CalendarPlanner
from calendar_copilot.storage import build_backend


class ConfigUpdateRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)


class EventCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    date: str = Field(pattern=DATE_PATTERN)
    time: str = Field(pattern=TIME_PATTERN)
    type: Optional[str] = Field(default=None, min_length=1, max_length=50)


class EventUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    type: Optional[str] = Field(default=None, min_length=1, max_length=50)


class AIEditRequest(BaseModel):
    prompt: str = Field(min_length=1, max_length=2000)
    focusDate: Optional[str] = Field(default=None, pattern=DATE_PATTERN)


class AppContext:
    def __init__(self, config_path: str) -> None:
        self.config_manager = ConfigManager(config_path)
        config = self.config_manager.load()
        self.log_store = LogStore(config.diagnostics.capacity)
        self.event_store = EventStore(build_backend(config.storage))

    def orchestrator(self) -> EditOrchestrator:
        # Built per request so model settings changed through /api/config apply immediately.
        client = OllamaChatClient(self.config_manager.load().model)
        planner = CalendarPlanner(client, sink=self.log_store)
        return EditOrchestrator(self.event_store, planner, sink=self.log_store)


def current_user(x_user_id: str = Header(default="")) -> str:
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="authentication required")
    return user_id


def create_app() -> FastAPI:
    config_path = os.getenv("CALENDAR_COPILOT_CONFIG_PATH", "config.yaml")
    context = AppContext(config_path=config_path)

    app = FastAPI(title="Calendar Copilot", version="0.1.0")
    app.state.context = context

    @app.exception_handler(EditFailed)
    async def _edit_failed(_request: Request, exc: EditFailed) -> JSONResponse:
        status_code = 502 if exc.stage == "planner" else 500
        return JSONResponse(status_code=status_code, content={"message": str(exc), "stage": exc.stage})

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/config")
    def get_config() -> dict[str, Any]:
        return app.state.context.config_manager.load().to_dict()

    @app.put("/api/config")
    def put_config(request: ConfigUpdateRequest) -> dict[str, Any]:
        updated = app.state.context.config_manager.update(request.payload)
        return {"message": "config updated", "config": updated.to_dict()}

    @app.get("/api/events")
    def list_events(date: str | None = None, user_id: str = Depends(current_user)) -> dict[str, Any]:
        store = app.state.context.event_store
        events = store.list_by_date(user_id, date) if date else store.list(user_id)
        return {"events": [event.to_dict() for event in events]}

    @app.get("/api/events/upcoming")
    def upcoming_events(limit: int | None = None, user_id: str = Depends(current_user)) -> dict[str, Any]:
        if limit is None or limit <= 0:
            limit = app.state.context.config_manager.load().upcoming_limit
        events = app.state.context.event_store.list_upcoming(user_id, limit)
        return {"events": [event.to_dict() for event in events]}

    @app.get("/api/events/{event_id}")
    def get_event(event_id: int, user_id: str = Depends(current_user)) -> dict[str, Any]:
        event = app.state.context.event_store.get(user_id, event_id)
        if event is None:
            raise HTTPException(status_code=404, detail="event not found")
        return {"event": event.to_dict()}

    @app.post("/api/events", status_code=201)
    def create_event(request: EventCreateRequest, user_id: str = Depends(current_user)) -> dict[str, Any]:
        event = app.state.context.event_store.create(user_id, request.model_dump(exclude_none=True))
        return {"event": event.to_dict()}

    @app.put("/api/events/{event_id}")
    def update_event(
        event_id: int,
        request: EventUpdateRequest,
        user_id: str = Depends(current_user),
    ) -> dict[str, Any]:
        patch = request.model_dump(exclude_none=True)
        if not patch:
            raise HTTPException(status_code=400, detail="no fields to update")
        event = app.state.context.event_store.update(user_id, event_id, patch)
        if event is None:
            raise HTTPException(status_code=404, detail="event not found")
        return {"event": event.to_dict()}

    @app.delete("/api/events/{event_id}")
    def delete_event(event_id: int, user_id: str = Depends(current_user)) -> dict[str, Any]:
        event = app.state.context.event_store.delete(user_id, event_id)
        if event is None:
            raise HTTPException(status_code=404, detail="event not found")
        return {"event": event.to_dict()}

    @app.post("/api/ai/edit")
    def ai_edit(request: AIEditRequest, user_id: str = Depends(current_user)) -> dict[str, Any]:
        if not request.prompt.strip():
            raise HTTPException(status_code=400, detail="prompt must not be empty")
        outcome = app.state.context.orchestrator().edit_by_prompt(
            user_id,
            request.prompt,
            focus_date=request.focusDate,
        )
        return outcome.to_dict()

    @app.post("/api/ai/test")
    def test_ai_connectivity() -> dict[str, Any]:
        client = OllamaChatClient(app.state.context.config_manager.load().model)
        ok, message = client.test_connectivity()
        models = client.list_models() if ok else []
        return {"ok": ok, "message": message, "models": models}

    @app.get("/api/logs")
    def diagnostic_logs(since_id: int = 0) -> dict[str, Any]:
        return {"logs": app.state.context.log_store.entries(since_id=since_id)}

    return app

