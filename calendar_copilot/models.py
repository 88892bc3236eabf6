from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Mapping


DEFAULT_EVENT_TYPE = "meeting"
EVENT_FIELDS = ("title", "date", "time", "type")
STORAGE_BACKENDS = {"json", "sqlite"}


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass
class ModelConfig:
    base_url: str = "http://localhost:11434"
    model: str = "llama3.2:1b"
    temperature: float = 0.3
    num_gpu: int | None = None
    timeout_seconds: int = 90

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ModelConfig":
        data = data or {}
        raw_num_gpu = data.get("num_gpu")
        num_gpu = None
        if raw_num_gpu not in (None, ""):
            num_gpu = _as_int(raw_num_gpu, -1)
            if num_gpu < 0:
                num_gpu = None
        return cls(
            base_url=str(data.get("base_url", "http://localhost:11434")).strip() or "http://localhost:11434",
            model=str(data.get("model", "llama3.2:1b")).strip() or "llama3.2:1b",
            temperature=_clamp(_as_float(data.get("temperature", 0.3), 0.3), 0.0, 1.0),
            num_gpu=num_gpu,
            timeout_seconds=max(1, _as_int(data.get("timeout_seconds", 90), 90)),
        )


@dataclass
class StorageConfig:
    backend: str = "json"
    json_dir: str = "data/events"
    sqlite_path: str = "data/calendar.db"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "StorageConfig":
        data = data or {}
        backend = str(data.get("backend", "json")).strip().lower()
        if backend not in STORAGE_BACKENDS:
            backend = "json"
        return cls(
            backend=backend,
            json_dir=str(data.get("json_dir", "data/events")).strip() or "data/events",
            sqlite_path=str(data.get("sqlite_path", "data/calendar.db")).strip() or "data/calendar.db",
        )


@dataclass
class DiagnosticsConfig:
    capacity: int = 500

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "DiagnosticsConfig":
        data = data or {}
        return cls(capacity=max(1, _as_int(data.get("capacity", 500), 500)))


@dataclass
class AppConfig:
    model: ModelConfig = field(default_factory=ModelConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)
    upcoming_limit: int = 5

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AppConfig":
        data = data or {}
        return cls(
            model=ModelConfig.from_dict(data.get("model")),
            storage=StorageConfig.from_dict(data.get("storage")),
            diagnostics=DiagnosticsConfig.from_dict(data.get("diagnostics")),
            upcoming_limit=max(1, _as_int(data.get("upcoming_limit", 5), 5)),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# Environment variable -> (section, key). Environment wins over the config file.
ENV_OVERRIDES = {
    "OLLAMA_BASE_URL": ("model", "base_url"),
    "CALENDAR_COPILOT_MODEL": ("model", "model"),
    "CALENDAR_COPILOT_TEMPERATURE": ("model", "temperature"),
    "CALENDAR_COPILOT_NUM_GPU": ("model", "num_gpu"),
    "CALENDAR_COPILOT_TIMEOUT": ("model", "timeout_seconds"),
    "CALENDAR_COPILOT_STORAGE": ("storage", "backend"),
}


def apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    environ = os.environ if environ is None else environ
    merged = {key: dict(value) if isinstance(value, dict) else value for key, value in data.items()}
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None or not value.strip():
            continue
        target = merged.get(section)
        if not isinstance(target, dict):
            target = {}
            merged[section] = target
        target[key] = value.strip()
    return merged


def default_app_config() -> AppConfig:
    return AppConfig()


@dataclass
class Event:
    id: int
    title: str
    date: str
    time: str
    type: str = DEFAULT_EVENT_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Event":
        return cls(
            id=int(data["id"]),
            title=str(data.get("title", "")),
            date=str(data.get("date", "")),
            time=str(data.get("time", "")),
            type=str(data.get("type") or DEFAULT_EVENT_TYPE),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def clone(self) -> "Event":
        return Event(id=self.id, title=self.title, date=self.date, time=self.time, type=self.type)

    @property
    def sort_key(self) -> tuple[str, str]:
        return (self.date, self.time)


def sort_events(events: Iterable[Event]) -> list[Event]:
    # ISO dates and zero-padded HH:MM order correctly as plain strings.
    return sorted(events, key=lambda event: event.sort_key)


@dataclass
class OperationResult:
    index: int
    status: str
    event: Event | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"index": self.index, "status": self.status}
        if self.event is not None:
            payload["event"] = self.event.to_dict()
        if self.reason is not None:
            payload["reason"] = self.reason
        return payload


@dataclass
class ApplyResult:
    events: list[Event]
    results: list[OperationResult] = field(default_factory=list)
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "events": [event.to_dict() for event in self.events],
            "results": [result.to_dict() for result in self.results],
        }
        if self.message is not None:
            payload["message"] = self.message
        return payload
