from __future__ import annotations

import json
import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any


DEFAULT_CAPACITY = 500

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

logger = logging.getLogger("calendar_copilot.diagnostics")


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, indent=2)
    except (TypeError, ValueError) as exc:
        return f"Unserializable value: {exc}"


class LogStore:
    """In-memory diagnostic ring buffer, tailed by id."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self.capacity = max(1, int(capacity))
        self._entries: deque[dict[str, Any]] = deque(maxlen=self.capacity)
        self._next_id = 1
        self._lock = threading.Lock()

    def record(
        self,
        *,
        source: str,
        message: str,
        level: str = "info",
        detail: Any = None,
    ) -> dict[str, Any]:
        with self._lock:
            entry = {
                "id": self._next_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "source": source,
                "level": level,
                "message": message,
                "detail": _stringify(detail) if detail else "",
            }
            self._next_id += 1
            self._entries.append(entry)
        logger.log(_LEVELS.get(level.lower(), logging.INFO), "[%s] %s", source, message)
        return dict(entry)

    def entries(self, since_id: int = 0) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(entry) for entry in self._entries if entry["id"] > since_id]
