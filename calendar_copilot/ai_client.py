from __future__ import annotations

import json
from typing import Any

import requests

from calendar_copilot.models import ModelConfig


def response_text(payload: Any) -> str:
    """Plain text of a chat response, or the whole payload serialised as a fallback."""
    if isinstance(payload, str):
        return payload
    if isinstance(payload, dict):
        message = payload.get("message")
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            return message["content"]
        if isinstance(payload.get("response"), str):
            return payload["response"]
        choices = payload.get("choices")
        if isinstance(choices, list) and choices:
            content = ((choices[0] or {}).get("message") or {}).get("content")
            if isinstance(content, str):
                return content
    try:
        return json.dumps(payload, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(payload)


class OllamaChatClient:
    def __init__(self, config: ModelConfig) -> None:
        self.config = config

    def is_configured(self) -> bool:
        return bool(self.config.base_url and self.config.model)

    def _base(self) -> str:
        base = self.config.base_url.rstrip("/")
        if base.endswith("/api/chat"):
            return base[: -len("/api/chat")]
        return base

    def _chat_endpoint(self) -> str:
        return f"{self._base()}/api/chat"

    def _tags_endpoint(self) -> str:
        return f"{self._base()}/api/tags"

    def _options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"temperature": self.config.temperature}
        if self.config.num_gpu is not None:
            options["num_gpu"] = self.config.num_gpu
        return options

    def request_payload(self, messages: list[dict[str, str]]) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": messages,
            "stream": False,
            "options": self._options(),
        }

    def chat(self, *, messages: list[dict[str, str]]) -> tuple[Any, str]:
        """Send ``messages`` and return the raw decoded response with its text."""
        response = requests.post(
            self._chat_endpoint(),
            headers={"Content-Type": "application/json"},
            json=self.request_payload(messages),
            timeout=self.config.timeout_seconds,
        )
        response.raise_for_status()
        try:
            payload: Any = response.json()
        except ValueError:
            payload = response.text
        return payload, response_text(payload)

    def test_connectivity(self) -> tuple[bool, str]:
        if not self.is_configured():
            return False, "Model config incomplete: base_url/model required."
        try:
            response = requests.post(
                self._chat_endpoint(),
                headers={"Content-Type": "application/json"},
                json={
                    "model": self.config.model,
                    "messages": [{"role": "user", "content": "Reply with: OK"}],
                    "stream": False,
                    "options": {"temperature": 0, "num_predict": 8},
                },
                timeout=self.config.timeout_seconds,
            )
            if not response.ok:
                return False, f"HTTP {response.status_code}: {response.text[:300]}"
            content_text = response_text(response.json()).strip().replace("\n", " ")
            return True, f"Connected. Model response: {content_text[:120]}"
        except (requests.RequestException, ValueError) as exc:
            return False, f"{type(exc).__name__}: {exc}"

    def list_models(self) -> list[str]:
        try:
            response = requests.get(self._tags_endpoint(), timeout=self.config.timeout_seconds)
            if not response.ok:
                return []
            payload = response.json()
        except (requests.RequestException, ValueError):
            return []
        raw_items = payload.get("models", []) if isinstance(payload, dict) else []
        names: list[str] = []
        for item in raw_items:
            name = str((item or {}).get("name", "")).strip()
            # keep stable order, remove duplicates
            if name and name not in names:
                names.append(name)
        return names
