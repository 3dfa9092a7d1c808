from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

GLOBAL_CONFIG = Path.home() / ".sibylx_config.json"

DEFAULT_REST_URL = "http://localhost:8082"
DEFAULT_TODO_FILE_NAME = "todo.txt"
DEFAULT_DEBOUNCE_MS = 250
DEFAULT_REQUEST_TIMEOUT = 10.0


@dataclass(frozen=True)
class SibylConfig:
    """Read-only snapshot of the settings the annotation engine consumes."""

    rest_url: str = DEFAULT_REST_URL
    todo_file_name: str = DEFAULT_TODO_FILE_NAME
    ticket_pattern: str = ""
    ticket_url: str = ""
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    def is_todo_file(self, file_name: Optional[str]) -> bool:
        """Return True if ``file_name`` ends with the configured todo file name."""
        if not file_name or not self.todo_file_name:
            return False
        return str(file_name).endswith(self.todo_file_name)


def init_settings() -> None:
    GLOBAL_CONFIG.parent.mkdir(parents=True, exist_ok=True)


def _read_global_config() -> dict:
    """Return the parsed global config, or an empty dict on error/missing."""
    if not GLOBAL_CONFIG.exists():
        return {}
    try:
        payload = json.loads(GLOBAL_CONFIG.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return {}
    return payload if isinstance(payload, dict) else {}


def _update_global_config(updates: dict) -> None:
    payload = _read_global_config()
    payload.update(updates)
    init_settings()
    GLOBAL_CONFIG.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def _env_override(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def load_rest_url() -> str:
    """Base URL of the analysis service (env SIBYLX_REST_URL wins over the file)."""
    override = _env_override("SIBYLX_REST_URL")
    if override:
        return override.rstrip("/")
    value = _read_global_config().get("rest_url")
    if isinstance(value, str) and value.strip():
        return value.strip().rstrip("/")
    return DEFAULT_REST_URL


def save_rest_url(url: str) -> None:
    _update_global_config({"rest_url": url.strip().rstrip("/")})


def load_todo_file_name() -> str:
    override = _env_override("SIBYLX_TODO_FILE")
    if override:
        return override
    value = _read_global_config().get("todo_file_name")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return DEFAULT_TODO_FILE_NAME


def save_todo_file_name(name: str) -> None:
    _update_global_config({"todo_file_name": name.strip()})


def load_ticket_pattern() -> str:
    value = _read_global_config().get("ticket_pattern")
    return value if isinstance(value, str) else ""


def load_ticket_url() -> str:
    value = _read_global_config().get("ticket_url")
    return value if isinstance(value, str) else ""


def save_ticket_link(pattern: str, url: str) -> None:
    """Save the ticket link definition (pattern and URL template containing $1)."""
    _update_global_config({"ticket_pattern": pattern, "ticket_url": url})


def load_debounce_ms(default: int = DEFAULT_DEBOUNCE_MS) -> int:
    value = _read_global_config().get("debounce_ms")
    try:
        ms = int(value)
    except (TypeError, ValueError):
        return default
    return max(0, ms)


def save_debounce_ms(ms: int) -> None:
    _update_global_config({"debounce_ms": max(0, int(ms))})


def load_request_timeout(default: float = DEFAULT_REQUEST_TIMEOUT) -> float:
    value = _read_global_config().get("request_timeout")
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        return default
    return timeout if timeout > 0 else default


def load_last_file() -> Optional[str]:
    last = _read_global_config().get("last_file")
    return last if isinstance(last, str) else None


def save_last_file(path: str) -> None:
    _update_global_config({"last_file": path})


def load_sibyl_config() -> SibylConfig:
    return SibylConfig(
        rest_url=load_rest_url(),
        todo_file_name=load_todo_file_name(),
        ticket_pattern=load_ticket_pattern(),
        ticket_url=load_ticket_url(),
        debounce_ms=load_debounce_ms(),
        request_timeout=load_request_timeout(),
    )
