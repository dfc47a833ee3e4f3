"""JSONL diagnostics for a process that shares its terminal with tmux.

Nothing may be written to stdout/stderr while a client is attached, so the
root logger gets exactly one append-only file handler and no stream handlers.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

CORRELATION_KEYS = ("session", "pane", "op", "state")

_active_path: Optional[Path] = None


def _record_ts(record: logging.LogRecord) -> str:
    created = float(getattr(record, "created", 0.0) or 0.0)
    return datetime.fromtimestamp(created, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class JsonlFormatter(logging.Formatter):
    """One JSON object per line; correlation fields come from `extra={...}`."""

    def __init__(self, *, component: str):
        super().__init__()
        self.component = (component or "").strip() or "lessonpane"

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _record_ts(record),
            "level": record.levelname,
            "logger": record.name,
            "component": self.component,
            "msg": record.getMessage(),
        }
        for key in CORRELATION_KEYS:
            value = str(getattr(record, key, "") or "").strip()
            if value:
                payload[key] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def level_from_name(name: str, default: int = logging.DEBUG) -> int:
    value = getattr(logging, (name or "").strip().upper(), None)
    return value if isinstance(value, int) else default


def setup_file_logging(
    *,
    component: str,
    path: Path,
    level: str = "DEBUG",
    force: bool = False,
) -> logging.Handler:
    """Send all logging to `path` (appending), replacing every root handler.

    Repeated calls for the same path only adjust the level unless `force` is set.
    """
    global _active_path
    root = logging.getLogger()
    lvl = level_from_name(level)
    root.setLevel(lvl)

    path = Path(path)
    if not force and _active_path == path:
        for h in root.handlers:
            if isinstance(h, logging.FileHandler) and isinstance(h.formatter, JsonlFormatter):
                h.setLevel(lvl)
                return h

    for h in list(root.handlers):
        root.removeHandler(h)
        if isinstance(h, logging.FileHandler):
            h.close()

    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(str(path), mode="a", encoding="utf-8")
    handler.setLevel(lvl)
    handler.setFormatter(JsonlFormatter(component=component))
    root.addHandler(handler)
    _active_path = path
    return handler
