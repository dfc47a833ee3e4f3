"""Engine settings.

Settings are stored in ~/.lessonpane/settings.yaml (or $LESSONPANE_HOME) and
include polling/timeout tuning plus the rendezvous points shared with the
pane processes. Environment variables override the file for the rendezvous
points so both ends of a run can be pointed at the same paths:

- LESSONPANE_SESSION, LESSONPANE_TMUX_SOCKET
- LESSONPANE_STATUS_FILE, LESSONPANE_SIGNAL_FILE, LESSONPANE_LOG_FILE
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml  # type: ignore

from ..paths import ensure_home, lessonpane_home, runtime_dir
from ..util.fs import atomic_write_text


@dataclass(frozen=True)
class ArtifactPaths:
    """Files shared between the controller and the pane processes."""
    status: Path
    signal: Path
    log: Path

    @classmethod
    def defaults(cls) -> "ArtifactPaths":
        base = runtime_dir()
        return cls(
            status=base / "lessonpane_status.txt",
            signal=base / "lessonpane_success.flag",
            log=base / "lessonpane_debug.log",
        )


@dataclass
class EngineSettings:
    poll_interval_s: float = 0.2
    tmux_timeout_s: float = 2.0
    session_name: str = ""
    session_prefix: str = "lessonpane"
    tmux_socket: str = ""
    instruction_height: int = 10
    max_step_seconds: float = 0.0
    linger_s: float = 2.0
    attach: bool = True
    editor: str = "nvim"
    log_level: str = "DEBUG"
    paths: ArtifactPaths = field(default_factory=ArtifactPaths.defaults)

    def resolved_session_name(self) -> str:
        name = (self.session_name or "").strip()
        if name:
            return name
        return f"{self.session_prefix or 'lessonpane'}-{os.getpid()}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "poll_interval_s": self.poll_interval_s,
            "tmux_timeout_s": self.tmux_timeout_s,
            "session_name": self.session_name,
            "session_prefix": self.session_prefix,
            "tmux_socket": self.tmux_socket,
            "instruction_height": self.instruction_height,
            "max_step_seconds": self.max_step_seconds,
            "linger_s": self.linger_s,
            "attach": self.attach,
            "editor": self.editor,
            "log_level": self.log_level,
            "status_file": str(self.paths.status),
            "signal_file": str(self.paths.signal),
            "log_file": str(self.paths.log),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "EngineSettings":
        base = cls()
        default_paths = base.paths

        def _path(key: str, fallback: Path) -> Path:
            raw = str(d.get(key) or "").strip()
            return Path(raw).expanduser() if raw else fallback

        def _float(key: str, fallback: float) -> float:
            try:
                v = float(d.get(key, fallback))
            except (TypeError, ValueError):
                return fallback
            return v if v >= 0 else fallback

        def _int(key: str, fallback: int) -> int:
            try:
                return int(d.get(key, fallback))
            except (TypeError, ValueError):
                return fallback

        interval = _float("poll_interval_s", base.poll_interval_s)
        return cls(
            poll_interval_s=interval if interval > 0 else base.poll_interval_s,
            tmux_timeout_s=_float("tmux_timeout_s", base.tmux_timeout_s) or base.tmux_timeout_s,
            session_name=str(d.get("session_name") or ""),
            session_prefix=str(d.get("session_prefix") or base.session_prefix),
            tmux_socket=str(d.get("tmux_socket") or ""),
            instruction_height=max(0, _int("instruction_height", base.instruction_height)),
            max_step_seconds=_float("max_step_seconds", base.max_step_seconds),
            linger_s=_float("linger_s", base.linger_s),
            attach=bool(d.get("attach", base.attach)),
            editor=str(d.get("editor") or base.editor),
            log_level=str(d.get("log_level") or base.log_level),
            paths=ArtifactPaths(
                status=_path("status_file", default_paths.status),
                signal=_path("signal_file", default_paths.signal),
                log=_path("log_file", default_paths.log),
            ),
        )

    def with_env(self, environ: Optional[Mapping[str, str]] = None) -> "EngineSettings":
        env = os.environ if environ is None else environ

        def _get(key: str) -> str:
            return str(env.get(key, "") or "").strip()

        out = self
        if _get("LESSONPANE_SESSION"):
            out = replace(out, session_name=_get("LESSONPANE_SESSION"))
        if _get("LESSONPANE_TMUX_SOCKET"):
            out = replace(out, tmux_socket=_get("LESSONPANE_TMUX_SOCKET"))
        paths = out.paths
        if _get("LESSONPANE_STATUS_FILE"):
            paths = replace(paths, status=Path(_get("LESSONPANE_STATUS_FILE")).expanduser())
        if _get("LESSONPANE_SIGNAL_FILE"):
            paths = replace(paths, signal=Path(_get("LESSONPANE_SIGNAL_FILE")).expanduser())
        if _get("LESSONPANE_LOG_FILE"):
            paths = replace(paths, log=Path(_get("LESSONPANE_LOG_FILE")).expanduser())
        return replace(out, paths=paths)


def _settings_path() -> Path:
    return lessonpane_home() / "settings.yaml"


def load_settings_doc() -> Dict[str, Any]:
    """Load the raw settings document from ~/.lessonpane/settings.yaml."""
    p = _settings_path()
    if not p.exists():
        return {}
    try:
        doc = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        return doc if isinstance(doc, dict) else {}
    except Exception:
        return {}


def save_settings(settings: EngineSettings) -> Path:
    """Save settings to ~/.lessonpane/settings.yaml."""
    ensure_home()
    p = _settings_path()
    atomic_write_text(p, yaml.safe_dump(settings.to_dict(), allow_unicode=True, sort_keys=False))
    return p


def load_settings(environ: Optional[Mapping[str, str]] = None) -> EngineSettings:
    return EngineSettings.from_dict(load_settings_doc()).with_env(environ)
