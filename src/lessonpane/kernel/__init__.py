from __future__ import annotations

from .lifecycle import EXIT_CODES, LessonOutcome, LessonSession, PaneCommands, SessionState
from .settings import ArtifactPaths, EngineSettings, load_settings
from .signal_channel import ArtifactIOError
from .watcher import StatusWatcher

__all__ = [
    "ArtifactIOError",
    "ArtifactPaths",
    "EXIT_CODES",
    "EngineSettings",
    "LessonOutcome",
    "LessonSession",
    "PaneCommands",
    "SessionState",
    "StatusWatcher",
    "load_settings",
]
