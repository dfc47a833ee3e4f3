from __future__ import annotations

import os
import tempfile
from pathlib import Path


def lessonpane_home() -> Path:
    env = os.environ.get("LESSONPANE_HOME", "").strip()
    if env:
        return Path(env).expanduser().resolve()
    return (Path.home() / ".lessonpane").resolve()


def ensure_home() -> Path:
    home = lessonpane_home()
    home.mkdir(parents=True, exist_ok=True)
    return home


def runtime_dir() -> Path:
    """Directory for the rendezvous artifacts shared with the pane processes."""
    return Path(tempfile.gettempdir())
