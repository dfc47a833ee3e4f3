from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional


def atomic_write_text(path: Path, text: str, *, encoding: str = "utf-8") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=path.name + ".", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    finally:
        try:
            if os.path.exists(tmp):
                os.unlink(tmp)
        except Exception:
            pass


def read_text_quiet(path: Path, *, encoding: str = "utf-8") -> Optional[str]:
    """Read a file written by another process; None when it is absent or unreadable."""
    try:
        return path.read_text(encoding=encoding, errors="replace")
    except OSError:
        return None


def remove_quiet(path: Path) -> bool:
    """Remove a file if present. Returns True when a file was removed."""
    try:
        path.unlink()
        return True
    except OSError:
        return False
