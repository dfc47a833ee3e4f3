"""Success flag file shared with the instruction pane's display loop.

Existence of the file is the signal; its one line of content is advisory.
The producer (status watcher) only ever creates it, write-complete before it
becomes visible. The consumer polls for it and deletes it after reading.
"""
from __future__ import annotations

from pathlib import Path

from ..util.fs import atomic_write_text, remove_quiet

SIGNAL_TEXT = "SUCCESS"


class ArtifactIOError(OSError):
    """A rendezvous artifact could not be written."""


def write_signal(path: Path, text: str = SIGNAL_TEXT) -> None:
    try:
        atomic_write_text(path, (text or SIGNAL_TEXT).strip() + "\n")
    except OSError as e:
        raise ArtifactIOError(f"cannot write signal artifact {path}: {e}") from e


def signal_present(path: Path) -> bool:
    return path.exists()


def consume_signal(path: Path) -> bool:
    """Consumer side: delete the flag if present; True when a signal was taken."""
    return remove_quiet(path)


def remove_artifact(path: Path) -> bool:
    return remove_quiet(path)
