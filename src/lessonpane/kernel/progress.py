from __future__ import annotations

from typing import Optional, Tuple, get_args

from ..contracts.v1.progress import EditorMode, EditorState

MODE_NAMES = frozenset(get_args(EditorMode))

# First letter of vim's mode(1) output.
_MODE_BY_LETTER = {
    "n": "normal",
    "i": "insert",
    "v": "visual",
    "V": "visual_line",
    "\x16": "visual_block",
    "c": "command",
    "R": "replace",
}

_Raw = Tuple[int, int, str]


def normalize_mode(raw: str) -> str:
    """Map vim's mode(1) codes (or an already-named mode) to a mode name; "" when unknown."""
    m = (raw or "").strip()
    if not m:
        return ""
    if m in MODE_NAMES:
        return m
    if m.startswith("no"):
        return "operator_pending"
    return _MODE_BY_LETTER.get(m[0], "")


def _parse_tagged(line: str) -> Optional[_Raw]:
    row: Optional[int] = None
    col: Optional[int] = None
    mode = ""
    for part in line.split(","):
        key, sep, value = part.partition(":")
        if not sep:
            continue
        key = key.strip().upper()
        try:
            if key == "LINE":
                row = int(value.strip())
            elif key == "COL":
                col = int(value.strip())
            elif key == "MODE":
                mode = value
        except ValueError:
            return None
    if row is None or col is None:
        return None
    return (row, col, mode)


def _parse_plain(line: str) -> Optional[_Raw]:
    parts = line.split(",")
    if len(parts) != 2:
        return None
    try:
        return (int(parts[0].strip()), int(parts[1].strip()), "")
    except ValueError:
        return None


def parse_state(text: Optional[str]) -> Optional[EditorState]:
    """Extract cursor position and mode from status artifact text.

    Two line encodings are accepted: `row,col` and `LINE:row,COL:col[,MODE:m,...]`.
    The first line that looks like progress decides; empty, partial or garbled
    content yields None ("no progress yet"). The plain encoding carries no mode.
    """
    if not text:
        return None
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        parsed = _parse_tagged(line) if line.upper().startswith("LINE:") else _parse_plain(line)
        if parsed is None:
            return None
        row, col, mode = parsed
        if row < 1 or col < 1:
            return None
        return EditorState(row=row, col=col, mode=normalize_mode(mode))
    return None


def parse_progress(text: Optional[str]) -> Optional[Tuple[int, int]]:
    state = parse_state(text)
    return None if state is None else state.position()
