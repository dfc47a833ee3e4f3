from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml  # type: ignore

from ..contracts.v1.lesson import Chapter
from ..util.fs import atomic_write_text


class LessonLoadError(ValueError):
    """A chapter file could not be read into the lesson models."""


def load_chapter(path: Path) -> Chapter:
    try:
        doc = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise LessonLoadError(f"cannot read chapter {path}: {e}") from e
    if not isinstance(doc, dict):
        raise LessonLoadError(f"chapter {path} is not a mapping")
    try:
        return Chapter.model_validate(doc)
    except Exception as e:
        raise LessonLoadError(f"chapter {path}: {e}") from e


def sample_chapter_doc() -> Dict[str, Any]:
    return {
        "chapter": {
            "number": 1,
            "title": "Basic motion",
            "description": "Move the cursor with h, j, k and l.",
        },
        "exercises": [
            {
                "title": "hjkl",
                "description": "Reach each target with the home-row motion keys.",
                "sample_code": ["let x = 10;", "let y = 20;", "let z = 30;"],
                "steps": [
                    {
                        "instruction": "Move right three characters.",
                        "explanation": "l moves one character to the right.",
                        "expected_input": "lll",
                        "cursor_start": [0, 0],
                        "cursor_end": [0, 3],
                    },
                    {
                        "instruction": "Move down one line.",
                        "explanation": "j keeps the column while moving down.",
                        "expected_input": "j",
                        "cursor_start": [0, 3],
                        "cursor_end": [1, 3],
                    },
                    {
                        "instruction": "Go back to the start of the line.",
                        "explanation": "h moves one character to the left.",
                        "expected_input": "hhh",
                        "cursor_start": [1, 3],
                        "cursor_end": [1, 0],
                    },
                ],
            },
            {
                "title": "Into insert mode and back",
                "description": "Reach the goals in order; the top pane follows along.",
                "sample_code": ["let x = 10;", "let y = 20;", "let z = 30;"],
                # Goal positions are 1-based, as the editor reports them.
                "goals": [
                    {
                        "goal_type": "position",
                        "target": [2, 5],
                        "description": "Put the cursor on the y in line 2.",
                        "hint": "j then w",
                    },
                    {"goal_type": "mode", "target": "insert", "description": "Enter insert mode.", "hint": "i"},
                    {"goal_type": "mode", "target": "normal", "description": "Leave insert mode.", "hint": "Esc"},
                ],
            },
        ],
    }


def write_sample_chapter(path: Path) -> Path:
    p = Path(path)
    atomic_write_text(p, yaml.safe_dump(sample_chapter_doc(), allow_unicode=True, sort_keys=False))
    return p
