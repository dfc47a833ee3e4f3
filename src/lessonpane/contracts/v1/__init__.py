from __future__ import annotations

from .lesson import Chapter, ChapterInfo, Exercise, LessonStep
from .progress import AnyGoal, EditorState, Goal, ModeGoal, PositionGoal, ProgressTarget

__all__ = [
    "AnyGoal",
    "Chapter",
    "ChapterInfo",
    "EditorState",
    "Exercise",
    "Goal",
    "LessonStep",
    "ModeGoal",
    "PositionGoal",
    "ProgressTarget",
]
