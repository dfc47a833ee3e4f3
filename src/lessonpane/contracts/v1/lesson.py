from __future__ import annotations

from typing import List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, NonNegativeInt

from .progress import Goal, ProgressTarget


class LessonStep(BaseModel):
    instruction: str
    explanation: str = ""
    expected_input: str = ""
    # Positions in lesson files are 0-based (row, col).
    cursor_start: Optional[Tuple[NonNegativeInt, NonNegativeInt]] = None
    cursor_end: Optional[Tuple[NonNegativeInt, NonNegativeInt]] = None

    model_config = ConfigDict(extra="ignore")

    def target(self) -> Optional[ProgressTarget]:
        if self.cursor_end is None:
            return None
        row, col = self.cursor_end
        return ProgressTarget(row=int(row) + 1, col=int(col) + 1)

    def start_position(self) -> Tuple[int, int]:
        if self.cursor_start is None:
            return (1, 1)
        row, col = self.cursor_start
        return (int(row) + 1, int(col) + 1)


class Exercise(BaseModel):
    """One practice buffer with either separate steps or an ordered goal sequence."""

    title: str
    description: str = ""
    sample_code: List[str] = Field(default_factory=list)
    steps: List[LessonStep] = Field(default_factory=list)
    goals: List[Goal] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class ChapterInfo(BaseModel):
    number: int
    title: str
    description: str = ""

    model_config = ConfigDict(extra="ignore")


class Chapter(BaseModel):
    chapter: ChapterInfo
    exercises: List[Exercise] = Field(
        default_factory=list,
        validation_alias=AliasChoices("exercises", "continuous_exercises"),
    )

    model_config = ConfigDict(extra="ignore")
