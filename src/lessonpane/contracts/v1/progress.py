from __future__ import annotations

from typing import Annotated, Literal, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveInt

EditorMode = Literal[
    "normal",
    "insert",
    "visual",
    "visual_line",
    "visual_block",
    "operator_pending",
    "command",
    "replace",
]


class EditorState(BaseModel):
    """What the editor last reported: 1-based cursor position and mode name."""

    row: int = Field(ge=1)
    col: int = Field(ge=1)
    mode: str = ""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def position(self) -> Tuple[int, int]:
        return (self.row, self.col)


class PositionGoal(BaseModel):
    # Positions in goals are 1-based, as the editor reports them.
    goal_type: Literal["position"] = "position"
    target: Tuple[PositiveInt, PositiveInt]
    description: str = ""
    hint: str = ""

    model_config = ConfigDict(frozen=True, extra="ignore")

    def matches(self, state: EditorState) -> bool:
        return state.position() == tuple(self.target)

    def describe(self) -> str:
        return self.description or f"Move the cursor to line {self.target[0]}, column {self.target[1]}."


class ModeGoal(BaseModel):
    goal_type: Literal["mode"] = "mode"
    target: EditorMode
    description: str = ""
    hint: str = ""

    model_config = ConfigDict(frozen=True, extra="ignore")

    def matches(self, state: EditorState) -> bool:
        return state.mode == self.target

    def describe(self) -> str:
        return self.description or f"Switch to {self.target.replace('_', ' ')} mode."


AnyGoal = Union[PositionGoal, ModeGoal]
Goal = Annotated[AnyGoal, Field(discriminator="goal_type")]


class ProgressTarget(BaseModel):
    """Cursor position a lesson step waits for (1-based, as the editor reports it)."""

    row: int = Field(ge=1)
    col: int = Field(ge=1)

    model_config = ConfigDict(frozen=True, extra="forbid")

    def as_tuple(self) -> Tuple[int, int]:
        return (self.row, self.col)

    def matches(self, position: Tuple[int, int]) -> bool:
        # Exact match only; near misses do not count.
        return (self.row, self.col) == tuple(position)

    def as_goal(self) -> PositionGoal:
        return PositionGoal(target=(self.row, self.col), description=f"Reach line {self.row}, column {self.col}.")

    def __str__(self) -> str:
        return f"{self.row},{self.col}"
