"""Commands and scripts run inside the two panes.

The instruction pane gets a small shell loop that prints the step and polls
for the signal artifact; on finding it, it switches to a success block and
deletes the artifact. The interactive pane runs the editor with an
instrumentation script that rewrites the status artifact on every cursor or
mode change. Both ends receive the artifact paths explicitly.
"""
from __future__ import annotations

import shlex
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..contracts.v1.lesson import Exercise, LessonStep
from ..contracts.v1.progress import ProgressTarget
from ..util.fs import atomic_write_text


@dataclass(frozen=True)
class StepFiles:
    workdir: Path
    sample: Path
    script: Path


def _printf_lines(lines: List[str]) -> str:
    return "printf '%s\\n' " + " ".join(shlex.quote(ln) for ln in lines)


def instruction_lines(step: LessonStep, target: Optional[ProgressTarget], *, title: str = "") -> List[str]:
    lines = [f"=== {title} ===" if title else "=== Goal ===", step.instruction]
    if step.explanation:
        lines.append(f"Why: {step.explanation}")
    if step.expected_input:
        lines.append(f"Keys: {step.expected_input}")
    lines.append("")
    if target is not None:
        lines.append(f"Target: line {target.row}, column {target.col}")
    lines.append("Work in the editor below.")
    return lines


def _display_loop(lines: List[str], *, signal_path: Path, poll_interval_s: float) -> str:
    header = _printf_lines(lines)
    success = _printf_lines(["", "=== Success! ===", "Target reached. Wrapping up this step..."])
    flag = shlex.quote(str(signal_path))
    script = (
        f"clear; {header}; "
        f"while true; do "
        f"if [ -f {flag} ]; then clear; {header}; {success}; rm -f {flag}; break; fi; "
        f"sleep {poll_interval_s:g}; "
        f"done"
    )
    return "bash -c " + shlex.quote(script)


def instruction_command(
    step: LessonStep,
    target: Optional[ProgressTarget],
    *,
    signal_path: Path,
    title: str = "",
    poll_interval_s: float = 0.2,
) -> str:
    """Shell loop for the instruction pane: show the step, wait for the signal, show success."""
    return _display_loop(
        instruction_lines(step, target, title=title), signal_path=signal_path, poll_interval_s=poll_interval_s
    )


def goal_lines(exercise: Exercise, index: int, *, title: str = "") -> List[str]:
    goals = exercise.goals
    goal = goals[index]
    lines = [f"=== {title or exercise.title} ==="]
    if exercise.description:
        lines.append(exercise.description)
    lines.extend(["", f"=== Goal {index + 1}/{len(goals)} ===", goal.describe()])
    if goal.hint:
        lines.append(f"Hint: {goal.hint}")
    lines.extend(["", "Work in the editor below."])
    return lines


def goal_instruction_command(
    exercise: Exercise,
    index: int,
    *,
    signal_path: Path,
    title: str = "",
    poll_interval_s: float = 0.2,
) -> str:
    """Instruction pane loop for goal `index` of a goal sequence.

    Every screen waits for the signal, which only appears after the last goal.
    """
    return _display_loop(
        goal_lines(exercise, index, title=title), signal_path=signal_path, poll_interval_s=poll_interval_s
    )


def _vim_string(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def editor_script(status_path: Path, start: tuple = (1, 1)) -> str:
    """Vim script that mirrors cursor position and mode into the status artifact."""
    row, col = int(start[0]), int(start[1])
    return "\n".join(
        [
            "function! LessonpaneStatus()",
            "  let l:line = 'LINE:' . line('.') . ',COL:' . col('.') . ',MODE:' . mode(1)",
            f"  call writefile([l:line], {_vim_string(str(status_path))})",
            "endfunction",
            "augroup lessonpane",
            "  autocmd!",
            "  autocmd CursorMoved,CursorMovedI,InsertEnter,InsertLeave * call LessonpaneStatus()",
            "  if exists('##ModeChanged')",
            "    autocmd ModeChanged * call LessonpaneStatus()",
            "  endif",
            "augroup END",
            f"call cursor({row}, {col})",
            "call LessonpaneStatus()",
            "",
        ]
    )


def prepare_step_files(exercise: Exercise, step: Optional[LessonStep], *, status_path: Path) -> StepFiles:
    """Write the practice buffer and the instrumentation script into a fresh temp dir."""
    workdir = Path(tempfile.mkdtemp(prefix="lessonpane-"))
    sample = workdir / "practice.txt"
    script = workdir / "lessonpane.vim"
    start = step.start_position() if step is not None else (1, 1)
    atomic_write_text(sample, "\n".join(exercise.sample_code) + "\n")
    atomic_write_text(script, editor_script(status_path, start))
    return StepFiles(workdir=workdir, sample=sample, script=script)


def interactive_command(editor: str, files: StepFiles, *, tmux_socket: str = "", end_session: str = "") -> str:
    """Editor command for the interactive pane.

    Leaving the editor detaches the attached client. With `end_session` set
    (no client attached), it kills that session instead so the run notices.
    """
    after = ["tmux"]
    if tmux_socket:
        after.extend(["-L", tmux_socket])
    if end_session:
        after.extend(["kill-session", "-t", f"={end_session}"])
    else:
        after.append("detach-client")
    editor_argv = shlex.split(editor or "nvim") + ["-S", str(files.script), str(files.sample)]
    return " ".join(shlex.quote(a) for a in editor_argv) + "; " + " ".join(shlex.quote(a) for a in after)
