from __future__ import annotations

import argparse
import logging
import shutil
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Tuple

from . import __version__
from .contracts.v1 import Exercise, LessonStep, ProgressTarget
from .kernel.display import (
    StepFiles,
    goal_instruction_command,
    instruction_command,
    interactive_command,
    prepare_step_files,
)
from .kernel.lessons import LessonLoadError, load_chapter, write_sample_chapter
from .kernel.lifecycle import EXIT_CODES, LessonOutcome, LessonSession, PaneCommands
from .kernel.settings import EngineSettings, load_settings, save_settings
from .kernel.signal_channel import remove_artifact
from .runners.panes import PaneResolutionError
from .runners.tmux import DispatchError, TmuxDispatcher
from .util.obslog import setup_file_logging

logger = logging.getLogger(__name__)


def _err(msg: str) -> None:
    # Only called once no tmux client shares the terminal.
    print(f"lessonpane: {msg}", file=sys.stderr)


def _parse_target(raw: str) -> ProgressTarget:
    parts = [p.strip() for p in (raw or "").split(",")]
    if len(parts) != 2:
        raise argparse.ArgumentTypeError(f"target must be ROW,COL (1-based), got {raw!r}")
    try:
        return ProgressTarget(row=int(parts[0]), col=int(parts[1]))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid target {raw!r}: {e}") from e


def _settings_from_args(args: argparse.Namespace) -> EngineSettings:
    s = load_settings()
    paths = s.paths
    if getattr(args, "status_file", ""):
        paths = replace(paths, status=Path(args.status_file).expanduser())
    if getattr(args, "signal_file", ""):
        paths = replace(paths, signal=Path(args.signal_file).expanduser())
    if getattr(args, "log_file", ""):
        paths = replace(paths, log=Path(args.log_file).expanduser())
    s = replace(s, paths=paths)
    if getattr(args, "session", ""):
        s = replace(s, session_name=str(args.session))
    if getattr(args, "socket", ""):
        s = replace(s, tmux_socket=str(args.socket))
    if getattr(args, "max_seconds", None) is not None:
        s = replace(s, max_step_seconds=max(0.0, float(args.max_seconds)))
    if getattr(args, "no_attach", False):
        s = replace(s, attach=False)
    if getattr(args, "editor", ""):
        s = replace(s, editor=str(args.editor))
    return s


def _collect_steps(args: argparse.Namespace) -> List[Tuple[str, Exercise, Optional[LessonStep]]]:
    """Units to run in order; a None step means the exercise's goal sequence."""
    if args.chapter:
        chapter = load_chapter(Path(args.chapter))
        if not chapter.exercises:
            raise LessonLoadError(f"chapter {args.chapter} has no exercises")
        idx = int(args.exercise or 1) - 1
        if idx < 0 or idx >= len(chapter.exercises):
            raise LessonLoadError(f"exercise {args.exercise} out of range (1-{len(chapter.exercises)})")
        ex = chapter.exercises[idx]
        title = f"{chapter.chapter.title}: {ex.title}"
        if ex.goals and not args.step:
            return [(title, ex, None)]
        steps = list(ex.steps)
        if not steps:
            raise LessonLoadError(f"exercise {idx + 1} has no steps")
        if args.step:
            sidx = int(args.step) - 1
            if sidx < 0 or sidx >= len(steps):
                raise LessonLoadError(f"step {args.step} out of range (1-{len(steps)})")
            steps = [steps[sidx]]
        return [(title, ex, st) for st in steps]

    if args.target is None:
        raise LessonLoadError("either --chapter or --target is required")
    target: ProgressTarget = args.target
    step = LessonStep(
        instruction=args.instruction or f"Move the cursor to line {target.row}, column {target.col}.",
        cursor_end=(target.row - 1, target.col - 1),
    )
    ex = Exercise(title="practice", sample_code=[ln for ln in (args.text or "").split("\\n")])
    return [("Practice", ex, step)]


def _build_commands(
    settings: EngineSettings,
    title: str,
    exercise: Exercise,
    step: Optional[LessonStep],
    files: StepFiles,
    *,
    session_name: str,
) -> PaneCommands:
    signal_path = settings.paths.signal
    poll = settings.poll_interval_s
    if step is None:
        instruction = goal_instruction_command(
            exercise, 0, signal_path=signal_path, title=title, poll_interval_s=poll
        )
        updates = tuple(
            goal_instruction_command(exercise, i, signal_path=signal_path, title=title, poll_interval_s=poll)
            for i in range(1, len(exercise.goals))
        )
    else:
        instruction = instruction_command(
            step, step.target(), signal_path=signal_path, title=title, poll_interval_s=poll
        )
        updates = ()
    interactive = interactive_command(
        settings.editor,
        files,
        tmux_socket=settings.tmux_socket,
        end_session="" if settings.attach else session_name,
    )
    return PaneCommands(instruction=instruction, interactive=interactive, goal_updates=updates)


def _run_step(
    settings: EngineSettings, title: str, exercise: Exercise, step: Optional[LessonStep]
) -> LessonOutcome:
    target: Optional[ProgressTarget] = None
    if step is None:
        goals = list(exercise.goals)
    else:
        target = step.target()
        if target is None:
            logger.info("step without a cursor target skipped: %s", step.instruction)
            return LessonOutcome.COMPLETED
        goals = [target.as_goal()]

    settings = replace(settings, session_name=settings.resolved_session_name())
    files = prepare_step_files(exercise, step, status_path=settings.paths.status)
    try:
        commands = _build_commands(settings, title, exercise, step, files, session_name=settings.session_name)
        session = LessonSession.from_settings(settings, target=target, goals=goals, commands=commands)
        outcome = session.run()
        if session.teardown_error is not None:
            _err(f"cleanup incomplete: {session.teardown_error}")
            return LessonOutcome.FAILED
        return outcome
    finally:
        shutil.rmtree(files.workdir, ignore_errors=True)


def cmd_run(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    setup_file_logging(component="lessonpane", path=settings.paths.log, level=settings.log_level)
    try:
        steps = _collect_steps(args)
    except LessonLoadError as e:
        _err(str(e))
        return 2

    outcome = LessonOutcome.COMPLETED
    for n, (title, exercise, step) in enumerate(steps, start=1):
        logger.info("step %d/%d: %s", n, len(steps), step.instruction if step else f"{len(exercise.goals)} goals")
        try:
            outcome = _run_step(settings, title, exercise, step)
        except (DispatchError, PaneResolutionError) as e:
            logger.error("step %d failed to start: %s", n, e)
            _err(str(e))
            return EXIT_CODES[LessonOutcome.FAILED]
        if outcome is not LessonOutcome.COMPLETED:
            break
    if outcome is LessonOutcome.COMPLETED:
        print(f"Completed {len(steps)} step(s).")
    else:
        print(f"Stopped: {outcome.value}.")
    return EXIT_CODES[outcome]


def cmd_clean(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    setup_file_logging(component="lessonpane", path=settings.paths.log, level=settings.log_level)
    removed = [str(p) for p in (settings.paths.status, settings.paths.signal) if remove_artifact(p)]
    name = (settings.session_name or "").strip()
    if name:
        try:
            TmuxDispatcher(socket=settings.tmux_socket, timeout_s=settings.tmux_timeout_s).kill_session(name)
        except DispatchError as e:
            _err(str(e))
            return 1
    for p in removed:
        print(f"removed {p}")
    return 0


def cmd_sample(args: argparse.Namespace) -> int:
    p = write_sample_chapter(Path(args.output))
    print(f"wrote sample chapter: {p}")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    settings = load_settings()
    if args.save:
        p = save_settings(settings)
        print(f"saved {p}")
        return 0
    for k, v in settings.to_dict().items():
        print(f"{k}: {v}")
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    print(__version__)
    return 0


def _add_rendezvous_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--session", default="", help="tmux session name (default: lessonpane-<pid>)")
    p.add_argument("--socket", default="", help="tmux socket name for an isolated server (-L)")
    p.add_argument("--status-file", default="", help="Status artifact written by the editor")
    p.add_argument("--signal-file", default="", help="Success flag consumed by the instruction pane")
    p.add_argument("--log-file", default="", help="Diagnostic log path")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="lessonpane", description="Split-pane editor lessons in tmux")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_run = sub.add_parser("run", help="Run lesson steps in a split tmux session")
    p_run.add_argument("--chapter", default="", help="Chapter YAML file")
    p_run.add_argument("--exercise", type=int, default=1, help="Exercise number in the chapter (default: 1)")
    p_run.add_argument("--step", type=int, default=0, help="Run only this step (default: all steps)")
    p_run.add_argument("--target", type=_parse_target, default=None, help="Ad-hoc target ROW,COL (1-based)")
    p_run.add_argument("--instruction", default="", help="Instruction text for an ad-hoc target")
    p_run.add_argument("--text", default="", help="Practice buffer for an ad-hoc target (\\n separates lines)")
    p_run.add_argument("--editor", default="", help="Editor command (default from settings: nvim)")
    p_run.add_argument("--max-seconds", type=float, default=None, help="Per-step time limit (0 = none)")
    p_run.add_argument("--no-attach", action="store_true", help="Do not attach this terminal to the session")
    _add_rendezvous_args(p_run)
    p_run.set_defaults(func=cmd_run)

    p_clean = sub.add_parser("clean", help="Remove leftover artifacts (and --session, if given)")
    _add_rendezvous_args(p_clean)
    p_clean.set_defaults(func=cmd_clean)

    p_sample = sub.add_parser("sample", help="Write a sample chapter YAML")
    p_sample.add_argument("output", help="Output path")
    p_sample.set_defaults(func=cmd_sample)

    p_config = sub.add_parser("config", help="Show effective settings")
    p_config.add_argument("--save", action="store_true", help="Write them to settings.yaml")
    p_config.set_defaults(func=cmd_config)

    p_ver = sub.add_parser("version", help="Show version")
    p_ver.set_defaults(func=cmd_version)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
