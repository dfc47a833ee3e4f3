"""Lesson step session: tmux panes, status watcher and guaranteed teardown.

States move uninitialized -> active -> completing -> torn_down. A failure
during startup goes straight from uninitialized to torn_down. Teardown is a
one-shot operation: whichever path reaches `close()` first (normal
completion, an operator interrupt, a startup failure) runs it, and every
later call is a no-op.
"""
from __future__ import annotations

import logging
import signal
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..contracts.v1.progress import AnyGoal, ProgressTarget
from ..runners.panes import PaneRegistry, PaneResolutionError
from ..runners.tmux import DispatchError, TmuxDispatcher
from .settings import ArtifactPaths, EngineSettings
from .signal_channel import remove_artifact, signal_present
from .watcher import StatusWatcher

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    COMPLETING = "completing"
    TORN_DOWN = "torn_down"


class LessonOutcome(str, Enum):
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    ABANDONED = "abandoned"
    INTERRUPTED = "interrupted"
    FAILED = "failed"


EXIT_CODES: Dict[LessonOutcome, int] = {
    LessonOutcome.COMPLETED: 0,
    LessonOutcome.FAILED: 1,
    LessonOutcome.TIMED_OUT: 2,
    LessonOutcome.ABANDONED: 2,
    LessonOutcome.INTERRUPTED: 130,
}

_TRANSITIONS: Dict[SessionState, frozenset] = {
    SessionState.UNINITIALIZED: frozenset({SessionState.ACTIVE, SessionState.TORN_DOWN}),
    SessionState.ACTIVE: frozenset({SessionState.COMPLETING}),
    SessionState.COMPLETING: frozenset({SessionState.TORN_DOWN}),
    SessionState.TORN_DOWN: frozenset(),
}


class InvalidTransition(RuntimeError):
    pass


class LessonInterrupted(RuntimeError):
    """The operator aborted the step before it became active."""


@dataclass(frozen=True)
class PaneCommands:
    instruction: str
    interactive: str
    # goal_updates[i] replaces the instruction display once i + 1 goals are reached.
    goal_updates: Tuple[str, ...] = ()


class LessonSession:
    def __init__(
        self,
        *,
        session_name: str,
        commands: PaneCommands,
        paths: ArtifactPaths,
        dispatcher: TmuxDispatcher,
        target: Optional[ProgressTarget] = None,
        goals: Optional[Sequence[AnyGoal]] = None,
        poll_interval_s: float = 0.2,
        instruction_height: int = 10,
        max_step_seconds: float = 0.0,
        linger_s: float = 0.0,
        attach: bool = False,
        clock: Callable[[], float] = time.monotonic,
        popen: Callable[..., Any] = subprocess.Popen,
    ) -> None:
        if not (session_name or "").strip():
            raise ValueError("missing session name")
        self.name = session_name.strip()
        self.target = target
        if goals:
            self.goals: List[AnyGoal] = list(goals)
        elif target is not None:
            self.goals = [target.as_goal()]
        else:
            raise ValueError("missing target or goals")
        self.commands = commands
        self.paths = paths
        self._dispatcher = dispatcher
        self._registry = PaneRegistry(dispatcher)
        self._poll_interval_s = poll_interval_s if poll_interval_s > 0 else 0.2
        self._instruction_height = int(instruction_height or 0)
        self._max_step_seconds = float(max_step_seconds or 0.0)
        self._linger_s = float(linger_s or 0.0)
        self._attach = bool(attach)
        self._clock = clock
        self._popen = popen

        self._state = SessionState.UNINITIALIZED
        self._state_lock = threading.RLock()
        # Acquired once, never released: the teardown guard.
        self._teardown_guard = threading.Lock()
        self._teardown_thread: Optional[threading.Thread] = None
        self._torn_down = threading.Event()
        self._interrupted = threading.Event()
        self._wake = threading.Event()

        self._owns_session = False
        self._watcher: Optional[StatusWatcher] = None
        self._attach_proc: Optional[Any] = None
        self._started_at = 0.0
        self._consumed_at: Optional[float] = None
        self._goals_shown = 0
        self.outcome: Optional[LessonOutcome] = None
        self.teardown_error: Optional[BaseException] = None

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings,
        *,
        commands: PaneCommands,
        target: Optional[ProgressTarget] = None,
        goals: Optional[Sequence[AnyGoal]] = None,
        dispatcher: Optional[TmuxDispatcher] = None,
    ) -> "LessonSession":
        return cls(
            session_name=settings.resolved_session_name(),
            target=target,
            goals=goals,
            commands=commands,
            paths=settings.paths,
            dispatcher=dispatcher
            or TmuxDispatcher(socket=settings.tmux_socket, timeout_s=settings.tmux_timeout_s),
            poll_interval_s=settings.poll_interval_s,
            instruction_height=settings.instruction_height,
            max_step_seconds=settings.max_step_seconds,
            linger_s=settings.linger_s,
            attach=settings.attach,
        )

    @property
    def state(self) -> SessionState:
        with self._state_lock:
            return self._state

    @property
    def panes(self) -> PaneRegistry:
        return self._registry

    @property
    def watcher(self) -> Optional[StatusWatcher]:
        return self._watcher

    def _transition(self, new: SessionState) -> None:
        with self._state_lock:
            old = self._state
            if new not in _TRANSITIONS[old]:
                raise InvalidTransition(f"{old.value} -> {new.value}")
            self._state = new
        logger.info("state %s -> %s", old.value, new.value, extra={"session": self.name, "state": new.value})

    def _raise_if_interrupted(self) -> None:
        if self._interrupted.is_set():
            raise LessonInterrupted(f"session {self.name} interrupted during startup")

    def start(self) -> None:
        """Create the session and panes, launch both pane commands and the watcher."""
        if self.state is not SessionState.UNINITIALIZED:
            raise InvalidTransition(f"start() in state {self.state.value}")
        try:
            # Stale artifacts from an earlier run would fake progress or success.
            remove_artifact(self.paths.status)
            remove_artifact(self.paths.signal)
            self._raise_if_interrupted()

            try:
                self._dispatcher.create_session(self.name)
            except DispatchError as e:
                if e.kind != "already_exists":
                    self._owns_session = True
                raise
            self._owns_session = True
            self._raise_if_interrupted()

            created = self._dispatcher.split_pane(self.name)
            self._registry.resolve(self.name, created=created)
            instruction = self._registry.get("instruction")
            interactive = self._registry.get("interactive")

            if self._instruction_height > 0:
                try:
                    self._dispatcher.resize_pane(instruction, height=self._instruction_height)
                except DispatchError as e:
                    logger.warning("resize failed, keeping default layout: %s", e, extra={"pane": instruction})
            self._raise_if_interrupted()

            self._dispatcher.send_keys(instruction, self.commands.instruction, "Enter")
            self._dispatcher.send_keys(interactive, self.commands.interactive, "Enter")
            try:
                self._dispatcher.select_pane(interactive)
            except DispatchError as e:
                logger.warning("select-pane failed: %s", e, extra={"pane": interactive})

            self._watcher = StatusWatcher(
                status_path=self.paths.status,
                signal_path=self.paths.signal,
                goals=self.goals,
                interval_s=self._poll_interval_s,
                on_progress=self._on_watcher_progress,
                name=f"lessonpane-watcher:{self.name}",
            )
            self._watcher.start()
            self._started_at = self._clock()

            self._transition(SessionState.ACTIVE)
            self._raise_if_interrupted()

            if self._attach:
                self._attach_proc = self._popen(self._dispatcher.attach_argv(self.name))
        except BaseException as e:
            logger.error("startup failed: %s", e, extra={"session": self.name})
            self.close(reason="startup failed")
            raise

    def _session_ended(self) -> bool:
        proc = self._attach_proc
        if proc is not None:
            return proc.poll() is not None
        try:
            return not self._dispatcher.has_session(self.name)
        except DispatchError as e:
            logger.debug("has-session check failed: %s", e, extra={"session": self.name})
            return False

    def _on_watcher_progress(self, reached: int) -> None:
        # Watcher thread: only wake the control loop, which owns the panes.
        self._wake.set()

    def _show_goal_progress(self, watcher: StatusWatcher) -> None:
        """Switch the instruction pane to the next goal once the watcher moved on."""
        reached = watcher.goals_reached
        if reached <= self._goals_shown or reached >= len(self.goals):
            return
        self._goals_shown = reached
        updates = self.commands.goal_updates
        if reached > len(updates):
            return
        try:
            pane = self._registry.get("instruction")
            self._dispatcher.send_keys(pane, "", "C-c")
            self._dispatcher.send_keys(pane, updates[reached - 1], "Enter")
        except (DispatchError, PaneResolutionError) as e:
            logger.warning("instruction update failed: %s", e, extra={"session": self.name})
            return
        logger.info("showing goal %d/%d", reached + 1, len(self.goals), extra={"session": self.name})

    def _check_completion(self) -> Optional[LessonOutcome]:
        if self._interrupted.is_set():
            return LessonOutcome.INTERRUPTED
        if self.state is not SessionState.ACTIVE:
            return self.outcome or LessonOutcome.FAILED

        watcher = self._watcher
        if watcher is not None and watcher.error is not None:
            logger.error("success signal cannot be written: %s", watcher.error, extra={"session": self.name})
            return LessonOutcome.FAILED
        if watcher is not None:
            self._show_goal_progress(watcher)

        now = self._clock()
        if watcher is not None and watcher.triggered and not signal_present(self.paths.signal):
            if self._consumed_at is None:
                self._consumed_at = now
                logger.info("success signal consumed by display", extra={"session": self.name})
            if now - self._consumed_at >= self._linger_s:
                return LessonOutcome.COMPLETED

        if self._max_step_seconds > 0 and now - self._started_at >= self._max_step_seconds:
            logger.info("step time limit reached (%.0fs)", self._max_step_seconds, extra={"session": self.name})
            return LessonOutcome.TIMED_OUT

        if self._session_ended():
            if watcher is not None and watcher.triggered:
                return LessonOutcome.COMPLETED
            return LessonOutcome.ABANDONED
        return None

    def wait(self) -> LessonOutcome:
        """Block until the step completes, times out, is abandoned or interrupted."""
        while True:
            outcome = self._check_completion()
            if outcome is not None:
                break
            self._wake.wait(self._poll_interval_s)
            self._wake.clear()

        with self._state_lock:
            if self.outcome is None:
                self.outcome = outcome
            if self._state is SessionState.ACTIVE:
                self._transition(SessionState.COMPLETING)
        if outcome is LessonOutcome.INTERRUPTED:
            self._await_teardown()
        watcher = self._watcher
        logger.info(
            "step finished: %s (goals %d/%d, last state %s)",
            self.outcome.value,
            watcher.goals_reached if watcher is not None else 0,
            len(self.goals),
            watcher.last_state if watcher is not None else None,
            extra={"session": self.name},
        )
        return self.outcome

    def _await_teardown(self) -> None:
        """Block until a teardown started on another thread has finished."""
        if self._teardown_thread is threading.current_thread():
            return
        if not self._torn_down.wait(timeout=self._dispatcher.timeout_s * 4 + self._poll_interval_s * 5):
            logger.warning("teardown still running", extra={"session": self.name})

    def interrupt(self) -> None:
        """Operator abort. Safe to call from a signal handler or another thread; acts once."""
        if self._interrupted.is_set():
            return
        self._interrupted.set()
        self._wake.set()
        with self._state_lock:
            if self.outcome is None:
                self.outcome = LessonOutcome.INTERRUPTED
            state = self._state
        logger.warning("interrupt received in state %s", state.value, extra={"session": self.name})
        if state is SessionState.UNINITIALIZED:
            # start() notices the flag and rolls back from its own frame.
            return
        self.close(reason="interrupt")

    def close(self, *, reason: str = "") -> bool:
        """Tear everything down. Returns False if teardown already ran."""
        if not self._teardown_guard.acquire(blocking=False):
            return False
        self._teardown_thread = threading.current_thread()
        logger.info("teardown (%s)", reason or "close", extra={"session": self.name})
        self._wake.set()

        proc = self._attach_proc
        try:
            with self._state_lock:
                if self._state is SessionState.ACTIVE:
                    self._transition(SessionState.COMPLETING)
            if self._watcher is not None:
                self._teardown_step("stop watcher", self._watcher.stop)
            if self._owns_session:
                self._teardown_step("kill-session", self._dispatcher.kill_session, self.name)
            if proc is not None:
                self._teardown_step("reap attach client", self._reap_attach_client, proc)
        finally:
            # Runs even when a step above was interrupted (KeyboardInterrupt).
            remove_artifact(self.paths.status)
            remove_artifact(self.paths.signal)
            self._registry.clear()
            with self._state_lock:
                if self._state is SessionState.ACTIVE:
                    self._transition(SessionState.COMPLETING)
                self._transition(SessionState.TORN_DOWN)
            self._torn_down.set()
            if proc is not None:
                self._restore_terminal()
        return True

    def _teardown_step(self, what: str, fn: Callable[..., Any], *args: Any) -> None:
        try:
            fn(*args)
        except Exception as e:
            if self.teardown_error is None:
                self.teardown_error = e
            logger.error("%s failed during teardown: %s", what, e, extra={"session": self.name})

    def _reap_attach_client(self, proc: Any) -> None:
        try:
            proc.wait(timeout=self._dispatcher.timeout_s)
        except subprocess.TimeoutExpired:
            logger.warning("attach client still running; terminating", extra={"session": self.name})
            proc.terminate()
            try:
                proc.wait(timeout=self._dispatcher.timeout_s)
            except subprocess.TimeoutExpired:
                proc.kill()

    def _restore_terminal(self) -> None:
        out = sys.stdout
        try:
            if out is not None and out.isatty():
                out.write("\x1b[2J\x1b[H")
                out.flush()
        except (OSError, ValueError):
            pass

    def _handle_signal(self, signum: int, frame: Any) -> None:
        self.interrupt()

    def _install_signal_handlers(self) -> List[tuple]:
        if threading.current_thread() is not threading.main_thread():
            return []
        previous = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            previous.append((sig, signal.getsignal(sig)))
            signal.signal(sig, self._handle_signal)
        return previous

    def _restore_signal_handlers(self, previous: List[tuple]) -> None:
        for sig, handler in previous:
            signal.signal(sig, handler if handler is not None else signal.SIG_DFL)

    def run(self) -> LessonOutcome:
        """start + wait + close, with SIGINT/SIGTERM routed to `interrupt()`."""
        previous = self._install_signal_handlers()
        try:
            try:
                self.start()
            except LessonInterrupted:
                self.outcome = LessonOutcome.INTERRUPTED
                return self.outcome
            return self.wait()
        finally:
            if not self.close(reason="run finished"):
                self._await_teardown()
            self._restore_signal_handlers(previous)

    def __enter__(self) -> "LessonSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close(reason="context exit")
