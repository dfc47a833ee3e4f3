from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ..contracts.v1.progress import AnyGoal, EditorState, ProgressTarget
from ..util.fs import read_text_quiet
from .progress import parse_state
from .signal_channel import ArtifactIOError, write_signal

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_S = 0.2
MAX_SIGNAL_WRITE_FAILURES = 3


class StatusWatcher:
    """Poll the status artifact, work through the goals in order, signal once.

    Each tick can complete at most the current goal; later goals are only
    checked after the earlier ones were reached. When the last goal is reached
    the success signal is written (at most once), and the loop ends. The loop
    runs on a daemon thread, ticks every `interval_s` and also ends on `stop()`.

    `on_progress(reached)` is called from the watcher thread after every goal
    and once more after the signal write.
    """

    def __init__(
        self,
        *,
        status_path: Path,
        signal_path: Path,
        target: Optional[ProgressTarget] = None,
        goals: Optional[Sequence[AnyGoal]] = None,
        interval_s: float = DEFAULT_INTERVAL_S,
        on_progress: Optional[Callable[[int], None]] = None,
        name: str = "lessonpane-watcher",
    ) -> None:
        if goals:
            self.goals: List[AnyGoal] = list(goals)
        elif target is not None:
            self.goals = [target.as_goal()]
        else:
            raise ValueError("watcher needs a target or at least one goal")
        self.status_path = Path(status_path)
        self.signal_path = Path(signal_path)
        self.target = target
        self.interval_s = float(interval_s) if interval_s and interval_s > 0 else DEFAULT_INTERVAL_S
        self._on_progress = on_progress
        self._name = name

        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._reached = 0
        self._triggered = False
        self._write_failures = 0
        self._error: Optional[ArtifactIOError] = None
        self._last_state: Optional[EditorState] = None

    @property
    def triggered(self) -> bool:
        with self._lock:
            return self._triggered

    @property
    def error(self) -> Optional[ArtifactIOError]:
        with self._lock:
            return self._error

    @property
    def goals_reached(self) -> int:
        with self._lock:
            return self._reached

    @property
    def last_state(self) -> Optional[EditorState]:
        with self._lock:
            return self._last_state

    def is_running(self) -> bool:
        t = self._thread
        return t is not None and t.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("watcher already started")
        logger.info("watching %s for %d goal(s)", self.status_path, len(self.goals))
        self._thread = threading.Thread(target=self._loop, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        t = self._thread
        if t is None or t is threading.current_thread():
            return
        t.join(timeout=timeout if timeout is not None else self.interval_s * 5)
        if t.is_alive():
            logger.warning("watcher thread did not exit in time")

    def _notify(self, reached: int) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(reached)
        except Exception:
            logger.exception("on_progress callback failed")

    def poll_once(self) -> bool:
        """Run one tick. Returns True when the loop has nothing left to do."""
        with self._lock:
            if self._triggered or self._error is not None:
                return True
            reached = self._reached
        total = len(self.goals)

        if reached < total:
            state = parse_state(read_text_quiet(self.status_path))
            if state is None:
                return False
            with self._lock:
                if state != self._last_state:
                    logger.debug(
                        "editor at %d,%d mode=%s (goal %d/%d)", state.row, state.col, state.mode or "-", reached + 1, total
                    )
                self._last_state = state

            goal = self.goals[reached]
            if not goal.matches(state):
                return False
            with self._lock:
                self._reached = reached = reached + 1
            logger.info("goal %d/%d reached: %s", reached, total, goal.describe())
            self._notify(reached)
            if reached < total:
                return False

        # Every goal is reached; a failed write is retried on the next ticks.
        try:
            write_signal(self.signal_path)
        except ArtifactIOError as e:
            with self._lock:
                self._write_failures += 1
                failures = self._write_failures
                if failures >= MAX_SIGNAL_WRITE_FAILURES:
                    self._error = e
            if failures >= MAX_SIGNAL_WRITE_FAILURES:
                logger.error("signal write failed %d times, giving up: %s", failures, e)
                return True
            logger.warning("signal write failed (%d/%d): %s", failures, MAX_SIGNAL_WRITE_FAILURES, e)
            return False

        with self._lock:
            self._triggered = True
        logger.info("all goals reached, signal written to %s", self.signal_path)
        self._notify(total)
        return True

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                done = self.poll_once()
            except Exception:
                # A read/parse surprise must not kill the watch; try again next tick.
                logger.exception("watcher tick failed")
                done = False
            if done:
                break
            self._stop.wait(self.interval_s)
        logger.debug("watcher loop exited")
