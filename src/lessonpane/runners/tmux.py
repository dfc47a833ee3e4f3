from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Callable, List, Literal, Optional, Tuple

logger = logging.getLogger(__name__)

DispatchErrorKind = Literal["already_exists", "spawn_failed", "send_failed", "not_found", "transient"]

# (argv, timeout_s) -> (returncode, stdout, stderr); raises subprocess.TimeoutExpired on timeout.
TmuxRunner = Callable[[List[str], float], Tuple[int, str, str]]

DEFAULT_TIMEOUT_S = 2.0

_MISSING_SESSION_MARKERS = ("can't find session", "no server running", "session not found", "error connecting")


class DispatchError(RuntimeError):
    """A tmux command failed; `kind` classifies the failure for the caller."""

    def __init__(self, kind: DispatchErrorKind, message: str, *, op: str = "") -> None:
        super().__init__(f"{op or 'tmux'}: {message}" if message else (op or "tmux"))
        self.kind: DispatchErrorKind = kind
        self.op = op


@dataclass(frozen=True)
class PaneInfo:
    index: int
    pane_id: str
    active: bool = False


def _subprocess_runner(argv: List[str], timeout_s: float) -> Tuple[int, str, str]:
    p = subprocess.run(
        argv,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        stdin=subprocess.DEVNULL,
        text=True,
        timeout=timeout_s,
        check=False,
    )
    return int(p.returncode), (p.stdout or ""), (p.stderr or "")


def _looks_missing(err: str) -> bool:
    low = (err or "").lower()
    return any(m in low for m in _MISSING_SESSION_MARKERS)


def parse_pane_list(out: str) -> List[PaneInfo]:
    panes: List[PaneInfo] = []
    for ln in (out or "").splitlines():
        parts = ln.strip().split()
        if len(parts) < 2:
            continue
        try:
            idx = int(parts[0])
        except ValueError:
            continue
        pid = parts[1].strip()
        if not pid:
            continue
        active = len(parts) > 2 and parts[2].strip() in ("1", "on", "yes", "true")
        panes.append(PaneInfo(index=idx, pane_id=pid, active=active))
    panes.sort(key=lambda p: p.index)
    return panes


class TmuxDispatcher:
    """Synchronous tmux command surface with bounded waits and classified failures.

    Every call is one subprocess invocation. A timeout is retried once and then
    surfaces as `DispatchError(kind="transient")`.
    """

    def __init__(
        self,
        *,
        socket: Optional[str] = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        runner: Optional[TmuxRunner] = None,
    ) -> None:
        self.socket = (socket or "").strip() or None
        self.timeout_s = float(timeout_s) if timeout_s and timeout_s > 0 else DEFAULT_TIMEOUT_S
        self._runner: TmuxRunner = runner or _subprocess_runner

    def _argv(self, args: List[str]) -> List[str]:
        cmd = ["tmux"]
        if self.socket:
            cmd.extend(["-L", self.socket])
        cmd.extend(args)
        return cmd

    def _run(self, args: List[str], *, op: str) -> Tuple[int, str, str]:
        argv = self._argv(args)
        for attempt in (1, 2):
            try:
                code, out, err = self._runner(argv, self.timeout_s)
            except subprocess.TimeoutExpired:
                logger.warning("tmux timeout (attempt %d)", attempt, extra={"op": op})
                continue
            except OSError as e:
                # tmux not installed or not executable.
                raise DispatchError("spawn_failed", str(e), op=op) from e
            if code != 0:
                logger.debug("tmux exit=%s err=%s", code, (err or "").strip(), extra={"op": op})
            return code, out, err
        raise DispatchError("transient", f"timed out after {self.timeout_s:.1f}s (retried once)", op=op)

    def has_session(self, name: str) -> bool:
        code, _, _ = self._run(["has-session", "-t", f"={name}"], op="has-session")
        return code == 0

    def create_session(self, name: str, *, width: Optional[int] = None, height: Optional[int] = None) -> None:
        if self.has_session(name):
            raise DispatchError("already_exists", f"session {name!r} already exists", op="new-session")
        args = ["new-session", "-d", "-s", name]
        if width and height:
            args.extend(["-x", str(int(width)), "-y", str(int(height))])
        code, _, err = self._run(args, op="new-session")
        if code != 0:
            if "duplicate session" in (err or "").lower():
                raise DispatchError("already_exists", err.strip(), op="new-session")
            raise DispatchError("spawn_failed", (err or "").strip(), op="new-session")
        logger.info("session created", extra={"session": name, "op": "new-session"})

    def split_pane(self, session: str, *, vertical: bool = True) -> str:
        """Split the session's current pane and return the new pane's id (e.g. `%3`)."""
        args = ["split-window", "-v" if vertical else "-h", "-t", session, "-P", "-F", "#{pane_id}"]
        code, out, err = self._run(args, op="split-window")
        pane_id = (out or "").strip().splitlines()[0].strip() if (out or "").strip() else ""
        if code != 0 or not pane_id:
            raise DispatchError("spawn_failed", (err or "").strip() or "no pane id returned", op="split-window")
        logger.info("pane split", extra={"session": session, "pane": pane_id, "op": "split-window"})
        return pane_id

    def resize_pane(self, pane_id: str, *, height: Optional[int] = None, width: Optional[int] = None) -> None:
        args = ["resize-pane", "-t", pane_id]
        if height:
            args.extend(["-y", str(int(height))])
        if width:
            args.extend(["-x", str(int(width))])
        code, _, err = self._run(args, op="resize-pane")
        if code != 0:
            raise DispatchError("transient", (err or "").strip(), op="resize-pane")

    def list_panes(self, session: str) -> List[PaneInfo]:
        code, out, err = self._run(
            ["list-panes", "-t", session, "-F", "#{pane_index} #{pane_id} #{pane_active}"],
            op="list-panes",
        )
        if code != 0:
            kind: DispatchErrorKind = "not_found" if _looks_missing(err) else "transient"
            raise DispatchError(kind, (err or "").strip(), op="list-panes")
        return parse_pane_list(out)

    def send_keys(self, pane_id: str, text: str, terminator: Optional[str] = "Enter") -> None:
        """Type `text` literally into a pane, then press `terminator` (if any).

        The text goes through `send-keys -l`, so key names or control sequences
        inside it are never executed; only the explicit terminator is a key.
        """
        if text:
            code, _, err = self._run(["send-keys", "-t", pane_id, "-l", text], op="send-keys")
            if code != 0:
                raise DispatchError("send_failed", (err or "").strip(), op="send-keys")
        if terminator:
            code, _, err = self._run(["send-keys", "-t", pane_id, terminator], op="send-keys")
            if code != 0:
                raise DispatchError("send_failed", (err or "").strip(), op="send-keys")
        logger.debug("keys sent (%d chars)", len(text or ""), extra={"pane": pane_id, "op": "send-keys"})

    def select_pane(self, pane_id: str) -> None:
        code, _, err = self._run(["select-pane", "-t", pane_id], op="select-pane")
        if code != 0:
            raise DispatchError("transient", (err or "").strip(), op="select-pane")

    def kill_session(self, name: str) -> None:
        """Kill a session. A session that is already gone is not an error."""
        if not self.has_session(name):
            logger.debug("kill skipped: no such session", extra={"session": name, "op": "kill-session"})
            return
        code, _, err = self._run(["kill-session", "-t", f"={name}"], op="kill-session")
        if code != 0 and not _looks_missing(err):
            raise DispatchError("not_found", (err or "").strip(), op="kill-session")
        logger.info("session killed", extra={"session": name, "op": "kill-session"})

    def attach_argv(self, name: str) -> List[str]:
        """Command line that attaches the current terminal to the session."""
        return self._argv(["attach-session", "-t", f"={name}"])
