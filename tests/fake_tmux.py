"""In-memory stand-in for the tmux binary, plugged in as TmuxDispatcher's runner."""
from __future__ import annotations

import subprocess
import threading
from typing import Dict, List, Optional, Tuple


class FakeTmux:
    def __init__(self, *, panes_after_split: Optional[int] = None, renumber_on_resize: bool = True) -> None:
        self._lock = threading.Lock()
        self._next_pane = 0
        self.sessions: Dict[str, List[str]] = {}
        self.keys: Dict[str, List[str]] = {}
        self.calls: List[List[str]] = []
        self.timeouts: Dict[str, int] = {}
        self.fail: Dict[str, str] = {}
        self.panes_after_split = panes_after_split
        self.renumber_on_resize = renumber_on_resize

    def _new_pane(self) -> str:
        pid = f"%{self._next_pane}"
        self._next_pane += 1
        self.keys[pid] = []
        return pid

    def count(self, verb: str) -> int:
        with self._lock:
            return sum(1 for c in self.calls if c and c[0] == verb)

    def __call__(self, argv: List[str], timeout_s: float) -> Tuple[int, str, str]:
        assert argv[0] == "tmux"
        args = list(argv[1:])
        if args[:1] == ["-L"]:
            args = args[2:]
        with self._lock:
            self.calls.append(args)
            verb = args[0]
            if self.timeouts.get(verb, 0) > 0:
                self.timeouts[verb] -= 1
                raise subprocess.TimeoutExpired(argv, timeout_s)
            if verb in self.fail:
                return 1, "", self.fail[verb]
            return self._dispatch(verb, args[1:])

    @staticmethod
    def _opt(args: List[str], flag: str) -> str:
        i = args.index(flag)
        return args[i + 1]

    def _target_session(self, target: str) -> str:
        return target.lstrip("=")

    def _dispatch(self, verb: str, args: List[str]) -> Tuple[int, str, str]:
        if verb == "has-session":
            name = self._target_session(self._opt(args, "-t"))
            return (0, "", "") if name in self.sessions else (1, "", f"can't find session: {name}")

        if verb == "new-session":
            name = self._opt(args, "-s")
            if name in self.sessions:
                return 1, "", f"duplicate session: {name}"
            self.sessions[name] = [self._new_pane()]
            return 0, "", ""

        if verb == "split-window":
            name = self._target_session(self._opt(args, "-t"))
            if name not in self.sessions:
                return 1, "", f"can't find session: {name}"
            pid = self._new_pane()
            self.sessions[name].append(pid)
            return 0, pid + "\n", ""

        if verb == "list-panes":
            name = self._target_session(self._opt(args, "-t"))
            if name not in self.sessions:
                return 1, "", f"can't find session: {name}"
            panes = self.sessions[name]
            if self.panes_after_split is not None:
                panes = panes[: self.panes_after_split]
            lines = [f"{i} {pid} {1 if i == len(panes) - 1 else 0}" for i, pid in enumerate(panes)]
            return 0, "\n".join(lines) + "\n", ""

        if verb == "resize-pane":
            pid = self._opt(args, "-t")
            for panes in self.sessions.values():
                if pid in panes:
                    if self.renumber_on_resize:
                        panes.reverse()
                    return 0, "", ""
            return 1, "", f"can't find pane: {pid}"

        if verb == "send-keys":
            pid = self._opt(args, "-t")
            if pid not in self.keys or not any(pid in p for p in self.sessions.values()):
                return 1, "", f"can't find pane: {pid}"
            rest = args[args.index("-t") + 2 :]
            if rest[:1] == ["-l"]:
                self.keys[pid].append("literal:" + rest[1])
            else:
                self.keys[pid].extend("key:" + k for k in rest)
            return 0, "", ""

        if verb == "select-pane":
            return 0, "", ""

        if verb == "kill-session":
            name = self._target_session(self._opt(args, "-t"))
            if name not in self.sessions:
                return 1, "", f"can't find session: {name}"
            del self.sessions[name]
            return 0, "", ""

        return 1, "", f"unknown command {verb}"
