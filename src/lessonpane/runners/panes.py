"""Role -> pane id binding.

tmux pane indexes are positional and get renumbered when panes are resized,
swapped or killed; pane ids (`%N`) are stable for the pane's lifetime. The
registry reads the index ordering exactly once, right after the split that
created the interactive pane, and every later operation uses the captured ids.
"""
from __future__ import annotations

import logging
from typing import Dict, Literal, Optional, Tuple

from .tmux import DispatchError, TmuxDispatcher

logger = logging.getLogger(__name__)

PaneRole = Literal["instruction", "interactive"]
ROLES: Tuple[PaneRole, ...] = ("instruction", "interactive")


class PaneResolutionError(RuntimeError):
    """Pane ids for the expected roles could not be confirmed."""


class PaneRegistry:
    def __init__(self, dispatcher: TmuxDispatcher) -> None:
        self._dispatcher = dispatcher
        self._session = ""
        self._bound: Dict[str, str] = {}

    @property
    def resolved(self) -> bool:
        return bool(self._bound)

    def resolve(self, session: str, *, created: Optional[str] = None) -> Dict[str, str]:
        """Bind roles to pane ids for `session`.

        `created` is the id returned by the split; when given, it becomes the
        interactive pane and the lowest-index other pane the instruction pane.
        Without it, index order decides (0 = instruction, 1 = interactive).
        """
        if self._bound:
            if session != self._session:
                raise PaneResolutionError(f"registry already bound to session {self._session!r}")
            return dict(self._bound)

        try:
            panes = self._dispatcher.list_panes(session)
        except DispatchError as e:
            raise PaneResolutionError(f"list-panes failed for {session!r}: {e}") from e

        if len(panes) < len(ROLES):
            raise PaneResolutionError(
                f"session {session!r} reports {len(panes)} pane(s), expected {len(ROLES)}"
            )

        if created:
            ids = [p.pane_id for p in panes]
            if created not in ids:
                raise PaneResolutionError(f"split pane {created} not listed in session {session!r}: {ids}")
            others = [p for p in panes if p.pane_id != created]
            bound = {"instruction": others[0].pane_id, "interactive": created}
        else:
            bound = {"instruction": panes[0].pane_id, "interactive": panes[1].pane_id}

        if bound["instruction"] == bound["interactive"]:
            raise PaneResolutionError(f"ambiguous pane ordering in session {session!r}")

        self._session = session
        self._bound = bound
        logger.info(
            "panes resolved instruction=%s interactive=%s",
            bound["instruction"],
            bound["interactive"],
            extra={"session": session},
        )
        return dict(bound)

    def get(self, role: PaneRole) -> str:
        pane_id = self._bound.get(role)
        if not pane_id:
            raise PaneResolutionError(f"pane role {role!r} is not resolved")
        return pane_id

    def clear(self) -> None:
        self._session = ""
        self._bound = {}
