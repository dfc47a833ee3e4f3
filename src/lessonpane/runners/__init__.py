from __future__ import annotations

from .panes import PaneRegistry, PaneResolutionError
from .tmux import DispatchError, PaneInfo, TmuxDispatcher

__all__ = ["DispatchError", "PaneInfo", "PaneRegistry", "PaneResolutionError", "TmuxDispatcher"]
