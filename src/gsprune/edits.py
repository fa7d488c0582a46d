"""
Reversible filter edits for a host undo stack.

A FilterEdit captures the state bitmask, the parameters and the session
baseline before and after a committed change. do() re-applies the "after"
snapshot and undo() the "before" one; in both directions the parameters are
announced to observers before the bitmask is written, so a UI sees the reason
for a change before its effect.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from gsprune.filter.config import FilterParams
from gsprune.protocols import UndoHistory

if TYPE_CHECKING:
    from gsprune.points import PointSet
    from gsprune.session import FilterSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EditSnapshot:
    """
    Everything needed to put a session back into one moment.

    Attributes:
        points: Point set the snapshot was taken from
        state: Copy of the state bitmask
        params: Parameters current at that moment
        baseline: Session baseline at that moment (None outside a session);
            shared, never written in place
    """

    points: PointSet = field(repr=False)
    state: np.ndarray = field(repr=False)
    params: FilterParams
    baseline: np.ndarray | None = field(default=None, repr=False)


class FilterEdit:
    """
    One undo entry spanning before -> after.

    Attributes:
        name: Label shown by the host history (e.g. "filter.scale")
        before: Snapshot restored by undo()
        after: Snapshot restored by do()
    """

    __slots__ = ("name", "before", "after", "_session")

    def __init__(self, name: str, session: FilterSession, before: EditSnapshot, after: EditSnapshot):
        self.name = name
        self.before = before
        self.after = after
        self._session = session

    def do(self) -> None:
        logger.debug("[History] do %s", self.name)
        self._session.apply_snapshot(self.after)

    def undo(self) -> None:
        logger.debug("[History] undo %s", self.name)
        self._session.apply_snapshot(self.before)

    @property
    def changed(self) -> int:
        """Number of points whose state byte differs between before and after."""
        return int(np.count_nonzero(self.before.state != self.after.state))

    def __repr__(self) -> str:
        return f"FilterEdit({self.name!r}, changed={self.changed})"


def push_edit(history: UndoHistory, edit: FilterEdit) -> FilterEdit:
    """
    Record an edit that has already been applied.

    The stack is told the edit is applied so it does not run do() again on
    insertion.
    """
    history.add(edit, applied=True)
    logger.debug("[History] Pushed %s", edit.name)
    return edit


__all__ = ["EditSnapshot", "FilterEdit", "push_edit"]
