"""
Reference undo/redo stack.

Hosts normally bring their own history; EditHistory is the minimal one used
when a FilterSession is created without a host stack, and in tests.
"""

from __future__ import annotations

import logging
from collections import deque

from gsprune.constants import DEFAULT_HISTORY_SIZE
from gsprune.protocols import ReversibleOperation

logger = logging.getLogger(__name__)


class EditHistory:
    """
    Bounded undo/redo stack of reversible operations.

    Adding an operation clears the redo stack. When the stack is full the
    oldest operation is dropped.

    Example:
        >>> history = EditHistory()
        >>> session = FilterSession(points, history=history)
        >>> session.apply(FilterKind.OUTLIER, k=8, radius=0.05)
        >>> history.undo()
    """

    def __init__(self, max_size: int = DEFAULT_HISTORY_SIZE):
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self._undo: deque[ReversibleOperation] = deque(maxlen=max_size)
        self._redo: deque[ReversibleOperation] = deque(maxlen=max_size)

    def add(self, operation: ReversibleOperation, applied: bool = False) -> None:
        """
        Push an operation, running do() first unless it is already applied.
        """
        if not applied:
            operation.do()
        self._undo.append(operation)
        self._redo.clear()
        logger.debug("[History] add %s (%d entries)", operation.name, len(self._undo))

    def undo(self) -> bool:
        if not self._undo:
            return False
        operation = self._undo[-1]
        operation.undo()
        self._undo.pop()
        self._redo.append(operation)
        logger.debug("[History] undo %s", operation.name)
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        operation = self._redo[-1]
        operation.do()
        self._redo.pop()
        self._undo.append(operation)
        logger.debug("[History] redo %s", operation.name)
        return True

    def can_undo(self) -> bool:
        return len(self._undo) > 0

    def can_redo(self) -> bool:
        return len(self._redo) > 0

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    @property
    def names(self) -> list[str]:
        """Labels on the undo stack, oldest first."""
        return [op.name for op in self._undo]

    def __len__(self) -> int:
        return len(self._undo)

    def __repr__(self) -> str:
        return f"EditHistory(undo={len(self._undo)}, redo={len(self._redo)})"


__all__ = ["EditHistory"]
