"""
Protocol definitions for the host-side collaborators of a filter session.

The renderer, the undo stack and any UI controls live outside gsprune; these
protocols describe the only surface the session relies on.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from gsprune.filter.config import FilterParams

# Renderer hook: "visibility changed, re-read the bitmask"
VisibilityListener = Callable[[], None]

# Parameter echo hook, used to resync UI controls on undo/redo
ParamsObserver = Callable[["FilterParams"], None]


@runtime_checkable
class ReversibleOperation(Protocol):
    """
    Opaque operation accepted by a host undo stack.
    """

    name: str

    def do(self) -> None:
        """Apply (or re-apply) the operation."""
        ...

    def undo(self) -> None:
        """Revert the operation."""
        ...


@runtime_checkable
class UndoHistory(Protocol):
    """
    Protocol for the host undo/redo stack.

    The session pushes exactly one operation per committed edit and never
    reads anything back beyond invoking do/undo through the stack.
    """

    def add(self, operation: ReversibleOperation, applied: bool = False) -> None:
        """
        Push an operation.

        Args:
            operation: Operation to record
            applied: True if the caller already applied it, so the stack must
                not call do() on insertion
        """
        ...

    def undo(self) -> bool:
        """Undo the most recent operation. Returns False if there was none."""
        ...

    def redo(self) -> bool:
        """Redo the most recently undone operation. Returns False if there was none."""
        ...
