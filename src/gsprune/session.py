"""
FilterSession: baseline / preview / commit controller for one point set.

Every preview starts from the baseline snapshot taken at the first apply of a
session, so re-applying with new parameters replaces the previous result
instead of compounding it. Slider drags are grouped with begin()/commit() into
a single undo entry; preview() in between only refreshes the bitmask.

Each evaluation runs as a FilterPass: range filter and outlier classifier work
on a private copy of the baseline, and the finished copy is written to the
point set in a single step. A pass can be left suspended between classifier
chunks (cooperative=True) for a single-threaded host to drive with step().
Starting a new pass cancels any pass still suspended; its output is dropped.

Example:
    >>> session = FilterSession(PointSet.from_gsdata(data), on_visibility_changed=renderer.refresh)
    >>> session.begin("scale")
    >>> session.preview("scale", min_scale=-8.0, max_scale=0.5)   # slider moves
    >>> session.preview("scale", min_scale=-7.5, max_scale=0.5)
    >>> session.commit("scale")                                    # one undo entry
    >>> session.apply("outlier", k=8, radius=0.05)                 # "Run" button
    >>> session.history.undo()
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator
from dataclasses import dataclass
from enum import Enum

import numpy as np

from gsprune.constants import DELETED_BIT, YIELD_CHUNK
from gsprune.edits import EditSnapshot, FilterEdit, push_edit
from gsprune.exceptions import (
    ConcurrentInvocationError,
    InvalidParameterError,
    MissingDataError,
    NoActivePointSetError,
    PassCancelledError,
)
from gsprune.filter.config import FilterKind, FilterParams
from gsprune.filter.outlier import OutlierResult, PassProgress, iter_outlier_pass
from gsprune.filter.range import apply_range_filter
from gsprune.history import EditHistory
from gsprune.points import PointSet
from gsprune.protocols import ParamsObserver, UndoHistory, VisibilityListener

logger = logging.getLogger(__name__)


class PassStatus(Enum):
    RUNNING = "running"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


class SessionPhase(Enum):
    IDLE = "idle"
    PREVIEWING = "previewing"
    COMMITTED = "committed"


@dataclass(frozen=True)
class PassResult:
    """
    Outcome of one preview evaluation.

    Attributes:
        params: Parameters the pass evaluated
        range_deleted: Points removed by the range filter
        outlier: Classifier statistics, None when the classifier was off
        deleted_total: Deleted points after the pass
        visible_after: Visible points after the pass
    """

    params: FilterParams
    range_deleted: int
    outlier: OutlierResult | None
    deleted_total: int
    visible_after: int


class FilterPass:
    """
    Handle on one preview evaluation.

    The pass advances one classifier chunk per step(). Its output reaches the
    point set only when the final step completes; cancel() drops it.
    """

    __slots__ = ("params", "progress", "_gen", "_status", "_result")

    def __init__(self, params: FilterParams, gen: Generator[PassProgress, None, PassResult]):
        self.params = params
        self.progress: PassProgress | None = None
        self._gen = gen
        self._status = PassStatus.RUNNING
        self._result: PassResult | None = None

    @property
    def status(self) -> PassStatus:
        return self._status

    @property
    def done(self) -> bool:
        return self._status is not PassStatus.RUNNING

    def step(self) -> bool:
        """
        Advance to the next suspension point.

        Returns:
            True while work remains, False once the pass is finished or cancelled
        """
        if self._status is not PassStatus.RUNNING:
            return False
        try:
            self.progress = next(self._gen)
        except StopIteration as stop:
            self._result = stop.value
            self._status = PassStatus.DONE
            return False
        except BaseException:
            self._status = PassStatus.FAILED
            raise
        return True

    def run(self, yield_fn: Callable[[], None] | None = None) -> PassResult:
        """
        Drive the pass to completion.

        Args:
            yield_fn: Called at every suspension point, e.g. to let the host
                process a frame. It may start a newer pass, which cancels this one.

        Returns:
            PassResult

        Raises:
            PassCancelledError: If the pass was superseded before finishing
        """
        while self.step():
            if yield_fn is not None:
                yield_fn()
        return self.result()

    def cancel(self) -> bool:
        """Abandon the pass. Returns True if it was still running."""
        if self._status is not PassStatus.RUNNING:
            return False
        self._gen.close()
        self._status = PassStatus.CANCELLED
        logger.info("[Session] Cancelled pending pass (%s)", _describe(self.params))
        return True

    def result(self) -> PassResult:
        if self._status is PassStatus.CANCELLED:
            raise PassCancelledError("Pass was superseded by a newer filter pass; its output was discarded.")
        if self._status is not PassStatus.DONE:
            raise ConcurrentInvocationError("Pass is still suspended; call step() or run() to finish it.")
        return self._result

    def __repr__(self) -> str:
        return f"FilterPass({self._status.value}, {_describe(self.params)})"


@dataclass
class _Transaction:
    kind: FilterKind
    before: EditSnapshot


def _describe(params: FilterParams) -> str:
    text = (
        f"scale=[{params.range.min_scale}, {params.range.max_scale}], "
        f"opacity>={params.range.opacity_threshold}"
    )
    if params.outlier is not None:
        text += f", k={params.outlier.k}, r={params.outlier.radius}"
    return text


def _as_kind(kind: FilterKind | str) -> FilterKind:
    try:
        return FilterKind(kind)
    except ValueError:
        valid = ", ".join(k.value for k in FilterKind)
        raise InvalidParameterError(f"kind={kind!r} is not valid. Valid options are: {valid}") from None


class FilterSession:
    """
    Interactive filter controller for a single active point set.

    Args:
        points: Point set to filter (can be loaded later with load())
        history: Host undo stack; a private EditHistory is created if None
        on_visibility_changed: Called after every change to the bitmask
        chunk_size: Classifier points per cooperative suspension
    """

    def __init__(
        self,
        points: PointSet | None = None,
        history: UndoHistory | None = None,
        on_visibility_changed: VisibilityListener | None = None,
        chunk_size: int = YIELD_CHUNK,
    ):
        if chunk_size < 1:
            raise InvalidParameterError(f"chunk_size must be >= 1, got {chunk_size}")

        self.history = history if history is not None else EditHistory()
        self.chunk_size = chunk_size
        self._on_visibility_changed = on_visibility_changed
        self._observers: list[ParamsObserver] = []

        self._points: PointSet | None = None
        self._params = FilterParams()
        self._last_applied: FilterParams | None = None
        self._baseline: np.ndarray | None = None
        self._txn: _Transaction | None = None
        self._last_recorded: EditSnapshot | None = None
        self._active: FilterPass | None = None
        self._phase = SessionPhase.IDLE
        self._echoing = 0

        if points is not None:
            self.load(points)

    # ------------------------------------------------------------------
    # Point set
    # ------------------------------------------------------------------

    @property
    def points(self) -> PointSet | None:
        return self._points

    def load(self, points: PointSet) -> None:
        """Make `points` the active point set and start with no baseline."""
        if not isinstance(points, PointSet):
            raise MissingDataError(f"Expected PointSet, got {type(points).__name__}")
        self._drop_session("load")
        self._points = points
        points.ensure_state()
        self._last_recorded = self._snapshot()
        logger.info("[Session] Loaded %r", points)

    def unload(self) -> None:
        self._drop_session("unload")
        self._points = None
        self._last_recorded = None

    def _drop_session(self, reason: str) -> None:
        self._cancel_active()
        if self._txn is not None:
            logger.warning(
                "[Session] Open %s transaction closed by %s without an undo entry",
                self._txn.kind.value,
                reason,
            )
        self._txn = None
        self._baseline = None
        self._last_applied = None
        self._phase = SessionPhase.IDLE

    def _require_points(self) -> PointSet:
        if self._points is None:
            logger.warning("[Session] No point set loaded")
            raise NoActivePointSetError("No point set is loaded.")
        return self._points

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def params(self) -> FilterParams:
        """Current parameters (latest preview, commit or restored snapshot)."""
        return self._params

    @property
    def last_applied(self) -> FilterParams | None:
        """Parameters of the last completed pass, None before any pass."""
        return self._last_applied

    @property
    def has_baseline(self) -> bool:
        return self._baseline is not None

    @property
    def baseline(self) -> np.ndarray | None:
        """Read-only view of the baseline snapshot."""
        if self._baseline is None:
            return None
        view = self._baseline.view()
        view.flags.writeable = False
        return view

    @property
    def active_pass(self) -> FilterPass | None:
        """The pass still suspended, if any."""
        if self._active is not None and not self._active.done:
            return self._active
        return None

    @property
    def transaction_kind(self) -> FilterKind | None:
        return None if self._txn is None else self._txn.kind

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def add_params_observer(self, observer: ParamsObserver) -> None:
        """Register a callback receiving parameters restored by undo/redo/reset."""
        self._observers.append(observer)

    def remove_params_observer(self, observer: ParamsObserver) -> None:
        self._observers.remove(observer)

    def _echo_params(self) -> None:
        self._echoing += 1
        try:
            for observer in list(self._observers):
                observer(self._params)
        finally:
            self._echoing -= 1

    def _notify_visibility(self) -> None:
        if self._on_visibility_changed is not None:
            self._on_visibility_changed()

    # ------------------------------------------------------------------
    # Baseline and preview
    # ------------------------------------------------------------------

    def ensure_baseline(self) -> None:
        """Snapshot the current bitmask as baseline unless one exists."""
        points = self._require_points()
        if self._baseline is None:
            self._baseline = points.snapshot_state()
            logger.debug(
                "[Session] Baseline captured (%d deleted of %d)",
                int(np.count_nonzero(self._baseline & DELETED_BIT)),
                len(points),
            )

    def apply_preview(
        self,
        params: FilterParams | None = None,
        *,
        cooperative: bool = False,
    ) -> FilterPass | None:
        """
        Re-evaluate the filters from the baseline with `params`.

        Does not record undo history. Any pass still suspended is cancelled
        first. The bitmask changes only when the returned pass finishes.

        Args:
            params: Parameters to evaluate (default: current parameters)
            cooperative: Return after the first chunk and leave the rest to
                the host (FilterPass.step() once per frame)

        Returns:
            The FilterPass (finished unless cooperative), or None when called
            from inside a parameter echo

        Raises:
            NoActivePointSetError: If no point set is loaded
            InvalidParameterError: If params is not a FilterParams
            MissingDataError: If a required attribute buffer is absent
        """
        if self._echoing:
            logger.debug("[Session] Ignoring preview requested during parameter echo")
            return None

        points = self._require_points()
        if params is None:
            params = self._params
        if not isinstance(params, FilterParams):
            raise InvalidParameterError(f"params must be FilterParams, got {type(params).__name__}")
        if params.range.uses_opacity and points.opacities is None:
            logger.warning("[Session] Opacity threshold set but the point set has no opacities")
            raise MissingDataError("Opacity threshold set but the point set has no opacities.")

        self._cancel_active()

        prev_baseline = self._baseline
        prev_params = self._params
        prev_phase = self._phase
        self.ensure_baseline()
        self._params = params
        self._phase = SessionPhase.PREVIEWING

        handle = FilterPass(params, self._execute(points, self._baseline, params))
        self._active = handle
        try:
            handle.step()
            if not cooperative:
                handle.run()
        except BaseException:
            self._active = None
            self._baseline = prev_baseline
            self._params = prev_params
            self._phase = prev_phase
            raise

        return handle

    def _execute(
        self,
        points: PointSet,
        baseline: np.ndarray,
        params: FilterParams,
    ) -> Generator[PassProgress, None, PassResult]:
        work = baseline.copy()
        range_deleted = apply_range_filter(points, work, params.range)

        outlier = None
        if params.outlier is not None:
            outlier = yield from iter_outlier_pass(points.positions, work, params.outlier, self.chunk_size)

        points.restore_state(work)
        self._last_applied = params
        self._notify_visibility()

        result = PassResult(
            params=params,
            range_deleted=range_deleted,
            outlier=outlier,
            deleted_total=points.num_deleted,
            visible_after=points.num_visible,
        )
        logger.info(
            "[Session] Applied %s | visible %d/%d",
            _describe(params),
            result.visible_after,
            len(points),
        )
        return result

    def _cancel_active(self) -> None:
        if self._active is not None:
            self._active.cancel()
            self._active = None

    def _finish_active(self) -> None:
        pending = self.active_pass
        if pending is not None:
            logger.debug("[Session] Finishing pending pass (%s)", _describe(pending.params))
            pending.run()
        self._active = None

    def preview(self, kind: FilterKind | str, *, cooperative: bool = False, **values) -> FilterPass | None:
        """
        Update the parameters of one kind and re-evaluate (slider move).

        Args:
            kind: "scale" (min_scale, max_scale), "opacity" (threshold) or
                "outlier" (k, radius)
            cooperative: See apply_preview()
            **values: New values; omitted ones keep their current setting

        Example:
            >>> session.preview("opacity", threshold=0.2)
        """
        if self._echoing:
            logger.debug("[Session] Ignoring %s preview during parameter echo", kind)
            return None
        params = self._params.updated(_as_kind(kind), **values)
        return self.apply_preview(params, cooperative=cooperative)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _snapshot(self) -> EditSnapshot:
        points = self._require_points()
        return EditSnapshot(
            points=points,
            state=points.snapshot_state(),
            params=self._params,
            baseline=self._baseline,
        )

    def begin(self, kind: FilterKind | str) -> None:
        """
        Open a grouped edit (e.g. on pointer-down on a slider).

        Captures the current bitmask and parameters as the undo anchor. An open
        transaction of another kind is committed first; one of the same kind is
        kept with its original anchor.
        A pass still suspended is finished first, so the anchor bitmask always
        reflects the anchor parameters.
        """
        kind = _as_kind(kind)
        if self._echoing:
            logger.debug("[Session] Ignoring %s begin during parameter echo", kind.value)
            return
        self._require_points()

        if self._txn is not None:
            if self._txn.kind is kind:
                logger.debug("[Session] %s transaction already open", kind.value)
                return
            logger.info(
                "[Session] Auto-committing open %s transaction before %s",
                self._txn.kind.value,
                kind.value,
            )
            self.commit(self._txn.kind)

        self._finish_active()
        self._txn = _Transaction(kind=kind, before=self._snapshot())
        self._phase = SessionPhase.PREVIEWING
        logger.debug("[Session] Begin %s", kind.value)

    def commit(self, kind: FilterKind | str) -> FilterEdit | None:
        """
        Finish a grouped edit and record exactly one undo entry.

        Re-applies the current parameters synchronously, then pushes a
        FilterEdit from the transaction anchor to the new state. Without a
        matching begin() this is a single-shot apply-and-record anchored at the
        last recorded moment (load, commit, reset or undo/redo), so previews
        made since then are undone with it.

        Returns:
            The recorded FilterEdit, or None when called from inside a
            parameter echo
        """
        kind = _as_kind(kind)
        if self._echoing:
            logger.debug("[Session] Ignoring %s commit during parameter echo", kind.value)
            return None
        self._require_points()

        if self._txn is not None and self._txn.kind is not kind:
            self.commit(self._txn.kind)

        txn = self._txn
        if txn is not None:
            before = txn.before
        elif self._last_recorded is not None:
            before = self._last_recorded
        else:
            before = self._snapshot()

        self._txn = None
        try:
            self.apply_preview(self._params)
        except BaseException:
            self._txn = txn
            raise

        after = self._snapshot()
        edit = FilterEdit(f"filter.{kind.value}", self, before, after)
        self._last_recorded = after
        push_edit(self.history, edit)
        self._phase = SessionPhase.COMMITTED
        logger.info("[Session] Committed %s (%d points changed)", kind.value, edit.changed)
        return edit

    def apply(self, kind: FilterKind | str, **values) -> FilterEdit | None:
        """
        Single-shot edit: update one kind of parameters, apply and record.

        Example:
            >>> session.apply("outlier", k=8, radius=0.05)
        """
        kind = _as_kind(kind)
        if self._echoing:
            logger.debug("[Session] Ignoring %s apply during parameter echo", kind.value)
            return None
        params = self._params.updated(kind, **values)

        opened = self._txn is None or self._txn.kind is not kind
        self.begin(kind)
        prev_params = self._params
        self._params = params
        try:
            return self.commit(kind)
        except BaseException:
            self._params = prev_params
            if opened:
                self._txn = None
            raise

    def reset(self) -> FilterEdit:
        """
        Undo all filtering of the current session and end it.

        Restores the baseline, clears it, returns the parameters to their
        defaults and records the reset as one undo entry.
        A pass still suspended is finished first.
        """
        points = self._require_points()
        self._finish_active()
        if self._txn is not None:
            self.commit(self._txn.kind)

        before = self._snapshot()
        self._params = FilterParams()
        self._echo_params()

        if self._baseline is not None:
            points.restore_state(self._baseline)
        self._baseline = None
        self._last_applied = None
        self._phase = SessionPhase.IDLE
        self._notify_visibility()

        after = self._snapshot()
        edit = FilterEdit(f"filter.{FilterKind.RESET.value}", self, before, after)
        self._last_recorded = after
        push_edit(self.history, edit)
        logger.info("[Session] Reset filters (restored baseline, %d points changed)", edit.changed)
        return edit

    # ------------------------------------------------------------------
    # Undo support
    # ------------------------------------------------------------------

    def apply_snapshot(self, snapshot: EditSnapshot) -> None:
        """
        Put the session back into a recorded moment (used by FilterEdit).

        Parameters are echoed to observers before the bitmask is written.

        Raises:
            NoActivePointSetError: If the snapshot belongs to a point set that
                is no longer loaded
        """
        points = self._require_points()
        if snapshot.points is not points:
            raise NoActivePointSetError("Edit belongs to a point set that is no longer loaded.")

        self._cancel_active()
        if self._txn is not None:
            logger.warning(
                "[Session] Open %s transaction abandoned by undo/redo",
                self._txn.kind.value,
            )
            self._txn = None

        self._params = snapshot.params
        self._echo_params()

        points.restore_state(snapshot.state)
        self._baseline = snapshot.baseline
        self._last_applied = snapshot.params if snapshot.baseline is not None else None
        self._phase = SessionPhase.COMMITTED if snapshot.baseline is not None else SessionPhase.IDLE
        self._last_recorded = snapshot
        self._notify_visibility()

    def __repr__(self) -> str:
        return (
            f"FilterSession(points={self._points!r}, phase={self._phase.value}, "
            f"baseline={'yes' if self._baseline is not None else 'no'})"
        )


__all__ = ["FilterPass", "FilterSession", "PassResult", "PassStatus", "SessionPhase"]
