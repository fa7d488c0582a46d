"""
Tests for FilterSession: baseline/preview/commit, undo grouping, reset and
cooperative pass cancellation.
"""

import numpy as np
import pytest

from gsprune import (
    DELETED_BIT,
    EditHistory,
    FilterKind,
    FilterParams,
    FilterSession,
    InvalidParameterError,
    MissingDataError,
    NoActivePointSetError,
    OutlierParams,
    PassCancelledError,
    PassStatus,
    PointSet,
    RangeParams,
    SessionPhase,
    State,
    apply_range_filter,
    classify_outliers,
)


def make_point_set(with_opacity=True, seed=42):
    rng = np.random.default_rng(seed)
    cluster = rng.normal(0.0, 0.05, (1000, 3))
    noise = rng.uniform(-2.0, 2.0, (100, 3))
    positions = np.concatenate([cluster, noise]).astype(np.float32)
    scales = rng.uniform(-10.0, 1.0, (len(positions), 3)).astype(np.float32)
    opacities = None
    if with_opacity:
        opacities = rng.uniform(0.0, 1.0, len(positions)).astype(np.float32)
        opacities[0] = 0.5
    return PointSet(positions, scales, opacities)


def expected_state(points, baseline, params):
    """Evaluate params from baseline with the standalone filters."""
    work = baseline.copy()
    apply_range_filter(points, work, params.range)
    if params.outlier is not None:
        classify_outliers(points.positions, work, params.outlier.k, params.outlier.radius)
    return work


@pytest.fixture
def points():
    return make_point_set()


@pytest.fixture
def session(points):
    return FilterSession(points, history=EditHistory(), chunk_size=64)


STRICT = FilterParams(RangeParams(-6.0, -1.0, 0.4), OutlierParams(k=8, radius=0.05))
LOOSE = FilterParams(RangeParams(-9.0, 0.5, 0.1), OutlierParams(k=2, radius=0.05))


class TestPreview:
    """Test baseline-relative previews."""

    def test_first_preview_captures_baseline(self, session, points):
        assert not session.has_baseline
        session.apply_preview(LOOSE)

        assert session.has_baseline
        assert np.all(session.baseline == 0)
        assert not session.baseline.flags.writeable

    def test_idempotent(self, session, points):
        session.apply_preview(STRICT)
        first = points.snapshot_state()
        session.apply_preview(STRICT)

        np.testing.assert_array_equal(points.state, first)

    def test_does_not_accumulate(self, session, points):
        session.apply_preview(STRICT)
        strict_deleted = points.num_deleted
        session.apply_preview(LOOSE)

        baseline = np.zeros(len(points), dtype=np.uint8)
        np.testing.assert_array_equal(points.state, expected_state(points, baseline, LOOSE))
        assert points.num_deleted < strict_deleted

    def test_baseline_deletions_survive(self):
        state = np.zeros(1100, dtype=np.uint8)
        state[:25] = DELETED_BIT
        points = make_point_set()
        points = PointSet(points.positions, points.scales, points.opacities, state=state)
        session = FilterSession(points)

        session.apply_preview(FilterParams(RangeParams(-12.0, 2.0)))

        assert np.all(state[:25] & DELETED_BIT)
        assert points.num_deleted == 25

    def test_preview_updates_one_kind(self, session):
        session.preview("scale", min_scale=-7.0, max_scale=0.0)
        session.preview(FilterKind.OPACITY, threshold=0.3)

        assert session.params.range == RangeParams(-7.0, 0.0, 0.3)
        assert session.params.outlier is None
        assert session.last_applied == session.params
        assert session.phase is SessionPhase.PREVIEWING

    def test_preview_records_no_history(self, session):
        session.preview("scale", min_scale=-5.0)
        session.preview("outlier", k=4)
        assert len(session.history) == 0

    def test_pass_result(self, session, points):
        handle = session.apply_preview(STRICT)
        result = handle.result()

        assert handle.status is PassStatus.DONE
        assert result.params == STRICT
        assert result.outlier is not None
        assert result.deleted_total == points.num_deleted
        assert result.visible_after == points.num_visible
        assert result.range_deleted + result.outlier.deleted == result.deleted_total

    def test_visibility_listener(self, points):
        calls = []
        session = FilterSession(points, on_visibility_changed=lambda: calls.append(1))

        session.apply_preview(LOOSE)
        session.apply("scale", min_scale=-4.0)
        session.history.undo()

        assert len(calls) == 3


class TestTransactions:
    """Test begin/preview/commit grouping."""

    def test_single_shot_apply_round_trip(self, session, points):
        edit = session.apply("scale", min_scale=-6.0, max_scale=0.0)
        after = points.snapshot_state()

        assert edit.name == "filter.scale"
        assert edit.changed == points.num_deleted > 0
        assert session.phase is SessionPhase.COMMITTED

        assert session.history.undo()
        assert points.num_deleted == 0
        assert session.params == FilterParams()
        assert not session.has_baseline

        assert session.history.redo()
        np.testing.assert_array_equal(points.state, after)
        assert session.params.range.min_scale == -6.0
        assert session.has_baseline

    def test_drag_produces_one_entry(self, session, points):
        session.begin("opacity")
        for value in (0.1, 0.2, 0.3, 0.4):
            session.preview("opacity", threshold=value)
        edit = session.commit("opacity")

        assert session.history.names == ["filter.opacity"]
        assert session.transaction_kind is None
        assert edit.before.params == FilterParams()
        assert edit.after.params.range.opacity_threshold == 0.4

        session.history.undo()
        assert points.num_deleted == 0

    def test_begin_same_kind_keeps_anchor(self, session):
        session.begin("scale")
        session.preview("scale", min_scale=-5.0)
        session.begin("scale")
        session.preview("scale", min_scale=-4.0)
        edit = session.commit("scale")

        assert len(session.history) == 1
        assert edit.before.params == FilterParams()

    def test_begin_other_kind_auto_commits(self, session):
        session.begin("scale")
        session.preview("scale", min_scale=-5.0)
        session.begin("opacity")

        assert session.history.names == ["filter.scale"]
        assert session.transaction_kind is FilterKind.OPACITY

        session.preview("opacity", threshold=0.5)
        session.commit("opacity")
        assert session.history.names == ["filter.scale", "filter.opacity"]

    def test_commit_without_begin_undoes_preview(self, session, points):
        session.preview("scale", min_scale=-5.0)
        previewed = points.snapshot_state()
        edit = session.commit("scale")

        assert session.history.names == ["filter.scale"]
        assert edit.changed == points.num_deleted > 0

        session.history.undo()
        assert points.num_deleted == 0
        assert session.params == FilterParams()
        assert not session.has_baseline

        session.history.redo()
        np.testing.assert_array_equal(points.state, previewed)

    def test_commit_without_begin_anchors_at_last_commit(self, session, points):
        session.apply("scale", min_scale=-6.0)
        committed = points.snapshot_state()
        session.preview("opacity", threshold=0.3)
        session.preview("opacity", threshold=0.5)
        session.commit("opacity")

        session.history.undo()
        np.testing.assert_array_equal(points.state, committed)
        assert session.params.range == RangeParams(-6.0, 2.0, 0.0)

    def test_commit_without_begin_after_undo(self, session, points):
        session.apply("scale", min_scale=-6.0)
        session.history.undo()
        session.preview("opacity", threshold=0.4)
        session.commit("opacity")

        session.history.undo()
        assert points.num_deleted == 0
        assert session.params == FilterParams()

    def test_commit_other_kind_closes_open_one(self, session):
        session.begin("scale")
        session.preview("scale", min_scale=-5.0)
        session.commit("outlier")

        assert session.history.names == ["filter.scale", "filter.outlier"]

    def test_undo_then_new_commit_clears_redo(self, session):
        session.apply("scale", min_scale=-5.0)
        session.history.undo()
        session.apply("opacity", threshold=0.2)

        assert not session.history.can_redo()

    def test_repeated_undo_redo_restores_exactly(self, session, points):
        session.apply("scale", min_scale=-6.0)
        s1 = points.snapshot_state()
        session.apply("outlier", k=6, radius=0.04)
        s2 = points.snapshot_state()

        for _ in range(3):
            session.history.undo()
            np.testing.assert_array_equal(points.state, s1)
            session.history.undo()
            assert points.num_deleted == 0
            session.history.redo()
            np.testing.assert_array_equal(points.state, s1)
            session.history.redo()
            np.testing.assert_array_equal(points.state, s2)

    def test_invalid_kind(self, session):
        with pytest.raises(InvalidParameterError, match="Valid options"):
            session.begin("blur")


class TestReset:
    """Test reset behavior."""

    def test_reset_restores_baseline(self, session, points):
        session.apply("scale", min_scale=-6.0)
        session.apply("outlier", k=8, radius=0.05)

        edit = session.reset()

        assert edit.name == "filter.reset"
        assert points.num_deleted == 0
        assert not session.has_baseline
        assert session.params == FilterParams()
        assert session.last_applied is None
        assert session.phase is SessionPhase.IDLE

    def test_reset_is_undoable(self, session, points):
        session.apply("scale", min_scale=-6.0, max_scale=0.0)
        filtered = points.snapshot_state()
        session.reset()

        session.history.undo()
        np.testing.assert_array_equal(points.state, filtered)
        assert session.has_baseline
        assert session.params.range.min_scale == -6.0

        # Further previews still start from the original baseline
        session.preview("scale", min_scale=-12.0, max_scale=2.0)
        assert points.num_deleted == 0

        session.history.redo()
        assert not session.has_baseline

    def test_reset_commits_open_transaction(self, session):
        session.begin("opacity")
        session.preview("opacity", threshold=0.3)
        session.reset()

        assert session.history.names == ["filter.opacity", "filter.reset"]

    def test_reset_keeps_prior_deletions(self):
        state = np.zeros(1100, dtype=np.uint8)
        state[-10:] = DELETED_BIT
        base = make_point_set()
        points = PointSet(base.positions, base.scales, base.opacities, state=state)
        session = FilterSession(points)

        session.apply("opacity", threshold=0.9)
        session.reset()

        assert points.num_deleted == 10


class TestParamsEcho:
    """Test parameter observers."""

    def test_observer_receives_restored_params(self, session):
        seen = []
        session.add_params_observer(seen.append)

        session.apply("scale", min_scale=-6.0)
        session.history.undo()
        session.history.redo()

        assert seen[0] == FilterParams()
        assert seen[1].range.min_scale == -6.0

    def test_params_announced_before_state(self, session, points):
        session.apply("scale", min_scale=-6.0)
        filtered = points.snapshot_state()
        observed = []
        session.add_params_observer(lambda p: observed.append(points.snapshot_state()))

        session.history.undo()

        np.testing.assert_array_equal(observed[0], filtered)
        assert points.num_deleted == 0

    def test_echo_does_not_reenter(self, session, points):
        returned = []

        def slider_moved(params):
            # UI controls fire their own change handlers when resynced
            returned.append(session.preview("scale", min_scale=params.range.min_scale))
            returned.append(session.commit("scale"))

        session.apply("scale", min_scale=-6.0)
        session.add_params_observer(slider_moved)
        session.history.undo()

        assert returned == [None, None]
        assert len(session.history) == 0
        assert points.num_deleted == 0

    def test_remove_observer(self, session):
        seen = []
        session.add_params_observer(seen.append)
        session.remove_params_observer(seen.append)
        session.reset()
        assert seen == []


class TestCooperativePasses:
    """Test chunked passes and latest-wins cancellation."""

    def test_cooperative_pass_defers_write(self, session, points):
        handle = session.apply_preview(STRICT, cooperative=True)

        assert not handle.done
        assert session.active_pass is handle
        assert points.num_deleted == 0
        assert 0.0 < handle.progress.fraction < 1.0

        while handle.step():
            pass

        assert session.active_pass is None
        baseline = np.zeros(len(points), dtype=np.uint8)
        np.testing.assert_array_equal(points.state, expected_state(points, baseline, STRICT))

    def test_newer_pass_cancels_older(self, session, points):
        old = session.apply_preview(STRICT, cooperative=True)
        new = session.apply_preview(LOOSE)

        assert old.status is PassStatus.CANCELLED
        assert not old.step()
        with pytest.raises(PassCancelledError):
            old.result()

        baseline = np.zeros(len(points), dtype=np.uint8)
        np.testing.assert_array_equal(points.state, expected_state(points, baseline, LOOSE))
        assert new.result().params == LOOSE

    def test_superseded_during_run(self, session, points):
        handle = session.apply_preview(STRICT, cooperative=True)
        started = []

        def host_frame():
            if not started:
                started.append(session.apply_preview(LOOSE))

        with pytest.raises(PassCancelledError):
            handle.run(host_frame)

        assert started[0].result().params == LOOSE
        assert session.last_applied == LOOSE

    def test_undo_cancels_pending_pass(self, session, points):
        session.apply("scale", min_scale=-6.0)
        after = points.snapshot_state()
        pending = session.apply_preview(STRICT, cooperative=True)

        session.history.undo()

        assert pending.status is PassStatus.CANCELLED
        assert points.num_deleted == 0
        session.history.redo()
        np.testing.assert_array_equal(points.state, after)

    def test_commit_finishes_synchronously(self, session, points):
        session.begin("outlier")
        session.preview("outlier", cooperative=True, k=8, radius=0.05)
        edit = session.commit("outlier")

        assert session.active_pass is None
        assert edit.after.params.outlier == OutlierParams(k=8, radius=0.05)
        assert points.num_deleted > 0

    def test_begin_finishes_pending_pass(self, session, points):
        pending = session.apply_preview(STRICT, cooperative=True)

        session.begin("scale")
        assert pending.status is PassStatus.DONE
        session.preview("scale", min_scale=-8.0)
        session.commit("scale")

        session.history.undo()
        baseline = np.zeros(len(points), dtype=np.uint8)
        assert session.params == STRICT
        np.testing.assert_array_equal(points.state, expected_state(points, baseline, STRICT))

    def test_reset_finishes_pending_pass(self, session, points):
        pending = session.apply_preview(STRICT, cooperative=True)

        session.reset()
        assert pending.status is PassStatus.DONE
        assert points.num_deleted == 0

        session.history.undo()
        baseline = np.zeros(len(points), dtype=np.uint8)
        assert session.params == STRICT
        np.testing.assert_array_equal(points.state, expected_state(points, baseline, STRICT))

    def test_same_kind_begin_keeps_pending_pass(self, session):
        session.begin("outlier")
        pending = session.preview("outlier", cooperative=True, k=8, radius=0.05)

        session.begin("outlier")

        assert session.active_pass is pending


class TestErrors:
    """Test that failures leave the session untouched."""

    def test_no_point_set(self):
        session = FilterSession()
        with pytest.raises(NoActivePointSetError):
            session.apply_preview(FilterParams())
        with pytest.raises(NoActivePointSetError):
            session.begin("scale")

    def test_missing_opacity_buffer(self):
        points = make_point_set(with_opacity=False)
        session = FilterSession(points)

        with pytest.raises(MissingDataError):
            session.apply("opacity", threshold=0.2)

        assert not session.has_baseline
        assert session.params == FilterParams()
        assert session.transaction_kind is None
        assert len(session.history) == 0
        assert points.num_deleted == 0

    def test_scale_only_works_without_opacities(self):
        points = make_point_set(with_opacity=False)
        session = FilterSession(points)

        session.apply("scale", min_scale=-5.0)
        assert points.num_deleted > 0

    def test_invalid_values_rejected_before_mutation(self, session, points):
        session.apply("scale", min_scale=-6.0)
        before = points.snapshot_state()

        with pytest.raises(InvalidParameterError):
            session.preview("outlier", k=0)
        with pytest.raises(InvalidParameterError):
            session.preview("opacity", threshold=1.5)
        with pytest.raises(InvalidParameterError):
            session.apply_preview("not params")

        np.testing.assert_array_equal(points.state, before)
        assert session.params.range.min_scale == -6.0

    def test_invalid_chunk_size(self):
        with pytest.raises(InvalidParameterError):
            FilterSession(chunk_size=0)

    def test_edit_for_unloaded_point_set(self, session):
        session.apply("scale", min_scale=-6.0)
        session.load(make_point_set(seed=7))

        with pytest.raises(NoActivePointSetError):
            session.history.undo()
        assert session.history.can_undo()

    def test_load_discards_session(self, session, points):
        session.begin("scale")
        session.preview("scale", min_scale=-6.0)

        other = make_point_set(seed=7)
        session.load(other)

        assert session.points is other
        assert session.transaction_kind is None
        assert not session.has_baseline
        assert session.last_applied is None

    def test_unload(self, session):
        session.unload()
        assert session.points is None
        with pytest.raises(NoActivePointSetError):
            session.reset()


class TestOtherStateBits:
    """Test that only the DELETED bit is ever written."""

    OTHER_BITS = np.uint8(State.SELECTED | State.LOCKED)

    def test_bits_set_before_load(self):
        base = make_point_set()
        state = np.zeros(len(base), dtype=np.uint8)
        state[::2] = State.SELECTED
        state[1::4] |= State.LOCKED
        expected = state.copy()
        points = PointSet(base.positions, base.scales, base.opacities, state=state)
        session = FilterSession(points)

        session.apply("outlier", k=8, radius=0.05)
        assert points.num_deleted > 0
        np.testing.assert_array_equal(state & self.OTHER_BITS, expected)

        session.history.undo()
        np.testing.assert_array_equal(state, expected)

    def test_selection_changed_after_baseline(self, session, points):
        session.apply("scale", min_scale=-6.0)
        points.state[:100] |= State.SELECTED

        session.preview("opacity", threshold=0.3)
        assert np.all(points.state[:100] & State.SELECTED)

        session.history.undo()
        assert np.all(points.state[:100] & State.SELECTED)
        assert points.num_deleted == 0
