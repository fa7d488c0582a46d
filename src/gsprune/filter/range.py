"""
Range filter: per-point scale and opacity threshold test.

Stateless pass over the visible points of a state buffer. A point is deleted
when max(scale_0, scale_1, scale_2) leaves [min_scale, max_scale] or, with a
positive opacity threshold, when its linear opacity is below the threshold.
Logit-encoded opacities are decoded with a sigmoid first.
"""

from __future__ import annotations

import logging

import numpy as np

from gsprune.constants import DELETED_BIT
from gsprune.exceptions import MissingDataError
from gsprune.filter.config import RangeParams
from gsprune.filter.kernels import range_filter_numba
from gsprune.points import PointSet

logger = logging.getLogger(__name__)

_NO_OPACITIES = np.empty(0, dtype=np.float32)


def apply_range_filter(points: PointSet, state: np.ndarray, params: RangeParams) -> int:
    """
    Set the DELETED bit on visible points that fail the range test.

    Args:
        points: Point set providing scales and opacities
        state: State bitmask to update in-place (usually a working copy)
        params: Range filter parameters

    Returns:
        Number of points newly deleted

    Raises:
        MissingDataError: If the opacity test is on and the set has no opacities

    Example:
        >>> work = points.snapshot_state()
        >>> removed = apply_range_filter(points, work, RangeParams(-8.0, 0.5, 0.1))
    """
    use_opacity = params.uses_opacity
    if use_opacity and points.opacities is None:
        raise MissingDataError("[RangeFilter] Opacity threshold set but the point set has no opacities.")
    if state.shape != (len(points),):
        raise MissingDataError(
            f"[RangeFilter] state shape {state.shape} doesn't match {len(points)} points"
        )

    removed = range_filter_numba(
        state,
        points.scales,
        points.opacities if use_opacity else _NO_OPACITIES,
        params.min_scale,
        params.max_scale,
        params.opacity_threshold,
        use_opacity,
        points.is_opacity_logit,
        np.uint8(DELETED_BIT),
    )

    logger.debug(
        "[RangeFilter] scale=[%s, %s], opacity>=%s (%s): deleted %d",
        params.min_scale,
        params.max_scale,
        params.opacity_threshold,
        points.opacity_encoding,
        removed,
    )
    return int(removed)


def range_filter_mask(points: PointSet, params: RangeParams) -> np.ndarray:
    """
    Boolean keep mask [N] for the range test alone, ignoring visibility.

    Does not touch any state buffer.
    """
    scratch = np.zeros(len(points), dtype=np.uint8)
    apply_range_filter(points, scratch, params)
    return scratch == 0


__all__ = ["apply_range_filter", "range_filter_mask"]
