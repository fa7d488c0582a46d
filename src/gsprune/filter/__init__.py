"""
Gaussian splat pruning filters.

Provides the range filter (log-scale bounds and opacity threshold) and the
radius-neighbor outlier classifier, both operating on a uint8 state bitmask.

Features:
- Range filter: drop points whose largest log scale leaves [min, max]
- Opacity threshold with automatic logit/linear detection
- Outlier classifier: drop points with fewer than k neighbors within radius
- Uniform grid hash with cell size equal to the radius
- Chunked classifier pass for single-threaded hosts

Example:
    >>> from gsprune.filter import RangeParams, apply_range_filter, classify_outliers
    >>>
    >>> work = points.snapshot_state()
    >>> apply_range_filter(points, work, RangeParams(-8.0, 0.5, 0.1))
    >>> result = classify_outliers(points.positions, work, k=8, radius=0.05)
    >>> points.restore_state(work)
"""

from gsprune.filter.config import (
    UI_RANGES,
    FilterKind,
    FilterParams,
    OutlierParams,
    RangeParams,
)
from gsprune.filter.grid import SpatialGrid, build_spatial_grid
from gsprune.filter.outlier import (
    OutlierResult,
    PassProgress,
    classify_outliers,
    iter_outlier_pass,
)
from gsprune.filter.range import apply_range_filter, range_filter_mask

__all__ = [
    # Configuration
    "FilterKind",
    "FilterParams",
    "RangeParams",
    "OutlierParams",
    "UI_RANGES",
    # Range filter
    "apply_range_filter",
    "range_filter_mask",
    # Outlier classifier
    "classify_outliers",
    "iter_outlier_pass",
    "OutlierResult",
    "PassProgress",
    # Spatial index
    "SpatialGrid",
    "build_spatial_grid",
]
