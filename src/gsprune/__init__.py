"""
gsprune - Gaussian Splat Pruning

Interactive, undoable visibility filters for 3D Gaussian Splatting scenes.

Features:
- Range filter on log-domain scale and linear opacity
- Radius-neighbor outlier classifier on a uniform grid hash (Numba parallel)
- Non-destructive: only the per-point DELETED bit is toggled
- Baseline/preview/commit sessions, so re-applying never compounds
- Slider drags grouped into one undo entry
- Chunked passes for single-threaded hosts, latest pass wins
- GSData input via gsply

Example - One-shot:
    >>> import gsply
    >>> from gsprune import FilterSession, PointSet
    >>>
    >>> points = PointSet.from_gsdata(gsply.plyread("scene.ply"))
    >>> session = FilterSession(points)
    >>> session.apply("scale", min_scale=-8.0, max_scale=0.5)
    >>> session.apply("outlier", k=8, radius=0.05)
    >>> print(points.num_visible)

Example - Slider drag:
    >>> session.begin("opacity")
    >>> for value in (0.05, 0.1, 0.15):
    ...     session.preview("opacity", threshold=value)
    >>> session.commit("opacity")
    >>> session.history.undo()
"""

__version__ = "0.1.0"

# Import GSData from gsply
from gsply import GSData

# Constants
from gsprune.constants import DELETED_BIT, State

# Edits and history
from gsprune.edits import EditSnapshot, FilterEdit, push_edit

# Errors
from gsprune.exceptions import (
    ConcurrentInvocationError,
    GsPruneError,
    InvalidParameterError,
    MissingDataError,
    NoActivePointSetError,
    PassCancelledError,
)

# Filters
from gsprune.filter import (
    UI_RANGES,
    FilterKind,
    FilterParams,
    OutlierParams,
    OutlierResult,
    PassProgress,
    RangeParams,
    SpatialGrid,
    apply_range_filter,
    build_spatial_grid,
    classify_outliers,
    iter_outlier_pass,
    range_filter_mask,
)
from gsprune.history import EditHistory

# Point set
from gsprune.points import PointSet, detect_opacity_encoding

# Protocols
from gsprune.protocols import ParamsObserver, ReversibleOperation, UndoHistory, VisibilityListener

# Session
from gsprune.session import FilterPass, FilterSession, PassResult, PassStatus, SessionPhase

__all__ = [
    # Version
    "__version__",
    # Data structures
    "GSData",
    "PointSet",
    "State",
    "DELETED_BIT",
    "detect_opacity_encoding",
    # Session
    "FilterSession",
    "FilterPass",
    "PassResult",
    "PassStatus",
    "SessionPhase",
    # Parameters
    "FilterKind",
    "FilterParams",
    "RangeParams",
    "OutlierParams",
    "UI_RANGES",
    # Filters
    "apply_range_filter",
    "range_filter_mask",
    "classify_outliers",
    "iter_outlier_pass",
    "OutlierResult",
    "PassProgress",
    "SpatialGrid",
    "build_spatial_grid",
    # Undo
    "EditSnapshot",
    "FilterEdit",
    "EditHistory",
    "push_edit",
    # Protocols
    "ReversibleOperation",
    "UndoHistory",
    "VisibilityListener",
    "ParamsObserver",
    # Errors
    "GsPruneError",
    "InvalidParameterError",
    "MissingDataError",
    "NoActivePointSetError",
    "ConcurrentInvocationError",
    "PassCancelledError",
]
