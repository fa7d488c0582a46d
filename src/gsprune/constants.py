"""
Constants and default values for gsprune.

Centralizes state flags, filter defaults and slider ranges.
"""

from __future__ import annotations

from enum import IntFlag


class State(IntFlag):
    """Per-point state bits stored in the uint8 state bitmask."""

    NONE = 0
    SELECTED = 1
    LOCKED = 2
    DELETED = 4


DELETED_BIT = int(State.DELETED)

# =============================================================================
# Range Filter Constants
# =============================================================================

# Scale bounds are in log domain (scale_0/1/2 as stored in PLY files)
DEFAULT_MIN_SCALE = -12.0
DEFAULT_MAX_SCALE = 2.0
SCALE_SLIDER_MIN = -12.0
SCALE_SLIDER_MAX = 2.0

# Opacity threshold is always linear, 0.0 disables the opacity test
DEFAULT_OPACITY_THRESHOLD = 0.0
OPACITY_MIN = 0.0
OPACITY_MAX = 1.0

# =============================================================================
# Outlier Classifier Constants
# =============================================================================

DEFAULT_K = 8
K_MIN = 1
K_SLIDER_MAX = 64
DEFAULT_RADIUS = 0.05
RADIUS_SLIDER_MAX = 1.0

# Points processed between cooperative suspensions
YIELD_CHUNK = 16384

# =============================================================================
# Session Constants
# =============================================================================

DEFAULT_HISTORY_SIZE = 100

OPACITY_ENCODING_LINEAR = "linear"
OPACITY_ENCODING_LOGIT = "logit"
