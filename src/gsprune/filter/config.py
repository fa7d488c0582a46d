"""
Filter parameter sets.

Provides immutable, validated parameter structures for the range filter and
the outlier classifier, plus the combined set a session tracks. Validation
happens at construction, so an invalid set can never reach a filter pass.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Self

from gsprune.constants import (
    DEFAULT_K,
    DEFAULT_MAX_SCALE,
    DEFAULT_MIN_SCALE,
    DEFAULT_OPACITY_THRESHOLD,
    DEFAULT_RADIUS,
    K_MIN,
    K_SLIDER_MAX,
    OPACITY_MAX,
    OPACITY_MIN,
    RADIUS_SLIDER_MAX,
    SCALE_SLIDER_MAX,
    SCALE_SLIDER_MIN,
)
from gsprune.exceptions import InvalidParameterError
from gsprune.validators import check_finite, check_positive, check_range


class FilterKind(Enum):
    """Kind of interactive edit, used to group slider drags into one undo entry."""

    SCALE = "scale"
    OPACITY = "opacity"
    OUTLIER = "outlier"
    RESET = "reset"


@dataclass(frozen=True)
class RangeParams:
    """
    Range filter parameters.

    Attributes:
        min_scale: Inclusive lower bound on max(log scale)
        max_scale: Inclusive upper bound on max(log scale)
        opacity_threshold: Minimum linear opacity (0.0 disables the test)
    """

    min_scale: float = DEFAULT_MIN_SCALE
    max_scale: float = DEFAULT_MAX_SCALE
    opacity_threshold: float = DEFAULT_OPACITY_THRESHOLD

    def __post_init__(self):
        """Validate configuration parameters."""
        min_scale = check_finite(self.min_scale, "min_scale")
        max_scale = check_finite(self.max_scale, "max_scale")
        threshold = check_range(self.opacity_threshold, OPACITY_MIN, OPACITY_MAX, "opacity_threshold")

        if min_scale > max_scale:
            raise InvalidParameterError(
                f"min_scale={min_scale} is greater than max_scale={max_scale}."
            )

        object.__setattr__(self, "min_scale", min_scale)
        object.__setattr__(self, "max_scale", max_scale)
        object.__setattr__(self, "opacity_threshold", threshold)

    @classmethod
    def clamped(
        cls,
        min_scale: float,
        max_scale: float,
        opacity_threshold: float = DEFAULT_OPACITY_THRESHOLD,
    ) -> Self:
        """
        Build from slider values, raising max_scale to min_scale when they cross.

        Example:
            >>> RangeParams.clamped(-3.0, -5.0)
            RangeParams(min_scale=-3.0, max_scale=-3.0, opacity_threshold=0.0)
        """
        min_scale = check_finite(min_scale, "min_scale")
        max_scale = check_finite(max_scale, "max_scale")
        return cls(min_scale, max(min_scale, max_scale), opacity_threshold)

    @property
    def uses_opacity(self) -> bool:
        return self.opacity_threshold > 0.0


@dataclass(frozen=True)
class OutlierParams:
    """
    Outlier classifier parameters.

    Attributes:
        k: Neighbors needed within radius to stay visible (>= 1)
        radius: Neighbor search radius and grid cell size (> 0)
    """

    k: int = DEFAULT_K
    radius: float = DEFAULT_RADIUS

    def __post_init__(self):
        """Validate configuration parameters."""
        k = check_range(self.k, K_MIN, math.inf, "k")
        if not k.is_integer():
            raise InvalidParameterError(f"k={self.k} must be a whole number.")
        radius = check_positive(self.radius, "radius")

        object.__setattr__(self, "k", int(k))
        object.__setattr__(self, "radius", radius)


@dataclass(frozen=True)
class FilterParams:
    """
    Complete parameter set tracked by a filter session.

    Attributes:
        range: Range filter parameters (always applied)
        outlier: Outlier classifier parameters, None when the classifier is off
    """

    range: RangeParams = field(default_factory=RangeParams)
    outlier: OutlierParams | None = None

    def __post_init__(self):
        if not isinstance(self.range, RangeParams):
            raise InvalidParameterError(f"range must be RangeParams, got {type(self.range).__name__}")
        if self.outlier is not None and not isinstance(self.outlier, OutlierParams):
            raise InvalidParameterError(
                f"outlier must be OutlierParams or None, got {type(self.outlier).__name__}"
            )

    def with_scale(self, min_scale: float, max_scale: float) -> FilterParams:
        """Copy with new scale bounds (clamped like the sliders)."""
        new_range = RangeParams.clamped(min_scale, max_scale, self.range.opacity_threshold)
        return dataclasses.replace(self, range=new_range)

    def with_opacity(self, threshold: float) -> FilterParams:
        """Copy with a new opacity threshold."""
        new_range = dataclasses.replace(self.range, opacity_threshold=threshold)
        return dataclasses.replace(self, range=new_range)

    def with_outlier(self, k: int, radius: float) -> FilterParams:
        """Copy with the outlier classifier enabled at (k, radius)."""
        return dataclasses.replace(self, outlier=OutlierParams(k=k, radius=radius))

    def without_outlier(self) -> FilterParams:
        return dataclasses.replace(self, outlier=None)

    def updated(self, kind: FilterKind, **values) -> FilterParams:
        """
        Copy with the values for one kind of edit replaced.

        Args:
            kind: SCALE (min_scale, max_scale), OPACITY (threshold) or
                OUTLIER (k, radius); omitted values keep their current setting

        Raises:
            InvalidParameterError: For unknown keys or invalid values
        """
        if kind is FilterKind.SCALE:
            _check_keys(values, {"min_scale", "max_scale"})
            return self.with_scale(
                values.get("min_scale", self.range.min_scale),
                values.get("max_scale", self.range.max_scale),
            )
        if kind is FilterKind.OPACITY:
            _check_keys(values, {"threshold"})
            return self.with_opacity(values.get("threshold", self.range.opacity_threshold))
        if kind is FilterKind.OUTLIER:
            _check_keys(values, {"k", "radius"})
            current = self.outlier or OutlierParams()
            return self.with_outlier(values.get("k", current.k), values.get("radius", current.radius))
        raise InvalidParameterError(f"Cannot update parameters for kind {kind.value!r}")


def _check_keys(values: dict, allowed: set[str]) -> None:
    unknown = set(values) - allowed
    if unknown:
        raise InvalidParameterError(
            f"Unknown parameter(s) {sorted(unknown)}. Valid options are: {', '.join(sorted(allowed))}"
        )


# Default UI slider ranges for building interfaces
UI_RANGES = {
    "min_scale": {"min": SCALE_SLIDER_MIN, "max": SCALE_SLIDER_MAX, "step": 0.01, "default": DEFAULT_MIN_SCALE},
    "max_scale": {"min": SCALE_SLIDER_MIN, "max": SCALE_SLIDER_MAX, "step": 0.01, "default": DEFAULT_MAX_SCALE},
    "opacity_threshold": {"min": OPACITY_MIN, "max": OPACITY_MAX, "step": 0.01, "default": DEFAULT_OPACITY_THRESHOLD},
    "k": {"min": K_MIN, "max": K_SLIDER_MAX, "step": 1, "default": DEFAULT_K},
    "radius": {"min": 0.0, "max": RADIUS_SLIDER_MAX, "step": 0.001, "default": DEFAULT_RADIUS},
}


__all__ = ["FilterKind", "FilterParams", "OutlierParams", "RangeParams", "UI_RANGES"]
