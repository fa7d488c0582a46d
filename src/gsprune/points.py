"""
Point set handle: read-only attribute buffers plus the mutable state bitmask.

The attribute schema is fixed and resolved once when the point set is built:
positions [N, 3], log-domain scales [N, 3], optional opacities [N] and a uint8
state bitmask [N]. Missing or malformed buffers fail fast with MissingDataError.
"""

from __future__ import annotations

import logging

import numpy as np
from gsply import GSData
from numpy.typing import NDArray

from gsprune.constants import (
    DELETED_BIT,
    OPACITY_ENCODING_LINEAR,
    OPACITY_ENCODING_LOGIT,
)
from gsprune.exceptions import MissingDataError

logger = logging.getLogger(__name__)

Float32Array = NDArray[np.float32]
StateArray = NDArray[np.uint8]

_KEEP_OTHER_BITS = np.uint8(0xFF ^ DELETED_BIT)


def detect_opacity_encoding(opacities: np.ndarray | None) -> str:
    """
    Guess whether opacities are stored linear [0, 1] or logit-encoded.

    Only the first value is sampled: anything outside [0, 1] means logit.
    A logit-encoded set whose first value happens to land inside [0, 1] is
    misread as linear; this matches the editor behavior and is kept as is.

    Args:
        opacities: Raw opacity buffer [N] or None

    Returns:
        "logit" or "linear"
    """
    if opacities is None or len(opacities) == 0:
        return OPACITY_ENCODING_LINEAR
    first = float(opacities[0])
    if first < 0.0 or first > 1.0:
        return OPACITY_ENCODING_LOGIT
    return OPACITY_ENCODING_LINEAR


def _as_float32(array, name: str, shape_tail: tuple[int, ...]) -> Float32Array:
    if array is None:
        raise MissingDataError(f"[PointSet] Missing '{name}' buffer.")
    array = np.ascontiguousarray(array, dtype=np.float32)
    if array.shape[1:] != shape_tail:
        raise MissingDataError(
            f"[PointSet] '{name}' must have shape [N{''.join(f', {d}' for d in shape_tail)}], "
            f"got {array.shape}"
        )
    if array.shape[0] == 0:
        raise MissingDataError(f"[PointSet] '{name}' buffer is empty.")
    return array


class PointSet:
    """
    Explicit handle on one point cloud.

    Attribute buffers are borrowed read-only; the state bitmask is the only
    mutable buffer and is created zero-filled on first use if absent.

    Attributes:
        positions: Point positions [N, 3] float32
        scales: Log-domain scales [N, 3] float32
        opacities: Raw opacities [N] float32, or None
        opacity_encoding: "logit" or "linear", detected at construction

    Example:
        >>> points = PointSet.from_gsdata(gsply.plyread("scene.ply"))
        >>> points.ensure_state()
        >>> print(points.num_visible)
    """

    __slots__ = ("positions", "scales", "opacities", "opacity_encoding", "_state")

    def __init__(
        self,
        positions: np.ndarray,
        scales: np.ndarray,
        opacities: np.ndarray | None = None,
        state: np.ndarray | None = None,
    ):
        positions = _as_float32(positions, "positions", (3,))
        scales = _as_float32(scales, "scales", (3,))
        n = positions.shape[0]

        if scales.shape[0] != n:
            raise MissingDataError(
                f"[PointSet] scales length {scales.shape[0]} doesn't match positions length {n}"
            )

        if opacities is not None:
            opacities = np.ascontiguousarray(opacities, dtype=np.float32)
            if opacities.ndim == 2 and opacities.shape[1] == 1:
                opacities = opacities.reshape(opacities.shape[0])
            if opacities.shape != (n,):
                raise MissingDataError(
                    f"[PointSet] opacities shape {opacities.shape} doesn't match {n} points"
                )

        if state is not None:
            if not isinstance(state, np.ndarray) or state.dtype != np.uint8:
                raise MissingDataError("[PointSet] state must be a uint8 numpy array")
            if state.shape != (n,):
                raise MissingDataError(
                    f"[PointSet] state shape {state.shape} doesn't match {n} points"
                )

        # Read-only views, the host keeps write access to its own buffers
        positions = positions.view()
        positions.flags.writeable = False
        scales = scales.view()
        scales.flags.writeable = False
        if opacities is not None:
            opacities = opacities.view()
            opacities.flags.writeable = False

        self.positions = positions
        self.scales = scales
        self.opacities = opacities
        self.opacity_encoding = detect_opacity_encoding(opacities)
        self._state = state

        logger.debug(
            "[PointSet] Loaded %d points (opacity=%s, state=%s)",
            n,
            "none" if opacities is None else self.opacity_encoding,
            "present" if state is not None else "lazy",
        )

    @classmethod
    def from_arrays(
        cls,
        x: np.ndarray,
        y: np.ndarray,
        z: np.ndarray,
        scale0: np.ndarray,
        scale1: np.ndarray,
        scale2: np.ndarray,
        opacity: np.ndarray | None = None,
        state: np.ndarray | None = None,
    ) -> PointSet:
        """
        Build a point set from per-component buffers (x, y, z, scale_0..2, opacity).

        Raises:
            MissingDataError: If any component is missing or lengths differ
        """
        columns = {"x": x, "y": y, "z": z, "scale_0": scale0, "scale_1": scale1, "scale_2": scale2}
        for name, column in columns.items():
            if column is None:
                raise MissingDataError(f"[PointSet] Missing '{name}' buffer.")
        lengths = {len(column) for column in columns.values()}
        if len(lengths) != 1:
            raise MissingDataError(f"[PointSet] Attribute lengths differ: {sorted(lengths)}")

        positions = np.stack([x, y, z], axis=1).astype(np.float32, copy=False)
        scales = np.stack([scale0, scale1, scale2], axis=1).astype(np.float32, copy=False)
        return cls(positions, scales, opacity, state)

    @classmethod
    def from_gsdata(cls, data: GSData, state: np.ndarray | None = None) -> PointSet:
        """
        Build a point set from a gsply GSData container.

        Uses means, scales and opacities as stored (PLY files carry log scales
        and logit opacities).
        """
        if data is None:
            raise MissingDataError("[PointSet] No GSData provided.")
        return cls(
            positions=data.means,
            scales=data.scales,
            opacities=getattr(data, "opacities", None),
            state=state,
        )

    def __len__(self) -> int:
        return self.positions.shape[0]

    def __repr__(self) -> str:
        return (
            f"PointSet(n={len(self)}, opacity={self.opacity_encoding}, "
            f"deleted={self.num_deleted if self.has_state else 0})"
        )

    @property
    def has_state(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> StateArray:
        """State bitmask, created zero-filled if absent."""
        return self.ensure_state()

    def ensure_state(self) -> StateArray:
        """Return the state bitmask, creating it zero-filled on first use."""
        if self._state is None:
            self._state = np.zeros(len(self), dtype=np.uint8)
            logger.info("[PointSet] Created state buffer for %d points", len(self))
        return self._state

    def visible_mask(self) -> NDArray[np.bool_]:
        """Boolean mask [N] of points whose DELETED bit is clear."""
        return (self.state & DELETED_BIT) == 0

    @property
    def num_deleted(self) -> int:
        return int(np.count_nonzero(self.state & DELETED_BIT))

    @property
    def num_visible(self) -> int:
        return len(self) - self.num_deleted

    @property
    def is_opacity_logit(self) -> bool:
        return self.opacity_encoding == OPACITY_ENCODING_LOGIT

    def decoded_opacities(self) -> Float32Array | None:
        """
        Opacities in linear [0, 1] space.

        Applies sigmoid when the buffer is logit-encoded, otherwise returns the
        raw buffer.
        """
        if self.opacities is None:
            return None
        if not self.is_opacity_logit:
            return self.opacities
        return (1.0 / (1.0 + np.exp(-self.opacities.astype(np.float64)))).astype(np.float32)

    def snapshot_state(self) -> StateArray:
        """Copy of the current state bitmask."""
        return self.state.copy()

    def restore_state(self, snapshot: np.ndarray) -> None:
        """
        Copy the DELETED bit of every point from a snapshot.

        Other bits (selection, lock) keep their current value. This is the only
        bulk write the filter engine performs.
        """
        state = self.state
        if snapshot.shape != state.shape:
            raise MissingDataError(
                f"[PointSet] Snapshot shape {snapshot.shape} doesn't match state {state.shape}"
            )
        state[:] = (state & _KEEP_OTHER_BITS) | (snapshot & DELETED_BIT)


__all__ = ["PointSet", "detect_opacity_encoding"]
