"""
Radius-neighbor outlier classifier.

For every visible point, counts other visible points within `radius` using the
grid hash and deletes the point if fewer than `k` are found. Distances are
inclusive (d^2 <= radius^2) and the search stops as soon as k neighbors are
seen, since only "at least k" matters.

The pass runs in chunks so a single-threaded host can keep serving frames:
`iter_outlier_pass` is a generator that yields a PassProgress after each chunk.
Neighbor counts go to a scratch buffer and are merged into the state bitmask
in one step after the last chunk, so an abandoned (closed) generator never
writes anything.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Generator
from dataclasses import dataclass

import numpy as np

from gsprune.constants import DELETED_BIT, K_MIN, YIELD_CHUNK
from gsprune.exceptions import InvalidParameterError
from gsprune.filter.config import OutlierParams
from gsprune.filter.grid import build_spatial_grid
from gsprune.filter.kernels import count_neighbors_numba, merge_outliers_numba
from gsprune.validators import validate_positive, validate_range

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PassProgress:
    """Progress report yielded between chunks."""

    processed: int
    total: int

    @property
    def fraction(self) -> float:
        return 1.0 if self.total == 0 else self.processed / self.total


@dataclass(frozen=True)
class OutlierResult:
    """
    Summary of one classifier pass.

    Neighbor counts are capped at k by the early exit, so max_neighbors never
    exceeds k.
    """

    k: int
    radius: float
    visible_before: int
    deleted: int
    deleted_total: int
    visible_after: int
    min_neighbors: int
    mean_neighbors: float
    max_neighbors: int
    elapsed: float

    @classmethod
    def empty(cls, params: OutlierParams) -> OutlierResult:
        return cls(params.k, params.radius, 0, 0, 0, 0, 0, 0.0, 0, 0.0)


def iter_outlier_pass(
    positions: np.ndarray,
    state: np.ndarray,
    params: OutlierParams,
    chunk_size: int = YIELD_CHUNK,
) -> Generator[PassProgress, None, OutlierResult]:
    """
    Run the classifier as a resumable generator.

    Yields a PassProgress after every `chunk_size` points and returns an
    OutlierResult. `state` is read for visibility when the pass starts and is
    only written after the final chunk. The caller must not mutate `state`
    while the generator is suspended.

    Args:
        positions: Point positions [N, 3]
        state: State bitmask [N] (DELETED bits are set at the end)
        params: Outlier parameters
        chunk_size: Points classified between suspensions

    Returns:
        OutlierResult (as the generator return value)

    Example:
        >>> gen = iter_outlier_pass(points.positions, points.state, OutlierParams(8, 0.05))
        >>> for progress in gen:
        ...     host.wait_for_next_frame()
    """
    if chunk_size < 1:
        raise InvalidParameterError(f"chunk_size must be >= 1, got {chunk_size}")

    start = time.perf_counter()
    n = positions.shape[0]
    if n == 0:
        logger.debug("[Outlier] Empty point set, nothing to classify")
        return OutlierResult.empty(params)

    grid = build_spatial_grid(positions, state, params.radius)
    query_ids = np.flatnonzero((state & DELETED_BIT) == 0).astype(np.int64)
    total = query_ids.shape[0]
    counts = np.zeros(total, dtype=np.int32)
    radius_sq = params.radius * params.radius

    for begin in range(0, total, chunk_size):
        end = min(begin + chunk_size, total)
        count_neighbors_numba(
            positions,
            query_ids[begin:end],
            grid.point_cell,
            grid.cells,
            grid.cell_start,
            grid.members,
            radius_sq,
            params.k,
            counts[begin:end],
        )
        if end < total:
            yield PassProgress(end, total)

    deleted = int(merge_outliers_numba(state, query_ids, counts, params.k, np.uint8(DELETED_BIT)))
    deleted_total = int(np.count_nonzero(state & DELETED_BIT))

    result = OutlierResult(
        k=params.k,
        radius=params.radius,
        visible_before=total,
        deleted=deleted,
        deleted_total=deleted_total,
        visible_after=n - deleted_total,
        min_neighbors=int(counts.min()) if total else 0,
        mean_neighbors=float(counts.mean()) if total else 0.0,
        max_neighbors=int(counts.max()) if total else 0,
        elapsed=time.perf_counter() - start,
    )

    logger.info(
        "[Outlier] k=%d, r=%s | visibleBefore=%d | deletedThisRun=%d | deletedTotal=%d "
        "| visibleAfter=%d | neighborCnt(min/avg/max)=%d/%.2f/%d | %.1f ms",
        result.k,
        result.radius,
        result.visible_before,
        result.deleted,
        result.deleted_total,
        result.visible_after,
        result.min_neighbors,
        result.mean_neighbors,
        result.max_neighbors,
        result.elapsed * 1000.0,
    )
    return result


@validate_range(K_MIN, math.inf, "k", 2)
@validate_positive("radius", 3)
def classify_outliers(
    positions: np.ndarray,
    state: np.ndarray,
    k: int,
    radius: float,
    chunk_size: int = YIELD_CHUNK,
) -> OutlierResult:
    """
    Run the classifier to completion, mutating `state` in place.

    Args:
        positions: Point positions [N, 3]
        state: State bitmask [N]
        k: Neighbors needed within radius to stay visible (>= 1)
        radius: Search radius (> 0)
        chunk_size: Points classified per chunk

    Returns:
        OutlierResult with pass statistics

    Raises:
        InvalidParameterError: If k or radius is non-finite or out of domain

    Example:
        >>> result = classify_outliers(points.positions, points.state, k=8, radius=0.05)
        >>> print(f"Removed {result.deleted} outliers")
    """
    params = OutlierParams(k=k, radius=radius)
    positions = np.ascontiguousarray(positions, dtype=np.float32)

    gen = iter_outlier_pass(positions, state, params, chunk_size)
    while True:
        try:
            next(gen)
        except StopIteration as stop:
            return stop.value


__all__ = [
    "OutlierResult",
    "PassProgress",
    "classify_outliers",
    "iter_outlier_pass",
]
