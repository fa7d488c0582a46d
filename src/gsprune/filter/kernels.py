"""
Numba-optimized kernels for filtering operations.

Provides JIT-compiled kernels for the range test, the grid neighbor count and
the final state merge. Boundary comparisons must be exact, so these kernels do
not enable fastmath.
"""

import numpy as np
from numba import njit, prange


@njit(cache=True, nogil=True, inline="always")
def _sigmoid(x: float) -> float:
    if x >= 0.0:
        return 1.0 / (1.0 + np.exp(-x))
    e = np.exp(x)
    return e / (1.0 + e)


@njit(parallel=True, cache=True, nogil=True)
def range_filter_numba(
    state: np.ndarray,
    scales: np.ndarray,
    opacities: np.ndarray,
    min_scale: float,
    max_scale: float,
    opacity_threshold: float,
    use_opacity: bool,
    decode_logit: bool,
    deleted_bit: int,
) -> int:
    """
    Mark visible points outside the scale/opacity bounds as deleted.

    Args:
        state: State bitmask [N] (modified in-place, DELETED bit only)
        scales: Log-domain scales [N, 3]
        opacities: Raw opacities [N] (ignored unless use_opacity)
        min_scale: Inclusive lower bound on max(scale)
        max_scale: Inclusive upper bound on max(scale)
        opacity_threshold: Minimum linear opacity to keep
        use_opacity: Whether the opacity test is active
        decode_logit: Apply sigmoid to opacities before comparing
        deleted_bit: DELETED flag value

    Returns:
        Number of points newly marked deleted
    """
    n = state.shape[0]
    count = 0

    for i in prange(n):
        if state[i] & deleted_bit:
            continue

        s0 = scales[i, 0]
        s1 = scales[i, 1]
        s2 = scales[i, 2]
        max_s = s0
        if s1 > max_s:
            max_s = s1
        if s2 > max_s:
            max_s = s2

        # NaN on any axis is never in range
        drop = np.isnan(s0) or np.isnan(s1) or np.isnan(s2)
        if not drop:
            drop = not (max_s >= min_scale and max_s <= max_scale)

        if not drop and use_opacity:
            alpha = np.float64(opacities[i])
            if decode_logit:
                alpha = _sigmoid(alpha)
            drop = not (alpha >= opacity_threshold)

        if drop:
            state[i] |= deleted_bit
            count += 1

    return count


@njit(cache=True, nogil=True)
def find_cell(cells: np.ndarray, cx: int, cy: int, cz: int) -> int:
    """
    Binary search for a cell coordinate in lexicographically sorted cells.

    Args:
        cells: Unique cell coordinates [M, 3], sorted by (x, y, z)
        cx, cy, cz: Cell coordinate to find

    Returns:
        Row index into cells, or -1 if absent
    """
    lo = 0
    hi = cells.shape[0] - 1
    while lo <= hi:
        mid = (lo + hi) >> 1
        mx = cells[mid, 0]
        my = cells[mid, 1]
        mz = cells[mid, 2]
        if mx < cx or (mx == cx and (my < cy or (my == cy and mz < cz))):
            lo = mid + 1
        elif mx == cx and my == cy and mz == cz:
            return mid
        else:
            hi = mid - 1
    return -1


@njit(parallel=True, cache=True, nogil=True)
def count_neighbors_numba(
    positions: np.ndarray,
    query_ids: np.ndarray,
    point_cell: np.ndarray,
    cells: np.ndarray,
    cell_start: np.ndarray,
    members: np.ndarray,
    radius_sq: float,
    k: int,
    out_counts: np.ndarray,
) -> None:
    """
    Count neighbors within radius for a chunk of query points.

    Scans the 27 cells around each query point and stops as soon as k
    neighbors are found, so counts are capped at k.

    Args:
        positions: Point positions [N, 3]
        query_ids: Point indices to classify [Q]
        point_cell: Cell row per point [N], -1 if the point is not indexed
        cells: Unique cell coordinates [M, 3]
        cell_start: Member offsets per cell [M + 1]
        members: Indexed point ids grouped by cell
        radius_sq: Squared radius (inclusive)
        k: Neighbor count needed to stay visible
        out_counts: Output neighbor counts [Q] (modified in-place)
    """
    q = query_ids.shape[0]

    for t in prange(q):
        i = query_ids[t]
        cid = point_cell[i]
        cnt = 0

        if cid >= 0:
            cx = cells[cid, 0]
            cy = cells[cid, 1]
            cz = cells[cid, 2]
            px = np.float64(positions[i, 0])
            py = np.float64(positions[i, 1])
            pz = np.float64(positions[i, 2])

            for dz in range(-1, 2):
                if cnt >= k:
                    break
                for dy in range(-1, 2):
                    if cnt >= k:
                        break
                    for dx in range(-1, 2):
                        if cnt >= k:
                            break
                        c = find_cell(cells, cx + dx, cy + dy, cz + dz)
                        if c < 0:
                            continue

                        for s in range(cell_start[c], cell_start[c + 1]):
                            j = members[s]
                            if j == i:
                                continue
                            ddx = px - np.float64(positions[j, 0])
                            ddy = py - np.float64(positions[j, 1])
                            ddz = pz - np.float64(positions[j, 2])
                            d2 = ddx * ddx + ddy * ddy + ddz * ddz
                            if d2 <= radius_sq:
                                cnt += 1
                                if cnt >= k:
                                    break

        out_counts[t] = cnt


@njit(parallel=True, cache=True, nogil=True)
def merge_outliers_numba(
    state: np.ndarray,
    query_ids: np.ndarray,
    counts: np.ndarray,
    k: int,
    deleted_bit: int,
) -> int:
    """
    Set the DELETED bit on every query point with fewer than k neighbors.

    Args:
        state: State bitmask [N] (modified in-place)
        query_ids: Classified point indices [Q]
        counts: Neighbor counts [Q]
        k: Neighbor count needed to stay visible
        deleted_bit: DELETED flag value

    Returns:
        Number of points marked deleted
    """
    q = query_ids.shape[0]
    deleted = 0

    for t in prange(q):
        if counts[t] < k:
            i = query_ids[t]
            state[i] |= deleted_bit
            deleted += 1

    return deleted
