"""
Uniform grid hash over visible points.

Cell size equals the query radius, so every neighbor within the radius of a
point lives in one of the 27 cells around that point's own cell. The grid is
stored CSR-style: unique cell coordinates sorted lexicographically, an offsets
array and the member point ids grouped per cell. Lookups are binary searches
(see kernels.find_cell).

Grids are cheap to build and must never be reused across passes: either the
radius or the visibility they were built from may have changed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from gsprune.constants import DELETED_BIT
from gsprune.filter.kernels import find_cell
from gsprune.validators import validate_positive

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpatialGrid:
    """
    Grid hash built for one radius over one visibility state.

    Attributes:
        radius: Cell size (equal to the neighbor query radius)
        cells: Unique integer cell coordinates [M, 3], sorted by (x, y, z)
        cell_start: Offsets into members per cell [M + 1]
        members: Indexed point ids grouped by cell
        point_cell: Row into cells per point [N], -1 for points not indexed
    """

    radius: float
    cells: np.ndarray = field(repr=False)
    cell_start: np.ndarray = field(repr=False)
    members: np.ndarray = field(repr=False)
    point_cell: np.ndarray = field(repr=False)

    @property
    def num_cells(self) -> int:
        return self.cells.shape[0]

    @property
    def num_indexed(self) -> int:
        return self.members.shape[0]

    def cell_key(self, position) -> tuple[int, int, int]:
        """Integer cell coordinate of an arbitrary position."""
        key = np.floor(np.asarray(position, dtype=np.float64) * (1.0 / self.radius))
        return int(key[0]), int(key[1]), int(key[2])

    def cell_of(self, index: int) -> tuple[int, int, int] | None:
        """Cell coordinate of an indexed point, or None if it is not indexed."""
        cid = self.point_cell[index]
        if cid < 0:
            return None
        return tuple(int(c) for c in self.cells[cid])

    def members_of(self, cell: tuple[int, int, int]) -> np.ndarray:
        """Point ids stored in a cell (empty if the cell is absent)."""
        cid = find_cell(self.cells, int(cell[0]), int(cell[1]), int(cell[2]))
        if cid < 0:
            return np.empty(0, dtype=np.int64)
        return self.members[self.cell_start[cid] : self.cell_start[cid + 1]]

    def to_dict(self) -> dict[tuple[int, int, int], list[int]]:
        """Cell coordinate -> sorted list of point ids, for inspection and tests."""
        result = {}
        for cid in range(self.num_cells):
            key = tuple(int(c) for c in self.cells[cid])
            ids = self.members[self.cell_start[cid] : self.cell_start[cid + 1]]
            result[key] = sorted(int(i) for i in ids)
        return result

    def __repr__(self) -> str:
        return f"SpatialGrid(radius={self.radius}, cells={self.num_cells}, indexed={self.num_indexed})"


@validate_positive("radius", 2)
def build_spatial_grid(positions: np.ndarray, state: np.ndarray, radius: float) -> SpatialGrid:
    """
    Build the grid hash of all visible points for a query radius.

    Points with the DELETED bit set are left out, as are points with
    non-finite coordinates.

    Args:
        positions: Point positions [N, 3]
        state: State bitmask [N]
        radius: Query radius and cell size (> 0)

    Returns:
        SpatialGrid for this radius and visibility

    Raises:
        InvalidParameterError: If radius is not finite and positive

    Example:
        >>> grid = build_spatial_grid(points.positions, points.state, 0.05)
        >>> print(grid.num_cells)
    """
    radius = float(radius)
    n = positions.shape[0]

    visible = (state & DELETED_BIT) == 0
    visible &= np.isfinite(positions).all(axis=1)
    indexed = np.flatnonzero(visible).astype(np.int64)

    inv = 1.0 / radius
    point_cell = np.full(n, -1, dtype=np.int64)

    if indexed.size == 0:
        logger.debug("[Grid] No visible points to index (r=%s)", radius)
        return SpatialGrid(
            radius=radius,
            cells=np.empty((0, 3), dtype=np.int64),
            cell_start=np.zeros(1, dtype=np.int64),
            members=indexed,
            point_cell=point_cell,
        )

    coords = np.floor(positions[indexed].astype(np.float64) * inv).astype(np.int64)

    # Sort by (x, y, z); lexsort uses the last key as primary
    order = np.lexsort((coords[:, 2], coords[:, 1], coords[:, 0]))
    coords = coords[order]
    members = indexed[order]

    boundary = np.empty(len(coords), dtype=bool)
    boundary[0] = True
    boundary[1:] = np.any(coords[1:] != coords[:-1], axis=1)
    starts = np.flatnonzero(boundary)

    cells = np.ascontiguousarray(coords[starts])
    cell_start = np.append(starts, len(coords)).astype(np.int64)
    point_cell[members] = np.cumsum(boundary) - 1

    logger.debug(
        "[Grid] Indexed %d/%d points into %d cells (r=%s)",
        len(members),
        n,
        len(cells),
        radius,
    )

    return SpatialGrid(
        radius=radius,
        cells=cells,
        cell_start=cell_start,
        members=np.ascontiguousarray(members),
        point_cell=point_cell,
    )


__all__ = ["SpatialGrid", "build_spatial_grid"]
