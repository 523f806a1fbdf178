"""
Spatial Index

Per-surface uniform 2D grids over the three axis-drop projections, used to
find triangles that a ray parallel to X, Y or Z can possibly hit.

Each grid drops its ray axis:
- 'z' rays use the XY projection
- 'x' rays use the YZ projection
- 'y' rays use the XZ projection

A triangle is registered in every cell its projected bounding box touches,
and a query returns the triangles registered in the query cell and its 8
neighbours.
"""

import logging
from typing import Dict, List, Tuple

import numpy as np

from surface_boolean.core.geometry import average_edge_length

logger = logging.getLogger(__name__)

# Ray axis -> (first projected coordinate, second projected coordinate, ray coordinate)
AXIS_COMPONENTS: Dict[str, Tuple[int, int, int]] = {
    'z': (0, 1, 2),
    'x': (1, 2, 0),
    'y': (0, 2, 1),
}

MIN_CELL_SIZE = 0.1


def grid_cell_size(soup: np.ndarray) -> float:
    """Cell size for a surface: max(2 x average edge length, 0.1)."""
    return max(average_edge_length(soup) * 2.0, MIN_CELL_SIZE)


class ProjectionGrid:
    """Uniform 2D grid over one axis-drop projection of a triangle soup."""

    def __init__(self, soup: np.ndarray, axis: str, cell_size: float):
        if axis not in AXIS_COMPONENTS:
            raise ValueError(f"Unknown ray axis: {axis}")
        self.axis = axis
        self.cell_size = float(cell_size)
        self._cells: Dict[Tuple[int, int], List[int]] = {}
        self._build(soup)

    def _build(self, soup: np.ndarray) -> None:
        ia, ib, _ = AXIS_COMPONENTS[self.axis]
        if len(soup) == 0:
            return
        proj = soup[:, :, [ia, ib]]
        lo = np.floor(proj.min(axis=1) / self.cell_size).astype(np.int64)
        hi = np.floor(proj.max(axis=1) / self.cell_size).astype(np.int64)
        for idx in range(len(soup)):
            for ca in range(lo[idx, 0], hi[idx, 0] + 1):
                for cb in range(lo[idx, 1], hi[idx, 1] + 1):
                    self._cells.setdefault((ca, cb), []).append(idx)

    @property
    def cell_count(self) -> int:
        return len(self._cells)

    def query(self, pa: float, pb: float) -> np.ndarray:
        """Unique candidate triangle indices around projected point (pa, pb)."""
        ca = int(np.floor(pa / self.cell_size))
        cb = int(np.floor(pb / self.cell_size))
        found: List[int] = []
        for da in (-1, 0, 1):
            for db in (-1, 0, 1):
                cell = self._cells.get((ca + da, cb + db))
                if cell:
                    found.extend(cell)
        if not found:
            return np.zeros(0, dtype=np.int64)
        return np.unique(np.asarray(found, dtype=np.int64))


class SurfaceGrids:
    """The three projection grids of one surface, plus the soup they index."""

    def __init__(self, soup: np.ndarray, cell_size: float = None):
        self.soup = soup
        self.cell_size = grid_cell_size(soup) if cell_size is None else float(cell_size)
        self.grids: Dict[str, ProjectionGrid] = {
            axis: ProjectionGrid(soup, axis, self.cell_size) for axis in ('z', 'x', 'y')
        }
        logger.debug(
            f"Built projection grids for {len(soup)} triangles "
            f"(cell size {self.cell_size:.4f}, "
            f"{', '.join(f'{a}: {g.cell_count}' for a, g in self.grids.items())} cells)"
        )

    def __getitem__(self, axis: str) -> ProjectionGrid:
        return self.grids[axis]

    def candidates(self, point: np.ndarray, axis: str) -> np.ndarray:
        ia, ib, _ = AXIS_COMPONENTS[axis]
        return self.grids[axis].query(point[ia], point[ib])
