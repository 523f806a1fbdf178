"""
Geometry Kernel

Vector and triangle primitives shared by every stage of the surface Boolean
pipeline.

Representations:
- Triangle soup: (n, 3, 3) float64 array of triangle corners, no shared indices
- Indexed mesh: (m, 3) float64 points plus (k, 3) int64 faces

Vertices have no persistent identity. Wherever two stages need to agree that
two corners are "the same vertex", they go through VertexGrid, which keys
points by integer cell coordinates and merges within a distance tolerance.
"""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np
import triangle as tr

logger = logging.getLogger(__name__)

# Cell offsets of a 3x3x3 neighbourhood, used by every grid search
NEIGHBOR_OFFSETS_3D: List[Tuple[int, int, int]] = [
    (dx, dy, dz) for dx in (-1, 0, 1) for dy in (-1, 0, 1) for dz in (-1, 0, 1)
]


# ============================================================================
# BASIC PRIMITIVES
# ============================================================================

def as_soup(triangles) -> np.ndarray:
    """Coerce anything array-like into an (n, 3, 3) float64 soup."""
    soup = np.asarray(triangles, dtype=np.float64)
    if soup.size == 0:
        return np.zeros((0, 3, 3), dtype=np.float64)
    return soup.reshape(-1, 3, 3)


def distance(a: np.ndarray, b: np.ndarray) -> float:
    """Euclidean distance between two points."""
    return float(np.linalg.norm(np.asarray(b, dtype=np.float64) - np.asarray(a, dtype=np.float64)))


def triangle_area(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> float:
    """Area of a single 3D triangle."""
    return 0.5 * float(np.linalg.norm(np.cross(b - a, c - a)))


def triangle_areas(soup: np.ndarray) -> np.ndarray:
    """Per-triangle areas of a soup, shape (n,)."""
    if len(soup) == 0:
        return np.zeros(0, dtype=np.float64)
    cross = np.cross(soup[:, 1] - soup[:, 0], soup[:, 2] - soup[:, 0])
    return 0.5 * np.linalg.norm(cross, axis=1)


def triangle_normals(soup: np.ndarray, normalize: bool = True) -> np.ndarray:
    """
    Per-triangle normals following the winding (v0, v1, v2).

    Degenerate triangles get a zero normal when normalize is True.
    """
    if len(soup) == 0:
        return np.zeros((0, 3), dtype=np.float64)
    normals = np.cross(soup[:, 1] - soup[:, 0], soup[:, 2] - soup[:, 0])
    if not normalize:
        return normals
    lengths = np.linalg.norm(normals, axis=1)
    safe = np.where(lengths > 1e-300, lengths, 1.0)
    return np.where((lengths > 1e-300)[:, None], normals / safe[:, None], 0.0)


def triangle_centroids(soup: np.ndarray) -> np.ndarray:
    """Per-triangle centroids, shape (n, 3)."""
    if len(soup) == 0:
        return np.zeros((0, 3), dtype=np.float64)
    return soup.mean(axis=1)


def edge_lengths(soup: np.ndarray) -> np.ndarray:
    """Lengths of edges (v0v1, v1v2, v2v0) per triangle, shape (n, 3)."""
    if len(soup) == 0:
        return np.zeros((0, 3), dtype=np.float64)
    rolled = np.roll(soup, -1, axis=1)
    return np.linalg.norm(rolled - soup, axis=2)


def average_edge_length(soup: np.ndarray) -> float:
    """Mean edge length over all triangles (0.0 for an empty soup)."""
    if len(soup) == 0:
        return 0.0
    return float(edge_lengths(soup).mean())


def triangle_bounds(soup: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Axis-aligned bounding boxes per triangle as (mins, maxs), each (n, 3)."""
    return soup.min(axis=1), soup.max(axis=1)


def compute_bounds(points) -> Dict[str, float]:
    """
    Bounding box of a point set in the record format used by surface stores.

    Returns:
        Dict with minX, maxX, minY, maxY, minZ, maxZ (all 0.0 for no points)
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if len(pts) == 0:
        return {'minX': 0.0, 'maxX': 0.0, 'minY': 0.0, 'maxY': 0.0, 'minZ': 0.0, 'maxZ': 0.0}
    lo = pts.min(axis=0)
    hi = pts.max(axis=0)
    return {
        'minX': float(lo[0]), 'maxX': float(hi[0]),
        'minY': float(lo[1]), 'maxY': float(hi[1]),
        'minZ': float(lo[2]), 'maxZ': float(hi[2]),
    }


# ============================================================================
# POSITIONAL VERTEX IDENTITY
# ============================================================================

class VertexGrid:
    """
    Uniform 3D hash grid keyed by integer cell coordinates.

    Each stored point gets a dense integer id. Lookups search the 27 cells
    around the query, so any stored point within one cell size is found.
    """

    def __init__(self, cell_size: float):
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        self.cell_size = float(cell_size)
        self._cells: Dict[Tuple[int, int, int], List[int]] = {}
        self._points: List[np.ndarray] = []

    def __len__(self) -> int:
        return len(self._points)

    @property
    def points(self) -> np.ndarray:
        if not self._points:
            return np.zeros((0, 3), dtype=np.float64)
        return np.array(self._points, dtype=np.float64)

    def cell_of(self, p) -> Tuple[int, int, int]:
        s = self.cell_size
        return (int(np.floor(p[0] / s)), int(np.floor(p[1] / s)), int(np.floor(p[2] / s)))

    def insert(self, p) -> int:
        """Store a point unconditionally and return its new id."""
        idx = len(self._points)
        point = np.array(p, dtype=np.float64)
        self._points.append(point)
        self._cells.setdefault(self.cell_of(point), []).append(idx)
        return idx

    def candidates(self, p) -> List[int]:
        """Ids stored in the 27 cells around p."""
        gx, gy, gz = self.cell_of(p)
        found: List[int] = []
        for dx, dy, dz in NEIGHBOR_OFFSETS_3D:
            cell = self._cells.get((gx + dx, gy + dy, gz + dz))
            if cell:
                found.extend(cell)
        return found

    def find_first(self, p, tolerance: float) -> Optional[int]:
        """First stored id (in scan order) within tolerance of p."""
        tol_sq = tolerance * tolerance
        for idx in self.candidates(p):
            d = self._points[idx] - p
            if float(d @ d) <= tol_sq:
                return idx
        return None

    def find_nearest(self, p, tolerance: float) -> Optional[int]:
        """Nearest stored id strictly closer than tolerance to p."""
        tol_sq = tolerance * tolerance
        best_idx = None
        best_sq = tol_sq
        for idx in self.candidates(p):
            d = self._points[idx] - p
            dist_sq = float(d @ d)
            if dist_sq < best_sq:
                best_sq = dist_sq
                best_idx = idx
        return best_idx

    def find_or_insert(self, p, tolerance: float, nearest: bool = False) -> int:
        point = np.asarray(p, dtype=np.float64)
        if nearest:
            found = self.find_nearest(point, tolerance)
        else:
            found = self.find_first(point, tolerance)
        if found is not None:
            return found
        return self.insert(point)


def vertex_key(p, precision: int = 6) -> Tuple[int, int, int]:
    """Integer lattice key of a point, rounded to the given number of decimals."""
    scale = 10.0 ** precision
    return (int(round(p[0] * scale)), int(round(p[1] * scale)), int(round(p[2] * scale)))


def index_soup(soup: np.ndarray, tolerance: float = 1e-9) -> Tuple[np.ndarray, np.ndarray]:
    """
    Give every soup corner a positional vertex id.

    Corners within tolerance share an id. The soup itself is not modified.

    Returns:
        Tuple of (points (m, 3), faces (n, 3))
    """
    cell = max(tolerance * 2, 1e-6)
    grid = VertexGrid(cell)
    faces = np.empty((len(soup), 3), dtype=np.int64)
    for i, tri in enumerate(soup):
        for j in range(3):
            faces[i, j] = grid.find_or_insert(tri[j], tolerance)
    return grid.points, faces


def soup_vertex_ids(soup: np.ndarray, precision: int = 6) -> Tuple[np.ndarray, np.ndarray]:
    """
    Vertex ids by exact lattice position (coordinates rounded to precision).

    Used for edge bookkeeping, where corners either coincide or do not.

    Returns:
        Tuple of (points (m, 3) first corner seen at each position, faces (n, 3))
    """
    if len(soup) == 0:
        return np.zeros((0, 3), dtype=np.float64), np.zeros((0, 3), dtype=np.int64)
    corners = soup.reshape(-1, 3)
    keys = np.round(corners * (10.0 ** precision)).astype(np.int64)
    _, first, inverse = np.unique(keys, axis=0, return_index=True, return_inverse=True)
    return corners[first], inverse.reshape(-1, 3).astype(np.int64)


def indexed_to_soup(points: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """Expand an indexed mesh back into a triangle soup."""
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    if len(faces) == 0:
        return np.zeros((0, 3, 3), dtype=np.float64)
    return np.asarray(points, dtype=np.float64)[faces]


# ============================================================================
# EDGE BOOKKEEPING
# ============================================================================

def face_edges(faces: np.ndarray) -> np.ndarray:
    """
    Directed half-edges of every face, shape (3k, 2).

    Row 3*f + j is the edge from corner j to corner (j+1) % 3 of face f.
    """
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    return np.stack([faces, np.roll(faces, -1, axis=1)], axis=2).reshape(-1, 2)


def edge_table(faces: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Undirected edge table of an indexed mesh.

    Returns:
        Tuple of (unique_edges (e, 2) sorted per row,
                  counts (e,) number of faces using each edge,
                  face_edge_ids (k, 3) unique-edge id of each face edge)
    """
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    if len(faces) == 0:
        empty = np.zeros((0, 2), dtype=np.int64)
        return empty, np.zeros(0, dtype=np.int64), np.zeros((0, 3), dtype=np.int64)
    half_edges = np.sort(face_edges(faces), axis=1)
    unique_edges, inverse, counts = np.unique(
        half_edges, axis=0, return_inverse=True, return_counts=True
    )
    return unique_edges, counts, inverse.reshape(-1, 3)


def count_open_edges(faces: np.ndarray) -> Tuple[int, int]:
    """Number of (boundary, over-shared) undirected edges of an indexed mesh."""
    _, counts, _ = edge_table(faces)
    return int(np.sum(counts == 1)), int(np.sum(counts > 2))


# ============================================================================
# CONSTRAINED DELAUNAY
# ============================================================================

def constrained_triangulation(
    vertices_2d: np.ndarray,
    segments: List[Tuple[int, int]],
    options: str = 'pQ'
) -> Optional[dict]:
    """
    Constrained Delaunay triangulation of 2D points via Triangle.

    When Triangle rejects the constraint set as a whole (collinear or
    overlapping segments), the segments are added back one at a time and
    each one Triangle rejects is skipped, so a single bad constraint does
    not cost the others. With no usable constraint the points are
    triangulated without any.

    Returns:
        Triangle's output dict, or None if every attempt fails. Vertices with
        index >= len(vertices_2d) were inserted by Triangle.
    """
    vertices = np.asarray(vertices_2d, dtype=np.float64)
    data = {'vertices': vertices}
    if segments:
        data['segments'] = np.asarray(segments, dtype=np.int32)
    try:
        return tr.triangulate(data, options)
    except (RuntimeError, ValueError) as e:
        if not segments:
            logger.debug(f"Triangulation failed: {e}")
            return None
        logger.debug(f"Constrained triangulation failed ({e}), retrying constraint by constraint")

    accepted: List[Tuple[int, int]] = []
    result = None
    for segment in segments:
        trial = accepted + [segment]
        try:
            result = tr.triangulate({'vertices': vertices, 'segments': np.asarray(trial, dtype=np.int32)}, options)
        except (RuntimeError, ValueError) as e:
            logger.debug(f"Skipping constraint {tuple(segment)}: {e}")
            continue
        accepted = trial
    if accepted:
        logger.debug(f"Kept {len(accepted)} of {len(segments)} constraints")
        return result

    try:
        return tr.triangulate({'vertices': vertices}, options.replace('p', ''))
    except (RuntimeError, ValueError) as e:
        logger.debug(f"Unconstrained triangulation failed: {e}")
        return None
