"""
Triangle-Triangle Intersection

Finds the chords where the triangles of surface A cross the triangles of
surface B.

Algorithm:
1. Broad phase: bucket B's triangle bounding boxes into a uniform 3D grid and
   only test A triangles against B triangles whose boxes overlap
2. Narrow phase (Moller): signed distances of each triangle's corners to the
   other's supporting plane reject separated pairs early
3. The two plane-crossing points of each triangle are projected onto the
   planes' intersection line, and the overlap of the two intervals is the chord

Coplanar pairs and pairs touching in a single point produce no chord.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Tuple

import numpy as np

from surface_boolean.core.geometry import VertexGrid, triangle_bounds

logger = logging.getLogger(__name__)

# Signed plane distances (unit normal) below this snap to zero
PLANE_EPSILON = 1e-9
# Chords shorter than this are treated as point contacts
MIN_CHORD_LENGTH = 1e-9


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass
class IntersectionSegment:
    """A chord where triangle idx_a of surface A crosses triangle idx_b of surface B."""
    p0: np.ndarray
    p1: np.ndarray
    idx_a: int
    idx_b: int

    @property
    def length(self) -> float:
        return float(np.linalg.norm(self.p1 - self.p0))

    def to_dict(self) -> dict:
        return {
            'p0': {'x': float(self.p0[0]), 'y': float(self.p0[1]), 'z': float(self.p0[2])},
            'p1': {'x': float(self.p1[0]), 'y': float(self.p1[1]), 'z': float(self.p1[2])},
            'idxA': int(self.idx_a),
            'idxB': int(self.idx_b),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'IntersectionSegment':
        def _pt(p):
            if isinstance(p, dict):
                return np.array([p['x'], p['y'], p['z']], dtype=np.float64)
            return np.asarray(p, dtype=np.float64)
        return cls(
            p0=_pt(data['p0']),
            p1=_pt(data['p1']),
            idx_a=int(data.get('idxA', data.get('idx_a', -1))),
            idx_b=int(data.get('idxB', data.get('idx_b', -1))),
        )


# ============================================================================
# NARROW PHASE
# ============================================================================

def _plane_distances(tri: np.ndarray, other: np.ndarray) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """Unit normal of other and signed distances of tri's corners to its plane."""
    normal = np.cross(other[1] - other[0], other[2] - other[0])
    length = np.linalg.norm(normal)
    if length < 1e-15:
        return None
    normal = normal / length
    dist = (tri - other[0]) @ normal
    dist[np.abs(dist) < PLANE_EPSILON] = 0.0
    return normal, dist


def _plane_crossing_points(tri: np.ndarray, dist: np.ndarray) -> List[np.ndarray]:
    """Points where a triangle meets a plane, given its corners' signed distances."""
    points = [tri[i] for i in range(3) if dist[i] == 0.0]
    for i, j in ((0, 1), (1, 2), (2, 0)):
        if dist[i] * dist[j] < 0.0:
            t = dist[i] / (dist[i] - dist[j])
            points.append(tri[i] + (tri[j] - tri[i]) * t)
    return points


def intersect_triangle_pair(tri_a: np.ndarray, tri_b: np.ndarray) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """
    Intersection chord of two 3D triangles.

    Args:
        tri_a: (3, 3) corners of the first triangle
        tri_b: (3, 3) corners of the second triangle

    Returns:
        (p0, p1) endpoints of the chord, or None if the triangles are separated,
        coplanar, degenerate, or only touch in a point
    """
    res_b = _plane_distances(tri_a, tri_b)
    if res_b is None:
        return None
    normal_b, dist_a = res_b
    if np.all(dist_a > 0) or np.all(dist_a < 0):
        return None

    res_a = _plane_distances(tri_b, tri_a)
    if res_a is None:
        return None
    normal_a, dist_b = res_a
    if np.all(dist_b > 0) or np.all(dist_b < 0):
        return None

    # Coplanar pairs are not handled
    if np.all(dist_a == 0.0) or np.all(dist_b == 0.0):
        return None

    direction = np.cross(normal_a, normal_b)
    if np.linalg.norm(direction) < 1e-12:
        return None

    pts_a = _plane_crossing_points(tri_a, dist_a)
    pts_b = _plane_crossing_points(tri_b, dist_b)
    if len(pts_a) < 2 or len(pts_b) < 2:
        return None

    ta = [float(p @ direction) for p in pts_a[:2]]
    tb = [float(p @ direction) for p in pts_b[:2]]
    order_a = np.argsort(ta)
    order_b = np.argsort(tb)
    a_lo, a_hi = pts_a[order_a[0]], pts_a[order_a[1]]
    b_lo, b_hi = pts_b[order_b[0]], pts_b[order_b[1]]

    # Overlap of the two intervals along the line direction
    lo = a_lo if ta[order_a[0]] >= tb[order_b[0]] else b_lo
    hi = a_hi if ta[order_a[1]] <= tb[order_b[1]] else b_hi
    t_lo = max(ta[order_a[0]], tb[order_b[0]])
    t_hi = min(ta[order_a[1]], tb[order_b[1]])
    if t_hi - t_lo <= MIN_CHORD_LENGTH * np.linalg.norm(direction):
        return None

    p0 = np.array(lo, dtype=np.float64)
    p1 = np.array(hi, dtype=np.float64)
    if np.linalg.norm(p1 - p0) < MIN_CHORD_LENGTH:
        return None
    return p0, p1


# ============================================================================
# BROAD PHASE
# ============================================================================

def _bounds_grid(mins: np.ndarray, maxs: np.ndarray, cell: float) -> Dict[Tuple[int, int, int], List[int]]:
    grid: Dict[Tuple[int, int, int], List[int]] = {}
    lo = np.floor(mins / cell).astype(np.int64)
    hi = np.floor(maxs / cell).astype(np.int64)
    for idx in range(len(mins)):
        for gx in range(lo[idx, 0], hi[idx, 0] + 1):
            for gy in range(lo[idx, 1], hi[idx, 1] + 1):
                for gz in range(lo[idx, 2], hi[idx, 2] + 1):
                    grid.setdefault((gx, gy, gz), []).append(idx)
    return grid


def find_intersection_segments(
    soup_a: np.ndarray,
    soup_b: np.ndarray,
    progress_callback: Optional[Callable[[int, int], None]] = None
) -> List[IntersectionSegment]:
    """
    All intersection chords between two triangle soups.

    Args:
        soup_a: (n, 3, 3) triangles of surface A
        soup_b: (m, 3, 3) triangles of surface B
        progress_callback: Optional callback(current, total) over A triangles

    Returns:
        List of IntersectionSegment tagged with both source triangle indices
    """
    segments: List[IntersectionSegment] = []
    if len(soup_a) == 0 or len(soup_b) == 0:
        return segments

    mins_a, maxs_a = triangle_bounds(soup_a)
    mins_b, maxs_b = triangle_bounds(soup_b)

    # Reject early when the surfaces' boxes do not overlap at all
    if np.any(mins_a.min(axis=0) > maxs_b.max(axis=0)) or np.any(maxs_a.max(axis=0) < mins_b.min(axis=0)):
        logger.debug("Surface bounding boxes are disjoint, no intersection possible")
        return segments

    extent = float(np.mean(np.max(maxs_b - mins_b, axis=1)))
    cell = max(extent, 1e-6)
    grid = _bounds_grid(mins_b, maxs_b, cell)

    pad = 1e-9
    lo_a = np.floor((mins_a - pad) / cell).astype(np.int64)
    hi_a = np.floor((maxs_a + pad) / cell).astype(np.int64)
    pairs_tested = 0
    total = len(soup_a)

    for ia in range(total):
        candidates: Set[int] = set()
        for gx in range(lo_a[ia, 0], hi_a[ia, 0] + 1):
            for gy in range(lo_a[ia, 1], hi_a[ia, 1] + 1):
                for gz in range(lo_a[ia, 2], hi_a[ia, 2] + 1):
                    cell_items = grid.get((gx, gy, gz))
                    if cell_items:
                        candidates.update(cell_items)
        for ib in sorted(candidates):
            if np.any(mins_a[ia] > maxs_b[ib] + pad) or np.any(maxs_a[ia] < mins_b[ib] - pad):
                continue
            pairs_tested += 1
            chord = intersect_triangle_pair(soup_a[ia], soup_b[ib])
            if chord is not None:
                segments.append(IntersectionSegment(p0=chord[0], p1=chord[1], idx_a=ia, idx_b=ib))
        if progress_callback and (ia + 1) % 1000 == 0:
            progress_callback(ia + 1, total)

    logger.info(
        f"Intersection: {len(segments)} segments from {pairs_tested} candidate pairs "
        f"({len(soup_a)} x {len(soup_b)} triangles)"
    )
    return segments


# ============================================================================
# POLYLINE CHAINING
# ============================================================================

def chain_segments(segments: List[IntersectionSegment], tolerance: float = None) -> List[np.ndarray]:
    """
    Join intersection chords into polylines for display.

    Endpoints closer than tolerance (default: 1% of the average chord length,
    at least 0.001) are treated as the same point. Each polyline is an (k, 3)
    array; closed curves repeat their first point at the end.
    """
    if not segments:
        return []
    if tolerance is None:
        avg_len = float(np.mean([s.length for s in segments]))
        tolerance = max(avg_len * 0.01, 0.001)

    grid = VertexGrid(max(tolerance * 2, 1e-6))
    ends: List[Tuple[int, int]] = []
    incident: Dict[int, List[int]] = {}
    for si, seg in enumerate(segments):
        a = grid.find_or_insert(seg.p0, tolerance)
        b = grid.find_or_insert(seg.p1, tolerance)
        ends.append((a, b))
        if a == b:
            continue
        incident.setdefault(a, []).append(si)
        incident.setdefault(b, []).append(si)

    points = grid.points
    used = [a == b for a, b in ends]

    def _walk(start_vertex: int, chain: List[int]) -> None:
        current = start_vertex
        while True:
            nxt = next((s for s in incident.get(current, []) if not used[s]), None)
            if nxt is None:
                return
            used[nxt] = True
            a, b = ends[nxt]
            current = b if a == current else a
            chain.append(current)

    polylines: List[np.ndarray] = []
    # Open chains first, starting from vertices of odd degree
    starts = [v for v, segs in incident.items() if len(segs) % 2 == 1]
    starts.extend(incident.keys())
    for v in starts:
        while any(not used[s] for s in incident.get(v, [])):
            chain = [v]
            _walk(v, chain)
            if len(chain) >= 2:
                polylines.append(points[chain])

    logger.debug(f"Chained {len(segments)} segments into {len(polylines)} polylines")
    return polylines
