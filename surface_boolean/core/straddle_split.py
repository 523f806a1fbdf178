"""
Straddle Splitting

Re-triangulates every triangle crossed by intersection chords so that the
chords become edges, then classifies the resulting sub-triangles.

Re-triangulation works in a 2D frame built on the triangle's own plane
(U along v0->v1, V perpendicular in-plane), so steep and vertical triangles
are handled the same way as flat ones. Chord endpoints inside the triangle
become Steiner points, the chords become constrained edges, and the
constrained Delaunay triangulation comes from the `triangle` library.

Sub-triangle classification prefers adjacency: a corner that is not a chord
endpoint and that belongs to a non-crossed triangle inherits that triangle's
class. Sub-triangles with no such corner fall back to ray voting.
"""

import logging
from typing import Dict, List, Sequence, Tuple

import numpy as np

from surface_boolean.core.geometry import as_soup, constrained_triangulation, vertex_key
from surface_boolean.core.region_classification import INSIDE, classify_point
from surface_boolean.core.spatial_index import SurfaceGrids

logger = logging.getLogger(__name__)

# Chord endpoints may lie this far outside the triangle (barycentric units)
STEINER_BARY_TOLERANCE = -1e-4
# Sub-triangle centroids must be this far inside the parent
CENTROID_BARY_TOLERANCE = -1e-6
# Sub-triangles smaller than this fraction of the parent are dropped
MIN_AREA_RATIO = 1e-8

Segment = Tuple[np.ndarray, np.ndarray]


# ============================================================================
# LOCAL FRAME
# ============================================================================

class _TriangleFrame:
    """Orthonormal in-plane frame of a 3D triangle, origin at v0."""

    def __init__(self, tri: np.ndarray):
        self.valid = False
        self.origin = tri[0]
        e1 = tri[1] - tri[0]
        e2 = tri[2] - tri[0]
        e1_len = np.linalg.norm(e1)
        if e1_len < 1e-12:
            return
        self.u = e1 / e1_len
        self.normal = np.cross(e1, e2)
        if np.linalg.norm(self.normal) < 1e-12:
            return
        v = np.cross(self.normal, self.u)
        v_len = np.linalg.norm(v)
        if v_len < 1e-12:
            return
        self.v = v / v_len

        self.corners = self.to_local(tri)
        (x0, y0), (x1, y1), (x2, y2) = self.corners
        self.bary_d = (y1 - y2) * (x0 - x2) + (x2 - x1) * (y0 - y2)
        if abs(self.bary_d) < 1e-12:
            return
        self.area_2d = abs(self.bary_d) * 0.5
        self.valid = True

    def to_local(self, points: np.ndarray) -> np.ndarray:
        d = np.asarray(points, dtype=np.float64) - self.origin
        return np.stack([d @ self.u, d @ self.v], axis=-1)

    def to_world(self, local: np.ndarray) -> np.ndarray:
        return self.origin + local[..., 0:1] * self.u + local[..., 1:2] * self.v

    def barycentric(self, local: np.ndarray) -> np.ndarray:
        (x0, y0), (x1, y1), (x2, y2) = self.corners
        px, py = local[..., 0], local[..., 1]
        l0 = ((y1 - y2) * (px - x2) + (x2 - x1) * (py - y2)) / self.bary_d
        l1 = ((y2 - y0) * (px - x2) + (x0 - x2) * (py - y2)) / self.bary_d
        return np.stack([l0, l1, 1.0 - l0 - l1], axis=-1)


# ============================================================================
# RE-TRIANGULATION
# ============================================================================

def retriangulate_with_steiner_points(tri: np.ndarray, segments: Sequence[Segment]) -> np.ndarray:
    """
    Split one triangle along the intersection chords that cross it.

    Args:
        tri: (3, 3) corners of the parent triangle
        segments: chords (p0, p1) lying on the triangle

    Returns:
        (k, 3, 3) sub-triangles wound like the parent, or the parent alone when
        the triangle is degenerate or no chord endpoint lands inside it
    """
    tri = np.asarray(tri, dtype=np.float64)
    parent = tri[None, :, :]
    frame = _TriangleFrame(tri)
    if not frame.valid:
        return parent

    points: List[np.ndarray] = [tri[0], tri[1], tri[2]]
    key_to_index: Dict[Tuple[int, int, int], int] = {vertex_key(tri[i]): i for i in range(3)}
    seen = set(key_to_index)

    for p0, p1 in segments:
        for p in (p0, p1):
            key = vertex_key(p)
            if key in seen:
                continue
            seen.add(key)
            bary = frame.barycentric(frame.to_local(p))
            if np.any(bary < STEINER_BARY_TOLERANCE):
                continue
            key_to_index[key] = len(points)
            points.append(np.asarray(p, dtype=np.float64))

    if len(points) == 3:
        return parent

    pts_3d = np.array(points)
    pts_2d = frame.to_local(pts_3d)

    constraints: List[Tuple[int, int]] = []
    for p0, p1 in segments:
        i0 = key_to_index.get(vertex_key(p0))
        i1 = key_to_index.get(vertex_key(p1))
        if i0 is not None and i1 is not None and i0 != i1:
            constraints.append((i0, i1))

    result = constrained_triangulation(pts_2d, constraints, 'pcQ')
    if result is None or 'triangles' not in result:
        logger.debug("Re-triangulation produced nothing, keeping parent triangle")
        return parent

    out_2d = np.asarray(result['vertices'], dtype=np.float64)
    out_3d = np.empty((len(out_2d), 3), dtype=np.float64)
    n_input = len(pts_3d)
    out_3d[:n_input] = pts_3d
    if len(out_2d) > n_input:
        # Vertices Triangle inserted where constraints cross each other
        out_3d[n_input:] = frame.to_world(out_2d[n_input:])

    sub_tris = []
    min_area = frame.area_2d * MIN_AREA_RATIO
    for a, b, c in np.asarray(result['triangles'], dtype=np.int64):
        centroid = (out_2d[a] + out_2d[b] + out_2d[c]) / 3.0
        if np.any(frame.barycentric(centroid) < CENTROID_BARY_TOLERANCE):
            continue
        ab = out_2d[b] - out_2d[a]
        ac = out_2d[c] - out_2d[a]
        signed = 0.5 * (ab[0] * ac[1] - ab[1] * ac[0])
        if abs(signed) < min_area:
            continue
        # The frame is right-handed about the parent normal, so positive area keeps its winding
        if signed > 0:
            sub_tris.append(out_3d[[a, b, c]])
        else:
            sub_tris.append(out_3d[[a, c, b]])

    if not sub_tris:
        logger.warning("Re-triangulation left no sub-triangles inside the parent, keeping it whole")
        return parent
    return np.array(sub_tris)


# ============================================================================
# SPLIT AND CLASSIFY
# ============================================================================

def split_straddling_and_classify(
    soup: np.ndarray,
    classes: np.ndarray,
    crossed_segments: Dict[int, List[Segment]],
    other: SurfaceGrids
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split crossed triangles and sort everything into inside and outside soups.

    Args:
        soup: (n, 3, 3) triangles of the surface
        classes: flood-fill classes from classify_by_flood_fill
        crossed_segments: triangle index -> chords crossing it
        other: projection grids of the other surface

    Returns:
        Tuple of (inside soup, outside soup)
    """
    # Corner classes inherited from non-crossed triangles, first one wins
    vertex_classes: Dict[Tuple[int, int, int], int] = {}
    for idx in range(len(soup)):
        if idx in crossed_segments:
            continue
        for corner in soup[idx]:
            vertex_classes.setdefault(vertex_key(corner), int(classes[idx]))

    steiner_keys = set()
    for segs in crossed_segments.values():
        for p0, p1 in segs:
            steiner_keys.add(vertex_key(p0))
            steiner_keys.add(vertex_key(p1))

    inside: List[np.ndarray] = []
    outside: List[np.ndarray] = []
    adjacency_hits = 0
    raycast_fallbacks = 0

    for idx in range(len(soup)):
        segs = crossed_segments.get(idx)
        if segs is None:
            (inside if classes[idx] == INSIDE else outside).append(soup[idx])
            continue

        for sub in retriangulate_with_steiner_points(soup[idx], segs):
            found = 0
            for corner in sub:
                key = vertex_key(corner)
                if key in steiner_keys:
                    continue
                found = vertex_classes.get(key, 0)
                if found != 0:
                    break

            if found != 0:
                adjacency_hits += 1
            else:
                found = classify_point(sub.mean(axis=0), other)
                raycast_fallbacks += 1

            (inside if found == INSIDE else outside).append(sub)

    logger.debug(
        f"Straddle split: {adjacency_hits} sub-triangles classified by adjacency, "
        f"{raycast_fallbacks} by ray casting"
    )
    return as_soup(inside), as_soup(outside)
