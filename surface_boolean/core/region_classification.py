"""
Region Classification

Labels the triangles of one surface as inside (+1) or outside (-1) of the
other surface.

Algorithm:
1. Build a triangle adjacency graph over shared edges, leaving out every
   triangle crossed by an intersection chord
2. Flood-fill the graph; each connected component is classified once, from the
   centroid of its seed triangle
3. The seed is classified by casting rays along +Z, +X and +Y against the other
   surface and voting on the parity of the hit counts

Vote rules:
- 2 or more axes vote inside -> inside
- otherwise any axis votes outside -> outside
- otherwise exactly 1 inside vote -> inside
- no hits on any axis -> outside
"""

import logging
from collections import deque
from typing import Dict, List, Optional

import numpy as np

from surface_boolean.core.geometry import edge_table, index_soup, triangle_centroids
from surface_boolean.core.spatial_index import AXIS_COMPONENTS, SurfaceGrids

logger = logging.getLogger(__name__)

INSIDE = 1
OUTSIDE = -1
UNCLASSIFIED = 0

# Barycentric acceptance and degenerate-projection thresholds
BARY_EPSILON = 1e-10
DETERMINANT_EPSILON = 1e-12
# Hits closer than this along the ray are the same crossing (shared edge or vertex)
HIT_MERGE_EPSILON = 1e-9

# Positional identity tolerance for adjacency (corners share an edge when they coincide)
ADJACENCY_TOLERANCE = 1e-6


# ============================================================================
# RAY CASTING
# ============================================================================

def classify_point_on_axis(point: np.ndarray, other: SurfaceGrids, axis: str) -> int:
    """
    Count crossings of a ray from point along +axis through the other surface.

    The test is a barycentric point-in-triangle check in the projection that
    drops the ray axis; a candidate counts when its interpolated ray
    coordinate is strictly beyond the point.
    """
    ia, ib, ir = AXIS_COMPONENTS[axis]
    candidates = other.candidates(point, axis)
    if len(candidates) == 0:
        return 0

    tris = other.soup[candidates]
    a0, a1, a2 = tris[:, 0, ia], tris[:, 1, ia], tris[:, 2, ia]
    b0, b1, b2 = tris[:, 0, ib], tris[:, 1, ib], tris[:, 2, ib]
    r0, r1, r2 = tris[:, 0, ir], tris[:, 1, ir], tris[:, 2, ir]
    pa, pb, pr = point[ia], point[ib], point[ir]

    d = (b1 - b2) * (a0 - a2) + (a2 - a1) * (b0 - b2)
    valid = np.abs(d) >= DETERMINANT_EPSILON
    if not np.any(valid):
        return 0
    d = np.where(valid, d, 1.0)

    u = ((b1 - b2) * (pa - a2) + (a2 - a1) * (pb - b2)) / d
    v = ((b2 - b0) * (pa - a2) + (a0 - a2) * (pb - b2)) / d
    w = 1.0 - u - v
    inside = valid & (u >= -BARY_EPSILON) & (v >= -BARY_EPSILON) & (w >= -BARY_EPSILON)

    r_hit = u * r0 + v * r1 + w * r2
    hits = np.sort(r_hit[inside & (r_hit > pr)])
    if len(hits) == 0:
        return 0
    return int(1 + np.sum(np.diff(hits) > HIT_MERGE_EPSILON))


def classify_point(point: np.ndarray, other: SurfaceGrids) -> int:
    """Multi-axis vote: INSIDE or OUTSIDE of the other surface."""
    inside_votes = 0
    outside_votes = 0
    for axis in ('z', 'x', 'y'):
        count = classify_point_on_axis(point, other, axis)
        if count > 0:
            if count % 2 == 1:
                inside_votes += 1
            else:
                outside_votes += 1

    if inside_votes >= 2:
        return INSIDE
    if outside_votes >= 1:
        return OUTSIDE
    if inside_votes == 1:
        return INSIDE
    return OUTSIDE


# ============================================================================
# FLOOD FILL
# ============================================================================

def build_triangle_adjacency(soup: np.ndarray, excluded: Optional[np.ndarray] = None) -> List[List[int]]:
    """
    Edge adjacency between triangles of a soup.

    Triangles whose corners coincide along an edge are neighbours. Excluded
    triangles neither get nor give neighbours. Edges shared by more than two
    triangles connect all of them.
    """
    n = len(soup)
    adjacency: List[List[int]] = [[] for _ in range(n)]
    if n == 0:
        return adjacency
    if excluded is None:
        excluded = np.zeros(n, dtype=bool)

    active = np.flatnonzero(~excluded)
    if len(active) == 0:
        return adjacency

    _, faces = index_soup(soup[active], ADJACENCY_TOLERANCE)
    _, _, face_edge_ids = edge_table(faces)

    by_edge: Dict[int, List[int]] = {}
    for local_idx, edge_ids in enumerate(face_edge_ids):
        for edge_id in edge_ids:
            by_edge.setdefault(int(edge_id), []).append(int(active[local_idx]))

    for tris in by_edge.values():
        if len(tris) < 2:
            continue
        for t in tris:
            for other in tris:
                if other != t and other not in adjacency[t]:
                    adjacency[t].append(other)
    return adjacency


def classify_by_flood_fill(
    soup: np.ndarray,
    crossed: np.ndarray,
    other: SurfaceGrids
) -> np.ndarray:
    """
    Classify every non-crossed triangle of a surface against the other surface.

    Args:
        soup: (n, 3, 3) triangles of the surface being classified
        crossed: (n,) bool mask of triangles touched by an intersection chord
        other: projection grids of the other surface

    Returns:
        (n,) int8 array of INSIDE / OUTSIDE, UNCLASSIFIED for crossed triangles
    """
    n = len(soup)
    classes = np.zeros(n, dtype=np.int8)
    adjacency = build_triangle_adjacency(soup, crossed)
    centroids = triangle_centroids(soup)

    components = 0
    for seed in range(n):
        if crossed[seed] or classes[seed] != UNCLASSIFIED:
            continue
        label = classify_point(centroids[seed], other)
        components += 1
        classes[seed] = label
        queue = deque([seed])
        while queue:
            current = queue.popleft()
            for neighbor in adjacency[current]:
                if classes[neighbor] == UNCLASSIFIED and not crossed[neighbor]:
                    classes[neighbor] = label
                    queue.append(neighbor)

    logger.debug(
        f"Flood fill: {components} components, "
        f"{int(np.sum(classes == INSIDE))} inside, {int(np.sum(classes == OUTSIDE))} outside, "
        f"{int(np.sum(crossed))} crossed"
    )
    return classes
