"""
Mesh Repair Module

Healing stages that turn the kept split groups into one mesh, closed when the
gaps allow it.

Repair stages (pure transforms of a triangle soup unless noted):
1. Seam dedup - merge near-coincident vertices left by independent splitting
2. Weld - merge vertices within the snap tolerance into an indexed mesh
3. Degenerate/sliver removal - drop by area or altitude/edge ratio
4. Crossing cleanup - keep the two largest triangles on over-shared edges
5. Overlap removal - drop internal double walls and near-duplicate faces
6. Boundary extraction - chain open edges into loops
7. Loop triangulation - constrained Delaunay cap of one loop
8. Sequential capping - cap loops one at a time, re-welding in between
9. Proximity stitching - zip nearby open edges together with quads
10. Force-close - closing triangles on the indexed mesh, integer ids only
11. Orientation - consistent outward winding for closed results

MeshRepairer composes the stages in merge order.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from surface_boolean.core.geometry import (
    VertexGrid,
    as_soup,
    constrained_triangulation,
    count_open_edges,
    edge_lengths,
    edge_table,
    face_edges,
    indexed_to_soup,
    soup_vertex_ids,
    triangle_areas,
    triangle_centroids,
    triangle_normals,
)
from surface_boolean.core.mesh_analysis import MeshAnalyzer, MeshDiagnostics
from surface_boolean.core.winding import orient_closed_faces

logger = logging.getLogger(__name__)

SEAM_DEDUP_TOLERANCE = 1e-4
DEFAULT_MIN_AREA = 1e-6
DEFAULT_SLIVER_RATIO = 0.01
DEFAULT_OVERLAP_TOLERANCE = 0.5
DEFAULT_STITCH_TOLERANCE = 1.0
MAX_CLEAN_PASSES = 5
MAX_CAP_PASSES = 3
MAX_CAP_LOOP_VERTS = 500
FORCE_CLOSE_MAX_PASSES = 30
FORCE_CLOSE_CELL_SIZE = 2.0

CLOSE_MODES = ('none', 'weld', 'stitch', 'raw')


class RepairMethod(Enum):
    """Repair stages that can change the mesh."""
    NONE = "none"
    SEAM_DEDUP = "seam dedup"
    WELD = "weld"
    DEGENERATE_REMOVAL = "degenerate removal"
    CROSSING_CLEANUP = "crossing cleanup"
    OVERLAP_REMOVAL = "overlap removal"
    STITCH = "proximity stitch"
    CAPPING = "loop capping"
    FORCE_CLOSE = "force close"
    ORIENTATION = "orientation"


@dataclass
class BoundaryLoops:
    """Open boundary of a soup."""
    loops: List[np.ndarray]
    boundary_edge_count: int
    over_shared_edge_count: int

    @property
    def is_closed(self) -> bool:
        return self.boundary_edge_count == 0 and self.over_shared_edge_count == 0


@dataclass
class MeshRepairResult:
    """Result of the merge repair pipeline."""
    points: np.ndarray
    faces: np.ndarray
    diagnostics: MeshDiagnostics
    was_repaired: bool
    repair_method: str
    repair_steps: List[str]
    original_triangle_count: int
    close_mode: str = 'none'
    methods_used: List[str] = field(default_factory=list)

    @property
    def boundary_edge_count(self) -> int:
        return self.diagnostics.boundary_edge_count

    @property
    def over_shared_edge_count(self) -> int:
        return self.diagnostics.over_shared_edge_count


# ============================================================================
# VERTEX MERGING
# ============================================================================

def _drop_collapsed(ids: np.ndarray) -> np.ndarray:
    return (ids[:, 0] != ids[:, 1]) & (ids[:, 1] != ids[:, 2]) & (ids[:, 2] != ids[:, 0])


def deduplicate_seam_vertices(soup: np.ndarray, tolerance: float = SEAM_DEDUP_TOLERANCE) -> np.ndarray:
    """
    Snap every corner to the nearest earlier corner strictly within tolerance.

    Triangles left with fewer than three distinct corners are dropped.
    """
    soup = as_soup(soup)
    if len(soup) == 0:
        return soup

    grid = VertexGrid(tolerance * 3)
    ids = np.empty((len(soup), 3), dtype=np.int64)
    merged = 0
    for i, tri in enumerate(soup):
        for j in range(3):
            found = grid.find_nearest(tri[j], tolerance)
            if found is None:
                found = grid.insert(tri[j])
            else:
                merged += 1
            ids[i, j] = found

    keep = _drop_collapsed(ids)
    logger.debug(
        f"Seam dedup: merged {merged} vertices, removed {int(np.sum(~keep))} collapsed triangles "
        f"({len(grid)} unique vertices)"
    )
    return grid.points[ids[keep]]


def weld_vertices(soup: np.ndarray, tolerance: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Weld a soup into an indexed mesh.

    Each corner joins the first stored point within tolerance. A tolerance of
    zero merges exactly coincident corners only. Collapsed triangles are dropped.

    Returns:
        Tuple of (points (m, 3), faces (k, 3))
    """
    soup = as_soup(soup)
    if len(soup) == 0:
        return np.zeros((0, 3), dtype=np.float64), np.zeros((0, 3), dtype=np.int64)

    if tolerance <= 0:
        corners = soup.reshape(-1, 3)
        _, first, inverse = np.unique(corners, axis=0, return_index=True, return_inverse=True)
        inverse = inverse.reshape(-1)
        # Number points in first-seen order
        order = np.argsort(first)
        rank = np.empty_like(order)
        rank[order] = np.arange(len(order))
        points = corners[first[order]]
        ids = rank[inverse].reshape(-1, 3)
    else:
        grid = VertexGrid(max(tolerance * 2, 0.002))
        ids = np.empty((len(soup), 3), dtype=np.int64)
        for i, tri in enumerate(soup):
            for j in range(3):
                ids[i, j] = grid.find_or_insert(tri[j], tolerance)
        points = grid.points

    faces = ids[_drop_collapsed(ids)]
    return points, faces


def reweld(soup: np.ndarray, tolerance: float) -> np.ndarray:
    """Weld and expand back to a soup."""
    return indexed_to_soup(*weld_vertices(soup, tolerance))


def weld_boundary_vertices(soup: np.ndarray, tolerance: float) -> np.ndarray:
    """
    Merge open-edge vertices that lie within tolerance of each other.

    Clusters (transitive, union-find) are replaced by their average position.
    Interior vertices never move.
    """
    soup = as_soup(soup)
    if tolerance <= 0 or len(soup) == 0:
        return soup

    points, faces = soup_vertex_ids(soup)
    unique_edges, counts, _ = edge_table(faces)
    boundary_ids = np.unique(unique_edges[counts == 1].reshape(-1))
    if len(boundary_ids) == 0:
        return soup

    grid = VertexGrid(max(tolerance * 2, 0.01))
    for vid in boundary_ids:
        grid.insert(points[vid])

    parent = list(range(len(boundary_ids)))

    def _find(k: int) -> int:
        while parent[k] != k:
            parent[k] = parent[parent[k]]
            k = parent[k]
        return k

    tol_sq = tolerance * tolerance
    local_points = grid.points
    for i in range(len(boundary_ids)):
        for j in grid.candidates(local_points[i]):
            if j == i:
                continue
            d = local_points[i] - local_points[j]
            if float(d @ d) <= tol_sq:
                ri, rj = _find(i), _find(j)
                if ri != rj:
                    parent[ri] = rj

    roots = np.array([_find(i) for i in range(len(boundary_ids))])
    new_points = points.copy()
    merged = 0
    for root in np.unique(roots):
        members = np.flatnonzero(roots == root)
        if len(members) > 1:
            new_points[boundary_ids[members]] = local_points[members].mean(axis=0)
            merged += len(members)

    if merged == 0:
        logger.debug(f"Boundary weld: no boundary vertices within {tolerance}")
        return soup
    logger.info(f"Boundary weld: merged {merged} of {len(boundary_ids)} boundary vertices")
    return new_points[faces]


# ============================================================================
# TRIANGLE CLEANUP
# ============================================================================

def remove_degenerate_triangles(
    soup: np.ndarray,
    min_area: float = DEFAULT_MIN_AREA,
    sliver_ratio: float = DEFAULT_SLIVER_RATIO
) -> np.ndarray:
    """
    Drop triangles with area below min_area, or whose altitude/longest-edge
    ratio is below sliver_ratio (pass 0 to keep slivers).
    """
    soup = as_soup(soup)
    if len(soup) == 0:
        return soup

    areas = triangle_areas(soup)
    max_edge = edge_lengths(soup).max(axis=1)
    safe_edge = np.where(max_edge > 0, max_edge, 1.0)
    ratio = (2.0 * areas / safe_edge) / safe_edge
    sliver = (max_edge > 0) & (ratio < sliver_ratio)
    keep = (areas >= min_area) & ~sliver

    removed = int(np.sum(~keep))
    if removed > 0:
        logger.debug(
            f"Degenerate removal: removed {removed} degenerate/sliver triangles, "
            f"{int(np.sum(keep))} remain (was {len(soup)})"
        )
    return soup[keep]


def clean_crossing_triangles(soup: np.ndarray) -> np.ndarray:
    """
    Trim edges shared by more than two triangles down to their two largest,
    then drop triangles that repeat another triangle's corner set.
    """
    soup = as_soup(soup)
    if len(soup) == 0:
        return soup

    _, faces = soup_vertex_ids(soup)
    _, counts, face_edge_ids = edge_table(faces)
    areas = triangle_areas(soup)
    remove = np.zeros(len(soup), dtype=bool)

    over_shared = np.flatnonzero(counts > 2)
    if len(over_shared) > 0:
        over_set = set(int(e) for e in over_shared)
        by_edge: Dict[int, List[int]] = {}
        for face_idx, edge_ids in enumerate(face_edge_ids):
            for edge_id in edge_ids:
                if int(edge_id) in over_set:
                    by_edge.setdefault(int(edge_id), []).append(face_idx)
        for tris in by_edge.values():
            ranked = sorted(tris, key=lambda t: -areas[t])
            remove[ranked[2:]] = True

    seen = set()
    duplicates = 0
    for face_idx in range(len(faces)):
        if remove[face_idx]:
            continue
        fingerprint = tuple(sorted(faces[face_idx]))
        if fingerprint in seen:
            remove[face_idx] = True
            duplicates += 1
        else:
            seen.add(fingerprint)

    if not np.any(remove):
        return soup
    logger.debug(
        f"Crossing cleanup: {len(over_shared)} over-shared edges, removed {int(np.sum(remove))} "
        f"({duplicates} duplicates), {int(np.sum(~remove))} remain (was {len(soup)})"
    )
    return soup[~remove]


def remove_overlapping_triangles(soup: np.ndarray, tolerance: float = DEFAULT_OVERLAP_TOLERANCE) -> np.ndarray:
    """
    Remove internal double walls and near-duplicate faces.

    Two triangles overlap when their centroids are within tolerance, their
    areas are within a factor of ~3 (ratio >= 0.3), and their normals are
    anti-parallel (dot < -0.5) or parallel (dot > 0.5). The smaller one goes.
    """
    soup = as_soup(soup)
    if len(soup) == 0:
        return soup

    centroids = triangle_centroids(soup)
    normals = triangle_normals(soup)
    areas = triangle_areas(soup)

    cell_size = max(tolerance * 2, 0.1)
    grid = VertexGrid(cell_size)
    for c in centroids:
        grid.insert(c)

    remove = np.zeros(len(soup), dtype=bool)
    anti_parallel = 0
    near_duplicate = 0
    for si in range(len(soup)):
        if remove[si]:
            continue
        for ti in grid.candidates(centroids[si]):
            if ti <= si or remove[ti]:
                continue
            if np.linalg.norm(centroids[si] - centroids[ti]) > tolerance:
                continue
            larger = max(areas[si], areas[ti])
            if larger <= 0 or min(areas[si], areas[ti]) / larger < 0.3:
                continue
            dot = float(normals[si] @ normals[ti])
            if dot < -0.5:
                anti_parallel += 1
            elif dot > 0.5:
                near_duplicate += 1
            else:
                continue
            if areas[si] <= areas[ti]:
                remove[si] = True
            else:
                remove[ti] = True

    if not np.any(remove):
        logger.debug(f"Overlap removal: no overlaps found (tol={tolerance:.3f})")
        return soup
    logger.debug(
        f"Overlap removal: removed {int(np.sum(remove))} ({anti_parallel} anti-parallel, "
        f"{near_duplicate} near-duplicate), {int(np.sum(~remove))} remain (tol={tolerance:.3f})"
    )
    return soup[~remove]


# ============================================================================
# BOUNDARY LOOPS
# ============================================================================

def _boundary_half_edges(faces: np.ndarray) -> Tuple[List[Tuple[int, int]], int]:
    """
    Open edges oriented against the triangle that owns them, plus the number
    of over-shared edges.
    """
    _, counts, face_edge_ids = edge_table(faces)
    half = face_edges(faces)
    flat_ids = face_edge_ids.reshape(-1)
    open_rows = np.flatnonzero(counts[flat_ids] == 1) if len(flat_ids) else np.zeros(0, dtype=np.int64)
    # The boundary runs opposite to the owning triangle's half-edge
    edges = [(int(half[h, 1]), int(half[h, 0])) for h in open_rows]
    return edges, int(np.sum(counts > 2))


def soup_edge_stats(soup: np.ndarray) -> Tuple[int, int]:
    """(boundary, over-shared) edge counts of a soup."""
    soup = as_soup(soup)
    if len(soup) == 0:
        return 0, 0
    _, faces = soup_vertex_ids(soup)
    return count_open_edges(faces)


def extract_boundary_loops(soup: np.ndarray) -> BoundaryLoops:
    """
    Chain the open edges of a soup into closed loops.

    Loops follow the boundary direction (opposite to the owning triangles),
    so a cap built with the loop's own normal continues the mesh's winding.
    Chains with fewer than 3 vertices are dropped.
    """
    soup = as_soup(soup)
    if len(soup) == 0:
        return BoundaryLoops(loops=[], boundary_edge_count=0, over_shared_edge_count=0)

    points, faces = soup_vertex_ids(soup)
    edges, over_shared = _boundary_half_edges(faces)
    if not edges:
        return BoundaryLoops(loops=[], boundary_edge_count=0, over_shared_edge_count=over_shared)

    adjacency: Dict[int, List[int]] = {}
    for start, end in edges:
        adjacency.setdefault(start, []).append(end)

    used = set()
    loops: List[np.ndarray] = []
    for start in adjacency:
        if start in used:
            continue
        loop: List[int] = []
        current = start
        safety = len(edges) + 1
        while safety > 0:
            safety -= 1
            if current in used:
                break
            used.add(current)
            nxt = None
            for candidate in adjacency.get(current, []):
                if candidate not in used or (candidate == start and len(loop) >= 2):
                    nxt = candidate
                    break
            if nxt is None:
                break
            loop.append(current)
            current = nxt
            if current == start:
                break
        if len(loop) >= 3:
            loops.append(points[loop])

    return BoundaryLoops(loops=loops, boundary_edge_count=len(edges), over_shared_edge_count=over_shared)


def log_boundary_stats(soup: np.ndarray, close_mode: str) -> BoundaryLoops:
    """Log post-close diagnostics and return the boundary."""
    boundary = extract_boundary_loops(soup)
    sizes = ", ".join(str(len(loop)) for loop in boundary.loops)
    logger.info(
        f"Post-close diagnostics: closeMode={close_mode}, triangles={len(soup)}, "
        f"boundary edges={boundary.boundary_edge_count}, "
        f"over-shared edges={boundary.over_shared_edge_count}, "
        f"loops={len(boundary.loops)}" + (f" (sizes: {sizes})" if sizes else "") +
        f", closed={boundary.is_closed}"
    )
    return boundary


# ============================================================================
# CAPPING
# ============================================================================

def _point_in_polygon(px: float, py: float, coords: np.ndarray) -> bool:
    inside = False
    n = len(coords)
    j = n - 1
    for i in range(n):
        xi, yi = coords[i]
        xj, yj = coords[j]
        if (yi > py) != (yj > py) and px < (xj - xi) * (py - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def newell_normal(loop: np.ndarray) -> np.ndarray:
    """Unnormalized polygon normal by Newell's method."""
    nxt = np.roll(loop, -1, axis=0)
    return np.array([
        np.sum((loop[:, 1] - nxt[:, 1]) * (loop[:, 2] + nxt[:, 2])),
        np.sum((loop[:, 2] - nxt[:, 2]) * (loop[:, 0] + nxt[:, 0])),
        np.sum((loop[:, 0] - nxt[:, 0]) * (loop[:, 1] + nxt[:, 1])),
    ])


def triangulate_loop(loop: np.ndarray) -> np.ndarray:
    """
    Triangulate a closed 3D polygon.

    Small loops are handled directly (4 vertices split on the shorter
    diagonal). Larger loops are projected onto the axis plane with the largest
    shoelace area, triangulated with the loop edges as constraints, filtered
    to triangles whose centroid is inside the loop, and wound along the loop's
    Newell normal.
    """
    loop = np.asarray(loop, dtype=np.float64).reshape(-1, 3)
    n = len(loop)
    if n < 3:
        return np.zeros((0, 3, 3), dtype=np.float64)
    if n == 3:
        return loop[None, :, :].copy()
    if n == 4:
        d02 = np.linalg.norm(loop[2] - loop[0])
        d13 = np.linalg.norm(loop[3] - loop[1])
        if d02 <= d13:
            return loop[[[0, 1, 2], [0, 2, 3]]]
        return loop[[[0, 1, 3], [1, 2, 3]]]

    normal = newell_normal(loop)

    nxt = np.roll(loop, -1, axis=0)
    area_xy = abs(np.sum(loop[:, 0] * nxt[:, 1] - nxt[:, 0] * loop[:, 1]))
    area_xz = abs(np.sum(loop[:, 0] * nxt[:, 2] - nxt[:, 0] * loop[:, 2]))
    area_yz = abs(np.sum(loop[:, 1] * nxt[:, 2] - nxt[:, 1] * loop[:, 2]))
    if area_xy >= area_xz and area_xy >= area_yz:
        axes = [0, 1]
    elif area_xz >= area_yz:
        axes = [0, 2]
    else:
        axes = [1, 2]
    coords = loop[:, axes]

    segments = [(i, (i + 1) % n) for i in range(n)]
    result = constrained_triangulation(coords, segments, 'pQ')
    if result is None or 'triangles' not in result:
        logger.warning(f"Loop triangulation failed for a {n}-vertex loop")
        return np.zeros((0, 3, 3), dtype=np.float64)

    tris = []
    for a, b, c in np.asarray(result['triangles'], dtype=np.int64):
        # Skip anything touching a vertex Triangle inserted
        if a >= n or b >= n or c >= n:
            continue
        cx, cy = (coords[a] + coords[b] + coords[c]) / 3.0
        if _point_in_polygon(cx, cy, coords):
            tris.append(loop[[a, b, c]])
    if not tris:
        return np.zeros((0, 3, 3), dtype=np.float64)

    caps = np.array(tris)
    if np.linalg.norm(normal) > 1e-12:
        facing = triangle_normals(caps, normalize=False) @ normal
        wrong = facing < 0
        caps[wrong, 1], caps[wrong, 2] = caps[wrong, 2].copy(), caps[wrong, 1].copy()
    return caps


def cap_boundary_loops_sequential(
    soup: np.ndarray,
    snap_tolerance: float,
    max_passes: int = MAX_CAP_PASSES
) -> np.ndarray:
    """
    Cap open loops one at a time.

    Each pass first cleans over-shared edges, then caps every loop of at most
    MAX_CAP_LOOP_VERTS vertices, re-welding (and cleaning again if the cap
    created over-shared edges) after each cap.
    """
    soup = as_soup(soup)
    for cap_pass in range(1, max_passes + 1):
        _, over_shared = soup_edge_stats(soup)
        if over_shared > 0:
            logger.debug(f"Capping pass {cap_pass}: cleaning {over_shared} non-manifold edges before cap")
            soup = reweld(clean_crossing_triangles(soup), snap_tolerance)

        boundary = extract_boundary_loops(soup)
        if not boundary.loops:
            logger.debug(f"Capping: no boundary loops at pass {cap_pass}, mesh is closed")
            break

        logger.info(
            f"Capping pass {cap_pass}: {len(boundary.loops)} loop(s), sizes: "
            f"{', '.join(str(len(loop)) for loop in boundary.loops)}"
        )

        total_caps = 0
        for li, loop in enumerate(boundary.loops):
            if len(loop) < 3:
                continue
            if len(loop) > MAX_CAP_LOOP_VERTS:
                logger.warning(
                    f"Capping: skipped loop[{li}], {len(loop)} vertices exceeds limit ({MAX_CAP_LOOP_VERTS})"
                )
                continue
            caps = triangulate_loop(loop)
            if len(caps) == 0:
                continue
            soup = np.concatenate([soup, caps])
            total_caps += len(caps)
            logger.debug(f"Capping: loop[{li}] {len(loop)} vertices -> {len(caps)} cap triangles")

            soup = reweld(soup, snap_tolerance)
            _, over_shared = soup_edge_stats(soup)
            if over_shared > 0:
                soup = reweld(clean_crossing_triangles(soup), snap_tolerance)

        if total_caps == 0:
            logger.debug(f"Capping: no cappable loops at pass {cap_pass}")
            break
        logger.info(f"Capping pass {cap_pass}: added {total_caps} cap triangles")

    return soup


# ============================================================================
# STITCHING AND FORCE-CLOSE
# ============================================================================

def stitch_by_proximity(soup: np.ndarray, tolerance: float = DEFAULT_STITCH_TOLERANCE) -> np.ndarray:
    """
    Close gaps between open edges that face each other.

    Each open edge is matched with the open edge whose endpoints are closest,
    directly or reversed, with both endpoint distances within tolerance. Edges
    sharing a vertex with it are not candidates. A matched pair is bridged
    with two triangles.

    Returns:
        (k, 3, 3) new triangles only
    """
    soup = as_soup(soup)
    empty = np.zeros((0, 3, 3), dtype=np.float64)
    if len(soup) == 0:
        return empty

    points, faces = soup_vertex_ids(soup)
    edges, _ = _boundary_half_edges(faces)
    if not edges:
        logger.debug("Stitch: no boundary edges")
        return empty

    logger.debug(f"Stitch: {len(edges)} boundary edges, tolerance={tolerance:.4f}")

    cell_size = max(tolerance * 3, 0.1)
    grid: Dict[Tuple[int, int, int], List[int]] = {}
    for ei, (a, b) in enumerate(edges):
        for vid in (a, b):
            key = tuple(int(k) for k in np.floor(points[vid] / cell_size))
            grid.setdefault(key, []).append(ei)

    used = np.zeros(len(edges), dtype=bool)
    new_tris: List[np.ndarray] = []
    for si, (s0, s1) in enumerate(edges):
        if used[si]:
            continue
        gx, gy, gz = (int(k) for k in np.floor(points[s0] / cell_size))
        candidates = set()
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for dz in (-1, 0, 1):
                    for ci in grid.get((gx + dx, gy + dy, gz + dz), ()):
                        if ci != si and not used[ci]:
                            candidates.add(ci)

        best = -1
        best_total = np.inf
        best_flip = False
        for ci in sorted(candidates):
            c0, c1 = edges[ci]
            if c0 in (s0, s1) or c1 in (s0, s1):
                continue
            d00 = np.linalg.norm(points[s0] - points[c0])
            d11 = np.linalg.norm(points[s1] - points[c1])
            d01 = np.linalg.norm(points[s0] - points[c1])
            d10 = np.linalg.norm(points[s1] - points[c0])
            same_total = d00 + d11
            flip_total = d01 + d10
            if same_total <= flip_total:
                if d00 <= tolerance and d11 <= tolerance and same_total < best_total:
                    best, best_total, best_flip = ci, same_total, False
            elif d01 <= tolerance and d10 <= tolerance and flip_total < best_total:
                best, best_total, best_flip = ci, flip_total, True

        if best < 0:
            continue
        used[si] = True
        used[best] = True
        m0, m1 = edges[best]
        if best_flip:
            m0, m1 = m1, m0
        new_tris.append(points[[s0, s1, m0]])
        new_tris.append(points[[s1, m1, m0]])

    logger.info(f"Stitch: bridged {len(new_tris) // 2} edge pairs with {len(new_tris)} triangles")
    return np.array(new_tris) if new_tris else empty


def force_close_indexed_mesh(points: np.ndarray, faces: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Last-resort closing of an indexed mesh using integer vertex ids.

    For each open edge, the vertex nearest its midpoint that is not one of its
    endpoints, does not push either new edge past two triangles, and gives a
    non-degenerate triangle closes it. Repeats until closed, nothing closes,
    or FORCE_CLOSE_MAX_PASSES is reached. A pass that leaves at least as many
    open edges as it started with is undone and ends the loop, so the result
    never has more open edges than the input.
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    tris: List[Tuple[int, int, int]] = [tuple(int(v) for v in f) for f in np.asarray(faces).reshape(-1, 3)]

    grid = VertexGrid(FORCE_CLOSE_CELL_SIZE)
    for p in points:
        grid.insert(p)

    total_added = 0
    previous_open: Optional[int] = None
    previous_tris: List[Tuple[int, int, int]] = []
    for pass_idx in range(FORCE_CLOSE_MAX_PASSES + 1):
        edge_counts: Dict[Tuple[int, int], int] = {}
        directed = set()
        for t in tris:
            for j in range(3):
                a, b = t[j], t[(j + 1) % 3]
                key = (a, b) if a < b else (b, a)
                edge_counts[key] = edge_counts.get(key, 0) + 1
                directed.add((a, b))

        boundary = [key for key, count in edge_counts.items() if count == 1]
        if not boundary:
            logger.info(f"Force close: closed after {pass_idx} passes, {total_added} triangles added")
            break
        if previous_open is not None and len(boundary) >= previous_open:
            total_added -= len(tris) - len(previous_tris)
            tris = previous_tris
            logger.info(
                f"Force close: pass {pass_idx - 1} did not reduce open edges ({previous_open} -> {len(boundary)}), "
                f"undone; stopping with {total_added} triangles added"
            )
            break
        previous_open = len(boundary)
        previous_tris = list(tris)
        if pass_idx == FORCE_CLOSE_MAX_PASSES:
            logger.info(f"Force close: pass limit reached, {len(boundary)} boundary edges remain")
            break

        added = 0
        for key in boundary:
            if edge_counts.get(key, 0) != 1:
                continue
            a, b = key
            # Wind the new triangle against the existing owner of the edge
            if (a, b) in directed:
                a, b = b, a
            pa, pb = points[a], points[b]
            mid = (pa + pb) / 2.0
            best_idx = -1
            best_dist = np.inf
            for c in grid.candidates(mid):
                if c == a or c == b:
                    continue
                d = mid - points[c]
                dist_sq = float(d @ d)
                if dist_sq >= best_dist:
                    continue
                ek0 = (a, c) if a < c else (c, a)
                ek1 = (b, c) if b < c else (c, b)
                if edge_counts.get(ek0, 0) >= 2 or edge_counts.get(ek1, 0) >= 2:
                    continue
                cross = np.cross(pb - pa, points[c] - pa)
                if float(cross @ cross) < 1e-12:
                    continue
                best_idx = c
                best_dist = dist_sq

            if best_idx < 0:
                continue
            tris.append((a, b, best_idx))
            for j0, j1 in ((a, b), (b, best_idx), (best_idx, a)):
                directed.add((j0, j1))
            ek0 = (a, best_idx) if a < best_idx else (best_idx, a)
            ek1 = (b, best_idx) if b < best_idx else (best_idx, b)
            edge_counts[ek0] = edge_counts.get(ek0, 0) + 1
            edge_counts[ek1] = edge_counts.get(ek1, 0) + 1
            edge_counts[key] = 2
            added += 1

        if added == 0:
            logger.info(
                f"Force close: no more closeable gaps after {pass_idx} passes, {total_added} added, "
                f"{len(boundary)} boundary edges remain"
            )
            break
        total_added += added
        logger.debug(f"Force close pass {pass_idx}: added {added} triangles ({len(boundary)} boundary edges)")

    out_faces = np.array(tris, dtype=np.int64) if tris else np.zeros((0, 3), dtype=np.int64)
    return points, out_faces


# ============================================================================
# PIPELINE
# ============================================================================

class MeshRepairer:
    """
    Merge repair pipeline over a triangle soup.

    Runs dedup, weld, cleanup and (in stitch mode) stitching, capping and the
    force-close safety net, recording what each stage changed.
    """

    def __init__(self, soup: np.ndarray):
        """
        Initialize repairer with the kept triangles.

        Args:
            soup: (n, 3, 3) triangles to merge
        """
        self.original_soup = as_soup(soup)
        self._repair_steps: List[str] = []
        self._methods: List[str] = []

    def _record(self, method: RepairMethod, message: str) -> None:
        self._repair_steps.append(message)
        if method.value not in self._methods:
            self._methods.append(method.value)
        logger.info(message)

    def repair(
        self,
        close_mode: str = 'none',
        snap_tolerance: float = 0.0,
        stitch_tolerance: float = DEFAULT_STITCH_TOLERANCE,
        remove_degenerate: bool = True,
        remove_slivers: bool = False,
        clean_crossings: bool = False,
        remove_overlapping: bool = False,
        sliver_ratio: float = DEFAULT_SLIVER_RATIO,
        min_area: float = DEFAULT_MIN_AREA,
        overlap_tolerance: float = DEFAULT_OVERLAP_TOLERANCE,
        progress_callback: Optional[Callable[[int, str], None]] = None
    ) -> MeshRepairResult:
        """
        Run the merge pipeline.

        Args:
            close_mode: 'none', 'weld', 'stitch' (stitch + cap + force-close)
                or 'raw' (no seam dedup)
            snap_tolerance: weld tolerance, 0 merges exact duplicates only
            stitch_tolerance: max endpoint distance for stitching
            remove_degenerate: drop triangles below min_area
            remove_slivers: also drop triangles below sliver_ratio
            clean_crossings: iteratively trim over-shared edges
            remove_overlapping: drop internal walls and near-duplicates
            sliver_ratio: altitude/longest-edge threshold
            min_area: area threshold
            overlap_tolerance: centroid distance for overlap detection
            progress_callback: Optional callback(percent, message)

        Returns:
            MeshRepairResult with the indexed mesh and diagnostics
        """
        if close_mode not in CLOSE_MODES:
            raise ValueError(f"Unknown close mode: {close_mode}")

        def _progress(percent: int, message: str) -> None:
            if progress_callback:
                progress_callback(percent, message)

        self._repair_steps = []
        self._methods = []
        stitch_mode = close_mode == 'stitch'
        drop_bad = remove_degenerate or remove_slivers
        effective_sliver = sliver_ratio if remove_slivers else 0.0
        soup = self.original_soup
        original_count = len(soup)

        logger.info(
            f"Merge repair: {original_count} triangles, closeMode={close_mode}, snapTol={snap_tolerance}, "
            f"removeDegenerate={remove_degenerate}, removeSlivers={remove_slivers}, "
            f"cleanCrossings={clean_crossings}, sliverRatio={sliver_ratio}"
        )

        # Step 1: Seam dedup (raw mode tears at the seam instead)
        _progress(10, "Deduplicating seam vertices...")
        if close_mode != 'raw':
            before = len(soup)
            soup = deduplicate_seam_vertices(soup, SEAM_DEDUP_TOLERANCE)
            if len(soup) < before:
                self._record(RepairMethod.SEAM_DEDUP, f"Seam dedup removed {before - len(soup)} collapsed triangles")

        # Step 2: Weld
        _progress(20, "Welding vertices...")
        points, faces = weld_vertices(soup, snap_tolerance)
        logger.info(f"Welded {len(soup) * 3} vertices -> {len(points)} unique points (tol={snap_tolerance})")
        if len(faces) < len(soup):
            self._record(RepairMethod.WELD, f"Weld collapsed {len(soup) - len(faces)} triangles")
        soup = indexed_to_soup(points, faces)

        # Step 3: Degenerate / sliver removal
        _progress(30, "Removing degenerate triangles...")
        if drop_bad:
            before = len(soup)
            soup = remove_degenerate_triangles(soup, min_area, effective_sliver)
            if len(soup) < before:
                self._record(RepairMethod.DEGENERATE_REMOVAL, f"Removed {before - len(soup)} degenerate/sliver triangles")

        # Step 4: Iterative crossing cleanup
        _progress(40, "Cleaning crossing triangles...")
        if clean_crossings:
            before = len(soup)
            previous = len(soup) + 1
            clean_pass = 0
            while len(soup) < previous and clean_pass < MAX_CLEAN_PASSES:
                previous = len(soup)
                soup = clean_crossing_triangles(soup)
                if drop_bad:
                    soup = remove_degenerate_triangles(soup, min_area, effective_sliver)
                clean_pass += 1
            if len(soup) < before:
                self._record(
                    RepairMethod.CROSSING_CLEANUP,
                    f"Crossing cleanup removed {before - len(soup)} triangles in {clean_pass} passes"
                )

        # Step 5: Overlap removal
        _progress(50, "Removing overlapping triangles...")
        if remove_overlapping:
            before = len(soup)
            soup = remove_overlapping_triangles(soup, overlap_tolerance)
            if len(soup) < before:
                self._record(RepairMethod.OVERLAP_REMOVAL, f"Removed {before - len(soup)} overlapping triangles")

        # Step 6: Proximity stitch
        _progress(55, "Stitching boundary edges...")
        if stitch_mode:
            stitches = stitch_by_proximity(soup, stitch_tolerance)
            if len(stitches) > 0:
                soup = np.concatenate([soup, stitches])
                self._record(RepairMethod.STITCH, f"Stitching added {len(stitches)} triangles")

        # Step 7: Final weld
        _progress(65, "Final weld...")
        points, faces = weld_vertices(soup, snap_tolerance)
        logger.info(f"Final weld -> {len(points)} points, {len(faces)} triangles")

        if stitch_mode:
            # Step 8: Sequential capping
            _progress(75, "Capping boundary loops...")
            before = len(faces)
            capped = cap_boundary_loops_sequential(indexed_to_soup(points, faces), snap_tolerance, MAX_CAP_PASSES)
            points, faces = weld_vertices(capped, snap_tolerance)
            if len(faces) != before:
                self._record(RepairMethod.CAPPING, f"Capping changed triangle count {before} -> {len(faces)}")

            # Step 9: Post-cap cleanup
            post_soup = indexed_to_soup(points, faces)
            changed = False
            _, over_shared = soup_edge_stats(post_soup)
            if over_shared > 0:
                logger.info(f"Post-cap cleanup: {over_shared} non-manifold edges, cleaning crossings")
                post_soup = clean_crossing_triangles(post_soup)
                changed = True
            if remove_overlapping:
                before = len(post_soup)
                post_soup = remove_overlapping_triangles(post_soup, overlap_tolerance)
                changed = changed or len(post_soup) < before
            if drop_bad:
                before = len(post_soup)
                post_soup = remove_degenerate_triangles(post_soup, min_area, effective_sliver)
                changed = changed or len(post_soup) < before
            if changed:
                points, faces = weld_vertices(post_soup, snap_tolerance)
                logger.info(f"Post-cap cleanup -> {len(points)} points, {len(faces)} triangles")

            # Step 10: Force-close safety net
            _progress(85, "Closing remaining gaps...")
            open_edges, _ = count_open_edges(faces)
            if open_edges > 0:
                logger.info(f"Safety net: {open_edges} open edges remain, force-closing")
                before = len(faces)
                points, faces = force_close_indexed_mesh(points, faces)
                if len(faces) > before:
                    self._record(RepairMethod.FORCE_CLOSE, f"Force close added {len(faces) - before} triangles")

        # Step 11: Outward orientation of closed results
        faces, reoriented = orient_closed_faces(points, faces)
        if reoriented > 0:
            self._record(RepairMethod.ORIENTATION, f"Reversed winding of {reoriented} triangles")

        log_boundary_stats(indexed_to_soup(points, faces), close_mode)
        diagnostics = MeshAnalyzer(points, faces).analyze()

        was_repaired = bool(self._methods)
        if not was_repaired:
            repair_method = RepairMethod.NONE.value
        elif len(self._methods) == 1:
            repair_method = self._methods[0]
        else:
            repair_method = f"combined ({', '.join(self._methods)})"

        return MeshRepairResult(
            points=points,
            faces=faces,
            diagnostics=diagnostics,
            was_repaired=was_repaired,
            repair_method=repair_method,
            repair_steps=self._repair_steps.copy(),
            original_triangle_count=original_count,
            close_mode=close_mode,
            methods_used=self._methods.copy(),
        )


def repair_mesh(points: np.ndarray, faces: np.ndarray, **kwargs) -> MeshRepairResult:
    """
    Convenience function to run the repair pipeline on an indexed mesh.

    Args:
        points: (m, 3) vertex positions
        faces: (k, 3) vertex indices
        **kwargs: Additional arguments passed to MeshRepairer.repair()

    Returns:
        MeshRepairResult with the repaired mesh and diagnostics
    """
    repairer = MeshRepairer(indexed_to_soup(points, faces))
    return repairer.repair(**kwargs)
