"""
Winding Propagation

Makes triangle winding consistent across a split group.

On a manifold group (every edge shared by exactly two triangles) a BFS walks
the adjacency graph from a seed triangle: neighbours must traverse their
shared edge in opposite directions, so a neighbour traversing it in the same
direction as an already-visited triangle is flipped. Groups that are not
manifold, which includes any open group, fall back to a local rule that
turns every triangle's normal to face +Z.

Closed merged meshes are oriented the same way per connected component and
then turned outward by the sign of each component's enclosed volume.
"""

import logging
from collections import deque
from typing import List, Tuple

import numpy as np

from surface_boolean.core.geometry import edge_table, face_edges, index_soup, triangle_normals

logger = logging.getLogger(__name__)

ADJACENCY_TOLERANCE = 1e-6


def flip_triangles(soup: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """Return a copy with the winding of masked triangles reversed (v1 <-> v2)."""
    out = soup.copy()
    out[mask, 1], out[mask, 2] = soup[mask, 2], soup[mask, 1]
    return out


def ensure_z_up_normals(soup: np.ndarray) -> np.ndarray:
    """Flip every triangle whose normal points below the XY plane."""
    if len(soup) == 0:
        return soup
    normals = triangle_normals(soup, normalize=False)
    down = normals[:, 2] < 0
    if np.any(down):
        logger.debug(f"Z-up fallback flipped {int(np.sum(down))} of {len(soup)} triangles")
    return flip_triangles(soup, down)


def _face_neighbors(faces: np.ndarray, face_edge_ids: np.ndarray) -> List[List[Tuple[int, bool]]]:
    """Per face, (neighbour, traverses shared edge in same direction) pairs."""
    n = len(faces)
    half = face_edges(faces)
    forward = half[:, 0] < half[:, 1]
    edge_ids = face_edge_ids.reshape(-1)
    order = np.argsort(edge_ids, kind='stable')

    neighbors: List[List[Tuple[int, bool]]] = [[] for _ in range(n)]
    for k in range(0, len(order) - 1, 2):
        h0, h1 = order[k], order[k + 1]
        f0, f1 = int(h0 // 3), int(h1 // 3)
        same = bool(forward[h0] == forward[h1])
        neighbors[f0].append((f1, same))
        neighbors[f1].append((f0, same))
    return neighbors


def _walk_components(neighbors: List[List[Tuple[int, bool]]]) -> Tuple[np.ndarray, np.ndarray]:
    """BFS over face adjacency; returns (flipped mask, component label) per face."""
    n = len(neighbors)
    visited = np.zeros(n, dtype=bool)
    flipped = np.zeros(n, dtype=bool)
    component = np.zeros(n, dtype=np.int64)
    label = 0

    for seed in range(n):
        if visited[seed]:
            continue
        visited[seed] = True
        component[seed] = label
        queue = deque([seed])
        while queue:
            current = queue.popleft()
            for neighbor, same_direction in neighbors[current]:
                if visited[neighbor]:
                    continue
                visited[neighbor] = True
                flipped[neighbor] = flipped[current] != same_direction
                component[neighbor] = label
                queue.append(neighbor)
        label += 1

    return flipped, component


def propagate_normals(soup: np.ndarray) -> np.ndarray:
    """
    Return a copy of the soup with consistent winding.

    Args:
        soup: (n, 3, 3) triangles of one split group

    Returns:
        (n, 3, 3) triangles, some flipped
    """
    if len(soup) == 0:
        return soup

    _, faces = index_soup(soup, ADJACENCY_TOLERANCE)
    _, counts, face_edge_ids = edge_table(faces)
    if np.any(counts != 2):
        logger.debug(
            f"Winding: group is not manifold ({int(np.sum(counts == 1))} open, "
            f"{int(np.sum(counts > 2))} over-shared edges), using Z-up fallback"
        )
        return ensure_z_up_normals(soup)

    flipped, _ = _walk_components(_face_neighbors(faces, face_edge_ids))
    if np.any(flipped):
        logger.debug(f"Winding: flipped {int(np.sum(flipped))} of {len(soup)} triangles")
    return flip_triangles(soup, flipped)


def orient_closed_faces(points: np.ndarray, faces: np.ndarray) -> Tuple[np.ndarray, int]:
    """
    Give a closed indexed mesh consistent, outward-facing winding.

    Each connected component is made consistent by the same BFS as
    propagate_normals, then reversed as a whole when its signed volume is
    negative. A mesh with any edge not shared by exactly two faces is
    returned unchanged.

    Returns:
        Tuple of (faces, number of faces whose winding changed)
    """
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    if len(faces) == 0:
        return faces, 0

    _, counts, face_edge_ids = edge_table(faces)
    if np.any(counts != 2):
        return faces, 0

    flipped, component = _walk_components(_face_neighbors(faces, face_edge_ids))

    # Signed volume per component with the BFS winding applied
    tri = np.asarray(points, dtype=np.float64)[faces]
    signed = np.einsum('ij,ij->i', tri[:, 0], np.cross(tri[:, 1], tri[:, 2])) / 6.0
    signed[flipped] = -signed[flipped]
    volumes = np.bincount(component, weights=signed)
    flipped = flipped != (volumes[component] < 0)

    if not np.any(flipped):
        return faces, 0

    oriented = faces.copy()
    oriented[flipped, 1], oriented[flipped, 2] = faces[flipped, 2], faces[flipped, 1]
    logger.debug(
        f"Orientation: reversed {int(np.sum(flipped))} of {len(faces)} faces "
        f"across {len(volumes)} components"
    )
    return oriented, int(np.sum(flipped))
