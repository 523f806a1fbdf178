"""
Surface I/O

Converts between the surface records exchanged with callers and the numpy
representations used by the core:
- Input surfaces -> (n, 3, 3) triangle soups
- Indexed meshes -> output Surface records
- trimesh.Trimesh <-> surface records, for file loading and export
"""

import logging
import numbers
import random
import string
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import trimesh

from surface_boolean.core.geometry import as_soup, compute_bounds, indexed_to_soup

logger = logging.getLogger(__name__)

SURFACE_ID_PREFIX = "BOOL_SURFACE_"


# ============================================================================
# POINTS
# ============================================================================

def point_to_array(point: Any) -> np.ndarray:
    """Accept {x, y, z} mappings or 3-sequences."""
    if isinstance(point, Mapping):
        return np.array([point['x'], point['y'], point['z']], dtype=np.float64)
    arr = np.asarray(point, dtype=np.float64).reshape(-1)
    if arr.shape != (3,):
        raise ValueError(f"Expected 3 coordinates, got {arr.shape[0]}")
    return arr


def point_to_dict(point: np.ndarray) -> Dict[str, float]:
    return {'x': float(point[0]), 'y': float(point[1]), 'z': float(point[2])}


def soup_to_records(soup: np.ndarray) -> List[dict]:
    """(n, 3, 3) soup -> [{vertices: [3 x {x, y, z}]}]."""
    return [{'vertices': [point_to_dict(p) for p in tri]} for tri in as_soup(soup)]


# ============================================================================
# INPUT NORMALIZATION
# ============================================================================

def _is_index(value: Any) -> bool:
    return isinstance(value, (numbers.Integral, np.integer)) and not isinstance(value, bool)


def _triangle_corners(tri: Any, points: Sequence[np.ndarray]) -> np.ndarray:
    if isinstance(tri, Mapping):
        if 'vertices' in tri:
            return _triangle_corners(tri['vertices'], points)
        if 'v0' in tri:
            return _triangle_corners([tri['v0'], tri['v1'], tri['v2']], points)
        if 'indices' in tri:
            return _triangle_corners(list(tri['indices']), points)
        raise ValueError(f"Unrecognized triangle keys: {sorted(tri.keys())}")

    items = list(tri)
    if len(items) != 3:
        raise ValueError(f"Triangle has {len(items)} corners")
    if all(_is_index(i) for i in items):
        return np.array([points[int(i)] for i in items], dtype=np.float64)
    return np.array([point_to_array(p) for p in items], dtype=np.float64)


def surface_to_soup(surface: Any) -> np.ndarray:
    """
    Normalize any accepted surface form into an (n, 3, 3) triangle soup.

    Accepts a mapping {id, name, points, triangles}, a trimesh.Trimesh, or an
    array of shape (n, 3, 3). Triangles may be vertex triplets, index triplets
    into points, {vertices: [...]}, {v0, v1, v2} or {indices: [...]}.
    Unparseable triangles are skipped.
    """
    if surface is None:
        return as_soup([])
    if isinstance(surface, trimesh.Trimesh):
        return indexed_to_soup(surface.vertices, surface.faces)
    if isinstance(surface, (np.ndarray, list, tuple)):
        return as_soup(surface)

    raw_points = surface.get('points')
    if raw_points is None:
        raw_points = []
    points = []
    for p in raw_points:
        try:
            points.append(point_to_array(p))
        except (KeyError, TypeError, ValueError):
            points.append(np.full(3, np.nan))

    triangles: List[np.ndarray] = []
    skipped = 0
    raw_triangles = surface.get('triangles')
    if raw_triangles is None:
        raw_triangles = []
    for tri in raw_triangles:
        try:
            corners = _triangle_corners(tri, points)
        except (KeyError, IndexError, TypeError, ValueError):
            skipped += 1
            continue
        if not np.all(np.isfinite(corners)):
            skipped += 1
            continue
        triangles.append(corners)

    if skipped > 0:
        logger.warning(f"Surface {surface.get('name', surface.get('id', '?'))}: skipped {skipped} unparseable triangles")
    return as_soup(triangles)


def surface_label(surface: Any, fallback: str) -> str:
    if isinstance(surface, Mapping):
        return str(surface.get('name') or surface.get('id') or fallback)
    return fallback


def surface_identifier(surface: Any, fallback: str) -> str:
    if isinstance(surface, Mapping) and surface.get('id') is not None:
        return str(surface['id'])
    return fallback


# ============================================================================
# OUTPUT RECORDS
# ============================================================================

def generate_surface_id(prefix: str = SURFACE_ID_PREFIX) -> str:
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=4))
    return f"{prefix}{suffix}"


def build_surface_record(
    points: np.ndarray,
    faces: np.ndarray,
    surface_id: Optional[str] = None,
    name: Optional[str] = None,
    gradient: Any = 'default',
    diagnostics: Optional[dict] = None
) -> dict:
    """
    Build the output Surface record of a merged indexed mesh.

    Args:
        points: (m, 3) vertex positions
        faces: (k, 3) vertex indices
        surface_id: record id, generated when omitted
        name: record name, defaults to the id
        gradient: display gradient, passed through
        diagnostics: optional MeshDiagnostics.to_dict()

    Returns:
        {id, name, points, triangles, gradient, meshBounds, diagnostics}
    """
    surface_id = surface_id or generate_surface_id()
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    return {
        'id': surface_id,
        'name': name or surface_id,
        'points': [point_to_dict(p) for p in points],
        'triangles': soup_to_records(indexed_to_soup(points, faces)),
        'gradient': gradient,
        'meshBounds': compute_bounds(points),
        'diagnostics': diagnostics or {},
    }


# ============================================================================
# TRIMESH BRIDGE
# ============================================================================

def surface_from_trimesh(mesh: trimesh.Trimesh, surface_id: str, name: Optional[str] = None) -> dict:
    """Index-triplet surface record of a trimesh mesh."""
    return {
        'id': surface_id,
        'name': name or surface_id,
        'points': np.asarray(mesh.vertices, dtype=np.float64).tolist(),
        'triangles': np.asarray(mesh.faces, dtype=np.int64).tolist(),
    }


def surface_to_trimesh(surface: Any) -> trimesh.Trimesh:
    """
    Build a trimesh mesh from a surface record or soup.

    Coincident corners are merged, nothing else is processed.
    """
    soup = surface_to_soup(surface)
    if len(soup) == 0:
        return trimesh.Trimesh(vertices=np.zeros((0, 3)), faces=np.zeros((0, 3), dtype=np.int64), process=False)
    corners = soup.reshape(-1, 3)
    vertices, inverse = np.unique(corners, axis=0, return_inverse=True)
    faces = inverse.reshape(-1, 3)
    return trimesh.Trimesh(vertices=vertices, faces=faces, process=False)
