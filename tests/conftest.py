"""
Shared test fixtures for the surface Boolean engine.
"""
import numpy as np
import pytest


# Unit cube corners and outward-wound faces
CUBE_VERTICES = np.array([
    [0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0],
    [0, 0, 1], [1, 0, 1], [1, 1, 1], [0, 1, 1],
], dtype=np.float64)

CUBE_FACES = np.array([
    [0, 2, 1], [0, 3, 2],  # bottom
    [4, 5, 6], [4, 6, 7],  # top
    [0, 1, 5], [0, 5, 4],  # front (y=0)
    [3, 7, 6], [3, 6, 2],  # back (y=1)
    [0, 4, 7], [0, 7, 3],  # left (x=0)
    [1, 2, 6], [1, 6, 5],  # right (x=1)
], dtype=np.int64)


def make_box_soup(offset=(0.0, 0.0, 0.0), scale=1.0) -> np.ndarray:
    """Closed box as a (12, 3, 3) soup."""
    return CUBE_VERTICES[CUBE_FACES] * scale + np.asarray(offset, dtype=np.float64)


def make_box_record(surface_id: str, offset=(0.0, 0.0, 0.0), name=None) -> dict:
    """Closed box as an index-triplet surface record."""
    return {
        'id': surface_id,
        'name': name or surface_id,
        'points': [{'x': p[0], 'y': p[1], 'z': p[2]} for p in (CUBE_VERTICES + np.asarray(offset)).tolist()],
        'triangles': CUBE_FACES.tolist(),
    }


def make_open_dome(segments: int = 12) -> np.ndarray:
    """Open hemisphere-like dome: rim at z=0, one ring, a pole. Open along the rim."""
    angles = np.linspace(0.0, 2.0 * np.pi, segments, endpoint=False)
    rim = np.column_stack([np.cos(angles), np.sin(angles), np.zeros(segments)])
    ring = np.column_stack([0.7 * np.cos(angles), 0.7 * np.sin(angles), np.full(segments, 0.7)])
    pole = np.array([0.0, 0.0, 1.0])

    tris = []
    for i in range(segments):
        j = (i + 1) % segments
        tris.append([rim[i], rim[j], ring[j]])
        tris.append([rim[i], ring[j], ring[i]])
        tris.append([ring[i], ring[j], pole])
    return np.array(tris, dtype=np.float64)


def make_square_soup(x_range, y_range, z: float) -> np.ndarray:
    """Horizontal rectangle made of two triangles."""
    (x0, x1), (y0, y1) = x_range, y_range
    return np.array([
        [[x0, y0, z], [x1, y0, z], [x1, y1, z]],
        [[x0, y0, z], [x1, y1, z], [x0, y1, z]],
    ], dtype=np.float64)


@pytest.fixture
def cube_soup():
    """Unit cube at the origin, 12 triangles."""
    return make_box_soup()


@pytest.fixture
def translated_cube_soup():
    """Unit cube translated by (0.5, 0, 0)."""
    return make_box_soup(offset=(0.5, 0.0, 0.0))


@pytest.fixture
def cube_record():
    return make_box_record('CUBE_A', name='Cube A')


@pytest.fixture
def translated_cube_record():
    return make_box_record('CUBE_B', offset=(0.5, 0.0, 0.0), name='Cube B')


@pytest.fixture
def open_dome():
    """Open dome with a 12-vertex planar rim."""
    return make_open_dome(12)


@pytest.fixture
def crossing_square():
    """3 x 3 horizontal square cutting through the unit cube at z=0.37."""
    return make_square_soup((-1.0, 2.0), (-0.75, 2.25), 0.37)


@pytest.fixture
def unit_square():
    """Unit square in the z=0 plane."""
    return make_square_soup((0.0, 1.0), (0.0, 1.0), 0.0)
