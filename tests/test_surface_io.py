"""Tests for surface record conversion."""

import numpy as np
import trimesh

from surface_boolean.core.surface_io import (
    SURFACE_ID_PREFIX,
    build_surface_record,
    generate_surface_id,
    point_to_array,
    surface_from_trimesh,
    surface_identifier,
    surface_label,
    surface_to_soup,
    surface_to_trimesh,
)

from conftest import CUBE_FACES, CUBE_VERTICES

TRIANGLE = [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]
POINTS = [{'x': p[0], 'y': p[1], 'z': p[2]} for p in TRIANGLE]


class TestInputForms:

    def test_point_forms(self):
        assert np.allclose(point_to_array({'x': 1, 'y': 2, 'z': 3}), [1, 2, 3])
        assert np.allclose(point_to_array((4, 5, 6)), [4, 5, 6])

    def test_index_triplets(self, cube_record, cube_soup):
        soup = surface_to_soup(cube_record)
        assert soup.shape == (12, 3, 3)
        assert np.allclose(soup, cube_soup)

    def test_triangle_record_forms(self):
        surface = {
            'points': POINTS,
            'triangles': [
                {'vertices': POINTS},
                {'v0': POINTS[0], 'v1': POINTS[1], 'v2': POINTS[2]},
                {'indices': [0, 1, 2]},
                [0, 1, 2],
                TRIANGLE,
            ],
        }
        soup = surface_to_soup(surface)
        assert soup.shape == (5, 3, 3)
        for tri in soup:
            assert np.allclose(tri, TRIANGLE)

    def test_bad_triangles_are_skipped(self):
        surface = {
            'name': 'broken',
            'points': POINTS,
            'triangles': [[0, 1, 2], [0, 1, 7], [0, 1], {'corners': []}],
        }
        assert len(surface_to_soup(surface)) == 1

    def test_array_and_trimesh(self, cube_soup):
        assert surface_to_soup(cube_soup).shape == (12, 3, 3)
        mesh = trimesh.Trimesh(vertices=CUBE_VERTICES, faces=CUBE_FACES, process=False)
        assert np.allclose(surface_to_soup(mesh), cube_soup)

    def test_missing_surface(self):
        assert surface_to_soup(None).shape == (0, 3, 3)
        assert surface_to_soup({'id': 'EMPTY'}).shape == (0, 3, 3)

    def test_labels(self, cube_record):
        assert surface_identifier(cube_record, 'A') == 'CUBE_A'
        assert surface_label(cube_record, 'A') == 'Cube A'
        assert surface_identifier(np.zeros((0, 3, 3)), 'B') == 'B'
        assert surface_label({'id': 'X'}, 'B') == 'X'


class TestOutputRecords:

    def test_generated_id(self):
        surface_id = generate_surface_id()
        assert surface_id.startswith(SURFACE_ID_PREFIX)
        assert len(surface_id) == len(SURFACE_ID_PREFIX) + 4

    def test_surface_record(self):
        record = build_surface_record(CUBE_VERTICES, CUBE_FACES, name='Merged')
        assert set(record) == {'id', 'name', 'points', 'triangles', 'gradient', 'meshBounds', 'diagnostics'}
        assert record['id'].startswith(SURFACE_ID_PREFIX)
        assert record['name'] == 'Merged'
        assert record['gradient'] == 'default'
        assert len(record['points']) == 8
        assert len(record['triangles']) == 12
        assert record['triangles'][0]['vertices'][1] == {'x': 1.0, 'y': 1.0, 'z': 0.0}
        assert np.allclose(surface_to_soup(record), CUBE_VERTICES[CUBE_FACES])

    def test_explicit_id(self):
        record = build_surface_record(CUBE_VERTICES, CUBE_FACES, surface_id='RESULT')
        assert record['id'] == 'RESULT'
        assert record['name'] == 'RESULT'


class TestTrimeshBridge:

    def test_surface_to_trimesh_merges_corners(self, cube_soup):
        mesh = surface_to_trimesh(cube_soup)
        assert len(mesh.vertices) == 8
        assert len(mesh.faces) == 12
        assert mesh.is_watertight

    def test_surface_from_trimesh(self):
        mesh = trimesh.Trimesh(vertices=CUBE_VERTICES, faces=CUBE_FACES, process=False)
        record = surface_from_trimesh(mesh, 'FILE_A')
        assert record['id'] == 'FILE_A'
        assert record['triangles'][0] == [0, 2, 1]
        assert surface_to_soup(record).shape == (12, 3, 3)
