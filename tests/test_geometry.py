"""Tests for geometry primitives and positional vertex identity."""

import numpy as np
import pytest
import triangle

from surface_boolean.core.geometry import (
    VertexGrid,
    as_soup,
    average_edge_length,
    compute_bounds,
    constrained_triangulation,
    count_open_edges,
    distance,
    edge_table,
    face_edges,
    index_soup,
    indexed_to_soup,
    soup_vertex_ids,
    triangle_area,
    triangle_areas,
    triangle_normals,
    vertex_key,
)


class TestPrimitives:

    def test_distance_and_area(self):
        assert distance(np.zeros(3), np.array([3.0, 4.0, 0.0])) == pytest.approx(5.0)
        assert triangle_area(np.zeros(3), np.array([2.0, 0, 0]), np.array([0, 2.0, 0])) == pytest.approx(2.0)

    def test_cube_areas_and_normals(self, cube_soup):
        areas = triangle_areas(cube_soup)
        assert np.allclose(areas, 0.5)

        normals = triangle_normals(cube_soup)
        centroids = cube_soup.mean(axis=1)
        # Outward winding: normals point away from the cube centre
        assert np.all(np.einsum('ij,ij->i', normals, centroids - 0.5) > 0)

    def test_degenerate_normal_is_zero(self):
        soup = as_soup([[[0, 0, 0], [1, 0, 0], [2, 0, 0]]])
        assert np.allclose(triangle_normals(soup), 0.0)

    def test_empty_soup(self):
        soup = as_soup([])
        assert soup.shape == (0, 3, 3)
        assert len(triangle_areas(soup)) == 0
        assert average_edge_length(soup) == 0.0

    def test_compute_bounds(self, cube_soup):
        bounds = compute_bounds(cube_soup.reshape(-1, 3) * 2.0)
        assert bounds == {'minX': 0.0, 'maxX': 2.0, 'minY': 0.0, 'maxY': 2.0, 'minZ': 0.0, 'maxZ': 2.0}
        assert compute_bounds([])['maxZ'] == 0.0


class TestVertexGrid:

    def test_find_or_insert_merges_within_tolerance(self):
        grid = VertexGrid(0.01)
        a = grid.find_or_insert([0.0, 0.0, 0.0], 0.005)
        b = grid.find_or_insert([0.004, 0.0, 0.0], 0.005)
        c = grid.find_or_insert([0.006, 0.0, 0.0], 0.005)
        assert a == b
        assert c != a
        assert len(grid) == 2

    def test_find_nearest_is_strict(self):
        grid = VertexGrid(1.0)
        grid.insert([0.0, 0.0, 0.0])
        grid.insert([0.3, 0.0, 0.0])
        assert grid.find_nearest(np.array([0.25, 0.0, 0.0]), 0.5) == 1
        assert grid.find_nearest(np.array([0.8, 0.0, 0.0]), 0.5) is None

    def test_neighbour_cells_are_searched(self):
        grid = VertexGrid(0.1)
        grid.insert([0.099, 0.0, 0.0])
        # Next cell over along x
        assert grid.find_first(np.array([0.101, 0.0, 0.0]), 0.01) == 0

    def test_invalid_cell_size(self):
        with pytest.raises(ValueError):
            VertexGrid(0.0)


class TestIndexing:

    def test_vertex_key_rounds(self):
        assert vertex_key([0.1234564, 1.0, -2.0]) == vertex_key([0.1234559, 1.0, -2.0])

    def test_index_soup_cube(self, cube_soup):
        points, faces = index_soup(cube_soup)
        assert len(points) == 8
        assert faces.shape == (12, 3)
        assert np.allclose(indexed_to_soup(points, faces), cube_soup)

    def test_soup_vertex_ids_cube(self, cube_soup):
        points, faces = soup_vertex_ids(cube_soup)
        assert len(points) == 8
        assert np.allclose(points[faces], cube_soup)


class TestEdges:

    def test_face_edges_order(self):
        half = face_edges(np.array([[0, 1, 2]]))
        assert half.tolist() == [[0, 1], [1, 2], [2, 0]]

    def test_closed_cube_edge_table(self, cube_soup):
        _, faces = soup_vertex_ids(cube_soup)
        unique_edges, counts, face_edge_ids = edge_table(faces)
        assert len(unique_edges) == 18
        assert np.all(counts == 2)
        assert face_edge_ids.shape == (12, 3)
        assert count_open_edges(faces) == (0, 0)

    def test_open_square(self, unit_square):
        _, faces = soup_vertex_ids(unit_square)
        assert count_open_edges(faces) == (4, 0)

    def test_over_shared_edge(self):
        soup = as_soup([
            [[0, 0, 0], [1, 0, 0], [0.5, 1, 0]],
            [[0, 0, 0], [1, 0, 0], [0.5, -1, 0]],
            [[0, 0, 0], [1, 0, 0], [0.5, 0, 1]],
        ])
        _, faces = soup_vertex_ids(soup)
        boundary, over_shared = count_open_edges(faces)
        assert over_shared == 1
        assert boundary == 6


class TestConstrainedTriangulation:

    def test_square_with_diagonal_constraint(self):
        vertices = np.array([[0, 0], [1, 0], [1, 1], [0, 1]], dtype=np.float64)
        result = constrained_triangulation(vertices, [(0, 2)], 'pcQ')
        assert result is not None
        tris = np.sort(np.asarray(result['triangles']), axis=1).tolist()
        assert sorted(tris) == [[0, 1, 2], [0, 2, 3]]

    def test_rejected_constraint_does_not_drop_the_others(self, monkeypatch):
        real_triangulate = triangle.triangulate
        calls = []

        def picky_triangulate(data, options):
            segments = [tuple(s) for s in data.get('segments', np.zeros((0, 2))).tolist()]
            calls.append(segments)
            if (1, 3) in segments:
                raise RuntimeError("Triangle rejected segment")
            return real_triangulate(data, options)

        monkeypatch.setattr(triangle, 'triangulate', picky_triangulate)
        vertices = np.array([[0, 0], [1, 0], [1, 1], [0, 1]], dtype=np.float64)
        result = constrained_triangulation(vertices, [(1, 3), (0, 2)], 'pcQ')

        assert result is not None
        tris = np.sort(np.asarray(result['triangles']), axis=1).tolist()
        # The diagonal 0-2 survives even though 1-3 was rejected
        assert sorted(tris) == [[0, 1, 2], [0, 2, 3]]
        assert calls[-1] == [(0, 2)]

    def test_all_constraints_rejected_falls_back_to_plain_delaunay(self, monkeypatch):
        real_triangulate = triangle.triangulate

        def no_segments(data, options):
            if 'segments' in data:
                raise RuntimeError("Triangle rejected segments")
            return real_triangulate(data, options)

        monkeypatch.setattr(triangle, 'triangulate', no_segments)
        vertices = np.array([[0, 0], [2, 0], [2, 1], [0, 1]], dtype=np.float64)
        result = constrained_triangulation(vertices, [(0, 2), (1, 3)], 'pcQ')
        assert result is not None
        assert len(result['triangles']) == 2
