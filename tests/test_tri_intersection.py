"""Tests for triangle-triangle intersection and chord chaining."""

import numpy as np
import pytest

from surface_boolean.core.tri_intersection import (
    IntersectionSegment,
    chain_segments,
    find_intersection_segments,
    intersect_triangle_pair,
)

FLAT = np.array([[0, 0, 0], [2, 0, 0], [0, 2, 0]], dtype=np.float64)
WALL = np.array([[0.5, -1, -1], [0.5, 3, -1], [0.5, 0.5, 1]], dtype=np.float64)


class TestTrianglePair:

    def test_crossing_pair(self):
        chord = intersect_triangle_pair(FLAT, WALL)
        assert chord is not None
        p0, p1 = sorted(chord, key=lambda p: p[1])
        assert np.allclose(p0, [0.5, 0.0, 0.0])
        assert np.allclose(p1, [0.5, 1.5, 0.0])

    def test_pair_is_symmetric(self):
        a = intersect_triangle_pair(FLAT, WALL)
        b = intersect_triangle_pair(WALL, FLAT)
        assert b is not None
        assert np.isclose(np.linalg.norm(a[1] - a[0]), np.linalg.norm(b[1] - b[0]))

    def test_separated_pair(self):
        assert intersect_triangle_pair(FLAT, WALL + np.array([0, 0, 5.0])) is None

    def test_coplanar_pair_is_skipped(self):
        assert intersect_triangle_pair(FLAT, FLAT + np.array([0.5, 0.5, 0.0])) is None

    def test_point_contact_is_skipped(self):
        # Wall touches the flat triangle only at its apex
        wall = np.array([[0.5, 0.5, 0], [0.5, 3, 1], [0.5, -1, 1]], dtype=np.float64)
        assert intersect_triangle_pair(FLAT, wall) is None


class TestSurfaceIntersection:

    def test_square_through_cube(self, crossing_square, cube_soup):
        segments = find_intersection_segments(crossing_square, cube_soup)
        assert len(segments) >= 8
        for seg in segments:
            assert seg.p0[2] == pytest.approx(0.37)
            assert seg.p1[2] == pytest.approx(0.37)
            assert 0 <= seg.idx_a < 2
            assert 0 <= seg.idx_b < 12
        # The chords trace the cube cross-section perimeter exactly once
        assert sum(seg.length for seg in segments) == pytest.approx(4.0)

    def test_disjoint_surfaces(self, cube_soup):
        assert find_intersection_segments(cube_soup, cube_soup + 10.0) == []

    def test_empty_input(self, cube_soup):
        assert find_intersection_segments(cube_soup, np.zeros((0, 3, 3))) == []

    def test_segment_to_dict(self):
        seg = IntersectionSegment(p0=np.array([1.0, 2.0, 3.0]), p1=np.array([4.0, 5.0, 6.0]), idx_a=3, idx_b=7)
        data = seg.to_dict()
        assert data == {
            'p0': {'x': 1.0, 'y': 2.0, 'z': 3.0},
            'p1': {'x': 4.0, 'y': 5.0, 'z': 6.0},
            'idxA': 3,
            'idxB': 7,
        }
        restored = IntersectionSegment.from_dict(data)
        assert restored.idx_b == 7
        assert np.allclose(restored.p1, [4.0, 5.0, 6.0])


class TestChaining:

    def test_open_chain(self):
        pts = [np.array(p, dtype=np.float64) for p in ([0, 0, 0], [1, 0, 0], [1, 1, 0], [2, 1, 0])]
        segments = [IntersectionSegment(pts[i], pts[i + 1], 0, 0) for i in range(3)]
        polylines = chain_segments(segments)
        assert len(polylines) == 1
        assert len(polylines[0]) == 4
        ends = {tuple(polylines[0][0]), tuple(polylines[0][-1])}
        assert ends == {(0.0, 0.0, 0.0), (2.0, 1.0, 0.0)}

    def test_closed_perimeter(self, crossing_square, cube_soup):
        segments = find_intersection_segments(crossing_square, cube_soup)
        polylines = chain_segments(segments)
        assert len(polylines) == 1
        assert np.allclose(polylines[0][0], polylines[0][-1])

    def test_no_segments(self):
        assert chain_segments([]) == []
