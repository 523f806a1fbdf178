"""Tests for Steiner-point re-triangulation of crossed triangles."""

import numpy as np
import pytest

from surface_boolean.core.geometry import triangle_areas, triangle_normals
from surface_boolean.core.region_classification import INSIDE, OUTSIDE
from surface_boolean.core.spatial_index import SurfaceGrids
from surface_boolean.core.straddle_split import (
    retriangulate_with_steiner_points,
    split_straddling_and_classify,
)

from conftest import make_square_soup

PARENT = np.array([[0, 0, 0], [2, 0, 0], [0, 2, 0]], dtype=np.float64)
CHORD = (np.array([0.5, 0.0, 0.0]), np.array([0.5, 1.5, 0.0]))


class TestRetriangulation:

    def test_chord_becomes_an_edge(self):
        subs = retriangulate_with_steiner_points(PARENT, [CHORD])
        assert len(subs) == 3
        assert triangle_areas(subs).sum() == pytest.approx(2.0)
        # No sub-triangle straddles the chord line
        xs = subs[:, :, 0]
        assert np.all((xs.max(axis=1) <= 0.5 + 1e-9) | (xs.min(axis=1) >= 0.5 - 1e-9))

    def test_sub_triangles_keep_parent_winding(self):
        subs = retriangulate_with_steiner_points(PARENT, [CHORD])
        assert np.all(triangle_normals(subs)[:, 2] > 0)

        flipped = PARENT[[0, 2, 1]]
        subs = retriangulate_with_steiner_points(flipped, [CHORD])
        assert np.all(triangle_normals(subs)[:, 2] < 0)

    def test_steep_triangle(self):
        # Same configuration stood up in the XZ plane
        parent = PARENT[:, [0, 2, 1]]
        chord = tuple(p[[0, 2, 1]] for p in CHORD)
        subs = retriangulate_with_steiner_points(parent, [chord])
        assert len(subs) == 3
        assert triangle_areas(subs).sum() == pytest.approx(2.0)

    def test_endpoints_outside_are_ignored(self):
        far = (np.array([5.0, 5.0, 0.0]), np.array([6.0, 5.0, 0.0]))
        subs = retriangulate_with_steiner_points(PARENT, [far])
        assert np.allclose(subs, PARENT[None])

    def test_degenerate_parent_is_returned(self):
        line = np.array([[0, 0, 0], [1, 0, 0], [2, 0, 0]], dtype=np.float64)
        subs = retriangulate_with_steiner_points(line, [CHORD])
        assert np.allclose(subs, line[None])


class TestSplitAndClassify:

    def test_split_square_against_cube(self, cube_soup):
        # Square straddling the cube wall at x=1, one crossed triangle per half
        square = make_square_soup((0.5, 1.5), (0.2, 0.8), 0.5)
        # Square diagonal runs from (0.5, 0.2) to (1.5, 0.8); it meets x=1 at y=0.5
        chord_0 = (np.array([1.0, 0.2, 0.5]), np.array([1.0, 0.5, 0.5]))
        chord_1 = (np.array([1.0, 0.5, 0.5]), np.array([1.0, 0.8, 0.5]))
        classes = np.zeros(2, dtype=np.int8)
        crossed = {0: [chord_0], 1: [chord_1]}

        inside, outside = split_straddling_and_classify(square, classes, crossed, SurfaceGrids(cube_soup))
        assert triangle_areas(inside).sum() == pytest.approx(0.3)
        assert triangle_areas(outside).sum() == pytest.approx(0.3)
        assert np.all(inside[:, :, 0] <= 1.0 + 1e-9)
        assert np.all(outside[:, :, 0] >= 1.0 - 1e-9)

    def test_non_crossed_triangles_pass_through(self, cube_soup):
        square = make_square_soup((0.2, 0.8), (0.2, 0.8), 0.5)
        classes = np.array([INSIDE, OUTSIDE], dtype=np.int8)
        inside, outside = split_straddling_and_classify(square, classes, {}, SurfaceGrids(cube_soup))
        assert np.allclose(inside, square[:1])
        assert np.allclose(outside, square[1:])
