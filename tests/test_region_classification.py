"""Tests for ray voting and flood-fill classification."""

import numpy as np

from surface_boolean.core.region_classification import (
    INSIDE,
    OUTSIDE,
    UNCLASSIFIED,
    build_triangle_adjacency,
    classify_by_flood_fill,
    classify_point,
    classify_point_on_axis,
)
from surface_boolean.core.spatial_index import SurfaceGrids

from conftest import make_square_soup


def _wall(axis, offset, range_a, range_b):
    """Rectangle in the plane axis == offset, spanning range_a x range_b over the other two axes."""
    square = make_square_soup(range_a, range_b, offset)
    if axis == 'x':
        return square[..., [2, 0, 1]]
    return square[..., [0, 2, 1]]


class TestRayVoting:

    def test_centre_ray_through_shared_diagonal_counts_once(self, cube_soup):
        grids = SurfaceGrids(cube_soup)
        # The +Z ray from the centre meets the top face exactly on its diagonal
        assert classify_point_on_axis(np.array([0.5, 0.5, 0.5]), grids, 'z') == 1

    def test_inside_point(self, cube_soup):
        grids = SurfaceGrids(cube_soup)
        assert classify_point(np.array([0.5, 0.5, 0.5]), grids) == INSIDE
        assert classify_point(np.array([0.2, 0.7, 0.4]), grids) == INSIDE

    def test_outside_points(self, cube_soup):
        grids = SurfaceGrids(cube_soup)
        assert classify_point(np.array([3.0, 3.0, 3.0]), grids) == OUTSIDE
        # Below the cube: two hits along +Z
        assert classify_point(np.array([0.3, 0.6, -2.0]), grids) == OUTSIDE
        # Above the cube: no hits anywhere
        assert classify_point(np.array([0.3, 0.6, 3.0]), grids) == OUTSIDE

    def test_single_inside_vote_wins_without_outside_votes(self):
        # An open square seen from below: only the +Z ray hits it
        square = make_square_soup((0.0, 1.0), (0.0, 1.0), 1.0)
        grids = SurfaceGrids(square)
        assert classify_point(np.array([0.3, 0.6, 0.0]), grids) == INSIDE
        assert classify_point(np.array([0.3, 0.6, 2.0]), grids) == OUTSIDE

    def test_one_inside_and_one_outside_vote_is_outside(self):
        roof = make_square_soup((0.0, 1.0), (0.0, 1.0), 1.0)
        walls = np.concatenate([
            _wall('x', 2.0, (0.0, 1.0), (0.0, 1.0)),
            _wall('x', 3.0, (0.0, 1.0), (0.0, 1.0)),
        ])
        grids = SurfaceGrids(np.concatenate([roof, walls]))
        point = np.array([0.3, 0.6, 0.5])
        assert classify_point_on_axis(point, grids, 'z') == 1
        assert classify_point_on_axis(point, grids, 'x') == 2
        assert classify_point_on_axis(point, grids, 'y') == 0
        assert classify_point(point, grids) == OUTSIDE

    def test_two_inside_votes_outweigh_one_outside_vote(self):
        roof = make_square_soup((0.0, 1.0), (0.0, 1.0), 1.0)
        walls = np.concatenate([
            _wall('x', 2.0, (0.0, 1.0), (0.0, 1.0)),
            _wall('x', 3.0, (0.0, 1.0), (0.0, 1.0)),
            _wall('y', 2.0, (0.0, 1.0), (0.0, 1.0)),
        ])
        grids = SurfaceGrids(np.concatenate([roof, walls]))
        point = np.array([0.3, 0.6, 0.5])
        assert classify_point_on_axis(point, grids, 'z') == 1
        assert classify_point_on_axis(point, grids, 'x') == 2
        assert classify_point_on_axis(point, grids, 'y') == 1
        assert classify_point(point, grids) == INSIDE


class TestFloodFill:

    def test_cube_adjacency(self, cube_soup):
        adjacency = build_triangle_adjacency(cube_soup)
        assert all(len(neighbors) == 3 for neighbors in adjacency)

    def test_excluded_triangles_have_no_neighbours(self, cube_soup):
        excluded = np.zeros(12, dtype=bool)
        excluded[0] = True
        adjacency = build_triangle_adjacency(cube_soup, excluded)
        assert adjacency[0] == []
        assert all(0 not in neighbors for neighbors in adjacency)

    def test_square_inside_cube(self, cube_soup):
        square = make_square_soup((0.2, 0.8), (0.2, 0.8), 0.5)
        classes = classify_by_flood_fill(square, np.zeros(2, dtype=bool), SurfaceGrids(cube_soup))
        assert classes.tolist() == [INSIDE, INSIDE]

    def test_far_surface_is_outside(self, cube_soup):
        classes = classify_by_flood_fill(cube_soup + 5.0, np.zeros(12, dtype=bool), SurfaceGrids(cube_soup))
        assert np.all(classes == OUTSIDE)

    def test_crossed_triangles_stay_unclassified(self, cube_soup):
        square = make_square_soup((0.2, 0.8), (0.2, 0.8), 0.5)
        crossed = np.array([True, False])
        classes = classify_by_flood_fill(square, crossed, SurfaceGrids(cube_soup))
        assert classes[0] == UNCLASSIFIED
        assert classes[1] == INSIDE
