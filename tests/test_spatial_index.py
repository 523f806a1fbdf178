"""Tests for the projection grids."""

import numpy as np
import pytest

from surface_boolean.core.spatial_index import (
    MIN_CELL_SIZE,
    ProjectionGrid,
    SurfaceGrids,
    grid_cell_size,
)


def test_cell_size_from_average_edge(cube_soup):
    avg = (2.0 + np.sqrt(2.0)) / 3.0
    assert grid_cell_size(cube_soup) == pytest.approx(2.0 * avg)


def test_cell_size_has_floor():
    tiny = np.array([[[0, 0, 0], [0.001, 0, 0], [0, 0.001, 0]]], dtype=np.float64)
    assert grid_cell_size(tiny) == MIN_CELL_SIZE


def test_unknown_axis_rejected(cube_soup):
    with pytest.raises(ValueError):
        ProjectionGrid(cube_soup, 'w', 1.0)


def test_z_query_finds_top_and_bottom(cube_soup):
    grids = SurfaceGrids(cube_soup)
    found = set(grids.candidates(np.array([0.5, 0.5, 0.5]), 'z').tolist())
    # Bottom and top faces are triangles 0-3
    assert {0, 1, 2, 3} <= found


def test_x_query_uses_yz_projection(cube_soup):
    grids = SurfaceGrids(cube_soup, cell_size=0.25)
    found = set(grids.candidates(np.array([-5.0, 0.5, 0.5]), 'x').tolist())
    # Left and right faces, regardless of the x coordinate of the query
    assert {8, 9, 10, 11} <= found


def test_far_query_is_empty(cube_soup):
    grids = SurfaceGrids(cube_soup, cell_size=0.25)
    assert len(grids.candidates(np.array([10.0, 10.0, 0.0]), 'z')) == 0
    assert grids['z'].cell_count > 0
