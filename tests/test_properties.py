"""End-to-end properties of the split and merge pipeline."""

import numpy as np
import pytest
import trimesh

from surface_boolean.core.boolean_ops import apply_merge, compute_splits
from surface_boolean.core.geometry import triangle_areas
from surface_boolean.core.mesh_repair import (
    cap_boundary_loops_sequential,
    extract_boundary_loops,
    remove_degenerate_triangles,
    soup_edge_stats,
    weld_vertices,
)

from conftest import make_box_soup, make_open_dome


def test_disjoint_surfaces_stay_whole(cube_soup):
    result = compute_splits(cube_soup, cube_soup + np.array([3.0, 0.0, 0.0]))
    assert len(result.splits) == 2
    assert result.tagged_segments == []
    assert np.allclose(result.splits[0].triangles, cube_soup)


def test_square_cut_by_cube_preserves_area(crossing_square, cube_soup):
    result = compute_splits(crossing_square, cube_soup)
    inside = result.get('A_inside').area
    outside = result.get('A_outside').area
    # Cube cross-section is the unit square
    assert inside == pytest.approx(1.0, rel=0.01)
    assert inside + outside == pytest.approx(9.0, rel=0.01)


def test_weld_is_idempotent(cube_soup):
    rng = np.random.default_rng(3)
    jittered = cube_soup + rng.uniform(-1e-4, 1e-4, cube_soup.shape)
    points, faces = weld_vertices(jittered, 0.001)
    again_points, again_faces = weld_vertices(points[faces], 0.001)
    assert len(again_points) == len(points)
    assert len(again_faces) == len(faces)


def test_degenerate_removal_keeps_valid_mesh():
    big = make_box_soup(scale=2.0)
    assert np.array_equal(remove_degenerate_triangles(big, 1e-6, 0.01), big)

    thin = np.array([[[0, 0, 0], [5, 0, 0], [2.5, 1e-5, 0]]], dtype=np.float64)
    mixed = np.concatenate([big, thin])
    assert len(remove_degenerate_triangles(mixed, 1e-6, 0.01)) <= len(mixed)


def test_closed_cube_has_no_boundary(cube_soup):
    boundary = extract_boundary_loops(cube_soup)
    assert boundary.boundary_edge_count == 0
    assert len(boundary.loops) == 0


@pytest.mark.parametrize("segments", [8, 12, 20])
def test_capping_open_dome(segments):
    dome = make_open_dome(segments)
    capped = cap_boundary_loops_sequential(dome, 0.0)
    assert len(capped) - len(dome) == segments - 2
    assert soup_edge_stats(capped)[0] == 0


def test_overlapping_cubes_merge_closed(cube_record, translated_cube_record):
    splits = compute_splits(cube_record, translated_cube_record)
    assert len(splits.splits) == 4

    splits.set_kept(['A_outside', 'B_outside'])
    result = apply_merge(splits, {'closeMode': 'stitch', 'snapTolerance': 0.001})
    assert result.boundary_edge_count == 0
    assert len(result.faces) > 12
    assert triangle_areas(result.points[result.faces]).sum() > 0


def test_overlapping_spheres_union_volume():
    sphere_a = trimesh.creation.icosphere(subdivisions=2, radius=1.0)
    sphere_b = trimesh.creation.icosphere(subdivisions=2, radius=1.0)
    offset = np.array([0.7, 0.13, 0.05])
    sphere_b.apply_translation(offset)

    splits = compute_splits(sphere_a, sphere_b)
    splits.set_kept(['A_outside', 'B_outside'])
    result = apply_merge(splits, {'closeMode': 'stitch', 'snapTolerance': 0.001})
    diagnostics = result.diagnostics
    assert diagnostics.is_watertight
    assert diagnostics.is_winding_consistent

    # Two unit spheres minus their lens, scaled to the faceted sphere volume
    d = float(np.linalg.norm(offset))
    lens = np.pi * (4.0 + d) * (2.0 - d) ** 2 / 12.0
    sphere = 4.0 / 3.0 * np.pi
    expected = sphere_a.volume * (2.0 * sphere - lens) / sphere
    assert diagnostics.volume == pytest.approx(expected, rel=0.03)
