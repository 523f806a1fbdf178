# Core module for surface Boolean operations
from surface_boolean.core.geometry import (
    VertexGrid,
    as_soup,
    compute_bounds,
    count_open_edges,
    indexed_to_soup,
    triangle_areas,
)
from surface_boolean.core.spatial_index import SurfaceGrids, ProjectionGrid, grid_cell_size
from surface_boolean.core.tri_intersection import (
    IntersectionSegment,
    intersect_triangle_pair,
    find_intersection_segments,
    chain_segments,
)
from surface_boolean.core.region_classification import (
    classify_point,
    classify_by_flood_fill,
    INSIDE,
    OUTSIDE,
)
from surface_boolean.core.straddle_split import (
    retriangulate_with_steiner_points,
    split_straddling_and_classify,
)
from surface_boolean.core.winding import propagate_normals, ensure_z_up_normals, orient_closed_faces
from surface_boolean.core.mesh_analysis import MeshAnalyzer, MeshDiagnostics, analyze_mesh
from surface_boolean.core.mesh_repair import (
    MeshRepairer,
    MeshRepairResult,
    RepairMethod,
    repair_mesh,
    deduplicate_seam_vertices,
    weld_vertices,
    weld_boundary_vertices,
    remove_degenerate_triangles,
    clean_crossing_triangles,
    remove_overlapping_triangles,
    extract_boundary_loops,
    triangulate_loop,
    cap_boundary_loops_sequential,
    stitch_by_proximity,
    force_close_indexed_mesh,
)
from surface_boolean.core.config import MergeConfig
from surface_boolean.core.surface_io import (
    surface_to_soup,
    build_surface_record,
    surface_from_trimesh,
    surface_to_trimesh,
)
from surface_boolean.core.boolean_ops import (
    compute_splits,
    apply_merge,
    SplitGroup,
    SplitResult,
    MergeResult,
)

__all__ = [
    # Geometry
    'VertexGrid',
    'as_soup',
    'compute_bounds',
    'count_open_edges',
    'indexed_to_soup',
    'triangle_areas',
    # Spatial index
    'SurfaceGrids',
    'ProjectionGrid',
    'grid_cell_size',
    # Intersection
    'IntersectionSegment',
    'intersect_triangle_pair',
    'find_intersection_segments',
    'chain_segments',
    # Classification and splitting
    'classify_point',
    'classify_by_flood_fill',
    'INSIDE',
    'OUTSIDE',
    'retriangulate_with_steiner_points',
    'split_straddling_and_classify',
    'propagate_normals',
    'ensure_z_up_normals',
    'orient_closed_faces',
    # Analysis and repair
    'MeshAnalyzer',
    'MeshDiagnostics',
    'analyze_mesh',
    'MeshRepairer',
    'MeshRepairResult',
    'RepairMethod',
    'repair_mesh',
    'deduplicate_seam_vertices',
    'weld_vertices',
    'weld_boundary_vertices',
    'remove_degenerate_triangles',
    'clean_crossing_triangles',
    'remove_overlapping_triangles',
    'extract_boundary_loops',
    'triangulate_loop',
    'cap_boundary_loops_sequential',
    'stitch_by_proximity',
    'force_close_indexed_mesh',
    # Orchestration
    'MergeConfig',
    'surface_to_soup',
    'build_surface_record',
    'surface_from_trimesh',
    'surface_to_trimesh',
    'compute_splits',
    'apply_merge',
    'SplitGroup',
    'SplitResult',
    'MergeResult',
]
