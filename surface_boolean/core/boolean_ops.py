"""
Surface Boolean Operations

Entry points of the engine, shared by the synchronous API and the worker.

compute_splits algorithm:
1. Normalize both surfaces to triangle soups
2. Find tagged intersection chords (Moller, grid broad phase)
3. Build the crossed-triangle sets from the chord tags
4. Build the three projection grids of each surface
5. Flood-fill classify the non-crossed regions, one ray vote per region
6. Split crossed triangles along the chords and classify the pieces
7. Deduplicate seam vertices
8. Propagate normals for consistent winding
9. Build the split groups

apply_merge collects the kept groups and runs the MeshRepairer pipeline.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

import numpy as np

from surface_boolean.core.config import MergeConfig
from surface_boolean.core.geometry import as_soup, triangle_areas
from surface_boolean.core.mesh_analysis import MeshDiagnostics
from surface_boolean.core.mesh_repair import (
    SEAM_DEDUP_TOLERANCE,
    MeshRepairer,
    deduplicate_seam_vertices,
)
from surface_boolean.core.region_classification import classify_by_flood_fill
from surface_boolean.core.spatial_index import SurfaceGrids
from surface_boolean.core.straddle_split import Segment, split_straddling_and_classify
from surface_boolean.core.surface_io import (
    build_surface_record,
    soup_to_records,
    surface_identifier,
    surface_label,
    surface_to_soup,
)
from surface_boolean.core.tri_intersection import (
    IntersectionSegment,
    chain_segments,
    find_intersection_segments,
)
from surface_boolean.core.winding import propagate_normals

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


class SplitColors:
    """Display colors of the split groups."""
    A_INSIDE = "#FF0000"
    A_OUTSIDE = "#FF8800"
    B_INSIDE = "#00FF00"
    B_OUTSIDE = "#00CCFF"
    A_WHOLE = "#FF0000"
    B_WHOLE = "#00FF00"


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass
class SplitGroup:
    """A toggleable part of one surface after classification."""
    id: str
    surface_id: str
    label: str
    triangles: np.ndarray  # (n, 3, 3)
    color: str
    kept: bool = True

    @property
    def triangle_count(self) -> int:
        return len(self.triangles)

    @property
    def area(self) -> float:
        return float(np.sum(triangle_areas(self.triangles))) if len(self.triangles) else 0.0

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'surfaceId': self.surface_id,
            'label': self.label,
            'triangles': soup_to_records(self.triangles),
            'color': self.color,
            'kept': self.kept,
        }

    @classmethod
    def from_dict(cls, data: Any) -> 'SplitGroup':
        """Accept a SplitGroup, its to_dict() form, or snake_case keys."""
        if isinstance(data, cls):
            return data
        triangles = surface_to_soup({'triangles': data.get('triangles')})
        return cls(
            id=str(data['id']),
            surface_id=str(data.get('surfaceId', data.get('surface_id', ''))),
            label=str(data.get('label', data['id'])),
            triangles=triangles,
            color=str(data.get('color', '#4488FF')),
            kept=bool(data.get('kept', True)),
        )


@dataclass
class SplitResult:
    """Split groups of a surface pair plus the intersection chords."""
    splits: List[SplitGroup]
    surface_id_a: str
    surface_id_b: str
    tagged_segments: List[IntersectionSegment] = field(default_factory=list)

    @property
    def has_intersection(self) -> bool:
        return len(self.tagged_segments) > 0

    def get(self, group_id: str) -> Optional[SplitGroup]:
        for group in self.splits:
            if group.id == group_id:
                return group
        return None

    def set_kept(self, group_ids: Iterable[str]) -> None:
        """Keep exactly the listed groups."""
        wanted = set(group_ids)
        unknown = wanted - {g.id for g in self.splits}
        if unknown:
            logger.warning(f"Unknown split groups ignored: {sorted(unknown)}")
        for group in self.splits:
            group.kept = group.id in wanted

    def intersection_polylines(self, tolerance: float = None) -> List[np.ndarray]:
        return chain_segments(self.tagged_segments, tolerance)

    def to_dict(self) -> dict:
        return {
            'splits': [g.to_dict() for g in self.splits],
            'surfaceIdA': self.surface_id_a,
            'surfaceIdB': self.surface_id_b,
            'taggedSegments': [s.to_dict() for s in self.tagged_segments],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'SplitResult':
        return cls(
            splits=[SplitGroup.from_dict(g) for g in data.get('splits') or []],
            surface_id_a=str(data.get('surfaceIdA', data.get('surface_id_a', ''))),
            surface_id_b=str(data.get('surfaceIdB', data.get('surface_id_b', ''))),
            tagged_segments=[
                IntersectionSegment.from_dict(s)
                for s in data.get('taggedSegments', data.get('tagged_segments')) or []
            ],
        )


@dataclass
class MergeResult:
    """Merged surface record plus the indexed mesh it was built from."""
    surface: dict
    points: np.ndarray
    faces: np.ndarray
    diagnostics: MeshDiagnostics
    repair_steps: List[str] = field(default_factory=list)
    kept_triangle_count: int = 0

    @property
    def boundary_edge_count(self) -> int:
        return self.diagnostics.boundary_edge_count

    @property
    def over_shared_edge_count(self) -> int:
        return self.diagnostics.over_shared_edge_count

    @property
    def is_closed(self) -> bool:
        return self.diagnostics.is_closed

    def to_dict(self) -> dict:
        return self.surface


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================

def _group_crossed(segments: List[IntersectionSegment], use_a: bool) -> Dict[int, List[Segment]]:
    crossed: Dict[int, List[Segment]] = {}
    for seg in segments:
        idx = seg.idx_a if use_a else seg.idx_b
        crossed.setdefault(int(idx), []).append((seg.p0, seg.p1))
    return crossed


def _crossed_mask(n: int, crossed: Dict[int, List[Segment]]) -> np.ndarray:
    mask = np.zeros(n, dtype=bool)
    if crossed:
        mask[list(crossed.keys())] = True
    return mask


def _finish_group(soup: np.ndarray) -> np.ndarray:
    if len(soup) == 0:
        return soup
    soup = deduplicate_seam_vertices(soup, SEAM_DEDUP_TOLERANCE)
    return propagate_normals(soup)


def build_no_intersection_result(
    soup_a: np.ndarray,
    soup_b: np.ndarray,
    surface_id_a: str,
    surface_id_b: str,
    name_a: str,
    name_b: str
) -> SplitResult:
    """Each surface as one whole kept group."""
    splits = []
    if len(soup_a) > 0:
        splits.append(SplitGroup(
            id="A_whole", surface_id=surface_id_a, label=f"{name_a} [whole]",
            triangles=soup_a, color=SplitColors.A_WHOLE,
        ))
    if len(soup_b) > 0:
        splits.append(SplitGroup(
            id="B_whole", surface_id=surface_id_b, label=f"{name_b} [whole]",
            triangles=soup_b, color=SplitColors.B_WHOLE,
        ))
    return SplitResult(splits=splits, surface_id_a=surface_id_a, surface_id_b=surface_id_b)


# ============================================================================
# MAIN API
# ============================================================================

def compute_splits(
    surface_a: Any,
    surface_b: Any,
    progress_callback: Optional[ProgressCallback] = None
) -> Optional[SplitResult]:
    """
    Split two surfaces against each other into inside/outside groups.

    Args:
        surface_a: first surface ({id, name, points, triangles}, soup or trimesh)
        surface_b: second surface
        progress_callback: Optional callback(percent, message)

    Returns:
        SplitResult with up to 4 groups, the whole surfaces when they do not
        intersect, or None when a surface has no triangles
    """
    def _progress(percent: int, message: str) -> None:
        if progress_callback:
            progress_callback(percent, message)

    # Step 1: Extract triangles
    _progress(5, "Extracting triangles...")
    soup_a = surface_to_soup(surface_a)
    soup_b = surface_to_soup(surface_b)
    surface_id_a = surface_identifier(surface_a, "A")
    surface_id_b = surface_identifier(surface_b, "B")
    name_a = surface_label(surface_a, surface_id_a)
    name_b = surface_label(surface_b, surface_id_b)

    if len(soup_a) == 0 or len(soup_b) == 0:
        logger.error(f"Surface boolean: one or both surfaces have no triangles (A={len(soup_a)}, B={len(soup_b)})")
        return None

    logger.info(f"Surface boolean: A={len(soup_a)} triangles, B={len(soup_b)} triangles")

    # Step 2: Tagged intersection chords
    _progress(10, "Finding intersections...")
    segments = find_intersection_segments(soup_a, soup_b)
    if not segments:
        logger.warning("Surface boolean: no intersection found, returning each surface as a whole group")
        _progress(100, "No intersection")
        return build_no_intersection_result(soup_a, soup_b, surface_id_a, surface_id_b, name_a, name_b)

    # Step 3: Crossed sets
    _progress(30, "Building crossed triangle sets...")
    crossed_a = _group_crossed(segments, use_a=True)
    crossed_b = _group_crossed(segments, use_a=False)
    logger.info(f"Surface boolean: crossed A={len(crossed_a)}, crossed B={len(crossed_b)}")

    # Step 4: Projection grids
    _progress(40, "Building spatial grids...")
    grids_a = SurfaceGrids(soup_a)
    grids_b = SurfaceGrids(soup_b)

    # Step 5: Flood-fill classification
    _progress(55, "Classifying regions...")
    classes_a = classify_by_flood_fill(soup_a, _crossed_mask(len(soup_a), crossed_a), grids_b)
    classes_b = classify_by_flood_fill(soup_b, _crossed_mask(len(soup_b), crossed_b), grids_a)

    # Step 6: Split crossed triangles
    _progress(70, "Splitting crossed triangles...")
    inside_a, outside_a = split_straddling_and_classify(soup_a, classes_a, crossed_a, grids_b)
    inside_b, outside_b = split_straddling_and_classify(soup_b, classes_b, crossed_b, grids_a)
    logger.info(
        f"Surface boolean: A inside={len(inside_a)} outside={len(outside_a)}, "
        f"B inside={len(inside_b)} outside={len(outside_b)}"
    )

    # Steps 7-8: Seam dedup and winding
    _progress(85, "Deduplicating seams and propagating normals...")
    inside_a = _finish_group(inside_a)
    outside_a = _finish_group(outside_a)
    inside_b = _finish_group(inside_b)
    outside_b = _finish_group(outside_b)

    # Step 9: Split groups
    _progress(95, "Building split groups...")
    candidates = [
        ("A_inside", surface_id_a, f"{name_a} [inside]", inside_a, SplitColors.A_INSIDE),
        ("A_outside", surface_id_a, f"{name_a} [outside]", outside_a, SplitColors.A_OUTSIDE),
        ("B_inside", surface_id_b, f"{name_b} [inside]", inside_b, SplitColors.B_INSIDE),
        ("B_outside", surface_id_b, f"{name_b} [outside]", outside_b, SplitColors.B_OUTSIDE),
    ]
    splits = [
        SplitGroup(id=gid, surface_id=sid, label=label, triangles=tris, color=color)
        for gid, sid, label, tris, color in candidates
        if len(tris) > 0
    ]

    if not splits:
        logger.warning("Surface boolean: no split groups created")
        return None

    logger.info(f"Surface boolean: {len(splits)} split groups created")
    _progress(100, "Done")
    return SplitResult(
        splits=splits,
        surface_id_a=surface_id_a,
        surface_id_b=surface_id_b,
        tagged_segments=segments,
    )


def apply_merge(
    splits: Any,
    config: Any = None,
    progress_callback: Optional[ProgressCallback] = None
) -> Optional[MergeResult]:
    """
    Merge the kept split groups into one surface.

    Args:
        splits: SplitResult, list of SplitGroup, or their dict forms
        config: MergeConfig, mapping or None for defaults
        progress_callback: Optional callback(percent, message)

    Returns:
        MergeResult, or None when no triangles are kept
    """
    config = MergeConfig.from_any(config)

    if isinstance(splits, SplitResult):
        groups = splits.splits
    elif isinstance(splits, dict) and 'splits' in splits:
        groups = SplitResult.from_dict(splits).splits
    else:
        groups = [SplitGroup.from_dict(g) for g in splits or []]

    # Step 1: Collect kept triangles
    if progress_callback:
        progress_callback(5, "Collecting kept triangles...")
    kept = [g.triangles for g in groups if g.kept and len(g.triangles) > 0]
    if not kept:
        logger.warning("Surface boolean merge: no triangles kept")
        return None
    soup = as_soup(np.concatenate(kept))
    logger.info(
        f"Surface boolean merge: {len(soup)} kept triangles from "
        f"{', '.join(g.id for g in groups if g.kept)}"
    )

    repair = MeshRepairer(soup).repair(progress_callback=progress_callback, **config.repair_options())

    diagnostics = repair.diagnostics
    surface = build_surface_record(
        repair.points,
        repair.faces,
        surface_id=config.result_id,
        name=config.result_name,
        gradient=config.gradient,
        diagnostics=diagnostics.to_dict(),
    )
    logger.info(
        f"Surface boolean merge: created {surface['id']} with {len(repair.points)} points, "
        f"{len(repair.faces)} triangles, {diagnostics.boundary_edge_count} open edges, "
        f"{diagnostics.over_shared_edge_count} over-shared edges"
    )

    if progress_callback:
        progress_callback(100, "Done")
    return MergeResult(
        surface=surface,
        points=repair.points,
        faces=repair.faces,
        diagnostics=diagnostics,
        repair_steps=repair.repair_steps,
        kept_triangle_count=len(soup),
    )
