"""
Mesh Analysis Module

Diagnostics for the indexed meshes produced by the merge pipeline.

Analyzes:
- Vertex, face and edge counts
- Boundary (open) and over-shared (non-manifold) edges
- Watertightness and winding consistency
- Euler number and genus (closed meshes only)
- Volume (closed, consistently wound meshes only) and surface area
- Bounding box dimensions
- Degenerate and duplicate faces
"""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import trimesh

from surface_boolean.core.geometry import count_open_edges


@dataclass
class BoundingBox:
    """3D bounding box representation."""
    min_point: np.ndarray  # [x, y, z]
    max_point: np.ndarray  # [x, y, z]

    @property
    def size(self) -> np.ndarray:
        """Get the size (dimensions) of the bounding box."""
        return self.max_point - self.min_point

    @property
    def diagonal(self) -> float:
        return float(np.linalg.norm(self.size))

    def __str__(self) -> str:
        size = self.size
        return f"Size: {size[0]:.3f} x {size[1]:.3f} x {size[2]:.3f}"


@dataclass
class MeshDiagnostics:
    """Diagnostics of a merged indexed mesh."""
    vertex_count: int
    face_count: int
    edge_count: int
    boundary_edge_count: int
    over_shared_edge_count: int
    is_watertight: bool
    is_winding_consistent: bool
    euler_number: int
    genus: int
    volume: float
    surface_area: float
    bounding_box: BoundingBox
    degenerate_face_count: int = 0
    duplicate_face_count: int = 0
    issues: List[str] = field(default_factory=list)

    @property
    def is_closed(self) -> bool:
        """No open and no over-shared edges."""
        return self.boundary_edge_count == 0 and self.over_shared_edge_count == 0

    def format(self) -> str:
        """Format diagnostics for display."""
        lines = [
            f"Vertices: {self.vertex_count:,}",
            f"Faces: {self.face_count:,}",
            f"Edges: {self.edge_count:,}",
            f"Boundary edges: {self.boundary_edge_count:,}",
            f"Over-shared edges: {self.over_shared_edge_count:,}",
            "",
            f"Closed: {'Yes' if self.is_closed else 'No'}",
            f"Watertight: {'Yes' if self.is_watertight else 'No'}",
            f"Consistent winding: {'Yes' if self.is_winding_consistent else 'No'}",
            f"Euler Number: {self.euler_number}",
        ]
        if self.genus >= 0:
            lines.append(f"Genus: {self.genus}")
        lines.append("")
        if self.volume > 0:
            lines.append(f"Volume: {self.volume:,.4f}")
        lines.append(f"Surface Area: {self.surface_area:,.4f}")
        lines.append(f"Bounding Box: {self.bounding_box}")

        if self.issues:
            lines.append("")
            lines.append("Issues:")
            for issue in self.issues:
                lines.append(f"  - {issue}")

        return "\n".join(lines)

    def to_dict(self) -> dict:
        """Convert diagnostics to dictionary."""
        return {
            'vertexCount': self.vertex_count,
            'faceCount': self.face_count,
            'edgeCount': self.edge_count,
            'boundaryEdgeCount': self.boundary_edge_count,
            'overSharedEdgeCount': self.over_shared_edge_count,
            'isClosed': self.is_closed,
            'isWatertight': self.is_watertight,
            'isWindingConsistent': self.is_winding_consistent,
            'eulerNumber': self.euler_number,
            'genus': self.genus,
            'volume': self.volume,
            'surfaceArea': self.surface_area,
            'boundingBox': {
                'min': self.bounding_box.min_point.tolist(),
                'max': self.bounding_box.max_point.tolist(),
                'size': self.bounding_box.size.tolist(),
            },
            'degenerateFaceCount': self.degenerate_face_count,
            'duplicateFaceCount': self.duplicate_face_count,
            'issues': self.issues,
        }


class MeshAnalyzer:
    """
    Mesh analysis and diagnostics.

    Wraps the indexed mesh in a trimesh.Trimesh without processing, so the
    counts reflect exactly what the pipeline produced.
    """

    def __init__(self, points: np.ndarray, faces: np.ndarray):
        """
        Initialize analyzer with an indexed mesh.

        Args:
            points: (m, 3) vertex positions
            faces: (k, 3) vertex indices per triangle
        """
        self.points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        self.faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
        self._diagnostics: Optional[MeshDiagnostics] = None

    def analyze(self) -> MeshDiagnostics:
        """
        Perform mesh analysis.

        Returns:
            MeshDiagnostics containing all analysis results
        """
        issues: List[str] = []
        boundary_edges, over_shared_edges = count_open_edges(self.faces)

        if len(self.faces) == 0:
            self._diagnostics = MeshDiagnostics(
                vertex_count=len(self.points),
                face_count=0,
                edge_count=0,
                boundary_edge_count=0,
                over_shared_edge_count=0,
                is_watertight=False,
                is_winding_consistent=False,
                euler_number=0,
                genus=-1,
                volume=0.0,
                surface_area=0.0,
                bounding_box=BoundingBox(np.zeros(3), np.zeros(3)),
                issues=["Mesh has no faces"],
            )
            return self._diagnostics

        mesh = trimesh.Trimesh(vertices=self.points, faces=self.faces, process=False)

        bounds = mesh.bounds
        bounding_box = BoundingBox(min_point=bounds[0].copy(), max_point=bounds[1].copy())

        is_watertight = bool(mesh.is_watertight)
        is_winding_consistent = bool(mesh.is_winding_consistent)
        euler_number = int(mesh.euler_number)

        if boundary_edges > 0:
            issues.append(f"{boundary_edges} boundary (open) edges remain")
        if over_shared_edges > 0:
            issues.append(f"{over_shared_edges} edges are shared by more than two triangles")
        if not is_winding_consistent:
            issues.append("Triangle winding is not consistent")

        # For a closed manifold: genus = (2 - euler) / 2
        if is_watertight:
            genus = (2 - euler_number) // 2
            volume = 0.0
            # Signed volume is meaningless when faces disagree on orientation
            if is_winding_consistent:
                volume = float(mesh.volume)
                if volume < 0:
                    issues.append("Mesh has inverted normals (inside-out)")
            else:
                issues.append("Volume not computed: triangle winding is not consistent")
        else:
            genus = -1
            volume = 0.0

        surface_area = float(mesh.area)

        degenerate_count = int(np.sum(mesh.area_faces < 1e-10))
        if degenerate_count > 0:
            issues.append(f"Found {degenerate_count} degenerate (zero-area) faces")

        unique_faces = np.unique(np.sort(self.faces, axis=1), axis=0)
        duplicate_count = len(self.faces) - len(unique_faces)
        if duplicate_count > 0:
            issues.append(f"Found {duplicate_count} duplicate faces")

        self._diagnostics = MeshDiagnostics(
            vertex_count=len(self.points),
            face_count=len(self.faces),
            edge_count=len(mesh.edges_unique),
            boundary_edge_count=boundary_edges,
            over_shared_edge_count=over_shared_edges,
            is_watertight=is_watertight,
            is_winding_consistent=is_winding_consistent,
            euler_number=euler_number,
            genus=genus,
            volume=abs(volume),
            surface_area=surface_area,
            bounding_box=bounding_box,
            degenerate_face_count=degenerate_count,
            duplicate_face_count=duplicate_count,
            issues=issues,
        )
        return self._diagnostics

    @property
    def diagnostics(self) -> Optional[MeshDiagnostics]:
        """Get cached diagnostics (call analyze() first)."""
        return self._diagnostics


def analyze_mesh(points: np.ndarray, faces: np.ndarray) -> MeshDiagnostics:
    """
    Convenience function to analyze an indexed mesh.

    Args:
        points: (m, 3) vertex positions
        faces: (k, 3) vertex indices per triangle

    Returns:
        MeshDiagnostics containing all analysis results
    """
    analyzer = MeshAnalyzer(points, faces)
    return analyzer.analyze()
