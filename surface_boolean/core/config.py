"""
Merge configuration.

Field names are snake_case; the camelCase names used in message payloads are
accepted as aliases.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from surface_boolean.core.mesh_repair import (
    DEFAULT_MIN_AREA,
    DEFAULT_OVERLAP_TOLERANCE,
    DEFAULT_SLIVER_RATIO,
    DEFAULT_STITCH_TOLERANCE,
)

CloseMode = Literal['none', 'weld', 'stitch', 'raw']


class MergeConfig(BaseModel):
    """Parameters for merging kept split groups"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    close_mode: CloseMode = Field('none', alias='closeMode')
    snap_tolerance: float = Field(0.0, alias='snapTolerance', ge=0.0)  # 0 welds exact duplicates only
    stitch_tolerance: float = Field(DEFAULT_STITCH_TOLERANCE, alias='stitchTolerance')
    remove_degenerate: bool = Field(True, alias='removeDegenerate')
    remove_slivers: bool = Field(False, alias='removeSlivers')
    clean_crossings: bool = Field(False, alias='cleanCrossings')
    remove_overlapping: bool = Field(False, alias='removeOverlapping')
    sliver_ratio: float = Field(DEFAULT_SLIVER_RATIO, alias='sliverRatio')
    min_area: float = Field(DEFAULT_MIN_AREA, alias='minArea')
    overlap_tolerance: float = Field(DEFAULT_OVERLAP_TOLERANCE, alias='overlapTolerance')
    gradient: Any = 'default'  # Display only, passed through
    result_id: Optional[str] = Field(None, alias='resultId')
    result_name: Optional[str] = Field(None, alias='resultName')

    @field_validator('stitch_tolerance')
    @classmethod
    def _default_stitch_tolerance(cls, value: float) -> float:
        return value if value > 0 else DEFAULT_STITCH_TOLERANCE

    @field_validator('overlap_tolerance')
    @classmethod
    def _default_overlap_tolerance(cls, value: float) -> float:
        return value if value > 0 else DEFAULT_OVERLAP_TOLERANCE

    @classmethod
    def from_any(cls, config: Any = None) -> 'MergeConfig':
        """Build a config from None, a mapping or an existing MergeConfig."""
        if config is None:
            return cls()
        if isinstance(config, cls):
            return config
        return cls.model_validate(dict(config))

    def repair_options(self) -> dict:
        """Keyword arguments for MeshRepairer.repair()."""
        return {
            'close_mode': self.close_mode,
            'snap_tolerance': self.snap_tolerance,
            'stitch_tolerance': self.stitch_tolerance,
            'remove_degenerate': self.remove_degenerate,
            'remove_slivers': self.remove_slivers,
            'clean_crossings': self.clean_crossings,
            'remove_overlapping': self.remove_overlapping,
            'sliver_ratio': self.sliver_ratio,
            'min_area': self.min_area,
            'overlap_tolerance': self.overlap_tolerance,
        }
