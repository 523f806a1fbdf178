#!/usr/bin/env python3
"""
Surface Boolean command line

Loads two triangulated surfaces, splits them against each other, merges the
selected groups and exports the result.

Example:
    surface-boolean A.stl B.stl --keep A_outside B_outside --close-mode stitch --snap 0.001 -o out.stl
"""

import argparse
import json
import logging
import multiprocessing
import sys
from pathlib import Path
from typing import List, Optional

import trimesh

from surface_boolean.core.boolean_ops import apply_merge, compute_splits
from surface_boolean.core.config import MergeConfig
from surface_boolean.core.surface_io import surface_from_trimesh

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    # Silence noisy third-party loggers
    logging.getLogger('trimesh').setLevel(logging.WARNING)


def load_surface(path: str, surface_id: str) -> dict:
    """Load a mesh file with trimesh as a surface record."""
    mesh = trimesh.load(path, force='mesh')
    logger.info(f"Loaded {path}: {len(mesh.vertices)} vertices, {len(mesh.faces)} faces")
    return surface_from_trimesh(mesh, surface_id, name=Path(path).stem)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='surface-boolean',
        description="Split two triangulated surfaces against each other and merge the kept groups."
    )
    parser.add_argument('surface_a', help="First surface (any format trimesh can load)")
    parser.add_argument('surface_b', help="Second surface")
    parser.add_argument('-o', '--output', help="Output mesh file for the merged surface")
    parser.add_argument(
        '--keep', nargs='+', default=None,
        help="Split group ids to keep (A_inside, A_outside, B_inside, B_outside, A_whole, B_whole); default keeps all"
    )
    parser.add_argument('--close-mode', choices=['none', 'weld', 'stitch', 'raw'], default='none')
    parser.add_argument('--snap', type=float, default=0.0, help="Weld tolerance")
    parser.add_argument('--stitch-tolerance', type=float, default=1.0)
    parser.add_argument('--remove-slivers', action='store_true')
    parser.add_argument('--clean-crossings', action='store_true')
    parser.add_argument('--remove-overlapping', action='store_true')
    parser.add_argument('--keep-degenerate', action='store_true', help="Skip degenerate triangle removal")
    parser.add_argument('--splits-json', help="Write the split groups and intersection chords as JSON")
    parser.add_argument('-v', '--verbose', action='store_true')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    surface_a = load_surface(args.surface_a, 'A')
    surface_b = load_surface(args.surface_b, 'B')

    splits = compute_splits(surface_a, surface_b)
    if splits is None:
        logger.error("Could not split the surfaces")
        return 1

    for group in splits.splits:
        logger.info(f"  {group.id}: {group.label}, {group.triangle_count} triangles, area {group.area:.4f}")

    if args.splits_json:
        with open(args.splits_json, 'w') as f:
            json.dump(splits.to_dict(), f)
        logger.info(f"Wrote split groups to {args.splits_json}")

    if not args.output:
        return 0

    if args.keep:
        splits.set_kept(args.keep)

    config = MergeConfig(
        close_mode=args.close_mode,
        snap_tolerance=args.snap,
        stitch_tolerance=args.stitch_tolerance,
        remove_degenerate=not args.keep_degenerate,
        remove_slivers=args.remove_slivers,
        clean_crossings=args.clean_crossings,
        remove_overlapping=args.remove_overlapping,
    )
    merged = apply_merge(splits, config)
    if merged is None:
        logger.error("Nothing to merge")
        return 1

    logger.info(f"Merged surface {merged.surface['id']}:\n{merged.diagnostics.format()}")
    mesh = trimesh.Trimesh(vertices=merged.points, faces=merged.faces, process=False)
    mesh.export(args.output)
    logger.info(f"Exported {args.output}")
    return 0


if __name__ == "__main__":
    # Required for Windows multiprocessing support
    multiprocessing.freeze_support()
    try:
        sys.exit(main())
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)
