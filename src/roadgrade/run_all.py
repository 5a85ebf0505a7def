#!/usr/bin/env python3
"""
roadgrade - Orchestrator

Harmonize a road network into an elevation raster from the command line.

Usage:
    roadgrade --roads data/roads.json --terrain data/dem.npy --cell-size 1.0
    python -m roadgrade.run_all --roads roads.json --terrain dem.npy --cell-size 2 \
        --hints hints.json --config config.yaml --output outputs/
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .common.config import BlendFunction, Config, FilterType
from .common.errors import RoadgradeError
from .common.io import (
    load_hints,
    load_roads,
    load_terrain,
    save_summary,
    save_tables,
    save_terrain,
)
from .geometry.sampler import build_network
from .pipeline import HarmonizationPipeline

logger = logging.getLogger(__name__)


def run_all(
    roads_path: Path,
    terrain_path: Path,
    cell_size: float,
    output_dir: Path,
    config: Config,
    hints_path: Optional[Path] = None,
    origin=(0.0, 0.0),
) -> Dict[str, Any]:
    """
    Load inputs, run the pipeline and write every output.

    Returns:
        Run summary dict (also written to run_summary.json)
    """
    started = datetime.now()
    roads = load_roads(roads_path)
    terrain = load_terrain(terrain_path, cell_size, origin)
    hints = load_hints(hints_path) if hints_path else None

    network = build_network(roads, config.sampling)
    result = HarmonizationPipeline(config).run(network, terrain, hints)

    output_dir.mkdir(parents=True, exist_ok=True)
    terrain_out = save_terrain(result.terrain, output_dir / "terrain_harmonized.npy")
    tables = save_tables(result.network, output_dir)
    config.save(output_dir / "config_used.json")

    summary = {
        "started": started.isoformat(),
        "finished": datetime.now().isoformat(),
        "inputs": {
            "roads": str(roads_path),
            "terrain": str(terrain_path),
            "hints": str(hints_path) if hints_path else None,
            "cell_size": cell_size,
        },
        "outputs": {
            "terrain": str(terrain_out),
            **{name: str(path) for name, path in tables.items()},
        },
        **result.summary(),
    }
    save_summary(summary, output_dir / "run_summary.json")
    return summary


def main():
    parser = argparse.ArgumentParser(
        description="roadgrade - Harmonize road elevations into terrain"
    )
    parser.add_argument(
        "--roads", "-r",
        type=Path,
        required=True,
        help="Roads JSON file"
    )
    parser.add_argument(
        "--terrain", "-t",
        type=Path,
        required=True,
        help="Elevation grid (.npy, .npz, .csv, .txt)"
    )
    parser.add_argument(
        "--cell-size", "-c",
        type=float,
        required=True,
        help="Terrain cell size in meters"
    )
    parser.add_argument(
        "--origin",
        type=float,
        nargs=2,
        default=[0.0, 0.0],
        metavar=("X", "Y"),
        help="World coordinates of cell (0, 0)"
    )
    parser.add_argument(
        "--hints",
        type=Path,
        default=None,
        help="Optional junction hints JSON"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Config file (.json, .yaml)"
    )
    parser.add_argument(
        "--filter",
        choices=[f.value for f in FilterType],
        default=None,
        help="Override smoothing filter"
    )
    parser.add_argument(
        "--blend",
        choices=[b.value for b in BlendFunction],
        default=None,
        help="Override shoulder blend curve"
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=Path("outputs"),
        help="Output directory"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging"
    )

    args = parser.parse_args()

    # Setup logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    # Build config
    config = Config.load(args.config) if args.config else Config()
    if args.filter:
        config.smoothing.filter_type = FilterType(args.filter)
    if args.blend:
        config.blending.blend_function = BlendFunction(args.blend)

    logger.info(f"Roads: {args.roads}")
    logger.info(f"Terrain: {args.terrain} ({args.cell_size} m/cell)")
    logger.info(f"Output: {args.output}")

    try:
        summary = run_all(
            roads_path=args.roads,
            terrain_path=args.terrain,
            cell_size=args.cell_size,
            output_dir=args.output,
            config=config,
            hints_path=args.hints,
            origin=tuple(args.origin),
        )
    except (RoadgradeError, OSError, ValueError) as e:
        logger.error(f"Harmonization failed: {e}")
        sys.exit(1)

    logger.info(f"\n{'='*60}")
    logger.info(
        f"COMPLETE: {summary['paths']} paths, {summary['junctions']} junctions, "
        f"outputs in {args.output}"
    )
    logger.info(f"{'='*60}")


if __name__ == "__main__":
    main()
