"""
Data I/O utilities.

Loads road and hint descriptions (JSON), elevation rasters (.npy / .npz /
text grids), and exports results: the blended raster plus junction and
cross-section tables for downstream visualization.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .models import JunctionHint, JunctionType, RoadNetwork, RoadSpec
from .terrain import TerrainGrid

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _read_json(path: PathLike) -> Any:
    with open(path) as f:
        return json.load(f)


def road_spec_from_dict(data: Dict[str, Any]) -> RoadSpec:
    """
    Build a RoadSpec from a JSON-style dict.

    Required key: ``points`` ([[x, y], ...]). Optional: width, priority,
    scale, blend_range, name, excluded.
    """
    if "points" not in data:
        raise ValueError(f"Road entry is missing 'points': {sorted(data)}")
    return RoadSpec(
        points=[tuple(p[:2]) for p in data["points"]],
        width=data.get("width"),
        priority=int(data.get("priority", 0)),
        scale=float(data.get("scale", 1.0)),
        blend_range=data.get("blend_range"),
        name=str(data.get("name", "")),
        excluded=bool(data.get("excluded", False)),
    )


def load_roads(path: PathLike) -> List[RoadSpec]:
    """
    Load road descriptions from JSON.

    Accepts either a list of roads or ``{"roads": [...]}``.
    """
    data = _read_json(path)
    if isinstance(data, dict):
        data = data.get("roads", [])
    roads = [road_spec_from_dict(entry) for entry in data]
    logger.info(f"Loaded {len(roads)} roads from {path}")
    return roads


def load_hints(path: PathLike) -> List[JunctionHint]:
    """
    Load junction hints from JSON.

    Each entry: ``{"position": [x, y], "type": "t_junction", "road_count": 3}``.
    """
    data = _read_json(path)
    if isinstance(data, dict):
        data = data.get("hints", [])
    hints = [
        JunctionHint(
            position=(float(entry["position"][0]), float(entry["position"][1])),
            junction_type=JunctionType(entry.get("type", JunctionType.T_JUNCTION.value)),
            road_count=int(entry.get("road_count", 0)),
        )
        for entry in data
    ]
    logger.info(f"Loaded {len(hints)} junction hints from {path}")
    return hints


def load_terrain(
    path: PathLike,
    cell_size: float,
    origin: Tuple[float, float] = (0.0, 0.0),
) -> TerrainGrid:
    """
    Load an elevation grid.

    Supported: ``.npy``, ``.npz`` (first array, or ``elevation``), and
    whitespace / comma separated text grids.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".npy":
        data = np.load(path)
    elif suffix == ".npz":
        with np.load(path) as archive:
            key = "elevation" if "elevation" in archive.files else archive.files[0]
            data = archive[key]
    else:
        delimiter = "," if suffix == ".csv" else None
        data = np.loadtxt(path, delimiter=delimiter)
    terrain = TerrainGrid(data=data, cell_size=cell_size, origin=origin)
    logger.info(f"Loaded terrain {terrain.shape} at {cell_size} m/cell from {path}")
    return terrain


def save_terrain(terrain: TerrainGrid, path: PathLike) -> Path:
    """Save the elevation array as .npy."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    np.save(path, terrain.data)
    logger.info(f"Saved terrain to {path}")
    return path


def junctions_to_dataframe(network: RoadNetwork) -> pd.DataFrame:
    """One row per junction."""
    rows = []
    for j in network.junctions:
        rows.append({
            "junction_id": j.junction_id,
            "x": j.centroid[0],
            "y": j.centroid[1],
            "type": j.junction_type.value,
            "elevation": j.elevation,
            "n_contributions": len(j.contributions),
            "paths": ";".join(str(pid) for pid in j.path_ids),
            "continuous": ";".join(str(c.path_id) for c in j.continuous),
            "excluded": j.is_excluded,
            "exclusion_reason": j.exclusion_reason,
            "hinted": j.hint is not None,
        })
    columns = ["junction_id", "x", "y", "type", "elevation", "n_contributions",
               "paths", "continuous", "excluded", "exclusion_reason", "hinted"]
    return pd.DataFrame(rows, columns=columns)


def cross_sections_to_dataframe(network: RoadNetwork) -> pd.DataFrame:
    """One row per cross-section."""
    rows = []
    for cs in network.cross_sections():
        rows.append({
            "path_id": cs.path_id,
            "index": cs.index,
            "x": cs.position[0],
            "y": cs.position[1],
            "half_width": cs.half_width,
            "raw_elevation": cs.raw_elevation,
            "smoothed_elevation": cs.smoothed_elevation,
            "target_elevation": cs.target_elevation,
            "left_edge": cs.left_edge(),
            "right_edge": cs.right_edge(),
            "bank_deg": float(np.degrees(cs.bank_angle)),
            "is_start": cs.is_path_start,
            "is_end": cs.is_path_end,
            "excluded": cs.is_excluded,
        })
    columns = ["path_id", "index", "x", "y", "half_width", "raw_elevation",
               "smoothed_elevation", "target_elevation", "left_edge", "right_edge",
               "bank_deg", "is_start", "is_end", "excluded"]
    return pd.DataFrame(rows, columns=columns)


def save_tables(network: RoadNetwork, output_dir: PathLike) -> Dict[str, Path]:
    """Write junctions.csv and cross_sections.csv."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    paths = {
        "junctions": output_dir / "junctions.csv",
        "cross_sections": output_dir / "cross_sections.csv",
    }
    junctions_to_dataframe(network).to_csv(paths["junctions"], index=False)
    cross_sections_to_dataframe(network).to_csv(paths["cross_sections"], index=False)
    logger.info(f"Saved tables to {output_dir}")
    return paths


def save_summary(summary: Dict[str, Any], path: PathLike) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(summary, f, indent=2, default=_json_default)
    return path


def _json_default(value):
    if isinstance(value, (np.integer,)):
        return int(value)
    if isinstance(value, (np.floating,)):
        return float(value)
    if isinstance(value, np.ndarray):
        return value.tolist()
    raise TypeError(f"Not JSON serializable: {type(value)}")
