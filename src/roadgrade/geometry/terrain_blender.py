"""
Terrain Blender

Writes the reconciled road elevations into the terrain raster.

Algorithm:
1. Rasterize road cores (quad strips) with their surface elevation
2. Euclidean distance transform: distance of every cell to the nearest core cell
3. Rasterize protected corridors under excluded surfaces
4. Core cells take the road elevation (flattened)
5. Shoulder cells: nearest cross-section via KD-tree,
   t = distance / blend_range, blend = curve(t),
   height = edge_elevation * (1 - blend) + original * blend
6. Cells with t >= 1 and protected cells keep their original height exactly
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
from scipy.ndimage import distance_transform_edt, gaussian_filter
from scipy.spatial import cKDTree

from ..common.config import BlendParams
from ..common.curves import get_curve
from ..common.models import RoadNetwork
from ..common.terrain import TerrainGrid
from .rasterize import rasterize_cores, rasterize_protection

logger = logging.getLogger(__name__)


def distance_to_core(core_mask: np.ndarray, cell_size: float) -> np.ndarray:
    """
    Exact Euclidean distance (meters) from every cell to the nearest core cell.

    Core cells are 0. With no core at all every cell is +inf.
    """
    if not core_mask.any():
        return np.full(core_mask.shape, np.inf)
    return distance_transform_edt(~core_mask, sampling=cell_size)


@dataclass
class BlendReport:
    """Cell counts of one blend pass."""
    core_cells: int = 0
    shoulder_cells: int = 0
    protected_cells: int = 0
    max_change: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "core_cells": self.core_cells,
            "shoulder_cells": self.shoulder_cells,
            "protected_cells": self.protected_cells,
            "max_change": self.max_change,
        }


class TerrainBlender:
    """
    Blends road surfaces into a terrain grid.
    """

    def __init__(self, params: Optional[BlendParams] = None):
        """
        Initialize terrain blender.

        Args:
            params: Blend parameters (defaults if None)
        """
        self.params = params or BlendParams()
        self.curve = get_curve(self.params.blend_function)

    def blend(self, network: RoadNetwork, terrain: TerrainGrid) -> Tuple[TerrainGrid, BlendReport]:
        """
        Blend the network into a copy of the terrain.

        Returns:
            Tuple of (new terrain grid, report)
        """
        report = BlendReport()
        original = terrain.data
        result = original.copy()

        sections = [
            cs for cs in network.cross_sections()
            if cs.has_elevation and not cs.is_excluded
        ]
        protected = rasterize_protection(network, terrain, self.params.protection_buffer_m)
        report.protected_cells = int(protected.sum())
        if not sections:
            logger.info("No road elevations to blend; terrain unchanged")
            return terrain.with_data(result), report

        core = rasterize_cores(network, terrain)
        distance = distance_to_core(core.mask, terrain.cell_size)

        core_write = core.mask & ~protected
        result[core_write] = core.elevation[core_write]
        report.core_cells = int(core_write.sum())

        blend_ranges = {pid: p.blend_range for pid, p in network.paths.items()}
        max_range = max(blend_ranges[cs.path_id] for cs in sections)
        candidates = ~core.mask & ~protected & (distance < max_range)

        if candidates.any():
            rows, cols = np.nonzero(candidates)
            points = terrain.grid_to_world(np.column_stack([rows, cols]))
            positions = np.array([cs.position for cs in sections])
            _, nearest = cKDTree(positions).query(points)

            section_range = np.array([blend_ranges[cs.path_id] for cs in sections])
            normals = np.array([cs.normal for cs in sections])
            left = np.array([cs.left_edge() for cs in sections])
            right = np.array([cs.right_edge() for cs in sections])

            blend_range = section_range[nearest]
            dist = distance[rows, cols]
            with np.errstate(divide='ignore', invalid='ignore'):
                t = np.where(blend_range > 0, dist / blend_range, np.inf)
            keep = t < 1.0
            rows, cols, nearest, t = rows[keep], cols[keep], nearest[keep], t[keep]
            points = points[keep]

            lateral = np.sum((points - positions[nearest]) * normals[nearest], axis=1)
            target = np.where(lateral >= 0, left[nearest], right[nearest])
            orig = original[rows, cols]
            weight = self.curve(t)
            blended = target * (1.0 - weight) + orig * weight
            result[rows, cols] = np.where(np.isfinite(orig), blended, target)
            report.shoulder_cells = len(rows)

            if self.params.post_smoothing_sigma > 0 and len(rows):
                self._post_smooth(result, rows, cols)

        changed = np.abs(result - original)
        finite = np.isfinite(changed)
        report.max_change = float(changed[finite].max()) if finite.any() else 0.0

        logger.info(
            f"Blended {report.core_cells} core and {report.shoulder_cells} shoulder cells "
            f"({report.protected_cells} protected), max change {report.max_change:.3f}"
        )
        return terrain.with_data(result), report

    def _post_smooth(self, result: np.ndarray, rows: np.ndarray, cols: np.ndarray) -> None:
        """Gaussian smoothing restricted to the blended shoulder cells."""
        filled = np.where(np.isfinite(result), result, np.nanmean(result))
        smoothed = gaussian_filter(filled, sigma=self.params.post_smoothing_sigma)
        result[rows, cols] = smoothed[rows, cols]


def blend_terrain(
    network: RoadNetwork,
    terrain: TerrainGrid,
    params: Optional[BlendParams] = None,
) -> Tuple[TerrainGrid, BlendReport]:
    """Module-level shortcut for TerrainBlender(params).blend."""
    return TerrainBlender(params).blend(network, terrain)
