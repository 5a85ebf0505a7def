"""
Elevation raster wrapper.

Cell (row, col) sits at world coordinates
``(origin_x + col * cell_size, origin_y + row * cell_size)``.
"""

import logging
from dataclasses import dataclass, field
from typing import Tuple

import numpy as np
from scipy.ndimage import map_coordinates

from .errors import InputShapeError

logger = logging.getLogger(__name__)


@dataclass
class TerrainGrid:
    """
    2D elevation grid with physical cell size.

    Coordinates are in meters.
    """
    data: np.ndarray  # (rows, cols) elevations
    cell_size: float  # meters per cell
    origin: Tuple[float, float] = field(default=(0.0, 0.0))  # world (x, y) of cell (0, 0)

    def __post_init__(self):
        self.data = np.asarray(self.data, dtype=np.float64)
        self.origin = (float(self.origin[0]), float(self.origin[1]))
        self.validate()

    def validate(self) -> None:
        """Raise InputShapeError if the grid cannot be processed."""
        if self.data.ndim != 2:
            raise InputShapeError(f"Terrain must be 2-D, got shape {self.data.shape}")
        if self.data.shape[0] < 1 or self.data.shape[1] < 1:
            raise InputShapeError(f"Terrain is empty: shape {self.data.shape}")
        if not np.isfinite(self.cell_size) or self.cell_size <= 0:
            raise InputShapeError(f"Cell size must be positive, got {self.cell_size}")

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    @property
    def extent(self) -> Tuple[float, float, float, float]:
        """Return (min_x, min_y, max_x, max_y) of cell centers in meters."""
        rows, cols = self.shape
        ox, oy = self.origin
        return (ox, oy, ox + (cols - 1) * self.cell_size, oy + (rows - 1) * self.cell_size)

    def world_to_grid(self, points_m: np.ndarray) -> np.ndarray:
        """Convert (N, 2) world (x, y) to fractional (row, col)."""
        points_m = np.atleast_2d(np.asarray(points_m, dtype=np.float64))
        cols = (points_m[:, 0] - self.origin[0]) / self.cell_size
        rows = (points_m[:, 1] - self.origin[1]) / self.cell_size
        return np.column_stack([rows, cols])

    def grid_to_world(self, indices: np.ndarray) -> np.ndarray:
        """Convert (N, 2) (row, col) indices to world (x, y)."""
        indices = np.atleast_2d(np.asarray(indices, dtype=np.float64))
        xs = indices[:, 1] * self.cell_size + self.origin[0]
        ys = indices[:, 0] * self.cell_size + self.origin[1]
        return np.column_stack([xs, ys])

    def sample(self, points_m: np.ndarray) -> np.ndarray:
        """
        Bilinear elevation at world points.

        Points outside the grid return NaN so callers can substitute.
        """
        points_m = np.asarray(points_m, dtype=np.float64)
        if points_m.size == 0:
            return np.empty(0)
        coords = self.world_to_grid(points_m).T
        return map_coordinates(self.data, coords, order=1, mode='constant', cval=np.nan)

    def contains(self, points_m: np.ndarray, margin_m: float = 0.0) -> np.ndarray:
        """Boolean mask of points inside the grid extent (plus margin)."""
        points_m = np.atleast_2d(np.asarray(points_m, dtype=np.float64))
        min_x, min_y, max_x, max_y = self.extent
        return (
            (points_m[:, 0] >= min_x - margin_m) & (points_m[:, 0] <= max_x + margin_m) &
            (points_m[:, 1] >= min_y - margin_m) & (points_m[:, 1] <= max_y + margin_m)
        )

    def with_data(self, data: np.ndarray) -> "TerrainGrid":
        """New grid sharing cell size and origin."""
        return TerrainGrid(data=data, cell_size=self.cell_size, origin=self.origin)
