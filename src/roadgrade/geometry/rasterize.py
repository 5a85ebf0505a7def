"""
Rasterization of road cores and excluded-surface corridors.

Road cores are painted as quadrilateral strips between consecutive
cross-sections (center +/- normal * half_width). Point-in-polygon tests use
shapely's vectorized ``intersects_xy`` so cells on the strip boundary count
as inside.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, Tuple

import numpy as np
import shapely
from shapely.geometry import LineString, Point, Polygon

from ..common.models import RoadNetwork, RoadPath
from ..common.terrain import TerrainGrid

logger = logging.getLogger(__name__)


@dataclass
class CoreRaster:
    """Road core mask plus the road elevation of every core cell."""
    mask: np.ndarray  # bool (rows, cols)
    elevation: np.ndarray  # float, NaN outside the core
    owner: np.ndarray  # path id per cell, -1 outside the core


def _lerp(a, b, s):
    return a + s * (b - a)


def cell_window(terrain: TerrainGrid, bounds: Tuple[float, float, float, float]):
    """
    Row/col slices of the cells whose centers fall inside world bounds.

    Returns None if the bounds miss the grid.
    """
    min_x, min_y, max_x, max_y = bounds
    rows, cols = terrain.shape
    ox, oy = terrain.origin
    c0 = max(int(np.ceil((min_x - ox) / terrain.cell_size - 1e-9)), 0)
    c1 = min(int(np.floor((max_x - ox) / terrain.cell_size + 1e-9)), cols - 1)
    r0 = max(int(np.ceil((min_y - oy) / terrain.cell_size - 1e-9)), 0)
    r1 = min(int(np.floor((max_y - oy) / terrain.cell_size + 1e-9)), rows - 1)
    if c0 > c1 or r0 > r1:
        return None
    return slice(r0, r1 + 1), slice(c0, c1 + 1)


def _window_coords(terrain: TerrainGrid, window):
    rs, cs = window
    xs = terrain.origin[0] + np.arange(cs.start, cs.stop) * terrain.cell_size
    ys = terrain.origin[1] + np.arange(rs.start, rs.stop) * terrain.cell_size
    return np.meshgrid(xs, ys)


def strip_segments(path: RoadPath) -> Iterator[Tuple[int, Polygon]]:
    """
    Quadrilaterals between consecutive drawable cross-sections.

    A segment is drawable when neither end is excluded and both have a
    finite target elevation.
    """
    for i in range(len(path) - 1):
        a, b = path[i], path[i + 1]
        if a.is_excluded or b.is_excluded or not (a.has_elevation and b.has_elevation):
            continue
        if np.hypot(b.position[0] - a.position[0], b.position[1] - a.position[1]) < 1e-9:
            continue
        left_a, right_a = a.edge_points()
        left_b, right_b = b.edge_points()
        polygon = Polygon([tuple(left_a), tuple(left_b), tuple(right_b), tuple(right_a)])
        if not polygon.is_valid:
            polygon = polygon.convex_hull
        yield i, polygon


def rasterize_cores(network: RoadNetwork, terrain: TerrainGrid) -> CoreRaster:
    """
    Paint every road core, highest priority first.

    A cell claimed by one path is never repainted by another, so a
    lower-priority road cannot overwrite a higher-priority core.
    """
    shape = terrain.shape
    mask = np.zeros(shape, dtype=bool)
    elevation = np.full(shape, np.nan)
    owner = np.full(shape, -1, dtype=np.int64)

    ordered = sorted(network.paths.values(), key=lambda p: (-p.priority, p.path_id))
    for path in ordered:
        for i, polygon in strip_segments(path):
            window = cell_window(terrain, polygon.bounds)
            if window is None:
                continue
            xs, ys = _window_coords(terrain, window)
            inside = shapely.intersects_xy(polygon, xs, ys)
            inside &= (owner[window] == -1) | (owner[window] == path.path_id)
            if not inside.any():
                continue

            px, py = xs[inside], ys[inside]
            values = _strip_elevation(path, i, px, py)
            sub_mask = mask[window]
            sub_elev = elevation[window]
            sub_owner = owner[window]
            sub_mask[inside] = True
            sub_elev[inside] = values
            sub_owner[inside] = path.path_id

    logger.debug(f"Rasterized {int(mask.sum())} core cells")
    return CoreRaster(mask=mask, elevation=elevation, owner=owner)


def _strip_elevation(path: RoadPath, i: int, px: np.ndarray, py: np.ndarray) -> np.ndarray:
    """Road surface elevation at points inside strip i (banking and edge overrides included)."""
    a, b = path[i], path[i + 1]
    pa, pb = np.asarray(a.position), np.asarray(b.position)
    d = pb - pa
    pts = np.column_stack([px, py])
    s = np.clip(((pts - pa) @ d) / float(d @ d), 0.0, 1.0)

    center = pa + s[:, None] * d
    normal = _lerp(np.asarray(a.normal), np.asarray(b.normal), s[:, None])
    norm = np.linalg.norm(normal, axis=1, keepdims=True)
    normal = normal / np.where(norm > 1e-12, norm, 1.0)
    lateral = np.sum((pts - center) * normal, axis=1)
    half_width = _lerp(a.half_width, b.half_width, s)

    left = _lerp(a.left_edge(), b.left_edge(), s)
    right = _lerp(a.right_edge(), b.right_edge(), s)
    u = np.clip((lateral + half_width) / np.maximum(2.0 * half_width, 1e-12), 0.0, 1.0)
    return right + u * (left - right)


def excluded_runs(path: RoadPath) -> Iterator[Tuple[int, int]]:
    """(start, stop) index ranges of consecutive excluded cross-sections."""
    mask = path.excluded_mask()
    i, n = 0, len(mask)
    while i < n:
        if mask[i]:
            j = i
            while j + 1 < n and mask[j + 1]:
                j += 1
            yield i, j + 1
            i = j + 1
        else:
            i += 1


def rasterize_protection(
    network: RoadNetwork,
    terrain: TerrainGrid,
    buffer_m: float = 1.0,
) -> np.ndarray:
    """
    Mask of cells under excluded surfaces (bridges, tunnels).

    Each run of excluded cross-sections is protected as one buffered corridor
    along its whole length, so sparse sampling leaves no gaps.
    """
    protected = np.zeros(terrain.shape, dtype=bool)
    corridors = 0
    for path in network.paths.values():
        for start, stop in excluded_runs(path):
            positions = path.positions()[start:stop]
            radius = float(path.half_widths()[start:stop].max()) + buffer_m
            if len(positions) == 1:
                geometry = Point(positions[0]).buffer(radius)
            else:
                geometry = LineString(positions).buffer(radius)
            window = cell_window(terrain, geometry.bounds)
            if window is None:
                continue
            xs, ys = _window_coords(terrain, window)
            protected[window] |= shapely.intersects_xy(geometry, xs, ys)
            corridors += 1
    if corridors:
        logger.debug(f"Protected {int(protected.sum())} cells in {corridors} excluded corridors")
    return protected
