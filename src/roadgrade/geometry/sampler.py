"""
Cross-section sampling along road centerlines.

Turns an ordered 2D point list into evenly spaced cross-sections with unit
tangent, left-pointing unit normal and half-width. Spacing is uniform along
arc length and never exceeds the requested interval; both ends are kept.
"""

import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

from ..common.config import SamplingParams
from ..common.models import CrossSection, RoadNetwork, RoadPath, RoadSpec

logger = logging.getLogger(__name__)

ExcludedPredicate = Callable[[float, float], bool]

_MIN_SEGMENT_M = 1e-9


def resample_polyline(points: np.ndarray, interval_m: float) -> np.ndarray:
    """
    Resample a polyline at uniform arc-length spacing.

    Args:
        points: (N, 2) polyline vertices in meters
        interval_m: Maximum spacing between samples

    Returns:
        (M, 2) samples including the first and last vertex
    """
    points = np.asarray(points, dtype=np.float64)
    if len(points) < 2:
        return points.copy()

    seg = np.linalg.norm(np.diff(points, axis=0), axis=1)
    keep = np.concatenate([[True], seg > _MIN_SEGMENT_M])
    points = points[keep]
    if len(points) < 2:
        return points

    arc = np.concatenate([[0.0], np.cumsum(np.linalg.norm(np.diff(points, axis=0), axis=1))])
    total = arc[-1]
    n_intervals = max(int(np.ceil(total / interval_m - 1e-9)), 1)
    stations = np.linspace(0.0, total, n_intervals + 1)

    x = np.interp(stations, arc, points[:, 0])
    y = np.interp(stations, arc, points[:, 1])
    return np.column_stack([x, y])


def compute_frames(positions: np.ndarray):
    """
    Unit tangents (central differences) and left normals for a sample run.

    Returns:
        Tuple of (tangents, normals), each (N, 2)
    """
    if len(positions) < 2:
        tangents = np.tile([1.0, 0.0], (len(positions), 1))
    else:
        tangents = np.gradient(positions, axis=0)
        norms = np.linalg.norm(tangents, axis=1, keepdims=True)
        tangents = np.where(norms > _MIN_SEGMENT_M, tangents / np.maximum(norms, _MIN_SEGMENT_M), [1.0, 0.0])
    normals = np.column_stack([-tangents[:, 1], tangents[:, 0]])
    return tangents, normals


def sample_cross_sections(
    points: np.ndarray,
    path_id: int,
    half_width: float,
    interval_m: Optional[float] = None,
    excluded: Optional[ExcludedPredicate] = None,
    all_excluded: bool = False,
) -> List[CrossSection]:
    """
    Build cross-sections along a centerline.

    Args:
        points: (N, 2) centerline in meters
        path_id: Owning path id
        half_width: Half of the road width in meters
        interval_m: Resampling interval; None keeps the given points as-is
        excluded: Optional predicate (x, y) -> True for bridge/tunnel samples
        all_excluded: Mark every cross-section excluded

    Returns:
        Ordered list of CrossSection
    """
    if interval_m is not None:
        positions = resample_polyline(points, interval_m)
    else:
        positions = np.asarray(points, dtype=np.float64)
    tangents, normals = compute_frames(positions)

    n = len(positions)
    sections = []
    for i in range(n):
        x, y = float(positions[i, 0]), float(positions[i, 1])
        is_excluded = all_excluded or (excluded is not None and bool(excluded(x, y)))
        sections.append(CrossSection(
            position=(x, y),
            tangent=(float(tangents[i, 0]), float(tangents[i, 1])),
            normal=(float(normals[i, 0]), float(normals[i, 1])),
            half_width=float(half_width),
            path_id=path_id,
            index=i,
            is_path_start=(i == 0),
            is_path_end=(i == n - 1),
            is_excluded=is_excluded,
        ))
    return sections


def build_path(
    spec: RoadSpec,
    path_id: int,
    params: Optional[SamplingParams] = None,
    excluded: Optional[ExcludedPredicate] = None,
    resample: bool = True,
) -> Optional[RoadPath]:
    """
    Sample one road into a RoadPath.

    Returns None (with a warning) for roads with fewer than 2 distinct points.
    """
    params = params or SamplingParams()
    points = np.asarray(spec.points, dtype=np.float64).reshape(-1, 2) * spec.scale
    if len(points) >= 2:
        seg = np.linalg.norm(np.diff(points, axis=0), axis=1)
        points = points[np.concatenate([[True], seg > _MIN_SEGMENT_M])]
    if len(points) < 2:
        logger.warning(f"Skipping road {spec.name or path_id}: fewer than 2 distinct points")
        return None

    width = spec.width if spec.width is not None else params.default_width_m
    blend_range = spec.blend_range if spec.blend_range is not None else params.default_blend_range_m
    sections = sample_cross_sections(
        points,
        path_id=path_id,
        half_width=width / 2.0,
        interval_m=params.interval_m if resample else None,
        excluded=excluded,
        all_excluded=spec.excluded,
    )
    return RoadPath(
        path_id=path_id,
        cross_sections=tuple(sections),
        priority=spec.priority,
        blend_range=float(blend_range),
        name=spec.name,
    )


def build_network(
    roads: Sequence[RoadSpec],
    params: Optional[SamplingParams] = None,
    excluded: Optional[ExcludedPredicate] = None,
    resample: bool = True,
) -> RoadNetwork:
    """
    Sample every road and collect them into a RoadNetwork.

    Path ids follow input order; skipped roads leave a gap in the ids.
    """
    paths = []
    for path_id, spec in enumerate(roads):
        path = build_path(spec, path_id, params, excluded, resample)
        if path is not None:
            paths.append(path)

    network = RoadNetwork.from_paths(paths)
    logger.info(
        f"Sampled {len(paths)}/{len(roads)} roads into {network.n_cross_sections} cross-sections"
    )
    return network
