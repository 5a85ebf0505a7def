"""
Junction Elevation Harmonizer

Gives every junction one elevation and bends the terminating roads onto it.

Reconciled elevation by topology:
- Any continuous contribution (T, roundabout, unresolved crossing): the
  primary continuous road keeps its smoothed elevation. With surface
  constraints the terminating road's edges follow the primary's surface
  (bank x lateral offset + grade x longitudinal offset).
- Endpoints only: inverse-distance-weighted average, w = 1 / (d + eps).
- Isolated endpoint: road value blended toward the terrain below it.

Propagation:
Each terminating road is pulled toward the junction value over the
propagation distance with blend = 0.5 - 0.5 cos(pi t); dead ends use the
quintic ease over the taper distance. Values are always computed from the
smoothed (pre-harmonization) elevation, and a cross-section near several
junctions follows only the nearest one. Continuous contributions are never
modified.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

import numpy as np

from ..common import curves
from ..common.config import JunctionParams
from ..common.models import CrossSection, Junction, JunctionType, RoadNetwork, RoadPath
from ..common.terrain import TerrainGrid
from .crossroad_converter import select_primary

logger = logging.getLogger(__name__)

SLOPE_WINDOW = 3  # samples either side for the local grade


def propagated_value(junction_value: float, original: np.ndarray, t: np.ndarray, curve=curves.cosine) -> np.ndarray:
    """
    Blend from the junction value (t=0) back to the original profile (t=1).

    Exact at both ends: t=0 gives the junction value, t=1 the original.
    """
    blend = curve(t)
    return junction_value * (1.0 - blend) + original * blend


def local_slope(path: RoadPath, index: int, window: int = SLOPE_WINDOW) -> float:
    """Rise over run of the smoothed profile around a cross-section."""
    n = len(path)
    lo, hi = max(index - window, 0), min(index + window, n - 1)
    if hi == lo:
        return 0.0
    elev = path.smoothed_elevations()
    arc = path.arc_lengths()
    run = arc[hi] - arc[lo]
    if run <= 1e-9 or not (math.isfinite(elev[hi]) and math.isfinite(elev[lo])):
        return 0.0
    return float((elev[hi] - elev[lo]) / run)


def surface_elevation(primary: CrossSection, base_elevation: float, slope: float, point) -> float:
    """
    Elevation of the primary road's surface plane at a world point.

    elevation = base + lateral * sin(bank) + longitudinal * slope
    """
    offset = np.asarray(point, dtype=np.float64) - np.asarray(primary.position)
    lateral = float(np.dot(offset, primary.normal))
    longitudinal = float(np.dot(offset, primary.tangent))
    return base_elevation + lateral * math.sin(primary.bank_angle) + longitudinal * slope


@dataclass
class _Influence:
    """The junction currently driving one path's cross-sections."""
    distance: np.ndarray
    junction_id: np.ndarray
    value: np.ndarray
    t: np.ndarray
    quintic: np.ndarray
    left_offset: np.ndarray  # edge offset from center at the junction (NaN = none)
    right_offset: np.ndarray

    @classmethod
    def empty(cls, n: int) -> "_Influence":
        return cls(
            distance=np.full(n, np.inf),
            junction_id=np.full(n, -1, dtype=np.int64),
            value=np.full(n, np.nan),
            t=np.ones(n),
            quintic=np.zeros(n, dtype=bool),
            left_offset=np.full(n, np.nan),
            right_offset=np.full(n, np.nan),
        )


@dataclass
class HarmonizationReport:
    """Statistics of one harmonization pass."""
    junctions_harmonized: int = 0
    junctions_skipped: int = 0
    endpoints_tapered: int = 0
    sections_modified: int = 0
    edge_constraints: int = 0
    max_change: float = 0.0
    mean_change: float = 0.0
    by_type: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "junctions_harmonized": self.junctions_harmonized,
            "junctions_skipped": self.junctions_skipped,
            "endpoints_tapered": self.endpoints_tapered,
            "sections_modified": self.sections_modified,
            "edge_constraints": self.edge_constraints,
            "max_change": self.max_change,
            "mean_change": self.mean_change,
            "by_type": dict(self.by_type),
        }


class JunctionHarmonizer:
    """
    Reconciles junction elevations and propagates them along roads.
    """

    def __init__(self, params: Optional[JunctionParams] = None):
        """
        Initialize junction harmonizer.

        Args:
            params: Junction parameters (defaults if None)
        """
        self.params = params or JunctionParams()

    # ---- junction elevations ----

    def junction_elevation(
        self,
        junction: Junction,
        network: RoadNetwork,
        terrain: Optional[TerrainGrid] = None,
    ) -> float:
        """
        Reconciled elevation for one junction (NaN if it cannot be computed).
        """
        sections = [network.cross_section(c.path_id, c.index) for c in junction.contributions]
        if not all(math.isfinite(cs.smoothed_elevation) for cs in sections):
            return math.nan

        if junction.has_continuous:
            primary_id = select_primary([c.path_id for c in junction.continuous], network)
            primary = next(c for c in junction.continuous if c.path_id == primary_id)
            return network.cross_section(primary.path_id, primary.index).smoothed_elevation

        if len(sections) == 1:
            road = sections[0].smoothed_elevation
            strength = self.params.endpoint_terrain_blend_strength
            if terrain is None or strength <= 0:
                return road
            ground = float(terrain.sample(np.asarray([junction.centroid]))[0])
            if not math.isfinite(ground):
                return road
            return road * (1.0 - strength) + ground * strength

        centroid = np.asarray(junction.centroid)
        weights = np.array([
            1.0 / (np.linalg.norm(np.asarray(cs.position) - centroid) + self.params.idw_epsilon)
            for cs in sections
        ])
        values = np.array([cs.smoothed_elevation for cs in sections])
        return float(np.sum(weights * values) / np.sum(weights))

    def _edge_offsets(
        self,
        junction: Junction,
        network: RoadNetwork,
        terminating: CrossSection,
    ) -> Tuple[float, float]:
        """Left/right edge offsets (relative to the junction value) from the primary surface."""
        primary_id = select_primary([c.path_id for c in junction.continuous], network)
        contribution = next(c for c in junction.continuous if c.path_id == primary_id)
        primary_path = network.path(primary_id)
        primary = primary_path[contribution.index]
        slope = local_slope(primary_path, contribution.index)
        left_point, right_point = terminating.edge_points()
        base = junction.elevation
        left = surface_elevation(primary, base, slope, left_point) - base
        right = surface_elevation(primary, base, slope, right_point) - base
        return left, right

    # ---- main entry ----

    def harmonize(
        self,
        network: RoadNetwork,
        terrain: Optional[TerrainGrid] = None,
    ) -> Tuple[RoadNetwork, HarmonizationReport]:
        """
        Reconcile all junctions and propagate.

        Returns:
            Tuple of (network with harmonized targets and junction elevations, report)
        """
        report = HarmonizationReport()

        junctions: List[Junction] = []
        for junction in network.junctions:
            if junction.is_excluded:
                report.junctions_skipped += 1
                junctions.append(junction)
                continue
            elevation = self.junction_elevation(junction, network, terrain)
            if not math.isfinite(elevation):
                logger.warning(
                    f"Junction {junction.junction_id} has contributions without elevation; skipped"
                )
                report.junctions_skipped += 1
                junctions.append(junction)
                continue
            junction = junction.with_elevation(elevation)
            junctions.append(junction)
            report.junctions_harmonized += 1
            key = junction.junction_type.value
            report.by_type[key] = report.by_type.get(key, 0) + 1

        locked: Set[Tuple[int, int]] = {
            (c.path_id, c.index) for j in network.junctions for c in j.continuous
        }
        influences = {pid: _Influence.empty(len(p)) for pid, p in network.paths.items()}

        # Higher-priority junctions first; equal distances go to the lower id.
        ordered = sorted(
            (j for j in junctions if j.is_harmonized),
            key=lambda j: (-max(network.path(pid).priority for pid in j.path_ids), j.junction_id),
        )
        for junction in ordered:
            self._apply_junction(junction, network, influences, report)

        updated, changes = [], []
        for path_id, path in network.paths.items():
            new_path, path_changes = self._apply_influence(path, influences[path_id], locked, report)
            if new_path is not path:
                updated.append(new_path)
            changes.extend(path_changes)

        if changes:
            changes = np.abs(np.asarray(changes))
            report.max_change = float(changes.max())
            report.mean_change = float(changes.mean())

        logger.info(
            f"Harmonized {report.junctions_harmonized} junctions "
            f"({report.junctions_skipped} skipped, {report.endpoints_tapered} dead ends tapered); "
            f"{report.sections_modified} cross-sections modified, max change {report.max_change:.3f}"
        )
        return network.with_paths(updated).with_junctions(junctions), report

    def _apply_junction(
        self,
        junction: Junction,
        network: RoadNetwork,
        influences: Dict[int, _Influence],
        report: HarmonizationReport,
    ) -> None:
        is_dead_end = junction.junction_type == JunctionType.ENDPOINT
        if is_dead_end:
            if not self.params.endpoint_taper:
                return
            reach = self.params.endpoint_taper_distance_m
            report.endpoints_tapered += 1
        else:
            reach = self.params.propagation_distance_m

        use_surface = self.params.surface_constraints and junction.has_continuous
        for contribution in junction.terminating:
            path = network.path(contribution.path_id)
            arc = path.arc_lengths()
            distance = np.abs(arc - arc[contribution.index])
            in_range = distance <= reach

            influence = influences[contribution.path_id]
            closer = (distance < influence.distance) | (
                (distance == influence.distance) & (junction.junction_id < influence.junction_id)
            )
            take = in_range & closer
            if not take.any():
                continue

            influence.distance[take] = distance[take]
            influence.junction_id[take] = junction.junction_id
            influence.value[take] = junction.elevation
            influence.t[take] = distance[take] / reach if reach > 0 else 0.0
            influence.quintic[take] = is_dead_end

            if use_surface:
                left, right = self._edge_offsets(junction, network, path[contribution.index])
                influence.left_offset[take] = left
                influence.right_offset[take] = right
                report.edge_constraints += 1
            else:
                influence.left_offset[take] = np.nan
                influence.right_offset[take] = np.nan

    def _apply_influence(
        self,
        path: RoadPath,
        influence: _Influence,
        locked: Set[Tuple[int, int]],
        report: HarmonizationReport,
    ) -> Tuple[RoadPath, List[float]]:
        driven = influence.junction_id >= 0
        for i in range(len(path)):
            if (path.path_id, i) in locked:
                driven[i] = False
        if not driven.any():
            return path, []

        smoothed = path.smoothed_elevations()
        targets = path.target_elevations()
        left_edges: List[Optional[float]] = [cs.left_edge_elevation for cs in path]
        right_edges: List[Optional[float]] = [cs.right_edge_elevation for cs in path]

        idx = np.flatnonzero(driven & np.isfinite(smoothed))
        cosine_blend = curves.cosine(influence.t[idx])
        quintic_blend = curves.quintic(influence.t[idx])
        blend = np.where(influence.quintic[idx], quintic_blend, cosine_blend)
        values = influence.value[idx] * (1.0 - blend) + smoothed[idx] * blend
        targets[idx] = values

        for k, i in enumerate(idx):
            left_off, right_off = influence.left_offset[i], influence.right_offset[i]
            if math.isnan(left_off) or blend[k] >= 1.0:
                continue
            cs = path[i]
            natural = cs.half_width * math.sin(cs.bank_angle)
            left_edges[i] = float(values[k] + left_off * (1.0 - blend[k]) + natural * blend[k])
            right_edges[i] = float(values[k] + right_off * (1.0 - blend[k]) - natural * blend[k])

        changes = list(values - smoothed[idx])
        report.sections_modified += int(np.count_nonzero(values != smoothed[idx]))
        return path.with_targets(targets, left_edges, right_edges), changes
