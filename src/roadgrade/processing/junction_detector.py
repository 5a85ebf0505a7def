"""
Junction Detector

Finds the places where roads meet and classifies them.

Detection stages:
1. Endpoint clustering: path endpoints within the detection radius are
   merged transitively with a disjoint set
2. Mid-path attachment: each endpoint cluster picks up the nearest interior
   cross-section of every other path within the radius (continuous)
3. External hints: matched to the nearest cluster or used to seed new ones
4. Mid-path crossings: interior cross-sections of two paths that meet at an
   angle with no junction joining them nearby
5. Classification by road arms (terminating = 1 arm, continuous = 2)
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.cluster.hierarchy import DisjointSet
from scipy.spatial import cKDTree

from ..common.config import JunctionParams
from ..common.models import (
    Junction,
    JunctionContribution,
    JunctionHint,
    JunctionType,
    RoadNetwork,
)

logger = logging.getLogger(__name__)


def classify_contributions(
    contributions: Sequence[JunctionContribution],
    network: RoadNetwork,
    hint: Optional[JunctionHint] = None,
    closed_tolerance_m: float = 0.0,
) -> JunctionType:
    """
    Topology of a contribution set.

    A terminating contribution adds one road arm and a continuous one adds
    two: an endpoint meeting the middle of another road is a T (3 arms).
    Two or more contributions that all pass through form a mid-path crossing.
    """
    continuous = [c for c in contributions if c.is_continuous]
    if len(contributions) >= 2 and len(continuous) == len(contributions):
        return JunctionType.MID_PATH_CROSSING

    if continuous:
        if hint is not None and hint.junction_type == JunctionType.ROUNDABOUT:
            return JunctionType.ROUNDABOUT
        if any(network.path(c.path_id).is_closed(closed_tolerance_m) for c in continuous):
            return JunctionType.ROUNDABOUT

    arms = sum(2 if c.is_continuous else 1 for c in contributions)
    if arms <= 1:
        return JunctionType.ENDPOINT
    if arms == 2:
        return JunctionType.TWO_ROAD
    if arms == 3:
        return JunctionType.T_JUNCTION
    if arms == 4:
        return JunctionType.CROSSROADS
    return JunctionType.COMPLEX


def contribution_centroid(contributions: Sequence[JunctionContribution], network: RoadNetwork) -> Tuple[float, float]:
    pts = np.array([network.cross_section(c.path_id, c.index).position for c in contributions])
    center = pts.mean(axis=0)
    return (float(center[0]), float(center[1]))


@dataclass
class _Cluster:
    contributions: List[JunctionContribution] = field(default_factory=list)
    hint: Optional[JunctionHint] = None

    @property
    def path_ids(self) -> set:
        return {c.path_id for c in self.contributions}


class CrossSectionIndex:
    """
    KD-tree over cross-section centers with per-entry path/index lookups.
    """

    def __init__(self, network: RoadNetwork, include: Optional[Callable] = None):
        entries = [cs for cs in network.cross_sections() if include is None or include(cs)]
        self.sections = entries
        self.positions = np.array([cs.position for cs in entries], dtype=np.float64).reshape(-1, 2)
        self.path_ids = np.array([cs.path_id for cs in entries], dtype=np.int64)
        self.indices = np.array([cs.index for cs in entries], dtype=np.int64)
        self.tree = cKDTree(self.positions) if len(entries) else None

    def __len__(self) -> int:
        return len(self.sections)

    def query_radius(self, point, radius: float) -> List[int]:
        if self.tree is None:
            return []
        return self.tree.query_ball_point(np.asarray(point, dtype=np.float64), radius)

    def nearest_per_path(self, point, radius: float, skip_paths=()) -> Dict[int, Tuple[float, int]]:
        """
        Nearest entry of each path within radius.

        Returns:
            Dict path_id -> (distance, entry number)
        """
        point = np.asarray(point, dtype=np.float64)
        best: Dict[int, Tuple[float, int]] = {}
        for entry in self.query_radius(point, radius):
            path_id = int(self.path_ids[entry])
            if path_id in skip_paths:
                continue
            dist = float(np.linalg.norm(self.positions[entry] - point))
            if path_id not in best or (dist, entry) < best[path_id]:
                best[path_id] = (dist, entry)
        return best


@dataclass
class DetectionReport:
    """Junction counts by type."""
    counts: Dict[str, int] = field(default_factory=dict)
    hints_matched: int = 0
    hints_spawned: int = 0
    hints_ignored: int = 0
    crossings: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "counts": dict(self.counts),
            "hints_matched": self.hints_matched,
            "hints_spawned": self.hints_spawned,
            "hints_ignored": self.hints_ignored,
            "crossings": self.crossings,
        }


class JunctionDetector:
    """
    Detects and classifies junctions in a sampled road network.
    """

    def __init__(self, params: Optional[JunctionParams] = None):
        """
        Initialize junction detector.

        Args:
            params: Junction parameters (defaults if None)
        """
        self.params = params or JunctionParams()

    @property
    def radius(self) -> float:
        return self.params.detection_radius_m

    def detect(
        self,
        network: RoadNetwork,
        hints: Optional[Sequence[JunctionHint]] = None,
    ) -> Tuple[RoadNetwork, DetectionReport]:
        """
        Detect junctions, replacing any junctions already on the network.

        Args:
            network: Sampled network
            hints: Optional externally supplied junction locations

        Returns:
            Tuple of (network with junctions, report)
        """
        report = DetectionReport()
        if network.is_empty:
            return network.with_junctions([]), report

        clusters = self.cluster_endpoints(network)
        index = CrossSectionIndex(network, include=lambda cs: not cs.is_excluded)
        self.attach_mid_path(network, clusters, index)

        if hints:
            self.apply_hints(network, clusters, index, hints, report)

        if self.params.detect_crossings:
            crossings = self.detect_crossings(network, clusters)
            report.crossings = len(crossings)
            clusters.extend(crossings)

        junctions = []
        for junction_id, cluster in enumerate(clusters):
            junction_type = classify_contributions(
                cluster.contributions, network, cluster.hint, self.radius
            )
            junction = Junction(
                junction_id=junction_id,
                centroid=contribution_centroid(cluster.contributions, network),
                contributions=tuple(cluster.contributions),
                junction_type=junction_type,
                hint=cluster.hint,
            )
            if any(network.cross_section(c.path_id, c.index).is_excluded for c in junction.contributions):
                junction = junction.excluded("excluded surface")
            junctions.append(junction)

        report.counts = dict(Counter(j.junction_type.value for j in junctions))
        logger.info(
            f"Detected {len(junctions)} junctions: "
            + ", ".join(f"{count} {name}" for name, count in sorted(report.counts.items()))
        )
        return network.with_junctions(junctions), report

    def cluster_endpoints(self, network: RoadNetwork) -> List[_Cluster]:
        """Union endpoints within the detection radius."""
        endpoints: List[JunctionContribution] = []
        positions = []
        for path_id in sorted(network.paths):
            path = network.path(path_id)
            if len(path) == 0:
                continue
            ends = [0] if len(path) == 1 else [0, len(path) - 1]
            for idx in ends:
                endpoints.append(JunctionContribution(path_id, idx, is_continuous=False))
                positions.append(path[idx].position)

        if not endpoints:
            return []

        disjoint = DisjointSet(range(len(endpoints)))
        tree = cKDTree(np.asarray(positions, dtype=np.float64))
        for a, b in sorted(tree.query_pairs(self.radius)):
            path_id = endpoints[a].path_id
            # Both ends of one open road never form a junction with each other
            if path_id == endpoints[b].path_id and not network.path(path_id).is_closed(self.radius):
                continue
            disjoint.merge(a, b)

        clusters = []
        for subset in sorted(disjoint.subsets(), key=min):
            members = sorted(subset)
            clusters.append(_Cluster(contributions=[endpoints[m] for m in members]))
        logger.debug(f"Clustered {len(endpoints)} endpoints into {len(clusters)} groups")
        return clusters

    def attach_mid_path(self, network: RoadNetwork, clusters: List[_Cluster], index: CrossSectionIndex) -> int:
        """Add the nearest interior cross-section of nearby paths as continuous contributions."""
        attached = 0
        for cluster in clusters:
            centroid = contribution_centroid(cluster.contributions, network)
            nearest = self._nearest_interior_per_path(index, centroid, cluster.path_ids)
            for path_id in sorted(nearest):
                _, entry = nearest[path_id]
                cluster.contributions.append(
                    JunctionContribution(path_id, int(index.indices[entry]), is_continuous=True)
                )
                attached += 1
        logger.debug(f"Attached {attached} mid-path contributions")
        return attached

    def _nearest_interior_per_path(self, index: CrossSectionIndex, point, skip_paths) -> Dict[int, Tuple[float, int]]:
        best: Dict[int, Tuple[float, int]] = {}
        point = np.asarray(point, dtype=np.float64)
        for entry in index.query_radius(point, self.radius):
            cs = index.sections[entry]
            if cs.path_id in skip_paths or cs.is_endpoint:
                continue
            dist = float(np.linalg.norm(index.positions[entry] - point))
            if cs.path_id not in best or (dist, entry) < best[cs.path_id]:
                best[cs.path_id] = (dist, entry)
        return best

    def apply_hints(
        self,
        network: RoadNetwork,
        clusters: List[_Cluster],
        index: CrossSectionIndex,
        hints: Sequence[JunctionHint],
        report: DetectionReport,
    ) -> None:
        """Attach hints to nearby clusters or seed new clusters from them."""
        match_radius = self.params.hint_match_factor * self.radius
        for hint in hints:
            hint_pos = np.asarray(hint.position, dtype=np.float64)
            best = None
            for cluster in clusters:
                centroid = np.asarray(contribution_centroid(cluster.contributions, network))
                dist = float(np.linalg.norm(centroid - hint_pos))
                if dist <= match_radius and (best is None or dist < best[0]):
                    best = (dist, cluster)

            if best is not None:
                if best[1].hint is None:
                    best[1].hint = hint
                report.hints_matched += 1
                continue

            nearest = index.nearest_per_path(hint_pos, self.radius)
            if len(nearest) < 2:
                logger.debug(f"Hint at {hint.position} touches {len(nearest)} path(s); ignored")
                report.hints_ignored += 1
                continue

            contributions = []
            for path_id in sorted(nearest):
                cs = index.sections[nearest[path_id][1]]
                contributions.append(
                    JunctionContribution(path_id, cs.index, is_continuous=not cs.is_endpoint)
                )
            clusters.append(_Cluster(contributions=contributions, hint=hint))
            report.hints_spawned += 1

        logger.info(
            f"Hints: {report.hints_matched} matched, {report.hints_spawned} spawned, "
            f"{report.hints_ignored} ignored"
        )

    def detect_crossings(self, network: RoadNetwork, clusters: List[_Cluster]) -> List[_Cluster]:
        """
        Find roads that cross mid-path without any endpoint nearby.

        The closest candidate pair wins. Later candidates of the same path
        pair are suppressed while both of their cross-sections lie within
        R / sin(angle) + R of the accepted crossing along each road, so a
        shallow crossing is reported once.
        """
        radius = self.radius
        interior = CrossSectionIndex(
            network, include=lambda cs: not cs.is_endpoint and not cs.is_excluded
        )
        if len(interior) < 2:
            return []

        connected: Dict[frozenset, List[np.ndarray]] = {}
        for cluster in clusters:
            ids = sorted(cluster.path_ids)
            centroid = np.asarray(contribution_centroid(cluster.contributions, network))
            for i in range(len(ids)):
                for j in range(i + 1, len(ids)):
                    connected.setdefault(frozenset((ids[i], ids[j])), []).append(centroid)

        min_sin = np.sin(np.radians(self.params.crossing_min_angle_deg))
        candidates = []
        for a, b in interior.tree.query_pairs(radius):
            cs_a, cs_b = interior.sections[a], interior.sections[b]
            if cs_a.path_id == cs_b.path_id:
                continue
            cross = abs(cs_a.tangent[0] * cs_b.tangent[1] - cs_a.tangent[1] * cs_b.tangent[0])
            if cross < min_sin:
                continue
            dist = float(np.linalg.norm(interior.positions[a] - interior.positions[b]))
            if cs_a.path_id > cs_b.path_id:
                cs_a, cs_b = cs_b, cs_a
            candidates.append((dist, cs_a.path_id, cs_a.index, cs_b.path_id, cs_b.index, cross))

        arcs = {path_id: path.arc_lengths() for path_id, path in network.paths.items()}
        # Per path pair: (arc on a, arc on b, reach) of each accepted crossing
        spans: Dict[frozenset, List[Tuple[float, float, float]]] = {}

        accepted: List[Tuple[np.ndarray, _Cluster]] = []
        for dist, path_a, idx_a, path_b, idx_b, cross in sorted(candidates):
            midpoint = 0.5 * (
                np.asarray(network.cross_section(path_a, idx_a).position)
                + np.asarray(network.cross_section(path_b, idx_b).position)
            )
            pair = frozenset((path_a, path_b))
            if any(np.linalg.norm(c - midpoint) <= 2 * radius for c in connected.get(pair, [])):
                continue
            arc_a, arc_b = float(arcs[path_a][idx_a]), float(arcs[path_b][idx_b])
            if any(
                abs(arc_a - span_a) <= reach and abs(arc_b - span_b) <= reach
                for span_a, span_b, reach in spans.get(pair, [])
            ):
                continue
            # Straight roads crossing at angle theta stay within R for R / sin(theta)
            # along each road; one more R covers the sampling offset.
            span = (arc_a, arc_b, radius / max(cross, 1e-6) + radius)

            merged = False
            for center, cluster in accepted:
                if np.linalg.norm(center - midpoint) > 2 * radius:
                    continue
                paths = cluster.path_ids
                if path_a in paths and path_b in paths:
                    merged = True
                    break
                if (path_a in paths or path_b in paths) and np.linalg.norm(center - midpoint) <= radius:
                    if path_a not in paths:
                        cluster.contributions.append(JunctionContribution(path_a, idx_a, True))
                    else:
                        cluster.contributions.append(JunctionContribution(path_b, idx_b, True))
                    spans.setdefault(pair, []).append(span)
                    merged = True
                    break
            if merged:
                continue

            cluster = _Cluster(contributions=[
                JunctionContribution(path_a, idx_a, True),
                JunctionContribution(path_b, idx_b, True),
            ])
            accepted.append((midpoint, cluster))
            spans.setdefault(pair, []).append(span)
            logger.debug(
                f"Crossing between paths {path_a} and {path_b} at "
                f"({midpoint[0]:.1f}, {midpoint[1]:.1f}), gap {dist:.2f} m"
            )

        return [cluster for _, cluster in accepted]


def exclude_junctions(
    network: RoadNetwork,
    predicate: Callable[[Junction], Optional[str]],
) -> RoadNetwork:
    """
    Mark junctions excluded from harmonization.

    Args:
        network: Network with detected junctions
        predicate: Returns a reason string to exclude a junction, None to keep it
    """
    junctions = []
    excluded = 0
    for junction in network.junctions:
        reason = predicate(junction)
        if reason and not junction.is_excluded:
            junction = junction.excluded(reason)
            excluded += 1
        junctions.append(junction)
    if excluded:
        logger.info(f"Excluded {excluded} junctions")
    return network.with_junctions(junctions)
