"""
Crossroad-to-T-Junction Converter

Rewrites every mid-path crossing as ordinary T-junctions. The primary road
(highest priority, then longest, then lowest id) stays continuous; every
other road through the crossing is split at its cross-section nearest the
crossing, and each half terminates against the primary.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Sequence, Tuple

import numpy as np

from ..common.models import (
    Junction,
    JunctionContribution,
    JunctionType,
    RoadNetwork,
    RoadPath,
)
from .junction_detector import classify_contributions, contribution_centroid

logger = logging.getLogger(__name__)


def primary_sort_key(path: RoadPath) -> Tuple[float, float, int]:
    """Sort key where the smallest key is the primary road."""
    return (-path.priority, -path.length, path.path_id)


def select_primary(path_ids: Sequence[int], network: RoadNetwork) -> int:
    """
    Pick the road that stays continuous.

    Cascade: higher priority wins; tie -> longer path; tie -> lower path id.
    """
    return min(path_ids, key=lambda pid: primary_sort_key(network.path(pid)))


def nearest_index(path: RoadPath, point) -> int:
    """Index of the cross-section nearest a point (first on ties)."""
    dists = np.linalg.norm(path.positions() - np.asarray(point, dtype=np.float64), axis=1)
    return int(np.argmin(dists))


@dataclass
class ConversionReport:
    """Outcome of one conversion pass."""
    crossings_seen: int = 0
    crossings_converted: int = 0
    splits: int = 0
    splits_skipped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "crossings_seen": self.crossings_seen,
            "crossings_converted": self.crossings_converted,
            "splits": self.splits,
            "splits_skipped": self.splits_skipped,
        }


class CrossroadConverter:
    """
    Splits secondary roads at mid-path crossings.
    """

    def convert(self, network: RoadNetwork) -> Tuple[RoadNetwork, ConversionReport]:
        """
        Convert all mid-path crossings to T-junctions.

        Running this on an already converted network performs no splits.

        Returns:
            Tuple of (updated network, report)
        """
        report = ConversionReport()
        crossing_ids = [
            j.junction_id for j in network.junctions
            if j.junction_type == JunctionType.MID_PATH_CROSSING and not j.is_excluded
        ]
        if not crossing_ids:
            return network, report

        junctions: List[Junction] = list(network.junctions)
        next_junction_id = max(j.junction_id for j in junctions) + 1

        for crossing_id in crossing_ids:
            report.crossings_seen += 1
            pos = next(i for i, j in enumerate(junctions) if j.junction_id == crossing_id)
            crossing = junctions[pos]

            primary_id = select_primary(crossing.path_ids, network)
            primary = next(c for c in crossing.contributions if c.path_id == primary_id)
            remaining = [primary]
            created: List[Junction] = []

            for contribution in crossing.contributions:
                if contribution.path_id == primary_id:
                    continue
                secondary = network.path(contribution.path_id)
                split_at = nearest_index(secondary, crossing.centroid)
                if split_at < 1 or split_at > len(secondary) - 2:
                    logger.warning(
                        f"Crossing {crossing_id}: splitting path {secondary.path_id} at "
                        f"{split_at} leaves a segment under 2 cross-sections; left unresolved"
                    )
                    report.splits_skipped += 1
                    remaining.append(contribution)
                    continue

                new_path_id = network.next_path_id()
                segment_a, segment_b = secondary.split(split_at, new_path_id)
                network = network.with_paths([segment_a, segment_b])
                junctions = [
                    _remap(j, secondary.path_id, split_at, new_path_id) for j in junctions
                ]
                primary = next(
                    c for c in junctions[pos].contributions if c.path_id == primary_id
                )
                remaining[0] = primary
                report.splits += 1

                for terminating in (
                    JunctionContribution(segment_a.path_id, len(segment_a) - 1, False),
                    JunctionContribution(segment_b.path_id, 0, False),
                ):
                    contributions = (primary, terminating)
                    created.append(Junction(
                        junction_id=next_junction_id,
                        centroid=contribution_centroid(contributions, network),
                        contributions=contributions,
                        junction_type=classify_contributions(contributions, network),
                    ))
                    next_junction_id += 1
                logger.debug(
                    f"Crossing {crossing_id}: path {secondary.path_id} split at {split_at} "
                    f"into {segment_a.path_id}/{segment_b.path_id} against primary {primary_id}"
                )

            if len(remaining) >= 2:
                junctions[pos] = replace(junctions[pos], contributions=tuple(remaining))
            else:
                del junctions[pos]
                report.crossings_converted += 1
            junctions.extend(created)

        logger.info(
            f"Converted {report.crossings_converted}/{report.crossings_seen} crossings "
            f"({report.splits} splits, {report.splits_skipped} skipped)"
        )
        return network.with_junctions(junctions), report


def _remap(junction: Junction, path_id: int, split_at: int, new_path_id: int) -> Junction:
    """Move contributions past the split point onto the new segment."""
    changed = False
    contributions = []
    for c in junction.contributions:
        if c.path_id == path_id and c.index > split_at:
            c = JunctionContribution(new_path_id, c.index - split_at, c.is_continuous)
            changed = True
        contributions.append(c)
    if not changed:
        return junction
    return replace(junction, contributions=tuple(contributions))
