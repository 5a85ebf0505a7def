"""
Harmonization pipeline.

Stages run in a fixed order, each taking the previous network and returning
a new one:

    banking -> smoothing -> junction detection -> crossroad conversion
            -> junction harmonization -> terrain blending

Only the blender produces a raster; the input terrain is never modified.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence

import numpy as np

from .common.config import Config
from .common.errors import HarmonizationCancelled, InputShapeError
from .common.models import JunctionHint, RoadNetwork
from .common.terrain import TerrainGrid
from .geometry.terrain_blender import TerrainBlender
from .processing.banking import apply_banking_to_network
from .processing.crossroad_converter import CrossroadConverter
from .processing.elevation_smoother import ElevationSmoother
from .processing.junction_detector import JunctionDetector
from .processing.junction_harmonizer import JunctionHarmonizer

logger = logging.getLogger(__name__)

CancelCheck = Callable[[], bool]


@dataclass
class PipelineResult:
    """Everything a run produced."""
    terrain: TerrainGrid
    network: RoadNetwork
    reports: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    timings: Dict[str, float] = field(default_factory=dict)

    def summary(self) -> Dict[str, Any]:
        return {
            "paths": len(self.network.paths),
            "cross_sections": self.network.n_cross_sections,
            "junctions": len(self.network.junctions),
            "reports": self.reports,
            "timings_s": {k: round(v, 4) for k, v in self.timings.items()},
        }


def validate_inputs(network: RoadNetwork, terrain: TerrainGrid) -> None:
    """
    Reject inputs that cannot share a coordinate system.

    Raises:
        InputShapeError: if the terrain is malformed or no cross-section lies
            on the terrain
    """
    terrain.validate()
    if network.is_empty:
        return
    positions = network.all_positions()
    if not np.all(np.isfinite(positions)):
        raise InputShapeError("Road network contains non-finite coordinates")
    inside = terrain.contains(positions, margin_m=terrain.cell_size)
    if not inside.any():
        bounds = network.bounds()
        raise InputShapeError(
            f"Road network bounds {bounds} do not overlap terrain extent {terrain.extent}; "
            f"check coordinate systems and cell size"
        )


class HarmonizationPipeline:
    """
    Runs every stage with one configuration.

    The pipeline keeps no state between runs, so one instance can be reused.
    """

    def __init__(self, config: Optional[Config] = None):
        """
        Initialize pipeline.

        Args:
            config: Run configuration (defaults if None)
        """
        self.config = config or Config()
        self.config.validate()

    def run(
        self,
        network: RoadNetwork,
        terrain: TerrainGrid,
        hints: Optional[Sequence[JunctionHint]] = None,
        cancel: Optional[CancelCheck] = None,
    ) -> PipelineResult:
        """
        Harmonize a network against a terrain.

        Args:
            network: Sampled road network
            terrain: Input elevation grid (not modified)
            hints: Optional external junction hints
            cancel: Optional callable polled between stages; returning True
                raises HarmonizationCancelled

        Returns:
            PipelineResult with the blended terrain and final network
        """
        validate_inputs(network, terrain)
        config = self.config
        reports: Dict[str, Dict[str, Any]] = {}
        timings: Dict[str, float] = {}

        def stage(name: str):
            if cancel is not None and cancel():
                raise HarmonizationCancelled(f"Cancelled before stage '{name}'")
            logger.info(f"Stage: {name}")
            return time.perf_counter()

        start = stage("banking")
        network = apply_banking_to_network(network, config.banking)
        timings["banking"] = time.perf_counter() - start

        start = stage("smoothing")
        network, report = ElevationSmoother(config.smoothing).smooth_network(network, terrain)
        reports["smoothing"] = report.to_dict()
        timings["smoothing"] = time.perf_counter() - start

        start = stage("junction_detection")
        network, report = JunctionDetector(config.junctions).detect(network, hints)
        reports["junction_detection"] = report.to_dict()
        timings["junction_detection"] = time.perf_counter() - start

        if config.junctions.convert_crossroads:
            start = stage("crossroad_conversion")
            network, report = CrossroadConverter().convert(network)
            reports["crossroad_conversion"] = report.to_dict()
            timings["crossroad_conversion"] = time.perf_counter() - start

        start = stage("junction_harmonization")
        network, report = JunctionHarmonizer(config.junctions).harmonize(network, terrain)
        reports["junction_harmonization"] = report.to_dict()
        timings["junction_harmonization"] = time.perf_counter() - start

        start = stage("terrain_blending")
        blended, report = TerrainBlender(config.blending).blend(network, terrain)
        reports["terrain_blending"] = report.to_dict()
        timings["terrain_blending"] = time.perf_counter() - start

        logger.info(f"Harmonization finished in {sum(timings.values()):.2f}s")
        return PipelineResult(terrain=blended, network=network, reports=reports, timings=timings)


def harmonize(
    network: RoadNetwork,
    terrain: TerrainGrid,
    config: Optional[Config] = None,
    hints: Optional[Sequence[JunctionHint]] = None,
    cancel: Optional[CancelCheck] = None,
) -> TerrainGrid:
    """
    Harmonize a road network into a terrain and return the modified terrain.

    Args:
        network: Sampled road network
        terrain: Input elevation grid (not modified)
        config: Run configuration (defaults if None)
        hints: Optional external junction hints
        cancel: Optional cancellation check polled between stages

    Returns:
        New TerrainGrid with roads blended in
    """
    return HarmonizationPipeline(config).run(network, terrain, hints, cancel).terrain
