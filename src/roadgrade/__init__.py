"""
roadgrade - road network terrain harmonization.

Smooths per-road elevation profiles, reconciles them at junctions and blends
the result into an elevation raster.
"""

__version__ = "1.0.0"

from .common import Config, TerrainGrid, RoadNetwork, RoadSpec, JunctionHint
from .geometry import build_network
from .pipeline import harmonize, HarmonizationPipeline, PipelineResult

__all__ = [
    "Config",
    "TerrainGrid",
    "RoadNetwork",
    "RoadSpec",
    "JunctionHint",
    "build_network",
    "harmonize",
    "HarmonizationPipeline",
    "PipelineResult",
]
