"""
Centerline sampling and raster operations.
"""

from .sampler import build_network, build_path, resample_polyline, sample_cross_sections
from .rasterize import rasterize_cores, rasterize_protection
from .terrain_blender import TerrainBlender, distance_to_core

__all__ = [
    "build_network",
    "build_path",
    "resample_polyline",
    "sample_cross_sections",
    "rasterize_cores",
    "rasterize_protection",
    "TerrainBlender",
    "distance_to_core",
]
