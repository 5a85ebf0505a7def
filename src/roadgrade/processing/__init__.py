"""
Per-road and junction processing stages.
"""

from .banking import apply_banking, apply_banking_to_network
from .elevation_smoother import ElevationSmoother, box_filter, butterworth_filter
from .junction_detector import JunctionDetector, classify_contributions, exclude_junctions
from .crossroad_converter import CrossroadConverter, select_primary
from .junction_harmonizer import JunctionHarmonizer

__all__ = [
    "apply_banking",
    "apply_banking_to_network",
    "ElevationSmoother",
    "box_filter",
    "butterworth_filter",
    "JunctionDetector",
    "classify_contributions",
    "exclude_junctions",
    "CrossroadConverter",
    "select_primary",
    "JunctionHarmonizer",
]
