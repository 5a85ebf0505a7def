"""
Common modules shared by every harmonization stage.

Unit Model:
- Geometry in meters, elevations in raster units
- Cell (row, col) sits at origin + (col, row) * cell_size
"""

from .config import (
    Config, DEFAULT_CONFIG, FilterType, BlendFunction, LevelingScope,
    SamplingParams, BankingParams, SmoothingParams, JunctionParams, BlendParams,
)
from .errors import RoadgradeError, InputShapeError, ConfigError, HarmonizationCancelled
from .models import (
    CrossSection, RoadPath, RoadSpec, RoadNetwork,
    Junction, JunctionContribution, JunctionHint, JunctionType,
)
from .terrain import TerrainGrid

__all__ = [
    'Config', 'DEFAULT_CONFIG', 'FilterType', 'BlendFunction', 'LevelingScope',
    'SamplingParams', 'BankingParams', 'SmoothingParams', 'JunctionParams', 'BlendParams',
    'RoadgradeError', 'InputShapeError', 'ConfigError', 'HarmonizationCancelled',
    'CrossSection', 'RoadPath', 'RoadSpec', 'RoadNetwork',
    'Junction', 'JunctionContribution', 'JunctionHint', 'JunctionType',
    'TerrainGrid',
]
