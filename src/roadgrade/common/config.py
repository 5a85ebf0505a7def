"""
Configuration and constants for terrain harmonization.

Unit Model:
- All geometry is in meters (road points are multiplied by their scale)
- Elevations are in the raster's units (normally meters)
- Window sizes are counted in cross-sections, distances in meters
"""

from enum import Enum
from dataclasses import dataclass, field, fields, asdict
from typing import Optional, Dict, Any, List
import json
from pathlib import Path

import yaml

from .errors import ConfigError


class FilterType(Enum):
    """
    Longitudinal filter used by the elevation smoother.

    BOX: moving average over a fixed window (prefix sums)
    BUTTERWORTH: zero-phase low-pass (second-order sections, forward + backward)
    """
    BOX = "box"
    BUTTERWORTH = "butterworth"


class BlendFunction(Enum):
    """Falloff curve for the terrain shoulder."""
    LINEAR = "linear"
    COSINE = "cosine"
    CUBIC = "cubic"
    QUINTIC = "quintic"


class LevelingScope(Enum):
    """Which mean the optional global leveling pulls toward."""
    PATH = "path"
    NETWORK = "network"


@dataclass
class SamplingParams:
    """Cross-section sampling along centerlines."""
    interval_m: float = 1.0
    default_width_m: float = 8.0
    default_blend_range_m: float = 10.0


@dataclass
class BankingParams:
    """Superelevation on curves. Disabled unless enabled explicitly."""
    enabled: bool = False
    max_bank_degrees: float = 8.0
    bank_strength: float = 0.5
    curvature_to_bank_scale: float = 500.0
    transition_length_m: float = 30.0


@dataclass
class SmoothingParams:
    """Per-path elevation profile smoothing."""
    filter_type: FilterType = FilterType.BUTTERWORTH
    window_size: int = 101  # cross-sections
    butterworth_order: int = 3
    invalid_floor: float = -1000.0
    leveling_strength: float = 0.0
    leveling_scope: LevelingScope = LevelingScope.NETWORK
    enforce_max_grade: bool = False
    max_grade_degrees: float = 4.0
    max_grade_iterations: int = 100


@dataclass
class JunctionParams:
    """Junction detection and harmonization."""
    detection_radius_m: float = 10.0
    hint_match_factor: float = 1.5
    detect_crossings: bool = True
    crossing_min_angle_deg: float = 15.0
    convert_crossroads: bool = True
    propagation_distance_m: float = 40.0
    idw_epsilon: float = 0.1
    surface_constraints: bool = True
    endpoint_taper: bool = True
    endpoint_taper_distance_m: float = 30.0
    endpoint_terrain_blend_strength: float = 0.3


@dataclass
class BlendParams:
    """Raster blending of road elevations into terrain."""
    blend_function: BlendFunction = BlendFunction.COSINE
    protection_buffer_m: float = 1.0
    post_smoothing_sigma: float = 0.0  # cells, 0 disables


_ENUM_FIELDS = {
    "filter_type": FilterType,
    "leveling_scope": LevelingScope,
    "blend_function": BlendFunction,
}


def _section_to_dict(section) -> Dict[str, Any]:
    data = asdict(section)
    for key, value in data.items():
        if isinstance(value, Enum):
            data[key] = value.value
    return data


def _section_from_dict(cls, data: Optional[Dict[str, Any]]):
    if not data:
        return cls()
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
    kwargs = {}
    for key, value in data.items():
        if key in _ENUM_FIELDS and not isinstance(value, Enum):
            try:
                value = _ENUM_FIELDS[key](value)
            except ValueError:
                choices = [e.value for e in _ENUM_FIELDS[key]]
                raise ConfigError(f"{cls.__name__}.{key} must be one of {choices}, got {value!r}")
        kwargs[key] = value
    return cls(**kwargs)


@dataclass
class Config:
    """
    Global configuration for a harmonization run.

    Every section has working defaults, so ``Config()`` is a complete config.
    """

    sampling: SamplingParams = field(default_factory=SamplingParams)
    banking: BankingParams = field(default_factory=BankingParams)
    smoothing: SmoothingParams = field(default_factory=SmoothingParams)
    junctions: JunctionParams = field(default_factory=JunctionParams)
    blending: BlendParams = field(default_factory=BlendParams)

    def validate(self) -> None:
        """Raise ConfigError listing every out-of-range value."""
        errors: List[str] = []
        if self.sampling.interval_m <= 0:
            errors.append("sampling.interval_m must be positive")
        if self.sampling.default_width_m <= 0:
            errors.append("sampling.default_width_m must be positive")
        if self.sampling.default_blend_range_m < 0:
            errors.append("sampling.default_blend_range_m must be >= 0")
        if not 0 <= self.banking.max_bank_degrees <= 45:
            errors.append("banking.max_bank_degrees must be between 0 and 45")
        if not 0 <= self.banking.bank_strength <= 1:
            errors.append("banking.bank_strength must be between 0 and 1")
        if self.smoothing.window_size < 1:
            errors.append("smoothing.window_size must be >= 1")
        if not 1 <= self.smoothing.butterworth_order <= 8:
            errors.append("smoothing.butterworth_order must be between 1 and 8")
        if not 0 <= self.smoothing.leveling_strength <= 1:
            errors.append("smoothing.leveling_strength must be between 0 and 1")
        if not 0 < self.smoothing.max_grade_degrees < 90:
            errors.append("smoothing.max_grade_degrees must be between 0 and 90")
        if self.junctions.detection_radius_m <= 0:
            errors.append("junctions.detection_radius_m must be positive")
        if self.junctions.hint_match_factor < 1:
            errors.append("junctions.hint_match_factor must be >= 1")
        if self.junctions.propagation_distance_m < 0:
            errors.append("junctions.propagation_distance_m must be >= 0")
        if self.junctions.idw_epsilon <= 0:
            errors.append("junctions.idw_epsilon must be positive")
        if not 0 <= self.junctions.endpoint_terrain_blend_strength <= 1:
            errors.append("junctions.endpoint_terrain_blend_strength must be between 0 and 1")
        if self.blending.protection_buffer_m < 0:
            errors.append("blending.protection_buffer_m must be >= 0")
        if self.blending.post_smoothing_sigma < 0:
            errors.append("blending.post_smoothing_sigma must be >= 0")
        if errors:
            raise ConfigError("; ".join(errors))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sampling": _section_to_dict(self.sampling),
            "banking": _section_to_dict(self.banking),
            "smoothing": _section_to_dict(self.smoothing),
            "junctions": _section_to_dict(self.junctions),
            "blending": _section_to_dict(self.blending),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        unknown = set(data) - {"sampling", "banking", "smoothing", "junctions", "blending"}
        if unknown:
            raise ConfigError(f"Unknown config sections: {sorted(unknown)}")
        return cls(
            sampling=_section_from_dict(SamplingParams, data.get("sampling")),
            banking=_section_from_dict(BankingParams, data.get("banking")),
            smoothing=_section_from_dict(SmoothingParams, data.get("smoothing")),
            junctions=_section_from_dict(JunctionParams, data.get("junctions")),
            blending=_section_from_dict(BlendParams, data.get("blending")),
        )

    @classmethod
    def from_json(cls, path: Path) -> "Config":
        """Load config from JSON file."""
        with open(path) as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load config from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load config, picking the parser from the file extension."""
        path = Path(path)
        if path.suffix.lower() in (".yaml", ".yml"):
            return cls.from_yaml(path)
        return cls.from_json(path)

    def save(self, path: Path) -> None:
        """Save config to JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


# Global default config
DEFAULT_CONFIG = Config()
