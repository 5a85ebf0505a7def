"""
Road network data model.

Every type here is frozen. Pipeline stages never assign fields; they call the
method that owns the fields they are allowed to change and get a new object
back:

- RoadPath.with_banking      -> curvature, bank_angle          (banking)
- RoadPath.with_profile      -> raw/smoothed/target elevation  (smoother)
- RoadPath.with_targets      -> target elevation, edge overrides (harmonizer)
- RoadPath.split             -> endpoint flags, new path        (converter)
- Junction.with_elevation / classified / excluded              (detector, harmonizer)
"""

import math
from enum import Enum
from types import MappingProxyType
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np

Point = Tuple[float, float]


class JunctionType(Enum):
    """Junction topology."""
    ENDPOINT = "endpoint"
    TWO_ROAD = "two_road"
    T_JUNCTION = "t_junction"
    CROSSROADS = "crossroads"
    COMPLEX = "complex"
    MID_PATH_CROSSING = "mid_path_crossing"
    ROUNDABOUT = "roundabout"


@dataclass(frozen=True)
class CrossSection:
    """
    One sampled centerline point with local orientation and width.

    The normal points to the left of the travel direction. Elevations are NaN
    until the smoother has run.
    """
    position: Point
    tangent: Point
    normal: Point
    half_width: float
    path_id: int
    index: int
    is_path_start: bool = False
    is_path_end: bool = False
    is_excluded: bool = False
    curvature: float = 0.0
    bank_angle: float = 0.0  # radians, positive raises the left edge
    raw_elevation: float = math.nan
    smoothed_elevation: float = math.nan
    target_elevation: float = math.nan
    left_edge_elevation: Optional[float] = None
    right_edge_elevation: Optional[float] = None

    @property
    def is_endpoint(self) -> bool:
        return self.is_path_start or self.is_path_end

    @property
    def has_elevation(self) -> bool:
        return math.isfinite(self.target_elevation)

    @property
    def has_edge_constraint(self) -> bool:
        return self.left_edge_elevation is not None or self.right_edge_elevation is not None

    def natural_left_edge(self) -> float:
        return self.target_elevation + self.half_width * math.sin(self.bank_angle)

    def natural_right_edge(self) -> float:
        return self.target_elevation - self.half_width * math.sin(self.bank_angle)

    def left_edge(self) -> float:
        """Elevation at center + normal * half_width."""
        if self.left_edge_elevation is not None:
            return self.left_edge_elevation
        return self.natural_left_edge()

    def right_edge(self) -> float:
        """Elevation at center - normal * half_width."""
        if self.right_edge_elevation is not None:
            return self.right_edge_elevation
        return self.natural_right_edge()

    def edge_points(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (left, right) edge positions."""
        center = np.asarray(self.position)
        offset = np.asarray(self.normal) * self.half_width
        return center + offset, center - offset


@dataclass(frozen=True)
class RoadPath:
    """An ordered run of cross-sections sharing one path id."""
    path_id: int
    cross_sections: Tuple[CrossSection, ...]
    priority: int = 0
    blend_range: float = 10.0  # shoulder width in meters
    name: str = ""

    def __post_init__(self):
        object.__setattr__(self, "cross_sections", tuple(self.cross_sections))

    def __len__(self) -> int:
        return len(self.cross_sections)

    def __iter__(self) -> Iterator[CrossSection]:
        return iter(self.cross_sections)

    def __getitem__(self, index: int) -> CrossSection:
        return self.cross_sections[index]

    @classmethod
    def build(
        cls,
        path_id: int,
        cross_sections: Sequence[CrossSection],
        priority: int = 0,
        blend_range: float = 10.0,
        name: str = "",
    ) -> "RoadPath":
        """Create a path, renumbering ids, indices and start/end flags."""
        n = len(cross_sections)
        sections = tuple(
            replace(
                cs,
                path_id=path_id,
                index=i,
                is_path_start=(i == 0),
                is_path_end=(i == n - 1),
            )
            for i, cs in enumerate(cross_sections)
        )
        return cls(path_id=path_id, cross_sections=sections, priority=priority,
                   blend_range=blend_range, name=name)

    # ---- array views ----

    def positions(self) -> np.ndarray:
        if not self.cross_sections:
            return np.empty((0, 2))
        return np.array([cs.position for cs in self.cross_sections], dtype=np.float64)

    def tangents(self) -> np.ndarray:
        if not self.cross_sections:
            return np.empty((0, 2))
        return np.array([cs.tangent for cs in self.cross_sections], dtype=np.float64)

    def normals(self) -> np.ndarray:
        if not self.cross_sections:
            return np.empty((0, 2))
        return np.array([cs.normal for cs in self.cross_sections], dtype=np.float64)

    def half_widths(self) -> np.ndarray:
        return np.array([cs.half_width for cs in self.cross_sections], dtype=np.float64)

    def smoothed_elevations(self) -> np.ndarray:
        return np.array([cs.smoothed_elevation for cs in self.cross_sections], dtype=np.float64)

    def target_elevations(self) -> np.ndarray:
        return np.array([cs.target_elevation for cs in self.cross_sections], dtype=np.float64)

    def excluded_mask(self) -> np.ndarray:
        return np.array([cs.is_excluded for cs in self.cross_sections], dtype=bool)

    def segment_lengths(self) -> np.ndarray:
        pos = self.positions()
        if len(pos) < 2:
            return np.empty(0)
        return np.linalg.norm(np.diff(pos, axis=0), axis=1)

    def arc_lengths(self) -> np.ndarray:
        """Cumulative distance from the first cross-section."""
        return np.concatenate([[0.0], np.cumsum(self.segment_lengths())])

    @property
    def length(self) -> float:
        return float(self.segment_lengths().sum())

    def is_closed(self, tolerance_m: float) -> bool:
        """True if the path returns to its start (e.g. a roundabout ring)."""
        if len(self) < 3 or self.length <= 2 * tolerance_m:
            return False
        start = np.asarray(self.cross_sections[0].position)
        end = np.asarray(self.cross_sections[-1].position)
        return float(np.linalg.norm(start - end)) <= tolerance_m

    # ---- stage-owned updates ----

    def with_banking(self, curvature: Sequence[float], bank_angle: Sequence[float]) -> "RoadPath":
        sections = tuple(
            replace(cs, curvature=float(k), bank_angle=float(b))
            for cs, k, b in zip(self.cross_sections, curvature, bank_angle)
        )
        return replace(self, cross_sections=sections)

    def with_profile(self, raw: Sequence[float], smoothed: Sequence[float]) -> "RoadPath":
        """Set raw samples and smoothed elevations; the target starts as the smoothed value."""
        sections = tuple(
            replace(
                cs,
                raw_elevation=float(r),
                smoothed_elevation=float(s),
                target_elevation=float(s),
                left_edge_elevation=None,
                right_edge_elevation=None,
            )
            for cs, r, s in zip(self.cross_sections, raw, smoothed)
        )
        return replace(self, cross_sections=sections)

    def with_targets(
        self,
        targets: Sequence[float],
        left_edges: Optional[Sequence[Optional[float]]] = None,
        right_edges: Optional[Sequence[Optional[float]]] = None,
    ) -> "RoadPath":
        """Set target elevations and edge overrides (None keeps the natural edge)."""
        n = len(self)
        left_edges = left_edges if left_edges is not None else [None] * n
        right_edges = right_edges if right_edges is not None else [None] * n
        sections = tuple(
            replace(
                cs,
                target_elevation=float(t),
                left_edge_elevation=None if left is None else float(left),
                right_edge_elevation=None if right is None else float(right),
            )
            for cs, t, left, right in zip(self.cross_sections, targets, left_edges, right_edges)
        )
        return replace(self, cross_sections=sections)

    def split(self, index: int, new_path_id: int) -> Tuple["RoadPath", "RoadPath"]:
        """
        Split at a cross-section into A = [0..index] and B = [index..end].

        The split cross-section appears in both halves: as the end of A and the
        start of B. A keeps this path's id.

        Raises:
            ValueError: if either half would have fewer than 2 cross-sections
        """
        if index < 1 or index > len(self) - 2:
            raise ValueError(
                f"Cannot split path {self.path_id} ({len(self)} sections) at index {index}"
            )
        segment_a = RoadPath.build(self.path_id, self.cross_sections[:index + 1],
                                   self.priority, self.blend_range, self.name)
        segment_b = RoadPath.build(new_path_id, self.cross_sections[index:],
                                   self.priority, self.blend_range, self.name)
        return segment_a, segment_b


@dataclass
class RoadSpec:
    """Upstream description of one road, before sampling."""
    points: Sequence[Sequence[float]]
    width: Optional[float] = None  # full width in meters
    priority: int = 0
    scale: float = 1.0  # point units -> meters
    blend_range: Optional[float] = None
    name: str = ""
    excluded: bool = False  # whole road is a bridge/tunnel


@dataclass(frozen=True)
class JunctionHint:
    """Junction location reported by an external source (e.g. map data)."""
    position: Point
    junction_type: JunctionType = JunctionType.T_JUNCTION
    road_count: int = 0


@dataclass(frozen=True)
class JunctionContribution:
    """One path's cross-section taking part in a junction."""
    path_id: int
    index: int
    is_continuous: bool  # path passes through (True) or terminates (False)


@dataclass(frozen=True)
class Junction:
    """A cluster of contributions that must agree on one elevation."""
    junction_id: int
    centroid: Point
    contributions: Tuple[JunctionContribution, ...]
    junction_type: JunctionType = JunctionType.ENDPOINT
    elevation: float = math.nan
    is_excluded: bool = False
    exclusion_reason: str = ""
    hint: Optional[JunctionHint] = None

    def __post_init__(self):
        object.__setattr__(self, "contributions", tuple(self.contributions))
        if not self.contributions:
            raise ValueError(f"Junction {self.junction_id} has no contributions")
        if self.junction_type == JunctionType.MID_PATH_CROSSING:
            if len(self.contributions) < 2 or not all(c.is_continuous for c in self.contributions):
                raise ValueError(
                    f"Mid-path crossing {self.junction_id} needs >=2 continuous contributions"
                )

    @property
    def path_ids(self) -> List[int]:
        """Distinct contributing path ids in contribution order."""
        seen: List[int] = []
        for c in self.contributions:
            if c.path_id not in seen:
                seen.append(c.path_id)
        return seen

    @property
    def continuous(self) -> List[JunctionContribution]:
        return [c for c in self.contributions if c.is_continuous]

    @property
    def terminating(self) -> List[JunctionContribution]:
        return [c for c in self.contributions if not c.is_continuous]

    @property
    def has_continuous(self) -> bool:
        return any(c.is_continuous for c in self.contributions)

    @property
    def is_harmonized(self) -> bool:
        return math.isfinite(self.elevation)

    def with_elevation(self, elevation: float) -> "Junction":
        return replace(self, elevation=float(elevation))

    def classified(self, junction_type: JunctionType) -> "Junction":
        return replace(self, junction_type=junction_type)

    def excluded(self, reason: str) -> "Junction":
        return replace(self, is_excluded=True, exclusion_reason=reason)


@dataclass(frozen=True)
class RoadNetwork:
    """All paths and junctions for one harmonization run."""
    paths: Mapping[int, RoadPath] = field(default_factory=dict)
    junctions: Tuple[Junction, ...] = ()

    def __post_init__(self):
        if not isinstance(self.paths, MappingProxyType):
            object.__setattr__(self, "paths", MappingProxyType(dict(self.paths)))
        object.__setattr__(self, "junctions", tuple(self.junctions))

    @classmethod
    def from_paths(cls, paths: Iterable[RoadPath]) -> "RoadNetwork":
        by_id: Dict[int, RoadPath] = {}
        for path in paths:
            if path.path_id in by_id:
                raise ValueError(f"Duplicate path id {path.path_id}")
            by_id[path.path_id] = path
        return cls(paths=by_id)

    @property
    def is_empty(self) -> bool:
        return not any(len(p) for p in self.paths.values())

    @property
    def n_cross_sections(self) -> int:
        return sum(len(p) for p in self.paths.values())

    def path(self, path_id: int) -> RoadPath:
        return self.paths[path_id]

    def cross_section(self, path_id: int, index: int) -> CrossSection:
        return self.paths[path_id].cross_sections[index]

    def cross_sections(self) -> Iterator[CrossSection]:
        """Flattened view in path id order."""
        for path_id in sorted(self.paths):
            yield from self.paths[path_id].cross_sections

    def next_path_id(self) -> int:
        return max(self.paths, default=-1) + 1

    def junction(self, junction_id: int) -> Junction:
        for junction in self.junctions:
            if junction.junction_id == junction_id:
                return junction
        raise KeyError(junction_id)

    def with_paths(self, updated: Iterable[RoadPath], removed: Iterable[int] = ()) -> "RoadNetwork":
        """Replace or add paths by id."""
        paths = dict(self.paths)
        for path_id in removed:
            paths.pop(path_id, None)
        for path in updated:
            paths[path.path_id] = path
        return RoadNetwork(paths=paths, junctions=self.junctions)

    def with_junctions(self, junctions: Iterable[Junction]) -> "RoadNetwork":
        return RoadNetwork(paths=self.paths, junctions=tuple(junctions))

    def all_positions(self) -> np.ndarray:
        arrays = [p.positions() for p in self.paths.values() if len(p)]
        if not arrays:
            return np.empty((0, 2))
        return np.vstack(arrays)

    def bounds(self) -> Optional[Tuple[float, float, float, float]]:
        """(min_x, min_y, max_x, max_y) of all cross-section centers, or None."""
        pos = self.all_positions()
        if len(pos) == 0:
            return None
        return (float(pos[:, 0].min()), float(pos[:, 1].min()),
                float(pos[:, 0].max()), float(pos[:, 1].max()))
