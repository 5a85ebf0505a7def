"""
Elevation Smoother

Samples the terrain under every cross-section and turns the noisy ground
profile into a drivable road profile.

Algorithm (per path):
1. Bilinear terrain sample at each cross-section center
2. Replace non-finite / implausible samples with the nearest valid neighbour;
   excluded (bridge/tunnel) samples are bridged by linear interpolation
3. Longitudinal low-pass filter: prefix-sum box filter or zero-phase
   Butterworth (second-order sections, forward + backward)
4. Optional leveling toward the path or network mean
5. Optional max-grade clamp by repeated forward/backward passes
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
from scipy.signal import butter, sosfiltfilt

from ..common.config import FilterType, LevelingScope, SmoothingParams
from ..common.models import RoadNetwork, RoadPath
from ..common.terrain import TerrainGrid

logger = logging.getLogger(__name__)


def box_filter(values: np.ndarray, window: int) -> np.ndarray:
    """
    Centered moving average using prefix sums.

    The window shrinks symmetrically near the ends so the output has no
    phase shift and the first/last values are preserved.
    """
    values = np.asarray(values, dtype=np.float64)
    n = len(values)
    if n == 0 or window <= 1:
        return values.copy()

    half = window // 2
    idx = np.arange(n)
    h = np.minimum(half, np.minimum(idx, n - 1 - idx))
    prefix = np.concatenate([[0.0], np.cumsum(values)])
    sums = prefix[idx + h + 1] - prefix[idx - h]
    return sums / (2 * h + 1)


def butterworth_filter(values: np.ndarray, window: int, order: int = 3) -> np.ndarray:
    """
    Zero-phase Butterworth low-pass along a profile.

    The filter is run forward/backward by ``sosfiltfilt``; that result is
    averaged with the same operation on the reversed profile, which makes the
    output identical whichever direction the path is traversed.

    Args:
        values: 1D elevation profile
        window: Effective window in samples (cutoff = 2 / window of Nyquist)
        order: Filter order (1-8)
    """
    values = np.asarray(values, dtype=np.float64)
    n = len(values)
    if n < 3:
        return values.copy()

    cutoff = float(np.clip(2.0 / max(window, 1), 0.001, 0.99))
    sos = butter(int(np.clip(order, 1, 8)), cutoff, btype='low', output='sos')
    padlen = min(3 * (2 * len(sos) + 1), n - 1)

    forward = sosfiltfilt(sos, values, padlen=padlen)
    backward = sosfiltfilt(sos, values[::-1], padlen=padlen)[::-1]
    return 0.5 * (forward + backward)


def fill_invalid(
    samples: np.ndarray,
    valid: np.ndarray,
    excluded: Optional[np.ndarray] = None,
) -> Optional[np.ndarray]:
    """
    Substitute unusable samples.

    Invalid samples take the value of the nearest valid sample (ties go to the
    lower index). Excluded samples are interpolated linearly between the valid
    samples around them.

    Returns:
        Filled copy, or None if no sample is valid
    """
    samples = np.asarray(samples, dtype=np.float64)
    valid = np.asarray(valid, dtype=bool)
    if excluded is None:
        excluded = np.zeros(len(samples), dtype=bool)
    usable = valid & ~excluded
    valid_idx = np.flatnonzero(usable)
    if len(valid_idx) == 0:
        return None

    filled = samples.copy()
    all_idx = np.arange(len(samples))

    bridged = excluded & ~usable
    if bridged.any():
        filled[bridged] = np.interp(all_idx[bridged], valid_idx, samples[valid_idx])

    missing = np.flatnonzero(~usable & ~excluded)
    if len(missing):
        pos = np.searchsorted(valid_idx, missing)
        left = valid_idx[np.clip(pos - 1, 0, len(valid_idx) - 1)]
        right = valid_idx[np.clip(pos, 0, len(valid_idx) - 1)]
        use_right = (np.abs(right - missing) < np.abs(missing - left)) | (left > missing)
        nearest = np.where(use_right, right, left)
        filled[missing] = samples[nearest]
    return filled


def enforce_max_grade(
    elevations: np.ndarray,
    spacing: np.ndarray,
    max_grade_degrees: float,
    max_iterations: int = 100,
) -> Tuple[np.ndarray, int]:
    """
    Clamp so that elevation[i] <= elevation[i±1] + tan(max_grade) * spacing.

    Forward and backward passes repeat until nothing changes.

    Args:
        elevations: Profile to clamp
        spacing: Distance between consecutive samples (len n - 1)
        max_grade_degrees: Steepest allowed grade
        max_iterations: Pass limit

    Returns:
        Tuple of (clamped profile, iterations used)
    """
    result = np.asarray(elevations, dtype=np.float64).copy()
    n = len(result)
    if n < 2:
        return result, 0

    max_rise = np.tan(np.radians(max_grade_degrees)) * np.asarray(spacing, dtype=np.float64)
    for iteration in range(1, max_iterations + 1):
        changed = False
        for i in range(1, n):
            limit = result[i - 1] + max_rise[i - 1]
            if result[i] > limit + 1e-12:
                result[i] = limit
                changed = True
        for i in range(n - 2, -1, -1):
            limit = result[i + 1] + max_rise[i]
            if result[i] > limit + 1e-12:
                result[i] = limit
                changed = True
        if not changed:
            return result, iteration
    logger.warning(f"Max-grade clamp did not settle after {max_iterations} iterations")
    return result, max_iterations


@dataclass
class SmoothingReport:
    """Summary of one smoothing run."""
    paths_smoothed: int = 0
    paths_skipped: int = 0
    samples_replaced: int = 0
    grade_clamped_paths: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "paths_smoothed": self.paths_smoothed,
            "paths_skipped": self.paths_skipped,
            "samples_replaced": self.samples_replaced,
            "grade_clamped_paths": self.grade_clamped_paths,
        }


class ElevationSmoother:
    """
    Computes smoothed target elevations for every path in a network.
    """

    def __init__(self, params: Optional[SmoothingParams] = None):
        """
        Initialize elevation smoother.

        Args:
            params: Smoothing parameters (defaults if None)
        """
        self.params = params or SmoothingParams()

    def sample_path(self, path: RoadPath, terrain: TerrainGrid) -> np.ndarray:
        """Raw terrain elevation under each cross-section center."""
        return terrain.sample(path.positions())

    def is_valid(self, samples: np.ndarray) -> np.ndarray:
        return np.isfinite(samples) & (samples >= self.params.invalid_floor)

    def filter_profile(self, profile: np.ndarray) -> np.ndarray:
        """Apply the configured longitudinal filter."""
        if self.params.filter_type == FilterType.BOX:
            return box_filter(profile, self.params.window_size)
        return butterworth_filter(profile, self.params.window_size, self.params.butterworth_order)

    def smooth_network(
        self,
        network: RoadNetwork,
        terrain: TerrainGrid,
    ) -> Tuple[RoadNetwork, SmoothingReport]:
        """
        Smooth every path.

        Returns:
            Tuple of (network with profiles set, report)
        """
        report = SmoothingReport()
        raw_profiles: Dict[int, np.ndarray] = {}
        filtered: Dict[int, np.ndarray] = {}

        for path_id, path in network.paths.items():
            if len(path) == 0:
                continue
            raw = self.sample_path(path, terrain)
            valid = self.is_valid(raw)
            filled = fill_invalid(raw, valid, path.excluded_mask())
            if filled is None:
                logger.warning(
                    f"Path {path_id} has no valid terrain samples "
                    f"({len(path)} cross-sections); leaving it unsmoothed"
                )
                report.paths_skipped += 1
                continue
            report.samples_replaced += int((~valid).sum())
            raw_profiles[path_id] = raw
            filtered[path_id] = self.filter_profile(filled)

        network_mean = None
        if filtered and self.params.leveling_strength > 0:
            network_mean = float(np.mean(np.concatenate(list(filtered.values()))))

        updated = []
        for path_id, profile in filtered.items():
            path = network.path(path_id)
            profile = self._level(profile, network_mean)
            if self.params.enforce_max_grade and len(profile) > 1:
                clamped, _ = enforce_max_grade(
                    profile,
                    path.segment_lengths(),
                    self.params.max_grade_degrees,
                    self.params.max_grade_iterations,
                )
                if not np.array_equal(clamped, profile):
                    report.grade_clamped_paths += 1
                profile = clamped
            updated.append(path.with_profile(raw_profiles[path_id], profile))
            report.paths_smoothed += 1
            logger.debug(
                f"Path {path_id}: {len(path)} sections, "
                f"elevation {profile.min():.2f}..{profile.max():.2f}"
            )

        logger.info(
            f"Smoothed {report.paths_smoothed} paths "
            f"({report.paths_skipped} skipped, {report.samples_replaced} samples replaced)"
        )
        return network.with_paths(updated), report

    def _level(self, profile: np.ndarray, network_mean: Optional[float]) -> np.ndarray:
        strength = self.params.leveling_strength
        if strength <= 0:
            return profile
        if self.params.leveling_scope == LevelingScope.PATH or network_mean is None:
            target = float(profile.mean())
        else:
            target = network_mean
        return profile * (1.0 - strength) + target * strength
