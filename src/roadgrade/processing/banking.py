"""
Curvature and bank angle (superelevation) per cross-section.

Curvature is signed: positive for left turns. On a left turn the inner (left)
edge is lowered, so the bank angle has the opposite sign of the curvature.
"""

import logging
from typing import Optional

import numpy as np

from ..common.config import BankingParams
from ..common.models import RoadNetwork, RoadPath
from .elevation_smoother import box_filter

logger = logging.getLogger(__name__)


def compute_curvature(positions: np.ndarray) -> np.ndarray:
    """
    Signed curvature (1/m) from heading change over arc length.

    Interior samples use their two neighbours; the ends copy the nearest
    interior value.
    """
    n = len(positions)
    curvature = np.zeros(n)
    if n < 3:
        return curvature

    d_prev = positions[1:-1] - positions[:-2]
    d_next = positions[2:] - positions[1:-1]
    heading_prev = np.arctan2(d_prev[:, 1], d_prev[:, 0])
    heading_next = np.arctan2(d_next[:, 1], d_next[:, 0])
    turn = np.angle(np.exp(1j * (heading_next - heading_prev)))  # wrap to (-pi, pi]

    run = 0.5 * (np.linalg.norm(d_prev, axis=1) + np.linalg.norm(d_next, axis=1))
    curvature[1:-1] = np.where(run > 1e-9, turn / np.maximum(run, 1e-9), 0.0)
    curvature[0] = curvature[1]
    curvature[-1] = curvature[-2]
    return curvature


def compute_bank_angles(
    curvature: np.ndarray,
    params: BankingParams,
    spacing_m: float,
) -> np.ndarray:
    """Bank angle in radians, ramped over the transition length."""
    max_bank = np.radians(params.max_bank_degrees) * params.bank_strength
    factor = np.minimum(np.abs(curvature) * params.curvature_to_bank_scale, 1.0)
    bank = -np.sign(curvature) * factor * max_bank

    if spacing_m > 0 and len(bank) > 2:
        window = max(int(round(params.transition_length_m / spacing_m)), 1)
        bank = box_filter(bank, window)
    return bank


def apply_banking(path: RoadPath, params: BankingParams) -> RoadPath:
    """Return the path with curvature and bank angle filled in."""
    positions = path.positions()
    curvature = compute_curvature(positions)
    if not params.enabled:
        return path.with_banking(curvature, np.zeros(len(path)))

    seg = path.segment_lengths()
    spacing = float(seg.mean()) if len(seg) else 0.0
    bank = compute_bank_angles(curvature, params, spacing)
    return path.with_banking(curvature, bank)


def apply_banking_to_network(network: RoadNetwork, params: Optional[BankingParams] = None) -> RoadNetwork:
    params = params or BankingParams()
    updated = [apply_banking(path, params) for path in network.paths.values()]
    if params.enabled:
        max_deg = max(
            (abs(np.degrees(cs.bank_angle)) for p in updated for cs in p),
            default=0.0,
        )
        logger.info(f"Banking applied to {len(updated)} paths (max bank {max_deg:.2f} deg)")
    return network.with_paths(updated)
