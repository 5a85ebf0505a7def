"""
Shared fixtures for roadgrade tests.
"""

import numpy as np
import pytest

from roadgrade.common.config import SamplingParams
from roadgrade.common.models import RoadNetwork, RoadSpec
from roadgrade.common.terrain import TerrainGrid
from roadgrade.geometry.sampler import build_network


def sampled_network(roads, interval_m=1.0, excluded=None) -> RoadNetwork:
    """Sample RoadSpecs at a fixed interval."""
    return build_network(roads, SamplingParams(interval_m=interval_m), excluded=excluded)


def with_profiles(network: RoadNetwork, profiles) -> RoadNetwork:
    """
    Set smoothed elevations directly.

    Args:
        profiles: Dict path_id -> scalar, array, or callable(path) -> array
    """
    updated = []
    for path_id, profile in profiles.items():
        path = network.path(path_id)
        if callable(profile):
            values = np.asarray(profile(path), dtype=float)
        else:
            values = np.broadcast_to(np.asarray(profile, dtype=float), (len(path),))
        updated.append(path.with_profile(values, values))
    return network.with_paths(updated)


# ============== Fixtures ==============

@pytest.fixture
def flat_terrain():
    """200 x 200 m flat terrain at 10 m, 1 m cells."""
    return TerrainGrid(data=np.full((200, 200), 10.0), cell_size=1.0)


@pytest.fixture
def sloped_terrain():
    """200 x 200 m terrain rising 0.05 per meter in x with mild noise."""
    rng = np.random.default_rng(42)
    xs = np.arange(200) * 1.0
    data = np.tile(xs * 0.05, (200, 1)) + rng.normal(0.0, 0.3, (200, 200)) + 100.0
    return TerrainGrid(data=data, cell_size=1.0)


@pytest.fixture
def t_network():
    """
    Horizontal road A (y=0) and road B ending 5 m above A's midpoint.

    A: (0, 0) -> (100, 0); B: (50, 5) -> (50, 100)
    """
    return sampled_network([
        RoadSpec(points=[(0, 0), (100, 0)], width=8, priority=2, name="A"),
        RoadSpec(points=[(50, 5), (50, 100)], width=8, priority=1, name="B"),
    ])


@pytest.fixture
def crossing_network():
    """
    Two 8 m wide roads crossing at 90 degrees at (75, 100).

    X: priority 10, 150 m long; Y: priority 5, 200 m long.
    """
    return sampled_network([
        RoadSpec(points=[(0, 100), (150, 100)], width=8, priority=10, name="X"),
        RoadSpec(points=[(75, 0), (75, 200)], width=8, priority=5, name="Y"),
    ])


@pytest.fixture
def shallow_crossing_network():
    """
    Two 8 m wide roads crossing at 20 degrees at (100, 100).

    X: priority 10 along y=100; Y: priority 5, 160 m long through the crossing.
    """
    angle = np.radians(20.0)
    direction = np.array([np.cos(angle), np.sin(angle)])
    center = np.array([100.0, 100.0])
    return sampled_network([
        RoadSpec(points=[(10, 100), (190, 100)], width=8, priority=10, name="X"),
        RoadSpec(points=[center - 80 * direction, center + 80 * direction], width=8, priority=5, name="Y"),
    ])
