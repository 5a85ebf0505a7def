"""
Tests for road core rasterization and terrain blending.

Tests cover:
- Blend curves exact at both ends
- Core flattening and shoulder falloff
- Cells beyond the blend range left bit-identical
- Protected corridors under excluded surfaces
- Priority ownership where cores overlap
- Banked surfaces
- Empty networks
"""

import numpy as np
import pytest

from roadgrade.common import curves
from roadgrade.common.config import BlendFunction, BlendParams
from roadgrade.common.models import RoadNetwork, RoadSpec
from roadgrade.common.terrain import TerrainGrid
from roadgrade.geometry.rasterize import excluded_runs, rasterize_cores, rasterize_protection
from roadgrade.geometry.terrain_blender import TerrainBlender, blend_terrain, distance_to_core

from conftest import sampled_network, with_profiles


# ============== Fixtures ==============

@pytest.fixture
def ramp_terrain():
    """100 x 100 grid rising 0.5 per row, 1 m cells."""
    data = np.tile((np.arange(100) * 0.5)[:, None], (1, 100))
    return TerrainGrid(data=data, cell_size=1.0)


@pytest.fixture
def straight_road():
    """8 m wide road along y=50 at elevation 10, 2 m shoulder."""
    network = sampled_network([
        RoadSpec(points=[(0, 50), (99, 50)], width=8, blend_range=2.0),
    ])
    return with_profiles(network, {0: 10.0})


class TestCurves:
    """Tests for the blend curves."""

    @pytest.mark.parametrize("function", list(BlendFunction))
    def test_exact_at_ends(self, function):
        """Every curve is exactly 0 at t=0 and exactly 1 at t=1."""
        curve = curves.get_curve(function)
        assert curve(np.array([0.0]))[0] == 0.0
        assert curve(np.array([1.0]))[0] == 1.0

    @pytest.mark.parametrize("function", list(BlendFunction))
    def test_clipped(self, function):
        """Inputs outside [0, 1] are clipped."""
        curve = curves.get_curve(function)
        np.testing.assert_array_equal(curve(np.array([-0.5, 1.5])), [0.0, 1.0])

    def test_cosine_midpoint(self):
        assert curves.cosine(0.5) == pytest.approx(0.5)


class TestDistanceToCore:
    """Tests for the Euclidean distance transform."""

    def test_no_core_is_infinite(self):
        """Without core cells every distance is +inf."""
        assert np.all(np.isinf(distance_to_core(np.zeros((5, 5), dtype=bool), 1.0)))

    def test_exact_distances(self):
        """Distances are exact Euclidean, scaled by cell size."""
        mask = np.zeros((7, 7), dtype=bool)
        mask[3, 3] = True
        distance = distance_to_core(mask, 2.0)
        assert distance[3, 3] == 0.0
        assert distance[3, 5] == pytest.approx(4.0)
        assert distance[6, 6] == pytest.approx(2.0 * np.sqrt(18))


class TestRasterize:
    """Tests for core and protection rasterization."""

    def test_core_boundary_inclusive(self, ramp_terrain, straight_road):
        """Cells on the road edge count as core."""
        core = rasterize_cores(straight_road, ramp_terrain)
        rows = np.flatnonzero(core.mask[:, 50])
        assert rows.min() == 46 and rows.max() == 54
        np.testing.assert_array_equal(core.elevation[46:55, 50], 10.0)

    def test_excluded_runs(self):
        """Consecutive excluded cross-sections form one run."""
        network = sampled_network(
            [RoadSpec(points=[(0, 0), (20, 0)])],
            excluded=lambda x, y: 5 <= x <= 8 or x >= 18,
        )
        assert list(excluded_runs(network.path(0))) == [(5, 9), (18, 21)]

    def test_protection_covers_run(self, ramp_terrain):
        """The corridor spans the whole excluded run plus buffer."""
        network = sampled_network(
            [RoadSpec(points=[(0, 50), (99, 50)], width=8)],
            excluded=lambda x, y: 40 <= x <= 60,
        )
        protected = rasterize_protection(network, ramp_terrain, buffer_m=1.0)
        assert protected[50, 50] and protected[54, 50]
        assert not protected[56, 50]
        assert not protected[50, 20]


class TestTerrainBlender:
    """Tests for TerrainBlender.blend."""

    def test_core_flattened(self, ramp_terrain, straight_road):
        """Every core cell takes the road elevation."""
        result, report = TerrainBlender().blend(straight_road, ramp_terrain)
        np.testing.assert_array_equal(result.data[46:55, :], 10.0)
        assert report.core_cells == 9 * 100

    def test_outside_blend_range_untouched(self, ramp_terrain, straight_road):
        """Cells 2 m or more from the core keep the original value exactly."""
        result, _ = TerrainBlender().blend(straight_road, ramp_terrain)
        np.testing.assert_array_equal(result.data[56:, :], ramp_terrain.data[56:, :])
        np.testing.assert_array_equal(result.data[:45, :], ramp_terrain.data[:45, :])

    def test_shoulder_midpoint(self, ramp_terrain, straight_road):
        """One meter out of a two meter shoulder the cosine blend is halfway."""
        result, _ = TerrainBlender().blend(straight_road, ramp_terrain)
        expected = 0.5 * 10.0 + 0.5 * ramp_terrain.data[55, 50]
        assert result.data[55, 50] == pytest.approx(expected)
        expected_below = 0.5 * 10.0 + 0.5 * ramp_terrain.data[45, 50]
        assert result.data[45, 50] == pytest.approx(expected_below)

    def test_linear_curve(self, ramp_terrain, straight_road):
        """The blend function is configurable."""
        params = BlendParams(blend_function=BlendFunction.LINEAR)
        result, _ = TerrainBlender(params).blend(straight_road, ramp_terrain)
        assert result.data[55, 50] == pytest.approx(0.5 * 10.0 + 0.5 * 27.5)

    def test_input_not_mutated(self, ramp_terrain, straight_road):
        """Blending works on a copy."""
        before = ramp_terrain.data.copy()
        TerrainBlender().blend(straight_road, ramp_terrain)
        np.testing.assert_array_equal(ramp_terrain.data, before)

    def test_nan_terrain_takes_road_edge(self, ramp_terrain, straight_road):
        """A missing terrain value inside the shoulder becomes the edge elevation."""
        data = ramp_terrain.data.copy()
        data[55, :] = np.nan
        result, _ = TerrainBlender().blend(straight_road, ramp_terrain.with_data(data))
        np.testing.assert_array_equal(result.data[55, :], 10.0)

    def test_empty_network_identity(self, ramp_terrain):
        """No roads, no change."""
        result, report = blend_terrain(RoadNetwork(), ramp_terrain)
        np.testing.assert_array_equal(result.data, ramp_terrain.data)
        assert report.core_cells == 0 and report.shoulder_cells == 0

    def test_unsmoothed_network_identity(self, ramp_terrain):
        """Roads without elevations leave the terrain alone."""
        network = sampled_network([RoadSpec(points=[(0, 50), (99, 50)], width=8)])
        result, _ = blend_terrain(network, ramp_terrain)
        np.testing.assert_array_equal(result.data, ramp_terrain.data)

    def test_protected_cells_untouched(self, ramp_terrain):
        """Terrain under a bridge keeps its original height."""
        network = sampled_network(
            [RoadSpec(points=[(0, 50), (99, 50)], width=8, blend_range=3.0)],
            excluded=lambda x, y: 40 <= x <= 60,
        )
        network = with_profiles(network, {0: 10.0})
        result, report = TerrainBlender().blend(network, ramp_terrain)
        np.testing.assert_array_equal(result.data[46:55, 41:60], ramp_terrain.data[46:55, 41:60])
        assert result.data[50, 20] == 10.0
        assert report.protected_cells > 0

    def test_priority_owns_overlap(self, ramp_terrain):
        """Where two cores overlap the higher-priority road sets the height."""
        network = sampled_network([
            RoadSpec(points=[(0, 50), (99, 50)], width=8, priority=1),
            RoadSpec(points=[(50, 0), (50, 99)], width=8, priority=5),
        ])
        network = with_profiles(network, {0: 10.0, 1: 20.0})
        result, _ = TerrainBlender().blend(network, ramp_terrain)
        assert result.data[50, 50] == 20.0
        assert result.data[50, 20] == 10.0
        assert result.data[20, 50] == 20.0

    def test_banked_core(self, ramp_terrain):
        """A positive bank raises the left edge (north side of an eastbound road)."""
        network = sampled_network([RoadSpec(points=[(0, 50), (99, 50)], width=8)])
        network = with_profiles(network, {0: 10.0})
        path = network.path(0)
        path = path.with_banking(np.zeros(len(path)), np.full(len(path), 0.1))
        network = network.with_paths([path])
        result, _ = TerrainBlender().blend(network, ramp_terrain)
        assert result.data[53, 50] > result.data[47, 50]
        assert result.data[53, 50] == pytest.approx(10.0 + 3.0 * np.sin(0.1))

    def test_post_smoothing_keeps_core(self, ramp_terrain, straight_road):
        """Optional Gaussian smoothing only touches shoulder cells."""
        params = BlendParams(post_smoothing_sigma=1.0)
        result, _ = TerrainBlender(params).blend(straight_road, ramp_terrain)
        np.testing.assert_array_equal(result.data[46:55, :], 10.0)
        np.testing.assert_array_equal(result.data[56:, :], ramp_terrain.data[56:, :])
