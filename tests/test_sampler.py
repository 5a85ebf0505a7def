"""
Tests for cross-section sampling.

Tests cover:
- Polyline resampling (spacing, kept endpoints)
- Tangent / normal frames
- Path building (flags, scale, width, excluded predicate)
- Degenerate roads
"""

import logging

import numpy as np
import pytest

from roadgrade.common.config import SamplingParams
from roadgrade.common.models import RoadSpec
from roadgrade.geometry.sampler import (
    build_network,
    build_path,
    compute_frames,
    resample_polyline,
)


# ============== Fixtures ==============

@pytest.fixture
def l_shape():
    """L-shaped polyline: 30 m east then 20 m north."""
    return np.array([[0.0, 0.0], [30.0, 0.0], [30.0, 20.0]])


class TestResample:
    """Tests for resample_polyline."""

    def test_keeps_both_ends(self, l_shape):
        """First and last vertices survive resampling."""
        out = resample_polyline(l_shape, 3.0)
        np.testing.assert_allclose(out[0], l_shape[0])
        np.testing.assert_allclose(out[-1], l_shape[-1])

    def test_spacing_not_above_interval(self, l_shape):
        """Arc-length spacing never exceeds the interval."""
        out = resample_polyline(l_shape, 3.0)
        spacing = np.linalg.norm(np.diff(out, axis=0), axis=1)
        assert np.all(spacing <= 3.0 + 1e-9)

    def test_exact_integer_stations(self):
        """A 10 m line at 1 m gives 11 samples on integer stations."""
        out = resample_polyline(np.array([[0.0, 0.0], [10.0, 0.0]]), 1.0)
        assert len(out) == 11
        np.testing.assert_allclose(out[:, 0], np.arange(11.0))

    def test_duplicate_points_dropped(self):
        """Repeated vertices do not produce zero-length steps."""
        out = resample_polyline(np.array([[0.0, 0.0], [0.0, 0.0], [5.0, 0.0]]), 1.0)
        assert len(out) == 6


class TestFrames:
    """Tests for tangents and normals."""

    def test_normal_points_left(self):
        """Heading east, the normal points north."""
        pos = np.column_stack([np.arange(5.0), np.zeros(5)])
        tangents, normals = compute_frames(pos)
        np.testing.assert_allclose(tangents, np.tile([1.0, 0.0], (5, 1)))
        np.testing.assert_allclose(normals, np.tile([0.0, 1.0], (5, 1)), atol=1e-12)

    def test_unit_length(self, l_shape):
        """Frames are unit vectors even at the corner."""
        tangents, normals = compute_frames(resample_polyline(l_shape, 2.0))
        np.testing.assert_allclose(np.linalg.norm(tangents, axis=1), 1.0)
        np.testing.assert_allclose(np.linalg.norm(normals, axis=1), 1.0)


class TestBuildPath:
    """Tests for build_path / build_network."""

    def test_flags_and_indices(self, l_shape):
        """Indices increase from 0 and only the ends are flagged."""
        path = build_path(RoadSpec(points=l_shape, width=6), 3, SamplingParams(interval_m=2.0))
        assert [cs.index for cs in path] == list(range(len(path)))
        assert path[0].is_path_start and not path[0].is_path_end
        assert path[-1].is_path_end and not path[-1].is_path_start
        assert not any(cs.is_endpoint for cs in path.cross_sections[1:-1])
        assert all(cs.path_id == 3 for cs in path)
        assert all(cs.half_width == 3.0 for cs in path)

    def test_scale_applied(self):
        """Point units are converted to meters with the scale."""
        path = build_path(RoadSpec(points=[(0, 0), (10, 0)], width=4, scale=2.0), 0,
                          SamplingParams(interval_m=1.0))
        assert path.length == pytest.approx(20.0)

    def test_defaults_from_params(self):
        """Missing width and blend range come from the sampling params."""
        params = SamplingParams(interval_m=1.0, default_width_m=10.0, default_blend_range_m=7.0)
        path = build_path(RoadSpec(points=[(0, 0), (5, 0)]), 0, params)
        assert path[0].half_width == 5.0
        assert path.blend_range == 7.0

    def test_excluded_predicate(self):
        """Cross-sections where the predicate holds are excluded."""
        network = build_network(
            [RoadSpec(points=[(0, 0), (20, 0)], width=4)],
            SamplingParams(interval_m=1.0),
            excluded=lambda x, y: 5 <= x <= 10,
        )
        flags = network.path(0).excluded_mask()
        assert flags.sum() == 6
        assert flags[5] and flags[10] and not flags[4] and not flags[11]

    def test_resample_false_keeps_points(self):
        """Pre-built waypoints are used as given."""
        path = build_path(RoadSpec(points=[(0, 0), (3, 0), (10, 0)], width=4), 0, resample=False)
        assert len(path) == 3
        assert path[1].position == (3.0, 0.0)

    def test_degenerate_road_skipped(self, caplog):
        """A road with fewer than 2 distinct points is skipped with a warning."""
        with caplog.at_level(logging.WARNING):
            network = build_network([
                RoadSpec(points=[(1, 1), (1, 1)], name="dot"),
                RoadSpec(points=[(0, 0), (5, 0)]),
            ])
        assert list(network.paths) == [1]
        assert "dot" in caplog.text
