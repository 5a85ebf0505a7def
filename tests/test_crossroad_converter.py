"""
Tests for crossroad-to-T-junction conversion.

Tests cover:
- Primary selection cascade (priority, length, id)
- Splitting the secondary road into two T-junctions
- Idempotence
- Unsplittable crossings
- Remapping of other junctions onto the new segment
"""

import pytest

from roadgrade.common.config import JunctionParams
from roadgrade.common.models import (
    Junction,
    JunctionContribution,
    JunctionType,
    RoadNetwork,
    RoadSpec,
)
from roadgrade.processing.crossroad_converter import CrossroadConverter, select_primary
from roadgrade.processing.junction_detector import JunctionDetector

from conftest import sampled_network


# ============== Fixtures ==============

@pytest.fixture
def detected_crossing(crossing_network):
    """Crossing network with junctions detected."""
    network, _ = JunctionDetector(JunctionParams(detection_radius_m=10.0)).detect(crossing_network)
    return network


class TestSelectPrimary:
    """Tests for the primary-road cascade."""

    def test_priority_beats_length(self, crossing_network):
        """X (priority 10, 150 m) wins over Y (priority 5, 200 m)."""
        assert crossing_network.path(0).length == pytest.approx(150.0)
        assert crossing_network.path(1).length == pytest.approx(200.0)
        assert select_primary([0, 1], crossing_network) == 0
        assert select_primary([1, 0], crossing_network) == 0

    def test_length_breaks_priority_tie(self):
        """Equal priority: the longer road wins."""
        network = sampled_network([
            RoadSpec(points=[(0, 0), (100, 0)], priority=3),
            RoadSpec(points=[(50, -80), (50, 80)], priority=3),
        ])
        assert select_primary([0, 1], network) == 1

    def test_id_breaks_full_tie(self):
        """Equal priority and length: the lower id wins."""
        network = sampled_network([
            RoadSpec(points=[(0, 0), (100, 0)], priority=1),
            RoadSpec(points=[(50, -50), (50, 50)], priority=1),
        ])
        assert select_primary([1, 0], network) == 0


class TestConvert:
    """Tests for CrossroadConverter.convert."""

    def test_crossing_becomes_two_tees(self, detected_crossing):
        """Y is split; X stays continuous through two T-junctions."""
        network, report = CrossroadConverter().convert(detected_crossing)
        assert report.splits == 1
        assert report.crossings_converted == 1
        assert not [j for j in network.junctions if j.junction_type == JunctionType.MID_PATH_CROSSING]

        tees = [j for j in network.junctions if j.junction_type == JunctionType.T_JUNCTION]
        assert len(tees) == 2
        for tee in tees:
            assert [c.path_id for c in tee.continuous] == [0]
            assert len(tee.terminating) == 1
        assert sorted(t.terminating[0].path_id for t in tees) == [1, 2]

    def test_split_segments(self, detected_crossing):
        """A ends at the split cross-section and B starts there."""
        network, _ = CrossroadConverter().convert(detected_crossing)
        segment_a, segment_b = network.path(1), network.path(2)
        assert len(network.paths) == 3
        assert segment_a[-1].position == segment_b[0].position
        assert segment_a[-1].position == pytest.approx((75.0, 100.0))
        assert segment_a[-1].is_path_end and segment_b[0].is_path_start
        assert segment_a.length + segment_b.length == pytest.approx(200.0)
        assert segment_b.priority == 5
        assert all(cs.path_id == 2 for cs in segment_b)
        assert [cs.index for cs in segment_b] == list(range(len(segment_b)))

    def test_idempotent(self, detected_crossing):
        """Converting again performs no further splits."""
        once, _ = CrossroadConverter().convert(detected_crossing)
        twice, report = CrossroadConverter().convert(once)
        assert report.splits == 0
        assert twice.junctions == once.junctions
        assert set(twice.paths) == set(once.paths)

    def test_other_junctions_remapped(self, detected_crossing):
        """Y's far endpoint junction follows the new segment."""
        far_end = [
            j for j in detected_crossing.junctions
            if j.junction_type == JunctionType.ENDPOINT and j.contributions[0].path_id == 1
            and j.contributions[0].index > 100
        ][0]
        network, _ = CrossroadConverter().convert(detected_crossing)
        moved = network.junction(far_end.junction_id)
        contribution = moved.contributions[0]
        assert contribution.path_id == 2
        assert network.cross_section(2, contribution.index).is_path_end
        assert network.cross_section(2, contribution.index).position == pytest.approx((75.0, 200.0))

    def test_unsplittable_left_unresolved(self):
        """A secondary with too few cross-sections keeps the crossing."""
        network = sampled_network([
            RoadSpec(points=[(0, 0), (100, 0)], priority=5),
            RoadSpec(points=[(50, -0.5), (50, 0.5)], priority=1),
        ])
        crossing = Junction(
            junction_id=0,
            centroid=(50.0, 0.0),
            contributions=(JunctionContribution(0, 50, True), JunctionContribution(1, 1, True)),
            junction_type=JunctionType.MID_PATH_CROSSING,
        )
        network = network.with_junctions([crossing])
        converted, report = CrossroadConverter().convert(network)
        assert report.splits == 0 and report.splits_skipped == 1
        assert converted.junctions[0].junction_type == JunctionType.MID_PATH_CROSSING
        assert set(converted.paths) == {0, 1}

    def test_no_crossings_noop(self, t_network):
        """Networks without crossings pass through unchanged."""
        network, _ = JunctionDetector().detect(t_network)
        converted, report = CrossroadConverter().convert(network)
        assert converted is network
        assert report.crossings_seen == 0

    def test_three_way_crossing(self):
        """Every secondary is split against the single primary."""
        network = sampled_network([
            RoadSpec(points=[(0, 100), (200, 100)], priority=9),
            RoadSpec(points=[(100, 0), (100, 200)], priority=3),
            RoadSpec(points=[(0, 0), (200, 200)], priority=1),
        ])
        p = network.path
        crossing = Junction(
            junction_id=0,
            centroid=(100.0, 100.0),
            contributions=(
                JunctionContribution(0, 100, True),
                JunctionContribution(1, 100, True),
                JunctionContribution(2, len(p(2)) // 2, True),
            ),
            junction_type=JunctionType.MID_PATH_CROSSING,
        )
        converted, report = CrossroadConverter().convert(network.with_junctions([crossing]))
        assert report.splits == 2
        tees = [j for j in converted.junctions if j.junction_type == JunctionType.T_JUNCTION]
        assert len(tees) == 4
        assert all([c.path_id for c in t.continuous] == [0] for t in tees)
        assert isinstance(converted, RoadNetwork)
