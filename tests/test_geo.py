"""Tests for the state adjacency graph."""

from __future__ import annotations

from broker_outreach.geo import STATE_NEIGHBORS, is_neighbor, neighbors, target_regions


class TestNeighbors:
    def test_new_jersey(self):
        assert neighbors("NJ") == {"NY", "PA", "DE"}

    def test_lowercase_and_whitespace(self):
        assert neighbors(" nj ") == {"NY", "PA", "DE"}

    def test_unknown_region_has_none(self):
        assert neighbors("ZZ") == frozenset()
        assert neighbors(None) == frozenset()

    def test_is_neighbor(self):
        assert is_neighbor("NJ", "PA")
        assert not is_neighbor("NJ", "CA")

    def test_adjacency_is_symmetric(self):
        one_way = [(a, b) for a, ns in STATE_NEIGHBORS.items() for b in ns if a not in neighbors(b)]
        assert one_way == []

    def test_new_mexico_borders_utah(self):
        assert "UT" in neighbors("NM")
        assert "UT" in target_regions("NM")

    def test_graph_is_read_only(self):
        assert isinstance(STATE_NEIGHBORS["NJ"], frozenset)


class TestTargetRegions:
    def test_includes_home(self):
        assert target_regions("NJ") == {"NJ", "NY", "PA", "DE"}

    def test_unknown_region_is_just_itself(self):
        assert target_regions("ZZ") == {"ZZ"}

    def test_empty_home(self):
        assert target_regions("") == frozenset()
