"""Tests for pandemic_sim.spatial — topologies and sweep-and-prune detection.

Tests:
  1. Shortest signed displacement across the toroidal seam
  2. Position wrapping stays in [0, size)
  3. Sweep results match exhaustive comparison (random, clustered, seam)
  4. Pairs are canonical (i < j) and unique
  5. Touching-but-not-overlapping discs are not reported
  6. Wall contacts reported once per touched wall per agent
"""

import numpy as np
import pytest

from pandemic_sim.spatial import (
    CollisionEvents,
    ToroidalTopology,
    WalledTopology,
    _axis_candidates,
    brute_force_pairs,
    find_collisions,
    make_topology,
)
from pandemic_sim.types import Wall


# ═══════════════════════════════════════════════════════════════════════
# TOPOLOGY TESTS
# ═══════════════════════════════════════════════════════════════════════

class TestMakeTopology:
    def test_known_names(self):
        assert isinstance(make_topology('toroidal', 10, 10), ToroidalTopology)
        assert isinstance(make_topology('walled', 10, 10), WalledTopology)

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="klein"):
            make_topology('klein', 10, 10)


class TestToroidalDisplacement:
    def test_short_displacement_unchanged(self):
        topo = ToroidalTopology(10.0, 20.0)
        dx, dy = topo.displacement(np.array([3.0]), np.array([-4.0]))
        np.testing.assert_allclose(dx, [3.0])
        np.testing.assert_allclose(dy, [-4.0])

    def test_across_seam(self):
        topo = ToroidalTopology(10.0, 10.0)
        # from x=9.8 to x=0.1 is +0.3 across the seam
        dx, _ = topo.displacement(np.array([0.1 - 9.8]), np.array([0.0]))
        np.testing.assert_allclose(dx, [0.3])
        dx, _ = topo.displacement(np.array([9.8 - 0.1]), np.array([0.0]))
        np.testing.assert_allclose(dx, [-0.3])

    def test_walled_displacement_is_raw(self):
        topo = WalledTopology(10.0, 10.0)
        dx, dy = topo.displacement(np.array([9.7]), np.array([-9.7]))
        np.testing.assert_allclose(dx, [9.7])
        np.testing.assert_allclose(dy, [-9.7])


class TestWrapPositions:
    def test_wraps_into_range(self):
        topo = ToroidalTopology(10.0, 5.0)
        x, y = topo.wrap_positions(np.array([-0.5, 10.5, 25.0]),
                                   np.array([5.0, -12.0, 2.0]))
        np.testing.assert_allclose(x, [9.5, 0.5, 5.0])
        np.testing.assert_allclose(y, [0.0, 3.0, 2.0])

    def test_tiny_negative_never_equals_size(self):
        topo = ToroidalTopology(10.0, 10.0)
        x, _ = topo.wrap_positions(np.array([-1e-18]), np.array([1.0]))
        assert 0.0 <= x[0] < 10.0

    def test_walled_leaves_positions(self):
        topo = WalledTopology(10.0, 10.0)
        x, y = topo.wrap_positions(np.array([-0.2]), np.array([10.3]))
        np.testing.assert_allclose(x, [-0.2])
        np.testing.assert_allclose(y, [10.3])


# ═══════════════════════════════════════════════════════════════════════
# SWEEP-AND-PRUNE TESTS
# ═══════════════════════════════════════════════════════════════════════

def random_positions(n, size, rng):
    return rng.uniform(0, size, n), rng.uniform(0, size, n)


class TestFindCollisions:
    @pytest.mark.parametrize("topology_cls", [ToroidalTopology, WalledTopology])
    @pytest.mark.parametrize("seed", [0, 1, 2, 3])
    def test_matches_brute_force(self, topology_cls, seed):
        rng = np.random.default_rng(seed)
        topo = topology_cls(30.0, 30.0)
        x, y = random_positions(400, 30.0, rng)
        events = find_collisions(x, y, topo)
        assert events.pair_set() == brute_force_pairs(x, y, topo)
        assert events.n_pairs > 0

    def test_matches_brute_force_clustered(self):
        """Heavy clustering: everything near one point."""
        rng = np.random.default_rng(5)
        topo = ToroidalTopology(50.0, 50.0)
        x = 25.0 + rng.normal(0, 1.0, 150)
        y = 25.0 + rng.normal(0, 1.0, 150)
        events = find_collisions(x, y, topo)
        assert events.pair_set() == brute_force_pairs(x, y, topo)

    def test_matches_brute_force_near_seams(self):
        """Agents crowded around the corner where all four seams meet."""
        rng = np.random.default_rng(11)
        topo = ToroidalTopology(20.0, 20.0)
        x = np.mod(rng.normal(0, 1.5, 200), 20.0)
        y = np.mod(rng.normal(0, 1.5, 200), 20.0)
        events = find_collisions(x, y, topo)
        assert events.pair_set() == brute_force_pairs(x, y, topo)

    def test_pair_across_x_seam(self):
        topo = ToroidalTopology(10.0, 10.0)
        x = np.array([9.8, 0.1])
        y = np.array([5.0, 5.0])
        assert find_collisions(x, y, topo).pair_set() == {(0, 1)}

    def test_no_pair_across_wall(self):
        topo = WalledTopology(10.0, 10.0)
        x = np.array([9.8, 0.1])
        y = np.array([5.0, 5.0])
        assert find_collisions(x, y, topo).n_pairs == 0

    def test_pairs_canonical_and_unique(self):
        rng = np.random.default_rng(3)
        x, y = random_positions(300, 15.0, rng)
        events = find_collisions(x, y, ToroidalTopology(15.0, 15.0))
        assert np.all(events.pairs[:, 0] < events.pairs[:, 1])
        assert len(np.unique(events.pairs, axis=0)) == events.n_pairs

    def test_touching_is_not_overlapping(self):
        topo = WalledTopology(10.0, 10.0)
        x = np.array([3.0, 4.0])   # centres exactly 2R apart
        y = np.array([5.0, 5.0])
        assert find_collisions(x, y, topo).n_pairs == 0

    def test_diagonal_overlap(self):
        topo = WalledTopology(10.0, 10.0)
        x = np.array([5.0, 5.6])
        y = np.array([5.0, 5.6])   # distance ≈ 0.85 < 1
        assert find_collisions(x, y, topo).pair_set() == {(0, 1)}

    @pytest.mark.parametrize("n", [0, 1])
    def test_too_few_agents(self, n):
        topo = ToroidalTopology(10.0, 10.0)
        events = find_collisions(np.full(n, 5.0), np.full(n, 5.0), topo)
        assert isinstance(events, CollisionEvents)
        assert events.n_pairs == 0
        assert events.pairs.shape == (0, 2)

    def test_two_agents_same_point_toroidal(self):
        """Wrapped window never pairs an agent with itself."""
        topo = ToroidalTopology(10.0, 10.0)
        events = find_collisions(np.array([5.0, 5.0]), np.array([5.0, 5.0]), topo)
        assert events.pair_set() == {(0, 1)}


class TestAxisCandidates:
    def test_window_stops_at_gap(self):
        coord = np.array([0.0, 0.5, 1.0, 5.0])
        order = np.argsort(coord)
        cand = _axis_candidates(coord, order, 10.0, wraps=False)
        found = {tuple(sorted(map(int, row))) for row in cand}
        # 0-1 and 1-2 within 1.0; 0-2 gap exactly 1.0 still scanned
        assert found == {(0, 1), (0, 2), (1, 2)}

    def test_wrapping_window(self):
        coord = np.array([0.2, 9.9])
        order = np.argsort(coord)
        cand = _axis_candidates(coord, order, 10.0, wraps=True)
        found = {tuple(sorted(map(int, row))) for row in cand}
        assert found == {(0, 1)}


# ═══════════════════════════════════════════════════════════════════════
# WALL CONTACT TESTS
# ═══════════════════════════════════════════════════════════════════════

class TestWallContacts:
    def _walls(self, x, y, size=10.0):
        events = find_collisions(np.array(x), np.array(y), WalledTopology(size, size))
        return {(int(a), int(w)) for a, w in events.walls}

    def test_each_wall(self):
        walls = self._walls([0.3, 9.8, 5.0, 5.0, 5.0], [5.0, 5.0, 0.1, 9.6, 5.0])
        assert walls == {
            (0, Wall.LEFT), (1, Wall.RIGHT), (2, Wall.BOTTOM), (3, Wall.TOP),
        }

    def test_corner_touches_two_walls(self):
        walls = self._walls([0.2], [9.9])
        assert walls == {(0, Wall.LEFT), (0, Wall.TOP)}

    def test_outside_space_still_reported(self):
        walls = self._walls([-0.3], [5.0])
        assert walls == {(0, Wall.LEFT)}

    def test_exactly_radius_from_wall_not_touching(self):
        assert self._walls([0.5], [5.0]) == set()

    def test_toroidal_reports_no_walls(self):
        events = find_collisions(np.array([0.1]), np.array([0.1]),
                                 ToroidalTopology(10.0, 10.0))
        assert events.n_walls == 0
