"""Tests for pandemic_sim.collision — elastic response and transmission.

Tests:
  1. Head-on and oblique pair impulses
  2. Separating pairs untouched
  3. Post-resolution closing speed <= 0 for isolated pairs
  4. Kinetic energy and momentum conserved
  5. Wall reflection only for velocities pointing into the wall
  6. Transmission lookup keyed by recipient and source category
  7. Snapshot semantics: same-pass infections do not spread further
  8. Re-exposure resets the infection clock unless disabled
"""

import dataclasses

import numpy as np
import pytest

from pandemic_sim.collision import (
    ContactSnapshot,
    closing_speed,
    resolve_collisions,
    resolve_pair,
    resolve_pairs,
    resolve_walls,
    transmit,
)
from pandemic_sim.config import ParameterSet
from pandemic_sim.movement import kinetic_energy
from pandemic_sim.spatial import (
    CollisionEvents,
    ToroidalTopology,
    WalledTopology,
    find_collisions,
)
from pandemic_sim.types import Wall, allocate_agents, is_infected


# ═══════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════

NO_TRANSMISSION = ParameterSet(
    infected_to_general=0.0, infected_to_healed=0.0, infected_to_vaccinated=0.0,
    vaccinated_to_general=0.0, vaccinated_to_healed=0.0,
    vaccinated_to_vaccinated=0.0,
)

ALWAYS = dataclasses.replace(
    NO_TRANSMISSION,
    infected_to_general=1.0, infected_to_healed=1.0, infected_to_vaccinated=1.0,
    vaccinated_to_general=1.0, vaccinated_to_healed=1.0,
    vaccinated_to_vaccinated=1.0,
)


def make_pair(p1, p2, v1, v2):
    agents = allocate_agents(2)
    agents['x'] = [p1[0], p2[0]]
    agents['y'] = [p1[1], p2[1]]
    agents['vx'] = [v1[0], v2[0]]
    agents['vy'] = [v1[1], v2[1]]
    return agents


def momentum(agents):
    return np.array([agents['vx'].sum(), agents['vy'].sum()])


@pytest.fixture
def topo():
    return WalledTopology(10.0, 10.0)


# ═══════════════════════════════════════════════════════════════════════
# PAIR PHYSICS
# ═══════════════════════════════════════════════════════════════════════

class TestResolvePair:
    def test_head_on_swaps_velocities(self, topo):
        agents = make_pair((4.6, 5.0), (5.4, 5.0), (1.0, 0.0), (-1.0, 0.0))
        assert resolve_pair(agents, 0, 1, topo)
        np.testing.assert_allclose(agents['vx'], [-1.0, 1.0])
        np.testing.assert_allclose(agents['vy'], [0.0, 0.0])

    def test_separating_unchanged(self, topo):
        agents = make_pair((4.6, 5.0), (5.4, 5.0), (-1.0, 0.0), (1.0, 0.0))
        assert not resolve_pair(agents, 0, 1, topo)
        np.testing.assert_allclose(agents['vx'], [-1.0, 1.0])

    def test_tangential_component_preserved(self, topo):
        agents = make_pair((4.6, 5.0), (5.4, 5.0), (1.0, 2.0), (0.0, -3.0))
        resolve_pair(agents, 0, 1, topo)
        np.testing.assert_allclose(agents['vy'], [2.0, -3.0])
        np.testing.assert_allclose(agents['vx'], [0.0, 1.0])

    def test_coincident_centres_ignored(self, topo):
        agents = make_pair((5.0, 5.0), (5.0, 5.0), (1.0, 0.0), (-1.0, 0.0))
        assert not resolve_pair(agents, 0, 1, topo)

    @pytest.mark.parametrize("seed", range(20))
    def test_oblique_conserves_energy_and_momentum(self, topo, seed):
        rng = np.random.default_rng(seed)
        angle = rng.uniform(0, 2 * np.pi)
        d = rng.uniform(0.1, 0.99)
        p2 = (5.0 + d * np.cos(angle), 5.0 + d * np.sin(angle))
        agents = make_pair((5.0, 5.0), p2, rng.normal(0, 5, 2), rng.normal(0, 5, 2))
        e0, m0 = kinetic_energy(agents), momentum(agents)

        resolve_pair(agents, 0, 1, topo)

        assert kinetic_energy(agents) == pytest.approx(e0, rel=1e-12)
        np.testing.assert_allclose(momentum(agents), m0, atol=1e-12)
        assert closing_speed(agents, 0, 1, topo) <= 1e-12

    def test_normal_across_seam(self):
        """Wrap-aware normal: agents either side of the x seam."""
        topo = ToroidalTopology(10.0, 10.0)
        # agent 0 at x=9.8 moving right, agent 1 at x=0.1 moving left:
        # they approach across the seam
        agents = make_pair((9.8, 5.0), (0.1, 5.0), (1.0, 0.0), (-1.0, 0.0))
        assert closing_speed(agents, 0, 1, topo) == pytest.approx(2.0)
        resolve_pair(agents, 0, 1, topo)
        np.testing.assert_allclose(agents['vx'], [-1.0, 1.0])


class TestResolveCollisionsPhysics:
    def chain(self, xs, vxs):
        agents = allocate_agents(len(xs))
        agents['x'], agents['y'] = xs, 5.0
        agents['vx'] = vxs
        pairs = np.array([[k, k + 1] for k in range(len(xs) - 1)])
        return agents, CollisionEvents(pairs=pairs,
                                       walls=np.empty((0, 2), dtype=np.int64))

    def test_three_agent_chain_all_separating(self, topo):
        """The middle agent's second impulse sends it back into the first."""
        agents, events = self.chain([4.2, 5.0, 5.8], [2.0, 0.0, -2.0])
        e0 = kinetic_energy(agents)
        result = resolve_collisions(agents, events, NO_TRANSMISSION, topo, 0.0,
                                    np.random.default_rng(0))
        for i, j in events.pairs:
            assert closing_speed(agents, int(i), int(j), topo) <= 1e-12
        np.testing.assert_allclose(agents['vx'], [-2.0, 0.0, 2.0])
        assert kinetic_energy(agents) == pytest.approx(e0)
        assert result.n_bounced == 2

    def test_four_agent_cradle(self, topo):
        agents, events = self.chain([4.2, 5.0, 5.8, 6.6], [1.0, 0.0, 0.0, -1.0])
        bounced = resolve_pairs(agents, events.pairs, topo)
        assert bounced.all()
        for i, j in events.pairs:
            assert closing_speed(agents, int(i), int(j), topo) <= 1e-12
        np.testing.assert_allclose(agents['vx'], [-1.0, 0.0, 0.0, 1.0])

    def test_no_pairs(self, topo):
        agents = allocate_agents(3)
        assert len(resolve_pairs(agents, np.empty((0, 2), dtype=np.int64), topo)) == 0

    def test_isolated_pairs_all_separating(self):
        """Every reported isolated pair ends with closing speed <= 0."""
        rng = np.random.default_rng(3)
        topo = ToroidalTopology(100.0, 100.0)
        n = 40
        agents = allocate_agents(2 * n)
        centres = np.column_stack([np.arange(n) % 8 * 12.0 + 5.0,
                                   np.arange(n) // 8 * 12.0 + 5.0])
        offsets = rng.uniform(-0.35, 0.35, (n, 2))
        agents['x'][:n], agents['y'][:n] = centres.T
        agents['x'][n:] = centres[:, 0] + offsets[:, 0]
        agents['y'][n:] = centres[:, 1] + offsets[:, 1]
        agents['vx'], agents['vy'] = rng.normal(0, 10, (2, 2 * n))

        events = find_collisions(agents['x'], agents['y'], topo)
        assert events.n_pairs == n
        e0 = kinetic_energy(agents)

        resolve_collisions(agents, events, NO_TRANSMISSION, topo, 0.0, rng)

        for i, j in events.pairs:
            assert closing_speed(agents, int(i), int(j), topo) <= 1e-9
        assert kinetic_energy(agents) == pytest.approx(e0, rel=1e-12)


# ═══════════════════════════════════════════════════════════════════════
# WALLS
# ═══════════════════════════════════════════════════════════════════════

class TestResolveWalls:
    def test_reflects_into_wall(self):
        agents = allocate_agents(4)
        agents['vx'] = [-2.0, 3.0, 1.0, 1.0]
        agents['vy'] = [1.0, 1.0, -4.0, 5.0]
        walls = np.array([[0, Wall.LEFT], [1, Wall.RIGHT],
                          [2, Wall.BOTTOM], [3, Wall.TOP]])
        resolve_walls(agents, walls)
        np.testing.assert_allclose(agents['vx'], [2.0, -3.0, 1.0, 1.0])
        np.testing.assert_allclose(agents['vy'], [1.0, 1.0, 4.0, -5.0])

    def test_moving_away_untouched(self):
        agents = allocate_agents(4)
        agents['vx'] = [2.0, -3.0, 1.0, 1.0]
        agents['vy'] = [1.0, 1.0, 4.0, -5.0]
        walls = np.array([[0, Wall.LEFT], [1, Wall.RIGHT],
                          [2, Wall.BOTTOM], [3, Wall.TOP]])
        resolve_walls(agents, walls)
        np.testing.assert_allclose(agents['vx'], [2.0, -3.0, 1.0, 1.0])
        np.testing.assert_allclose(agents['vy'], [1.0, 1.0, 4.0, -5.0])

    def test_corner_reflects_both_components(self):
        agents = allocate_agents(1)
        agents['vx'], agents['vy'] = [-1.0], [2.0]
        resolve_walls(agents, np.array([[0, Wall.LEFT], [0, Wall.TOP]]))
        np.testing.assert_allclose([agents['vx'][0], agents['vy'][0]], [1.0, -2.0])

    def test_speed_preserved(self):
        agents = allocate_agents(1)
        agents['vx'], agents['vy'] = [-3.0], [4.0]
        resolve_walls(agents, np.array([[0, Wall.LEFT]]))
        assert kinetic_energy(agents) == pytest.approx(25.0)


# ═══════════════════════════════════════════════════════════════════════
# TRANSMISSION
# ═══════════════════════════════════════════════════════════════════════

class FixedDraws:
    """Generator stand-in returning a constant for every uniform draw."""

    def __init__(self, value):
        self.value = value
        self.calls = 0

    def random(self, size=None):
        self.calls += 1
        return np.full(size, self.value)


def contact(recipient_past=False, recipient_vacc=False, source_vacc=False,
            source_infected=True):
    agents = allocate_agents(2)
    agents['past_infected'][0] = recipient_past
    agents['vaccinated'][0] = recipient_vacc
    agents['vaccinated'][1] = source_vacc
    if source_infected:
        agents['infected_since'][1] = 0.0
    return agents


PAIR = np.array([[0, 1]])

# Each probability gets a distinct value so lookups are unambiguous
DISTINCT = ParameterSet(
    infected_to_general=0.60, infected_to_healed=0.50,
    infected_to_vaccinated=0.40, vaccinated_to_general=0.30,
    vaccinated_to_healed=0.20, vaccinated_to_vaccinated=0.10,
)


class TestTransmit:
    @pytest.mark.parametrize("past,vacc,src_vacc,threshold", [
        (False, False, False, 0.60),
        (True,  False, False, 0.50),
        (False, True,  False, 0.40),
        (True,  True,  False, 0.40),   # vaccinated wins over past-infected
        (False, False, True,  0.30),
        (True,  False, True,  0.20),
        (False, True,  True,  0.10),
        (True,  True,  True,  0.10),
    ])
    def test_threshold_lookup(self, past, vacc, src_vacc, threshold):
        for draw, expect_hit in [(threshold - 1e-9, True), (threshold, False)]:
            agents = contact(past, vacc, src_vacc)
            snap = ContactSnapshot.capture(agents)
            hits = transmit(agents, PAIR, snap, DISTINCT, 7.5, FixedDraws(draw))
            assert (0 in hits) == expect_hit
            assert (agents['infected_since'][0] == 7.5) == expect_hit

    def test_no_source_no_draw(self):
        agents = contact(source_infected=False)
        rng = FixedDraws(0.0)
        hits = transmit(agents, PAIR, ContactSnapshot.capture(agents),
                        ALWAYS, 1.0, rng)
        assert len(hits) == 0
        assert not is_infected(agents).any()

    def test_both_directions(self):
        """Two infected agents can re-infect each other (clock reset)."""
        agents = allocate_agents(2)
        agents['infected_since'] = [1.0, 2.0]
        hits = transmit(agents, PAIR, ContactSnapshot.capture(agents),
                        ALWAYS, 5.0, FixedDraws(0.0))
        assert list(hits) == [0, 1]
        np.testing.assert_allclose(agents['infected_since'], [5.0, 5.0])

    def test_reexposure_can_be_disabled(self):
        agents = allocate_agents(2)
        agents['infected_since'] = [1.0, 2.0]
        params = dataclasses.replace(ALWAYS, allow_reexposure=False)
        hits = transmit(agents, PAIR, ContactSnapshot.capture(agents),
                        params, 5.0, FixedDraws(0.0))
        assert len(hits) == 0
        np.testing.assert_allclose(agents['infected_since'], [1.0, 2.0])

    def test_reinfects_past_infected(self):
        agents = contact(recipient_past=True)
        transmit(agents, PAIR, ContactSnapshot.capture(agents),
                 ALWAYS, 3.0, FixedDraws(0.0))
        assert agents['infected_since'][0] == 3.0
        assert agents['past_infected'][0]

    def test_snapshot_blocks_chain_within_pass(self):
        """A (infected) touches B, B touches C: C cannot catch it from B
        in the same pass, whatever the pair order."""
        agents = allocate_agents(3)
        agents['infected_since'][0] = 0.0
        for pairs in (np.array([[0, 1], [1, 2]]), np.array([[1, 2], [0, 1]])):
            trial = agents.copy()
            transmit(trial, pairs, ContactSnapshot.capture(trial),
                     ALWAYS, 1.0, FixedDraws(0.0))
            assert is_infected(trial)[1]
            assert not is_infected(trial)[2]

    def test_empty_pairs(self):
        agents = allocate_agents(2)
        hits = transmit(agents, np.empty((0, 2), dtype=np.int64),
                        ContactSnapshot.capture(agents), ALWAYS, 0.0,
                        np.random.default_rng(0))
        assert len(hits) == 0

    def test_rate_matches_probability(self):
        """Empirical transmission frequency ≈ configured probability."""
        rng = np.random.default_rng(12)
        n = 20000
        agents = allocate_agents(2 * n)
        agents['infected_since'][n:] = 0.0
        pairs = np.column_stack([np.arange(n), np.arange(n, 2 * n)])
        params = dataclasses.replace(NO_TRANSMISSION, infected_to_general=0.1)
        hits = transmit(agents, pairs, ContactSnapshot.capture(agents),
                        params, 1.0, rng)
        # healthy agents never act as sources, so only the first half is hit
        frac = np.mean(is_infected(agents)[:n])
        assert frac == pytest.approx(0.1, abs=0.01)
        assert len(hits) == int(is_infected(agents)[:n].sum())


class TestResolveCollisions:
    def test_counts(self, topo):
        agents = make_pair((4.6, 5.0), (5.4, 5.0), (1.0, 0.0), (-1.0, 0.0))
        agents['infected_since'][1] = 0.0
        events = CollisionEvents(pairs=np.array([[0, 1]]),
                                 walls=np.empty((0, 2), dtype=np.int64))
        result = resolve_collisions(agents, events, ALWAYS, topo, 2.0,
                                    np.random.default_rng(0))
        assert result.n_bounced == 1
        assert 0 in result.infected
        assert agents['infected_since'][0] == 2.0

    def test_vaccinated_recipient_threshold(self, topo):
        agents = make_pair((4.6, 5.0), (5.4, 5.0), (1.0, 0.0), (-1.0, 0.0))
        agents['vaccinated'][0] = True
        agents['infected_since'][1] = 0.0
        events = CollisionEvents(pairs=np.array([[0, 1]]),
                                 walls=np.empty((0, 2), dtype=np.int64))
        result = resolve_collisions(agents, events, DISTINCT, topo, 2.0,
                                    FixedDraws(0.45))
        # vaccinated recipient threshold is 0.40 < 0.45
        assert len(result.infected) == 0
