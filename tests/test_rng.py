"""Tests for pandemic_sim.rng — seeded RNG hierarchy and state snapshots."""

import json

import numpy as np
import pytest

from pandemic_sim.rng import (
    STREAM_NAMES,
    create_rng_hierarchy,
    get_stream,
    rng_state_snapshot,
)


class TestCreateRngHierarchy:
    def test_returns_all_streams(self):
        rngs = create_rng_hierarchy(42)
        assert set(rngs) == set(STREAM_NAMES)

    def test_generators_are_independent(self):
        """Different streams produce different sequences."""
        rngs = create_rng_hierarchy(42)
        vals = {name: rng.random() for name, rng in rngs.items()}
        assert len(set(vals.values())) == len(vals)

    def test_reproducibility(self):
        rngs1 = create_rng_hierarchy(42)
        rngs2 = create_rng_hierarchy(42)
        for name in rngs1:
            np.testing.assert_array_equal(rngs1[name].random(100),
                                          rngs2[name].random(100))

    def test_different_seeds_differ(self):
        rngs1 = create_rng_hierarchy(42)
        rngs2 = create_rng_hierarchy(43)
        assert not np.array_equal(rngs1['step'].random(10),
                                  rngs2['step'].random(10))

    def test_streams_do_not_interfere(self):
        """Consuming one stream leaves the others' sequences unchanged."""
        rngs1 = create_rng_hierarchy(7)
        rngs2 = create_rng_hierarchy(7)
        rngs1['placement'].random(1000)
        np.testing.assert_array_equal(rngs1['step'].random(10),
                                      rngs2['step'].random(10))


class TestGetStream:
    def test_known_stream(self):
        rngs = create_rng_hierarchy(1)
        assert get_stream(rngs, 'seeding') is rngs['seeding']

    def test_unknown_stream(self):
        rngs = create_rng_hierarchy(1)
        with pytest.raises(KeyError, match="renderer"):
            get_stream(rngs, 'renderer')


class TestStateSnapshot:
    def test_json_serializable(self):
        rngs = create_rng_hierarchy(42)
        state = rng_state_snapshot(rngs)
        assert set(state) == set(STREAM_NAMES)
        assert json.loads(json.dumps(state)) == state

    def test_state_replays_stream(self):
        rngs = create_rng_hierarchy(42)
        rngs['step'].random(17)
        state = rng_state_snapshot(rngs)
        expected = rngs['step'].random(50)

        replay = np.random.Generator(np.random.PCG64())
        replay.bit_generator.state = state['step']
        np.testing.assert_array_equal(replay.random(50), expected)

    def test_state_advances_with_draws(self):
        rngs = create_rng_hierarchy(42)
        before = rng_state_snapshot(rngs)
        rngs['seeding'].permutation(10)
        after = rng_state_snapshot(rngs)
        assert after['seeding'] != before['seeding']
        assert after['step'] == before['step']
