"""Seeded RNG factory for reproducible simulations.

Uses NumPy's SeedSequence → PCG64 hierarchy to guarantee:
  - Statistical independence between named streams
  - Bit-exact replay with the same master seed
  - Drawing more from one stream never shifts another stream's sequence
"""

from __future__ import annotations

from typing import Dict

import numpy as np


# Fixed order: appending a name keeps existing streams bit-identical.
STREAM_NAMES = (
    'placement',   # initial positions and velocities
    'seeding',     # infect() / vaccinate() selection
    'step',        # per-step transmission and health draws
    'driver',      # background runner and scripts
)


def create_rng_hierarchy(master_seed: int) -> Dict[str, np.random.Generator]:
    """Create independent RNG streams for each simulation concern.

    Args:
        master_seed: Master RNG seed (non-negative integer).

    Returns:
        Dictionary mapping stream names to numpy Generator instances.

    Example:
        >>> rngs = create_rng_hierarchy(42)
        >>> rngs['step'].random()  # reproducible
    """
    ss = np.random.SeedSequence(master_seed)
    child_seeds = ss.spawn(len(STREAM_NAMES))
    return {
        name: np.random.Generator(np.random.PCG64(seed))
        for name, seed in zip(STREAM_NAMES, child_seeds)
    }


def get_stream(
    rngs: Dict[str, np.random.Generator],
    name: str,
) -> np.random.Generator:
    """Get a named RNG stream.

    Raises:
        KeyError: If the stream doesn't exist.
    """
    if name not in rngs:
        raise KeyError(
            f"No RNG stream '{name}'. Available: {', '.join(sorted(rngs))}"
        )
    return rngs[name]


def rng_state_snapshot(
    rngs: Dict[str, np.random.Generator],
) -> Dict[str, dict]:
    """Capture the bit-generator state of every stream.

    Returns a dict of {name: state_dict} of plain ints and strings, so it
    can be written to JSON next to a run's results.
    """
    return {name: rng.bit_generator.state for name, rng in rngs.items()}

