"""Agent motion: straight-line integration between collisions.

    x += vx × dt
    y += vy × dt

Velocities only change through collisions (pairwise or wall), so motion
is a pure Euler step followed by the topology's position mapping:
toroidal spaces wrap positions into [0, size); walled spaces leave them
as-is and rely on wall reflection to bring agents back.
"""

from __future__ import annotations

import numpy as np

from pandemic_sim.spatial import Topology


def update_movement(agents: np.ndarray, dt: float, topology: Topology) -> None:
    """Move all agents one step (in-place).

    Args:
        agents: Structured array with AGENT_DTYPE fields.
        dt: Step duration (time units), already clamped by the caller.
        topology: Boundary strategy for this simulation.
    """
    if len(agents) == 0 or dt == 0.0:
        return

    new_x = agents['x'] + agents['vx'] * dt
    new_y = agents['y'] + agents['vy'] * dt
    agents['x'], agents['y'] = topology.wrap_positions(new_x, new_y)


def random_velocities(
    n: int,
    speed_stdev: float,
    rng: np.random.Generator,
) -> np.ndarray:
    """Draw (n, 2) velocities with independent Normal(0, speed_stdev) components."""
    return rng.normal(0.0, speed_stdev, size=(n, 2))


def kinetic_energy(agents: np.ndarray) -> float:
    """Sum of squared speeds (unit mass, without the 1/2 factor)."""
    return float(np.sum(agents['vx'] ** 2 + agents['vy'] ** 2))
