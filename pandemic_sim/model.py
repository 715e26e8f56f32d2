"""Simulation orchestrator.

Owns the agent array, the simulated clock and the ParameterSet, and
composes the other modules into one discrete step:

  1. move every agent by v·dt (topology-aware wrap)
  2. detect overlapping pairs and wall contacts (spatial)
  3. resolve collisions: bounce + transmission (collision)
  4. advance the clock by dt
  5. run the health state machine on every agent (disease)
  6. purge agents that died in step 5

``dt`` is clamped to ``params.max_step_duration`` to bound integration
error; callers stepping from wall-clock time let simulated time fall
behind real time under heavy load instead of taking oversized steps.

Agents are created once, by rejection sampling non-overlapping positions,
and only ever removed through death.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from pandemic_sim.collision import resolve_collisions
from pandemic_sim.config import ParameterSet, SimulationConfig
from pandemic_sim.disease import update_health
from pandemic_sim.movement import random_velocities, update_movement
from pandemic_sim.perf import StepProfiler
from pandemic_sim.rng import create_rng_hierarchy
from pandemic_sim.runtime import RuntimeParameters
from pandemic_sim.spatial import Topology, find_collisions, make_topology
from pandemic_sim.stats import Statistics
from pandemic_sim.types import (
    AGENT_DTYPE,
    AGENT_RADIUS,
    COLLISION_DISTANCE,
    Agent,
    agents_to_records,
    allocate_agents,
)

logger = logging.getLogger(__name__)

# Clamps larger than this ratio are reported at WARNING (once per simulation)
CLAMP_WARN_RATIO = 10.0


class PlacementError(RuntimeError):
    """Initial positions could not be sampled without overlap."""


# ═══════════════════════════════════════════════════════════════════════
# INITIAL PLACEMENT
# ═══════════════════════════════════════════════════════════════════════

def place_agents(
    params: ParameterSet,
    topology: Topology,
    rng: np.random.Generator,
) -> np.ndarray:
    """Sample non-overlapping positions and random velocities.

    Positions are uniform in [R, size − R] on each axis. Each agent gets
    up to ``params.max_placement_attempts`` samples; if all overlap an
    already placed agent, placement fails.

    Raises:
        PlacementError: If an agent exhausts its retry budget.
    """
    n = params.num_people
    agents = allocate_agents(n)
    xs = agents['x']
    ys = agents['y']
    min_sq = COLLISION_DISTANCE ** 2
    retries = 0

    for k in range(n):
        for _attempt in range(params.max_placement_attempts):
            px = rng.uniform(AGENT_RADIUS, params.size_x - AGENT_RADIUS)
            py = rng.uniform(AGENT_RADIUS, params.size_y - AGENT_RADIUS)
            dx, dy = topology.displacement(xs[:k] - px, ys[:k] - py)
            if not np.any(dx * dx + dy * dy < min_sq):
                break
            retries += 1
        else:
            raise PlacementError(
                f"Could not place agent {k} of {n} without overlap after "
                f"{params.max_placement_attempts} attempts "
                f"(discs cover {params.fill_fraction:.0%} of the space)"
            )
        xs[k] = px
        ys[k] = py

    velocities = random_velocities(n, params.speed_stdev, rng)
    agents['vx'] = velocities[:, 0]
    agents['vy'] = velocities[:, 1]

    logger.debug("Placed %d agents with %d rejected samples", n, retries)
    return agents


# ═══════════════════════════════════════════════════════════════════════
# SIMULATION
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class StepResult:
    """What happened during one step."""
    dt: float = 0.0
    n_collisions: int = 0
    n_wall_contacts: int = 0
    n_infected: int = 0
    n_recovered: int = 0
    n_died: int = 0


class Simulation:
    """A population of colliding agents with infection dynamics.

    Args:
        params: Validated on construction; never mutated.
        rng: Used for initial placement only.
        agents: Optional pre-built AGENT_DTYPE array (copied); skips
            placement.
        profiler: Optional StepProfiler collecting per-phase timings.

    Raises:
        ValueError: If params violate an invariant.
        PlacementError: If initial placement exhausts its retry budget.
    """

    def __init__(
        self,
        params: ParameterSet,
        rng: Optional[np.random.Generator] = None,
        agents: Optional[np.ndarray] = None,
        profiler: Optional[StepProfiler] = None,
    ):
        params.validate()
        self.params = params
        self.topology = make_topology(params.topology, params.size_x, params.size_y)
        self.time = 0.0
        self.dead = 0
        self.profiler = profiler if profiler is not None else StepProfiler()
        self._clamp_warned = False

        if agents is None:
            if rng is None:
                raise ValueError("rng is required when agents are not supplied")
            self._agents = place_agents(params, self.topology, rng)
        else:
            self._agents = np.array(agents, dtype=AGENT_DTYPE, copy=True)

        logger.info(
            "Simulation created: %d agents in %g x %g (%s)",
            len(self._agents), params.size_x, params.size_y,
            self.topology.name,
        )

    # ── seeding ──────────────────────────────────────────────────────

    def _select(self, n: int, rng: np.random.Generator, what: str) -> np.ndarray:
        """First n indices of a uniform random permutation."""
        if n < 0:
            raise ValueError(f"Cannot {what} a negative number of agents ({n})")
        if n > len(self._agents):
            raise ValueError(
                f"Cannot {what} {n} agents: population is {len(self._agents)}")
        return rng.permutation(len(self._agents))[:n]

    def infect(self, n: int, rng: np.random.Generator) -> np.ndarray:
        """Infect n distinct random agents at the current time.

        Returns:
            Indices of the infected agents.
        """
        idx = self._select(n, rng, 'infect')
        self._agents['infected_since'][idx] = self.time
        logger.info("Infected %d agents at t=%.3f", n, self.time)
        return idx

    def vaccinate(self, n: int, rng: np.random.Generator) -> np.ndarray:
        """Vaccinate n distinct random agents.

        Returns:
            Indices of the vaccinated agents.
        """
        idx = self._select(n, rng, 'vaccinate')
        self._agents['vaccinated'][idx] = True
        logger.info("Vaccinated %d agents at t=%.3f", n, self.time)
        return idx

    # ── stepping ─────────────────────────────────────────────────────

    def effective_dt(
        self,
        dt: float,
        controls: Optional[RuntimeParameters] = None,
    ) -> float:
        """Apply pause, time compression and the step ceiling to dt."""
        if dt < 0:
            raise ValueError(f"dt must be >= 0, got {dt}")
        if controls is not None:
            if not controls.running:
                return 0.0
            dt = dt * controls.time_compression

        limit = self.params.max_step_duration
        if dt > limit * CLAMP_WARN_RATIO and not self._clamp_warned:
            logger.warning(
                "Step of %.4g clamped to %.4g; simulated time will lag the "
                "caller's clock", dt, limit)
            self._clamp_warned = True
        return min(dt, limit)

    def step(
        self,
        dt: float,
        rng: np.random.Generator,
        controls: Optional[RuntimeParameters] = None,
    ) -> StepResult:
        """Advance the simulation by one (clamped) step.

        Args:
            dt: Requested duration (time units, >= 0).
            rng: Source of transmission and health draws.
            controls: Pause / time-compression values read by the caller
                at the start of this iteration. A paused step does nothing.

        Returns:
            StepResult with per-step counts.
        """
        dt = self.effective_dt(dt, controls)
        if controls is not None and not controls.running:
            return StepResult()

        agents = self._agents
        prof = self.profiler

        with prof.phase('move'):
            update_movement(agents, dt, self.topology)
        with prof.phase('detect'):
            events = find_collisions(agents['x'], agents['y'], self.topology)
        with prof.phase('resolve'):
            resolution = resolve_collisions(
                agents, events, self.params, self.topology, self.time, rng)

        self.time += dt

        with prof.phase('health'):
            health = update_health(agents, self.time, dt, self.params, rng)
        with prof.phase('purge'):
            n_died = int(health.dead.sum())
            if n_died:
                self._agents = agents[~health.dead]
                self.dead += n_died

        if n_died or len(health.recovered):
            logger.debug("t=%.3f: %d died, %d recovered",
                         self.time, n_died, len(health.recovered))

        return StepResult(
            dt=dt,
            n_collisions=events.n_pairs,
            n_wall_contacts=events.n_walls,
            n_infected=len(resolution.infected),
            n_recovered=len(health.recovered),
            n_died=n_died,
        )

    # ── queries ──────────────────────────────────────────────────────

    @property
    def population(self) -> int:
        return len(self._agents)

    @property
    def space_size(self) -> Tuple[float, float]:
        return self.params.space_size

    @property
    def agent_array(self) -> np.ndarray:
        """Read-only view of the live agent array."""
        view = self._agents.view()
        view.flags.writeable = False
        return view

    def agents(self) -> List[Agent]:
        """Snapshot records of every live agent (iteration order only)."""
        return agents_to_records(self._agents)

    def statistics(self) -> Statistics:
        return Statistics.from_agents(self._agents, dead=self.dead)

    def snapshot(self) -> 'Simulation':
        """Independent deep copy for readers on another thread."""
        return copy.deepcopy(self)


# ═══════════════════════════════════════════════════════════════════════
# FACTORY
# ═══════════════════════════════════════════════════════════════════════

def build_simulation(
    config: SimulationConfig,
    rngs: Optional[Dict[str, np.random.Generator]] = None,
    profiler: Optional[StepProfiler] = None,
) -> Tuple[Simulation, Dict[str, np.random.Generator]]:
    """Construct and seed a Simulation from a full configuration.

    Infects ``population.init_infected`` agents, then vaccinates
    ``population.init_vaccinated`` agents (independent selections, so an
    agent may be both).

    Returns:
        (simulation, rng hierarchy); use rngs['step'] for stepping.
    """
    if rngs is None:
        rngs = create_rng_hierarchy(config.simulation.seed)
    params = ParameterSet.from_config(config)
    sim = Simulation(params, rngs['placement'], profiler=profiler)
    sim.infect(params.init_infected, rngs['seeding'])
    sim.vaccinate(params.init_vaccinated, rngs['seeding'])
    return sim, rngs
