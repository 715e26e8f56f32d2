"""Health state machine — infection progression, recovery and death.

Only currently infected agents change state here; transmission happens
on contact in the collision module. Per infected agent, per step:

  1. Death:     draw u ~ U[0, 1); dead if u < death_rate × dt / avg_duration.
                Death takes precedence over recovery in the same step.
  2. Recovery:  draw u ~ U[0, 1); recovered if
                u < (t − infected_since) / avg_duration − recovery_offset.
                Values below 0 never fire and values above 1 always fire.
                Recovery clears ``infected_since`` and sets ``past_infected``.

With the default offset of 0.7 and avg_duration of 30, no recovery can
happen before an infection is 21 time units old.

Dead agents are only flagged here; the caller removes them after every
agent has been evaluated so indices stay stable within the step.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from pandemic_sim.config import ParameterSet
from pandemic_sim.types import is_infected


def death_probability(dt: float, params: ParameterSet) -> float:
    """Per-step death probability for one infected agent."""
    return params.death_rate * dt / params.infection_avg_duration


def recovery_probability(infection_age, params: ParameterSet):
    """Per-step recovery threshold given time since infection.

    Not clamped: draws are in [0, 1), so thresholds <= 0 never trigger
    and thresholds >= 1 always do.
    """
    return infection_age / params.infection_avg_duration - params.recovery_offset


def earliest_recovery_age(params: ParameterSet) -> float:
    """Infection age below which recovery is impossible."""
    return params.recovery_offset * params.infection_avg_duration


@dataclass
class HealthUpdate:
    """Outcome of one health-update pass."""
    dead: np.ndarray        # bool mask (n,), agents to purge
    recovered: np.ndarray   # indices recovered this step


def update_health(
    agents: np.ndarray,
    time: float,
    dt: float,
    params: ParameterSet,
    rng: np.random.Generator,
) -> HealthUpdate:
    """Advance every infected agent by one step (in-place).

    Args:
        agents: Structured array with AGENT_DTYPE fields.
        time: Simulation time after this step's advance.
        dt: Step duration used for the death hazard.
        params: Disease parameters.
        rng: Source of uniform draws.

    Returns:
        HealthUpdate with the death mask and recovered indices.
    """
    n = len(agents)
    dead = np.zeros(n, dtype=bool)
    infected_idx = np.flatnonzero(is_infected(agents))
    if len(infected_idx) == 0:
        return HealthUpdate(dead=dead, recovered=np.empty(0, dtype=np.int64))

    # Death first: dead agents skip the recovery check
    p_death = death_probability(dt, params)
    dies = rng.random(len(infected_idx)) < p_death
    dead[infected_idx[dies]] = True
    survivors = infected_idx[~dies]

    age = time - agents['infected_since'][survivors]
    p_heal = recovery_probability(age, params)
    heals = rng.random(len(survivors)) < p_heal
    recovered = survivors[heals]

    agents['infected_since'][recovered] = np.nan
    agents['past_infected'][recovered] = True

    return HealthUpdate(dead=dead, recovered=recovered)
