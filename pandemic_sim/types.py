"""Core data types for pandemic_sim.

This module is the SINGLE SOURCE OF TRUTH for:
  - AGENT_DTYPE: NumPy structured array dtype for individual agents
  - AGENT_RADIUS: the shared collision/render radius
  - RecipientCategory, SourceCategory, Wall enumerations
  - Status / Agent: read-only records handed to collaborators

All modules import these types from here. No other module defines agent fields.

Infection is stored as a timestamp rather than a state code:
``infected_since`` holds the simulated time at which the current infection
began, and NaN when the agent is not infected.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional, Tuple

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

AGENT_RADIUS = 0.5                  # space units, shared by all agents
COLLISION_DISTANCE = 2.0 * AGENT_RADIUS


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class RecipientCategory(IntEnum):
    """Susceptibility class of an agent receiving a contact.

    VACCINATED takes precedence over PAST_INFECTED when both apply.
    """
    GENERAL       = 0   # never infected, not vaccinated
    PAST_INFECTED = 1   # recovered at least once
    VACCINATED    = 2


class SourceCategory(IntEnum):
    """Class of the infected agent transmitting on contact."""
    INFECTED            = 0   # infected, not vaccinated
    VACCINATED_INFECTED = 1


class Wall(IntEnum):
    """Boundaries of the walled topology."""
    LEFT   = 0   # x = 0
    RIGHT  = 1   # x = size_x
    BOTTOM = 2   # y = 0
    TOP    = 3   # y = size_y


# ═══════════════════════════════════════════════════════════════════════
# AGENT_DTYPE — Canonical structured array for individual agents
# ═══════════════════════════════════════════════════════════════════════

AGENT_DTYPE = np.dtype([
    # --- Kinematics (MOVEMENT + COLLISION write) ---
    ('x',              np.float64),   # position X (space units)
    ('y',              np.float64),   # position Y
    ('vx',             np.float64),   # velocity X (space units / time unit)
    ('vy',             np.float64),   # velocity Y

    # --- Health (COLLISION + DISEASE write) ---
    ('infected_since', np.float64),   # sim time of current infection; NaN = not infected
    ('past_infected',  np.bool_),     # recovered at least once (never reset)
    ('vaccinated',     np.bool_),
])


def allocate_agents(n: int) -> np.ndarray:
    """Allocate an agent array of length n.

    Positions and velocities are zeroed; every agent starts healthy
    (``infected_since`` = NaN, not past-infected, not vaccinated).
    """
    agents = np.zeros(n, dtype=AGENT_DTYPE)
    agents['infected_since'] = np.nan
    return agents


def is_infected(agents: np.ndarray) -> np.ndarray:
    """Boolean mask of currently infected agents."""
    return ~np.isnan(agents['infected_since'])


def recipient_categories(agents: np.ndarray) -> np.ndarray:
    """RecipientCategory code per agent (vaccinated wins over past-infected)."""
    cats = np.full(len(agents), RecipientCategory.GENERAL, dtype=np.int8)
    cats[agents['past_infected']] = RecipientCategory.PAST_INFECTED
    cats[agents['vaccinated']] = RecipientCategory.VACCINATED
    return cats


def source_categories(agents: np.ndarray) -> np.ndarray:
    """SourceCategory code per agent (meaningful only where infected)."""
    return np.where(
        agents['vaccinated'],
        SourceCategory.VACCINATED_INFECTED,
        SourceCategory.INFECTED,
    ).astype(np.int8)


# ═══════════════════════════════════════════════════════════════════════
# READ-ONLY RECORDS FOR COLLABORATORS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Status:
    """Health status of one agent."""
    infected_since: Optional[float]
    past_infected: bool
    vaccinated: bool

    @property
    def infected(self) -> bool:
        return self.infected_since is not None

    @property
    def recipient_category(self) -> RecipientCategory:
        if self.vaccinated:
            return RecipientCategory.VACCINATED
        if self.past_infected:
            return RecipientCategory.PAST_INFECTED
        return RecipientCategory.GENERAL


@dataclass(frozen=True)
class Agent:
    """Snapshot of one agent: position, velocity and status."""
    position: Tuple[float, float]
    velocity: Tuple[float, float]
    status: Status

    @classmethod
    def from_record(cls, record) -> 'Agent':
        since = float(record['infected_since'])
        return cls(
            position=(float(record['x']), float(record['y'])),
            velocity=(float(record['vx']), float(record['vy'])),
            status=Status(
                infected_since=None if np.isnan(since) else since,
                past_infected=bool(record['past_infected']),
                vaccinated=bool(record['vaccinated']),
            ),
        )


def agents_to_records(agents: np.ndarray) -> List[Agent]:
    """Convert an agent array into a list of Agent snapshots."""
    return [Agent.from_record(rec) for rec in agents]
