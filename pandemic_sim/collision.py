"""Collision resolution: elastic response and contact transmission.

Pair physics (equal masses, impulse along the line of centres):
    n        = unit vector from agent i to agent j (wrap-aware)
    closing  = (v_i − v_j) · n
    if closing > 0:   v_i −= closing·n,   v_j += closing·n
Pairs already separating (closing <= 0) are left unchanged, so a contact
that persists across several steps is only bounced once.
Agents touching several others are handled by repeating the sweep over
all pairs until none is still approaching.

Walls reflect the velocity component perpendicular to the touched wall
when it points into that wall.

Transmission is evaluated in both directions of every colliding pair,
against a snapshot of all statuses taken before the pass. One uniform
draw per direction whose source is infected; the threshold comes from
the ParameterSet lookup table keyed by (recipient category, source
category). A hit sets the recipient's ``infected_since`` to the current
simulation time.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from pandemic_sim.config import ParameterSet
from pandemic_sim.spatial import CollisionEvents, Topology
from pandemic_sim.types import (
    Wall,
    is_infected,
    recipient_categories,
    source_categories,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# PHYSICS
# ═══════════════════════════════════════════════════════════════════════

def collision_normal(agents: np.ndarray, i: int, j: int, topology: Topology):
    """Unit vector from agent i to agent j, or None for coincident centres."""
    dx, dy = topology.displacement(
        agents['x'][j] - agents['x'][i],
        agents['y'][j] - agents['y'][i],
    )
    dx, dy = float(dx), float(dy)
    dist = math.hypot(dx, dy)
    if dist == 0.0:
        return None
    return dx / dist, dy / dist


def closing_speed(agents: np.ndarray, i: int, j: int, topology: Topology) -> float:
    """Approach speed of i and j along their line of centres (> 0 = approaching)."""
    normal = collision_normal(agents, i, j, topology)
    if normal is None:
        return 0.0
    nx, ny = normal
    return float((agents['vx'][i] - agents['vx'][j]) * nx
                 + (agents['vy'][i] - agents['vy'][j]) * ny)


def resolve_pair(agents: np.ndarray, i: int, j: int, topology: Topology) -> bool:
    """Apply the elastic impulse to one pair (in-place).

    Returns:
        True if velocities changed.
    """
    normal = collision_normal(agents, i, j, topology)
    if normal is None:
        return False
    nx, ny = normal
    vx, vy = agents['vx'], agents['vy']
    closing = (vx[i] - vx[j]) * nx + (vy[i] - vy[j]) * ny
    if closing <= 0.0:
        return False
    vx[i] -= closing * nx
    vy[i] -= closing * ny
    vx[j] += closing * nx
    vy[j] += closing * ny
    return True


def resolve_walls(agents: np.ndarray, walls: np.ndarray) -> None:
    """Reflect velocities pointing into touched walls (in-place)."""
    if len(walls) == 0:
        return
    idx, side = walls[:, 0], walls[:, 1]
    vx, vy = agents['vx'], agents['vy']

    left = idx[side == Wall.LEFT]
    vx[left] = np.abs(vx[left])
    right = idx[side == Wall.RIGHT]
    vx[right] = -np.abs(vx[right])
    bottom = idx[side == Wall.BOTTOM]
    vy[bottom] = np.abs(vy[bottom])
    top = idx[side == Wall.TOP]
    vy[top] = -np.abs(vy[top])


def resolve_pairs(agents: np.ndarray, pairs: np.ndarray, topology: Topology) -> np.ndarray:
    """Apply pair impulses until no reported pair is still approaching.

    One sweep over the pairs can leave an agent that touches several
    others approaching one of them again, so sweeps repeat until one
    changes nothing, at most len(pairs) times.

    Returns:
        Bool mask (k,) of pairs that bounced at least once.
    """
    bounced = np.zeros(len(pairs), dtype=bool)
    for _sweep in range(len(pairs)):
        changed = False
        for k, (i, j) in enumerate(pairs):
            if resolve_pair(agents, int(i), int(j), topology):
                bounced[k] = True
                changed = True
        if not changed:
            break
    else:
        if len(pairs):
            logger.debug("Pair resolution stopped after %d sweeps", len(pairs))
    return bounced


# ═══════════════════════════════════════════════════════════════════════
# TRANSMISSION
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class ContactSnapshot:
    """Pre-collision health status used for every transmission check."""
    infected: np.ndarray    # bool (n,)
    recipient: np.ndarray   # RecipientCategory codes (n,)
    source: np.ndarray      # SourceCategory codes (n,)

    @classmethod
    def capture(cls, agents: np.ndarray) -> 'ContactSnapshot':
        return cls(
            infected=is_infected(agents),
            recipient=recipient_categories(agents),
            source=source_categories(agents),
        )


def transmit(
    agents: np.ndarray,
    pairs: np.ndarray,
    snapshot: ContactSnapshot,
    params: ParameterSet,
    time: float,
    rng: np.random.Generator,
) -> np.ndarray:
    """Evaluate transmission in both directions of every pair (in-place).

    Args:
        agents: Structured array with AGENT_DTYPE fields.
        pairs: (k, 2) colliding agent indices.
        snapshot: Statuses captured before this resolution pass.
        params: Transmission probabilities.
        time: Current simulation time (stamped on new infections).
        rng: Source of uniform draws.

    Returns:
        Sorted unique indices of agents infected by this pass.
    """
    if len(pairs) == 0:
        return np.empty(0, dtype=np.int64)

    recipients = np.concatenate([pairs[:, 0], pairs[:, 1]])
    sources = np.concatenate([pairs[:, 1], pairs[:, 0]])

    active = snapshot.infected[sources]
    if not params.allow_reexposure:
        active &= ~snapshot.infected[recipients]
    recipients, sources = recipients[active], sources[active]

    table = params.transmission_matrix
    thresholds = table[snapshot.recipient[recipients], snapshot.source[sources]]
    draws = rng.random(len(recipients))
    hits = np.unique(recipients[draws < thresholds])

    agents['infected_since'][hits] = time
    return hits


# ═══════════════════════════════════════════════════════════════════════
# FULL RESOLUTION PASS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class ResolutionResult:
    """Counts from one resolution pass."""
    n_bounced: int
    infected: np.ndarray


def resolve_collisions(
    agents: np.ndarray,
    events: CollisionEvents,
    params: ParameterSet,
    topology: Topology,
    time: float,
    rng: np.random.Generator,
) -> ResolutionResult:
    """Resolve every detected collision: walls, pair physics, transmission."""
    snapshot = ContactSnapshot.capture(agents)

    resolve_walls(agents, events.walls)
    bounced = resolve_pairs(agents, events.pairs, topology)
    n_bounced = int(bounced.sum())

    infected = transmit(agents, events.pairs, snapshot, params, time, rng)
    if len(infected):
        logger.debug("t=%.3f: %d transmissions from %d contacts",
                     time, len(infected), events.n_pairs)
    return ResolutionResult(n_bounced=n_bounced, infected=infected)
