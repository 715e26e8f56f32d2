"""Spatial collision index: topology strategies and sweep-and-prune.

Agents are discs of radius R (``AGENT_RADIUS``). Two agents overlap when
their centres are closer than 2R. Detecting every overlapping pair uses
two sorted sweeps instead of an all-pairs comparison:

  1. Sort agent indices by x (and separately by y).
  2. For each agent in sorted order, compare forward against its
     successors until the gap along that axis alone exceeds 2R.
     In the toroidal topology the scan wraps past the end of the array.
  3. Union the candidate pairs of both axes, canonicalise as (i, j) with
     i < j, deduplicate, and keep only pairs passing the Euclidean test.

Cost is O(N log N) for the sorts plus work proportional to the number of
candidates, which stays near-linear unless agents cluster heavily.

The forward scan is vectorised: ``searchsorted`` gives, for every agent,
the end of its window of successors within 2R; the windows are expanded
into flat candidate arrays with ``np.repeat``.

Topology strategies:
  - ToroidalTopology: positions wrap; distances use the shortest signed
    displacement across the seam.
  - WalledTopology: positions are not wrapped; agents within R of an
    edge are reported as (agent, wall) events.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Set, Tuple

import numpy as np

from pandemic_sim.types import AGENT_RADIUS, COLLISION_DISTANCE, Wall


# ═══════════════════════════════════════════════════════════════════════
# TOPOLOGY STRATEGIES
# ═══════════════════════════════════════════════════════════════════════

class Topology:
    """Boundary handling shared by movement, detection and resolution."""

    name = ''
    wraps = False

    def __init__(self, size_x: float, size_y: float):
        self.size_x = float(size_x)
        self.size_y = float(size_y)

    def displacement(self, dx, dy):
        """Displacement from one agent to another, topology-aware."""
        return dx, dy

    def wrap_positions(self, x: np.ndarray, y: np.ndarray):
        """Map positions back into the space after integration."""
        return x, y

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.size_x}, {self.size_y})"


def _shortest_signed(d, size: float):
    """Shortest signed separation on a ring of circumference `size`.

    Valid for |d| < size, which holds for wrapped coordinates.
    """
    d = np.where(d > size / 2.0, d - size, d)
    return np.where(d < -size / 2.0, d + size, d)


def _wrap(x: np.ndarray, size: float) -> np.ndarray:
    """Wrap coordinates into [0, size)."""
    x = np.mod(x, size)
    # tiny negatives round up to exactly `size`
    return np.where(x >= size, 0.0, x)


class ToroidalTopology(Topology):
    name = 'toroidal'
    wraps = True

    def displacement(self, dx, dy):
        return _shortest_signed(dx, self.size_x), _shortest_signed(dy, self.size_y)

    def wrap_positions(self, x, y):
        return _wrap(x, self.size_x), _wrap(y, self.size_y)


class WalledTopology(Topology):
    name = 'walled'
    wraps = False


def make_topology(name: str, size_x: float, size_y: float) -> Topology:
    """Build the topology strategy named in the configuration."""
    topologies = {
        ToroidalTopology.name: ToroidalTopology,
        WalledTopology.name: WalledTopology,
    }
    if name not in topologies:
        raise ValueError(
            f"Unknown topology '{name}'. Valid: {sorted(topologies)}")
    return topologies[name](size_x, size_y)


# ═══════════════════════════════════════════════════════════════════════
# COLLISION EVENTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class CollisionEvents:
    """Output of one detection pass.

    pairs: (k, 2) int array, each row (i, j) with i < j, rows unique and
        sorted lexicographically.
    walls: (m, 2) int array of (agent, Wall) rows; empty for toroidal.
    """
    pairs: np.ndarray
    walls: np.ndarray

    @property
    def n_pairs(self) -> int:
        return len(self.pairs)

    @property
    def n_walls(self) -> int:
        return len(self.walls)

    def pair_set(self) -> Set[Tuple[int, int]]:
        return {(int(i), int(j)) for i, j in self.pairs}


_EMPTY_PAIRS = np.empty((0, 2), dtype=np.int64)


# ═══════════════════════════════════════════════════════════════════════
# SWEEP AND PRUNE
# ═══════════════════════════════════════════════════════════════════════

def _axis_order(coord: np.ndarray) -> np.ndarray:
    return np.argsort(coord, kind='stable')


def _axis_candidates(
    coord: np.ndarray,
    order: np.ndarray,
    size: float,
    wraps: bool,
    threshold: float = COLLISION_DISTANCE,
) -> np.ndarray:
    """Candidate pairs from one sorted sweep.

    For sorted position i, successors i+1 .. end[i]-1 are the agents whose
    gap along this axis does not exceed `threshold`. With wrapping, the
    sorted coordinates are repeated shifted by `size` so the window can
    run past the end of the array; it is capped at n-1 successors so an
    agent is never paired with itself.
    """
    n = len(order)
    if n < 2:
        return _EMPTY_PAIRS

    s = coord[order]
    ext = np.concatenate([s, s + size]) if wraps else s
    start = np.arange(1, n + 1)
    end = np.searchsorted(ext, s + threshold, side='right')
    if wraps:
        end = np.minimum(end, start + n - 1)
    counts = np.maximum(end - start, 0)

    total = int(counts.sum())
    if total == 0:
        return _EMPTY_PAIRS

    first = np.repeat(np.arange(n), counts)
    offsets = np.arange(total) - np.repeat(np.cumsum(counts) - counts, counts)
    second = (first + 1 + offsets) % n
    return np.column_stack([order[first], order[second]])


def _canonical_unique(pairs: np.ndarray) -> np.ndarray:
    """Order each row as (min, max) and drop duplicate rows."""
    if len(pairs) == 0:
        return _EMPTY_PAIRS
    lo = np.minimum(pairs[:, 0], pairs[:, 1])
    hi = np.maximum(pairs[:, 0], pairs[:, 1])
    canon = np.column_stack([lo, hi]).astype(np.int64)
    return np.unique(canon, axis=0)


def overlapping(
    x: np.ndarray,
    y: np.ndarray,
    pairs: np.ndarray,
    topology: Topology,
) -> np.ndarray:
    """Boolean mask of the pairs whose centres are closer than 2R."""
    if len(pairs) == 0:
        return np.zeros(0, dtype=bool)
    i, j = pairs[:, 0], pairs[:, 1]
    dx, dy = topology.displacement(x[j] - x[i], y[j] - y[i])
    return dx * dx + dy * dy < COLLISION_DISTANCE ** 2


def _wall_contacts(
    x: np.ndarray,
    y: np.ndarray,
    order_x: np.ndarray,
    order_y: np.ndarray,
    topology: Topology,
    radius: float = AGENT_RADIUS,
) -> np.ndarray:
    """(agent, wall) events for agents within `radius` of an edge.

    Each sorted list is scanned from both ends while the boundary
    condition holds; agents already past an edge are included.
    """
    sx, sy = x[order_x], y[order_y]
    n_left = np.searchsorted(sx, radius, side='left')
    n_right = len(sx) - np.searchsorted(sx, topology.size_x - radius, side='right')
    n_bottom = np.searchsorted(sy, radius, side='left')
    n_top = len(sy) - np.searchsorted(sy, topology.size_y - radius, side='right')

    chunks = [
        (order_x[:n_left], Wall.LEFT),
        (order_x[len(sx) - n_right:], Wall.RIGHT),
        (order_y[:n_bottom], Wall.BOTTOM),
        (order_y[len(sy) - n_top:], Wall.TOP),
    ]
    rows = [
        np.column_stack([idx, np.full(len(idx), wall)])
        for idx, wall in chunks if len(idx)
    ]
    if not rows:
        return _EMPTY_PAIRS
    return np.concatenate(rows).astype(np.int64)


def find_collisions(
    x: np.ndarray,
    y: np.ndarray,
    topology: Topology,
) -> CollisionEvents:
    """Detect all overlapping pairs (and wall contacts for walled spaces).

    Args:
        x, y: Agent centre coordinates, shape (n,).
        topology: Boundary strategy for this simulation.

    Returns:
        CollisionEvents with deduplicated canonical pairs.
    """
    order_x = _axis_order(x)
    order_y = _axis_order(y)

    candidates = np.concatenate([
        _axis_candidates(x, order_x, topology.size_x, topology.wraps),
        _axis_candidates(y, order_y, topology.size_y, topology.wraps),
    ])
    candidates = _canonical_unique(candidates)
    pairs = candidates[overlapping(x, y, candidates, topology)]

    if topology.wraps:
        walls = _EMPTY_PAIRS
    else:
        walls = _wall_contacts(x, y, order_x, order_y, topology)

    return CollisionEvents(pairs=pairs, walls=walls)


def brute_force_pairs(
    x: np.ndarray,
    y: np.ndarray,
    topology: Topology,
) -> Set[Tuple[int, int]]:
    """All overlapping pairs by exhaustive comparison. For validation."""
    n = len(x)
    i, j = np.triu_indices(n, k=1)
    pairs = np.column_stack([i, j])
    hit = overlapping(x, y, pairs, topology)
    return {(int(a), int(b)) for a, b in pairs[hit]}
