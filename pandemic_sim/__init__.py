"""pandemic_sim: collision-driven epidemic simulation.

A population of disc-shaped agents moves through a bounded 2-D space
(toroidal or walled), collides elastically, and transmits infection on
contact:
  - Sweep-and-prune detection of overlapping pairs
  - Elastic pair response and wall reflection
  - Contact transmission keyed by recipient and source category
  - Per-agent recovery, death and vaccination effects over simulated time
  - Threaded stepping driver with pause and time compression
"""

__version__ = "0.1.0"
