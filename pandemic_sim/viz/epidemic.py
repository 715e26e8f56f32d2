"""Epidemic visualizations: agent frames and status history charts.

Every plot_* function:
  - Returns a matplotlib Figure
  - Has an optional ``save_path`` parameter (saves PNG when given)
  - Uses the shared dark theme from ``pandemic_sim.viz.style``

The draw_* functions render into an existing Axes and are reused by the
live animation script.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Optional

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.collections import EllipseCollection

from pandemic_sim.stats import StatisticsRecorder
from pandemic_sim.types import AGENT_RADIUS, is_infected
from pandemic_sim.viz.style import (
    STATUS_COLORS,
    STATUS_LABELS,
    TEXT_COLOR,
    dark_figure,
    legend_kwargs,
    save_figure,
)

if TYPE_CHECKING:
    from pandemic_sim.model import Simulation


# Bottom-to-top stacking order of the history chart
BAND_ORDER = ('vaccinated', 'vaccinated_infected', 'infected',
              'healed', 'healthy', 'dead')


# ═══════════════════════════════════════════════════════════════════════
# DATA HELPERS
# ═══════════════════════════════════════════════════════════════════════

def status_bands(recorder: StatisticsRecorder) -> Dict[str, np.ndarray]:
    """Non-overlapping per-sample counts that stack to the total population."""
    a = recorder.as_arrays()
    return {
        'vaccinated': a['vaccinated'] - a['vaccinated_infected'],
        'vaccinated_infected': a['vaccinated_infected'],
        'infected': a['infected'] - a['vaccinated_infected'],
        'healed': a['healed'],
        'healthy': (a['population'] - a['vaccinated'] - a['infected']
                    + a['vaccinated_infected'] - a['healed']),
        'dead': a['dead'],
    }


def agent_status_keys(agents: np.ndarray) -> np.ndarray:
    """STATUS_COLORS key per agent."""
    infected = is_infected(agents)
    vaccinated = agents['vaccinated']
    keys = np.full(len(agents), 'healthy', dtype=object)
    keys[agents['past_infected'] & ~infected] = 'healed'
    keys[vaccinated & ~infected] = 'vaccinated'
    keys[infected] = 'infected'
    keys[infected & vaccinated] = 'vaccinated_infected'
    return keys


# ═══════════════════════════════════════════════════════════════════════
# DRAWING INTO EXISTING AXES
# ═══════════════════════════════════════════════════════════════════════

def draw_agents(ax: plt.Axes, simulation: 'Simulation') -> None:
    """Draw every agent as a disc of radius AGENT_RADIUS, in data units."""
    agents = simulation.agent_array
    size_x, size_y = simulation.space_size
    keys = agent_status_keys(agents)
    colors = [STATUS_COLORS[k] for k in keys]
    diameter = np.full(len(agents), 2.0 * AGENT_RADIUS)

    ax.add_collection(EllipseCollection(
        diameter, diameter, np.zeros(len(agents)),
        units='xy',
        offsets=np.column_stack([agents['x'], agents['y']]),
        offset_transform=ax.transData,
        facecolors=colors,
        edgecolors='none',
    ))
    ax.set_xlim(0, size_x)
    ax.set_ylim(0, size_y)
    ax.set_aspect('equal')
    ax.set_title(f"t = {simulation.time:.2f}", fontsize=13, color=TEXT_COLOR)


def draw_status_history(ax: plt.Axes, recorder: StatisticsRecorder) -> None:
    """Stacked area chart of status bands against simulated time."""
    if len(recorder) == 0:
        return
    t = recorder.times()
    bands = status_bands(recorder)
    ax.stackplot(
        t,
        *[bands[k] for k in BAND_ORDER],
        colors=[STATUS_COLORS[k] for k in BAND_ORDER],
        labels=[STATUS_LABELS[k] for k in BAND_ORDER],
        alpha=0.9,
    )
    ax.set_xlim(recorder.min_t, max(recorder.max_t, recorder.min_t + 1e-9))
    ax.set_ylim(0, max(recorder.latest.total, 1))
    ax.set_xlabel('Simulated time', fontsize=12)
    ax.set_ylabel('Agents', fontsize=12)


# ═══════════════════════════════════════════════════════════════════════
# FIGURES
# ═══════════════════════════════════════════════════════════════════════

def plot_agents(
    simulation: 'Simulation',
    save_path: Optional[str] = None,
    dpi: int = 150,
) -> plt.Figure:
    """One frame of the agent population, colored by status."""
    fig, ax = dark_figure(figsize=(9, 9))
    draw_agents(ax, simulation)
    if save_path:
        save_figure(fig, save_path, dpi=dpi)
    return fig


def plot_status_history(
    recorder: StatisticsRecorder,
    save_path: Optional[str] = None,
    dpi: int = 150,
) -> plt.Figure:
    """Stacked status history: vaccinated, infected, healed, healthy, dead."""
    fig, ax = dark_figure(figsize=(14, 7))
    draw_status_history(ax, recorder)
    ax.set_title('Epidemic Course', fontsize=15, fontweight='bold')
    if len(recorder):
        ax.legend(loc='upper right', **legend_kwargs())
    if save_path:
        save_figure(fig, save_path, dpi=dpi)
    return fig
