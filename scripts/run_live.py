#!/usr/bin/env python3
"""Interactive window: agents on the left, status history on the right.

The simulation steps on a background thread (SimulationRunner); the
window redraws from a fresh copy of the latest published state.

Keys:
    space   pause / resume
    t       faster (multiply time compression)
    r       slower (divide time compression)

Usage:
    python scripts/run_live.py configs/default.yaml
    python scripts/run_live.py configs/default.yaml --paused
"""

import argparse
import logging
import sys
from pathlib import Path

import matplotlib.pyplot as plt
from matplotlib.animation import FuncAnimation

# ── Project imports ──────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from pandemic_sim.config import load_config
from pandemic_sim.model import build_simulation
from pandemic_sim.runtime import RuntimeControls, SimulationHandle, SimulationRunner
from pandemic_sim.stats import StatisticsRecorder
from pandemic_sim.viz import dark_figure, draw_agents, draw_status_history
from pandemic_sim.viz.style import TEXT_COLOR, apply_dark_theme

logger = logging.getLogger("run_live")

KEY_ACTIONS = {
    ' ': 'toggle_running',
    't': 'increase_time_compression',
    'r': 'decrease_time_compression',
}


def main():
    parser = argparse.ArgumentParser(description="Live epidemic simulation window.")
    parser.add_argument("config", help="Base config YAML")
    parser.add_argument("--scenario", type=str, default=None)
    parser.add_argument(
        "--paused", action="store_true",
        help="Start paused (press space to run)",
    )
    parser.add_argument(
        "--interval-ms", type=int, default=50,
        help="Redraw interval in milliseconds (default: 50)",
    )
    parser.add_argument(
        "--log-level", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config, args.scenario)
    if args.paused:
        config.runtime.running = False

    sim, rngs = build_simulation(config)
    handle = SimulationHandle(sim)
    controls = RuntimeControls.from_config(config.runtime)
    recorder = StatisticsRecorder(
        interval=config.output.record_interval,
        max_samples=config.output.max_samples,
    )
    recorder.record(sim.time, sim.statistics())
    runner = SimulationRunner(handle, controls, rngs['driver'], recorder=recorder)

    # 'r' is bound to "home" by default
    plt.rcParams['keymap.home'] = [
        k for k in plt.rcParams['keymap.home'] if k not in KEY_ACTIONS]
    fig, (ax_agents, ax_history) = dark_figure(1, 2, figsize=(16, 8))
    readout = fig.text(0.01, 0.01, '', color=TEXT_COLOR, fontsize=10,
                       family='monospace')

    def on_key(event):
        action = KEY_ACTIONS.get(event.key)
        if action is not None:
            getattr(controls, action)()

    def redraw(_frame):
        current = handle.read()
        stats = current.statistics()
        params = controls.current()
        for ax in (ax_agents, ax_history):
            ax.clear()
            apply_dark_theme(ax=ax)
        draw_agents(ax_agents, current)
        draw_status_history(ax_history, recorder.copy())
        readout.set_text(
            f"pop {stats.population}  infected {stats.infected}  "
            f"vaccinated {stats.vaccinated}  healed {stats.healed}  "
            f"dead {stats.dead}  x{params.time_compression:g}"
            + ("" if params.running else "  [paused]")
        )
        return []

    fig.canvas.mpl_connect('key_press_event', on_key)
    animation = FuncAnimation(fig, redraw, interval=args.interval_ms,
                              cache_frame_data=False)

    runner.start()
    try:
        plt.show()
    finally:
        runner.stop()
        runner.join(timeout=1.0)
    del animation


if __name__ == "__main__":
    main()
