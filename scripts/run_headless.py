#!/usr/bin/env python3
"""Run a simulation without a window and save its history.

Steps the simulation at a fixed dt until the requested simulated time,
sampling statistics every ``output.record_interval``. Writes:
  - history.npz / history.csv   statistics time series
  - history.png                 stacked status chart
  - final_frame.png             agent positions at the end
  - summary.json                final counts, wall time, phase timings,
                                end state of every RNG stream

Usage:
    python scripts/run_headless.py configs/default.yaml --duration 100
    python scripts/run_headless.py configs/default.yaml \
        --scenario configs/scenarios/walled_small.yaml --seed 7
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

import matplotlib
matplotlib.use('Agg')

# ── Project imports ──────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from pandemic_sim.config import load_config
from pandemic_sim.model import build_simulation
from pandemic_sim.perf import StepProfiler
from pandemic_sim.rng import get_stream, rng_state_snapshot
from pandemic_sim.stats import StatisticsRecorder
from pandemic_sim.viz import plot_agents, plot_status_history

logger = logging.getLogger("run_headless")


def run(config, duration: float, dt: float, profile: bool = False):
    """Step a freshly built simulation until `duration` simulated time."""
    profiler = StepProfiler(enabled=profile)
    sim, rngs = build_simulation(config, profiler=profiler)
    recorder = StatisticsRecorder(
        interval=config.output.record_interval,
        max_samples=config.output.max_samples,
    )
    recorder.record(sim.time, sim.statistics())

    rng = get_stream(rngs, 'step')
    n_steps = 0
    while sim.time < duration:
        sim.step(dt, rng)
        n_steps += 1
        recorder.record(sim.time, sim.statistics())
        if sim.statistics().infected == 0:
            logger.info("No infected agents left at t=%.2f", sim.time)
            break

    if recorder.max_t < sim.time:
        recorder.record(sim.time, sim.statistics(), force=True)
    return sim, rngs, recorder, n_steps


def main():
    parser = argparse.ArgumentParser(
        description="Run a headless epidemic simulation from YAML config.",
        epilog="Example: python scripts/run_headless.py configs/default.yaml --duration 100",
    )
    parser.add_argument("config", help="Base config YAML")
    parser.add_argument(
        "--scenario", type=str, default=None,
        help="Scenario override YAML merged over the base config",
    )
    parser.add_argument(
        "--duration", type=float, default=100.0,
        help="Simulated time to run (default: 100)",
    )
    parser.add_argument(
        "--dt", type=float, default=None,
        help="Step duration (default: simulation.max_step_duration)",
    )
    parser.add_argument(
        "--seed", type=int, default=None,
        help="Override simulation.seed",
    )
    parser.add_argument(
        "--output-dir", type=str, default=None,
        help="Override output directory (default: from YAML)",
    )
    parser.add_argument(
        "--profile", action="store_true",
        help="Report per-phase step timings",
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

    overrides = {}
    if args.seed is not None:
        overrides['simulation'] = {'seed': args.seed}
    config = load_config(args.config, args.scenario, overrides or None)
    dt = args.dt if args.dt is not None else config.simulation.max_step_duration
    if dt <= 0:
        parser.error(f"--dt must be > 0, got {dt}")
    out_dir = Path(args.output_dir or config.output.directory)
    out_dir.mkdir(parents=True, exist_ok=True)

    t0 = time.perf_counter()
    sim, rngs, recorder, n_steps = run(config, args.duration, dt, profile=args.profile)
    wall = time.perf_counter() - t0

    recorder.save(str(out_dir / "history.npz"))
    recorder.to_csv(str(out_dir / "history.csv"))
    plot_status_history(recorder, save_path=str(out_dir / "history.png"),
                        dpi=config.output.figure_dpi)
    plot_agents(sim, save_path=str(out_dir / "final_frame.png"),
                dpi=config.output.figure_dpi)

    summary = {
        'time': sim.time,
        'steps': n_steps,
        'wall_s': round(wall, 3),
        'statistics': sim.statistics().as_dict(),
        'phases': sim.profiler.summary() if args.profile else None,
        'rng_state': rng_state_snapshot(rngs),
    }
    with open(out_dir / "summary.json", 'w') as f:
        json.dump(summary, f, indent=2)

    logger.info("Finished t=%.2f after %d steps in %.1fs: %s",
                sim.time, n_steps, wall, summary['statistics'])
    if args.profile:
        print(sim.profiler.report())


if __name__ == "__main__":
    main()
