"""Per-phase timing of simulation steps.

A disabled profiler costs one attribute check per phase.

Usage:
    profiler = StepProfiler(enabled=True)
    sim = Simulation(params, rng, profiler=profiler)
    for _ in range(1000):
        sim.step(0.05, rng)
    print(profiler.report())
"""

import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict

# Step pipeline order, used to sort reports
PHASES = ('move', 'detect', 'resolve', 'health', 'purge')


@dataclass
class PhaseStats:
    """Accumulated wall-clock time for one step phase."""
    total_time: float = 0.0
    call_count: int = 0
    max_time: float = 0.0

    @property
    def mean_time(self) -> float:
        return self.total_time / self.call_count if self.call_count > 0 else 0.0

    def add(self, elapsed: float) -> None:
        self.total_time += elapsed
        self.call_count += 1
        self.max_time = max(self.max_time, elapsed)


def _phase_key(name: str):
    return (PHASES.index(name) if name in PHASES else len(PHASES), name)


class StepProfiler:
    """Accumulates time spent in each phase of Simulation.step."""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self._stats: Dict[str, PhaseStats] = defaultdict(PhaseStats)

    @contextmanager
    def phase(self, name: str):
        if not self.enabled:
            yield
            return
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self._stats[name].add(time.perf_counter() - t0)

    def get_stats(self) -> Dict[str, PhaseStats]:
        return dict(self._stats)

    def summary(self) -> dict:
        """Per-phase totals suitable for JSON serialization."""
        total = sum(s.total_time for s in self._stats.values())
        result = {}
        for name in sorted(self._stats, key=_phase_key):
            stats = self._stats[name]
            result[name] = {
                'total_s': round(stats.total_time, 4),
                'calls': stats.call_count,
                'mean_ms': round(stats.mean_time * 1000, 3),
                'max_ms': round(stats.max_time * 1000, 3),
                'pct': round(stats.total_time / total * 100, 1) if total > 0 else 0.0,
            }
        return result

    def report(self, title: str = "Step Phase Breakdown") -> str:
        lines = [
            f"\n{'='*58}",
            f" {title}",
            f"{'='*58}",
            f"{'Phase':<12} {'Total (s)':>10} {'Calls':>8} {'Mean (ms)':>10} "
            f"{'Max (ms)':>9} {'%':>5}",
        ]
        for name, row in self.summary().items():
            lines.append(
                f"{name:<12} {row['total_s']:>10.4f} {row['calls']:>8} "
                f"{row['mean_ms']:>10.3f} {row['max_ms']:>9.3f} {row['pct']:>5.1f}"
            )
        lines.append(f"{'='*58}\n")
        return '\n'.join(lines)

    def reset(self) -> None:
        self._stats.clear()
