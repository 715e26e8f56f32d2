"""Population statistics and their time series.

``Statistics`` is the per-frame aggregate handed to renderers. Its
categories are arranged so they stack without overlap:

    vaccinated  (includes vaccinated_infected)
  + infected − vaccinated_infected
  + healed     (past-infected, not infected, not vaccinated)
  + healthy    (everything else alive)
  = population

and ``dead`` is cumulative since construction.

``StatisticsRecorder`` keeps (time, Statistics) samples for charts.

Usage:
    recorder = StatisticsRecorder(interval=0.5)

    # In the stepping loop:
    recorder.record(sim.time, sim.statistics())

    # Afterwards:
    recorder.save("history.npz")
"""

from __future__ import annotations

import csv
import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np

from pandemic_sim.types import is_infected


@dataclass(frozen=True)
class Statistics:
    """Aggregate counts at one instant."""
    population: int = 0
    infected: int = 0
    vaccinated: int = 0
    vaccinated_infected: int = 0
    healed: int = 0
    dead: int = 0

    @property
    def healthy(self) -> int:
        return (self.population - self.vaccinated - self.infected
                + self.vaccinated_infected - self.healed)

    @property
    def total(self) -> int:
        """Population at construction: alive plus cumulative dead."""
        return self.population + self.dead

    @classmethod
    def from_agents(cls, agents: np.ndarray, dead: int = 0) -> 'Statistics':
        infected = is_infected(agents)
        vaccinated = agents['vaccinated']
        healed = agents['past_infected'] & ~infected & ~vaccinated
        return cls(
            population=len(agents),
            infected=int(infected.sum()),
            vaccinated=int(vaccinated.sum()),
            vaccinated_infected=int((infected & vaccinated).sum()),
            healed=int(healed.sum()),
            dead=int(dead),
        )

    def as_dict(self) -> Dict[str, int]:
        return dataclasses.asdict(self)


FIELDS = tuple(f.name for f in dataclasses.fields(Statistics))


class StatisticsRecorder:
    """Time series of Statistics samples.

    Samples closer than `interval` simulated time units to the previous
    sample are skipped (interval=0 records every call).

    With `max_samples` set, a history that grows past it is thinned by
    keeping every other sample (plus the latest), and `interval` doubles
    so later samples arrive at the thinned density. Memory stays bounded
    for runs of any length.
    """

    def __init__(self, interval: float = 0.0, max_samples: Optional[int] = None):
        if max_samples is not None and max_samples < 2:
            raise ValueError(f"max_samples must be >= 2, got {max_samples}")
        self.interval = interval
        self.max_samples = max_samples
        self.data: List[Tuple[float, Statistics]] = []

    def __len__(self) -> int:
        return len(self.data)

    def should_record(self, t: float) -> bool:
        if not self.data:
            return True
        return t - self.data[-1][0] >= self.interval

    def record(self, t: float, stats: Statistics, force: bool = False) -> bool:
        """Append a sample. Returns True if it was stored."""
        if not force and not self.should_record(t):
            return False
        self.data.append((float(t), stats))
        if self.max_samples is not None and len(self.data) > self.max_samples:
            self._thin()
        return True

    def _thin(self) -> None:
        latest = self.data[-1]
        kept = self.data[::2]
        if kept[-1] is not latest:
            kept.append(latest)
        self.data = kept
        self.interval *= 2.0

    @property
    def min_t(self) -> float:
        return self.data[0][0] if self.data else 0.0

    @property
    def max_t(self) -> float:
        return self.data[-1][0] if self.data else 1.0

    @property
    def latest(self) -> Optional[Statistics]:
        return self.data[-1][1] if self.data else None

    def copy(self) -> 'StatisticsRecorder':
        """Shallow copy of the sample list, safe to read while this one grows."""
        other = StatisticsRecorder(interval=self.interval,
                                   max_samples=self.max_samples)
        other.data = list(self.data)
        return other

    def times(self) -> np.ndarray:
        return np.array([t for t, _ in self.data], dtype=np.float64)

    def as_arrays(self) -> Dict[str, np.ndarray]:
        """Column arrays: 'time' plus one int array per Statistics field."""
        arrays = {'time': self.times()}
        for name in FIELDS:
            arrays[name] = np.array(
                [getattr(s, name) for _, s in self.data], dtype=np.int64)
        return arrays

    def save(self, path: str) -> None:
        """Save samples to a compressed npz file."""
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        np.savez_compressed(path, interval=self.interval, **self.as_arrays())

    @classmethod
    def load(cls, path: str) -> 'StatisticsRecorder':
        """Load samples from an npz file written by save()."""
        data = np.load(path)
        recorder = cls(interval=float(data['interval']))
        for k, t in enumerate(data['time']):
            stats = Statistics(**{name: int(data[name][k]) for name in FIELDS})
            recorder.data.append((float(t), stats))
        return recorder

    def to_csv(self, path: str) -> None:
        """Write one row per sample: time followed by every count."""
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', newline='') as f:
            writer = csv.writer(f)
            writer.writerow(('time',) + FIELDS + ('healthy',))
            for t, s in self.data:
                writer.writerow(
                    [f"{t:.6g}"] + [getattr(s, name) for name in FIELDS]
                    + [s.healthy])
