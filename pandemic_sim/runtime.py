"""Threaded stepping driver and the state it shares with readers.

Threads:
  - The stepping thread (SimulationRunner) owns the simulation while a
    step runs. Each iteration it reads the controls, takes its own copy
    of the latest published state, steps it without holding any lock,
    then publishes the result.
  - Reader threads (rendering, statistics readouts) call
    ``SimulationHandle.read()``, which returns an independent deep copy,
    so they never observe a half-updated step and never block the
    stepping thread for longer than a copy.

Runtime controls (pause, time compression) live in RuntimeControls.
Updates take effect at the start of the next iteration; there is no
acknowledgement.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Callable, Optional

import numpy as np

from pandemic_sim.stats import StatisticsRecorder

if TYPE_CHECKING:
    from pandemic_sim.config import RuntimeSection
    from pandemic_sim.model import Simulation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuntimeParameters:
    """Control values applied to one step."""
    running: bool = True
    time_compression: float = 1.0


class RuntimeControls:
    """Thread-safe pause / time-compression state.

    Compression is adjusted multiplicatively by `factor` and kept within
    [min_compression, max_compression].
    """

    def __init__(
        self,
        running: bool = True,
        time_compression: float = 1.0,
        factor: float = 2.0,
        min_compression: float = 1.0 / 64.0,
        max_compression: float = 1024.0,
    ):
        self._lock = threading.Lock()
        self._params = RuntimeParameters(running, time_compression)
        self.factor = factor
        self.min_compression = min_compression
        self.max_compression = max_compression

    @classmethod
    def from_config(cls, section: 'RuntimeSection') -> 'RuntimeControls':
        return cls(
            running=section.running,
            time_compression=section.time_compression,
            factor=section.compression_factor,
            min_compression=section.min_compression,
            max_compression=section.max_compression,
        )

    def current(self) -> RuntimeParameters:
        with self._lock:
            return self._params

    def toggle_running(self) -> RuntimeParameters:
        with self._lock:
            self._params = replace(self._params, running=not self._params.running)
            logger.info("Simulation %s",
                        "resumed" if self._params.running else "paused")
            return self._params

    def _scale(self, multiplier: float) -> RuntimeParameters:
        with self._lock:
            value = self._params.time_compression * multiplier
            value = min(max(value, self.min_compression), self.max_compression)
            self._params = replace(self._params, time_compression=value)
            logger.info("Time compression: %gx", value)
            return self._params

    def increase_time_compression(self) -> RuntimeParameters:
        return self._scale(self.factor)

    def decrease_time_compression(self) -> RuntimeParameters:
        return self._scale(1.0 / self.factor)


class SimulationHandle:
    """Latest published simulation state, read by copy.

    ``version`` increments on every publish so readers can skip frames
    they have already drawn.
    """

    def __init__(self, simulation: 'Simulation'):
        self._lock = threading.Lock()
        self._simulation = simulation
        self.version = 0

    def read(self) -> 'Simulation':
        with self._lock:
            return self._simulation.snapshot()

    def publish(self, simulation: 'Simulation') -> int:
        with self._lock:
            self._simulation = simulation
            self.version += 1
            return self.version


class SimulationRunner(threading.Thread):
    """Background thread stepping the simulation from wall-clock time.

    dt for each iteration is the wall-clock time elapsed since the
    previous one; the simulation applies pause, compression and the
    step ceiling.

    Args:
        handle: Shared state; the runner is its only writer.
        controls: Pause / compression, read at the start of each iteration.
        rng: Stream for step draws (owned by this thread).
        recorder: Optional StatisticsRecorder sampled after each step.
        idle_sleep: Seconds to sleep per iteration while paused.
        clock: Monotonic clock (seconds).
    """

    def __init__(
        self,
        handle: SimulationHandle,
        controls: RuntimeControls,
        rng: np.random.Generator,
        recorder: Optional[StatisticsRecorder] = None,
        idle_sleep: float = 0.01,
        clock: Callable[[], float] = time.perf_counter,
    ):
        super().__init__(name='simulation-runner', daemon=True)
        self.handle = handle
        self.controls = controls
        self.rng = rng
        self.recorder = recorder
        self.idle_sleep = idle_sleep
        self.clock = clock
        self.iterations = 0
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def iterate(self, dt: float) -> None:
        """One iteration: read controls, step a private copy, publish."""
        controls = self.controls.current()
        if not controls.running:
            self._stop_event.wait(self.idle_sleep)
            return

        sim = self.handle.read()
        sim.step(dt, self.rng, controls)
        self.handle.publish(sim)
        self.iterations += 1

        if self.recorder is not None:
            self.recorder.record(sim.time, sim.statistics())

    def run(self) -> None:
        logger.info("Stepping thread started")
        last = self.clock()
        while not self._stop_event.is_set():
            now = self.clock()
            dt, last = now - last, now
            self.iterate(dt)
        logger.info("Stepping thread stopped after %d steps", self.iterations)
