"""Configuration system for pandemic_sim.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → sweep overrides

Every field has a default, so a partial YAML file (or none at all) is a
valid configuration. ``ParameterSet`` is the immutable value the core
simulation consumes; it is flattened from the population, space, disease
and simulation sections.

Transmission probabilities are named source-first:
``infected_to_vaccinated`` is the chance that an unvaccinated infected
agent infects a vaccinated one on contact.
"""

from __future__ import annotations

import dataclasses
import math
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np
import yaml

from pandemic_sim.types import AGENT_RADIUS, RecipientCategory, SourceCategory


VALID_TOPOLOGIES = ("toroidal", "walled")

# Random sequential placement jams well below full packing; above this
# fraction of the space covered by discs, placement gets slow.
CROWDED_FILL_FRACTION = 0.4


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class PopulationSection:
    """Population size, initial seeding and speed distribution."""
    num_people: int = 10000
    init_infected: int = 1
    init_vaccinated: int = 0
    speed_stdev: float = 10.0     # std dev of each velocity component


@dataclass
class SpaceSection:
    """Space dimensions and boundary topology."""
    size_x: float = 300.0
    size_y: float = 300.0
    topology: str = "toroidal"    # 'toroidal' or 'walled'
    max_placement_attempts: int = 1000   # rejected samples allowed per agent


@dataclass
class DiseaseSection:
    """Transmission, recovery and death parameters."""
    # Transmission on contact (source → recipient)
    infected_to_general: float = 0.1
    infected_to_healed: float = 0.02
    infected_to_vaccinated: float = 0.001
    vaccinated_to_general: float = 0.06
    vaccinated_to_healed: float = 0.012
    vaccinated_to_vaccinated: float = 0.0006

    infection_avg_duration: float = 30.0   # time units
    death_rate: float = 0.02               # per infection_avg_duration
    recovery_offset: float = 0.7           # heal_prob = age/avg_duration − offset

    # False = already infected agents are not re-exposed on contact
    allow_reexposure: bool = True


@dataclass
class SimulationSection:
    """Seeding and step control."""
    seed: int = 42
    max_step_duration: float = 0.05   # dt ceiling per step (time units)


@dataclass
class RuntimeSection:
    """Initial interactive controls for the stepping thread."""
    running: bool = True
    time_compression: float = 1.0
    compression_factor: float = 2.0
    min_compression: float = 1.0 / 64.0
    max_compression: float = 1024.0


@dataclass
class OutputSection:
    """Output control."""
    directory: str = "results/"
    record_interval: float = 0.5   # simulated time between statistics samples
    max_samples: Optional[int] = 2000   # history is thinned 2:1 beyond this
    figure_dpi: int = 150


@dataclass
class SimulationConfig:
    """Complete simulation configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    population: PopulationSection = field(default_factory=PopulationSection)
    space: SpaceSection = field(default_factory=SpaceSection)
    disease: DiseaseSection = field(default_factory=DiseaseSection)
    simulation: SimulationSection = field(default_factory=SimulationSection)
    runtime: RuntimeSection = field(default_factory=RuntimeSection)
    output: OutputSection = field(default_factory=OutputSection)


# ═══════════════════════════════════════════════════════════════════════
# PARAMETER SET — immutable value consumed by the core
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ParameterSet:
    """Immutable simulation parameters.

    Built once at startup; the Simulation never mutates it.
    """
    num_people: int = 10000
    size_x: float = 300.0
    size_y: float = 300.0
    init_infected: int = 1
    init_vaccinated: int = 0
    speed_stdev: float = 10.0
    infected_to_general: float = 0.1
    infected_to_healed: float = 0.02
    infected_to_vaccinated: float = 0.001
    vaccinated_to_general: float = 0.06
    vaccinated_to_healed: float = 0.012
    vaccinated_to_vaccinated: float = 0.0006
    infection_avg_duration: float = 30.0
    death_rate: float = 0.02
    recovery_offset: float = 0.7
    allow_reexposure: bool = True
    topology: str = "toroidal"
    max_step_duration: float = 0.05
    max_placement_attempts: int = 1000

    @classmethod
    def from_config(cls, config: SimulationConfig) -> 'ParameterSet':
        """Flatten the core sections of a SimulationConfig."""
        pop, space = config.population, config.space
        dis, sim = config.disease, config.simulation
        return cls(
            num_people=pop.num_people,
            size_x=space.size_x,
            size_y=space.size_y,
            init_infected=pop.init_infected,
            init_vaccinated=pop.init_vaccinated,
            speed_stdev=pop.speed_stdev,
            infected_to_general=dis.infected_to_general,
            infected_to_healed=dis.infected_to_healed,
            infected_to_vaccinated=dis.infected_to_vaccinated,
            vaccinated_to_general=dis.vaccinated_to_general,
            vaccinated_to_healed=dis.vaccinated_to_healed,
            vaccinated_to_vaccinated=dis.vaccinated_to_vaccinated,
            infection_avg_duration=dis.infection_avg_duration,
            death_rate=dis.death_rate,
            recovery_offset=dis.recovery_offset,
            allow_reexposure=dis.allow_reexposure,
            topology=space.topology,
            max_step_duration=sim.max_step_duration,
            max_placement_attempts=space.max_placement_attempts,
        )

    @property
    def space_size(self):
        return (self.size_x, self.size_y)

    @property
    def transmission_matrix(self) -> np.ndarray:
        """(3, 2) array indexed [RecipientCategory, SourceCategory]."""
        table = np.empty((len(RecipientCategory), len(SourceCategory)))
        table[RecipientCategory.GENERAL] = (
            self.infected_to_general, self.vaccinated_to_general)
        table[RecipientCategory.PAST_INFECTED] = (
            self.infected_to_healed, self.vaccinated_to_healed)
        table[RecipientCategory.VACCINATED] = (
            self.infected_to_vaccinated, self.vaccinated_to_vaccinated)
        return table

    def transmission_probability(self, recipient: RecipientCategory,
                                 source: SourceCategory) -> float:
        return float(self.transmission_matrix[recipient, source])

    def validate(self) -> None:
        """Check invariants. Raises ValueError on failure; never clamps."""
        for name in ('infected_to_general', 'infected_to_healed',
                     'infected_to_vaccinated', 'vaccinated_to_general',
                     'vaccinated_to_healed', 'vaccinated_to_vaccinated'):
            p = getattr(self, name)
            if not (0.0 <= p <= 1.0):
                raise ValueError(f"disease.{name} must be in [0, 1], got {p}")

        if not (math.isfinite(self.infection_avg_duration)
                and self.infection_avg_duration > 0):
            raise ValueError(
                f"disease.infection_avg_duration must be finite and > 0, "
                f"got {self.infection_avg_duration}"
            )
        if not (math.isfinite(self.death_rate) and self.death_rate >= 0):
            raise ValueError(
                f"disease.death_rate must be finite and >= 0, got {self.death_rate}")
        if not math.isfinite(self.recovery_offset):
            raise ValueError(
                f"disease.recovery_offset must be finite, got {self.recovery_offset}")
        if not (math.isfinite(self.speed_stdev) and self.speed_stdev >= 0):
            raise ValueError(
                f"population.speed_stdev must be finite and >= 0, "
                f"got {self.speed_stdev}"
            )
        if not (math.isfinite(self.max_step_duration)
                and self.max_step_duration > 0):
            raise ValueError(
                f"simulation.max_step_duration must be finite and > 0, "
                f"got {self.max_step_duration}"
            )
        if self.max_placement_attempts < 1:
            raise ValueError(
                f"space.max_placement_attempts must be >= 1, "
                f"got {self.max_placement_attempts}"
            )

        if self.topology not in VALID_TOPOLOGIES:
            raise ValueError(
                f"space.topology must be one of {VALID_TOPOLOGIES}, "
                f"got '{self.topology}'"
            )
        min_side = 2.0 * AGENT_RADIUS
        for size in (self.size_x, self.size_y):
            if not (math.isfinite(size) and size > min_side):
                raise ValueError(
                    f"space must be finite and larger than {min_side} on both "
                    f"axes, got ({self.size_x}, {self.size_y})"
                )

        if self.num_people < 0:
            raise ValueError(
                f"population.num_people must be >= 0, got {self.num_people}")
        for name in ('init_infected', 'init_vaccinated'):
            n = getattr(self, name)
            if not (0 <= n <= self.num_people):
                raise ValueError(
                    f"population.{name} must be in [0, num_people="
                    f"{self.num_people}], got {n}"
                )

        fill = self.fill_fraction
        if fill > 1.0:
            raise ValueError(
                f"{self.num_people} agents of radius {AGENT_RADIUS} cannot fit "
                f"in a {self.size_x} x {self.size_y} space "
                f"(disc area is {fill:.2f}x the space area)"
            )
        if fill > CROWDED_FILL_FRACTION:
            warnings.warn(
                f"Agents cover {fill:.0%} of the space; initial placement "
                f"may be slow or exhaust its retry budget.",
                UserWarning,
                stacklevel=2,
            )

    @property
    def fill_fraction(self) -> float:
        """Total agent disc area relative to the space area."""
        disc = math.pi * AGENT_RADIUS ** 2
        return self.num_people * disc / (self.size_x * self.size_y)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Args:
        base: Base dictionary (modified in place).
        override: Override dictionary.

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    section_map = {
        'population': PopulationSection,
        'space': SpaceSection,
        'disease': DiseaseSection,
        'simulation': SimulationSection,
        'runtime': RuntimeSection,
        'output': OutputSection,
    }
    sections = {}
    for key, cls in section_map.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    return SimulationConfig(**sections)


def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    Checks:
      - Core parameter invariants (via ParameterSet.validate)
      - Seed is non-negative
      - Runtime compression bounds are ordered and positive
      - Output sampling interval is non-negative, sample cap >= 2
    """
    ParameterSet.from_config(config).validate()

    if config.simulation.seed < 0:
        raise ValueError("simulation.seed must be non-negative")

    rt = config.runtime
    if rt.compression_factor <= 1.0:
        raise ValueError(
            f"runtime.compression_factor must be > 1, got {rt.compression_factor}")
    if not (0 < rt.min_compression <= rt.max_compression):
        raise ValueError(
            f"runtime compression bounds must satisfy 0 < min <= max, got "
            f"[{rt.min_compression}, {rt.max_compression}]"
        )
    if not (rt.min_compression <= rt.time_compression <= rt.max_compression):
        raise ValueError(
            f"runtime.time_compression ({rt.time_compression}) must be in "
            f"[{rt.min_compression}, {rt.max_compression}]"
        )

    if not (config.output.record_interval >= 0):
        raise ValueError(
            f"output.record_interval must be >= 0, "
            f"got {config.output.record_interval}"
        )
    max_samples = config.output.max_samples
    if max_samples is not None and max_samples < 2:
        raise ValueError(
            f"output.max_samples must be >= 2 or null, got {max_samples}")


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    sweep_overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → sweep overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML.
        sweep_overrides: Optional dict of parameter overrides.

    Returns:
        Validated SimulationConfig.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)

    if sweep_overrides is not None:
        deep_merge(config_dict, sweep_overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config
