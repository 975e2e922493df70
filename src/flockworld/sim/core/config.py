from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict

import yaml


class BoidKind(str, Enum):
    PREY = "Prey"
    PREDATOR = "Predator"


@dataclass(frozen=True)
class FlockConfig:
    separation_radius: float = 20.0
    separation_weight: float = 1.0
    alignment_weight: float = 1.0
    cohesion_weight: float = 1.0

    def __post_init__(self) -> None:
        if self.separation_radius <= 0:
            raise ValueError(f"separation_radius must be positive, got {self.separation_radius}")


@dataclass(frozen=True)
class Genetics:
    # prey_flocking reacts to prey neighbours, predator_flocking to predators,
    # closest_flocking (predators only) to the single nearest prey.
    prey_flocking: FlockConfig = field(default_factory=FlockConfig)
    predator_flocking: FlockConfig = field(default_factory=FlockConfig)
    closest_flocking: FlockConfig = field(default_factory=FlockConfig)


@dataclass
class KindConfig:
    speed_factor: float = 1.0
    radius: float = 4.0
    max_force: float = 0.1
    food_eaten_per_step: float = 1.0
    energy_required_for_reproduction: float = 200.0
    turns_to_reproduce: int = 300
    starting_food: float = 100.0
    age_factor: float = 0.95
    max_age: int = 3000
    metabolism_per_step: float = 0.5


@dataclass
class MotionConfig:
    base_speed: float = 2.0
    age_period: float = 60.0
    neighbor_radius: float = 50.0
    arrival_radius: float = 100.0
    boundary_margin: float = 20.0
    boundary_strength: float = 100.0


def _default_prey() -> KindConfig:
    return KindConfig()


def _default_predator() -> KindConfig:
    return KindConfig(
        speed_factor=1.25,
        radius=6.0,
        max_force=0.15,
        food_eaten_per_step=12.0,
        energy_required_for_reproduction=400.0,
        turns_to_reproduce=500,
        starting_food=300.0,
        age_factor=0.97,
        max_age=4000,
        metabolism_per_step=1.0,
    )


def _default_prey_genetics() -> Genetics:
    return Genetics(
        prey_flocking=FlockConfig(separation_radius=15.0, separation_weight=1.5, alignment_weight=1.0, cohesion_weight=1.0),
        predator_flocking=FlockConfig(separation_radius=60.0, separation_weight=4.0, alignment_weight=0.0, cohesion_weight=-1.0),
        closest_flocking=FlockConfig(separation_radius=1.0, separation_weight=0.0, alignment_weight=0.0, cohesion_weight=0.0),
    )


def _default_predator_genetics() -> Genetics:
    return Genetics(
        prey_flocking=FlockConfig(separation_radius=5.0, separation_weight=0.0, alignment_weight=0.2, cohesion_weight=1.0),
        predator_flocking=FlockConfig(separation_radius=30.0, separation_weight=1.5, alignment_weight=0.5, cohesion_weight=0.2),
        closest_flocking=FlockConfig(separation_radius=5.0, separation_weight=0.0, alignment_weight=0.0, cohesion_weight=2.0),
    )


@dataclass
class SimulationConfig:
    time_step: float = 1.0 / 30.0
    world_radius: float = 400.0
    initial_prey: int = 120
    initial_predators: int = 6
    max_prey: int = 400
    max_predators: int = 30
    vision_radius: float = 60.0
    cell_size: float = 60.0
    eating_ticks: int = 10
    seed: int = 42
    config_version: str = "v1"
    motion: MotionConfig = field(default_factory=MotionConfig)
    prey: KindConfig = field(default_factory=_default_prey)
    predator: KindConfig = field(default_factory=_default_predator)
    prey_genetics: Genetics = field(default_factory=_default_prey_genetics)
    predator_genetics: Genetics = field(default_factory=_default_predator_genetics)

    def kind_config(self, kind: BoidKind) -> KindConfig:
        return self.prey if kind is BoidKind.PREY else self.predator

    def genetics_for(self, kind: BoidKind) -> Genetics:
        return self.prey_genetics if kind is BoidKind.PREY else self.predator_genetics

    def max_population(self, kind: BoidKind) -> int:
        return self.max_prey if kind is BoidKind.PREY else self.max_predators

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)


def _check_section(raw: Any, cls: type, section: str) -> Dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"config section '{section}' must be a mapping, got {type(raw).__name__}")
    unknown = sorted(set(raw) - {f.name for f in fields(cls)})
    if unknown:
        raise ValueError(f"unknown keys in config section '{section}': {', '.join(unknown)}")
    return raw


def _load_flocking(raw: Any, section: str) -> FlockConfig:
    return FlockConfig(**_check_section(raw, FlockConfig, section))


def _load_genetics(raw: Any, default: Genetics, section: str) -> Genetics:
    values = _check_section(raw, Genetics, section)
    if not values:
        return default
    merged = {f.name: getattr(default, f.name) for f in fields(Genetics)}
    for name, flocking in values.items():
        merged[name] = _load_flocking(flocking, f"{section}.{name}")
    return Genetics(**merged)


def _load_kind(raw: Any, default: KindConfig, section: str) -> KindConfig:
    values = asdict(default)
    values.update(_check_section(raw, KindConfig, section))
    return KindConfig(**values)


def load_config(raw: dict) -> SimulationConfig:
    """Build a config from a nested mapping; unknown or malformed sections raise ``ValueError``."""
    raw = _check_section(raw, SimulationConfig, "root")
    motion = MotionConfig(**_check_section(raw.get("motion"), MotionConfig, "motion"))
    prey = _load_kind(raw.get("prey"), _default_prey(), "prey")
    predator = _load_kind(raw.get("predator"), _default_predator(), "predator")
    prey_genetics = _load_genetics(raw.get("prey_genetics"), _default_prey_genetics(), "prey_genetics")
    predator_genetics = _load_genetics(
        raw.get("predator_genetics"), _default_predator_genetics(), "predator_genetics"
    )
    sim_values = {
        k: v
        for k, v in raw.items()
        if k not in {"motion", "prey", "predator", "prey_genetics", "predator_genetics"}
    }
    return SimulationConfig(
        motion=motion,
        prey=prey,
        predator=predator,
        prey_genetics=prey_genetics,
        predator_genetics=predator_genetics,
        **sim_values,
    )
