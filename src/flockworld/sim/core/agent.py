from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from pygame.math import Vector2

from ..systems import steering
from ..utils.math2d import limit_ip, round_half_up, safe_normalize, wrap_ip
from .config import BoidKind, Genetics, KindConfig, MotionConfig

if TYPE_CHECKING:
    from ..systems.steering import NeighborSource

# Keeps the inverse-square rim force finite for a boid sitting on the rim.
_MIN_EDGE_DISTANCE = 1e-6


class MovementState(str, Enum):
    HUNTING = "Hunting"
    EATING = "Eating"


class IdAllocator:
    """Hands out boid ids in increasing order; ids are never reused."""

    def __init__(self, start: int = 0):
        self._next_id = start

    def next_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def reset(self, start: int = 0) -> None:
        self._next_id = start


@dataclass(slots=True, eq=False)
class Boid:
    id: int
    kind: BoidKind
    traits: KindConfig
    motion: MotionConfig
    genetics: Genetics
    position: Vector2
    velocity: Vector2
    food: float | None = None
    age: int = 0
    steps_since_last_reproduction: int = 0
    busy_eating: int = 0
    generation: int = 0
    alive: bool = True
    death_cause: str | None = None
    last_acceleration: Vector2 = field(default_factory=Vector2)

    def __post_init__(self) -> None:
        self.position = Vector2(self.position)
        self.velocity = limit_ip(Vector2(self.velocity), self.max_speed())
        if self.food is None:
            self.food = self.traits.starting_food

    @property
    def is_prey(self) -> bool:
        return self.kind is BoidKind.PREY

    @property
    def movement_state(self) -> MovementState:
        return MovementState.EATING if self.busy_eating > 0 else MovementState.HUNTING

    def max_speed(self) -> float:
        periods = round_half_up(self.age / self.motion.age_period)
        return self.traits.speed_factor * self.motion.base_speed * self.traits.age_factor ** periods

    def record_reproduction_tick(self) -> None:
        self.steps_since_last_reproduction += 1

    def is_eligible_to_reproduce(self) -> bool:
        return (
            self.steps_since_last_reproduction > self.traits.turns_to_reproduce
            and self.food > self.traits.energy_required_for_reproduction
        )

    def can_reproduce(self) -> bool:
        """
        Advance the reproduction clock by one tick and report eligibility.

        The clock moves on every call, so the orchestrator calls this exactly once
        per tick. Use ``is_eligible_to_reproduce`` for side-effect free checks.
        """

        self.record_reproduction_tick()
        return self.is_eligible_to_reproduce()

    def reset_reproduction_clock(self) -> None:
        self.steps_since_last_reproduction = 0

    def gain_food(self, amount: float) -> None:
        self.food += amount

    def start_eating(self, ticks: int) -> None:
        if self.is_prey:
            raise ValueError(f"boid {self.id} is prey and cannot start eating")
        if ticks < 0:
            raise ValueError(f"eating ticks must be non-negative, got {ticks}")
        self.busy_eating = ticks

    def step(self, world_radius: float) -> None:
        motion = self.motion
        dist_to_edge = world_radius - self.position.length()
        if dist_to_edge < motion.boundary_margin and self.position.length_squared() > 0:
            dist_to_edge = max(dist_to_edge, _MIN_EDGE_DISTANCE)
            strength = self.traits.max_force * motion.boundary_strength / (dist_to_edge * dist_to_edge)
            self.velocity -= safe_normalize(self.position) * strength
            limit_ip(self.velocity, self.max_speed())
        self.position += self.velocity
        wrap_ip(self.position, world_radius)
        self.age += 1
        # ageing can lower the cap
        limit_ip(self.velocity, self.max_speed())

    def compute_acceleration(self, world: NeighborSource) -> Vector2:
        return steering.compute_acceleration(self, world)

    def apply_acceleration(self, acceleration: Vector2 | None) -> None:
        if self.movement_state is MovementState.EATING:
            self.busy_eating -= 1
            self.velocity.update(0.0, 0.0)
            self.last_acceleration.update(0.0, 0.0)
            return
        if acceleration is None:
            raise ValueError(f"boid {self.id} is hunting and needs an acceleration")
        self.last_acceleration.update(acceleration.x, acceleration.y)
        self.velocity += acceleration
        limit_ip(self.velocity, self.max_speed())

    def accelerate(self, world: NeighborSource) -> None:
        if self.movement_state is MovementState.EATING:
            self.apply_acceleration(None)
            return
        self.apply_acceleration(self.compute_acceleration(world))
