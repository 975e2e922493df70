from __future__ import annotations

import logging
from time import perf_counter
from typing import Dict, List, Optional

from pygame.math import Vector2

from .agent import Boid, IdAllocator, MovementState
from .config import BoidKind, Genetics, SimulationConfig
from .rng import DeterministicRng
from .spatial_grid import SpatialGrid
from ..systems import lifecycle, metrics as metrics_system
from ..types.metrics import TickMetrics
from ..types.snapshot import Snapshot, SnapshotMetadata, SnapshotWorld
from ..utils.math2d import disc_distance, heading_from_velocity, mirror_position

logger = logging.getLogger(__name__)


class World:
    """
    The disc holding every boid.

    Answers neighbour queries for the steering core and runs the tick: all
    accelerations are computed from the same read-only state before any boid
    moves, so results do not depend on iteration order.
    """

    def __init__(self, config: SimulationConfig):
        self._config = config
        self._rng = DeterministicRng(config.seed)
        self._ids = IdAllocator()
        self._grid = SpatialGrid(config.cell_size)
        self._boids: List[Boid] = []
        self._metrics: TickMetrics | None = None
        self._neighbor_checks = 0
        self._bootstrap_population()

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def radius(self) -> float:
        return self._config.world_radius

    @property
    def rng(self) -> DeterministicRng:
        return self._rng

    @property
    def boids(self) -> List[Boid]:
        return self._boids

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    def reset(self) -> None:
        self._boids.clear()
        self._grid.clear()
        self._rng.reset()
        self._ids.reset()
        self._metrics = None
        self._neighbor_checks = 0
        self._bootstrap_population()

    def create_boid(
        self,
        kind: BoidKind,
        position: Vector2,
        velocity: Optional[Vector2] = None,
        genetics: Optional[Genetics] = None,
        food: Optional[float] = None,
        generation: int = 0,
    ) -> Boid:
        """Build a boid with a fresh id without adding it to the world."""
        return Boid(
            id=self._ids.next_id(),
            kind=kind,
            traits=self._config.kind_config(kind),
            motion=self._config.motion,
            genetics=genetics if genetics is not None else self._config.genetics_for(kind),
            position=position,
            velocity=velocity if velocity is not None else Vector2(),
            food=food,
            generation=generation,
        )

    def spawn(
        self,
        kind: BoidKind,
        position: Vector2,
        velocity: Optional[Vector2] = None,
        genetics: Optional[Genetics] = None,
        food: Optional[float] = None,
        generation: int = 0,
    ) -> Boid:
        if Vector2(position).length() > self.radius:
            raise ValueError(f"position {tuple(position)} lies outside the world radius {self.radius}")
        boid = self.create_boid(kind, position, velocity, genetics, food, generation)
        self._boids.append(boid)
        self._grid.insert(boid)
        return boid

    def find(self, boid_id: int) -> Boid | None:
        for boid in self._boids:
            if boid.id == boid_id and boid.alive:
                return boid
        return None

    def neighbors(self, boid: Boid, want_prey: bool) -> List[Boid]:
        """Living boids of the requested kind within vision, nearest first."""
        radius = self._config.vision_radius
        world_radius = self.radius
        candidates = self._grid.get_neighbors(boid.position, radius)
        if world_radius - boid.position.length() < radius:
            # Boids across the seam sit near our mirror image; the mirror map
            # stretches distances a little, hence the wider search.
            candidates.extend(self._grid.get_neighbors(mirror_position(boid.position, world_radius), radius * 2.0))

        seen: set[int] = set()
        ranked: list[tuple[float, int, Boid]] = []
        for other in candidates:
            if other is boid or other.id in seen or not other.alive or other.is_prey != want_prey:
                continue
            seen.add(other.id)
            distance = disc_distance(boid.position, other.position, world_radius)
            if distance <= radius:
                ranked.append((distance, other.id, other))
        self._neighbor_checks += len(ranked)
        ranked.sort(key=lambda entry: (entry[0], entry[1]))
        return [entry[2] for entry in ranked]

    def step(self, tick: int) -> TickMetrics:
        start = perf_counter()
        self._neighbor_checks = 0
        world_radius = self.radius
        self._rebuild_grid()

        # Phase 1: read-only force computation.
        eating_ids = set()
        accelerations: List[Vector2 | None] = []
        for boid in self._boids:
            if boid.movement_state is MovementState.EATING:
                eating_ids.add(boid.id)
                accelerations.append(None)
            else:
                accelerations.append(boid.compute_acceleration(self))

        # Phase 2: every boid mutates only itself.
        for boid, acceleration in zip(self._boids, accelerations):
            boid.apply_acceleration(acceleration)
            boid.step(world_radius)

        self._rebuild_grid()
        lifecycle.feed(self, eating_ids)
        lifecycle.hunt(self)
        lifecycle.cull(self)
        births = lifecycle.reproduce(self)

        deaths_by_cause: Dict[str, int] = {}
        survivors: List[Boid] = []
        for boid in self._boids:
            if boid.alive:
                survivors.append(boid)
            else:
                cause = boid.death_cause or "unknown"
                deaths_by_cause[cause] = deaths_by_cause.get(cause, 0) + 1
        survivors.extend(births)
        self._boids = survivors

        duration_ms = (perf_counter() - start) * 1000.0
        self._metrics = metrics_system.create_metrics(
            tick, self._boids, len(births), deaths_by_cause, self._neighbor_checks, duration_ms
        )
        if births or deaths_by_cause:
            logger.debug("tick %d: %d births, deaths %s", tick, len(births), deaths_by_cause)
        return self._metrics

    def snapshot(self, tick: int) -> Snapshot:
        metrics = self._metrics
        if metrics is None:
            metrics = metrics_system.create_metrics(tick, self._boids, 0, {}, 0, 0.0)
        agents = [describe_boid(boid) for boid in self._boids if boid.alive]
        config = self._config
        return Snapshot(
            tick=tick,
            metrics=metrics,
            agents=agents,
            world=SnapshotWorld(radius=config.world_radius),
            metadata=SnapshotMetadata(
                world_radius=config.world_radius,
                sim_dt=config.time_step,
                tick_rate=1.0 / config.time_step if config.time_step > 0 else 0.0,
                seed=config.seed,
                config_version=config.config_version,
            ),
        )

    def _rebuild_grid(self) -> None:
        self._grid.clear()
        for boid in self._boids:
            if boid.alive:
                self._grid.insert(boid)

    def _bootstrap_population(self) -> None:
        config = self._config
        spawn_radius = max(0.0, config.world_radius - config.motion.boundary_margin)
        for kind, count in ((BoidKind.PREY, config.initial_prey), (BoidKind.PREDATOR, config.initial_predators)):
            for _ in range(count):
                position = self._rng.next_point_in_disc(spawn_radius)
                velocity = self._rng.next_vector(config.motion.base_speed)
                self.spawn(kind, position, velocity)
        logger.info(
            "bootstrapped %d prey and %d predators on a disc of radius %.1f",
            config.initial_prey,
            config.initial_predators,
            config.world_radius,
        )


def describe_boid(boid: Boid) -> dict:
    velocity = boid.velocity
    return {
        "id": boid.id,
        "kind": boid.kind.value,
        "x": boid.position.x,
        "y": boid.position.y,
        "vx": velocity.x,
        "vy": velocity.y,
        "heading": heading_from_velocity(velocity),
        "speed": velocity.length(),
        "radius": boid.traits.radius,
        "age": boid.age,
        "food": boid.food,
        "generation": boid.generation,
        "state": boid.movement_state.value,
    }
