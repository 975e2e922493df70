"""
Flocking forces for a single boid.

Every function here is a pure function of the boid's current state, a literal
neighbour list and the flocking weights; nothing is mutated. The steering rules
follow Harry Brundage's write-up of Reynolds flocking
(http://harry.me/blog/2011/02/17/neat-algorithms-flocking/).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Sequence

from pygame.math import Vector2

from ..core.config import FlockConfig
from ..core.rng import DeterministicRng
from ..utils.math2d import disc_distance, disc_offset, limit_ip

if TYPE_CHECKING:
    from ..core.agent import Boid


class NeighborSource(Protocol):
    """What the steering core needs from the world holding the boids."""

    @property
    def radius(self) -> float: ...

    @property
    def rng(self) -> DeterministicRng: ...

    def neighbors(self, boid: Boid, want_prey: bool) -> Sequence[Boid]:
        """Boids of the requested kind, nearest first, never ``boid`` itself."""
        ...


def separate(
    boid: Boid,
    neighbors: Sequence[Boid],
    separation_radius: float,
    world_radius: float,
    rng: DeterministicRng,
) -> Vector2:
    separation_vector = Vector2()
    count = 0
    zero_detected = False
    position = boid.position
    for other in neighbors:
        toward = disc_offset(position, other.position, world_radius)
        distance = toward.length()
        if 0 < distance < separation_radius:
            away = -toward
            away.normalize_ip()
            away /= distance
            separation_vector += away
            count += 1
        zero_detected = zero_detected or distance == 0
    if count > 0:
        separation_vector /= count
    elif zero_detected:
        # everyone is stacked on top of us, pick a direction at random
        separation_vector = rng.next_unit_circle() * boid.traits.max_force
    return separation_vector


def align(boid: Boid, neighbors: Sequence[Boid], world_radius: float) -> Vector2:
    average_velocity = Vector2()
    count = 0
    neighbor_radius = boid.motion.neighbor_radius
    for other in neighbors:
        distance = disc_distance(boid.position, other.position, world_radius)
        if 0 < distance < neighbor_radius:
            average_velocity += other.velocity
            count += 1
    if count > 0:
        average_velocity /= count
    return limit_ip(average_velocity, boid.traits.max_force)


def cohere(boid: Boid, neighbors: Sequence[Boid], world_radius: float) -> Vector2:
    average_position = Vector2()
    count = 0
    neighbor_radius = boid.motion.neighbor_radius
    for other in neighbors:
        # average the images nearest to us so flocks straddling the seam hold together
        toward = disc_offset(boid.position, other.position, world_radius)
        if 0 < toward.length() < neighbor_radius:
            average_position += boid.position + toward
            count += 1
    if count == 0:
        return average_position
    average_position /= count
    return steer_to(boid, average_position)


def steer_to(boid: Boid, target: Vector2, world_radius: float | None = None) -> Vector2:
    """Steer toward ``target``; with ``world_radius`` given, through the seam if that is shorter."""
    if world_radius is None:
        desired = target - boid.position
    else:
        desired = disc_offset(boid.position, target, world_radius)
    distance = desired.length()
    if distance <= 0:
        return Vector2()
    desired.normalize_ip()
    arrival_radius = boid.motion.arrival_radius
    if distance < arrival_radius:
        # slow down on approach so the boid does not overshoot
        desired *= boid.max_speed() * distance / arrival_radius
    else:
        desired *= boid.max_speed()
    steer = desired - boid.velocity
    return limit_ip(steer, boid.traits.max_force)


def flock(
    boid: Boid,
    neighbors: Sequence[Boid],
    config: FlockConfig,
    world_radius: float,
    rng: DeterministicRng,
) -> Vector2:
    s = separate(boid, neighbors, config.separation_radius, world_radius, rng) * config.separation_weight
    a = align(boid, neighbors, world_radius) * config.alignment_weight
    c = cohere(boid, neighbors, world_radius) * config.cohesion_weight
    return s + a + c


def compute_acceleration(boid: Boid, world: NeighborSource) -> Vector2:
    world_radius = world.radius
    rng = world.rng
    genetics = boid.genetics

    prey = world.neighbors(boid, True)
    flock_prey = flock(boid, prey, genetics.prey_flocking, world_radius, rng)
    predators = world.neighbors(boid, False)
    flock_predators = flock(boid, predators, genetics.predator_flocking, world_radius, rng)

    if not boid.is_prey:
        # Averaging over many prey can cancel out and leave a predator undecided;
        # an extra pull toward the nearest one breaks the tie.
        closest = list(prey[:1])
        flock_prey += flock(boid, closest, genetics.closest_flocking, world_radius, rng)

    return flock_prey + flock_predators
