from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Collection, List

from ..core.config import BoidKind
from ..utils.math2d import disc_distance, wrap_ip

if TYPE_CHECKING:
    from ..core.agent import Boid
    from ..core.world import World

logger = logging.getLogger(__name__)

EATEN = "eaten"
STARVED = "starved"
OLD_AGE = "old_age"


def kill(boid: Boid, cause: str) -> None:
    boid.alive = False
    boid.death_cause = cause


def feed(world: World, eating_ids: Collection[int]) -> None:
    """Charge metabolism, let prey graze and let eating predators digest."""
    for boid in world.boids:
        if not boid.alive:
            continue
        traits = boid.traits
        boid.gain_food(-traits.metabolism_per_step)
        if boid.is_prey or boid.id in eating_ids:
            boid.gain_food(traits.food_eaten_per_step)


def hunt(world: World) -> int:
    config = world.config
    catch_distance = config.predator.radius + config.prey.radius
    kills = 0
    for predator in world.boids:
        if not predator.alive or predator.is_prey or predator.busy_eating > 0:
            continue
        for prey in world.neighbors(predator, True):
            if not prey.alive:
                continue
            if disc_distance(predator.position, prey.position, world.radius) <= catch_distance:
                kill(prey, EATEN)
                predator.start_eating(config.eating_ticks)
                kills += 1
                logger.debug("predator %d ate prey %d", predator.id, prey.id)
            # nearest living prey decides; the rest are further away
            break
    return kills


def cull(world: World) -> None:
    for boid in world.boids:
        if not boid.alive:
            continue
        if boid.food <= 0:
            kill(boid, STARVED)
        elif boid.age > boid.traits.max_age:
            kill(boid, OLD_AGE)


def reproduce(world: World) -> List[Boid]:
    """
    Advance every living boid's reproduction clock once and spawn offspring.

    Offspring share the parent's genetics object; the parent pays the child's
    starting food and its clock starts over. Births stop once a kind reaches its
    population cap.
    """

    config = world.config
    rng = world.rng
    counts = {BoidKind.PREY: 0, BoidKind.PREDATOR: 0}
    for boid in world.boids:
        if boid.alive:
            counts[boid.kind] += 1

    births: List[Boid] = []
    for parent in world.boids:
        if not parent.alive or not parent.can_reproduce():
            continue
        if counts[parent.kind] >= config.max_population(parent.kind):
            continue
        traits = parent.traits
        position = parent.position + rng.next_unit_circle() * (traits.radius * 2.0)
        wrap_ip(position, world.radius)
        child = world.create_boid(
            parent.kind,
            position,
            velocity=rng.next_vector(parent.max_speed()),
            genetics=parent.genetics,
            generation=parent.generation + 1,
        )
        parent.gain_food(-traits.starting_food)
        parent.reset_reproduction_clock()
        counts[parent.kind] += 1
        births.append(child)
    return births
