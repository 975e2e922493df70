from __future__ import annotations

from typing import Iterable, TYPE_CHECKING

from ..core.config import BoidKind
from ..types.metrics import TickMetrics

if TYPE_CHECKING:
    from ..core.agent import Boid


def create_metrics(
    tick: int,
    boids: Iterable[Boid],
    births: int,
    deaths_by_cause: dict[str, int],
    neighbor_checks: int,
    duration_ms: float,
) -> TickMetrics:
    population = 0
    prey = 0
    eating = 0
    food_sum = 0.0
    age_sum = 0.0
    for boid in boids:
        if not boid.alive:
            continue
        population += 1
        if boid.kind is BoidKind.PREY:
            prey += 1
        elif boid.busy_eating > 0:
            eating += 1
        food_sum += boid.food
        age_sum += boid.age
    return TickMetrics(
        tick=tick,
        population=population,
        prey=prey,
        predators=population - prey,
        births=births,
        deaths=sum(deaths_by_cause.values()),
        eaten=deaths_by_cause.get("eaten", 0),
        starved=deaths_by_cause.get("starved", 0),
        old_age=deaths_by_cause.get("old_age", 0),
        average_food=food_sum / population if population else 0.0,
        average_age=age_sum / population if population else 0.0,
        neighbor_checks=neighbor_checks,
        eating_predators=eating,
        tick_duration_ms=duration_ms,
    )
