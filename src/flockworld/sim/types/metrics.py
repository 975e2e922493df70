from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class TickMetrics:
    tick: int
    population: int
    prey: int
    predators: int
    births: int
    deaths: int
    eaten: int
    starved: int
    old_age: int
    average_food: float
    average_age: float
    neighbor_checks: int
    eating_predators: int = 0
    tick_duration_ms: float = 0.0
