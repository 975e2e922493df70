from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from pathlib import Path
from typing import Optional

from ..sim.core.config import BoidKind, SimulationConfig
from ..sim.core.world import World
from ..sim.types.metrics import TickMetrics

logger = logging.getLogger(__name__)

_BASIC_HEADER = [
    "tick",
    "population",
    "prey",
    "predators",
    "births",
    "deaths",
    "avg_food",
    "avg_age",
    "neighbor_checks",
    "tick_ms",
]

_DETAILED_HEADER = _BASIC_HEADER + [
    "eaten",
    "starved",
    "old_age",
    "eating_predators",
    "predator_prey_ratio",
    "births_per_agent",
    "deaths_per_agent",
    "neighbor_checks_per_agent",
    "avg_speed",
    "avg_prey_food",
    "avg_predator_food",
    "max_generation",
    "population_density",
]


def _format_basic_row(metrics: TickMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.tick,
        metrics.population,
        metrics.prey,
        metrics.predators,
        metrics.births,
        metrics.deaths,
        f"{metrics.average_food:.4f}",
        f"{metrics.average_age:.4f}",
        metrics.neighbor_checks,
        f"{tick_ms:.3f}",
    ]


def _format_detailed_row(world: World, metrics: TickMetrics, tick_ms: float) -> list[object]:
    population = metrics.population
    speed_sum = 0.0
    food_sums = {BoidKind.PREY: 0.0, BoidKind.PREDATOR: 0.0}
    max_generation = 0
    for boid in world.boids:
        if not boid.alive:
            continue
        speed_sum += boid.velocity.length()
        food_sums[boid.kind] += boid.food
        max_generation = max(max_generation, boid.generation)

    if population > 0:
        births_per_agent = metrics.births / population
        deaths_per_agent = metrics.deaths / population
        neighbor_checks_per_agent = metrics.neighbor_checks / population
        avg_speed = speed_sum / population
    else:
        births_per_agent = 0.0
        deaths_per_agent = 0.0
        neighbor_checks_per_agent = 0.0
        avg_speed = 0.0
    avg_prey_food = food_sums[BoidKind.PREY] / metrics.prey if metrics.prey else 0.0
    avg_predator_food = food_sums[BoidKind.PREDATOR] / metrics.predators if metrics.predators else 0.0
    ratio = metrics.predators / metrics.prey if metrics.prey else 0.0
    area = math.pi * world.radius * world.radius
    population_density = population / area if area > 0 else 0.0

    return _format_basic_row(metrics, tick_ms) + [
        metrics.eaten,
        metrics.starved,
        metrics.old_age,
        metrics.eating_predators,
        f"{ratio:.4f}",
        f"{births_per_agent:.4f}",
        f"{deaths_per_agent:.4f}",
        f"{neighbor_checks_per_agent:.4f}",
        f"{avg_speed:.4f}",
        f"{avg_prey_food:.4f}",
        f"{avg_predator_food:.4f}",
        max_generation,
        f"{population_density:.6f}",
    ]


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(sum(values) / len(values)),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p99": _percentile(sorted_values, 0.99),
    }


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    log_format: str = "detailed",
    summary_path: Optional[Path] = None,
    summary_window: int = 5000,
    config_path: Optional[Path] = None,
) -> TickMetrics | None:
    log_mode = log_format.lower().strip()
    if log_mode not in {"basic", "detailed"}:
        raise ValueError(f"Unknown log format: {log_format}")

    config = SimulationConfig.from_yaml(config_path) if config_path else SimulationConfig()
    if seed is not None:
        config.seed = seed
    world = World(config)
    logger.info("running %d steps with seed %d", steps, config.seed)

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_DETAILED_HEADER if log_mode == "detailed" else _BASIC_HEADER)

    tick_ms_series: list[float] = []
    prey_series: list[float] = []
    predator_series: list[float] = []
    total_births = 0
    total_deaths = 0
    extinct_tick: int | None = None
    metrics: TickMetrics | None = None

    try:
        for tick in range(steps):
            metrics = world.step(tick)
            tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms
            tick_ms_series.append(tick_ms)
            prey_series.append(float(metrics.prey))
            predator_series.append(float(metrics.predators))
            total_births += metrics.births
            total_deaths += metrics.deaths
            if writer:
                if log_mode == "detailed":
                    writer.writerow(_format_detailed_row(world, metrics, tick_ms))
                else:
                    writer.writerow(_format_basic_row(metrics, tick_ms))
            if metrics.population == 0:
                extinct_tick = tick
                logger.warning("population went extinct at tick %d", tick)
                break
    finally:
        if csv_file:
            csv_file.close()

    if metrics is not None:
        logger.info(
            "finished at tick %d: %d prey, %d predators, %d births, %d deaths",
            metrics.tick,
            metrics.prey,
            metrics.predators,
            total_births,
            total_deaths,
        )

    if summary_path:
        window = max(1, int(summary_window))
        tail = slice(max(0, len(tick_ms_series) - window), len(tick_ms_series))
        summary = {
            "steps": steps,
            "ticks_run": len(tick_ms_series),
            "seed": config.seed,
            "log_format": log_mode,
            "deterministic_log": deterministic_log,
            "extinct_tick": extinct_tick,
            "births": total_births,
            "deaths": total_deaths,
            "tick_ms": _summary_stats(tick_ms_series),
            "prey": _summary_stats(prey_series),
            "predators": _summary_stats(predator_series),
            "tail_window": {
                "window": window,
                "tick_ms": _summary_stats(tick_ms_series[tail]),
                "prey": _summary_stats(prey_series[tail]),
                "predators": _summary_stats(predator_series[tail]),
            },
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))
    return metrics


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless predator-prey flocking simulation")
    parser.add_argument("--steps", type=int, default=3000)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="YAML file overriding the default configuration")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write metrics")
    parser.add_argument(
        "--log-format",
        choices=["basic", "detailed"],
        default="detailed",
        help="CSV format to write when --log is provided.",
    )
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Optional JSON file to write summary stats for the run.",
    )
    parser.add_argument(
        "--summary-window",
        type=int,
        default=5000,
        help="Tail window size (ticks) for summary stats.",
    )
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...)")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_headless(
        args.steps,
        args.seed,
        args.log,
        deterministic_log=args.deterministic_log,
        log_format=args.log_format,
        summary_path=args.summary,
        summary_window=args.summary_window,
        config_path=args.config,
    )


if __name__ == "__main__":
    main()
