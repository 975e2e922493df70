from __future__ import annotations

from pygame.math import Vector2
from pytest import approx

from flockworld.sim.core.config import BoidKind, KindConfig, MotionConfig, SimulationConfig
from flockworld.sim.core.world import World
from flockworld.sim.systems import lifecycle


def _empty_config(**overrides) -> SimulationConfig:
    values = dict(initial_prey=0, initial_predators=0, world_radius=200.0, vision_radius=40.0, cell_size=20.0)
    values.update(overrides)
    return SimulationConfig(**values)


def run_steps(config: SimulationConfig, steps: int):
    world = World(config)
    history = []
    for tick in range(steps):
        metrics = world.step(tick)
        history.append((metrics.prey, metrics.predators, metrics.births, metrics.deaths, round(metrics.average_food, 4)))
    positions = [(b.id, round(b.position.x, 6), round(b.position.y, 6)) for b in world.boids]
    return history, positions


def test_deterministic_steps():
    config = SimulationConfig(seed=1234, initial_prey=40, initial_predators=3)
    result_a = run_steps(config, 40)
    # recreate config to ensure RNG resets
    config_b = SimulationConfig(seed=1234, initial_prey=40, initial_predators=3)
    result_b = run_steps(config_b, 40)
    assert result_a == result_b


def test_bootstrap_population_inside_disc_with_unique_ids():
    config = SimulationConfig(seed=3, initial_prey=50, initial_predators=5)
    world = World(config)

    assert sum(1 for b in world.boids if b.is_prey) == 50
    assert sum(1 for b in world.boids if not b.is_prey) == 5
    assert len({b.id for b in world.boids}) == 55
    limit = config.world_radius - config.motion.boundary_margin
    assert all(b.position.length() <= limit + 1e-9 for b in world.boids)


def test_neighbors_sorted_filtered_and_exclude_self():
    world = World(_empty_config())
    me = world.spawn(BoidKind.PREY, Vector2(0.0, 0.0))
    far = world.spawn(BoidKind.PREY, Vector2(30.0, 0.0))
    near = world.spawn(BoidKind.PREY, Vector2(0.0, 10.0))
    hunter = world.spawn(BoidKind.PREDATOR, Vector2(-5.0, 0.0))
    world.spawn(BoidKind.PREY, Vector2(100.0, 0.0))

    assert world.neighbors(me, True) == [near, far]
    assert world.neighbors(me, False) == [hunter]
    assert world.neighbors(hunter, False) == []


def test_neighbors_reach_across_the_seam():
    world = World(_empty_config(world_radius=100.0, vision_radius=20.0))
    left = world.spawn(BoidKind.PREY, Vector2(-95.0, 0.0))
    right = world.spawn(BoidKind.PREY, Vector2(95.0, 0.0))

    assert world.neighbors(right, True) == [left]
    assert world.neighbors(left, True) == [right]


def test_prey_flee_a_predator_across_the_seam():
    world = World(_empty_config(world_radius=100.0, vision_radius=20.0))
    prey = world.spawn(BoidKind.PREY, Vector2(95.0, 0.0))
    world.spawn(BoidKind.PREDATOR, Vector2(-97.0, 0.0))

    acceleration = prey.compute_acceleration(world)

    assert acceleration.x < 0
    assert acceleration.y == approx(0.0)


def test_step_is_independent_of_iteration_order():
    layout = [Vector2(0.0, 0.0), Vector2(8.0, 3.0), Vector2(-6.0, 4.0), Vector2(2.0, -9.0)]
    velocities = [Vector2(1.0, 0.0), Vector2(0.0, 1.0), Vector2(-1.0, 0.5), Vector2(0.5, 0.5)]

    forward = World(_empty_config())
    for position, velocity in zip(layout, velocities):
        forward.spawn(BoidKind.PREY, position, velocity)
    backward = World(_empty_config())
    for position, velocity in reversed(list(zip(layout, velocities))):
        backward.spawn(BoidKind.PREY, position, velocity)

    forward.step(0)
    backward.step(0)

    forward_positions = [(round(b.position.x, 9), round(b.position.y, 9)) for b in forward.boids]
    backward_positions = [(round(b.position.x, 9), round(b.position.y, 9)) for b in reversed(backward.boids)]
    assert forward_positions == backward_positions


def test_speed_cap_holds_every_tick():
    config = SimulationConfig(seed=8, initial_prey=60, initial_predators=4)
    world = World(config)
    for tick in range(30):
        world.step(tick)
        for boid in world.boids:
            assert boid.velocity.length() <= boid.max_speed() + 1e-9
            assert boid.position.length() <= config.world_radius + 1e-9


def test_predator_catches_prey_and_starts_eating():
    config = _empty_config(eating_ticks=4)
    world = World(config)
    predator = world.spawn(BoidKind.PREDATOR, Vector2(0.0, 0.0))
    prey = world.spawn(BoidKind.PREY, Vector2(5.0, 0.0))
    bystander = world.spawn(BoidKind.PREY, Vector2(8.0, 0.0))

    kills = lifecycle.hunt(world)

    assert kills == 1
    assert not prey.alive
    assert prey.death_cause == lifecycle.EATEN
    assert bystander.alive
    assert predator.busy_eating == 4


def test_eating_predator_stays_put_and_digests():
    config = _empty_config(eating_ticks=3)
    world = World(config)
    predator = world.spawn(BoidKind.PREDATOR, Vector2(0.0, 0.0), Vector2(1.0, 0.0))
    predator.start_eating(2)
    food_before = predator.food

    world.step(0)

    assert predator.position == Vector2(0.0, 0.0)
    assert predator.velocity == Vector2()
    assert predator.busy_eating == 1
    traits = config.predator
    assert predator.food == approx(food_before + traits.food_eaten_per_step - traits.metabolism_per_step)
    assert world.metrics.eating_predators == 1


def test_prey_graze_and_pay_metabolism():
    config = _empty_config(prey=KindConfig(food_eaten_per_step=2.0, metabolism_per_step=0.5))
    world = World(config)
    prey = world.spawn(BoidKind.PREY, Vector2(0.0, 0.0), food=10.0)

    lifecycle.feed(world, set())

    assert prey.food == approx(11.5)


def test_reproduction_shares_genetics_and_charges_parent():
    prey_traits = KindConfig(turns_to_reproduce=3, energy_required_for_reproduction=50.0, starting_food=20.0)
    world = World(_empty_config(prey=prey_traits))
    parent = world.spawn(BoidKind.PREY, Vector2(0.0, 0.0), food=100.0)
    parent.steps_since_last_reproduction = 3

    births = lifecycle.reproduce(world)

    assert len(births) == 1
    child = births[0]
    assert child.genetics is parent.genetics
    assert child.generation == 1
    assert child.food == approx(20.0)
    assert child.id != parent.id
    assert parent.food == approx(80.0)
    assert parent.steps_since_last_reproduction == 0
    assert child.velocity.length() <= child.max_speed() + 1e-9


def test_reproduction_clock_advances_once_per_tick():
    world = World(_empty_config(prey=KindConfig(turns_to_reproduce=1_000)))
    boid = world.spawn(BoidKind.PREY, Vector2(0.0, 0.0))
    for tick in range(5):
        world.step(tick)
    assert boid.steps_since_last_reproduction == 5


def test_reproduction_respects_population_cap():
    prey_traits = KindConfig(turns_to_reproduce=0, energy_required_for_reproduction=0.0)
    world = World(_empty_config(prey=prey_traits, max_prey=1))
    world.spawn(BoidKind.PREY, Vector2(0.0, 0.0), food=100.0)

    assert lifecycle.reproduce(world) == []


def test_cull_starved_and_old_boids():
    world = World(_empty_config(prey=KindConfig(max_age=10)))
    starving = world.spawn(BoidKind.PREY, Vector2(0.0, 0.0), food=0.0)
    elder = world.spawn(BoidKind.PREY, Vector2(20.0, 0.0))
    elder.age = 11
    healthy = world.spawn(BoidKind.PREY, Vector2(-20.0, 0.0))

    lifecycle.cull(world)

    assert starving.death_cause == lifecycle.STARVED
    assert elder.death_cause == lifecycle.OLD_AGE
    assert healthy.alive


def test_step_removes_dead_and_reports_causes():
    world = World(_empty_config(prey=KindConfig(metabolism_per_step=1.0, food_eaten_per_step=0.0)))
    world.spawn(BoidKind.PREY, Vector2(0.0, 0.0), food=0.5)
    world.spawn(BoidKind.PREY, Vector2(50.0, 0.0), food=100.0)

    metrics = world.step(0)

    assert metrics.deaths == 1
    assert metrics.starved == 1
    assert metrics.population == 1
    assert len(world.boids) == 1


def test_snapshot_contains_metadata_and_agent_fields():
    config = SimulationConfig(seed=7, time_step=0.5, world_radius=42.0, initial_prey=3, initial_predators=1)
    world = World(config)
    world.step(0)
    snapshot = world.snapshot(1)

    assert snapshot.world.radius == approx(42.0)
    assert snapshot.metadata.sim_dt == approx(0.5)
    assert snapshot.metadata.tick_rate == approx(2.0)
    assert snapshot.metadata.seed == 7
    assert snapshot.metrics.population == len(world.boids)
    payload = snapshot.agents[0]
    for key in ["id", "kind", "x", "y", "vx", "vy", "heading", "speed", "age", "food", "state"]:
        assert key in payload
    assert payload["speed"] == approx(Vector2(payload["vx"], payload["vy"]).length())


def test_reset_replays_bootstrap():
    config = SimulationConfig(seed=21, initial_prey=10, initial_predators=2)
    world = World(config)
    initial = [(b.id, b.position.x, b.position.y) for b in world.boids]
    for tick in range(5):
        world.step(tick)

    world.reset()

    assert [(b.id, b.position.x, b.position.y) for b in world.boids] == initial
    assert world.metrics is None


def test_motion_config_is_shared_by_spawned_boids():
    motion = MotionConfig(base_speed=3.0)
    world = World(_empty_config(motion=motion))
    boid = world.spawn(BoidKind.PREY, Vector2(0.0, 0.0))
    assert boid.motion is motion
    assert boid.max_speed() == approx(3.0)
