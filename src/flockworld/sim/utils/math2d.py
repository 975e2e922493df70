from __future__ import annotations

import math

from pygame.math import Vector2

ZERO = Vector2()


def safe_normalize(vector: Vector2) -> Vector2:
    magnitude_sq = vector.x * vector.x + vector.y * vector.y
    if magnitude_sq < 1e-18:
        return Vector2()
    inv = 1.0 / math.sqrt(magnitude_sq)
    return Vector2(vector.x * inv, vector.y * inv)


def limit_ip(vector: Vector2, max_length: float) -> Vector2:
    """Clamp ``vector`` in place to at most ``max_length`` and return it."""
    if max_length <= 0:
        vector.update(0.0, 0.0)
        return vector
    magnitude_sq = vector.length_squared()
    if magnitude_sq <= max_length * max_length:
        return vector
    vector.scale_to_length(max_length)
    return vector


def mirror_position(position: Vector2, world_radius: float) -> Vector2:
    """
    Image of ``position`` across the rim of the disc.

    A point at depth ``R - r`` inside the rim maps to the antipodal side at the
    same depth outside it. The origin has no direction and maps to itself.
    """

    magnitude = position.length()
    if magnitude == 0:
        return Vector2()
    scale = -(2.0 * world_radius - magnitude) / magnitude
    return Vector2(position.x * scale, position.y * scale)


def wrap_ip(position: Vector2, world_radius: float) -> Vector2:
    # Leaving through the rim re-enters from the antipodal side.
    while position.length_squared() > world_radius * world_radius:
        mirrored = mirror_position(position, world_radius)
        position.update(mirrored.x, mirrored.y)
    return position


def disc_distance(a: Vector2, b: Vector2, world_radius: float) -> float:
    """Shortest displacement between ``a`` and ``b`` allowing one trip through the rim."""
    best = a.distance_to(b)
    if b.x != 0.0 or b.y != 0.0:
        best = min(best, a.distance_to(mirror_position(b, world_radius)))
    if a.x != 0.0 or a.y != 0.0:
        best = min(best, b.distance_to(mirror_position(a, world_radius)))
    return best


def disc_offset(a: Vector2, b: Vector2, world_radius: float) -> Vector2:
    """
    Vector from ``a`` to the image of ``b`` nearest to it.

    Across the seam the image is ``mirror_position(b)``. The result always has
    length ``disc_distance(a, b, world_radius)``.
    """

    offset = b - a
    best = offset.length()
    if b.x == 0.0 and b.y == 0.0:
        return offset
    across = mirror_position(b, world_radius) - a
    distance = across.length()
    if a.x != 0.0 or a.y != 0.0:
        distance = min(distance, b.distance_to(mirror_position(a, world_radius)))
    if distance < best:
        offset = across
        if distance == 0.0 or offset.length_squared() == 0.0:
            return Vector2()
        offset.scale_to_length(distance)
    return offset


def heading_from_velocity(vector: Vector2) -> float:
    if vector.length_squared() < 1e-12:
        return 0.0
    return math.atan2(vector.y, vector.x)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
