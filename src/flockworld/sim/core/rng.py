from __future__ import annotations

import math
import random

from pygame.math import Vector2


class DeterministicRng:
    def __init__(self, seed: int):
        self._seed = seed
        self._random = random.Random(seed)

    @property
    def seed(self) -> int:
        return self._seed

    def reset(self) -> None:
        self._random.seed(self._seed)

    def next_float(self) -> float:
        return self._random.random()

    def next_range(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)

    def next_unit_circle(self) -> Vector2:
        angle = self._random.uniform(0, 2 * math.pi)
        vector = Vector2()
        vector.from_polar((1, math.degrees(angle)))
        return vector

    def next_vector(self, max_magnitude: float) -> Vector2:
        """Uniform direction, magnitude uniform in ``[0, max_magnitude]``."""
        return self.next_unit_circle() * self._random.uniform(0.0, max_magnitude)

    def next_point_in_disc(self, radius: float) -> Vector2:
        # sqrt keeps the density uniform over the area
        return self.next_unit_circle() * (radius * math.sqrt(self._random.random()))
