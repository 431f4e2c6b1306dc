import random
import logging
from dataclasses import dataclass
from typing import List, Optional

from .constants import MAX_ITERATIONS, MSG_ALL_AT_ZERO, MSG_ALL_LOCKED
from .errors import InfeasibleError
from .rounding import Slot, adjustable_units, pinned_total

logger = logging.getLogger("RemainderDistributor")


@dataclass
class DistributionOutcome:
    iterations: int
    converged: bool


def _targets(slots: List[Slot], target_total: float, rounding_step_size: float):
    """
    Splits the target into what the adjustable slots must reach, in whole
    rounding steps, plus the off-grid remainder left by pinned quantities.
    """
    remaining = target_total - pinned_total(slots)
    target_units = round(remaining / rounding_step_size)
    off_grid = remaining - target_units * rounding_step_size
    return target_units, off_grid


def _converged(slots: List[Slot], target_total: float, rounding_step_size: float) -> bool:
    total = pinned_total(slots) + sum(s.units * rounding_step_size + s.offset for s in slots if s.adjustable)
    return abs(total - target_total) <= rounding_step_size * 1e-6


class RoundRobinDistributor:
    """
    Spreads the rounding gap over the unlocked orders one step at a time,
    cycling in input order, then books any leftover on the first unlocked
    order in a single lump. Deterministic.
    """

    name = "round_robin"

    def distribute(self, slots: List[Slot], target_total: float, rounding_step_size: float) -> DistributionOutcome:
        candidates = [s for s in slots if s.adjustable]
        if not candidates:
            return DistributionOutcome(0, _converged(slots, target_total, rounding_step_size))

        target_units, off_grid = _targets(slots, target_total, rounding_step_size)
        diff = target_units - adjustable_units(slots)
        direction = 1 if diff > 0 else -1
        steps = abs(diff)

        iterations = 0
        cursor = 0
        for _ in range(steps):
            position = self._next(candidates, cursor, direction)
            if position is None:
                # Every order is already at zero; the lump below takes the rest
                break
            candidates[position].units += direction
            cursor = position + 1
            iterations += 1

        first = candidates[0]
        residual = target_units - adjustable_units(slots)
        if residual != 0:
            first.units += residual
            if first.units < 0:
                logger.warning(f"Order {first.id} driven below zero by the final correction, clamped to 0.")
                first.units = 0
                first.below_zero = True
        if abs(off_grid) > rounding_step_size * 1e-6:
            first.offset += off_grid

        return DistributionOutcome(iterations, _converged(slots, target_total, rounding_step_size))

    @staticmethod
    def _next(candidates: List[Slot], cursor: int, direction: int) -> Optional[int]:
        n = len(candidates)
        for k in range(n):
            position = (cursor + k) % n
            if direction > 0 or candidates[position].units > 0:
                return position
        return None


class RandomWalkDistributor:
    """
    Nudges one order by a single rounding step per iteration until the
    adjusted total matches the target.

    The first order is picked at a random index of the eligible set, later
    picks advance cyclically from there. Stops at max_iterations.
    """

    name = "random_walk"

    def __init__(self, rng: Optional[random.Random] = None, max_iterations: int = MAX_ITERATIONS):
        self.rng = rng or random.Random()
        self.max_iterations = max_iterations

    def distribute(self, slots: List[Slot], target_total: float, rounding_step_size: float) -> DistributionOutcome:
        target_units, _ = _targets(slots, target_total, rounding_step_size)
        iterations = 0
        pointer = None

        while iterations < self.max_iterations:
            current = adjustable_units(slots)
            if current == target_units:
                break

            diff_sign = -1 if current > target_units else 1
            eligible = [
                s for s in slots
                if s.adjustable and (diff_sign == 1 or s.units >= 1)
            ]
            if not eligible:
                if any(s.adjustable for s in slots):
                    raise InfeasibleError(MSG_ALL_AT_ZERO)
                # Only direct callers get here; the engine passes all-pinned input through as unchanged
                raise InfeasibleError(MSG_ALL_LOCKED)

            if pointer is None:
                pointer = self.rng.randrange(len(eligible))
            else:
                pointer = (pointer + 1) % len(eligible)

            eligible[pointer].units += diff_sign
            iterations += 1

        converged = _converged(slots, target_total, rounding_step_size)
        if not converged:
            logger.warning(f"Random walk stopped after {iterations} iterations without reaching the target.")
        return DistributionOutcome(iterations, converged)
