import math
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Union

from .constants import (
    MSG_BUCKET_SIZE,
    MSG_NOT_STEP_MULTIPLE,
    MSG_ROUNDING_GT_STEP,
    MSG_ROUNDING_NOT_DIVIDER_OF_STEP,
    MSG_ROUNDING_NOT_DIVIDER_OF_UNIT,
    MSG_STEP_NOT_DIVIDER_OF_UNIT,
    MULTIPLE_TOLERANCE,
    STRATEGY_WEIGHTED,
)
from .errors import ConfigurationError, OrderDataError
from .models import Offer, Order, ReconcileOptions

logger = logging.getLogger("QuantityScaler")

MAX_PRECISION = 12


def is_multiple(value: float, step: float) -> bool:
    """True if value is an integer multiple of step (float-noise tolerant)."""
    if step <= 0:
        return False
    ratio = value / step
    return abs(ratio - round(ratio)) < MULTIPLE_TOLERANCE * max(1.0, abs(ratio))


def round_half_up(x: float) -> int:
    # Nudge so that 2.4999999999 (really 2.5) still goes up
    return int(math.floor(x + 0.5 + MULTIPLE_TOLERANCE))


def decimal_places(value: Union[int, float]) -> int:
    exponent = Decimal(str(value)).normalize().as_tuple().exponent
    if not isinstance(exponent, int):
        return 0
    return min(MAX_PRECISION, max(0, -exponent))


@dataclass
class StepConfig:
    unit_size: float
    step_size: float
    rounding_step_size: float
    bucket_size: float


@dataclass
class Slot:
    """
    Working copy of one order during a run.

    Adjustable slots carry their quantity as an integer count of rounding
    steps; pinned slots (locked or zero quantity) keep their original value.
    """
    index: int
    id: Optional[Union[int, str]]
    base: float
    locked: bool
    adjustable: bool
    units: int = 0
    pinned: Optional[float] = None
    offset: float = 0.0
    below_zero: bool = False

    def value(self, rounding_step_size: float, precision: int) -> float:
        if not self.adjustable:
            return self.pinned
        return round(self.units * rounding_step_size + self.offset, precision)


def resolve_steps(offer: Offer, options: ReconcileOptions) -> StepConfig:
    """
    Applies defaults and checks the offer's step hierarchy:
    rounding_step_size | step_size | unit_size, bucket_size > 0.
    """
    unit_size = offer.unit_size
    bucket_size = offer.bucket_size
    if bucket_size <= 0:
        raise ConfigurationError(MSG_BUCKET_SIZE)

    step_size = offer.step_size or unit_size
    rounding_step_size = offer.rounding_step_size
    if rounding_step_size is None:
        # The weighted family rounds to whole units unless told otherwise
        rounding_step_size = unit_size if options.strategy == STRATEGY_WEIGHTED else step_size

    if rounding_step_size > step_size:
        if not options.clamp_rounding_step:
            raise ConfigurationError(MSG_ROUNDING_GT_STEP)
        logger.warning(
            f"Rounding step size {rounding_step_size} is larger than step size, "
            f"setting rounding step size to step size ({step_size})."
        )
        rounding_step_size = step_size

    if not is_multiple(step_size, rounding_step_size):
        raise ConfigurationError(MSG_ROUNDING_NOT_DIVIDER_OF_STEP)
    if not is_multiple(unit_size, step_size):
        raise ConfigurationError(MSG_STEP_NOT_DIVIDER_OF_UNIT)
    if not is_multiple(unit_size, rounding_step_size):
        raise ConfigurationError(MSG_ROUNDING_NOT_DIVIDER_OF_UNIT)

    return StepConfig(
        unit_size=unit_size,
        step_size=step_size,
        rounding_step_size=rounding_step_size,
        bucket_size=bucket_size,
    )


def check_step_multiples(orders: List[Order], step_size: float):
    for order in orders:
        if not is_multiple(order.quantity, step_size):
            raise OrderDataError(MSG_NOT_STEP_MULTIPLE.format(id=order.id))


def build_slots(orders: List[Order], chain: bool = False) -> List[Slot]:
    """
    Splits orders into adjustable slots and pinned passthroughs.
    Locked and zero-quantity orders keep their original quantity.
    """
    slots = []
    for i, order in enumerate(orders):
        base = order.quantity
        if chain and not order.locked and order.quantity_adjusted is not None:
            base = order.quantity_adjusted

        if order.locked or order.quantity == 0:
            slots.append(Slot(index=i, id=order.id, base=order.quantity, locked=order.locked,
                              adjustable=False, pinned=order.quantity))
        else:
            slots.append(Slot(index=i, id=order.id, base=base, locked=False, adjustable=True))
    return slots


def apply_scaling(slots: List[Slot], scale_factor: float, rounding_step_size: float) -> int:
    """
    Scales every adjustable slot and rounds it to the nearest rounding step.

    A scale factor of 1.0 only snaps the quantities onto the step grid.
    Negative results are clamped to zero and flagged. Returns the number
    of flagged slots.
    """
    flagged = 0
    for slot in slots:
        if not slot.adjustable:
            continue
        units = round_half_up((slot.base * scale_factor) / rounding_step_size)
        if units < 0:
            logger.warning(f"Order {slot.id} scaled below zero ({units} steps), clamped to 0.")
            units = 0
            slot.below_zero = True
            flagged += 1
        slot.units = units
    return flagged


def pinned_total(slots: List[Slot]) -> float:
    return sum(s.pinned for s in slots if not s.adjustable)


def adjustable_units(slots: List[Slot]) -> int:
    return sum(s.units for s in slots if s.adjustable)
