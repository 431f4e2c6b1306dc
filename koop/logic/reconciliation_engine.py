import time
import random
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from .bundle_count import resolve_bundle_count
from .constants import (
    MSG_IDS,
    MSG_NO_BUNDLE,
    MSG_NOT_CONVERGED,
    MSG_TOTAL_NOT_MULTIPLE,
    STRATEGY_BUNDLE_MODES,
    STRATEGY_SCALE,
    STRATEGY_WEIGHTED,
)
from .distribution import RandomWalkDistributor, RoundRobinDistributor
from .errors import ConfigurationError, InfeasibleError, OrderDataError, ReconciliationError
from .models import ErrorKind, Offer, Order, ReconcileOptions, ReconciliationResult, ResultStatus
from .rounding import (
    apply_scaling,
    build_slots,
    check_step_multiples,
    decimal_places,
    is_multiple,
    pinned_total,
    resolve_steps,
)
from .weights import calculate_weight

logger = logging.getLogger("ReconciliationEngine")

OrderInput = Union[Order, Dict[str, Any]]
OfferInput = Union[Offer, Dict[str, Any]]


class ReconciliationEngine:
    """
    Reconciles a list of orders against an offer so the adjusted quantities
    sum to a whole number of bundles.

    Two strategies share one pipeline (validate -> resolve bundles ->
    scale -> distribute -> assemble):
      - "scale":    ceiling bundle count, proportional scaling, round-robin
                    distribution with a final lump correction.
      - "weighted": threshold bundle count, no scaling, single-step random
                    walk bounded by max_iterations.

    Errors never escape reconcile(); they come back as an ERROR result
    carrying the original orders. Dict input that fails validation comes
    back as a data error with no values.
    """

    def __init__(self, options: Optional[ReconcileOptions] = None, rng: Optional[random.Random] = None):
        self.options = options or ReconcileOptions()
        self.rng = rng or random.Random(self.options.seed)

    def reconcile(
        self,
        orders: List[OrderInput],
        offer: OfferInput,
        options: Optional[ReconcileOptions] = None,
    ) -> ReconciliationResult:
        start_time = time.perf_counter()
        options = options or self.options

        try:
            orders = [o if isinstance(o, Order) else Order.model_validate(o) for o in orders]
            offer = offer if isinstance(offer, Offer) else Offer.model_validate(offer)
        except ValidationError as e:
            logger.error(f"Reconciliation failed (data): {e.error_count()} invalid fields")
            return ReconciliationResult(
                status=ResultStatus.ERROR,
                strategy=options.strategy,
                error=str(e),
                error_kind=ErrorKind.DATA,
            )

        try:
            result = self._run(orders, offer, options)
        except ReconciliationError as e:
            logger.error(f"Reconciliation failed ({e.kind}): {e.message}")
            result = ReconciliationResult(
                status=ResultStatus.ERROR,
                strategy=options.strategy,
                total=sum(o.quantity for o in orders),
                rounded_total=sum(o.quantity for o in orders),
                values=[o.model_copy() for o in orders],
                error=e.message,
                error_kind=ErrorKind(e.kind),
            )

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Ordered: {result.total} | Adjusted: {result.rounded_total} | "
            f"Bundles: {result.bundles} | Iterations: {result.iterations} | "
            f"Status: {result.status.value} | Time taken: {elapsed_ms:.2f}ms"
        )
        return result

    def _run(self, orders: List[Order], offer: Offer, options: ReconcileOptions) -> ReconciliationResult:
        strategy = options.strategy
        self._check_ids(orders)

        steps = resolve_steps(offer, options)
        rs = steps.rounding_step_size

        enforce = options.enforce_step_multiples
        if enforce is None:
            enforce = strategy == STRATEGY_WEIGHTED
        if enforce:
            check_step_multiples(orders, steps.step_size)

        override = options.total_override
        if override is None:
            override = offer.total_override

        precision = max(
            [decimal_places(v) for v in (rs, steps.step_size, steps.unit_size, steps.bucket_size)]
            + [decimal_places(o.quantity) for o in orders]
            + ([decimal_places(override)] if override is not None else [])
        )

        slots = build_slots(orders, chain=options.chain)
        total = round(sum(o.quantity for o in orders), precision)
        unlocked_demand = sum(s.base for s in slots if s.adjustable)

        if unlocked_demand == 0:
            logger.info("No adjustable demand, passing orders through unchanged.")
            values = self._passthrough(orders, steps.unit_size, precision, options.threshold)
            return ReconciliationResult(
                status=ResultStatus.UNCHANGED,
                strategy=strategy,
                total=total,
                rounded_total=round(sum(v.quantity_adjusted for v in values), precision),
                target_total=total,
                bundles=0,
                values=values,
            )

        if override is not None:
            if not is_multiple(override, rs):
                raise ConfigurationError(MSG_TOTAL_NOT_MULTIPLE)
            if override == 0:
                raise InfeasibleError(MSG_NO_BUNDLE)
            target_total = round(override, precision)
            bundles = round(override / steps.bucket_size, precision)
        else:
            demand = sum(s.base for s in slots)
            mode = options.bundle_mode or STRATEGY_BUNDLE_MODES[strategy]
            bundles = resolve_bundle_count(
                demand,
                steps.bucket_size,
                mode,
                threshold=options.threshold,
                min_threshold=options.min_threshold,
            )
            target_total = round(bundles * steps.bucket_size, precision)

        if strategy == STRATEGY_SCALE:
            scale_factor = (target_total - pinned_total(slots)) / unlocked_demand
            distributor = RoundRobinDistributor()
        else:
            scale_factor = 1.0
            rng = random.Random(options.seed) if options.seed is not None else self.rng
            distributor = RandomWalkDistributor(rng=rng, max_iterations=options.max_iterations)

        apply_scaling(slots, scale_factor, rs)
        outcome = distributor.distribute(slots, target_total, rs)

        values = self._assemble(orders, slots, steps.unit_size, rs, precision, options.threshold)
        rounded_total = round(sum(v.quantity_adjusted for v in values), precision)

        result = ReconciliationResult(
            status=ResultStatus.OK,
            strategy=strategy,
            iterations=outcome.iterations,
            total=total,
            rounded_total=rounded_total,
            target_total=target_total,
            bundles=bundles,
            values=values,
        )
        if not outcome.converged:
            result.status = ResultStatus.NOT_CONVERGED
            result.error_kind = ErrorKind.NOT_CONVERGED
            result.error = MSG_NOT_CONVERGED.format(
                iterations=outcome.iterations,
                rounded_total=rounded_total,
                target_total=target_total,
            )
        return result

    @staticmethod
    def _check_ids(orders: List[Order]):
        seen = set()
        for order in orders:
            if order.id is None or order.id in seen:
                raise OrderDataError(MSG_IDS)
            seen.add(order.id)

    @staticmethod
    def _passthrough(orders, unit_size, precision, threshold) -> List[Order]:
        # Nothing adjustable: each order comes back at its input quantity
        return [
            order.model_copy(update={
                "quantity_adjusted": round(order.quantity, precision),
                "weight": calculate_weight(order.quantity, unit_size, threshold),
                "quantity_adjusted_below_zero": False,
            })
            for order in orders
        ]

    @staticmethod
    def _assemble(orders, slots, unit_size, rounding_step_size, precision, threshold) -> List[Order]:
        values = []
        for order, slot in zip(orders, slots):
            values.append(order.model_copy(update={
                "quantity_adjusted": slot.value(rounding_step_size, precision),
                "weight": calculate_weight(order.quantity, unit_size, threshold),
                "quantity_adjusted_below_zero": slot.below_zero,
            }))
        return values


def reconcile(
    orders: List[OrderInput],
    offer: OfferInput,
    options: Optional[ReconcileOptions] = None,
    rng: Optional[random.Random] = None,
) -> ReconciliationResult:
    """Convenience wrapper: one-off engine with the given options."""
    return ReconciliationEngine(options, rng=rng).reconcile(orders, offer)
