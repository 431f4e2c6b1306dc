import os
import argparse
import logging
import sys

from pydantic import ValidationError

from koop.config import load_settings
from koop.data.order_loader import EXPORT_EXTENSIONS, export_results, load_payload
from koop.logic.models import Offer
from koop.logic.reconciliation_engine import ReconciliationEngine

logger = logging.getLogger("App")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Round a list of orders so they fill whole bundles of an offer."
    )
    parser.add_argument("orders", help="Orders file (.json, .csv or .xlsx)")
    parser.add_argument("--unit-size", type=float, help="Size of one unit")
    parser.add_argument("--unit-count", type=int, help="Units per bundle (default 1)")
    parser.add_argument("--step-size", type=float, help="Order step size (default unit size)")
    parser.add_argument("--rounding-step-size", type=float, help="Finest rounding granularity")
    parser.add_argument("--total-amount", type=float, help="Force the target total")
    parser.add_argument("--strategy", choices=["scale", "weighted"])
    parser.add_argument("--bundle-mode", choices=["ceiling", "threshold"])
    parser.add_argument("--threshold", type=float)
    parser.add_argument("--min-threshold", type=float)
    parser.add_argument("--seed", type=int, help="Seed for the weighted strategy's start pointer")
    parser.add_argument("--output", help="Write adjusted orders to this .csv or .xlsx file")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    logging.basicConfig(level=settings.log_level)

    try:
        if args.output and os.path.splitext(args.output)[1].lower() not in EXPORT_EXTENSIONS:
            raise ValueError(f"Unsupported output file type: {args.output}")
        orders, offer_data = load_payload(args.orders)
        for key in ("unit_size", "unit_count", "step_size", "rounding_step_size", "total_amount"):
            value = getattr(args, key)
            if value is not None:
                offer_data[key] = value
        offer = Offer.model_validate(offer_data)
        options = settings.default_options(
            strategy=args.strategy,
            bundle_mode=args.bundle_mode,
            threshold=args.threshold,
            min_threshold=args.min_threshold,
            seed=args.seed,
        )
    except (OSError, ValueError, ValidationError) as e:
        logger.error(f"Could not read input: {e}")
        return 2

    result = ReconciliationEngine(options).reconcile(orders, offer)

    print(f"Strategy: {result.strategy} | Status: {result.status.value}")
    print(f"Ordered: {result.total} | Adjusted: {result.rounded_total} | Bundles: {result.bundles} | Iterations: {result.iterations}")
    if result.error:
        print(f"Error: {result.error}")
    for o in result.values:
        flag = " [LOCKED]" if o.locked else ""
        if o.quantity_adjusted_below_zero:
            flag += " [CLAMPED]"
        print(f"  {str(o.id):>8} {o.quantity:>10} -> {o.quantity_adjusted}{flag}")

    if args.output:
        try:
            export_results(result, args.output, offer)
        except (OSError, ValueError) as e:
            logger.error(f"Could not write output: {e}")
            return 2

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
