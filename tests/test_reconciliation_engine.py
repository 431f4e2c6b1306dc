import os
import sys
import random

import pytest

# Add project root to path
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from koop.logic.models import ErrorKind, Offer, Order, ReconcileOptions, ResultStatus
from koop.logic.reconciliation_engine import ReconciliationEngine, reconcile
from koop.logic.rounding import is_multiple

OFFER = {"unit_count": 1, "unit_size": 5, "step_size": 0.5, "rounding_step_size": 0.5}

EXAMPLE_ORDERS = [
    {"id": 1, "quantity": 1, "locked": True},
    {"id": 2, "quantity": 2},
    {"id": 3, "quantity": 1.5},
]

# Six orders, 0.1 rounding grid
MIXED_OFFER = {"offer_id": 97, "unit_count": 1, "unit_size": 5, "unit_massunit": "kilogram",
               "step_size": 0.5, "rounding_step_size": 0.1, "article_nr": "97"}
MIXED_ORDERS = [
    {"id": 1, "name": "Hans", "quantity": 1, "locked": True},
    {"id": 2, "name": "Rike", "quantity": 2},
    {"id": 3, "name": "Sebastian", "quantity": 1.5},
    {"id": 4, "name": "Bob", "quantity": 1.5, "locked": True},
    {"id": 5, "name": "Remy", "quantity": 1.0},
    {"id": 6, "name": "Bruno", "quantity": 0.5},
]


def adjusted(result):
    return [o.quantity_adjusted for o in result.values]


# --- Scale strategy ---

def test_scale_example_fills_one_bundle():
    result = reconcile(EXAMPLE_ORDERS, OFFER)
    assert result.status == ResultStatus.OK
    assert result.success
    assert result.bundles == 1
    assert result.total == pytest.approx(4.5)
    assert result.target_total == pytest.approx(5)
    assert result.rounded_total == pytest.approx(5)
    assert result.adjusted_total == result.rounded_total
    assert adjusted(result) == pytest.approx([1, 2.5, 1.5])
    assert result.iterations == 0


def test_scale_distributes_residual_on_fine_grid():
    result = reconcile(MIXED_ORDERS, MIXED_OFFER)
    assert result.status == ResultStatus.OK
    assert result.bundles == 2
    assert result.rounded_total == pytest.approx(10)
    # 7.5 of the 10 come from scaling unlocked orders by 1.5, one 0.1 step is taken back
    assert adjusted(result) == pytest.approx([1, 2.9, 2.3, 1.5, 1.5, 0.8])
    assert result.iterations == 1


def test_scale_passes_zero_quantities_through():
    orders = [{"id": "a", "quantity": 0}, {"id": "b", "quantity": 3}, {"id": "c", "quantity": 4}]
    offer = {"unit_size": 5, "step_size": 1, "rounding_step_size": 1}
    result = reconcile(orders, offer)
    assert result.values[0].quantity_adjusted == 0
    assert result.rounded_total == pytest.approx(10)


def test_scale_is_deterministic():
    first = reconcile(MIXED_ORDERS, MIXED_OFFER)
    second = reconcile(MIXED_ORDERS, MIXED_OFFER)
    assert adjusted(first) == adjusted(second)


def test_weights_are_reported():
    result = reconcile(EXAMPLE_ORDERS, OFFER)
    assert [o.weight for o in result.values] == pytest.approx([0.2, 0.4, 0.3])


# --- Weighted strategy ---

def test_weighted_example_single_step():
    options = ReconcileOptions(strategy="weighted", seed=7)
    result = reconcile(EXAMPLE_ORDERS, OFFER, options)
    assert result.status == ResultStatus.OK
    assert result.strategy == "weighted"
    assert result.bundles == 1
    assert result.iterations == 1
    assert result.rounded_total == pytest.approx(5)
    values = adjusted(result)
    assert values[0] == 1
    assert values[1:] in ([2.5, 1.5], [2.0, 2.0])


def test_weighted_injected_rng_repeats():
    options = ReconcileOptions(strategy="weighted")
    orders = [{"id": i, "quantity": q} for i, q in enumerate([3, 7, 2, 9, 4], start=1)]
    offer = {"unit_size": 10, "step_size": 1, "rounding_step_size": 1}
    first = ReconciliationEngine(options, rng=random.Random(3)).reconcile(orders, offer)
    second = ReconciliationEngine(options, rng=random.Random(3)).reconcile(orders, offer)
    assert adjusted(first) == adjusted(second)
    # 25 / 10 = 2.5 -> threshold mode keeps 2 bundles
    assert first.bundles == 2
    assert first.rounded_total == pytest.approx(20)
    assert first.iterations == 5


def test_weighted_requires_step_multiples():
    orders = [{"id": 1, "quantity": 1.25}, {"id": 2, "quantity": 3}]
    result = reconcile(orders, OFFER, ReconcileOptions(strategy="weighted"))
    assert result.status == ResultStatus.ERROR
    assert result.error_kind == ErrorKind.DATA
    assert result.error == "the value of 1 must be a multiple of step_size"


def test_weighted_reports_non_convergence():
    orders = [{"id": 1, "quantity": 400}, {"id": 2, "quantity": 400}]
    offer = {"unit_size": 1000, "step_size": 1, "rounding_step_size": 1}
    result = reconcile(orders, offer, ReconcileOptions(strategy="weighted", seed=1))
    assert result.status == ResultStatus.NOT_CONVERGED
    assert result.error_kind == ErrorKind.NOT_CONVERGED
    assert not result.success
    assert result.iterations == 100
    assert result.rounded_total == pytest.approx(900)
    assert result.target_total == pytest.approx(1000)
    assert result.rounded_total != result.target_total


def test_weighted_custom_iteration_cap():
    orders = [{"id": 1, "quantity": 50}, {"id": 2, "quantity": 30}]
    offer = {"unit_size": 100, "step_size": 1, "rounding_step_size": 1}
    capped = reconcile(orders, offer, ReconcileOptions(strategy="weighted", seed=1, max_iterations=10))
    assert capped.iterations == 10
    assert capped.status == ResultStatus.NOT_CONVERGED

    full = reconcile(orders, offer, ReconcileOptions(strategy="weighted", seed=1))
    assert full.iterations == 20
    assert full.status == ResultStatus.OK


# --- Errors as data ---

def test_step_size_larger_than_unit_size_is_a_configuration_error():
    offer = {"unit_size": 5, "step_size": 10}
    for strategy in ("scale", "weighted"):
        result = reconcile(EXAMPLE_ORDERS, offer, ReconcileOptions(strategy=strategy))
        assert result.status == ResultStatus.ERROR
        assert result.error_kind == ErrorKind.CONFIGURATION
        assert result.error == "step_size must be a divider of unit_size"
        assert [o.quantity for o in result.values] == [1, 2, 1.5]
        assert all(o.quantity_adjusted is None for o in result.values)


def test_all_locked_orders_pass_through():
    orders = [{"id": 1, "quantity": 1, "locked": True}, {"id": 2, "quantity": 2.5, "locked": True}]
    for strategy in ("scale", "weighted"):
        result = reconcile(orders, OFFER, ReconcileOptions(strategy=strategy))
        assert result.status == ResultStatus.UNCHANGED
        assert result.success
        assert result.iterations == 0
        assert adjusted(result) == [1, 2.5]


def test_threshold_mode_without_enough_demand():
    orders = [{"id": 1, "quantity": 2}, {"id": 2, "quantity": 1.5}]
    for options in (ReconcileOptions(strategy="weighted"), ReconcileOptions(bundle_mode="threshold")):
        result = reconcile(orders, OFFER, options)
        assert result.status == ResultStatus.ERROR
        assert result.error_kind == ErrorKind.INFEASIBLE
        assert result.error == "not enough orders to complete at least one bundle."


def test_duplicate_ids_fail_before_scaling():
    orders = [{"id": 1, "quantity": 2}, {"id": 1, "quantity": 1.5}]
    result = reconcile(orders, OFFER)
    assert result.status == ResultStatus.ERROR
    assert result.error_kind == ErrorKind.DATA
    assert result.error == "all orders must have an id and it must be unique"
    assert result.iterations == 0
    assert all(o.quantity_adjusted is None for o in result.values)


def test_missing_id_is_a_data_error():
    result = reconcile([{"quantity": 2}], OFFER)
    assert result.error_kind == ErrorKind.DATA


def test_invalid_order_dict_is_a_data_error():
    result = reconcile([{"id": 1, "quantity": -2}, {"id": 2, "quantity": 3}], OFFER)
    assert result.status == ResultStatus.ERROR
    assert result.error_kind == ErrorKind.DATA
    assert not result.success
    assert result.values == []


def test_empty_order_list_is_unchanged():
    result = reconcile([], OFFER)
    assert result.status == ResultStatus.UNCHANGED
    assert result.values == []


# --- Overrides, chaining, clamping ---

def test_offer_total_amount_overrides_target():
    offer = dict(OFFER, total_amount=10)
    result = reconcile(EXAMPLE_ORDERS[1:], offer)
    assert result.target_total == pytest.approx(10)
    assert result.bundles == pytest.approx(2)
    assert result.rounded_total == pytest.approx(10)
    assert adjusted(result) == pytest.approx([5.5, 4.5])


def test_options_total_beats_offer_total():
    offer = dict(OFFER, total_amount=10)
    result = reconcile(EXAMPLE_ORDERS[1:], offer, ReconcileOptions(total_amount_adjusted=5))
    assert result.target_total == pytest.approx(5)
    assert result.rounded_total == pytest.approx(5)


def test_total_override_off_grid():
    offer = dict(OFFER, total_amount=5.25)
    result = reconcile(EXAMPLE_ORDERS, offer)
    assert result.error_kind == ErrorKind.CONFIGURATION


def test_chain_uses_previous_adjustment_as_demand():
    orders = [{"id": 1, "quantity": 2, "quantity_adjusted": 3}, {"id": 2, "quantity": 2}]
    offer = {"unit_size": 5, "step_size": 1, "rounding_step_size": 1}
    assert adjusted(reconcile(orders, offer, ReconcileOptions(chain=True))) == [3, 2]
    assert adjusted(reconcile(orders, offer)) == [2, 3]


def test_chain_with_zero_adjustments_is_unchanged():
    orders = [{"id": 1, "quantity": 2, "quantity_adjusted": 0}, {"id": 2, "quantity": 3, "quantity_adjusted": 0}]
    offer = {"unit_size": 5, "step_size": 1, "rounding_step_size": 1}
    result = reconcile(orders, offer, ReconcileOptions(chain=True))
    assert result.status == ResultStatus.UNCHANGED
    assert adjusted(result) == [2, 3]
    assert result.total == 5
    assert result.rounded_total == 5


def test_locked_total_above_target_flags_orders():
    orders = [{"id": 1, "quantity": 6, "locked": True}, {"id": 2, "quantity": 1}]
    offer = {"unit_size": 5, "step_size": 1, "rounding_step_size": 1, "total_amount": 5}
    result = reconcile(orders, offer)
    assert result.status == ResultStatus.NOT_CONVERGED
    assert result.values[0].quantity_adjusted == 6
    assert result.values[1].quantity_adjusted == 0
    assert result.values[1].quantity_adjusted_below_zero


def test_clamp_rounding_step_option():
    offer = dict(OFFER, rounding_step_size=1)
    assert reconcile(EXAMPLE_ORDERS, offer).status == ResultStatus.ERROR
    result = reconcile(EXAMPLE_ORDERS, offer, ReconcileOptions(clamp_rounding_step=True))
    assert result.status == ResultStatus.OK
    assert result.rounded_total == pytest.approx(5)


def test_wire_alias_for_locked():
    order = Order.model_validate({"id": 1, "quantity": 1, "quantity_adjusted_locked": True})
    assert order.locked
    result = reconcile([order, Order(id=2, quantity=3)], Offer(unit_size=5, step_size=1))
    assert result.values[0].quantity_adjusted == 1


# --- Invariants over a batch of inputs ---

BATCH = [
    ([3, 7, 2, 9, 4], (), {"unit_size": 10, "step_size": 1, "rounding_step_size": 1}),
    ([1, 2, 1.5, 1.5, 1, 0.5], (0, 3), {"unit_size": 5, "step_size": 0.5, "rounding_step_size": 0.1}),
    ([0.5, 0, 4.5, 2.5, 3], (2,), {"unit_size": 2.5, "unit_count": 2, "step_size": 0.5, "rounding_step_size": 0.5}),
    ([12, 18, 6, 0, 30], (1,), {"unit_size": 24, "step_size": 6, "rounding_step_size": 2}),
]


@pytest.mark.parametrize("strategy", ["scale", "weighted"])
@pytest.mark.parametrize("quantities,locked,offer", BATCH)
def test_invariants(strategy, quantities, locked, offer):
    orders = [{"id": i, "quantity": q, "locked": i in locked} for i, q in enumerate(quantities)]
    options = ReconcileOptions(strategy=strategy, bundle_mode="ceiling", seed=11)
    result = reconcile(orders, offer, options)
    assert result.status == ResultStatus.OK, result.error

    bucket = offer["unit_size"] * offer.get("unit_count", 1)
    assert result.rounded_total == pytest.approx(result.bundles * bucket)

    for order in result.values:
        if order.locked or order.quantity == 0:
            assert order.quantity_adjusted == order.quantity
        else:
            assert order.quantity_adjusted >= 0
            assert is_multiple(order.quantity_adjusted, offer["rounding_step_size"])
