import pytest
from decimal import Decimal

from stakehub.hub.core.math import (
    allocate_shortfall,
    checked_add,
    compute_equal_targets,
    compute_exchange_rate,
    compute_mint_amount,
    compute_redelegations_for_rebalancing,
    compute_redelegations_for_removal,
    compute_target_delegation_from_mining_power,
    compute_unbond_amount,
    compute_undelegations,
    decimal_mul_floor,
    mining_power_target_fn,
    multiply_ratio,
    reconcile_batches,
    select_validator_by_deficit,
    select_validator_for_bond,
)
from stakehub.protocol.config.params import UINT128_MAX
from stakehub.protocol.types.batch import Batch
from stakehub.protocol.types.common import CheckedArithmeticError, StateError
from stakehub.protocol.types.delegation import Delegation


def d(validator, amount):
    return Delegation(validator=validator, amount=amount, denom="uluna")


# --- Exchange rate ---

def test_mint_is_one_to_one_at_genesis():
    assert compute_mint_amount(0, 1_000_000, []) == 1_000_000

def test_mint_uses_pre_deposit_rate():
    # 1.1 native per token: 1000 native buys 909 tokens
    delegations = [d("a", 550), d("b", 550)]
    assert compute_mint_amount(1000, 1000, delegations) == 909

def test_mint_then_unbond_never_favours_user():
    delegations = [d("a", 1_234_567), d("b", 7_654_321)]
    supply = 8_000_001
    for deposit in (1, 7, 999, 123_457, 10_000_000):
        minted = compute_mint_amount(supply, deposit, delegations)
        after = [d("a", 1_234_567 + deposit), d("b", 7_654_321)]
        assert compute_unbond_amount(supply + minted, minted, after) <= deposit

def test_exchange_rate_monotonic_over_bonds():
    delegations = [d("a", 1000)]
    supply = 900
    rate = compute_exchange_rate(delegations, supply)
    for deposit in (1, 3, 17, 250, 10_001):
        supply += compute_mint_amount(supply, deposit, delegations)
        delegations = [d("a", delegations[0].amount + deposit)]
        new_rate = compute_exchange_rate(delegations, supply)
        assert new_rate >= rate
        rate = new_rate

def test_exchange_rate_is_one_without_supply():
    assert compute_exchange_rate([], 0) == Decimal(1)

def test_multiply_ratio_rejects_zero_denominator():
    with pytest.raises(CheckedArithmeticError):
        multiply_ratio(10, 1, 0)

def test_multiply_ratio_uses_full_width_intermediate():
    assert multiply_ratio(UINT128_MAX, UINT128_MAX, UINT128_MAX) == UINT128_MAX

def test_checked_add_overflow_is_arithmetic_error():
    with pytest.raises(ArithmeticError):
        checked_add(UINT128_MAX, 1)

def test_decimal_mul_floor_truncates():
    assert decimal_mul_floor(Decimal("0.05"), 10_019) == 500
    assert decimal_mul_floor(Decimal("0.333"), 10) == 3


# --- Selection ---

def test_bond_selects_first_minimum():
    assert select_validator_for_bond([d("a", 5), d("b", 2), d("c", 2)]).validator == "b"

def test_bond_selection_needs_a_validator():
    with pytest.raises(StateError):
        select_validator_for_bond([])

def test_deficit_selection_prefers_largest_deficit():
    targets = {"a": 100, "b": 300, "c": 250}
    best, deficit = select_validator_by_deficit([d("a", 150), d("b", 100), d("c", 100)], lambda x: targets[x.validator])
    assert best.validator == "b"
    assert deficit == 200

def test_deficit_selection_without_deficit_returns_zero():
    best, deficit = select_validator_by_deficit([d("a", 150), d("b", 100)], lambda x: 100)
    assert best.validator == "b"   # on target beats above target
    assert deficit == 0


# --- Targets ---

def test_target_from_mining_power():
    assert compute_target_delegation_from_mining_power(1000, 1, 3) == 333
    assert compute_target_delegation_from_mining_power(1000, 5, 0) == 0

def test_equal_targets_give_remainder_to_first():
    assert compute_equal_targets(10, ["a", "b", "c"]) == {"a": 4, "b": 3, "c": 3}

def test_target_fn_falls_back_to_equal_weight():
    fn = mining_power_target_fn(90, {}, 0, ["a", "b", "c"])
    assert [fn(d(v, 0)) for v in "abc"] == [30, 30, 30]

def test_target_fn_zero_outside_validator_set():
    fn = mining_power_target_fn(100, {"a": 1, "x": 1}, 2, ["a", "b"])
    assert fn(d("a", 0)) == 50
    assert fn(d("x", 0)) == 0


# --- Rebalancing ---

def test_rebalance_single_destination():
    targets = {"a": 100, "b": 100, "c": 100}
    delegations = [d("a", 200), d("b", 90), d("c", 10)]
    redelegations = compute_redelegations_for_rebalancing(["a", "b", "c"], delegations, 0, lambda x: targets[x.validator])

    assert len({r.dst for r in redelegations}) == 1
    assert redelegations[0].dst == "c"
    assert redelegations[0].src == "a"
    assert redelegations[0].amount == 90

def test_rebalance_converges_when_repeated():
    targets = {"a": 100, "b": 100, "c": 100}
    amounts = {"a": 250, "b": 40, "c": 10}

    for _ in range(5):
        delegations = [d(v, amounts[v]) for v in "abc"]
        redelegations = compute_redelegations_for_rebalancing(["a", "b", "c"], delegations, 0, lambda x: targets[x.validator])
        if not redelegations:
            break
        for r in redelegations:
            amounts[r.src] -= r.amount
            amounts[r.dst] += r.amount

    assert amounts == targets

def test_rebalance_drops_moves_below_minimum():
    targets = {"a": 100, "b": 100}
    redelegations = compute_redelegations_for_rebalancing(
        ["a", "b"], [d("a", 105), d("b", 95)], 10, lambda x: targets[x.validator]
    )
    assert redelegations == []

def test_rebalance_drains_paused_validator():
    # "c" is whitelisted but paused: target 0, source only
    targets = {"a": 150, "b": 150}
    delegations = [d("a", 150), d("b", 50), d("c", 100)]
    redelegations = compute_redelegations_for_rebalancing(
        ["a", "b"], delegations, 0, lambda x: targets.get(x.validator, 0)
    )
    assert [(r.src, r.dst, r.amount) for r in redelegations] == [("c", "b", 100)]

def test_removal_evacuates_everything():
    departing = d("x", 1000)
    remaining = [d("a", 100), d("b", 500), d("c", 0)]
    redelegations = compute_redelegations_for_removal(departing, remaining + [departing], "uluna")

    assert sum(r.amount for r in redelegations) == 1000
    assert all(r.src == "x" for r in redelegations)
    moved = {r.dst: r.amount for r in redelegations}
    # Equal targets 534/533/533, filled smallest first: c, then a, then b
    assert moved == {"c": 533, "a": 434, "b": 33}

def test_removal_of_last_validator_fails():
    with pytest.raises(StateError):
        compute_redelegations_for_removal(d("x", 10), [d("x", 10)], "uluna")

def test_removal_of_empty_delegation_is_noop():
    assert compute_redelegations_for_removal(d("x", 0), [d("a", 5)], "uluna") == []


# --- Undelegations ---

def test_undelegations_level_the_roster():
    undelegations = compute_undelegations(400, [d("a", 1000), d("b", 500), d("c", 0)], "uluna")
    assert [(u.validator, u.amount) for u in undelegations] == [("a", 400)]

def test_undelegations_cover_requested_amount():
    delegations = [d("a", 300), d("b", 300), d("c", 300)]
    undelegations = compute_undelegations(301, delegations, "uluna")
    assert sum(u.amount for u in undelegations) == 301

def test_undelegations_cannot_exceed_stake():
    with pytest.raises(CheckedArithmeticError):
        compute_undelegations(10, [d("a", 5)], "uluna")


# --- Shortfall ---

def test_shortfall_is_deducted_exactly():
    unclaimed = [1000, 333, 7, 12_345]
    for shortfall in (1, 2, 3, 17, 1000, 13_684):
        deductions = allocate_shortfall(unclaimed, shortfall)
        assert sum(deductions) == shortfall
        assert all(0 <= x <= u for x, u in zip(deductions, unclaimed))

def test_shortfall_largest_remainder_tie_break_by_lowest_index():
    # 1 unit over three equal batches: all remainders tie, lowest index wins
    assert allocate_shortfall([10, 10, 10], 1) == [1, 0, 0]
    assert allocate_shortfall([10, 10, 10], 2) == [1, 1, 0]

def test_shortfall_largest_remainder_wins():
    # 10 * 3/7 = 4.28, 10 * 4/7 = 5.71: the leftover unit goes to the second
    assert allocate_shortfall([30, 40], 10) == [4, 6]

def test_shortfall_capped_at_total_unclaimed():
    assert allocate_shortfall([5, 10], 100) == [5, 10]

def test_reconcile_batches_marks_reconciled():
    batches = [
        Batch(id=1, total_shares=10, amount_unclaimed=600, est_unbond_end_time=0),
        Batch(id=2, total_shares=10, amount_unclaimed=400, est_unbond_end_time=0),
    ]
    deducted = reconcile_batches(batches, 101)

    assert deducted == 101
    assert [b.amount_unclaimed for b in batches] == [539, 360]
    assert all(b.reconciled for b in batches)

def test_reconcile_batches_without_shortfall():
    batches = [Batch(id=1, total_shares=1, amount_unclaimed=5, est_unbond_end_time=0)]
    assert reconcile_batches(batches, 0) == 0
    assert batches[0].reconciled
    assert batches[0].amount_unclaimed == 5
