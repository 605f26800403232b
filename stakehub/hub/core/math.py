# MIT License
# Copyright (c) 2025 Hashborn

"""
Hub Arithmetic

Exchange rate, delegation selection, rebalancing and slashing reconciliation.

All amounts are integers in the smallest native unit. Ratios use a single
multiply-then-divide on Python's unbounded ints and truncate, so rounding
always favours the pool. Results are checked against the host's 128-bit
accumulators.
"""

import logging
from decimal import Decimal
from fractions import Fraction
from typing import Callable, Dict, List, Sequence, Tuple

from ...protocol.config.params import UINT128_MAX
from ...protocol.types.batch import Batch
from ...protocol.types.common import CheckedArithmeticError, StateError
from ...protocol.types.delegation import Delegation, Redelegation, Undelegation

logger = logging.getLogger(__name__)

TargetFn = Callable[[Delegation], int]


# ═══════════════════════════════════════════════════════
# CHECKED INTEGER HELPERS
# ═══════════════════════════════════════════════════════

def checked_add(a: int, b: int, limit: int = UINT128_MAX) -> int:
    result = a + b
    if result > limit:
        raise CheckedArithmeticError(f"Overflow: {a} + {b}")
    return result

def checked_sub(a: int, b: int) -> int:
    if b > a:
        raise CheckedArithmeticError(f"Underflow: {a} - {b}")
    return a - b

def checked_mul(a: int, b: int, limit: int = UINT128_MAX) -> int:
    result = a * b
    if result > limit:
        raise CheckedArithmeticError(f"Overflow: {a} * {b}")
    return result

def multiply_ratio(value: int, numerator: int, denominator: int) -> int:
    """`value * numerator // denominator` with a full-width intermediate."""
    if denominator == 0:
        raise CheckedArithmeticError(f"Cannot multiply {value} by {numerator}/0")
    result = (value * numerator) // denominator
    if result > UINT128_MAX:
        raise CheckedArithmeticError(f"Overflow: {value} * {numerator} / {denominator}")
    return result

def decimal_mul_floor(rate: Decimal, amount: int) -> int:
    """Multiplies an integer amount by a decimal rate exactly, truncating."""
    ratio = Fraction(rate)
    return multiply_ratio(amount, ratio.numerator, ratio.denominator)


# ═══════════════════════════════════════════════════════
# EXCHANGE RATE
# ═══════════════════════════════════════════════════════

def total_delegated(delegations: Sequence[Delegation]) -> int:
    return sum(d.amount for d in delegations)

def compute_mint_amount(usteak_supply: int, native_to_bond: int, current_delegations: Sequence[Delegation]) -> int:
    """
    Receipt tokens to mint for a deposit.

    1:1 at genesis; afterwards at the rate implied by the delegations taken
    *before* the deposit is applied.
    """
    if usteak_supply == 0:
        return native_to_bond
    return multiply_ratio(native_to_bond, usteak_supply, total_delegated(current_delegations))

def compute_unbond_amount(usteak_supply: int, usteak_to_burn: int, current_delegations: Sequence[Delegation]) -> int:
    """Native stake redeemed by burning `usteak_to_burn` receipt tokens."""
    return multiply_ratio(usteak_to_burn, total_delegated(current_delegations), usteak_supply)

def compute_exchange_rate(current_delegations: Sequence[Delegation], usteak_supply: int) -> Decimal:
    """Native per receipt token; 1 before anything is minted. Reporting only."""
    if usteak_supply == 0:
        return Decimal(1)
    return Decimal(total_delegated(current_delegations)) / Decimal(usteak_supply)


# ═══════════════════════════════════════════════════════
# DELEGATION SELECTION
# ═══════════════════════════════════════════════════════

def select_validator_for_bond(delegations: Sequence[Delegation]) -> Delegation:
    """
    Validator with the smallest delegation (first one wins a tie).

    Placing a whole deposit on one validator keeps the host fee at one
    delegate message; `rebalance` corrects the skew later.
    """
    if not delegations:
        raise StateError("no active validators to delegate to")

    selected = delegations[0]
    for d in delegations[1:]:
        if d.amount < selected.amount:
            selected = d
    return selected

def _cmp(a: int, b: int) -> int:
    return (a > b) - (a < b)

def select_validator_by_deficit(delegations: Sequence[Delegation], target_fn: TargetFn) -> Tuple[Delegation, int]:
    """
    Running-best scan for the validator furthest below its target.

    Candidates are ranked by `cmp(target, current)` first (below target beats
    on target beats above target), then by deficit size. Returns the chosen
    delegation and its deficit (0 when nobody is below target).
    """
    if not delegations:
        raise StateError("no active validators to delegate to")

    best = delegations[0]
    best_target = target_fn(best)
    best_cmp = _cmp(best_target, best.amount)
    best_diff = best_target - best.amount if best_cmp > 0 else 0

    for d in delegations[1:]:
        target = target_fn(d)
        current_cmp = _cmp(target, d.amount)
        current_diff = abs(target - d.amount)
        if current_cmp > best_cmp or (current_cmp > 0 and current_diff > best_diff):
            best, best_cmp, best_diff = d, current_cmp, current_diff

    return best, (best_diff if best_cmp > 0 else 0)


# ═══════════════════════════════════════════════════════
# TARGETS
# ═══════════════════════════════════════════════════════

def compute_target_delegation_from_mining_power(total_bonded: int, validator_mining_power: int, total_mining_power: int) -> int:
    """Share of `total_bonded` proportional to mining power; 0 when nobody has mined."""
    if total_mining_power == 0:
        return 0
    return checked_mul(total_bonded, validator_mining_power) // total_mining_power

def compute_equal_targets(total: int, validators: Sequence[str]) -> Dict[str, int]:
    """Even split; the first `total % n` validators get one extra unit."""
    if not validators:
        return {}
    per_validator, remainder = divmod(total, len(validators))
    return {
        v: per_validator + (1 if i < remainder else 0)
        for i, v in enumerate(validators)
    }

def mining_power_target_fn(total_bonded: int, mining_powers: Dict[str, int], total_mining_power: int,
                           validators: Sequence[str]) -> TargetFn:
    """
    Target function over `validators`.

    Falls back to equal weighting until some validator has mining power.
    Validators outside `validators` get a target of zero.
    """
    if total_mining_power == 0:
        equal = compute_equal_targets(total_bonded, validators)
        return lambda d: equal.get(d.validator, 0)

    eligible = set(validators)

    def target(d: Delegation) -> int:
        if d.validator not in eligible:
            return 0
        return compute_target_delegation_from_mining_power(
            total_bonded, mining_powers.get(d.validator, 0), total_mining_power
        )
    return target


# ═══════════════════════════════════════════════════════
# REBALANCING
# ═══════════════════════════════════════════════════════

def compute_redelegations_for_rebalancing(
    validators_active: Sequence[str],
    current_delegations: Sequence[Delegation],
    minimum: int,
    target_fn: TargetFn,
) -> List[Redelegation]:
    """
    Moves stake into the single validator with the largest deficit.

    Sources are the validators holding more than their target (paused ones
    hold a target of zero), largest surplus first. Moves smaller than
    `minimum` are dropped. One destination per call; call again until no
    redelegation comes back.
    """
    active = set(validators_active)
    targets = {
        d.validator: (target_fn(d) if d.validator in active else 0)
        for d in current_delegations
    }

    candidates = [d for d in current_delegations if d.validator in active]
    if not candidates:
        return []
    dst, deficit = select_validator_by_deficit(candidates, lambda d: targets[d.validator])
    if deficit == 0:
        return []

    sources = [
        (d, d.amount - targets[d.validator])
        for d in current_delegations
        if d.amount > targets[d.validator] and d.validator != dst.validator
    ]
    sources.sort(key=lambda pair: pair[1], reverse=True)

    redelegations = []
    remaining = deficit
    for src, surplus in sources:
        if remaining == 0:
            break
        amount = min(surplus, remaining)
        if amount < minimum:
            logger.debug(f"Skipping redelegation {src.validator} -> {dst.validator} of {amount} (< {minimum})")
            continue
        redelegations.append(Redelegation(src=src.validator, dst=dst.validator, amount=amount, denom=src.denom))
        remaining -= amount

    return redelegations

def compute_redelegations_for_removal(
    delegation_to_remove: Delegation,
    current_delegations: Sequence[Delegation],
    denom: str,
) -> List[Redelegation]:
    """
    Evacuates all of a departing validator's stake onto the rest of the roster.

    Each step tops up the remaining validator with the smallest delegation
    (first one wins a tie) toward an equal share, until nothing is left.
    """
    remaining_delegations = [d for d in current_delegations if d.validator != delegation_to_remove.validator]
    if delegation_to_remove.amount == 0:
        return []
    if not remaining_delegations:
        raise StateError("cannot evacuate the last validator")

    total = total_delegated(remaining_delegations) + delegation_to_remove.amount
    targets = compute_equal_targets(total, [d.validator for d in remaining_delegations])
    amounts = {d.validator: d.amount for d in remaining_delegations}
    moved: Dict[str, int] = {}

    native_available = delegation_to_remove.amount
    while native_available > 0:
        below_target = [
            Delegation(validator=v, amount=amounts[v], denom=denom)
            for v in amounts if amounts[v] < targets[v]
        ]
        if not below_target:
            # Unreachable: targets sum to the evacuated total
            raise StateError("removal left stake unassigned")
        selected = select_validator_for_bond(below_target)
        amount = min(native_available, targets[selected.validator] - selected.amount)
        amounts[selected.validator] += amount
        moved[selected.validator] = moved.get(selected.validator, 0) + amount
        native_available -= amount

    return [
        Redelegation(src=delegation_to_remove.validator, dst=validator, amount=amount, denom=denom)
        for validator, amount in moved.items()
    ]


# ═══════════════════════════════════════════════════════
# UNBONDING
# ═══════════════════════════════════════════════════════

def compute_undelegations(native_to_unbond: int, current_delegations: Sequence[Delegation], denom: str) -> List[Undelegation]:
    """
    Spreads an unbonding over the roster so what stays bonded is as even as possible.

    Every validator above the post-unbond equal share gives up its surplus,
    in roster order, until `native_to_unbond` is covered.
    """
    native_staked = total_delegated(current_delegations)
    native_to_distribute = checked_sub(native_staked, native_to_unbond)
    targets = compute_equal_targets(native_to_distribute, [d.validator for d in current_delegations])

    undelegations = []
    native_available = native_to_unbond
    for d in current_delegations:
        native_for_validator = targets[d.validator]
        native_to_undelegate = max(d.amount - native_for_validator, 0)
        native_to_undelegate = min(native_to_undelegate, native_available)
        native_available -= native_to_undelegate

        if native_to_undelegate > 0:
            undelegations.append(Undelegation(validator=d.validator, amount=native_to_undelegate, denom=denom))

    return undelegations


# ═══════════════════════════════════════════════════════
# SLASHING RECONCILIATION
# ═══════════════════════════════════════════════════════

def allocate_shortfall(unclaimed: Sequence[int], shortfall: int) -> List[int]:
    """
    Largest-remainder split of `shortfall` in proportion to `unclaimed`.

    Each entry first gets `floor(shortfall * u / U)`. Leftover units go one
    at a time to the entries with the largest fractional remainder, lowest
    index first on ties. No entry is charged more than its own `unclaimed`;
    any excess re-flows to the next entry in the same order. A shortfall
    above `U` is capped at `U`.
    """
    total_unclaimed = sum(unclaimed)
    if total_unclaimed == 0 or shortfall <= 0:
        return [0] * len(unclaimed)
    shortfall = min(shortfall, total_unclaimed)

    deductions = []
    remainders = []
    for i, u in enumerate(unclaimed):
        quotient, remainder = divmod(shortfall * u, total_unclaimed)
        deductions.append(quotient)
        remainders.append((remainder, i))

    # Largest remainder first, then lowest index
    order = [i for _, i in sorted(remainders, key=lambda pair: (-pair[0], pair[1]))]
    leftover = shortfall - sum(deductions)
    for i in order:
        if leftover == 0:
            break
        deductions[i] += 1
        leftover -= 1

    # Clamp and re-flow
    excess = 0
    for i in order:
        if deductions[i] > unclaimed[i]:
            excess += deductions[i] - unclaimed[i]
            deductions[i] = unclaimed[i]
    for i in order:
        if excess == 0:
            break
        room = unclaimed[i] - deductions[i]
        take = min(room, excess)
        deductions[i] += take
        excess -= take

    return deductions

def reconcile_batches(batches: List[Batch], native_to_deduct: int) -> int:
    """
    Charges a slashing shortfall to `batches` (in place) and marks them reconciled.

    Returns the amount actually deducted.
    """
    deductions = allocate_shortfall([b.amount_unclaimed for b in batches], native_to_deduct)
    for batch, deduction in zip(batches, deductions):
        batch.amount_unclaimed -= deduction
        batch.reconciled = True
        if deduction:
            logger.info(f"Batch {batch.id}: deducted {deduction}, {batch.amount_unclaimed} left unclaimed")

    deducted = sum(deductions)
    if deducted < native_to_deduct:
        logger.warning(f"Shortfall {native_to_deduct} exceeds unclaimed total; deducted {deducted}")
    return deducted
