# MIT License
# Copyright (c) 2025 Hashborn

"""
Batch Unbonding State Machine

    Pending ──submit──▶ Submitted ──reconcile──▶ Reconciled ──withdraw──▶ (removed)

Exactly one PendingBatch accepts requests at a time. Submitting it fixes the
native amount, dispatches undelegations and opens the next PendingBatch one
epoch later. Once the unbonding period has passed, `reconcile` charges any
slashing shortfall to the matured batches, after which users withdraw their
pro-rata share.

Invariant: for every batch, the shares of its UnbondRequests sum to the
batch's total (PendingBatch.usteak_to_burn or Batch.total_shares).
"""

import logging

from ...protocol.types.batch import Batch, PendingBatch, UnbondRequest
from ...protocol.types.common import AuthorizationError, Env, ReplyKind, StateError, TimingError, ValidationError
from ...protocol.types.effects import BankSendEffect, BurnEffect, Event, ExecuteSelfEffect, Response
from ...protocol.types.msgs import SubmitBatch
from ..host.interface import StakingHost
from .math import checked_add, compute_undelegations, compute_unbond_amount, multiply_ratio, reconcile_batches
from .state import HubState

logger = logging.getLogger(__name__)


def queue_unbond(state: HubState, env: Env, sender: str, receiver: str, usteak_to_burn: int) -> Response:
    """Receive hook: `sender` must be the receipt token delivering `usteak_to_burn`."""
    params = state.params
    if params.steak_token is None or sender != params.steak_token:
        raise AuthorizationError(f"expecting receipt token, received {sender}")
    if usteak_to_burn <= 0:
        raise ValidationError("unbond amount must be non-zero")

    pending_batch = state.pending_batch
    pending_batch.usteak_to_burn = checked_add(pending_batch.usteak_to_burn, usteak_to_burn)
    state.pending_batch = pending_batch

    request = state.get_unbond_request(pending_batch.id, receiver) or UnbondRequest(
        id=pending_batch.id, user=receiver, shares=0
    )
    request.shares = checked_add(request.shares, usteak_to_burn)
    state.save_unbond_request(request)

    response = Response()
    if env.block_time >= pending_batch.est_unbond_start_time:
        response.add_effect(ExecuteSelfEffect(msg=SubmitBatch()))

    event = (Event(ty="steakhub/unbond_queued")
             .add_attribute("time", env.block_time)
             .add_attribute("height", env.block_height)
             .add_attribute("id", pending_batch.id)
             .add_attribute("receiver", receiver)
             .add_attribute("usteak_to_burn", usteak_to_burn))

    return response.add_event(event).add_attribute("action", "steakhub/queue_unbond")


def submit_batch(state: HubState, env: Env, host: StakingHost) -> Response:
    params = state.params
    pending_batch = state.pending_batch
    steak_token = params.steak_token

    current_time = env.block_time
    if current_time < pending_batch.est_unbond_start_time:
        raise TimingError(
            f"batch can only be submitted for unbonding after {pending_batch.est_unbond_start_time}"
        )

    delegations = host.query_delegations(params.validators, env.contract_address, params.denom)
    usteak_supply = host.query_token_supply(steak_token)

    native_to_unbond = (
        compute_unbond_amount(usteak_supply, pending_batch.usteak_to_burn, delegations)
        if pending_batch.usteak_to_burn > 0 else 0
    )
    new_undelegations = compute_undelegations(native_to_unbond, delegations, params.denom)

    # If validators get slashed while this unbonds, less than `amount_unclaimed`
    # comes back; `reconcile` settles the difference before anyone withdraws.
    # An empty batch has no requests to pay out, so only its id is consumed.
    if pending_batch.usteak_to_burn > 0:
        state.save_batch(Batch(
            id=pending_batch.id,
            reconciled=False,
            total_shares=pending_batch.usteak_to_burn,
            amount_unclaimed=native_to_unbond,
            est_unbond_end_time=current_time + params.unbond_period,
        ))

    state.pending_batch = PendingBatch(
        id=pending_batch.id + 1,
        usteak_to_burn=0,
        est_unbond_start_time=current_time + params.epoch_period,
    )
    params.prev_denom = host.query_balance(env.contract_address, params.denom)

    logger.info(
        f"Submitted batch {pending_batch.id}: burning {pending_batch.usteak_to_burn}, "
        f"unbonding {native_to_unbond}{params.denom} from {len(new_undelegations)} validators"
    )

    response = Response().add_effects(
        u.to_effect(reply=ReplyKind.REGISTER_RECEIVED_COINS) for u in new_undelegations
    )
    if pending_batch.usteak_to_burn > 0:
        response.add_effect(BurnEffect(token=steak_token, amount=pending_batch.usteak_to_burn))

    event = (Event(ty="steakhub/unbond_submitted")
             .add_attribute("time", env.block_time)
             .add_attribute("height", env.block_height)
             .add_attribute("id", pending_batch.id)
             .add_attribute("native_unbonded", native_to_unbond)
             .add_attribute("usteak_burned", pending_batch.usteak_to_burn))

    return response.add_event(event).add_attribute("action", "steakhub/unbond")


def reconcile(state: HubState, env: Env, host: StakingHost) -> Response:
    params = state.params
    current_time = env.block_time

    batches = [b for b in state.unreconciled_batches() if current_time > b.est_unbond_end_time]

    native_expected_received = sum(b.amount_unclaimed for b in batches)
    native_expected_unlocked = params.unlocked_coins.find(params.denom).amount
    native_expected = native_expected_received + native_expected_unlocked
    native_actual = host.query_balance(env.contract_address, params.denom)

    native_to_deduct = max(native_expected - native_actual, 0)
    if native_to_deduct > 0:
        logger.warning(
            f"Shortfall of {native_to_deduct}{params.denom}: expected {native_expected}, have {native_actual}"
        )
    native_deducted = reconcile_batches(batches, native_to_deduct)

    for batch in batches:
        state.save_batch(batch)

    ids = ",".join(str(b.id) for b in batches)
    event = (Event(ty="steakhub/reconciled")
             .add_attribute("ids", ids)
             .add_attribute("native_deducted", native_deducted))

    return (Response()
            .add_event(event)
            .add_attribute("action", "steakhub/reconcile"))


def withdraw_unbonded(state: HubState, env: Env, user: str, receiver: str) -> Response:
    params = state.params
    current_time = env.block_time

    # Withdrawable batches are previous (not pending), reconciled and past
    # their unbonding end. Users unsure about reconciliation call `reconcile` first.
    total_native_to_refund = 0
    ids = []
    for request in state.unbond_requests_by_user(user):
        batch = state.get_batch(request.id)
        if batch is None or not (batch.reconciled and batch.est_unbond_end_time < current_time):
            continue

        native_to_refund = multiply_ratio(batch.amount_unclaimed, request.shares, batch.total_shares)
        ids.append(str(request.id))

        total_native_to_refund += native_to_refund
        batch.total_shares -= request.shares
        batch.amount_unclaimed -= native_to_refund

        if batch.total_shares == 0:
            state.remove_batch(batch.id)
        else:
            state.save_batch(batch)

        state.remove_unbond_request(request.id, user)

    if total_native_to_refund == 0:
        raise StateError("withdrawable amount is zero")

    logger.info(f"Refunding {total_native_to_refund}{params.denom} to {receiver} from batches {ids}")

    event = (Event(ty="steakhub/unbonded_withdrawn")
             .add_attribute("time", env.block_time)
             .add_attribute("height", env.block_height)
             .add_attribute("ids", ",".join(ids))
             .add_attribute("user", user)
             .add_attribute("receiver", receiver)
             .add_attribute("amount_refunded", total_native_to_refund))

    return (Response()
            .add_effect(BankSendEffect(to_address=receiver, amount=total_native_to_refund, denom=params.denom))
            .add_event(event)
            .add_attribute("action", "steakhub/withdraw_unbonded"))


def withdraw_unbonded_admin(state: HubState, env: Env, sender: str, user: str, receiver: str) -> Response:
    """Owner-initiated withdrawal of `user`'s matured requests."""
    state.assert_owner(sender)
    return withdraw_unbonded(state, env, user, receiver)
