# MIT License
# Copyright (c) 2025 Hashborn

"""
Hub entry points: instantiation, message dispatch and reply handling.

`execute` routes a validated `ExecuteMsg` to its operation; `reply` feeds a
host response back into the hub for effects that asked for one.
"""

import logging
from typing import List, Optional

from ...protocol.config.params import (
    ATTR_CONTRACT_ADDRESS,
    DEFAULT_TOKEN_LABEL,
    EVENT_INSTANTIATE,
    INITIAL_DIFFICULTY,
    MAX_FEE_RATE_CEILING,
)
from ...protocol.crypto.addresses import addr_validate
from ...protocol.types.batch import PendingBatch
from ...protocol.types.coins import Coins
from ...protocol.types.common import Env, FeeType, ReplyKind, StateError, ValidationError
from ...protocol.types.effects import Event, InstantiateTokenEffect, Response
from ...protocol.types.hub import HubParams, MiningState
from ...protocol.types import msgs
from ..host.interface import StakingHost
from . import admin, bonding, mining, unbonding
from .state import HubState

logger = logging.getLogger(__name__)


def instantiate(state: HubState, env: Env, msg: msgs.InstantiateMsg) -> Response:
    if state.is_instantiated():
        raise StateError("hub is already instantiated")
    if msg.max_fee_amount > MAX_FEE_RATE_CEILING:
        raise ValidationError("Max fee can not exceed 100%")
    if msg.fee_amount > msg.max_fee_amount:
        raise ValidationError("fee can not exceed max fee")
    if msg.fee_amount < 0:
        raise ValidationError("fee can not be negative")
    fee_type = FeeType.parse(msg.fee_account_type)

    state.params = HubParams(
        owner=addr_validate(msg.owner),
        denom=msg.denom,
        epoch_period=msg.epoch_period,
        unbond_period=msg.unbond_period,
        validators=list(msg.validators),
        validators_active=list(msg.validators),
        unlocked_coins=Coins([]),
        prev_denom=0,
        max_fee_rate=msg.max_fee_amount,
        fee_rate=msg.fee_amount,
        fee_account=addr_validate(msg.fee_account),
        fee_account_type=fee_type,
    )

    state.pending_batch = PendingBatch(
        id=1,
        usteak_to_burn=0,
        est_unbond_start_time=env.block_time + msg.epoch_period,
    )

    # The hub's own address seeds the entropy chain
    state.mining = MiningState(
        difficulty=INITIAL_DIFFICULTY,
        miner_entropy=env.contract_address,
        miner_entropy_draft=env.contract_address,
        last_mined_timestamp=env.block_time,
        last_mined_block=env.block_height,
        total_mining_power=0,
    )

    logger.info(
        f"Hub instantiated at {env.contract_address}: {len(msg.validators)} validators, "
        f"denom {msg.denom}, fee {msg.fee_amount} (max {msg.max_fee_amount})"
    )

    token = InstantiateTokenEffect(
        admin=msg.owner,
        name=msg.name,
        symbol=msg.symbol,
        decimals=msg.decimals,
        minter=env.contract_address,
        label=msg.label or DEFAULT_TOKEN_LABEL,
        reply=ReplyKind.INSTANTIATE_TOKEN,
    )
    return Response().add_effect(token).add_attribute("action", "steakhub/instantiate")


def register_steak_token(state: HubState, events: List[Event]) -> Response:
    event = next((e for e in events if e.ty == EVENT_INSTANTIATE), None)
    if event is None:
        raise ValidationError("cannot find `instantiate` event")

    contract_addr = event.get(ATTR_CONTRACT_ADDRESS)
    if contract_addr is None:
        raise ValidationError("cannot find `_contract_address` attribute")

    state.params.steak_token = addr_validate(contract_addr)
    logger.info(f"Receipt token registered: {contract_addr}")
    return Response()


def execute(state: HubState, env: Env, host: StakingHost, sender: str, msg,
            funds: Optional[Coins] = None) -> Response:
    """Routes one message. `funds` have already been credited to the hub."""
    logger.debug(f"Executing {msg.kind} from {sender}")

    if isinstance(msg, msgs.Bond):
        return bonding.bond(state, env, host, msg.receiver or sender, funds)
    elif isinstance(msg, msgs.Harvest):
        return bonding.harvest(state, env, host, sender)
    elif isinstance(msg, msgs.Reinvest):
        return bonding.reinvest(state, env, host, sender)

    elif isinstance(msg, msgs.QueueUnbond):
        return unbonding.queue_unbond(state, env, sender, msg.receiver, msg.amount)
    elif isinstance(msg, msgs.SubmitBatch):
        return unbonding.submit_batch(state, env, host)
    elif isinstance(msg, msgs.Reconcile):
        return unbonding.reconcile(state, env, host)
    elif isinstance(msg, msgs.WithdrawUnbonded):
        return unbonding.withdraw_unbonded(state, env, sender, msg.receiver or sender)
    elif isinstance(msg, msgs.WithdrawUnbondedAdmin):
        return unbonding.withdraw_unbonded_admin(state, env, sender, msg.user, msg.receiver or msg.user)

    elif isinstance(msg, msgs.Rebalance):
        return admin.rebalance(state, env, host, msg.minimum)
    elif isinstance(msg, msgs.AddValidator):
        return admin.add_validator(state, sender, msg.validator)
    elif isinstance(msg, msgs.RemoveValidator):
        return admin.remove_validator(state, env, host, sender, msg.validator)
    elif isinstance(msg, msgs.RemoveValidatorEx):
        return admin.remove_validator_ex(state, sender, msg.validator)
    elif isinstance(msg, msgs.PauseValidator):
        return admin.pause_validator(state, sender, msg.validator)
    elif isinstance(msg, msgs.UnpauseValidator):
        return admin.unpause_validator(state, sender, msg.validator)
    elif isinstance(msg, msgs.SetUnbondPeriod):
        return admin.set_unbond_period(state, sender, msg.unbond_period)
    elif isinstance(msg, msgs.TransferOwnership):
        return admin.transfer_ownership(state, sender, msg.new_owner)
    elif isinstance(msg, msgs.AcceptOwnership):
        return admin.accept_ownership(state, sender)
    elif isinstance(msg, msgs.TransferFeeAccount):
        return admin.transfer_fee_account(state, sender, msg.fee_account_type, msg.new_fee_account)
    elif isinstance(msg, msgs.ChangeDenom):
        return admin.change_denom(state, sender, msg.new_denom)
    elif isinstance(msg, msgs.UpdateFee):
        return admin.update_fee(state, sender, msg.new_fee)

    elif isinstance(msg, msgs.UpdateEntropy):
        return mining.update_entropy(state, env, sender, msg.entropy)
    elif isinstance(msg, msgs.SubmitProof):
        return mining.submit_proof(state, env, host, sender, msg.nonce, msg.validator)

    raise ValidationError(f"Unknown message: {type(msg).__name__}")


def reply(state: HubState, env: Env, kind: ReplyKind, events: List[Event]) -> Response:
    if kind == ReplyKind.INSTANTIATE_TOKEN:
        return register_steak_token(state, events)
    elif kind == ReplyKind.REGISTER_RECEIVED_COINS:
        return bonding.register_received_coins(state, env, events)
    raise ValidationError(f"invalid reply id: {kind}")
