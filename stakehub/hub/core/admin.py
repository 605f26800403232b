"""
Rebalancing and owner administration.

Everything here except `rebalance` is owner-only.
"""
import logging
from decimal import Decimal

from ...protocol.crypto.addresses import addr_validate
from ...protocol.types.common import AuthorizationError, Env, FeeType, ReplyKind, StateError, ValidationError
from ...protocol.types.effects import Event, Response
from ..host.interface import StakingHost
from .math import (
    compute_redelegations_for_rebalancing, compute_redelegations_for_removal,
    mining_power_target_fn, total_delegated,
)
from .state import HubState

logger = logging.getLogger(__name__)


def rebalance(state: HubState, env: Env, host: StakingHost, minimum: int) -> Response:
    """
    Moves stake toward mining-power targets. Anyone may call it.

    Delegations are read over the whole whitelist so paused validators act as
    sources only.
    """
    params = state.params
    mining = state.mining

    delegations = host.query_delegations(params.validators, env.contract_address, params.denom)
    target_fn = mining_power_target_fn(
        total_delegated(delegations),
        mining.validator_mining_powers,
        mining.total_mining_power,
        params.validators_active,
    )
    new_redelegations = compute_redelegations_for_rebalancing(
        params.validators_active, delegations, minimum, target_fn
    )

    params.prev_denom = host.query_balance(env.contract_address, params.denom)

    amount = sum(rd.amount for rd in new_redelegations)
    if new_redelegations:
        logger.info(f"Rebalancing {amount}{params.denom} over {len(new_redelegations)} redelegations")

    event = Event(ty="steakhub/rebalanced").add_attribute("amount_moved", amount)

    return (Response()
            .add_effects(rd.to_effect(reply=ReplyKind.REGISTER_RECEIVED_COINS) for rd in new_redelegations)
            .add_event(event)
            .add_attribute("action", "steakhub/rebalance"))


# --- Validator set ---

def add_validator(state: HubState, sender: str, validator: str) -> Response:
    state.assert_owner(sender)
    params = state.params

    if validator in params.validators:
        raise StateError("validator is already whitelisted")
    params.validators.append(validator)
    if validator not in params.validators_active:
        params.validators_active.append(validator)

    logger.info(f"Validator added: {validator}")
    return (Response()
            .add_event(Event(ty="steakhub/validator_added").add_attribute("validator", validator))
            .add_attribute("action", "steakhub/add_validator"))

def remove_validator(state: HubState, env: Env, host: StakingHost, sender: str, validator: str) -> Response:
    """Drops `validator` from the whitelist and redelegates all of its stake to the rest."""
    state.assert_owner(sender)
    params = state.params

    if validator not in params.validators:
        raise StateError("validator is not already whitelisted")
    params.validators = [v for v in params.validators if v != validator]
    params.validators_active = [v for v in params.validators_active if v != validator]

    delegations = host.query_delegations(params.validators, env.contract_address, params.denom)
    delegation_to_remove = host.query_delegation(validator, env.contract_address, params.denom)
    new_redelegations = compute_redelegations_for_removal(delegation_to_remove, delegations, params.denom)

    params.prev_denom = host.query_balance(env.contract_address, params.denom)

    logger.info(f"Validator removed: {validator}, evacuating {delegation_to_remove.amount}{params.denom}")

    return (Response()
            .add_effects(rd.to_effect(reply=ReplyKind.REGISTER_RECEIVED_COINS) for rd in new_redelegations)
            .add_event(Event(ty="steakhub/validator_removed").add_attribute("validator", validator))
            .add_attribute("action", "steakhub/remove_validator"))

def remove_validator_ex(state: HubState, sender: str, validator: str) -> Response:
    """Drops `validator` from the whitelist without touching its stake."""
    state.assert_owner(sender)
    params = state.params

    if validator not in params.validators:
        raise StateError("validator is not already whitelisted")
    params.validators = [v for v in params.validators if v != validator]
    params.validators_active = [v for v in params.validators_active if v != validator]

    logger.warning(f"Validator removed without evacuation: {validator}")
    return (Response()
            .add_event(Event(ty="steakhub/validator_removed_ex").add_attribute("validator", validator))
            .add_attribute("action", "steakhub/remove_validator_ex"))

def pause_validator(state: HubState, sender: str, validator: str) -> Response:
    state.assert_owner(sender)
    params = state.params

    if validator not in params.validators_active:
        raise StateError("validator is not already whitelisted")
    params.validators_active = [v for v in params.validators_active if v != validator]

    logger.info(f"Validator paused: {validator}")
    return (Response()
            .add_event(Event(ty="steakhub/pause_validator").add_attribute("validator", validator))
            .add_attribute("action", "steakhub/pause_validator"))

def unpause_validator(state: HubState, sender: str, validator: str) -> Response:
    state.assert_owner(sender)
    params = state.params

    if validator not in params.validators:
        raise StateError("validator is not whitelisted")
    if validator not in params.validators_active:
        params.validators_active.append(validator)

    logger.info(f"Validator unpaused: {validator}")
    return (Response()
            .add_event(Event(ty="steakhub/unpause_validator").add_attribute("validator", validator))
            .add_attribute("action", "steakhub/unpause_validator"))


# --- Parameters ---

def set_unbond_period(state: HubState, sender: str, unbond_period: int) -> Response:
    state.assert_owner(sender)
    if unbond_period < 0:
        raise ValidationError("unbond period must not be negative")
    state.params.unbond_period = unbond_period

    return (Response()
            .add_event(Event(ty="steakhub/set_unbond_period").add_attribute("unbond_period", unbond_period))
            .add_attribute("action", "steakhub/set_unbond_period"))

def transfer_ownership(state: HubState, sender: str, new_owner: str) -> Response:
    state.assert_owner(sender)
    state.params.new_owner = addr_validate(new_owner)
    return Response().add_attribute("action", "steakhub/transfer_ownership")

def accept_ownership(state: HubState, sender: str) -> Response:
    params = state.params
    if params.new_owner is None:
        raise StateError("no ownership transfer in progress")
    if sender != params.new_owner:
        raise AuthorizationError("unauthorized: sender is not new owner")

    previous_owner = params.owner
    params.owner = sender
    params.new_owner = None

    logger.info(f"Ownership transferred: {previous_owner} -> {sender}")

    event = (Event(ty="steakhub/ownership_transferred")
             .add_attribute("new_owner", sender)
             .add_attribute("previous_owner", previous_owner))

    return (Response()
            .add_event(event)
            .add_attribute("action", "steakhub/transfer_ownership"))

def set_fee_account(state: HubState, fee_account_type: str, new_fee_account: str):
    params = state.params
    params.fee_account_type = FeeType.parse(fee_account_type)
    params.fee_account = addr_validate(new_fee_account)

def transfer_fee_account(state: HubState, sender: str, fee_account_type: str, new_fee_account: str) -> Response:
    state.assert_owner(sender)
    set_fee_account(state, fee_account_type, new_fee_account)
    return Response().add_attribute("action", "steakhub/transfer_fee_account")

def change_denom(state: HubState, sender: str, new_denom: str) -> Response:
    state.assert_owner(sender)
    params = state.params
    logger.warning(f"Denom changed: {params.denom} -> {new_denom}")
    params.denom = new_denom
    return Response().add_attribute("action", "steakhub/change_denom")

def update_fee(state: HubState, sender: str, new_fee: Decimal) -> Response:
    state.assert_owner(sender)
    params = state.params
    if new_fee < 0:
        raise ValidationError("fee can not be negative")
    if new_fee > params.max_fee_rate:
        raise ValidationError("refusing to set fee above maximum set")
    params.fee_rate = new_fee
    return Response().add_attribute("action", "steakhub/update_fee")
