"""
Bonding and harvesting.

Deposits go whole to the least-delegated active validator; harvested rewards
go, net of the fee, to the validator furthest below its mining-power target.
"""
import logging
from typing import List, Optional

from ...protocol.config.params import EVENT_COIN_RECEIVED
from ...protocol.types.coins import Coins
from ...protocol.types.common import (
    AuthorizationError, Env, FeeType, ReplyKind, StateError, ValidationError,
)
from ...protocol.types.delegation import Delegation, RewardWithdrawal
from ...protocol.types.effects import (
    BankSendEffect, Event, ExecuteSelfEffect, FeeSplitDepositEffect, MintEffect, Response,
)
from ...protocol.types.msgs import Reinvest
from ..host.interface import StakingHost
from .math import (
    compute_mint_amount, decimal_mul_floor, mining_power_target_fn,
    select_validator_by_deficit, select_validator_for_bond, total_delegated,
)
from .state import HubState

logger = logging.getLogger(__name__)


def parse_received_fund(funds: Optional[Coins], denom: str) -> int:
    if funds is None or len(funds) != 1:
        raise ValidationError(f"must deposit exactly one coin; received {len(funds) if funds else 0}")

    fund = funds.root[0]
    if fund.denom != denom:
        raise ValidationError(f"expected {denom} deposit, received {fund.denom}")
    if fund.amount == 0:
        raise ValidationError("deposit amount must be non-zero")
    return fund.amount

def _require_token(state: HubState) -> str:
    token = state.params.steak_token
    if token is None:
        raise StateError("receipt token is not registered yet")
    return token


def bond(state: HubState, env: Env, host: StakingHost, receiver: str, funds: Optional[Coins]) -> Response:
    params = state.params
    amount_to_bond = parse_received_fund(funds, params.denom)
    steak_token = _require_token(state)

    delegations = host.query_delegations(params.validators_active, env.contract_address, params.denom)
    validator = select_validator_for_bond(delegations)
    new_delegation = Delegation(validator=validator.validator, amount=amount_to_bond, denom=params.denom)

    # Supply and delegations are read before the deposit lands
    usteak_supply = host.query_token_supply(steak_token)
    usteak_to_mint = compute_mint_amount(usteak_supply, amount_to_bond, delegations)

    # Funds have already arrived, so the snapshot includes them
    params.prev_denom = host.query_balance(env.contract_address, params.denom)

    logger.info(f"Bonding {amount_to_bond}{params.denom} to {validator.validator}, minting {usteak_to_mint} for {receiver}")

    event = (Event(ty="steakhub/bonded")
             .add_attribute("time", env.block_time)
             .add_attribute("height", env.block_height)
             .add_attribute("receiver", receiver)
             .add_attribute("denom_bonded", params.denom)
             .add_attribute("denom_amount", amount_to_bond)
             .add_attribute("usteak_minted", usteak_to_mint))

    return (Response()
            .add_effect(new_delegation.to_effect(reply=ReplyKind.REGISTER_RECEIVED_COINS))
            .add_effect(MintEffect(token=steak_token, recipient=receiver, amount=usteak_to_mint))
            .add_event(event)
            .add_attribute("action", "steakhub/bond"))


def harvest(state: HubState, env: Env, host: StakingHost, sender: str) -> Response:
    params = state.params
    if sender != env.contract_address and sender != params.owner:
        raise AuthorizationError("only the contract itself or its owner can harvest rewards")

    params.prev_denom = host.query_balance(env.contract_address, params.denom)

    withdrawals = [
        RewardWithdrawal(validator=d.validator).to_effect(reply=ReplyKind.REGISTER_RECEIVED_COINS)
        for d in host.query_all_delegations(env.contract_address)
    ]
    logger.debug(f"Harvesting rewards from {len(withdrawals)} validators")

    return (Response()
            .add_effects(withdrawals)
            .add_effect(ExecuteSelfEffect(msg=Reinvest()))
            .add_attribute("action", "steakhub/harvest"))


def reinvest(state: HubState, env: Env, host: StakingHost, sender: str) -> Response:
    if sender != env.contract_address:
        raise AuthorizationError("callbacks can only be invoked by the contract itself")

    params = state.params
    mining = state.mining
    denom = params.denom

    current_coin = host.query_balance(env.contract_address, denom)
    if current_coin <= params.prev_denom:
        raise StateError("no rewards")
    amount_to_bond = current_coin - params.prev_denom

    delegations = host.query_delegations(params.validators_active, env.contract_address, denom)
    target_fn = mining_power_target_fn(
        total_delegated(delegations),
        mining.validator_mining_powers,
        mining.total_mining_power,
        params.validators_active,
    )
    validator, deficit = select_validator_by_deficit(delegations, target_fn)

    fee_amount = 0 if params.fee_rate == 0 else decimal_mul_floor(params.fee_rate, amount_to_bond)
    amount_to_bond_minus_fees = max(amount_to_bond - fee_amount, 0)

    new_delegation = Delegation(validator=validator.validator, amount=amount_to_bond_minus_fees, denom=denom)

    params.unlocked_coins.remove_denom(denom)

    logger.info(
        f"Reinvesting {amount_to_bond_minus_fees}{denom} into {validator.validator} "
        f"(deficit {deficit}, fee {fee_amount})"
    )

    event = (Event(ty="steakhub/harvested")
             .add_attribute("time", env.block_time)
             .add_attribute("height", env.block_height)
             .add_attribute("denom", denom)
             .add_attribute("fees_deducted", fee_amount)
             .add_attribute("denom_bonded", amount_to_bond_minus_fees))

    response = Response()
    if amount_to_bond_minus_fees > 0:
        response.add_effect(new_delegation.to_effect())

    if fee_amount > 0:
        if params.fee_account_type == FeeType.WALLET:
            response.add_effect(BankSendEffect(to_address=params.fee_account, amount=fee_amount, denom=denom))
        else:
            response.add_effect(FeeSplitDepositEffect(contract=params.fee_account, amount=fee_amount, denom=denom))

    return response.add_event(event).add_attribute("action", "steakhub/reinvest")


def register_received_coins(state: HubState, env: Env, events: List[Event]) -> Response:
    """
    Folds coins the hub received during a staking action into `unlocked_coins`.

    One reply may carry several `coin_received` events; each is parsed on its own.
    """
    events = [e for e in events if e.ty == EVENT_COIN_RECEIVED]
    if not events:
        return Response()

    received_coins = Coins([])
    for event in events:
        received_coins.add_many(_parse_coin_receiving_event(env, event))

    state.params.unlocked_coins.add_many(received_coins)
    if len(received_coins):
        logger.debug(f"Registered received coins: {received_coins}")

    return Response().add_attribute("action", "steakhub/register_received_coins")

def _parse_coin_receiving_event(env: Env, event: Event) -> Coins:
    receiver = event.get("receiver")
    if receiver is None:
        raise ValidationError("cannot find `receiver` attribute")

    amount_str = event.get("amount")
    if amount_str is None:
        raise ValidationError("cannot find `amount` attribute")

    if receiver != env.contract_address:
        return Coins([])
    return Coins.parse(amount_str)
