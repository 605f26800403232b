"""
Read-only queries over the hub.

List queries page by key: `start_after` excludes everything up to and
including the given key, `limit` is clamped to MAX_QUERY_LIMIT.
"""
from decimal import Decimal
from typing import List, Optional, Tuple

from pydantic import BaseModel

from ...protocol.config.params import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT
from ...protocol.types.batch import Batch, PendingBatch, UnbondRequest
from ...protocol.types.coins import Coins
from ...protocol.types.common import StateError
from ..host.interface import StakingHost
from .math import compute_exchange_rate, total_delegated
from .state import HubState


class ConfigResponse(BaseModel):
    owner: str
    new_owner: Optional[str] = None
    steak_token: Optional[str] = None
    denom: str
    epoch_period: int
    unbond_period: int
    validators: List[str]
    validators_active: List[str]
    fee_account_type: str
    fee_account: str
    fee_rate: Decimal
    max_fee_rate: Decimal


class StateResponse(BaseModel):
    total_usteak: int
    total_native: int
    exchange_rate: Decimal
    unlocked_coins: Coins


class MiningResponse(BaseModel):
    difficulty: int
    miner_entropy: str
    last_mined_timestamp: int
    last_mined_block: int
    total_mining_power: int
    validator_mining_powers: List[Tuple[str, int]]


def _limit(limit: Optional[int]) -> int:
    return min(limit or DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT)


def config(state: HubState) -> ConfigResponse:
    params = state.params
    return ConfigResponse(
        owner=params.owner,
        new_owner=params.new_owner,
        steak_token=params.steak_token,
        denom=params.denom,
        epoch_period=params.epoch_period,
        unbond_period=params.unbond_period,
        validators=list(params.validators),
        validators_active=list(params.validators_active),
        fee_account_type=params.fee_account_type.value,
        fee_account=params.fee_account,
        fee_rate=params.fee_rate,
        max_fee_rate=params.max_fee_rate,
    )

def hub_state(state: HubState, host: StakingHost, contract_address: str) -> StateResponse:
    params = state.params
    total_usteak = host.query_token_supply(params.steak_token) if params.steak_token else 0
    delegations = host.query_delegations(params.validators, contract_address, params.denom)

    return StateResponse(
        total_usteak=total_usteak,
        total_native=total_delegated(delegations),
        exchange_rate=compute_exchange_rate(delegations, total_usteak),
        unlocked_coins=params.unlocked_coins.model_copy(deep=True),
    )

def pending_batch(state: HubState) -> PendingBatch:
    return state.pending_batch.model_copy()

def previous_batch(state: HubState, batch_id: int) -> Batch:
    batch = state.get_batch(batch_id)
    if batch is None:
        raise StateError(f"batch {batch_id} not found")
    return batch.model_copy()

def previous_batches(state: HubState, start_after: Optional[int] = None, limit: Optional[int] = None) -> List[Batch]:
    batches = [b for b in state.all_batches() if start_after is None or b.id > start_after]
    return [b.model_copy() for b in batches[:_limit(limit)]]

def unbond_requests_by_batch(state: HubState, batch_id: int, start_after: Optional[str] = None,
                             limit: Optional[int] = None) -> List[UnbondRequest]:
    requests = [r for r in state.unbond_requests_by_batch(batch_id) if start_after is None or r.user > start_after]
    return [r.model_copy() for r in requests[:_limit(limit)]]

def unbond_requests_by_user(state: HubState, user: str, start_after: Optional[int] = None,
                            limit: Optional[int] = None) -> List[UnbondRequest]:
    requests = [r for r in state.unbond_requests_by_user(user) if start_after is None or r.id > start_after]
    return [r.model_copy() for r in requests[:_limit(limit)]]

def mining(state: HubState) -> MiningResponse:
    m = state.mining
    return MiningResponse(
        difficulty=m.difficulty,
        miner_entropy=m.miner_entropy,
        last_mined_timestamp=m.last_mined_timestamp,
        last_mined_block=m.last_mined_block,
        total_mining_power=m.total_mining_power,
        validator_mining_powers=sorted(m.validator_mining_powers.items()),
    )
