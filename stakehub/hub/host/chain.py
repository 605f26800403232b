# MIT License
# Copyright (c) 2025 Hashborn

"""
In-memory host chain.

Implements just enough of a Cosmos-style staking, bank and token environment
to drive the hub end to end:

- Staking: validators, delegations, pending rewards, unbonding queue, slashing.
  Rewards are withdrawn automatically whenever a delegation changes.
- Bank: native balances per (address, denom).
- Tokens: receipt-token contracts with a single minter and a tracked supply.
- Fee-split contracts: registered addresses that accept fee deposits.

Block time and height only move through `advance`.
"""

import copy
import logging
from decimal import Decimal
from fractions import Fraction
from typing import Any, Dict, List, Optional, Tuple

from ...protocol.config.params import ATTR_CONTRACT_ADDRESS, CURRENT_NETWORK, EVENT_COIN_RECEIVED, EVENT_INSTANTIATE
from ...protocol.crypto.addresses import address_from_seed
from ...protocol.types.coins import Coin, Coins
from ...protocol.types.common import Env, HostError
from ...protocol.types.delegation import Delegation, ValidatorInfo
from ...protocol.types.effects import Event, HostResponse
from .interface import StakingHost

logger = logging.getLogger(__name__)

DelegationKey = Tuple[str, str]    # (delegator, validator)


class UnbondingEntry:
    def __init__(self, delegator: str, validator: str, amount: int, denom: str, completion_time: int):
        self.delegator = delegator
        self.validator = validator
        self.amount = amount
        self.denom = denom
        self.completion_time = completion_time


class TokenContract:
    def __init__(self, address: str, name: str, symbol: str, decimals: int, minter: str):
        self.address = address
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.minter = minter
        self.balances: Dict[str, int] = {}
        self.total_supply = 0


class _Ledger:
    """Everything a failed call must roll back."""

    def __init__(self):
        self.validators: Dict[str, ValidatorInfo] = {}
        self.delegations: Dict[DelegationKey, int] = {}
        self.rewards: Dict[DelegationKey, int] = {}
        self.unbonding: List[UnbondingEntry] = []
        self.balances: Dict[Tuple[str, str], int] = {}
        self.tokens: Dict[str, TokenContract] = {}
        self.fee_split_contracts: Dict[str, int] = {}   # address -> deposits received
        self.token_nonce = 0


class InMemoryChain(StakingHost):
    def __init__(self,
                 denom: str = CURRENT_NETWORK.denom,
                 unbonding_time: int = CURRENT_NETWORK.unbond_period,
                 block_time: int = 1_700_000_000,
                 block_height: int = 1,
                 block_time_sec: int = CURRENT_NETWORK.block_time_sec):
        self.denom = denom
        self.unbonding_time = unbonding_time
        self.block_time = block_time
        self.block_height = block_height
        self.block_time_sec = block_time_sec
        self.ledger = _Ledger()

    # ═══════════════════════════════════════════════════════
    # TEST / SIMULATION CONTROLS
    # ═══════════════════════════════════════════════════════

    def add_validator(self, address: str, commission: str = "0") -> ValidatorInfo:
        info = ValidatorInfo(address=address, commission=commission)
        self.ledger.validators[address] = info
        return info

    def fund(self, address: str, amount: int, denom: Optional[str] = None):
        self._credit(address, denom or self.denom, amount)

    def add_rewards(self, delegator: str, validator: str, amount: int):
        """Accrues staking rewards, paid out on the next withdrawal or delegation change."""
        key = (delegator, validator)
        if self.ledger.delegations.get(key, 0) == 0:
            raise HostError(f"no delegation from {delegator} to {validator}")
        self.ledger.rewards[key] = self.ledger.rewards.get(key, 0) + amount

    def register_fee_split(self, address: str):
        self.ledger.fee_split_contracts.setdefault(address, 0)

    def slash(self, validator: str, fraction: Decimal) -> int:
        """
        Burns `fraction` of every delegation to and unbonding entry from `validator`.

        Returns the total amount burned.
        """
        ratio = Fraction(fraction)
        slashed = 0
        for key, amount in self.ledger.delegations.items():
            if key[1] == validator:
                cut = amount * ratio.numerator // ratio.denominator
                self.ledger.delegations[key] = amount - cut
                slashed += cut
        for entry in self.ledger.unbonding:
            if entry.validator == validator:
                cut = entry.amount * ratio.numerator // ratio.denominator
                entry.amount -= cut
                slashed += cut
        logger.info(f"Slashed {validator} by {fraction}: {slashed} burned")
        return slashed

    def advance(self, seconds: int, blocks: Optional[int] = None):
        """Moves the clock forward and pays out matured unbonding entries."""
        if blocks is None:
            blocks = max(seconds // self.block_time_sec, 1)
        self.block_time += seconds
        self.block_height += blocks

        matured = [e for e in self.ledger.unbonding if e.completion_time <= self.block_time]
        self.ledger.unbonding = [e for e in self.ledger.unbonding if e.completion_time > self.block_time]
        for entry in matured:
            self._credit(entry.delegator, entry.denom, entry.amount)
            logger.debug(f"Unbonding matured: {entry.amount}{entry.denom} to {entry.delegator}")

    def token_balance(self, token: str, address: str) -> int:
        return self._token(token).balances.get(address, 0)

    def unbonding_entries(self, delegator: str) -> List[UnbondingEntry]:
        return [e for e in self.ledger.unbonding if e.delegator == delegator]

    def fee_split_deposits(self, address: str) -> int:
        return self.ledger.fee_split_contracts.get(address, 0)

    # ═══════════════════════════════════════════════════════
    # QUERIES
    # ═══════════════════════════════════════════════════════

    def query_delegation(self, validator: str, delegator: str, denom: str) -> Delegation:
        return Delegation(validator=validator, amount=self.ledger.delegations.get((delegator, validator), 0), denom=denom)

    def query_all_delegations(self, delegator: str) -> List[Delegation]:
        return [
            Delegation(validator=validator, amount=amount, denom=self.denom)
            for (owner, validator), amount in sorted(self.ledger.delegations.items())
            if owner == delegator and amount > 0
        ]

    def query_validator(self, address: str) -> Optional[ValidatorInfo]:
        return self.ledger.validators.get(address)

    def query_balance(self, address: str, denom: str) -> int:
        return self.ledger.balances.get((address, denom), 0)

    def query_token_supply(self, token: str) -> int:
        return self._token(token).total_supply

    # ═══════════════════════════════════════════════════════
    # ACTIONS
    # ═══════════════════════════════════════════════════════

    def env(self, contract_address: str) -> Env:
        return Env(block_height=self.block_height, block_time=self.block_time, contract_address=contract_address)

    def transfer(self, sender: str, recipient: str, funds: Coins) -> None:
        for coin in funds:
            self._debit(sender, coin.denom, coin.amount)
            self._credit(recipient, coin.denom, coin.amount)

    def transfer_tokens(self, token: str, sender: str, recipient: str, amount: int) -> None:
        contract = self._token(token)
        balance = contract.balances.get(sender, 0)
        if amount <= 0 or balance < amount:
            raise HostError(f"insufficient {contract.symbol} balance: {balance} < {amount}")
        contract.balances[sender] = balance - amount
        contract.balances[recipient] = contract.balances.get(recipient, 0) + amount

    def snapshot(self) -> Any:
        return copy.deepcopy(self.ledger)

    def restore(self, snapshot: Any) -> None:
        self.ledger = copy.deepcopy(snapshot)

    def execute(self, sender: str, effect) -> HostResponse:
        handler = getattr(self, f"_exec_{effect.kind}", None)
        if handler is None:
            raise HostError(f"Unsupported effect: {effect.kind}")
        events = handler(sender, effect)
        logger.debug(f"Applied {effect.kind} from {sender}")
        return HostResponse(events=events)

    # --- Staking ---

    def _exec_delegate(self, sender: str, effect) -> List[Event]:
        self._require_validator(effect.validator)
        self._require_positive(effect.amount)
        events = self._withdraw_rewards(sender, effect.validator)
        self._debit(sender, effect.denom, effect.amount)

        key = (sender, effect.validator)
        self.ledger.delegations[key] = self.ledger.delegations.get(key, 0) + effect.amount

        events.append(Event(ty="delegate")
                      .add_attribute("validator", effect.validator)
                      .add_attribute("amount", Coin(denom=effect.denom, amount=effect.amount)))
        return events

    def _exec_undelegate(self, sender: str, effect) -> List[Event]:
        self._require_positive(effect.amount)
        key = (sender, effect.validator)
        delegated = self.ledger.delegations.get(key, 0)
        if delegated < effect.amount:
            raise HostError(f"undelegate {effect.amount} exceeds delegation {delegated} to {effect.validator}")

        events = self._withdraw_rewards(sender, effect.validator)
        self.ledger.delegations[key] = delegated - effect.amount

        completion_time = self.block_time + self.unbonding_time
        self.ledger.unbonding.append(
            UnbondingEntry(sender, effect.validator, effect.amount, effect.denom, completion_time)
        )

        events.append(Event(ty="unbond")
                      .add_attribute("validator", effect.validator)
                      .add_attribute("amount", Coin(denom=effect.denom, amount=effect.amount))
                      .add_attribute("completion_time", completion_time))
        return events

    def _exec_redelegate(self, sender: str, effect) -> List[Event]:
        self._require_validator(effect.dst)
        self._require_positive(effect.amount)
        if effect.src == effect.dst:
            raise HostError("cannot redelegate to the same validator")

        src_key, dst_key = (sender, effect.src), (sender, effect.dst)
        delegated = self.ledger.delegations.get(src_key, 0)
        if delegated < effect.amount:
            raise HostError(f"redelegate {effect.amount} exceeds delegation {delegated} to {effect.src}")

        events = self._withdraw_rewards(sender, effect.src) + self._withdraw_rewards(sender, effect.dst)
        self.ledger.delegations[src_key] = delegated - effect.amount
        self.ledger.delegations[dst_key] = self.ledger.delegations.get(dst_key, 0) + effect.amount

        events.append(Event(ty="redelegate")
                      .add_attribute("source_validator", effect.src)
                      .add_attribute("destination_validator", effect.dst)
                      .add_attribute("amount", Coin(denom=effect.denom, amount=effect.amount)))
        return events

    def _exec_withdraw_reward(self, sender: str, effect) -> List[Event]:
        return self._withdraw_rewards(sender, effect.validator)

    def _withdraw_rewards(self, delegator: str, validator: str) -> List[Event]:
        amount = self.ledger.rewards.pop((delegator, validator), 0)
        if amount == 0:
            return []
        self._credit(delegator, self.denom, amount)
        return [self._coin_received(delegator, amount, self.denom)]

    # --- Bank ---

    def _exec_bank_send(self, sender: str, effect) -> List[Event]:
        self._debit(sender, effect.denom, effect.amount)
        self._credit(effect.to_address, effect.denom, effect.amount)
        return [self._coin_received(effect.to_address, effect.amount, effect.denom)]

    def _exec_fee_split_deposit(self, sender: str, effect) -> List[Event]:
        if effect.contract not in self.ledger.fee_split_contracts:
            raise HostError(f"{effect.contract} is not a fee split contract")
        self._debit(sender, effect.denom, effect.amount)
        self._credit(effect.contract, effect.denom, effect.amount)
        self.ledger.fee_split_contracts[effect.contract] += effect.amount
        return [self._coin_received(effect.contract, effect.amount, effect.denom)]

    # --- Tokens ---

    def _exec_instantiate_token(self, sender: str, effect) -> List[Event]:
        self.ledger.token_nonce += 1
        address = address_from_seed(f"{sender}/{effect.label}/{self.ledger.token_nonce}".encode(), prefix="terra")
        self.ledger.tokens[address] = TokenContract(address, effect.name, effect.symbol, effect.decimals, effect.minter)
        logger.info(f"Token {effect.symbol} instantiated at {address}")

        return [Event(ty=EVENT_INSTANTIATE)
                .add_attribute(ATTR_CONTRACT_ADDRESS, address)
                .add_attribute("code_id", 1)]

    def _exec_mint(self, sender: str, effect) -> List[Event]:
        contract = self._token(effect.token)
        if sender != contract.minter:
            raise HostError(f"{sender} is not the minter of {effect.token}")
        self._require_positive(effect.amount)
        contract.balances[effect.recipient] = contract.balances.get(effect.recipient, 0) + effect.amount
        contract.total_supply += effect.amount
        return [Event(ty="wasm")
                .add_attribute("action", "mint")
                .add_attribute("to", effect.recipient)
                .add_attribute("amount", effect.amount)]

    def _exec_burn(self, sender: str, effect) -> List[Event]:
        contract = self._token(effect.token)
        balance = contract.balances.get(sender, 0)
        if balance < effect.amount:
            raise HostError(f"burn {effect.amount} exceeds balance {balance}")
        contract.balances[sender] = balance - effect.amount
        contract.total_supply -= effect.amount
        return [Event(ty="wasm")
                .add_attribute("action", "burn")
                .add_attribute("from", sender)
                .add_attribute("amount", effect.amount)]

    # --- Helpers ---

    def _token(self, token: str) -> TokenContract:
        contract = self.ledger.tokens.get(token)
        if contract is None:
            raise HostError(f"unknown token contract {token}")
        return contract

    def _require_validator(self, address: str):
        if address not in self.ledger.validators:
            raise HostError(f"validator {address} does not exist")

    @staticmethod
    def _require_positive(amount: int):
        if amount <= 0:
            raise HostError(f"invalid amount: {amount}")

    def _credit(self, address: str, denom: str, amount: int):
        key = (address, denom)
        self.ledger.balances[key] = self.ledger.balances.get(key, 0) + amount

    def _debit(self, address: str, denom: str, amount: int):
        key = (address, denom)
        balance = self.ledger.balances.get(key, 0)
        if balance < amount:
            raise HostError(f"insufficient funds: {address} has {balance}{denom}, needs {amount}{denom}")
        self.ledger.balances[key] = balance - amount

    @staticmethod
    def _coin_received(receiver: str, amount: int, denom: str) -> Event:
        return (Event(ty=EVENT_COIN_RECEIVED)
                .add_attribute("receiver", receiver)
                .add_attribute("amount", Coin(denom=denom, amount=amount)))
