"""
Host chain collaborator.

The hub reads delegations, balances and token supply through these queries
and hands every side effect to `execute`. A failing effect raises and aborts
the whole originating call.
"""
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

from ...protocol.types.coins import Coins
from ...protocol.types.common import Env
from ...protocol.types.delegation import Delegation, ValidatorInfo
from ...protocol.types.effects import HostResponse


class StakingHost(ABC):

    # --- Queries ---

    @abstractmethod
    def query_delegation(self, validator: str, delegator: str, denom: str) -> Delegation:
        """Delegation of `delegator` to `validator` (amount 0 if none)."""

    def query_delegations(self, validators: Sequence[str], delegator: str, denom: str) -> List[Delegation]:
        """One entry per validator, in the given order."""
        return [self.query_delegation(v, delegator, denom) for v in validators]

    @abstractmethod
    def query_all_delegations(self, delegator: str) -> List[Delegation]:
        """Every non-zero delegation of `delegator`, ordered by validator."""

    @abstractmethod
    def query_validator(self, address: str) -> Optional[ValidatorInfo]:
        ...

    @abstractmethod
    def query_balance(self, address: str, denom: str) -> int:
        ...

    @abstractmethod
    def query_token_supply(self, token: str) -> int:
        ...

    # --- Actions ---

    @abstractmethod
    def env(self, contract_address: str) -> Env:
        """Current block context."""

    @abstractmethod
    def execute(self, sender: str, effect) -> HostResponse:
        """Applies one effect on behalf of `sender`."""

    @abstractmethod
    def transfer(self, sender: str, recipient: str, funds: Coins) -> None:
        """Moves native funds attached to a call."""

    @abstractmethod
    def transfer_tokens(self, token: str, sender: str, recipient: str, amount: int) -> None:
        """Moves receipt tokens (receive-hook deliveries)."""

    @abstractmethod
    def snapshot(self) -> Any:
        ...

    @abstractmethod
    def restore(self, snapshot: Any) -> None:
        ...
