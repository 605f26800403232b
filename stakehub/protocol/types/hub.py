from decimal import Decimal
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from .coins import Coins
from .common import FeeType


class HubParams(BaseModel):
    owner: str
    new_owner: Optional[str] = None           # Nominee of a pending ownership transfer
    steak_token: Optional[str] = None         # Set once the token instantiation reply lands
    denom: str
    epoch_period: int
    unbond_period: int
    validators: List[str]                     # Whitelist
    validators_active: List[str]              # Whitelist minus paused validators
    unlocked_coins: Coins = Field(default_factory=lambda: Coins([]))
    prev_denom: int = 0                       # Native balance snapshot for reward accounting
    max_fee_rate: Decimal
    fee_rate: Decimal
    fee_account: str
    fee_account_type: FeeType = FeeType.WALLET


class MiningState(BaseModel):
    """
    Everything the proof-of-work gate tracks.

    Updated only through the pure functions in `hub.core.mining`, each of which
    returns a new instance.
    """
    difficulty: int
    miner_entropy: str                        # Published proof seed
    miner_entropy_draft: str                  # Next-round seed, not published
    last_mined_timestamp: int
    last_mined_block: int
    total_mining_power: int = 0
    validator_mining_powers: Dict[str, int] = Field(default_factory=dict)

    def mining_power_of(self, validator: str) -> int:
        return self.validator_mining_powers.get(validator, 0)
