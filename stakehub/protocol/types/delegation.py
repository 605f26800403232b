from pydantic import BaseModel
from typing import Optional

from .common import ReplyKind
from .effects import DelegateEffect, UndelegateEffect, RedelegateEffect, WithdrawRewardEffect


class Delegation(BaseModel):
    """Native stake the hub has delegated to one validator (rebuilt from host queries)."""
    validator: str
    amount: int
    denom: str

    def to_effect(self, reply: Optional[ReplyKind] = None) -> DelegateEffect:
        return DelegateEffect(validator=self.validator, amount=self.amount, denom=self.denom, reply=reply)

class Undelegation(BaseModel):
    validator: str
    amount: int
    denom: str

    def to_effect(self, reply: Optional[ReplyKind] = None) -> UndelegateEffect:
        return UndelegateEffect(validator=self.validator, amount=self.amount, denom=self.denom, reply=reply)

class Redelegation(BaseModel):
    src: str
    dst: str
    amount: int
    denom: str

    def to_effect(self, reply: Optional[ReplyKind] = None) -> RedelegateEffect:
        return RedelegateEffect(src=self.src, dst=self.dst, amount=self.amount, denom=self.denom, reply=reply)

class RewardWithdrawal(BaseModel):
    validator: str

    def to_effect(self, reply: Optional[ReplyKind] = None) -> WithdrawRewardEffect:
        return WithdrawRewardEffect(validator=self.validator, reply=reply)

class ValidatorInfo(BaseModel):
    """Validator descriptor as reported by the host staking module."""
    address: str
    commission: str = "0"
    jailed: bool = False
