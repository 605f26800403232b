"""
Pending effects returned by hub operations.

An operation never talks to the host chain directly. It returns a `Response`
carrying an ordered queue of tagged effects; the driver executes them in
order and, for effects flagged with a reply, feeds the host's events back into
the hub before moving on.
"""
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field

from .common import ReplyKind
from .msgs import ExecuteMsg


class Attribute(BaseModel):
    key: str
    value: str


class Event(BaseModel):
    ty: str
    attributes: List[Attribute] = Field(default_factory=list)

    def add_attribute(self, key: str, value) -> "Event":
        self.attributes.append(Attribute(key=key, value=str(value)))
        return self

    def get(self, key: str) -> Optional[str]:
        for attr in self.attributes:
            if attr.key == key:
                return attr.value
        return None


class _EffectBase(BaseModel):
    reply: Optional[ReplyKind] = None   # reply-on-success handler, if any


class DelegateEffect(_EffectBase):
    kind: Literal["delegate"] = "delegate"
    validator: str
    amount: int
    denom: str

class UndelegateEffect(_EffectBase):
    kind: Literal["undelegate"] = "undelegate"
    validator: str
    amount: int
    denom: str

class RedelegateEffect(_EffectBase):
    kind: Literal["redelegate"] = "redelegate"
    src: str
    dst: str
    amount: int
    denom: str

class WithdrawRewardEffect(_EffectBase):
    kind: Literal["withdraw_reward"] = "withdraw_reward"
    validator: str

class BankSendEffect(_EffectBase):
    kind: Literal["bank_send"] = "bank_send"
    to_address: str
    amount: int
    denom: str

class FeeSplitDepositEffect(_EffectBase):
    kind: Literal["fee_split_deposit"] = "fee_split_deposit"
    contract: str
    amount: int
    denom: str
    flush: bool = False

class InstantiateTokenEffect(_EffectBase):
    kind: Literal["instantiate_token"] = "instantiate_token"
    admin: Optional[str] = None
    name: str
    symbol: str
    decimals: int
    minter: str
    label: str

class MintEffect(_EffectBase):
    kind: Literal["mint"] = "mint"
    token: str
    recipient: str
    amount: int

class BurnEffect(_EffectBase):
    kind: Literal["burn"] = "burn"
    token: str
    amount: int

class ExecuteSelfEffect(_EffectBase):
    """Follow-up call the hub sends to itself."""
    kind: Literal["execute_self"] = "execute_self"
    msg: ExecuteMsg


Effect = Annotated[
    Union[
        DelegateEffect, UndelegateEffect, RedelegateEffect, WithdrawRewardEffect,
        BankSendEffect, FeeSplitDepositEffect, InstantiateTokenEffect,
        MintEffect, BurnEffect, ExecuteSelfEffect,
    ],
    Field(discriminator="kind"),
]


class Response(BaseModel):
    effects: List[Effect] = Field(default_factory=list)
    events: List[Event] = Field(default_factory=list)
    attributes: List[Attribute] = Field(default_factory=list)

    def add_effect(self, effect) -> "Response":
        self.effects.append(effect)
        return self

    def add_effects(self, effects) -> "Response":
        self.effects.extend(effects)
        return self

    def add_event(self, event: Event) -> "Response":
        self.events.append(event)
        return self

    def add_attribute(self, key: str, value) -> "Response":
        self.attributes.append(Attribute(key=key, value=str(value)))
        return self

    def action(self) -> Optional[str]:
        for attr in self.attributes:
            if attr.key == "action":
                return attr.value
        return None


class HostResponse(BaseModel):
    """What the host reports back after applying one effect."""
    events: List[Event] = Field(default_factory=list)
