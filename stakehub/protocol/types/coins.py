import re
from typing import List
from pydantic import BaseModel, RootModel

from .common import ValidationError, CheckedArithmeticError
from ..config.params import UINT128_MAX

_COIN_RE = re.compile(r"^([0-9]+)([a-zA-Z][a-zA-Z0-9/:._-]{1,127})$")


class Coin(BaseModel):
    denom: str
    amount: int

    def __str__(self) -> str:
        return f"{self.amount}{self.denom}"

    @classmethod
    def parse(cls, text: str) -> "Coin":
        match = _COIN_RE.match(text.strip())
        if not match:
            raise ValidationError(f"invalid coin: {text!r}")
        return cls(amount=int(match.group(1)), denom=match.group(2))


class Coins(RootModel[List[Coin]]):
    """
    Ordered list of coins with at most one entry per denom.

    Mirrors the comma-separated `amount` attribute the bank module emits,
    e.g. "123uluna,45uusd".
    """
    root: List[Coin] = []

    @classmethod
    def parse(cls, text: str) -> "Coins":
        coins = cls([])
        if not text:
            return coins
        for part in text.split(","):
            coins.add(Coin.parse(part))
        return coins

    def __str__(self) -> str:
        return ",".join(str(c) for c in self.root)

    def __iter__(self):
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def add(self, coin: Coin) -> None:
        for existing in self.root:
            if existing.denom == coin.denom:
                total = existing.amount + coin.amount
                if total > UINT128_MAX:
                    raise CheckedArithmeticError(f"overflow adding {coin} to {existing}")
                existing.amount = total
                return
        self.root.append(coin.model_copy())

    def add_many(self, other: "Coins") -> None:
        for coin in other:
            self.add(coin)

    def find(self, denom: str) -> Coin:
        """Returns the coin of `denom`, or a zero coin if absent."""
        for coin in self.root:
            if coin.denom == denom:
                return coin
        return Coin(denom=denom, amount=0)

    def remove_denom(self, denom: str) -> None:
        self.root = [c for c in self.root if c.denom != denom]
