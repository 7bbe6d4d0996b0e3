"""Economy primitives."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .exceptions import InsufficientFundsError


class Currency(str, Enum):
    COINS = "coins"
    DIAMONDS = "diamonds"


@dataclass(slots=True, frozen=True)
class WalletBalance:
    """Two-currency balance; never negative."""

    coins: int = 0
    diamonds: int = 0

    def balance(self, currency: Currency) -> int:
        return self.coins if currency is Currency.COINS else self.diamonds

    def apply(self, coins_delta: int = 0, diamonds_delta: int = 0) -> "WalletBalance":
        """Return the balance after the deltas, refusing to go negative."""
        next_coins = self.coins + coins_delta
        next_diamonds = self.diamonds + diamonds_delta
        if next_coins < 0:
            raise InsufficientFundsError(Currency.COINS.value, self.coins, -coins_delta)
        if next_diamonds < 0:
            raise InsufficientFundsError(Currency.DIAMONDS.value, self.diamonds, -diamonds_delta)
        return WalletBalance(coins=next_coins, diamonds=next_diamonds)

    def as_dict(self) -> dict[str, int]:
        return {Currency.COINS.value: self.coins, Currency.DIAMONDS.value: self.diamonds}


def currency_deltas(currency: Currency, amount: int) -> tuple[int, int]:
    """Split a signed amount into ``(coins_delta, diamonds_delta)``."""
    if currency is Currency.COINS:
        return amount, 0
    return 0, amount
