"""
Price model derived from a pool's initial reserves.

The price function is balance**2 / K, where balance is the native vault
balance in SOL. This is not the conventional reserve-ratio spot price; it is
the rule the strategy was tuned against and is kept as-is.
"""

from decimal import Decimal
from typing import Union

from errors import InvalidAmount

SOL_DECIMALS = 9
LAMPORTS_PER_SOL = 10 ** SOL_DECIMALS

Number = Union[int, float, str, Decimal]


def _to_decimal(value: Number) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def compute_k(init_base_amount: int, init_quote_amount: int) -> int:
    """Constant-product invariant of the initial reserves."""
    return int(init_base_amount) * int(init_quote_amount)


def compute_v(init_base_amount: int, init_quote_amount: int) -> Decimal:
    """Baseline price: smaller initial reserve over larger, in (0, 1]."""
    if init_base_amount <= 0 or init_quote_amount <= 0:
        raise InvalidAmount(
            f"Initial reserves must be positive (base={init_base_amount}, quote={init_quote_amount})"
        )
    low, high = sorted((int(init_base_amount), int(init_quote_amount)))
    return Decimal(low) / Decimal(high)


def lamports_to_sol(lamports: int) -> Decimal:
    return Decimal(lamports) / LAMPORTS_PER_SOL


def calculate_price(balance: Number, k: int) -> Decimal:
    if k <= 0:
        raise InvalidAmount(f"Pool invariant must be positive, got {k}")
    balance = _to_decimal(balance)
    return balance * balance / Decimal(k)


def target_sell_price(v: Number, sell_target_percentage: Number) -> Decimal:
    return _to_decimal(v) * (1 + _to_decimal(sell_target_percentage) / 100)
