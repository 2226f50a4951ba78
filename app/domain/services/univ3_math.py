from __future__ import annotations

from decimal import Decimal


Q96 = Decimal(2**96)


def sqrt_price_x96_to_sqrt_price(sqrt_price_x96: int) -> Decimal:
    if sqrt_price_x96 <= 0:
        raise ValueError("Invalid sqrt_price_x96.")
    return Decimal(sqrt_price_x96) / Q96


def sqrt_price_x96_to_price(
    sqrt_price_x96: int,
    token0_decimals: int,
    token1_decimals: int,
) -> Decimal:
    """Price of token0 in token1 units, adjusted for decimals."""
    sqrt_price = sqrt_price_x96_to_sqrt_price(sqrt_price_x96)
    raw_price = sqrt_price * sqrt_price
    decimal_adjust = Decimal(10) ** Decimal(token0_decimals - token1_decimals)
    return raw_price * decimal_adjust
