from __future__ import annotations

from decimal import Decimal

from app.domain.entities.onchain import CallResult
from app.domain.entities.pool import ConcentratedPool, ConstantProductPool, Token
from app.domain.services.units import format_units


ZERO = Decimal("0")
ONE = Decimal("1")
TWO = Decimal("2")


def _decimals(tokens: dict[str, Token], address: str) -> int | None:
    token = tokens.get(address.lower())
    return token.decimals if token is not None else None


def compute_v3_pool_tvl(
    pools: list[ConcentratedPool],
    balances: list[tuple[CallResult, CallResult]],
    tokens: dict[str, Token],
    prices: dict[str, Decimal],
) -> dict[str, Decimal]:
    """Sum priced pool balances. ``balances`` is aligned with ``pools`` as (token0, token1) reads."""
    tvl: dict[str, Decimal] = {}
    for pool, (balance0, balance1) in zip(pools, balances):
        pool_tvl = ZERO
        for token_address, result in ((pool.token0, balance0), (pool.token1, balance1)):
            raw = result.first_int()
            price = prices.get(token_address.lower(), ZERO)
            token = tokens.get(token_address.lower())
            if raw is None or price <= 0 or token is None:
                continue
            pool_tvl += format_units(raw, token.decimals) * price
        if pool_tvl > 0:
            tvl[pool.address.lower()] = pool_tvl
    return tvl


def stable_side(pool: ConstantProductPool, stable_unit: str | None) -> int | None:
    """Index (0 or 1) of the stable unit within the pair, or None."""
    if not stable_unit:
        return None
    key = stable_unit.lower()
    if pool.token0.lower() == key:
        return 0
    if pool.token1.lower() == key:
        return 1
    return None


def compute_v2_pool_tvl(
    pools: list[ConstantProductPool],
    reserves: list[CallResult],
    tokens: dict[str, Token],
    prices: dict[str, Decimal],
    stable_unit: str | None,
) -> dict[str, Decimal]:
    tvl: dict[str, Decimal] = {}
    if not stable_unit:
        return tvl
    stable_price = prices.get(stable_unit.lower()) or ONE

    for pool, result in zip(pools, reserves):
        if not result.success or len(result.values) < 2:
            continue
        side = stable_side(pool, stable_unit)
        if side is None:
            continue
        token_address = pool.token0 if side == 0 else pool.token1
        reserve = format_units(int(result.values[side]), _decimals(tokens, token_address))
        tvl[pool.address.lower()] = TWO * reserve * stable_price
    return tvl


def compute_v2_pool_tvl_any_side(
    pools: list[ConstantProductPool],
    reserves: list[CallResult],
    tokens: dict[str, Token],
    prices: dict[str, Decimal],
    stable_unit: str | None,
) -> Decimal:
    """Protocol-wide v2 TVL: stable side when paired with it, else the first priced side."""
    total = sum(
        compute_v2_pool_tvl(pools, reserves, tokens, prices, stable_unit).values(),
        ZERO,
    )
    for pool, result in zip(pools, reserves):
        if not result.success or len(result.values) < 2:
            continue
        if stable_side(pool, stable_unit) is not None:
            continue
        for side, token_address in ((0, pool.token0), (1, pool.token1)):
            price = prices.get(token_address.lower(), ZERO)
            if price <= 0:
                continue
            reserve = format_units(int(result.values[side]), _decimals(tokens, token_address))
            total += TWO * reserve * price
            break
    return total


def compute_bridge_tvl(minted: list[CallResult]) -> Decimal:
    total = ZERO
    for result in minted:
        raw = result.first_int()
        if raw is None:
            continue
        total += format_units(raw, 18)
    return total
