from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from app.domain.entities.market_data import (
    NATIVE_TOKEN,
    BridgeVolumeBucket,
    SwapRecord,
    TokenVolumeBucket,
    VolumeBucket,
)
from app.domain.entities.onchain import CallResult
from app.domain.entities.pool import ConcentratedPool, ConstantProductPool, Token
from app.domain.services.tvl import stable_side
from app.domain.services.units import format_units


ZERO = Decimal("0")


@dataclass(frozen=True)
class VolumeCoverage:
    priced_buckets: int
    unpriced_buckets: int
    unknown_pool_buckets: int

    @property
    def has_gap(self) -> bool:
        return self.unpriced_buckets > 0


def _add(target: dict[str, Decimal], key: str, value: Decimal) -> None:
    target[key] = target.get(key, ZERO) + value


def filter_buckets_since(buckets: list, cutoff: int) -> list:
    return [bucket for bucket in buckets if bucket.timestamp >= cutoff]


def aggregate_pool_volumes(
    buckets: list[VolumeBucket],
    pools: dict[str, ConcentratedPool],
    tokens: dict[str, Token],
    prices: dict[str, Decimal],
) -> tuple[dict[str, Decimal], VolumeCoverage]:
    """USD volume per pool, valued on token0 when priced, else token1."""
    volumes: dict[str, Decimal] = {}
    priced = 0
    unpriced = 0
    unknown = 0

    for bucket in buckets:
        pool_key = bucket.pool_address.lower()
        pool = pools.get(pool_key)
        if pool is None:
            unknown += 1
            continue

        token0 = tokens.get(pool.token0.lower())
        token1 = tokens.get(pool.token1.lower())
        price0 = prices.get(pool.token0.lower(), ZERO)
        price1 = prices.get(pool.token1.lower(), ZERO)

        if price0 > 0 and token0 is not None:
            value = format_units(bucket.volume0, token0.decimals) * price0
        elif price1 > 0 and token1 is not None:
            value = format_units(bucket.volume1, token1.decimals) * price1
        else:
            unpriced += 1
            continue

        priced += 1
        if value > 0:
            _add(volumes, pool_key, value)

    return volumes, VolumeCoverage(
        priced_buckets=priced,
        unpriced_buckets=unpriced,
        unknown_pool_buckets=unknown,
    )


def _stable_volume(
    bucket: VolumeBucket,
    pool: ConstantProductPool,
    tokens: dict[str, Token],
    stable_unit: str | None,
) -> Decimal:
    side = stable_side(pool, stable_unit)
    if side is None:
        return ZERO
    token_address = pool.token0 if side == 0 else pool.token1
    token = tokens.get(token_address.lower())
    decimals = token.decimals if token is not None else None
    raw = bucket.volume0 if side == 0 else bucket.volume1
    return format_units(raw, decimals)


def aggregate_v2_pool_volumes(
    buckets: list[VolumeBucket],
    pools: dict[str, ConstantProductPool],
    tokens: dict[str, Token],
    stable_unit: str | None,
) -> dict[str, Decimal]:
    volumes: dict[str, Decimal] = {}
    for bucket in buckets:
        pool_key = bucket.pool_address.lower()
        pool = pools.get(pool_key)
        if pool is None:
            continue
        value = _stable_volume(bucket, pool, tokens, stable_unit)
        if value > 0:
            _add(volumes, pool_key, value)
    return volumes


def aggregate_token_volumes(
    buckets: list[TokenVolumeBucket],
    tokens: dict[str, Token],
    prices: dict[str, Decimal],
) -> dict[str, Decimal]:
    volumes: dict[str, Decimal] = {}
    for bucket in buckets:
        key = bucket.token_address.lower()
        token = tokens.get(key)
        price = prices.get(key, ZERO)
        if token is None or price <= 0:
            continue
        value = format_units(bucket.volume, token.decimals) * price
        if value > 0:
            _add(volumes, key, value)
    return volumes


def attribute_v2_token_volumes(
    buckets: list[VolumeBucket],
    pools: dict[str, ConstantProductPool],
    tokens: dict[str, Token],
    stable_unit: str | None,
    base: dict[str, Decimal],
) -> dict[str, Decimal]:
    """Add stable-side v2 volume to the non-stable token of each pair."""
    volumes = dict(base)
    for bucket in buckets:
        pool = pools.get(bucket.pool_address.lower())
        if pool is None:
            continue
        side = stable_side(pool, stable_unit)
        if side is None:
            continue
        value = _stable_volume(bucket, pool, tokens, stable_unit)
        if value > 0:
            counterpart = pool.token1 if side == 0 else pool.token0
            _add(volumes, counterpart.lower(), value)
    return volumes


def derive_token_volumes(
    v3_volumes: dict[str, Decimal],
    v2_volumes: dict[str, Decimal],
    v3_pools: list[ConcentratedPool],
    v2_pools: list[ConstantProductPool],
) -> dict[str, Decimal]:
    """Project each pool's volume onto both of its tokens.

    A trade is counted once per side of its pool.
    """
    volumes: dict[str, Decimal] = {}
    for pools, pool_volumes in ((v3_pools, v3_volumes), (v2_pools, v2_volumes)):
        for pool in pools:
            value = pool_volumes.get(pool.address.lower(), ZERO)
            if value <= 0:
                continue
            _add(volumes, pool.token0.lower(), value)
            _add(volumes, pool.token1.lower(), value)
    return volumes


def sum_tx_counts(buckets: list[VolumeBucket]) -> dict[str, int]:
    counts: dict[str, int] = defaultdict(int)
    for bucket in buckets:
        counts[bucket.pool_address.lower()] += bucket.tx_count
    return dict(counts)


def compute_token_fdv(
    tokens: list[Token],
    supplies: list[CallResult],
    prices: dict[str, Decimal],
) -> dict[str, Decimal]:
    fdv: dict[str, Decimal] = {}
    for token, result in zip(tokens, supplies):
        raw = result.first_int()
        price = prices.get(token.address.lower(), ZERO)
        if raw is None or price <= 0:
            continue
        value = format_units(raw, token.decimals) * price
        if value > 0 and value.is_finite():
            fdv[token.address.lower()] = value
    return fdv


def swap_quantities(
    swap: SwapRecord,
    tokens: dict[str, Token],
    prices: dict[str, Decimal],
) -> tuple[Decimal | None, Decimal, Decimal]:
    """USD value (tokenIn side first) and absolute quantities of both legs."""
    token_in = tokens.get(swap.token_in.lower())
    token_out = tokens.get(swap.token_out.lower())
    quantity_in = abs(format_units(swap.amount_in, token_in.decimals)) if token_in else ZERO
    quantity_out = abs(format_units(swap.amount_out, token_out.decimals)) if token_out else ZERO

    usd_value = ZERO
    price_in = prices.get(swap.token_in.lower(), ZERO)
    if token_in is not None and price_in > 0:
        usd_value = quantity_in * price_in
    if usd_value == 0 and token_out is not None:
        price_out = prices.get(swap.token_out.lower(), ZERO)
        if price_out > 0:
            usd_value = quantity_out * price_out

    return (usd_value if usd_value > 0 else None), quantity_in, quantity_out


def sum_bridge_volume(
    buckets: list[BridgeVolumeBucket],
    native_price_usd: Decimal,
) -> Decimal:
    total = ZERO
    for bucket in buckets:
        amount = format_units(bucket.volume, 18)
        if bucket.token_address == NATIVE_TOKEN:
            total += amount * native_price_usd
        else:
            total += amount
    return total
