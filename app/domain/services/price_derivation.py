from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from app.domain.entities.pool import ConcentratedPool, Token
from app.domain.services.univ3_math import sqrt_price_x96_to_price


@dataclass(frozen=True)
class ReferencePool:
    token: str
    pool: ConcentratedPool
    counterpart: str
    unknown_is_token0: bool


def find_reference_pool(
    token_address: str,
    pools: list[ConcentratedPool],
    prices: dict[str, Decimal],
) -> ReferencePool | None:
    """First pool in list order pairing the token with an already priced counterpart."""
    key = token_address.lower()
    for pool in pools:
        token0 = pool.token0.lower()
        token1 = pool.token1.lower()
        if token0 == key and prices.get(token1, Decimal("0")) > 0:
            return ReferencePool(token=key, pool=pool, counterpart=token1, unknown_is_token0=True)
        if token1 == key and prices.get(token0, Decimal("0")) > 0:
            return ReferencePool(token=key, pool=pool, counterpart=token0, unknown_is_token0=False)
    return None


def select_derivation_targets(
    prices: dict[str, Decimal],
    pools: list[ConcentratedPool],
) -> list[ReferencePool]:
    # Targets are chosen against the seeded map only, so derivation never chains.
    snapshot = dict(prices)
    targets: list[ReferencePool] = []
    for address, price in snapshot.items():
        if price > 0:
            continue
        reference = find_reference_pool(address, pools, snapshot)
        if reference is not None:
            targets.append(reference)
    return targets


def pool_price_ratio(
    sqrt_price_x96: int | None,
    token0_decimals: int,
    token1_decimals: int,
) -> Decimal | None:
    if sqrt_price_x96 is None or sqrt_price_x96 <= 0:
        return None
    return sqrt_price_x96_to_price(sqrt_price_x96, token0_decimals, token1_decimals)


def derive_price(
    ratio: Decimal | None,
    counterpart_price: Decimal,
    *,
    unknown_is_token0: bool,
) -> Decimal | None:
    if ratio is None or ratio <= 0 or counterpart_price <= 0:
        return None
    if unknown_is_token0:
        derived = ratio * counterpart_price
    else:
        derived = counterpart_price / ratio
    if not derived.is_finite() or derived <= 0:
        return None
    return derived


def price_from_sqrt(
    reference: ReferencePool,
    sqrt_price_x96: int | None,
    counterpart_price: Decimal,
    tokens: dict[str, Token],
) -> Decimal | None:
    token0 = tokens.get(reference.pool.token0.lower())
    token1 = tokens.get(reference.pool.token1.lower())
    if token0 is None or token1 is None:
        return None
    ratio = pool_price_ratio(sqrt_price_x96, token0.decimals, token1.decimals)
    return derive_price(ratio, counterpart_price, unknown_is_token0=reference.unknown_is_token0)
