from __future__ import annotations

from decimal import Decimal

from app.domain.entities.market_data import NATIVE_TOKEN, BridgeVolumeBucket, SwapRecord, VolumeBucket
from app.domain.entities.onchain import CallResult
from app.domain.entities.pool import ConcentratedPool, ConstantProductPool, Token
from app.domain.services.tvl import (
    compute_bridge_tvl,
    compute_v2_pool_tvl,
    compute_v2_pool_tvl_any_side,
    compute_v3_pool_tvl,
)
from app.domain.services.volume import (
    aggregate_pool_volumes,
    aggregate_v2_pool_volumes,
    attribute_v2_token_volumes,
    compute_token_fdv,
    derive_token_volumes,
    filter_buckets_since,
    sum_bridge_volume,
    sum_tx_counts,
    swap_quantities,
)


E18 = 10**18


def _token(address: str, decimals: int = 18) -> Token:
    return Token(address=address, decimals=decimals, symbol=address, name=address, chain_id=5115)


TOKENS = {
    "0xjusd": _token("0xjusd"),
    "0xmeme": _token("0xmeme"),
    "0xwbtc": _token("0xwbtc", 8),
    "0xusdc": _token("0xusdc", 6),
}


def _bucket(pool: str, volume0: int, volume1: int, *, timestamp: int = 0, tx_count: int = 1) -> VolumeBucket:
    return VolumeBucket(
        pool_address=pool,
        bucket_type="1h",
        timestamp=timestamp,
        volume0=volume0,
        volume1=volume1,
        tx_count=tx_count,
    )


def test_v2_tvl_is_twice_the_stable_reserve():
    pool = ConstantProductPool(address="0xPair", token0="0xjusd", token1="0xmeme")
    reserves = [CallResult(success=True, values=(1000 * E18, 500 * E18, 0))]

    tvl = compute_v2_pool_tvl([pool], reserves, TOKENS, {"0xjusd": Decimal("1")}, "0xJUSD")

    assert tvl == {"0xpair": Decimal("2000")}


def test_v2_tvl_reads_stable_side_when_it_is_token1():
    pool = ConstantProductPool(address="0xpair", token0="0xmeme", token1="0xjusd")
    reserves = [CallResult(success=True, values=(500 * E18, 1000 * E18, 0))]

    tvl = compute_v2_pool_tvl([pool], reserves, TOKENS, {}, "0xjusd")

    assert tvl == {"0xpair": Decimal("2000")}


def test_v2_tvl_skips_failed_reads_and_unpaired_pools():
    pools = [
        ConstantProductPool(address="0xfailed", token0="0xjusd", token1="0xmeme"),
        ConstantProductPool(address="0xother", token0="0xmeme", token1="0xwbtc"),
    ]
    reserves = [CallResult(success=False), CallResult(success=True, values=(1, 1, 0))]

    assert compute_v2_pool_tvl(pools, reserves, TOKENS, {}, "0xjusd") == {}
    assert compute_v2_pool_tvl(pools, reserves, TOKENS, {}, None) == {}


def test_v2_tvl_any_side_values_first_priced_side():
    pools = [
        ConstantProductPool(address="0xstable", token0="0xjusd", token1="0xmeme"),
        ConstantProductPool(address="0xbtc", token0="0xmeme", token1="0xwbtc"),
    ]
    reserves = [
        CallResult(success=True, values=(1000 * E18, 10 * E18, 0)),
        CallResult(success=True, values=(10 * E18, 2 * 10**8, 0)),
    ]
    prices = {"0xjusd": Decimal("1"), "0xwbtc": Decimal("100")}

    total = compute_v2_pool_tvl_any_side(pools, reserves, TOKENS, prices, "0xjusd")

    assert total == Decimal("2400")


def test_v3_tvl_sums_priced_sides_and_omits_failed_reads():
    pools = [
        ConcentratedPool(address="0xA", token0="0xjusd", token1="0xwbtc", fee=3000),
        ConcentratedPool(address="0xB", token0="0xjusd", token1="0xmeme", fee=500),
    ]
    balances = [
        (
            CallResult(success=True, values=(500 * E18,)),
            CallResult(success=True, values=(5 * 10**8,)),
        ),
        (CallResult(success=False), CallResult(success=False)),
    ]
    prices = {"0xjusd": Decimal("1"), "0xwbtc": Decimal("100")}

    tvl = compute_v3_pool_tvl(pools, balances, TOKENS, prices)

    assert tvl == {"0xa": Decimal("1000")}


def test_v3_tvl_ignores_unpriced_side():
    pool = ConcentratedPool(address="0xa", token0="0xjusd", token1="0xmeme", fee=3000)
    balances = [
        (
            CallResult(success=True, values=(10 * E18,)),
            CallResult(success=True, values=(99 * E18,)),
        )
    ]

    tvl = compute_v3_pool_tvl([pool], balances, TOKENS, {"0xjusd": Decimal("1")})

    assert tvl == {"0xa": Decimal("10")}


def test_pool_volume_prefers_token0_then_token1_and_reports_gaps():
    pools = {
        "0xa": ConcentratedPool(address="0xa", token0="0xjusd", token1="0xmeme", fee=3000),
        "0xb": ConcentratedPool(address="0xb", token0="0xmeme", token1="0xwbtc", fee=3000),
        "0xc": ConcentratedPool(address="0xc", token0="0xmeme", token1="0xusdc", fee=3000),
    }
    buckets = [
        _bucket("0xA", 10 * E18, 999 * E18),
        _bucket("0xa", 5 * E18, 0),
        _bucket("0xb", 7 * E18, 2 * 10**8),
        _bucket("0xc", 1 * E18, 3 * 10**6),
        _bucket("0xgone", 1, 1),
    ]
    prices = {"0xjusd": Decimal("1"), "0xwbtc": Decimal("100")}

    volumes, coverage = aggregate_pool_volumes(buckets, pools, TOKENS, prices)

    assert volumes == {"0xa": Decimal("15"), "0xb": Decimal("200")}
    assert coverage.priced_buckets == 3
    assert coverage.unpriced_buckets == 1
    assert coverage.unknown_pool_buckets == 1
    assert coverage.has_gap


def test_v2_pool_volume_uses_stable_side():
    pools = {"0xpair": ConstantProductPool(address="0xpair", token0="0xmeme", token1="0xjusd")}
    buckets = [_bucket("0xpair", 40 * E18, 25 * E18), _bucket("0xpair", 1 * E18, 5 * E18)]

    assert aggregate_v2_pool_volumes(buckets, pools, TOKENS, "0xjusd") == {"0xpair": Decimal("30")}


def test_v2_volume_is_attributed_to_the_non_stable_token():
    pools = {"0xpair": ConstantProductPool(address="0xpair", token0="0xjusd", token1="0xmeme")}
    buckets = [_bucket("0xpair", 12 * E18, 1)]

    volumes = attribute_v2_token_volumes(buckets, pools, TOKENS, "0xjusd", {"0xmeme": Decimal("3")})

    assert volumes == {"0xmeme": Decimal("15")}


def test_token_volume_counts_pool_volume_once_per_side():
    v3_pools = [
        ConcentratedPool(address="0xa", token0="0xjusd", token1="0xmeme", fee=3000),
        ConcentratedPool(address="0xb", token0="0xmeme", token1="0xwbtc", fee=3000),
    ]
    v2_pools = [ConstantProductPool(address="0xpair", token0="0xjusd", token1="0xmeme")]

    volumes = derive_token_volumes(
        {"0xa": Decimal("100"), "0xb": Decimal("50")},
        {"0xpair": Decimal("10")},
        v3_pools,
        v2_pools,
    )

    assert volumes == {
        "0xjusd": Decimal("110"),
        "0xmeme": Decimal("160"),
        "0xwbtc": Decimal("50"),
    }
    assert sum(volumes.values()) == 2 * Decimal("160")


def test_filter_and_tx_counts():
    buckets = [
        _bucket("0xA", 0, 0, timestamp=100, tx_count=2),
        _bucket("0xa", 0, 0, timestamp=200, tx_count=3),
        _bucket("0xb", 0, 0, timestamp=300, tx_count=4),
    ]

    assert len(filter_buckets_since(buckets, 200)) == 2
    assert sum_tx_counts(buckets) == {"0xa": 5, "0xb": 4}


def test_token_fdv_skips_unpriced_and_failed_reads():
    tokens = [TOKENS["0xjusd"], TOKENS["0xmeme"], TOKENS["0xwbtc"]]
    supplies = [
        CallResult(success=True, values=(1_000_000 * E18,)),
        CallResult(success=True, values=(5 * E18,)),
        CallResult(success=False),
    ]
    prices = {"0xjusd": Decimal("1"), "0xwbtc": Decimal("100")}

    assert compute_token_fdv(tokens, supplies, prices) == {"0xjusd": Decimal("1000000")}


def test_swap_quantities_values_token_in_first():
    swap = SwapRecord(
        tx_hash="0xhash",
        block_timestamp=1,
        swapper="0xuser",
        token_in="0xusdc",
        token_out="0xmeme",
        amount_in=-2_500_000,
        amount_out=7 * E18,
        chain_id=5115,
    )

    usd, quantity_in, quantity_out = swap_quantities(swap, TOKENS, {"0xusdc": Decimal("1")})

    assert usd == Decimal("2.5")
    assert quantity_in == Decimal("2.5")
    assert quantity_out == Decimal("7")


def test_swap_quantities_falls_back_to_token_out_then_none():
    swap = SwapRecord(
        tx_hash="0xhash",
        block_timestamp=1,
        swapper="0xuser",
        token_in="0xmeme",
        token_out="0xjusd",
        amount_in=3 * E18,
        amount_out=6 * E18,
        chain_id=5115,
    )

    usd, _, _ = swap_quantities(swap, TOKENS, {"0xjusd": Decimal("1")})
    assert usd == Decimal("6")

    usd, _, _ = swap_quantities(swap, TOKENS, {})
    assert usd is None


def test_bridge_volume_values_native_in_btc_and_stables_at_par():
    buckets = [
        BridgeVolumeBucket(token_address=NATIVE_TOKEN, timestamp=1, volume=2 * E18),
        BridgeVolumeBucket(token_address="0xusdc", timestamp=1, volume=300 * E18),
    ]

    assert sum_bridge_volume(buckets, Decimal("50000")) == Decimal("100300")
    assert sum_bridge_volume(buckets, Decimal("0")) == Decimal("300")


def test_bridge_tvl_sums_successful_minted_reads():
    minted = [
        CallResult(success=True, values=(25 * E18,)),
        CallResult(success=False),
        CallResult(success=True, values=(5 * E18,)),
    ]

    assert compute_bridge_tvl(minted) == Decimal("30")
