from __future__ import annotations

import asyncio
from decimal import Decimal

from app.application.dto.explore_stats import GetExploreStatsInput
from app.application.use_cases.compute_explore_stats import (
    ComputeExploreStatsUseCase,
    build_token_map,
    token_info,
)
from app.domain.entities.chain import ChainContracts
from app.domain.entities.market_data import BtcPriceData, SwapRecord, TokenVolumeBucket, VolumeBucket
from app.domain.entities.onchain import CallResult
from app.domain.entities.pool import ConcentratedPool, ConstantProductPool, Token
from app.domain.exceptions import PriceUnavailableError


NOW = 1_700_000_000
HOUR = 3600
DAY = 24 * HOUR
E18 = 10**18
CHAIN_ID = 5115
CONTRACTS = ChainContracts(chain_id=CHAIN_ID, jusd="0xjusd", juice="0xjuice", wcbtc="0xwbtc")


def _token(address: str, symbol: str, decimals: int = 18) -> Token:
    return Token(address=address, decimals=decimals, symbol=symbol, name=symbol.title(), chain_id=CHAIN_ID)


def _bucket(pool: str, bucket_type: str, timestamp: int, volume0: int, volume1: int, tx_count: int = 1):
    return VolumeBucket(
        pool_address=pool,
        bucket_type=bucket_type,
        timestamp=timestamp,
        volume0=volume0,
        volume1=volume1,
        tx_count=tx_count,
    )


V3_DAILY = [
    _bucket("0xp1", "24h", NOW - 10 * DAY, 10 * E18, 0),
    _bucket("0xp1", "24h", NOW - DAY, 5 * E18, 0),
]


class FakeIndexer:
    def __init__(self):
        self.yearly_calls = 0

    async def fetch_tokens(self, *, chain_id: int) -> list[Token]:
        _ = chain_id
        return [_token("0xJusd", "JUSD"), _token("0xWbtc", "WBTC", 8), _token("0xMeme", "MEME")]

    async def fetch_v3_pools(self, *, chain_id: int) -> list[ConcentratedPool]:
        _ = chain_id
        return [
            ConcentratedPool(address="0xP1", token0="0xMeme", token1="0xJusd", fee=3000),
            ConcentratedPool(address="0xP2", token0="0xWbtc", token1="0xJusd", fee=500),
        ]

    async def fetch_v2_pools(self, *, chain_id: int) -> list[ConstantProductPool]:
        _ = chain_id
        return [ConstantProductPool(address="0xPair", token0="0xJuice", token1="0xJusd")]

    async def fetch_pool_buckets(self, *, chain_id: int, bucket_type: str, hours_back: int):
        _ = chain_id
        if bucket_type == "1h":
            return [_bucket("0xp1", "1h", NOW - 1800, 5 * E18, 20 * E18, tx_count=3)]
        if hours_back == 365 * 24:
            self.yearly_calls += 1
        return list(V3_DAILY)

    async def fetch_v2_pool_buckets(self, *, chain_id: int, bucket_type: str, hours_back: int):
        _ = (chain_id, hours_back)
        if bucket_type == "1h":
            return [_bucket("0xpair", "1h", NOW - 2 * HOUR, 0, 7 * E18, tx_count=2)]
        return []

    async def fetch_token_buckets(self, *, chain_id: int, bucket_type: str, hours_back: int):
        _ = (chain_id, bucket_type, hours_back)
        return [
            TokenVolumeBucket(
                token_address="0xmeme",
                bucket_type="1h",
                timestamp=NOW - 1800,
                volume=2 * E18,
                tx_count=1,
            )
        ]

    async def fetch_pool_snapshots(self, *, chain_id: int, hours_back: int = 25):
        _ = (chain_id, hours_back)
        return []

    async def fetch_recent_swaps(self, *, chain_id: int, limit: int = 50) -> list[SwapRecord]:
        _ = limit
        return [
            SwapRecord(
                tx_hash="0xswap",
                block_timestamp=NOW - 60,
                swapper="0xuser",
                token_in="0xMeme",
                token_out="0xJusd",
                amount_in=1 * E18,
                amount_out=-4 * E18,
                chain_id=chain_id,
            )
        ]


class FakeTokenPrices:
    def __init__(self, *, btc_price: Decimal = Decimal("50000")):
        self._btc_price = btc_price

    def get_chain_contracts(self, chain_id: int) -> ChainContracts | None:
        return CONTRACTS if chain_id == CHAIN_ID else None

    def get_token_category(self, chain_id: int, address: str):
        _ = (chain_id, address)
        return None

    async def get_token_price_usd(self, chain_id: int, address: str) -> Decimal:
        prices = await self.get_token_prices(chain_id, [address])
        return prices[address.lower()]

    async def get_token_prices(self, chain_id: int, addresses: list[str], *, allow_missing_btc: bool = False):
        _ = (chain_id, allow_missing_btc)
        known = {"0xjusd": Decimal("1"), "0xwbtc": self._btc_price}
        return {address.lower(): known.get(address.lower(), Decimal("0")) for address in addresses}

    async def get_btc_price_usd(self) -> Decimal:
        return self._btc_price

    async def get_btc_price_data(self) -> BtcPriceData:
        return BtcPriceData(price=self._btc_price, change_1h=Decimal("1"), change_24h=Decimal("2"))

    async def get_btc_price_history(self):
        raise PriceUnavailableError("Unable to fetch BTC price")


class FakeOnchain:
    def __init__(self, *, supported: bool = True, error: Exception | None = None):
        self._supported = supported
        self._error = error
        self.batches: list[list[str]] = []
        self.balances = {"0xmeme": 10 * E18, "0xjusd": 10 * E18, "0xwbtc": 10**8}

    def supports(self, chain_id: int) -> bool:
        _ = chain_id
        return self._supported

    async def read_many(self, *, chain_id: int, calls):
        _ = chain_id
        self.batches.append([call.signature for call in calls])
        if self._error is not None:
            raise self._error
        return [self._result(call) for call in calls]

    def _result(self, call) -> CallResult:
        if call.signature == "slot0()":
            return CallResult(success=True, values=(2**97, 0, 0, 0, 0, 0, True))
        if call.signature == "price()":
            return CallResult(success=True, values=(2 * E18,))
        if call.signature == "totalSupply()":
            return CallResult(success=True, values=(1000 * E18,))
        if call.signature == "balanceOf(address)":
            return CallResult(success=True, values=(self.balances[call.target.lower()],))
        if call.signature == "getReserves()":
            return CallResult(success=True, values=(100 * E18, 50 * E18, 0))
        return CallResult(success=False)


def _use_case(indexer=None, onchain=None) -> ComputeExploreStatsUseCase:
    return ComputeExploreStatsUseCase(
        indexer=indexer or FakeIndexer(),
        token_prices=FakeTokenPrices(),
        onchain=onchain or FakeOnchain(),
        now=lambda: NOW,
    )


def _by_address(rows) -> dict:
    return {row.address.lower(): row for row in rows}


def test_token_stats_cover_prices_changes_volumes_and_sparklines():
    stats = asyncio.run(_use_case().execute(GetExploreStatsInput(chain_id=CHAIN_ID)))

    assert stats.chain_id == CHAIN_ID
    assert stats.computed_at == NOW
    tokens = _by_address(stats.token_stats)
    assert list(tokens) == ["0xjusd", "0xwbtc", "0xmeme"]

    meme = tokens["0xmeme"]
    assert meme.chain == "CITREA_TESTNET"
    assert meme.price == Decimal("4")
    assert meme.fully_diluted_valuation == Decimal("4000")
    assert meme.price_change_1h == Decimal("0")
    assert meme.volume_1h == Decimal("8")
    assert meme.volume_1d == Decimal("8")
    assert meme.volume_1w == Decimal("20")
    assert meme.volume_1m == Decimal("60")
    assert meme.volume_1y == Decimal("60")
    assert meme.price_history_day.values == [Decimal("4")] * 24

    wbtc = tokens["0xwbtc"]
    assert wbtc.price == Decimal("50000")
    assert wbtc.price_change_1h == Decimal("1")
    assert wbtc.price_change_1d == Decimal("2")
    assert wbtc.price_history_day is None

    jusd = tokens["0xjusd"]
    assert jusd.price_change_1d == Decimal("0")
    assert jusd.price_history_day.values == [Decimal("1")] * 24
    assert jusd.fully_diluted_valuation == Decimal("1000")


def test_pool_stats_for_both_generations():
    stats = asyncio.run(_use_case().execute(GetExploreStatsInput(chain_id=CHAIN_ID)))

    p1 = stats.find_v3_pool("0xp1")
    assert p1.total_liquidity == Decimal("50")
    assert p1.volume_1d == Decimal("20")
    assert p1.volume_30d == Decimal("60")
    assert p1.tx_count == 3
    assert p1.fee_tier == 3000
    assert p1.token0.symbol == "MEME"
    assert p1.token0.price == Decimal("4")

    p2 = stats.find_v3_pool("0xP2")
    assert p2.total_liquidity == Decimal("50010")
    assert p2.volume_1d == Decimal("0")

    pair = stats.pool_stats_v2[0]
    assert pair.protocol_version == "V2"
    assert pair.fee_tier == 3000
    assert pair.total_liquidity == Decimal("100")
    assert pair.volume_1d == Decimal("7")
    assert pair.tx_count == 2
    assert pair.token0.name == "Juice Protocol"
    assert pair.token0.price == Decimal("2")


def test_transaction_stats_use_swap_legs():
    stats = asyncio.run(_use_case().execute(GetExploreStatsInput(chain_id=CHAIN_ID)))

    swap = stats.transaction_stats[0]
    assert swap.hash == "0xswap"
    assert swap.account == "0xuser"
    assert swap.usd_value == Decimal("4")
    assert swap.token0_quantity == Decimal("1")
    assert swap.token1_quantity == Decimal("4")
    assert swap.token0.price is None
    assert swap.type == "SWAP"


def test_yearly_buckets_are_cached_across_cycles():
    indexer = FakeIndexer()
    use_case = _use_case(indexer=indexer)

    asyncio.run(use_case.execute(GetExploreStatsInput(chain_id=CHAIN_ID)))
    asyncio.run(use_case.execute(GetExploreStatsInput(chain_id=CHAIN_ID)))

    assert indexer.yearly_calls == 1


def test_onchain_failures_degrade_to_zero_tvl_and_missing_prices():
    onchain = FakeOnchain(error=RuntimeError("rpc down"))
    stats = asyncio.run(_use_case(onchain=onchain).execute(GetExploreStatsInput(chain_id=CHAIN_ID)))

    tokens = _by_address(stats.token_stats)
    assert tokens["0xmeme"].price is None
    assert tokens["0xmeme"].fully_diluted_valuation is None
    assert tokens["0xjusd"].price == Decimal("1")
    assert stats.find_v3_pool("0xp1").total_liquidity == Decimal("0")
    assert stats.pool_stats_v2[0].total_liquidity == Decimal("0")


def test_unsupported_chain_skips_onchain_reads():
    onchain = FakeOnchain(supported=False)
    asyncio.run(_use_case(onchain=onchain).execute(GetExploreStatsInput(chain_id=CHAIN_ID)))

    assert onchain.batches == []


def test_token_map_adds_stable_and_equity_fallbacks():
    tokens = build_token_map([_token("0xJusd", "JUSD")], CONTRACTS)

    assert tokens["0xjusd"].name == "Jusd"
    assert tokens["0xjuice"].symbol == "JUICE"
    assert tokens["0xjuice"].decimals == 18
    assert build_token_map([], None) == {}


def test_token_info_price_only_when_positive():
    tokens = {"0xa": _token("0xA", "A")}

    assert token_info("C", tokens, {"0xa": Decimal("0")}, "0xA").price is None
    assert token_info("C", tokens, {"0xa": Decimal("3")}, "0xa").price == Decimal("3")
    assert token_info("C", tokens, None, "0xmissing") is None
