from __future__ import annotations

import asyncio
from collections.abc import Callable
from decimal import Decimal
import logging
import time

from app.application.dto.explore_stats import GetExploreStatsInput
from app.application.ports.indexer_port import IndexerPort
from app.application.ports.onchain_port import OnchainReaderPort
from app.application.ports.token_price_port import TokenPricePort
from app.domain.entities.chain import ChainContracts
from app.domain.entities.explore_stats import (
    ExploreStats,
    PoolStats,
    TokenInfo,
    TokenStats,
    TransactionStats,
)
from app.domain.entities.market_data import (
    DAILY_BUCKET,
    HOURLY_BUCKET,
    BtcPriceData,
    BtcPriceHistory,
    VolumeBucket,
)
from app.domain.entities.onchain import (
    BALANCE_OF,
    EQUITY_PRICE,
    GET_RESERVES,
    SLOT0,
    TOTAL_SUPPLY,
    CallResult,
    ContractCall,
    build_call,
)
from app.domain.entities.pool import ConcentratedPool, ConstantProductPool, Token
from app.domain.exceptions import PriceUnavailableError
from app.domain.services.price_derivation import price_from_sqrt, select_derivation_targets
from app.domain.services.price_history import (
    build_price_histories,
    compute_price_changes,
    group_snapshots_by_pool,
)
from app.domain.services.tvl import compute_v2_pool_tvl, compute_v3_pool_tvl
from app.domain.services.units import format_units
from app.domain.services.volume import (
    aggregate_pool_volumes,
    aggregate_token_volumes,
    aggregate_v2_pool_volumes,
    attribute_v2_token_volumes,
    compute_token_fdv,
    derive_token_volumes,
    filter_buckets_since,
    sum_tx_counts,
    swap_quantities,
)
from app.infrastructure.cache.coalescing_cache import CoalescingCache
from app.shared.chains import chain_name


logger = logging.getLogger(__name__)


ZERO = Decimal("0")
HOUR = 3600
DAY = 24 * HOUR
V2_FEE_TIER = 3000
DEFAULT_TOKEN_DECIMALS = 18


class ComputeExploreStatsUseCase:
    """Builds the per-chain explore snapshot: prices, changes, sparklines, TVL and volumes."""

    def __init__(
        self,
        *,
        indexer: IndexerPort,
        token_prices: TokenPricePort,
        onchain: OnchainReaderPort,
        yearly_cache_ttl_seconds: float = 900,
        now: Callable[[], float] = time.time,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._indexer = indexer
        self._token_prices = token_prices
        self._onchain = onchain
        self._now = now
        self._yearly_cache: CoalescingCache[tuple[list[VolumeBucket], list[VolumeBucket]]] = (
            CoalescingCache(ttl_seconds=yearly_cache_ttl_seconds, name="yearly_volume", clock=clock)
        )

    async def execute(self, command: GetExploreStatsInput) -> ExploreStats:
        chain_id = command.chain_id
        now = int(self._now())
        contracts = self._token_prices.get_chain_contracts(chain_id)

        (
            indexer_tokens,
            v3_pools,
            v3_buckets_24h,
            v3_buckets_30d,
            v2_pools,
            v2_buckets_24h,
            v2_buckets_30d,
            token_buckets_1h,
            recent_swaps,
            snapshots,
            btc_data,
            btc_history,
            (v3_buckets_365d, v2_buckets_365d),
        ) = await asyncio.gather(
            self._indexer.fetch_tokens(chain_id=chain_id),
            self._indexer.fetch_v3_pools(chain_id=chain_id),
            self._indexer.fetch_pool_buckets(chain_id=chain_id, bucket_type=HOURLY_BUCKET, hours_back=24),
            self._indexer.fetch_pool_buckets(chain_id=chain_id, bucket_type=DAILY_BUCKET, hours_back=30 * 24),
            self._indexer.fetch_v2_pools(chain_id=chain_id),
            self._indexer.fetch_v2_pool_buckets(chain_id=chain_id, bucket_type=HOURLY_BUCKET, hours_back=24),
            self._indexer.fetch_v2_pool_buckets(
                chain_id=chain_id, bucket_type=DAILY_BUCKET, hours_back=30 * 24
            ),
            self._indexer.fetch_token_buckets(chain_id=chain_id, bucket_type=HOURLY_BUCKET, hours_back=24),
            self._indexer.fetch_recent_swaps(chain_id=chain_id),
            self._indexer.fetch_pool_snapshots(chain_id=chain_id),
            self._btc_price_data(),
            self._btc_price_history(),
            self._yearly_buckets(chain_id),
        )

        tokens = build_token_map(indexer_tokens, contracts)
        prices = await self._resolve_prices(
            chain_id=chain_id,
            contracts=contracts,
            indexer_tokens=indexer_tokens,
            v3_pools=v3_pools,
            v2_pools=v2_pools,
            tokens=tokens,
        )

        snapshots_by_pool = group_snapshots_by_pool(snapshots)
        change_1h, change_24h = compute_price_changes(
            prices=prices,
            tokens=tokens,
            pools=v3_pools,
            snapshots_by_pool=snapshots_by_pool,
            btc_data=btc_data,
            contracts=contracts,
            now=now,
        )
        histories = build_price_histories(
            token_addresses=[token.address for token in indexer_tokens],
            prices=prices,
            tokens=tokens,
            pools=v3_pools,
            snapshots_by_pool=snapshots_by_pool,
            btc_history=btc_history,
            contracts=contracts,
            now=now,
        )

        stable_unit = contracts.jusd if contracts is not None else None
        fdv, v3_tvl, v2_tvl = await asyncio.gather(
            self._token_fdv(chain_id, indexer_tokens, prices),
            self._v3_tvl(chain_id, v3_pools, tokens, prices),
            self._v2_tvl(chain_id, v2_pools, tokens, prices, stable_unit),
        )

        v3_by_address = {pool.address.lower(): pool for pool in v3_pools}
        v2_by_address = {pool.address.lower(): pool for pool in v2_pools}
        week_cutoff = now - 7 * DAY
        hour_cutoff = now - HOUR

        v3_vol_1d, coverage = aggregate_pool_volumes(v3_buckets_24h, v3_by_address, tokens, prices)
        if coverage.has_gap:
            logger.warning(
                "compute_explore_stats: volume_coverage_gap chain_id=%s priced=%s unpriced=%s unknown_pool=%s",
                chain_id,
                coverage.priced_buckets,
                coverage.unpriced_buckets,
                coverage.unknown_pool_buckets,
            )
        v3_vol_30d, _ = aggregate_pool_volumes(v3_buckets_30d, v3_by_address, tokens, prices)
        v3_vol_7d, _ = aggregate_pool_volumes(
            filter_buckets_since(v3_buckets_30d, week_cutoff), v3_by_address, tokens, prices
        )
        v3_vol_365d, _ = aggregate_pool_volumes(v3_buckets_365d, v3_by_address, tokens, prices)

        v2_vol_1d = aggregate_v2_pool_volumes(v2_buckets_24h, v2_by_address, tokens, stable_unit)
        v2_vol_30d = aggregate_v2_pool_volumes(v2_buckets_30d, v2_by_address, tokens, stable_unit)
        v2_vol_7d = aggregate_v2_pool_volumes(
            filter_buckets_since(v2_buckets_30d, week_cutoff), v2_by_address, tokens, stable_unit
        )
        v2_vol_365d = aggregate_v2_pool_volumes(v2_buckets_365d, v2_by_address, tokens, stable_unit)

        token_vol_1d = attribute_v2_token_volumes(
            v2_buckets_24h,
            v2_by_address,
            tokens,
            stable_unit,
            aggregate_token_volumes(token_buckets_1h, tokens, prices),
        )
        token_vol_1h = attribute_v2_token_volumes(
            filter_buckets_since(v2_buckets_24h, hour_cutoff),
            v2_by_address,
            tokens,
            stable_unit,
            aggregate_token_volumes(filter_buckets_since(token_buckets_1h, hour_cutoff), tokens, prices),
        )
        token_vol_1w = derive_token_volumes(v3_vol_7d, v2_vol_7d, v3_pools, v2_pools)
        token_vol_1m = derive_token_volumes(v3_vol_30d, v2_vol_30d, v3_pools, v2_pools)
        token_vol_1y = derive_token_volumes(v3_vol_365d, v2_vol_365d, v3_pools, v2_pools)

        chain = chain_name(chain_id)
        token_stats = []
        for token in indexer_tokens:
            key = token.address.lower()
            price = prices.get(key, ZERO)
            token_stats.append(
                TokenStats(
                    chain=chain,
                    address=token.address,
                    name=token.name,
                    symbol=token.symbol,
                    decimals=token.decimals,
                    price=price if price > 0 else None,
                    fully_diluted_valuation=fdv.get(key),
                    price_change_1h=change_1h.get(key),
                    price_change_1d=change_24h.get(key),
                    volume_1h=token_vol_1h.get(key, ZERO),
                    volume_1d=token_vol_1d.get(key, ZERO),
                    volume_1w=token_vol_1w.get(key, ZERO),
                    volume_1m=token_vol_1m.get(key, ZERO),
                    volume_1y=token_vol_1y.get(key, ZERO),
                    price_history_day=histories.get(key),
                )
            )

        v3_tx_counts = sum_tx_counts(v3_buckets_24h)
        pool_stats_v3 = [
            PoolStats(
                id=pool.address,
                chain=chain,
                protocol_version="V3",
                fee_tier=pool.fee,
                total_liquidity=v3_tvl.get(pool.address.lower(), ZERO),
                tx_count=v3_tx_counts.get(pool.address.lower(), 0),
                volume_1d=v3_vol_1d.get(pool.address.lower(), ZERO),
                volume_30d=v3_vol_30d.get(pool.address.lower(), ZERO),
                token0=token_info(chain, tokens, prices, pool.token0),
                token1=token_info(chain, tokens, prices, pool.token1),
            )
            for pool in v3_pools
        ]

        v2_tx_counts = sum_tx_counts(v2_buckets_24h)
        pool_stats_v2 = [
            PoolStats(
                id=pool.address,
                chain=chain,
                protocol_version="V2",
                fee_tier=V2_FEE_TIER,
                total_liquidity=v2_tvl.get(pool.address.lower(), ZERO),
                tx_count=v2_tx_counts.get(pool.address.lower(), 0),
                volume_1d=v2_vol_1d.get(pool.address.lower(), ZERO),
                volume_30d=v2_vol_30d.get(pool.address.lower(), ZERO),
                token0=token_info(chain, tokens, prices, pool.token0),
                token1=token_info(chain, tokens, prices, pool.token1),
            )
            for pool in v2_pools
        ]

        transaction_stats = []
        for swap in recent_swaps:
            usd_value, quantity_in, quantity_out = swap_quantities(swap, tokens, prices)
            transaction_stats.append(
                TransactionStats(
                    hash=swap.tx_hash,
                    chain=chain,
                    timestamp=swap.block_timestamp,
                    account=swap.swapper,
                    usd_value=usd_value,
                    token0=token_info(chain, tokens, None, swap.token_in),
                    token0_quantity=quantity_in,
                    token1=token_info(chain, tokens, None, swap.token_out),
                    token1_quantity=quantity_out,
                )
            )

        logger.info(
            "compute_explore_stats: computed chain_id=%s tokens=%s v3_pools=%s v2_pools=%s swaps=%s",
            chain_id,
            len(token_stats),
            len(pool_stats_v3),
            len(pool_stats_v2),
            len(transaction_stats),
        )
        return ExploreStats(
            chain_id=chain_id,
            computed_at=now,
            token_stats=token_stats,
            pool_stats_v2=pool_stats_v2,
            pool_stats_v3=pool_stats_v3,
            transaction_stats=transaction_stats,
        )

    async def _btc_price_data(self) -> BtcPriceData:
        try:
            return await self._token_prices.get_btc_price_data()
        except PriceUnavailableError as exc:
            logger.warning("compute_explore_stats: btc_price_data_unavailable error=%s", exc)
            return BtcPriceData(price=ZERO, change_1h=ZERO, change_24h=ZERO)

    async def _btc_price_history(self) -> BtcPriceHistory | None:
        try:
            return await self._token_prices.get_btc_price_history()
        except PriceUnavailableError as exc:
            logger.warning("compute_explore_stats: btc_price_history_unavailable error=%s", exc)
            return None

    async def _yearly_buckets(self, chain_id: int) -> tuple[list[VolumeBucket], list[VolumeBucket]]:
        async def _fetch() -> tuple[list[VolumeBucket], list[VolumeBucket]]:
            v3, v2 = await asyncio.gather(
                self._indexer.fetch_pool_buckets(
                    chain_id=chain_id, bucket_type=DAILY_BUCKET, hours_back=365 * 24
                ),
                self._indexer.fetch_v2_pool_buckets(
                    chain_id=chain_id, bucket_type=DAILY_BUCKET, hours_back=365 * 24
                ),
            )
            return v3, v2

        return await self._yearly_cache.get_or_compute(chain_id, _fetch)

    async def _resolve_prices(
        self,
        *,
        chain_id: int,
        contracts: ChainContracts | None,
        indexer_tokens: list[Token],
        v3_pools: list[ConcentratedPool],
        v2_pools: list[ConstantProductPool],
        tokens: dict[str, Token],
    ) -> dict[str, Decimal]:
        addresses: list[str] = []
        seen: set[str] = set()
        candidates = [token.address for token in indexer_tokens]
        for pool in [*v3_pools, *v2_pools]:
            candidates.extend((pool.token0, pool.token1))
        for address in candidates:
            key = address.lower()
            if key not in seen:
                seen.add(key)
                addresses.append(key)

        prices = await self._token_prices.get_token_prices(
            chain_id,
            addresses,
            allow_missing_btc=True,
        )
        await self._apply_equity_price(chain_id, contracts, prices)
        await self._derive_unknown_prices(chain_id, v3_pools, tokens, prices)
        return prices

    async def _apply_equity_price(
        self,
        chain_id: int,
        contracts: ChainContracts | None,
        prices: dict[str, Decimal],
    ) -> None:
        if contracts is None or not contracts.juice:
            return
        key = contracts.juice.lower()
        if prices.get(key, ZERO) > 0:
            return
        results = await self._read(chain_id, [build_call(contracts.juice, EQUITY_PRICE)], "equity_price")
        raw = results[0].first_int()
        if raw is None:
            return
        price = format_units(raw, 18)
        if price > 0:
            prices[key] = price
            logger.debug("compute_explore_stats: equity_price chain_id=%s price=%s", chain_id, price)

    async def _derive_unknown_prices(
        self,
        chain_id: int,
        pools: list[ConcentratedPool],
        tokens: dict[str, Token],
        prices: dict[str, Decimal],
    ) -> None:
        targets = select_derivation_targets(prices, pools)
        if not targets:
            return
        results = await self._read(
            chain_id,
            [build_call(target.pool.address, SLOT0) for target in targets],
            "slot0",
        )
        derived = 0
        for target, result in zip(targets, results):
            price = price_from_sqrt(
                target,
                result.first_int(),
                prices.get(target.counterpart, ZERO),
                tokens,
            )
            if price is None or prices.get(target.token, ZERO) > 0:
                continue
            prices[target.token] = price
            derived += 1
            logger.debug(
                "compute_explore_stats: derived_price token=%s pool=%s price=%s",
                target.token,
                target.pool.address,
                price,
            )
        logger.info(
            "compute_explore_stats: derivation_done chain_id=%s targets=%s derived=%s",
            chain_id,
            len(targets),
            derived,
        )

    async def _token_fdv(
        self,
        chain_id: int,
        indexer_tokens: list[Token],
        prices: dict[str, Decimal],
    ) -> dict[str, Decimal]:
        priced = [token for token in indexer_tokens if prices.get(token.address.lower(), ZERO) > 0]
        if not priced:
            return {}
        results = await self._read(
            chain_id,
            [build_call(token.address, TOTAL_SUPPLY) for token in priced],
            "total_supply",
        )
        return compute_token_fdv(priced, results, prices)

    async def _v3_tvl(
        self,
        chain_id: int,
        pools: list[ConcentratedPool],
        tokens: dict[str, Token],
        prices: dict[str, Decimal],
    ) -> dict[str, Decimal]:
        if not pools:
            return {}
        calls: list[ContractCall] = []
        for pool in pools:
            calls.append(build_call(pool.token0, BALANCE_OF, pool.address))
            calls.append(build_call(pool.token1, BALANCE_OF, pool.address))
        results = await self._read(chain_id, calls, "v3_balances")
        balances = [(results[idx], results[idx + 1]) for idx in range(0, len(results), 2)]
        return compute_v3_pool_tvl(pools, balances, tokens, prices)

    async def _v2_tvl(
        self,
        chain_id: int,
        pools: list[ConstantProductPool],
        tokens: dict[str, Token],
        prices: dict[str, Decimal],
        stable_unit: str | None,
    ) -> dict[str, Decimal]:
        if not pools or not stable_unit:
            return {}
        results = await self._read(
            chain_id,
            [build_call(pool.address, GET_RESERVES) for pool in pools],
            "v2_reserves",
        )
        return compute_v2_pool_tvl(pools, results, tokens, prices, stable_unit)

    async def _read(self, chain_id: int, calls: list[ContractCall], label: str) -> list[CallResult]:
        failed = [CallResult(success=False) for _ in calls]
        if not self._onchain.supports(chain_id):
            logger.warning(
                "compute_explore_stats: onchain_unsupported chain_id=%s read=%s", chain_id, label
            )
            return failed
        try:
            return await self._onchain.read_many(chain_id=chain_id, calls=calls)
        except Exception as exc:
            logger.warning(
                "compute_explore_stats: onchain_read_failed chain_id=%s read=%s calls=%s error=%s",
                chain_id,
                label,
                len(calls),
                exc,
            )
            return failed


def build_token_map(indexer_tokens: list[Token], contracts: ChainContracts | None) -> dict[str, Token]:
    """Indexer tokens keyed by lowercase address, plus the stable unit and equity token."""
    tokens = {token.address.lower(): token for token in indexer_tokens}
    if contracts is None:
        return tokens
    fallbacks = (
        (contracts.jusd, "JUSD", "JuiceDollar"),
        (contracts.juice, "JUICE", "Juice Protocol"),
    )
    for address, symbol, name in fallbacks:
        if address and address.lower() not in tokens:
            tokens[address.lower()] = Token(
                address=address,
                decimals=DEFAULT_TOKEN_DECIMALS,
                symbol=symbol,
                name=name,
                chain_id=contracts.chain_id,
            )
    return tokens


def token_info(
    chain: str,
    tokens: dict[str, Token],
    prices: dict[str, Decimal] | None,
    address: str,
) -> TokenInfo | None:
    token = tokens.get((address or "").lower())
    if token is None:
        return None
    price = None
    if prices is not None:
        value = prices.get(token.address.lower(), ZERO)
        price = value if value > 0 else None
    return TokenInfo(
        chain=chain,
        address=token.address,
        name=token.name,
        symbol=token.symbol,
        decimals=token.decimals,
        price=price,
    )
