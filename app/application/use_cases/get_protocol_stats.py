from __future__ import annotations

import asyncio
from collections.abc import Callable
from decimal import Decimal
import logging
import time

from app.application.dto.explore_stats import GetProtocolStatsInput
from app.application.ports.bridge_volume_port import BridgeVolumePort
from app.application.ports.indexer_port import IndexerPort
from app.application.ports.onchain_port import OnchainReaderPort
from app.application.ports.token_price_port import TokenPricePort
from app.application.use_cases.compute_explore_stats import build_token_map
from app.domain.entities.chain import ChainContracts
from app.domain.entities.market_data import HOURLY_BUCKET
from app.domain.entities.onchain import BALANCE_OF, BRIDGE_MINTED, GET_RESERVES, build_call
from app.domain.entities.protocol_stats import CategoryStats, ProtocolStats
from app.domain.exceptions import ExploreStatsInputError, PriceUnavailableError
from app.domain.services.tvl import (
    compute_bridge_tvl,
    compute_v2_pool_tvl_any_side,
    compute_v3_pool_tvl,
)
from app.domain.services.volume import (
    aggregate_pool_volumes,
    aggregate_v2_pool_volumes,
    sum_bridge_volume,
)
from app.infrastructure.cache.coalescing_cache import CoalescingCache


logger = logging.getLogger(__name__)


ZERO = Decimal("0")
DAY = 24 * 3600


class GetProtocolStatsUseCase:
    """Protocol-wide TVL and 24h volume for v3, v2 and the bridges.

    Each category is computed independently and reports zero when its sources fail.
    """

    def __init__(
        self,
        *,
        indexer: IndexerPort,
        token_prices: TokenPricePort,
        onchain: OnchainReaderPort,
        bridge_volume: BridgeVolumePort,
        ttl_seconds: float = 60,
        now: Callable[[], float] = time.time,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._indexer = indexer
        self._token_prices = token_prices
        self._onchain = onchain
        self._bridge_volume = bridge_volume
        self._now = now
        self._cache: CoalescingCache[ProtocolStats] = CoalescingCache(
            ttl_seconds=ttl_seconds,
            name="protocol_stats",
            clock=clock,
        )

    async def execute(self, command: GetProtocolStatsInput) -> ProtocolStats:
        if command.chain_id is None or command.chain_id <= 0:
            raise ExploreStatsInputError("chainId must be a positive integer.")
        return await self._cache.get_or_compute(
            command.chain_id,
            lambda: self._compute(command.chain_id),
        )

    async def _compute(self, chain_id: int) -> ProtocolStats:
        contracts = self._token_prices.get_chain_contracts(chain_id)
        v3, v2, bridge = await asyncio.gather(
            self._guard("v3", chain_id, self._v3_stats(chain_id, contracts)),
            self._guard("v2", chain_id, self._v2_stats(chain_id, contracts)),
            self._guard("bridge", chain_id, self._bridge_stats(chain_id, contracts)),
        )
        return ProtocolStats(
            chain_id=chain_id,
            timestamp=int(self._now()),
            v2=v2,
            v3=v3,
            bridge=bridge,
        )

    async def _guard(self, category: str, chain_id: int, job) -> CategoryStats:
        try:
            stats = await job
        except Exception as exc:
            logger.error(
                "get_protocol_stats: category_failed category=%s chain_id=%s error=%s",
                category,
                chain_id,
                exc,
            )
            return CategoryStats()
        logger.info(
            "get_protocol_stats: category_done category=%s chain_id=%s tvl_usd=%s volume_24h_usd=%s",
            category,
            chain_id,
            stats.tvl_usd,
            stats.volume_24h_usd,
        )
        return stats

    async def _v3_stats(self, chain_id: int, contracts: ChainContracts | None) -> CategoryStats:
        pools, tokens, buckets = await asyncio.gather(
            self._indexer.fetch_v3_pools(chain_id=chain_id),
            self._indexer.fetch_tokens(chain_id=chain_id),
            self._indexer.fetch_pool_buckets(chain_id=chain_id, bucket_type=HOURLY_BUCKET, hours_back=24),
        )
        if not pools:
            return CategoryStats()

        token_map = build_token_map(tokens, contracts)
        addresses = sorted({address.lower() for pool in pools for address in (pool.token0, pool.token1)})
        prices = await self._token_prices.get_token_prices(chain_id, addresses, allow_missing_btc=True)

        volumes, _ = aggregate_pool_volumes(
            buckets,
            {pool.address.lower(): pool for pool in pools},
            token_map,
            prices,
        )

        tvl = ZERO
        if self._onchain.supports(chain_id):
            calls = []
            for pool in pools:
                calls.append(build_call(pool.token0, BALANCE_OF, pool.address))
                calls.append(build_call(pool.token1, BALANCE_OF, pool.address))
            try:
                results = await self._onchain.read_many(chain_id=chain_id, calls=calls)
                balances = [(results[idx], results[idx + 1]) for idx in range(0, len(results), 2)]
                tvl = sum(compute_v3_pool_tvl(pools, balances, token_map, prices).values(), ZERO)
            except Exception as exc:
                logger.warning("get_protocol_stats: v3_tvl_failed chain_id=%s error=%s", chain_id, exc)

        return CategoryStats(tvl_usd=tvl, volume_24h_usd=sum(volumes.values(), ZERO))

    async def _v2_stats(self, chain_id: int, contracts: ChainContracts | None) -> CategoryStats:
        pools, tokens, buckets = await asyncio.gather(
            self._indexer.fetch_v2_pools(chain_id=chain_id),
            self._indexer.fetch_tokens(chain_id=chain_id),
            self._indexer.fetch_v2_pool_buckets(
                chain_id=chain_id, bucket_type=HOURLY_BUCKET, hours_back=24
            ),
        )
        if not pools:
            return CategoryStats()

        stable_unit = contracts.jusd if contracts is not None else None
        token_map = build_token_map(tokens, contracts)
        volume = sum(
            aggregate_v2_pool_volumes(
                buckets,
                {pool.address.lower(): pool for pool in pools},
                token_map,
                stable_unit,
            ).values(),
            ZERO,
        )

        tvl = ZERO
        if self._onchain.supports(chain_id):
            addresses = sorted({address.lower() for pool in pools for address in (pool.token0, pool.token1)})
            prices = await self._token_prices.get_token_prices(chain_id, addresses, allow_missing_btc=True)
            try:
                reserves = await self._onchain.read_many(
                    chain_id=chain_id,
                    calls=[build_call(pool.address, GET_RESERVES) for pool in pools],
                )
                tvl = compute_v2_pool_tvl_any_side(pools, reserves, token_map, prices, stable_unit)
            except Exception as exc:
                logger.warning("get_protocol_stats: v2_tvl_failed chain_id=%s error=%s", chain_id, exc)

        return CategoryStats(tvl_usd=tvl, volume_24h_usd=volume)

    async def _bridge_stats(self, chain_id: int, contracts: ChainContracts | None) -> CategoryStats:
        tvl, volume = await asyncio.gather(
            self._bridge_tvl(chain_id, contracts),
            self._bridge_volume_24h(chain_id),
        )
        return CategoryStats(tvl_usd=tvl, volume_24h_usd=volume)

    async def _bridge_tvl(self, chain_id: int, contracts: ChainContracts | None) -> Decimal:
        bridges = contracts.bridge_addresses() if contracts is not None else []
        if not bridges or not self._onchain.supports(chain_id):
            return ZERO
        try:
            minted = await self._onchain.read_many(
                chain_id=chain_id,
                calls=[build_call(address, BRIDGE_MINTED) for address in bridges],
            )
        except Exception as exc:
            logger.warning("get_protocol_stats: bridge_tvl_failed chain_id=%s error=%s", chain_id, exc)
            return ZERO
        return compute_bridge_tvl(minted)

    async def _bridge_volume_24h(self, chain_id: int) -> Decimal:
        since = int(self._now()) - DAY
        stablecoin, swap = await asyncio.gather(
            self._stablecoin_volume(since),
            self._swap_bridge_volume(chain_id, since),
        )
        return stablecoin + swap

    async def _stablecoin_volume(self, since: int) -> Decimal:
        try:
            buckets = await self._bridge_volume.fetch_stablecoin_bridge_volume(since=since)
        except Exception as exc:
            logger.warning("get_protocol_stats: stablecoin_bridge_volume_failed error=%s", exc)
            return ZERO
        return sum_bridge_volume(buckets, ZERO)

    async def _swap_bridge_volume(self, chain_id: int, since: int) -> Decimal:
        try:
            buckets = await self._bridge_volume.fetch_swap_bridge_volume(chain_id=chain_id, since=since)
        except Exception as exc:
            logger.warning(
                "get_protocol_stats: swap_bridge_volume_failed chain_id=%s error=%s", chain_id, exc
            )
            return ZERO
        if not buckets:
            return ZERO
        try:
            btc_price = await self._token_prices.get_btc_price_usd()
        except PriceUnavailableError as exc:
            logger.warning("get_protocol_stats: btc_price_unavailable error=%s", exc)
            btc_price = ZERO
        return sum_bridge_volume(buckets, btc_price)
