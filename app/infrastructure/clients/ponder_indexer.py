from __future__ import annotations

from collections.abc import Callable
import logging
import time

import httpx

from app.domain.entities.market_data import (
    PoolPriceSnapshot,
    SwapRecord,
    TokenVolumeBucket,
    VolumeBucket,
)
from app.domain.entities.pool import ConcentratedPool, ConstantProductPool, Token
from app.domain.exceptions import IndexerRequestError
from app.domain.services.units import to_int
from app.infrastructure.clients.ponder_client import PonderClient


logger = logging.getLogger(__name__)


TOKENS_QUERY = """
query GetTokens($where: tokenFilter = {}) {
  tokens(where: $where, limit: 200) {
    items { address, decimals, symbol, name }
  }
}
"""

POOLS_QUERY = """
query GetPools($where: poolFilter = {}) {
  pools(where: $where, limit: 200) {
    items { address, token0, token1, fee }
  }
}
"""

POOL_STATS_QUERY = """
query GetPoolStats($where: poolStatFilter = {}) {
  poolStats(where: $where, orderBy: "timestamp", orderDirection: "desc", limit: 1000) {
    items { poolAddress, volume0, volume1, txCount, timestamp, type }
  }
}
"""

V2_POOL_STATS_QUERY = """
query GetV2PoolStats($where: v2PoolStatFilter = {}) {
  v2PoolStats(where: $where, orderBy: "timestamp", orderDirection: "desc", limit: 1000) {
    items { poolAddress, volume0, volume1, txCount, timestamp }
  }
}
"""

TOKEN_STATS_QUERY = """
query GetTokenStats($where: tokenStatFilter = {}) {
  tokenStats(where: $where, orderBy: "timestamp", orderDirection: "desc", limit: 1000) {
    items { address, volume, txCount, timestamp, type }
  }
}
"""

RECENT_SWAPS_QUERY = """
query GetRecentSwaps($where: transactionSwapFilter = {}, $limit: Int = 50) {
  transactionSwaps(where: $where, orderBy: "blockTimestamp", orderDirection: "desc", limit: $limit) {
    items { txHash, blockTimestamp, swapperAddress, from, to, tokenIn, tokenOut, amountIn, amountOut, chainId }
  }
}
"""

POOL_ACTIVITY_QUERY = """
query GetPoolActivities($where: poolActivityFilter = {}) {
  poolActivitys(where: $where, orderBy: "blockTimestamp", orderDirection: "asc", limit: 1000) {
    items { poolAddress, sqrtPriceX96, blockTimestamp }
  }
}
"""

_DEGRADE_ERRORS = (IndexerRequestError, httpx.HTTPError, ValueError, KeyError, TypeError)


def _items(data: dict, key: str) -> list[dict]:
    return (data.get(key) or {}).get("items") or []


class PonderIndexer:
    """Indexer queries; any failure degrades to an empty list."""

    def __init__(self, *, client: PonderClient, now: Callable[[], float] = time.time):
        self._client = client
        self._now = now

    def _cutoff(self, hours_back: int) -> str:
        return str(int(self._now()) - hours_back * 3600)

    async def fetch_tokens(self, *, chain_id: int) -> list[Token]:
        try:
            data = await self._client.query(TOKENS_QUERY, {"where": {"chainId": chain_id}})
            return [
                Token(
                    address=row["address"],
                    decimals=to_int(row.get("decimals"), 18),
                    symbol=row.get("symbol") or "",
                    name=row.get("name") or "",
                    chain_id=chain_id,
                )
                for row in _items(data, "tokens")
            ]
        except _DEGRADE_ERRORS as exc:
            logger.warning("ponder_indexer: fetch_tokens_failed chain_id=%s error=%s", chain_id, exc)
            return []

    async def fetch_v3_pools(self, *, chain_id: int) -> list[ConcentratedPool]:
        try:
            data = await self._client.query(POOLS_QUERY, {"where": {"chainId": chain_id}})
            return [
                ConcentratedPool(
                    address=row["address"],
                    token0=row["token0"],
                    token1=row["token1"],
                    fee=to_int(row.get("fee")),
                )
                for row in _items(data, "pools")
            ]
        except _DEGRADE_ERRORS as exc:
            logger.warning("ponder_indexer: fetch_v3_pools_failed chain_id=%s error=%s", chain_id, exc)
            return []

    async def fetch_v2_pools(self, *, chain_id: int) -> list[ConstantProductPool]:
        try:
            payload = await self._client.get(f"/graduated-pools?chainId={chain_id}")
            rows = (payload or {}).get("pools") or []
            return [
                ConstantProductPool(
                    address=row["pairAddress"],
                    token0=row["token0"],
                    token1=row["token1"],
                    launchpad_token=row.get("launchpadTokenAddress"),
                )
                for row in rows
            ]
        except _DEGRADE_ERRORS as exc:
            logger.warning("ponder_indexer: fetch_v2_pools_failed chain_id=%s error=%s", chain_id, exc)
            return []

    async def fetch_pool_buckets(
        self,
        *,
        chain_id: int,
        bucket_type: str,
        hours_back: int,
    ) -> list[VolumeBucket]:
        return await self._fetch_volume_buckets(
            query=POOL_STATS_QUERY,
            key="poolStats",
            chain_id=chain_id,
            bucket_type=bucket_type,
            hours_back=hours_back,
        )

    async def fetch_v2_pool_buckets(
        self,
        *,
        chain_id: int,
        bucket_type: str,
        hours_back: int,
    ) -> list[VolumeBucket]:
        return await self._fetch_volume_buckets(
            query=V2_POOL_STATS_QUERY,
            key="v2PoolStats",
            chain_id=chain_id,
            bucket_type=bucket_type,
            hours_back=hours_back,
        )

    async def _fetch_volume_buckets(
        self,
        *,
        query: str,
        key: str,
        chain_id: int,
        bucket_type: str,
        hours_back: int,
    ) -> list[VolumeBucket]:
        variables = {
            "where": {
                "type": bucket_type,
                "chainId": chain_id,
                "timestamp_gte": self._cutoff(hours_back),
            }
        }
        try:
            data = await self._client.query(query, variables)
            return [
                VolumeBucket(
                    pool_address=row["poolAddress"],
                    bucket_type=row.get("type") or bucket_type,
                    timestamp=to_int(row.get("timestamp")),
                    volume0=to_int(row.get("volume0")),
                    volume1=to_int(row.get("volume1")),
                    tx_count=to_int(row.get("txCount")),
                )
                for row in _items(data, key)
            ]
        except _DEGRADE_ERRORS as exc:
            logger.warning(
                "ponder_indexer: fetch_buckets_failed source=%s chain_id=%s bucket_type=%s hours_back=%s error=%s",
                key,
                chain_id,
                bucket_type,
                hours_back,
                exc,
            )
            return []

    async def fetch_token_buckets(
        self,
        *,
        chain_id: int,
        bucket_type: str,
        hours_back: int,
    ) -> list[TokenVolumeBucket]:
        variables = {
            "where": {
                "type": bucket_type,
                "chainId": chain_id,
                "timestamp_gte": self._cutoff(hours_back),
            }
        }
        try:
            data = await self._client.query(TOKEN_STATS_QUERY, variables)
            return [
                TokenVolumeBucket(
                    token_address=row["address"],
                    bucket_type=row.get("type") or bucket_type,
                    timestamp=to_int(row.get("timestamp")),
                    volume=to_int(row.get("volume")),
                    tx_count=to_int(row.get("txCount")),
                )
                for row in _items(data, "tokenStats")
            ]
        except _DEGRADE_ERRORS as exc:
            logger.warning(
                "ponder_indexer: fetch_token_buckets_failed chain_id=%s bucket_type=%s error=%s",
                chain_id,
                bucket_type,
                exc,
            )
            return []

    async def fetch_pool_snapshots(
        self,
        *,
        chain_id: int,
        hours_back: int = 25,
    ) -> list[PoolPriceSnapshot]:
        variables = {
            "where": {
                "chainId": chain_id,
                "blockTimestamp_gte": self._cutoff(hours_back),
            }
        }
        try:
            data = await self._client.query(POOL_ACTIVITY_QUERY, variables)
            snapshots = [
                PoolPriceSnapshot(
                    pool_address=row["poolAddress"],
                    sqrt_price_x96=to_int(row.get("sqrtPriceX96")),
                    timestamp=to_int(row.get("blockTimestamp")),
                )
                for row in _items(data, "poolActivitys")
            ]
            snapshots.sort(key=lambda item: item.timestamp)
            return snapshots
        except _DEGRADE_ERRORS as exc:
            logger.warning(
                "ponder_indexer: fetch_pool_snapshots_failed chain_id=%s error=%s",
                chain_id,
                exc,
            )
            return []

    async def fetch_recent_swaps(self, *, chain_id: int, limit: int = 50) -> list[SwapRecord]:
        try:
            data = await self._client.query(
                RECENT_SWAPS_QUERY,
                {"where": {"chainId": chain_id}, "limit": limit},
            )
            return [
                SwapRecord(
                    tx_hash=row["txHash"],
                    block_timestamp=to_int(row.get("blockTimestamp")),
                    swapper=row.get("swapperAddress") or row.get("from") or "",
                    token_in=row.get("tokenIn") or "",
                    token_out=row.get("tokenOut") or "",
                    amount_in=to_int(row.get("amountIn")),
                    amount_out=to_int(row.get("amountOut")),
                    chain_id=to_int(row.get("chainId"), chain_id),
                )
                for row in _items(data, "transactionSwaps")
            ]
        except _DEGRADE_ERRORS as exc:
            logger.warning(
                "ponder_indexer: fetch_recent_swaps_failed chain_id=%s error=%s",
                chain_id,
                exc,
            )
            return []
