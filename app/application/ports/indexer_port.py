from __future__ import annotations

from typing import Protocol

from app.domain.entities.market_data import (
    PoolPriceSnapshot,
    SwapRecord,
    TokenVolumeBucket,
    VolumeBucket,
)
from app.domain.entities.pool import ConcentratedPool, ConstantProductPool, Token


class IndexerPort(Protocol):
    async def fetch_tokens(self, *, chain_id: int) -> list[Token]:
        ...

    async def fetch_v3_pools(self, *, chain_id: int) -> list[ConcentratedPool]:
        ...

    async def fetch_v2_pools(self, *, chain_id: int) -> list[ConstantProductPool]:
        ...

    async def fetch_pool_buckets(
        self,
        *,
        chain_id: int,
        bucket_type: str,
        hours_back: int,
    ) -> list[VolumeBucket]:
        ...

    async def fetch_v2_pool_buckets(
        self,
        *,
        chain_id: int,
        bucket_type: str,
        hours_back: int,
    ) -> list[VolumeBucket]:
        ...

    async def fetch_token_buckets(
        self,
        *,
        chain_id: int,
        bucket_type: str,
        hours_back: int,
    ) -> list[TokenVolumeBucket]:
        ...

    async def fetch_pool_snapshots(
        self,
        *,
        chain_id: int,
        hours_back: int = 25,
    ) -> list[PoolPriceSnapshot]:
        ...

    async def fetch_recent_swaps(self, *, chain_id: int, limit: int = 50) -> list[SwapRecord]:
        ...
