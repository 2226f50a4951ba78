from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class PriceHistory:
    start: int
    end: int
    step: int
    values: list[Decimal]


@dataclass(frozen=True)
class TokenInfo:
    chain: str
    address: str
    name: str
    symbol: str
    decimals: int
    price: Decimal | None = None


@dataclass(frozen=True)
class TokenStats:
    chain: str
    address: str
    name: str
    symbol: str
    decimals: int
    price: Decimal | None
    fully_diluted_valuation: Decimal | None
    price_change_1h: Decimal | None
    price_change_1d: Decimal | None
    volume_1h: Decimal
    volume_1d: Decimal
    volume_1w: Decimal
    volume_1m: Decimal
    volume_1y: Decimal
    price_history_day: PriceHistory | None = None


@dataclass(frozen=True)
class PoolStats:
    id: str
    chain: str
    protocol_version: str
    fee_tier: int
    total_liquidity: Decimal
    tx_count: int
    volume_1d: Decimal
    volume_30d: Decimal
    token0: TokenInfo | None
    token1: TokenInfo | None


@dataclass(frozen=True)
class TransactionStats:
    hash: str
    chain: str
    timestamp: int
    account: str
    usd_value: Decimal | None
    token0: TokenInfo | None
    token0_quantity: Decimal
    token1: TokenInfo | None
    token1_quantity: Decimal
    type: str = "SWAP"
    protocol_version: str = "V3"


@dataclass(frozen=True)
class ExploreStats:
    chain_id: int
    computed_at: int
    token_stats: list[TokenStats] = field(default_factory=list)
    pool_stats_v2: list[PoolStats] = field(default_factory=list)
    pool_stats_v3: list[PoolStats] = field(default_factory=list)
    transaction_stats: list[TransactionStats] = field(default_factory=list)

    def find_v3_pool(self, pool_address: str) -> PoolStats | None:
        key = pool_address.lower()
        for pool in self.pool_stats_v3:
            if pool.id.lower() == key:
                return pool
        return None
