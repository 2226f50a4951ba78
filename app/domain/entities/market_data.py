from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


HOURLY_BUCKET = "1h"
DAILY_BUCKET = "24h"


@dataclass(frozen=True)
class VolumeBucket:
    pool_address: str
    bucket_type: str
    timestamp: int
    volume0: int
    volume1: int
    tx_count: int


@dataclass(frozen=True)
class TokenVolumeBucket:
    token_address: str
    bucket_type: str
    timestamp: int
    volume: int
    tx_count: int


@dataclass(frozen=True)
class PoolPriceSnapshot:
    pool_address: str
    sqrt_price_x96: int
    timestamp: int


@dataclass(frozen=True)
class SwapRecord:
    tx_hash: str
    block_timestamp: int
    swapper: str
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    chain_id: int


@dataclass(frozen=True)
class BtcPriceData:
    price: Decimal
    change_1h: Decimal
    change_24h: Decimal


@dataclass(frozen=True)
class BtcPricePoint:
    timestamp: int
    price: Decimal


@dataclass(frozen=True)
class BtcPriceHistory:
    points: list[BtcPricePoint]


NATIVE_TOKEN = "native"


@dataclass(frozen=True)
class BridgeVolumeBucket:
    token_address: str
    timestamp: int
    volume: int
