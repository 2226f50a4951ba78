from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


ZERO = Decimal("0")


@dataclass(frozen=True)
class CategoryStats:
    tvl_usd: Decimal = ZERO
    volume_24h_usd: Decimal = ZERO


@dataclass(frozen=True)
class ProtocolStats:
    chain_id: int
    timestamp: int
    v2: CategoryStats
    v3: CategoryStats
    bridge: CategoryStats
