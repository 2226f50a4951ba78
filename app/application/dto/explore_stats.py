from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class GetExploreStatsInput:
    chain_id: int


@dataclass(frozen=True)
class GetPoolStatsInput:
    chain_id: int
    pool_address: str


@dataclass(frozen=True)
class GetProtocolStatsInput:
    chain_id: int
