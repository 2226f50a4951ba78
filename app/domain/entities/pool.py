from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Token:
    address: str
    decimals: int
    symbol: str
    name: str
    chain_id: int


@dataclass(frozen=True)
class ConcentratedPool:
    address: str
    token0: str
    token1: str
    fee: int

    def contains(self, token_address: str) -> bool:
        key = token_address.lower()
        return self.token0.lower() == key or self.token1.lower() == key


@dataclass(frozen=True)
class ConstantProductPool:
    address: str
    token0: str
    token1: str
    launchpad_token: str | None = None

    def contains(self, token_address: str) -> bool:
        key = token_address.lower()
        return self.token0.lower() == key or self.token1.lower() == key
