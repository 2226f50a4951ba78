from __future__ import annotations

from enum import Enum

from app.domain.entities.chain import ChainContracts


class TokenCategory(str, Enum):
    BTC = "BTC"
    STABLECOIN = "STABLECOIN"


def _normalize(address: str | None) -> str:
    return (address or "").strip().lower()


def btc_addresses(contracts: ChainContracts) -> set[str]:
    return {_normalize(value) for value in (contracts.wcbtc, contracts.sybtc) if value}


def stablecoin_addresses(contracts: ChainContracts) -> set[str]:
    return {
        _normalize(value)
        for value in (
            contracts.jusd,
            contracts.sv_jusd,
            contracts.usdc,
            contracts.usdt,
            contracts.ctusd,
            contracts.start_usd,
        )
        if value
    }


def classify_token(contracts: ChainContracts | None, address: str) -> TokenCategory | None:
    if contracts is None or not address:
        return None
    key = _normalize(address)
    if key in btc_addresses(contracts):
        return TokenCategory.BTC
    if key in stablecoin_addresses(contracts):
        return TokenCategory.STABLECOIN
    return None
