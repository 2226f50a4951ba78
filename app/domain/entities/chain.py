from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ChainContracts:
    chain_id: int
    jusd: str | None = None
    sv_jusd: str | None = None
    juice: str | None = None
    start_usd: str | None = None
    usdc: str | None = None
    usdt: str | None = None
    ctusd: str | None = None
    wcbtc: str | None = None
    sybtc: str | None = None
    bridge_start_usd: str | None = None
    bridge_usdc: str | None = None
    bridge_usdt: str | None = None
    bridge_ctusd: str | None = None

    def bridge_addresses(self) -> list[str]:
        return [
            address
            for address in (
                self.bridge_start_usd,
                self.bridge_usdc,
                self.bridge_usdt,
                self.bridge_ctusd,
            )
            if address
        ]
