from __future__ import annotations

from typing import Protocol

from app.domain.entities.market_data import BridgeVolumeBucket


class BridgeVolumePort(Protocol):
    async def fetch_stablecoin_bridge_volume(self, *, since: int) -> list[BridgeVolumeBucket]:
        ...

    async def fetch_swap_bridge_volume(
        self,
        *,
        chain_id: int,
        since: int,
    ) -> list[BridgeVolumeBucket]:
        ...
