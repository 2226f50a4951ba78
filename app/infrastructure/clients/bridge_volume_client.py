from __future__ import annotations

import logging
from typing import Any

import httpx

from app.domain.entities.market_data import HOURLY_BUCKET, BridgeVolumeBucket
from app.domain.services.units import to_int


logger = logging.getLogger(__name__)


STABLECOIN_BRIDGE_VOLUME_QUERY = """
query {{
  bridgeVolumeStats(
    where: {{ type: "1h", timestamp_gte: "{since}" }}
    orderBy: "timestamp"
    orderDirection: "desc"
    limit: 200
  ) {{
    items {{ stablecoinAddress, timestamp, volume, type }}
  }}
}}
"""

SWAP_BRIDGE_VOLUME_QUERY = """
query {{
  volumeStats(
    where: {{ chainId: {chain_id}, type: "1h", timestamp_gte: "{since}" }}
    orderBy: "timestamp"
    orderDirection: "desc"
    limit: 200
  ) {{
    items {{ tokenAddress, timestamp, volume, type }}
  }}
}}
"""


class BridgeVolumeError(RuntimeError):
    pass


class BridgeVolumeClient:
    """Hourly bridge volume from the stablecoin bridge and swap-bridge indexers."""

    def __init__(
        self,
        *,
        stablecoin_indexer_url: str,
        swap_indexer_url: str,
        timeout_seconds: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._stablecoin_url = stablecoin_indexer_url.rstrip("/")
        self._swap_url = swap_indexer_url.rstrip("/")
        self._timeout = timeout_seconds
        self._transport = transport

    async def _query(self, base_url: str, query: str) -> dict:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(
                f"{base_url}/graphql",
                json={"query": query},
            )
            response.raise_for_status()
            payload: Any = response.json()
        errors = (payload or {}).get("errors") or []
        if errors:
            raise BridgeVolumeError(" | ".join(str(err.get("message", err)) for err in errors))
        return (payload or {}).get("data") or {}

    async def fetch_stablecoin_bridge_volume(self, *, since: int) -> list[BridgeVolumeBucket]:
        data = await self._query(
            self._stablecoin_url,
            STABLECOIN_BRIDGE_VOLUME_QUERY.format(since=int(since)),
        )
        rows = (data.get("bridgeVolumeStats") or {}).get("items") or []
        buckets = [
            BridgeVolumeBucket(
                token_address=(row.get("stablecoinAddress") or "").lower(),
                timestamp=to_int(row.get("timestamp")),
                volume=to_int(row.get("volume")),
            )
            for row in rows
            if (row.get("type") or HOURLY_BUCKET) == HOURLY_BUCKET
        ]
        logger.info("bridge_volume_client: stablecoin_buckets count=%s since=%s", len(buckets), since)
        return buckets

    async def fetch_swap_bridge_volume(
        self,
        *,
        chain_id: int,
        since: int,
    ) -> list[BridgeVolumeBucket]:
        data = await self._query(
            self._swap_url,
            SWAP_BRIDGE_VOLUME_QUERY.format(chain_id=int(chain_id), since=int(since)),
        )
        rows = (data.get("volumeStats") or {}).get("items") or []
        buckets = [
            BridgeVolumeBucket(
                token_address=(row.get("tokenAddress") or "").lower(),
                timestamp=to_int(row.get("timestamp")),
                volume=to_int(row.get("volume")),
            )
            for row in rows
            if (row.get("type") or HOURLY_BUCKET) == HOURLY_BUCKET
        ]
        logger.info(
            "bridge_volume_client: swap_buckets chain_id=%s count=%s since=%s",
            chain_id,
            len(buckets),
            since,
        )
        return buckets
