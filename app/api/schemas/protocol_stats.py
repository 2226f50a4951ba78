from __future__ import annotations

from pydantic import Field

from app.api.schemas.explore_stats import CamelModel


class ProtocolPointResponse(CamelModel):
    timestamp: int
    value: float


class ProtocolSeriesResponse(CamelModel):
    v2: list[ProtocolPointResponse]
    v3: list[ProtocolPointResponse]
    bridge: list[ProtocolPointResponse]


class ProtocolVolumeResponse(CamelModel):
    month: ProtocolSeriesResponse = Field(alias="Month")


class ProtocolStatsResponse(CamelModel):
    daily_protocol_tvl: ProtocolSeriesResponse
    historical_protocol_volume: ProtocolVolumeResponse
