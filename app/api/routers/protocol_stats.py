from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.deps import get_default_chain_id, get_protocol_stats_use_case
from app.api.schemas.protocol_stats import (
    ProtocolPointResponse,
    ProtocolSeriesResponse,
    ProtocolStatsResponse,
    ProtocolVolumeResponse,
)
from app.application.dto.explore_stats import GetProtocolStatsInput
from app.application.use_cases.get_protocol_stats import GetProtocolStatsUseCase
from app.domain.exceptions import ExploreStatsInputError

router = APIRouter()


@router.get("/v1/protocol/stats", response_model=ProtocolStatsResponse)
async def get_protocol_stats(
    chain_id: int | None = Query(default=None, alias="chainId"),
    default_chain_id: int = Depends(get_default_chain_id),
    use_case: GetProtocolStatsUseCase = Depends(get_protocol_stats_use_case),
):
    try:
        output = await use_case.execute(
            GetProtocolStatsInput(chain_id=chain_id if chain_id is not None else default_chain_id)
        )
    except ExploreStatsInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    def _point(value) -> list[ProtocolPointResponse]:
        return [ProtocolPointResponse(timestamp=output.timestamp, value=float(value))]

    return ProtocolStatsResponse(
        daily_protocol_tvl=ProtocolSeriesResponse(
            v2=_point(output.v2.tvl_usd),
            v3=_point(output.v3.tvl_usd),
            bridge=_point(output.bridge.tvl_usd),
        ),
        historical_protocol_volume=ProtocolVolumeResponse(
            month=ProtocolSeriesResponse(
                v2=_point(output.v2.volume_24h_usd),
                v3=_point(output.v3.volume_24h_usd),
                bridge=_point(output.bridge.volume_24h_usd),
            )
        ),
    )
