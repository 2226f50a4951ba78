from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.deps import get_default_chain_id, get_explore_stats_use_case
from app.api.schemas.explore_stats import (
    AmountResponse,
    ExploreStatsBody,
    ExploreStatsResponse,
    PoolStatsResponse,
    PriceHistoryResponse,
    ProjectResponse,
    TokenInfoResponse,
    TokenStatsResponse,
    TransactionStatsResponse,
)
from app.application.dto.explore_stats import GetExploreStatsInput, GetPoolStatsInput
from app.application.use_cases.get_explore_stats import GetExploreStatsUseCase
from app.domain.entities.explore_stats import PoolStats, TokenInfo, TokenStats, TransactionStats
from app.domain.exceptions import ExploreStatsInputError, StatsComputationError

router = APIRouter()


def _amount(value: Decimal | None) -> AmountResponse | None:
    if value is None:
        return None
    return AmountResponse(value=float(value))


def _token_info(token: TokenInfo | None) -> TokenInfoResponse | None:
    if token is None:
        return None
    return TokenInfoResponse(
        chain=token.chain,
        address=token.address,
        name=token.name,
        symbol=token.symbol,
        decimals=token.decimals,
        price=_amount(token.price),
        project=ProjectResponse(name=token.name),
    )


def _token_stats(row: TokenStats) -> TokenStatsResponse:
    history = row.price_history_day
    return TokenStatsResponse(
        chain=row.chain,
        address=row.address,
        name=row.name,
        symbol=row.symbol,
        decimals=row.decimals,
        price=_amount(row.price),
        fully_diluted_valuation=_amount(row.fully_diluted_valuation),
        price_percent_change1_hour=_amount(row.price_change_1h),
        price_percent_change1_day=_amount(row.price_change_1d),
        volume1_hour=_amount(row.volume_1h),
        volume1_day=_amount(row.volume_1d),
        volume1_week=_amount(row.volume_1w),
        volume1_month=_amount(row.volume_1m),
        volume1_year=_amount(row.volume_1y),
        price_history_day=(
            PriceHistoryResponse(
                start=history.start,
                end=history.end,
                step=history.step,
                values=[float(value) for value in history.values],
            )
            if history is not None
            else None
        ),
        project=ProjectResponse(name=row.name),
    )


def _pool_stats(row: PoolStats) -> PoolStatsResponse:
    return PoolStatsResponse(
        id=row.id,
        chain=row.chain,
        total_liquidity=_amount(row.total_liquidity),
        tx_count=row.tx_count or None,
        volume1_day=_amount(row.volume_1d),
        volume30_day=_amount(row.volume_30d),
        fee_tier=row.fee_tier,
        token0=_token_info(row.token0),
        token1=_token_info(row.token1),
        protocol_version=row.protocol_version,
    )


def _transaction_stats(row: TransactionStats) -> TransactionStatsResponse:
    return TransactionStatsResponse(
        hash=row.hash,
        chain=row.chain,
        timestamp=row.timestamp,
        account=row.account,
        usd_value=_amount(row.usd_value),
        token0=_token_info(row.token0),
        token0_quantity=format(row.token0_quantity.normalize(), "f"),
        token1=_token_info(row.token1),
        token1_quantity=format(row.token1_quantity.normalize(), "f"),
        type=row.type,
        protocol_version=row.protocol_version,
    )


@router.get(
    "/v1/explore/stats",
    response_model=ExploreStatsResponse,
    response_model_exclude_none=True,
)
async def get_explore_stats(
    chain_id: int | None = Query(default=None, alias="chainId"),
    default_chain_id: int = Depends(get_default_chain_id),
    use_case: GetExploreStatsUseCase = Depends(get_explore_stats_use_case),
):
    try:
        output = await use_case.execute(
            GetExploreStatsInput(chain_id=chain_id if chain_id is not None else default_chain_id)
        )
    except ExploreStatsInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StatsComputationError as exc:
        raise HTTPException(status_code=500, detail="Failed to compute explore stats.") from exc

    return ExploreStatsResponse(
        stats=ExploreStatsBody(
            token_stats=[_token_stats(row) for row in output.token_stats],
            pool_stats_v2=[_pool_stats(row) for row in output.pool_stats_v2],
            pool_stats_v3=[_pool_stats(row) for row in output.pool_stats_v3],
            transaction_stats=[_transaction_stats(row) for row in output.transaction_stats],
        )
    )


@router.get(
    "/v1/explore/pools/{pool_address}",
    response_model=PoolStatsResponse,
    response_model_exclude_none=True,
)
async def get_explore_pool(
    pool_address: str,
    chain_id: int | None = Query(default=None, alias="chainId"),
    default_chain_id: int = Depends(get_default_chain_id),
    use_case: GetExploreStatsUseCase = Depends(get_explore_stats_use_case),
):
    try:
        pool = await use_case.get_pool_stats(
            GetPoolStatsInput(
                chain_id=chain_id if chain_id is not None else default_chain_id,
                pool_address=pool_address,
            )
        )
    except ExploreStatsInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StatsComputationError as exc:
        raise HTTPException(status_code=500, detail="Failed to compute explore stats.") from exc

    if pool is None:
        raise HTTPException(status_code=404, detail="Pool not found.")
    return _pool_stats(pool)
