from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AmountResponse(CamelModel):
    currency: str = "USD"
    value: float


class ProjectResponse(CamelModel):
    name: str


class PriceHistoryResponse(CamelModel):
    start: int
    end: int
    step: int
    values: list[float]


class TokenInfoResponse(CamelModel):
    chain: str
    address: str
    name: str
    symbol: str
    decimals: int
    price: AmountResponse | None = None
    project: ProjectResponse | None = None


class TokenStatsResponse(CamelModel):
    chain: str
    address: str
    name: str
    symbol: str
    decimals: int
    price: AmountResponse | None = None
    fully_diluted_valuation: AmountResponse | None = None
    price_percent_change1_hour: AmountResponse | None = None
    price_percent_change1_day: AmountResponse | None = None
    volume1_hour: AmountResponse
    volume1_day: AmountResponse
    volume1_week: AmountResponse
    volume1_month: AmountResponse
    volume1_year: AmountResponse
    price_history_day: PriceHistoryResponse | None = None
    project: ProjectResponse | None = None


class PoolStatsResponse(CamelModel):
    id: str
    chain: str
    total_liquidity: AmountResponse
    tx_count: int | None = None
    volume1_day: AmountResponse
    volume30_day: AmountResponse
    fee_tier: int
    token0: TokenInfoResponse | None = None
    token1: TokenInfoResponse | None = None
    protocol_version: str


class TransactionStatsResponse(CamelModel):
    hash: str
    chain: str
    timestamp: int
    account: str
    usd_value: AmountResponse | None = None
    token0: TokenInfoResponse | None = None
    token0_quantity: str
    token1: TokenInfoResponse | None = None
    token1_quantity: str
    type: str
    protocol_version: str


class ExploreStatsBody(CamelModel):
    token_stats: list[TokenStatsResponse]
    pool_stats_v2: list[PoolStatsResponse]
    pool_stats_v3: list[PoolStatsResponse]
    transaction_stats: list[TransactionStatsResponse]


class ExploreStatsResponse(CamelModel):
    stats: ExploreStatsBody
