from __future__ import annotations

from functools import lru_cache

from app.application.use_cases.compute_explore_stats import ComputeExploreStatsUseCase
from app.application.use_cases.get_explore_stats import GetExploreStatsUseCase
from app.application.use_cases.get_protocol_stats import GetProtocolStatsUseCase
from app.infrastructure.clients.bridge_volume_client import BridgeVolumeClient
from app.infrastructure.clients.multicall_client import MulticallReader
from app.infrastructure.clients.ponder_client import PonderClient, PonderClientSettings
from app.infrastructure.clients.ponder_indexer import PonderIndexer
from app.infrastructure.clients.pricing import BinanceBtcFeed, CoingeckoBtcFeed, KnownPriceResolver
from app.shared.chains import build_chain_contracts
from app.shared.config import get_settings


@lru_cache(maxsize=1)
def _get_ponder_indexer() -> PonderIndexer:
    settings = get_settings()
    client = PonderClient(
        PonderClientSettings(
            primary_url=settings.ponder_url,
            fallback_url=settings.ponder_fallback_url,
            timeout_seconds=settings.ponder_timeout_seconds,
            max_retries=settings.ponder_max_retries,
            retry_delay_seconds=settings.ponder_retry_delay_seconds,
            fallback_cooldown_seconds=settings.ponder_fallback_cooldown_seconds,
        )
    )
    return PonderIndexer(client=client)


@lru_cache(maxsize=1)
def _get_price_resolver() -> KnownPriceResolver:
    settings = get_settings()
    return KnownPriceResolver(
        contracts=build_chain_contracts(settings.chain_contracts),
        primary=CoingeckoBtcFeed(
            api_base=settings.coingecko_api_base,
            timeout_seconds=settings.price_feed_timeout_seconds,
        ),
        fallback=BinanceBtcFeed(
            api_base=settings.binance_api_base,
            timeout_seconds=settings.price_feed_timeout_seconds,
        ),
        price_ttl_seconds=settings.btc_price_cache_ttl_seconds,
        history_ttl_seconds=settings.btc_history_cache_ttl_seconds,
    )


@lru_cache(maxsize=1)
def _get_multicall_reader() -> MulticallReader:
    settings = get_settings()
    return MulticallReader(
        rpc_urls=settings.rpc_urls,
        multicall_address=settings.multicall_address,
    )


@lru_cache(maxsize=1)
def _get_bridge_volume_client() -> BridgeVolumeClient:
    settings = get_settings()
    return BridgeVolumeClient(
        stablecoin_indexer_url=settings.juicedollar_ponder_url,
        swap_indexer_url=settings.lds_ponder_url,
        timeout_seconds=settings.ponder_timeout_seconds,
    )


def get_default_chain_id() -> int:
    return get_settings().default_chain_id


@lru_cache(maxsize=1)
def get_explore_stats_use_case() -> GetExploreStatsUseCase:
    settings = get_settings()
    compute = ComputeExploreStatsUseCase(
        indexer=_get_ponder_indexer(),
        token_prices=_get_price_resolver(),
        onchain=_get_multicall_reader(),
        yearly_cache_ttl_seconds=settings.yearly_volume_cache_ttl_seconds,
    )
    return GetExploreStatsUseCase(
        compute=compute,
        ttl_seconds=settings.explore_stats_cache_ttl_seconds,
        refresh_margin_seconds=settings.explore_stats_refresh_margin_seconds,
    )


@lru_cache(maxsize=1)
def get_protocol_stats_use_case() -> GetProtocolStatsUseCase:
    settings = get_settings()
    return GetProtocolStatsUseCase(
        indexer=_get_ponder_indexer(),
        token_prices=_get_price_resolver(),
        onchain=_get_multicall_reader(),
        bridge_volume=_get_bridge_volume_client(),
        ttl_seconds=settings.protocol_stats_cache_ttl_seconds,
    )
