from __future__ import annotations

import json
import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(name, default)


def _json(name: str) -> dict:
    value = _env(name)
    if not value:
        return {}
    return json.loads(value)


def _int_list(name: str) -> list[int]:
    value = _env(name, "") or ""
    return [int(item) for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    log_level: str
    default_chain_id: int
    ponder_url: str
    ponder_fallback_url: str
    ponder_timeout_seconds: float
    ponder_max_retries: int
    ponder_retry_delay_seconds: float
    ponder_fallback_cooldown_seconds: float
    coingecko_api_base: str
    binance_api_base: str
    price_feed_timeout_seconds: float
    btc_price_cache_ttl_seconds: float
    btc_history_cache_ttl_seconds: float
    rpc_urls: dict
    multicall_address: str
    chain_contracts: dict
    explore_stats_cache_ttl_seconds: float
    explore_stats_refresh_margin_seconds: float
    yearly_volume_cache_ttl_seconds: float
    explore_stats_prewarm_chain_ids: list[int]
    protocol_stats_cache_ttl_seconds: float
    juicedollar_ponder_url: str
    lds_ponder_url: str


def get_settings() -> Settings:
    return Settings(
        log_level=_env("LOG_LEVEL", "INFO"),
        default_chain_id=int(_env("DEFAULT_CHAIN_ID", "4114")),
        ponder_url=_env("PONDER_URL", "https://ponder.juiceswap.com"),
        ponder_fallback_url=_env("PONDER_FALLBACK_URL", "https://dev.ponder.juiceswap.com"),
        ponder_timeout_seconds=float(_env("PONDER_TIMEOUT_SECONDS", "10")),
        ponder_max_retries=int(_env("PONDER_MAX_RETRIES", "2")),
        ponder_retry_delay_seconds=float(_env("PONDER_RETRY_DELAY_SECONDS", "1")),
        ponder_fallback_cooldown_seconds=float(_env("PONDER_FALLBACK_COOLDOWN_SECONDS", "600")),
        coingecko_api_base=_env("COINGECKO_API_BASE", "https://api.coingecko.com/api/v3"),
        binance_api_base=_env("BINANCE_API_BASE", "https://api.binance.com/api/v3"),
        price_feed_timeout_seconds=float(_env("PRICE_FEED_TIMEOUT_SECONDS", "5")),
        btc_price_cache_ttl_seconds=float(_env("BTC_PRICE_CACHE_TTL_SECONDS", "60")),
        btc_history_cache_ttl_seconds=float(_env("BTC_HISTORY_CACHE_TTL_SECONDS", "300")),
        rpc_urls=_json("RPC_URLS"),
        multicall_address=_env(
            "MULTICALL_ADDRESS", "0xcA11bde05977b3631167028862bE2a173976CA11"
        ),
        chain_contracts=_json("CHAIN_CONTRACTS"),
        explore_stats_cache_ttl_seconds=float(_env("EXPLORE_STATS_CACHE_TTL_SECONDS", "60")),
        explore_stats_refresh_margin_seconds=float(
            _env("EXPLORE_STATS_REFRESH_MARGIN_SECONDS", "5")
        ),
        yearly_volume_cache_ttl_seconds=float(_env("YEARLY_VOLUME_CACHE_TTL_SECONDS", "900")),
        explore_stats_prewarm_chain_ids=_int_list("EXPLORE_STATS_PREWARM_CHAIN_IDS"),
        protocol_stats_cache_ttl_seconds=float(_env("PROTOCOL_STATS_CACHE_TTL_SECONDS", "60")),
        juicedollar_ponder_url=_env("JUICEDOLLAR_PONDER_URL", "https://ponder.juicedollar.com"),
        lds_ponder_url=_env("LDS_PONDER_URL", "https://lightning.space/v1/claim"),
    )
