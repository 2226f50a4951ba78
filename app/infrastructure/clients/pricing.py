from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from decimal import Decimal, InvalidOperation
import logging
import time
from typing import Any

import httpx

from app.domain.entities.chain import ChainContracts
from app.domain.entities.market_data import BtcPriceData, BtcPriceHistory, BtcPricePoint
from app.domain.exceptions import PriceUnavailableError
from app.domain.services.token_category import TokenCategory, classify_token
from app.infrastructure.cache.coalescing_cache import CoalescingCache


logger = logging.getLogger(__name__)


class PriceLookupError(RuntimeError):
    pass


BTC_KEY = "bitcoin"
ZERO = Decimal("0")
ONE = Decimal("1")

_FEED_ERRORS = (httpx.HTTPError, PriceLookupError, ValueError, KeyError, TypeError, IndexError, InvalidOperation)


def _positive_decimal(value: Any, *, source: str) -> Decimal:
    if value is None:
        raise PriceLookupError(f"Invalid {source} response.")
    price = Decimal(str(value))
    if not price.is_finite() or price <= 0:
        raise PriceLookupError(f"Invalid {source} response.")
    return price


def _expect(payload: Any, kind: type, *, source: str) -> Any:
    if not isinstance(payload, kind):
        raise PriceLookupError(f"Unexpected {source} response shape.")
    return payload


def _pct(value: Any) -> Decimal:
    if value is None:
        return ZERO
    result = Decimal(str(value))
    return result if result.is_finite() else ZERO


class _JsonFeed:
    source = "feed"

    def __init__(
        self,
        api_base: str,
        timeout_seconds: float,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout_seconds
        self._transport = transport

    async def _get_json(self, path: str, params: dict) -> Any:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(f"{self.api_base}{path}", params=params)
            response.raise_for_status()
            return response.json()


class CoingeckoBtcFeed(_JsonFeed):
    source = "coingecko"

    async def fetch_price(self) -> Decimal:
        payload = await self._get_json("/simple/price", {"ids": BTC_KEY, "vs_currencies": "usd"})
        payload = _expect(payload, dict, source=self.source)
        quote = _expect(payload.get(BTC_KEY) or {}, dict, source=self.source)
        return _positive_decimal(quote.get("usd"), source=self.source)

    async def fetch_price_data(self) -> BtcPriceData:
        payload = await self._get_json(
            "/coins/markets",
            {
                "vs_currency": "usd",
                "ids": BTC_KEY,
                "price_change_percentage": "1h,24h",
            },
        )
        payload = _expect(payload, list, source=self.source)
        if not payload:
            raise PriceLookupError("Empty coingecko markets response.")
        row = _expect(payload[0], dict, source=self.source)
        return BtcPriceData(
            price=_positive_decimal(row.get("current_price"), source=self.source),
            change_1h=_pct(row.get("price_change_percentage_1h_in_currency")),
            change_24h=_pct(
                row.get("price_change_percentage_24h_in_currency")
                or row.get("price_change_percentage_24h")
            ),
        )

    async def fetch_price_history(self) -> BtcPriceHistory:
        payload = await self._get_json(
            f"/coins/{BTC_KEY}/market_chart",
            {"vs_currency": "usd", "days": "1"},
        )
        payload = _expect(payload, dict, source=self.source)
        points = [
            BtcPricePoint(timestamp=int(ts_ms) // 1000, price=Decimal(str(price)))
            for ts_ms, price in payload.get("prices") or []
        ]
        if len(points) < 2:
            raise PriceLookupError("Not enough coingecko history points.")
        points.sort(key=lambda point: point.timestamp)
        return BtcPriceHistory(points=points)


class BinanceBtcFeed(_JsonFeed):
    source = "binance"
    symbol = "BTCUSDT"

    async def fetch_price(self) -> Decimal:
        payload = await self._get_json("/ticker/price", {"symbol": self.symbol})
        payload = _expect(payload, dict, source=self.source)
        return _positive_decimal(payload.get("price"), source=self.source)

    async def fetch_price_data(self) -> BtcPriceData:
        ticker = await self._get_json("/ticker/24hr", {"symbol": self.symbol})
        ticker = _expect(ticker, dict, source=self.source)
        price = _positive_decimal(ticker.get("lastPrice"), source=self.source)
        change_1h = ZERO
        klines = await self._get_json(
            "/klines",
            {"symbol": self.symbol, "interval": "1h", "limit": 2},
        )
        klines = _expect(klines, list, source=self.source)
        if klines:
            open_1h = Decimal(str(klines[-1][1]))
            if open_1h > 0:
                change_1h = (price - open_1h) / open_1h * Decimal("100")
        return BtcPriceData(
            price=price,
            change_1h=change_1h,
            change_24h=_pct(ticker.get("priceChangePercent")),
        )

    async def fetch_price_history(self) -> BtcPriceHistory:
        klines = await self._get_json(
            "/klines",
            {"symbol": self.symbol, "interval": "1h", "limit": 25},
        )
        klines = _expect(klines, list, source=self.source)
        points = [
            BtcPricePoint(timestamp=int(row[0]) // 1000, price=Decimal(str(row[4])))
            for row in klines or []
        ]
        if len(points) < 2:
            raise PriceLookupError("Not enough binance history points.")
        return BtcPriceHistory(points=points)


class KnownPriceResolver:
    """Direct USD prices for stablecoins and BTC-pegged tokens.

    BTC price, price data and history each have their own TTL cache and
    single-flight guard. When every feed fails, the last cached value is served
    if one exists.
    """

    def __init__(
        self,
        *,
        contracts: dict[int, ChainContracts],
        primary: CoingeckoBtcFeed,
        fallback: BinanceBtcFeed,
        price_ttl_seconds: float = 60,
        history_ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._contracts = contracts
        self._primary = primary
        self._fallback = fallback
        self._price_cache: CoalescingCache[Decimal] = CoalescingCache(
            ttl_seconds=price_ttl_seconds, name="btc_price", clock=clock
        )
        self._data_cache: CoalescingCache[BtcPriceData] = CoalescingCache(
            ttl_seconds=price_ttl_seconds, name="btc_price_data", clock=clock
        )
        self._history_cache: CoalescingCache[BtcPriceHistory] = CoalescingCache(
            ttl_seconds=history_ttl_seconds, name="btc_price_history", clock=clock
        )

    def get_chain_contracts(self, chain_id: int) -> ChainContracts | None:
        return self._contracts.get(chain_id)

    def get_token_category(self, chain_id: int, address: str) -> TokenCategory | None:
        return classify_token(self._contracts.get(chain_id), address)

    async def get_token_price_usd(self, chain_id: int, address: str) -> Decimal:
        category = self.get_token_category(chain_id, address)
        if category == TokenCategory.STABLECOIN:
            return ONE
        if category == TokenCategory.BTC:
            return await self.get_btc_price_usd()
        return ZERO

    async def get_token_prices(
        self,
        chain_id: int,
        addresses: list[str],
        *,
        allow_missing_btc: bool = False,
    ) -> dict[str, Decimal]:
        prices: dict[str, Decimal] = {}
        btc_price: Decimal | None = None
        for address in addresses:
            key = address.lower()
            category = self.get_token_category(chain_id, key)
            if category == TokenCategory.STABLECOIN:
                prices[key] = ONE
            elif category == TokenCategory.BTC:
                if btc_price is None:
                    btc_price = await self._btc_price_for_map(allow_missing_btc)
                prices[key] = btc_price
            else:
                prices[key] = ZERO
        return prices

    async def _btc_price_for_map(self, allow_missing: bool) -> Decimal:
        try:
            return await self.get_btc_price_usd()
        except PriceUnavailableError:
            if not allow_missing:
                raise
            logger.warning("pricing: btc_price_missing_in_price_map")
            return ZERO

    async def get_btc_price_usd(self) -> Decimal:
        cached = self._price_cache.get_fresh(BTC_KEY)
        if cached is not None:
            return cached

        rich_inflight = self._data_cache.inflight(BTC_KEY)
        if rich_inflight is not None:
            try:
                data = await asyncio.shield(rich_inflight)
                return data.price
            except _FEED_ERRORS as exc:
                logger.warning("pricing: btc_price_data_inflight_failed error=%s", exc)

        return await self._with_stale_fallback(
            self._price_cache,
            lambda: self._from_feeds("fetch_price"),
            label="btc_price",
        )

    async def get_btc_price_data(self) -> BtcPriceData:
        async def _fetch() -> BtcPriceData:
            data = await self._from_feeds("fetch_price_data")
            self._price_cache.put(BTC_KEY, data.price)
            return data

        return await self._with_stale_fallback(self._data_cache, _fetch, label="btc_price_data")

    async def get_btc_price_history(self) -> BtcPriceHistory:
        return await self._with_stale_fallback(
            self._history_cache,
            lambda: self._from_feeds("fetch_price_history"),
            label="btc_price_history",
        )

    async def _with_stale_fallback(
        self,
        cache: CoalescingCache,
        fetch: Callable[[], Awaitable[Any]],
        *,
        label: str,
    ) -> Any:
        try:
            return await cache.get_or_compute(BTC_KEY, fetch)
        except PriceLookupError as exc:
            stale = cache.get_stale(BTC_KEY)
            if stale is not None:
                logger.warning("pricing: serving_stale source=%s error=%s", label, exc)
                return stale
            logger.error("pricing: all_feeds_failed source=%s error=%s", label, exc)
            raise PriceUnavailableError("Unable to fetch BTC price") from exc

    async def _from_feeds(self, method: str) -> Any:
        try:
            return await getattr(self._primary, method)()
        except _FEED_ERRORS as exc:
            logger.warning(
                "pricing: primary_feed_failed feed=%s method=%s error=%s",
                self._primary.source,
                method,
                exc,
            )
        try:
            return await getattr(self._fallback, method)()
        except _FEED_ERRORS as exc:
            raise PriceLookupError(f"{method} failed on every feed: {exc}") from exc
