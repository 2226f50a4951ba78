from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
import logging
import time
from typing import Any

import httpx

from app.domain.exceptions import IndexerRequestError


logger = logging.getLogger(__name__)


PRIMARY = "primary"
FALLBACK = "fallback"


@dataclass(frozen=True)
class PonderClientSettings:
    primary_url: str
    fallback_url: str
    timeout_seconds: float
    max_retries: int
    retry_delay_seconds: float
    fallback_cooldown_seconds: float


class IndexerUrlSelector:
    """Primary/fallback base URL switch with a sticky cooldown."""

    def __init__(
        self,
        *,
        primary_url: str,
        fallback_url: str,
        cooldown_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._primary_url = primary_url.rstrip("/")
        self._fallback_url = fallback_url.rstrip("/")
        self._cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._fallback_until: float | None = None

    @property
    def state(self) -> str:
        if self._fallback_until is None:
            return PRIMARY
        if self._clock() >= self._fallback_until:
            self._fallback_until = None
            return PRIMARY
        return FALLBACK

    def current_url(self) -> str:
        return self._fallback_url if self.state == FALLBACK else self._primary_url

    def activate_fallback(self) -> None:
        if self.state == FALLBACK:
            return
        self._fallback_until = self._clock() + self._cooldown_seconds
        logger.warning(
            "ponder_client: fallback_activated url=%s cooldown_seconds=%s",
            self._fallback_url,
            self._cooldown_seconds,
        )

    def clear(self) -> None:
        self._fallback_until = None

    def status(self) -> dict:
        state = self.state
        return {
            "using_fallback": state == FALLBACK,
            "fallback_until": self._fallback_until,
            "url": self.current_url(),
        }


def _is_failover_error(exc: Exception) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 503
    return isinstance(exc, httpx.TransportError)


class PonderClient:
    def __init__(
        self,
        settings: PonderClientSettings,
        *,
        selector: IndexerUrlSelector | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings
        self._selector = selector or IndexerUrlSelector(
            primary_url=settings.primary_url,
            fallback_url=settings.fallback_url,
            cooldown_seconds=settings.fallback_cooldown_seconds,
        )
        self._transport = transport

    @property
    def selector(self) -> IndexerUrlSelector:
        return self._selector

    async def query(self, query: str, variables: dict | None = None) -> dict:
        payload = await self._request(
            "POST",
            "/graphql",
            json={"query": query, "variables": variables or {}},
        )
        if not isinstance(payload, dict):
            raise IndexerRequestError("Unexpected GraphQL response.")
        errors = payload.get("errors") or []
        if errors:
            message = " | ".join(str(err.get("message", err)) for err in errors)
            raise IndexerRequestError(message)
        return payload.get("data") or {}

    async def get(self, path: str) -> Any:
        return await self._request("GET", path)

    async def _request(self, method: str, path: str, *, json: dict | None = None) -> Any:
        attempts = max(1, self._settings.max_retries)
        last_exc: Exception | None = None

        for attempt in range(1, attempts + 1):
            base_url = self._selector.current_url()
            on_fallback = self._selector.state == FALLBACK
            try:
                async with httpx.AsyncClient(
                    timeout=self._settings.timeout_seconds,
                    transport=self._transport,
                ) as client:
                    response = await client.request(method, f"{base_url}{path}", json=json)
                    response.raise_for_status()
                    return response.json()
            except (httpx.HTTPError, ValueError) as exc:
                last_exc = exc
                logger.warning(
                    "ponder_client: request_failed method=%s path=%s attempt=%s/%s fallback=%s error=%s",
                    method,
                    path,
                    attempt,
                    attempts,
                    on_fallback,
                    exc,
                )
                if on_fallback or not _is_failover_error(exc):
                    raise IndexerRequestError(f"Indexer request failed: {exc}") from exc

                self._selector.activate_fallback()
                if attempt == attempts:
                    break
                await asyncio.sleep(self._settings.retry_delay_seconds)

        raise IndexerRequestError(f"Indexer request failed after retries: {last_exc}") from last_exc
