from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
import time

from app.application.dto.explore_stats import GetExploreStatsInput, GetPoolStatsInput
from app.application.use_cases.compute_explore_stats import ComputeExploreStatsUseCase
from app.domain.entities.explore_stats import ExploreStats, PoolStats
from app.domain.exceptions import ExploreStatsInputError, StatsComputationError
from app.infrastructure.cache.coalescing_cache import CoalescingCache


logger = logging.getLogger(__name__)


class GetExploreStatsUseCase:
    """Serves explore stats per chain from a TTL cache with coalesced recomputation.

    A failed computation is reported as ``StatsComputationError`` and never
    replaced by an older snapshot, so callers can tell "no data" from "failed".
    """

    def __init__(
        self,
        *,
        compute: ComputeExploreStatsUseCase,
        ttl_seconds: float = 60,
        refresh_margin_seconds: float = 5,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._compute = compute
        self._cache: CoalescingCache[ExploreStats] = CoalescingCache(
            ttl_seconds=ttl_seconds,
            name="explore_stats",
            clock=clock,
        )
        self._refresh_interval = max(1.0, ttl_seconds - refresh_margin_seconds)
        self._refresh_task: asyncio.Task | None = None

    @property
    def cache(self) -> CoalescingCache[ExploreStats]:
        return self._cache

    async def execute(self, command: GetExploreStatsInput) -> ExploreStats:
        if command.chain_id is None or command.chain_id <= 0:
            raise ExploreStatsInputError("chainId must be a positive integer.")
        try:
            return await self._cache.get_or_compute(
                command.chain_id,
                lambda: self._compute.execute(command),
            )
        except Exception as exc:
            logger.error(
                "get_explore_stats: computation_failed chain_id=%s error=%s",
                command.chain_id,
                exc,
            )
            raise StatsComputationError(f"Failed to compute explore stats: {exc}") from exc

    async def get_pool_stats(self, command: GetPoolStatsInput) -> PoolStats | None:
        if not command.pool_address or not command.pool_address.lower().startswith("0x"):
            raise ExploreStatsInputError("pool address must start with 0x.")
        stats = await self.execute(GetExploreStatsInput(chain_id=command.chain_id))
        return stats.find_v3_pool(command.pool_address)

    def start_background_refresh(self, chain_ids: list[int]) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        if not chain_ids:
            return
        logger.info(
            "get_explore_stats: background_refresh_started chain_ids=%s interval_seconds=%s",
            chain_ids,
            self._refresh_interval,
        )
        self._refresh_task = asyncio.ensure_future(self._refresh_loop(list(chain_ids)))

    async def stop_background_refresh(self) -> None:
        task = self._refresh_task
        self._refresh_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("get_explore_stats: background_refresh_stopped")

    async def refresh(self, chain_id: int) -> None:
        command = GetExploreStatsInput(chain_id=chain_id)
        try:
            await self._cache.get_or_compute(
                chain_id,
                lambda: self._compute.execute(command),
                force=True,
            )
        except Exception as exc:
            raise StatsComputationError(f"Failed to refresh explore stats: {exc}") from exc

    async def _refresh_loop(self, chain_ids: list[int]) -> None:
        while True:
            for chain_id in chain_ids:
                try:
                    await self.refresh(chain_id)
                    logger.info("get_explore_stats: refreshed chain_id=%s", chain_id)
                except StatsComputationError as exc:
                    logger.warning(
                        "get_explore_stats: refresh_failed chain_id=%s error=%s",
                        chain_id,
                        exc,
                    )
            await asyncio.sleep(self._refresh_interval)
