from __future__ import annotations

from bisect import bisect_left
from collections import defaultdict
from decimal import Decimal

from app.domain.entities.chain import ChainContracts
from app.domain.entities.explore_stats import PriceHistory
from app.domain.entities.market_data import (
    BtcPriceData,
    BtcPriceHistory,
    BtcPricePoint,
    PoolPriceSnapshot,
)
from app.domain.entities.pool import ConcentratedPool, Token
from app.domain.services.price_derivation import ReferencePool, find_reference_pool, price_from_sqrt
from app.domain.services.token_category import TokenCategory, classify_token


SPARKLINE_POINTS = 24
SPARKLINE_STEP_SECONDS = 3600
ONE_HOUR_TOLERANCE_SECONDS = 1800
ONE_DAY_TOLERANCE_SECONDS = 3600
SPARKLINE_TOLERANCE_SECONDS = 1800

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def group_snapshots_by_pool(
    snapshots: list[PoolPriceSnapshot],
) -> dict[str, list[PoolPriceSnapshot]]:
    grouped: dict[str, list[PoolPriceSnapshot]] = defaultdict(list)
    for snapshot in snapshots:
        grouped[snapshot.pool_address.lower()].append(snapshot)
    for items in grouped.values():
        items.sort(key=lambda item: item.timestamp)
    return dict(grouped)


def find_closest_snapshot(
    snapshots: list[PoolPriceSnapshot],
    target_timestamp: int,
    tolerance_seconds: int,
) -> PoolPriceSnapshot | None:
    """Closest snapshot to the target, or None when outside the tolerance window.

    Snapshots must be sorted by timestamp ascending.
    """
    if not snapshots:
        return None

    index = bisect_left(snapshots, target_timestamp, key=lambda item: item.timestamp)
    index = min(index, len(snapshots) - 1)
    best = snapshots[index]
    best_diff = abs(best.timestamp - target_timestamp)
    if index > 0:
        previous = snapshots[index - 1]
        previous_diff = abs(previous.timestamp - target_timestamp)
        if previous_diff < best_diff:
            best = previous
            best_diff = previous_diff

    return best if best_diff <= tolerance_seconds else None


def historical_btc_price(current_price: Decimal, pct_change: Decimal) -> Decimal:
    if pct_change == 0:
        return current_price
    return current_price / (ONE + pct_change / HUNDRED)


def percent_change(current: Decimal, historical: Decimal | None) -> Decimal | None:
    if historical is None or historical <= 0:
        return None
    value = (current - historical) / historical * HUNDRED
    return value if value.is_finite() else None


def interpolate_price(points: list[BtcPricePoint], target_timestamp: int) -> Decimal:
    if not points:
        return ZERO
    if target_timestamp <= points[0].timestamp:
        return points[0].price
    if target_timestamp >= points[-1].timestamp:
        return points[-1].price

    low = 0
    high = len(points) - 1
    while low < high - 1:
        mid = (low + high) // 2
        if points[mid].timestamp <= target_timestamp:
            low = mid
        else:
            high = mid

    start = points[low]
    end = points[high]
    span = Decimal(end.timestamp - start.timestamp)
    weight = Decimal(target_timestamp - start.timestamp) / span
    return start.price + weight * (end.price - start.price)


def fill_gaps(values: list[Decimal | None]) -> list[Decimal]:
    """Carry the last observation forward and back-fill leading gaps with the first one."""
    filled: list[Decimal] = []
    last_known: Decimal | None = None
    for value in values:
        if value is not None:
            last_known = value
        filled.append(last_known if last_known is not None else ZERO)

    first_index = next((idx for idx, value in enumerate(values) if value is not None), None)
    if first_index:
        first_value = values[first_index]
        for idx in range(first_index):
            filled[idx] = first_value
    return filled


def sparkline_window(now: int) -> tuple[int, int, list[int]]:
    start = now - SPARKLINE_POINTS * SPARKLINE_STEP_SECONDS
    timestamps = [start + idx * SPARKLINE_STEP_SECONDS for idx in range(SPARKLINE_POINTS)]
    return start, now, timestamps


def _historical_counterpart_price(
    category: TokenCategory | None,
    *,
    historical_btc: Decimal,
    current_counterpart: Decimal,
) -> Decimal:
    if category == TokenCategory.STABLECOIN:
        return ONE
    if category == TokenCategory.BTC:
        return historical_btc
    return current_counterpart


def _category_fallback(
    category: TokenCategory | None,
    btc_change: Decimal,
) -> Decimal | None:
    if category == TokenCategory.STABLECOIN:
        return ZERO
    if category == TokenCategory.BTC:
        return btc_change
    return None


def compute_price_changes(
    *,
    prices: dict[str, Decimal],
    tokens: dict[str, Token],
    pools: list[ConcentratedPool],
    snapshots_by_pool: dict[str, list[PoolPriceSnapshot]],
    btc_data: BtcPriceData,
    contracts: ChainContracts | None,
    now: int,
) -> tuple[dict[str, Decimal], dict[str, Decimal]]:
    change_1h: dict[str, Decimal] = {}
    change_24h: dict[str, Decimal] = {}

    for address in prices:
        category = classify_token(contracts, address)
        if category == TokenCategory.BTC:
            change_1h[address] = btc_data.change_1h
            change_24h[address] = btc_data.change_24h
        elif category == TokenCategory.STABLECOIN:
            change_1h[address] = ZERO
            change_24h[address] = ZERO

    btc_1h_ago = historical_btc_price(btc_data.price, btc_data.change_1h)
    btc_24h_ago = historical_btc_price(btc_data.price, btc_data.change_24h)
    windows = (
        (change_1h, now - 3600, ONE_HOUR_TOLERANCE_SECONDS, btc_1h_ago, btc_data.change_1h),
        (change_24h, now - 24 * 3600, ONE_DAY_TOLERANCE_SECONDS, btc_24h_ago, btc_data.change_24h),
    )

    for address, current_price in prices.items():
        if current_price <= 0 or address in change_1h:
            continue
        reference = find_reference_pool(address, pools, prices)
        if reference is None:
            continue

        counterpart_category = classify_token(contracts, reference.counterpart)
        snapshots = snapshots_by_pool.get(reference.pool.address.lower()) or []

        for target_map, target_ts, tolerance, historical_btc, btc_change in windows:
            value = None
            if snapshots:
                value = _change_from_snapshot(
                    reference,
                    snapshots,
                    target_ts=target_ts,
                    tolerance=tolerance,
                    current_price=current_price,
                    counterpart_price=_historical_counterpart_price(
                        counterpart_category,
                        historical_btc=historical_btc,
                        current_counterpart=prices.get(reference.counterpart, ZERO),
                    ),
                    tokens=tokens,
                )
            if value is None:
                value = _category_fallback(counterpart_category, btc_change)
            if value is not None:
                target_map[address] = value

    return change_1h, change_24h


def _change_from_snapshot(
    reference: ReferencePool,
    snapshots: list[PoolPriceSnapshot],
    *,
    target_ts: int,
    tolerance: int,
    current_price: Decimal,
    counterpart_price: Decimal,
    tokens: dict[str, Token],
) -> Decimal | None:
    closest = find_closest_snapshot(snapshots, target_ts, tolerance)
    if closest is None:
        return None
    historical = price_from_sqrt(reference, closest.sqrt_price_x96, counterpart_price, tokens)
    return percent_change(current_price, historical)


def build_price_histories(
    *,
    token_addresses: list[str],
    prices: dict[str, Decimal],
    tokens: dict[str, Token],
    pools: list[ConcentratedPool],
    snapshots_by_pool: dict[str, list[PoolPriceSnapshot]],
    btc_history: BtcPriceHistory | None,
    contracts: ChainContracts | None,
    now: int,
) -> dict[str, PriceHistory]:
    start, end, timestamps = sparkline_window(now)
    btc_points = btc_history.points if btc_history is not None else []
    has_btc_curve = len(btc_points) >= 2
    histories: dict[str, PriceHistory] = {}

    def _history(values: list[Decimal]) -> PriceHistory:
        return PriceHistory(start=start, end=end, step=SPARKLINE_STEP_SECONDS, values=values)

    for raw_address in token_addresses:
        address = raw_address.lower()
        category = classify_token(contracts, address)

        if category == TokenCategory.STABLECOIN:
            histories[address] = _history([ONE] * SPARKLINE_POINTS)
            continue

        if category == TokenCategory.BTC:
            if has_btc_curve:
                histories[address] = _history(
                    [interpolate_price(btc_points, ts) for ts in timestamps]
                )
            continue

        reference = find_reference_pool(address, pools, prices)
        if reference is None:
            continue

        counterpart_category = classify_token(contracts, reference.counterpart)
        snapshots = snapshots_by_pool.get(reference.pool.address.lower()) or []
        values: list[Decimal | None] = []
        for ts in timestamps:
            closest = find_closest_snapshot(snapshots, ts, SPARKLINE_TOLERANCE_SECONDS)
            if closest is None:
                values.append(None)
                continue
            if counterpart_category == TokenCategory.STABLECOIN:
                counterpart_price = ONE
            elif counterpart_category == TokenCategory.BTC and btc_points:
                counterpart_price = interpolate_price(btc_points, ts)
            else:
                counterpart_price = prices.get(reference.counterpart, ZERO)
            values.append(price_from_sqrt(reference, closest.sqrt_price_x96, counterpart_price, tokens))

        if sum(1 for value in values if value is not None) >= 2:
            histories[address] = _history(fill_gaps(values))
            continue

        current_price = prices.get(address, ZERO)
        if current_price <= 0:
            continue
        if counterpart_category == TokenCategory.STABLECOIN:
            histories[address] = _history([current_price] * SPARKLINE_POINTS)
        elif counterpart_category == TokenCategory.BTC and has_btc_curve:
            latest_btc = btc_points[-1].price
            if latest_btc > 0:
                scale = current_price / latest_btc
                histories[address] = _history(
                    [interpolate_price(btc_points, ts) * scale for ts in timestamps]
                )

    return histories
