from __future__ import annotations

from decimal import Decimal


DEFAULT_DECIMALS = 18


def format_units(raw: int | str | None, decimals: int | None = DEFAULT_DECIMALS) -> Decimal:
    if raw is None or raw == "":
        return Decimal("0")
    scale = DEFAULT_DECIMALS if decimals is None else int(decimals)
    return Decimal(int(raw)).scaleb(-scale)


def to_int(value: int | str | None, default: int = 0) -> int:
    if value is None or value == "":
        return default
    return int(value)
