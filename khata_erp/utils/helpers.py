# utils/helpers.py
from datetime import datetime, timezone
import math


def utc_timestamp() -> str:
    """UTC timestamp in SQLite's datetime('now') format."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def round_half_up(x: float) -> int:
    """Whole-unit rounding with halves going up (2.5 -> 3), as printed bills do."""
    return int(math.floor(float(x) + 0.5))


def round_off(total: float) -> tuple[int, float]:
    """
    Display rounding for a bill total.

    Returns (rounded_total, round_off) where round_off = rounded_total - total.
    Stored totals are never rounded; this is for presentation only.
    """
    rounded = round_half_up(total)
    return rounded, round(rounded - float(total), 2)
